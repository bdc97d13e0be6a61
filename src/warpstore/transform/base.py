#  Copyright (c) 2021-2025  The University of Texas Southwestern Medical Center.
#  All rights reserved.
#  Redistribution and use in source and binary forms, with or without
#  modification, are permitted for academic and research use only (subject to the
#  limitations in the disclaimer below) provided that the following conditions are met:
#       * Redistributions of source code must retain the above copyright notice,
#       this list of conditions and the following disclaimer.
#       * Redistributions in binary form must reproduce the above copyright
#       notice, this list of conditions and the following disclaimer in the
#       documentation and/or other materials provided with the distribution.
#       * Neither the name of the copyright holders nor the names of its
#       contributors may be used to endorse or promote products derived from this
#       software without specific prior written permission.
#  NO EXPRESS OR IMPLIED LICENSES TO ANY PARTY'S PATENT RIGHTS ARE GRANTED BY
#  THIS LICENSE. THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND
#  CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
#  LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A
#  PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
#  CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL,
#  EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
#  PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR
#  BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER
#  IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
#  ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
#  POSSIBILITY OF SUCH DAMAGE.

"""Coordinate transform interfaces and compositions."""

# Standard Library Imports
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

# Third Party Imports
import numpy as np
from numpy.typing import ArrayLike, NDArray

# Local Imports


def as_points(points: ArrayLike, num_dimensions: int) -> NDArray[np.float64]:
    """Return ``points`` as a float64 array whose last axis has ``num_dimensions``."""
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim == 0 or pts.shape[-1] != num_dimensions:
        raise ValueError(
            f"Expected points with {num_dimensions} coordinates in the last axis, "
            f"got shape {pts.shape}."
        )
    return pts


class RealTransform(ABC):
    """A map from N-dimensional to M-dimensional real points.

    Implementations may keep internal scratch state, so every concurrent user
    must work on its own instance obtained from :meth:`copy`.
    """

    @property
    @abstractmethod
    def num_source_dimensions(self) -> int:
        """Dimensionality of the input points."""

    @property
    @abstractmethod
    def num_target_dimensions(self) -> int:
        """Dimensionality of the output points."""

    @abstractmethod
    def apply(self, points: ArrayLike) -> NDArray[np.float64]:
        """Transform an ``(..., N)`` array of points into an ``(..., M)`` array."""

    @abstractmethod
    def copy(self) -> "RealTransform":
        """Return an instance that can be used independently of this one."""

    def __call__(self, points: ArrayLike) -> NDArray[np.float64]:
        return self.apply(points)


class InvertibleRealTransform(RealTransform):
    """A transform that knows its inverse."""

    @abstractmethod
    def inverse(self) -> "InvertibleRealTransform":
        """Return the inverse transform."""

    def apply_inverse(self, points: ArrayLike) -> NDArray[np.float64]:
        return self.inverse().apply(points)


class TransformSequence(RealTransform):
    """Apply transforms one after the other, in the order they were added."""

    def __init__(self, transforms: Optional[Iterable[RealTransform]] = None):
        self._transforms: List[RealTransform] = []
        for t in transforms or ():
            self.add(t)

    def add(self, transform: RealTransform) -> None:
        if self._transforms:
            previous = self._transforms[-1]
            if previous.num_target_dimensions != transform.num_source_dimensions:
                raise ValueError(
                    f"Cannot append a {transform.num_source_dimensions}D transform "
                    f"after one producing {previous.num_target_dimensions}D points."
                )
        self._transforms.append(transform)

    @property
    def transforms(self) -> List[RealTransform]:
        return list(self._transforms)

    @property
    def num_source_dimensions(self) -> int:
        return self._transforms[0].num_source_dimensions if self._transforms else 0

    @property
    def num_target_dimensions(self) -> int:
        return self._transforms[-1].num_target_dimensions if self._transforms else 0

    def apply(self, points: ArrayLike) -> NDArray[np.float64]:
        out = np.asarray(points, dtype=np.float64)
        for t in self._transforms:
            out = t.apply(out)
        return out

    def copy(self) -> "TransformSequence":
        return TransformSequence(t.copy() for t in self._transforms)

    def __len__(self) -> int:
        return len(self._transforms)

    def __repr__(self) -> str:
        inner = ", ".join(repr(t) for t in self._transforms)
        return f"TransformSequence([{inner}])"


class ExplicitInvertibleTransform(InvertibleRealTransform):
    """Pair of transforms that are declared to be each other's inverse.

    Parameters
    ----------
    forward : RealTransform
        The forward transform.
    inverse : RealTransform
        The inverse transform.
    """

    def __init__(self, forward: RealTransform, inverse: RealTransform):
        if forward.num_source_dimensions != inverse.num_target_dimensions or (
            forward.num_target_dimensions != inverse.num_source_dimensions
        ):
            raise ValueError(
                "Forward and inverse transforms have mismatched dimensionality."
            )
        self.forward = forward
        self.backward = inverse

    @property
    def num_source_dimensions(self) -> int:
        return self.forward.num_source_dimensions

    @property
    def num_target_dimensions(self) -> int:
        return self.forward.num_target_dimensions

    def apply(self, points: ArrayLike) -> NDArray[np.float64]:
        return self.forward.apply(points)

    def apply_inverse(self, points: ArrayLike) -> NDArray[np.float64]:
        return self.backward.apply(points)

    def inverse(self) -> "ExplicitInvertibleTransform":
        return ExplicitInvertibleTransform(self.backward, self.forward)

    def copy(self) -> "ExplicitInvertibleTransform":
        return ExplicitInvertibleTransform(self.forward.copy(), self.backward.copy())

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

"""Continuous displacement fields and the transforms built from them."""

# Standard Library Imports
import logging
from typing import Optional, Sequence

# Third Party Imports
import numpy as np
from numpy.typing import ArrayLike, NDArray

# Local Imports
from warpstore.transform.affine import AffineTransform
from warpstore.transform.base import RealTransform, as_points
from warpstore.transform.interpolate import (
    prepare_samples,
    resolve_extension,
    resolve_interpolation,
    sample,
)

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class CalibratedField:
    """One displacement component, interpolated and addressed in physical units.

    Parameters
    ----------
    samples : array_like
        The displacement component on the pixel grid, one axis per spatial
        dimension.
        A contiguous float64 array is used without copying when the
        interpolation order is 0 or 1.
    interpolation : str or int, optional
        "nearest", "linear" (default) or "cubic", or a spline order.
    extension : str, optional
        Out-of-bounds extension: "zero", "mirror" or "border" (default).
    pixel_to_physical : AffineTransform, optional
        Maps pixel coordinates to physical coordinates. When None, physical
        and pixel coordinates coincide.
    """

    def __init__(
        self,
        samples: ArrayLike,
        interpolation="linear",
        extension: str = "border",
        pixel_to_physical: Optional[AffineTransform] = None,
    ):
        samples = np.asarray(samples, dtype=np.float64)
        if pixel_to_physical is not None and (
            pixel_to_physical.num_source_dimensions != samples.ndim
        ):
            raise ValueError(
                f"A {pixel_to_physical.num_source_dimensions}D pixel-to-physical "
                f"transform cannot calibrate a {samples.ndim}D field."
            )

        self.order = resolve_interpolation(interpolation)
        self.mode = resolve_extension(extension)
        self.pixel_to_physical = pixel_to_physical
        self._physical_to_pixel = (
            pixel_to_physical.inverse() if pixel_to_physical is not None else None
        )
        coefficients, self._prefiltered, self._pad = prepare_samples(
            samples, self.order, self.mode
        )
        # A read-only view; linear and nearest fields share the caller's buffer
        self._coefficients = coefficients.view()
        self._coefficients.setflags(write=False)
        self.shape = samples.shape

    @property
    def num_dimensions(self) -> int:
        return len(self.shape)

    def sample(self, points: ArrayLike) -> NDArray[np.float64]:
        """Interpolate the component at ``(..., N)`` physical points."""
        pts = as_points(points, self.num_dimensions)
        if self._physical_to_pixel is not None:
            pts = self._physical_to_pixel.apply(pts)
        return sample(
            self._coefficients,
            pts,
            self.order,
            self.mode,
            prefiltered=self._prefiltered,
            pad=self._pad,
        )


class DisplacementFieldTransform(RealTransform):
    """The transform ``x -> x + d(x)`` of a continuous displacement field.

    Parameters
    ----------
    fields : sequence of CalibratedField
        One field per spatial dimension; ``fields[i]`` holds the displacement
        along axis ``i``.

    Notes
    -----
    The transform holds no mutable state after construction, so one instance
    can be shared by concurrent readers.
    """

    def __init__(self, fields: Sequence[CalibratedField]):
        fields = tuple(fields)
        if not fields:
            raise ValueError("A displacement field needs at least one component.")
        nd = len(fields)
        for f in fields:
            if f.num_dimensions != nd:
                raise ValueError(
                    f"All {nd} components must be {nd}D fields, got a "
                    f"{f.num_dimensions}D component."
                )
        self._fields = fields

    @property
    def fields(self):
        return self._fields

    @property
    def num_source_dimensions(self) -> int:
        return len(self._fields)

    @property
    def num_target_dimensions(self) -> int:
        return len(self._fields)

    def displacement(self, points: ArrayLike) -> NDArray[np.float64]:
        """Return the ``(..., N)`` displacement vectors at physical points."""
        pts = as_points(points, self.num_source_dimensions)
        return np.stack([f.sample(pts) for f in self._fields], axis=-1)

    def apply(self, points: ArrayLike) -> NDArray[np.float64]:
        pts = as_points(points, self.num_source_dimensions)
        return pts + self.displacement(pts)

    def copy(self) -> "DisplacementFieldTransform":
        # The fields are read-only, so sharing them is safe
        return DisplacementFieldTransform(self._fields)

    def __repr__(self) -> str:
        return (
            f"DisplacementFieldTransform(nd={self.num_source_dimensions}, "
            f"shape={self._fields[0].shape})"
        )

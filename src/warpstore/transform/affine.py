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

"""Affine transforms and their row-packed representation."""

# Standard Library Imports
import logging
from typing import Optional, Sequence

# Third Party Imports
import numpy as np
from numpy.typing import ArrayLike, NDArray

# Local Imports
from warpstore.transform.base import InvertibleRealTransform, as_points

# Row-packed coefficient count -> number of dimensions
ROW_PACKED_DIMENSIONS = {2: 1, 6: 2, 12: 3}

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class AffineTransform(InvertibleRealTransform):
    """An N-dimensional affine transform ``x -> A @ x + t``.

    Parameters
    ----------
    matrix : array_like
        Either an ``(N, N+1)`` matrix ``[A | t]`` or a homogeneous
        ``(N+1, N+1)`` matrix.
    """

    def __init__(self, matrix: ArrayLike):
        m = np.array(matrix, dtype=np.float64)
        if m.ndim != 2:
            raise ValueError(f"Affine matrix must be 2D, got shape {m.shape}.")
        n = m.shape[0]
        if m.shape == (n, n) and n > 1:
            m = m[:-1]
            n -= 1
        if m.shape != (n, n + 1):
            raise ValueError(f"Affine matrix must have shape (N, N+1), got {m.shape}.")
        self._matrix = m

    @classmethod
    def identity(cls, num_dimensions: int) -> "AffineTransform":
        return cls(np.eye(num_dimensions, num_dimensions + 1))

    @classmethod
    def from_row_packed(cls, values: Sequence[float]) -> Optional["AffineTransform"]:
        """Build an affine from its row-packed coefficients.

        Parameters
        ----------
        values : sequence of float
            ``N * (N + 1)`` coefficients, row by row.

        Returns
        -------
        AffineTransform or None
            The affine, or None if the number of coefficients does not match a
            1D, 2D or 3D affine.
        """
        values = np.asarray(values, dtype=np.float64).ravel()
        n = ROW_PACKED_DIMENSIONS.get(values.size)
        if n is None:
            return None
        return cls(values.reshape(n, n + 1))

    @property
    def matrix(self) -> NDArray[np.float64]:
        """The ``(N, N+1)`` matrix ``[A | t]``."""
        return self._matrix.copy()

    @property
    def homogeneous(self) -> NDArray[np.float64]:
        """The ``(N+1, N+1)`` homogeneous matrix."""
        n = self.num_source_dimensions
        h = np.eye(n + 1)
        h[:n] = self._matrix
        return h

    @property
    def linear(self) -> NDArray[np.float64]:
        return self._matrix[:, :-1].copy()

    @property
    def translation(self) -> NDArray[np.float64]:
        return self._matrix[:, -1].copy()

    @property
    def num_source_dimensions(self) -> int:
        return self._matrix.shape[0]

    @property
    def num_target_dimensions(self) -> int:
        return self._matrix.shape[0]

    def row_packed(self) -> NDArray[np.float64]:
        """Return the coefficients of ``[A | t]`` row by row."""
        return self._matrix.ravel().copy()

    def apply(self, points: ArrayLike) -> NDArray[np.float64]:
        pts = as_points(points, self.num_source_dimensions)
        return pts @ self._matrix[:, :-1].T + self._matrix[:, -1]

    def inverse(self) -> "AffineTransform":
        return AffineTransform(np.linalg.inv(self.homogeneous))

    def concatenate(self, other: "AffineTransform") -> "AffineTransform":
        """Return the affine that applies ``other`` first and then ``self``."""
        self._check_dimensions(other)
        return AffineTransform(self.homogeneous @ other.homogeneous)

    def pre_concatenate(self, other: "AffineTransform") -> "AffineTransform":
        """Return the affine that applies ``self`` first and then ``other``."""
        self._check_dimensions(other)
        return AffineTransform(other.homogeneous @ self.homogeneous)

    def copy(self) -> "AffineTransform":
        return AffineTransform(self._matrix)

    def _check_dimensions(self, other: "AffineTransform") -> None:
        if other.num_source_dimensions != self.num_source_dimensions:
            raise ValueError(
                f"Cannot compose a {self.num_source_dimensions}D affine with a "
                f"{other.num_source_dimensions}D affine."
            )

    def __eq__(self, other) -> bool:
        if not isinstance(other, AffineTransform):
            return NotImplemented
        return np.array_equal(self._matrix, other._matrix)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._matrix.tolist()})"


def scale(factors: Sequence[float]) -> AffineTransform:
    """Return the diagonal affine that multiplies each axis by its factor."""
    factors = np.asarray(factors, dtype=np.float64).ravel()
    n = factors.size
    m = np.zeros((n, n + 1))
    m[:, :n] = np.diag(factors)
    return AffineTransform(m)


def translation(offset: Sequence[float]) -> AffineTransform:
    """Return the affine that adds ``offset`` to every point."""
    offset = np.asarray(offset, dtype=np.float64).ravel()
    n = offset.size
    m = np.eye(n, n + 1)
    m[:, n] = offset
    return AffineTransform(m)

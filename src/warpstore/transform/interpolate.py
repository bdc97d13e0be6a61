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

"""Interpolation and out-of-bounds extension of sampled fields."""

# Standard Library Imports
import logging
from typing import Tuple

# Third Party Imports
import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import ndimage

# Local Imports

EXTEND_ZERO = "ext_zero"
EXTEND_MIRROR = "ext_mirror"
EXTEND_BORDER = "ext_border"

# Extension name -> scipy.ndimage boundary mode
#   'grid-constant': zeros outside, interpolated up to the edge
#   'reflect':       half-sample symmetric, the edge sample is repeated (d c b a | a b c d)
#   'nearest':       the edge sample extends outward (a a a a | a b c d)
EXTENSION_MODES = {
    "zero": "grid-constant",
    "mirror": "reflect",
    "border": "nearest",
    EXTEND_ZERO: "grid-constant",
    EXTEND_MIRROR: "reflect",
    EXTEND_BORDER: "nearest",
}

# Interpolation name -> spline order
INTERPOLATION_ORDERS = {
    "nearest": 0,
    "linear": 1,
    "cubic": 3,
}

# Boundary modes whose spline coefficients are only exact on padded samples,
# mapped to the np.pad mode that extends the samples the same way
PADDED_MODES = {
    "nearest": "edge",
    "grid-constant": "constant",
}
SPLINE_PAD = 12

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def resolve_extension(extension: str) -> str:
    """Map an extension name to the matching ``scipy.ndimage`` mode."""
    try:
        return EXTENSION_MODES[extension]
    except KeyError:
        raise ValueError(
            f"Unknown extension '{extension}'. Expected one of "
            f"{sorted(EXTENSION_MODES)}."
        ) from None


def resolve_interpolation(interpolation) -> int:
    """Map an interpolation name (or a spline order) to a spline order."""
    if isinstance(interpolation, (int, np.integer)):
        if not 0 <= interpolation <= 5:
            raise ValueError(f"Spline order must be in [0, 5], got {interpolation}.")
        return int(interpolation)
    try:
        return INTERPOLATION_ORDERS[interpolation]
    except KeyError:
        raise ValueError(
            f"Unknown interpolation '{interpolation}'. Expected one of "
            f"{sorted(INTERPOLATION_ORDERS)} or a spline order."
        ) from None


def prepare_samples(
    samples: ArrayLike, order: int, mode: str
) -> Tuple[NDArray[np.float64], bool, int]:
    """Return samples ready for :func:`sample`, with B-spline prefiltering done once.

    For the "nearest" and "grid-constant" modes the samples are padded by
    ``SPLINE_PAD`` before filtering, as ``map_coordinates`` does internally, so
    the interpolant still passes through the edge samples.

    Returns
    -------
    coefficients : np.ndarray
        The samples, or their spline coefficients when ``order > 1``.
    prefiltered : bool
        Whether ``coefficients`` already hold spline coefficients.
    pad : int
        Samples added before the first sample along every axis.
    """
    samples = np.ascontiguousarray(samples, dtype=np.float64)
    if order <= 1:
        return samples, False, 0

    pad = 0
    if mode in PADDED_MODES:
        pad = SPLINE_PAD
        samples = np.pad(samples, pad, mode=PADDED_MODES[mode])
    return ndimage.spline_filter(samples, order=order, mode=mode), True, pad


def sample(
    coefficients: NDArray[np.float64],
    pixel_points: ArrayLike,
    order: int,
    mode: str,
    prefiltered: bool = False,
    pad: int = 0,
) -> NDArray[np.float64]:
    """Evaluate a sampled field at continuous pixel coordinates.

    Parameters
    ----------
    coefficients : np.ndarray
        The N-dimensional samples (or spline coefficients, see ``prefiltered``).
    pixel_points : array_like
        ``(..., N)`` pixel coordinates.
    order : int
        Spline order of the interpolation.
    mode : str
        ``scipy.ndimage`` boundary mode, see :func:`resolve_extension`.
    prefiltered : bool, optional
        Whether ``coefficients`` already hold spline coefficients.
    pad : int, optional
        Padding of ``coefficients``, see :func:`prepare_samples`.

    Returns
    -------
    np.ndarray
        The interpolated values, with shape ``pixel_points.shape[:-1]``.
    """
    pts = np.asarray(pixel_points, dtype=np.float64)
    lead_shape = pts.shape[:-1]
    coords = pts.reshape(-1, pts.shape[-1]).T
    if pad:
        coords = coords + pad
    values = ndimage.map_coordinates(
        coefficients,
        coords,
        order=order,
        mode=mode,
        cval=0.0,
        prefilter=not prefiltered,
    )
    return values.reshape(lead_shape)

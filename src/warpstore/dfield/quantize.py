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

"""Bounded-error integer quantization of displacement vectors."""

# Standard Library Imports
import logging
import math
from dataclasses import dataclass
from typing import Any, Union

# Third Party Imports
import numpy as np
import dask.array as da

# Local Imports
from warpstore.dfield.errors import QuantizationOverflowError
from warpstore.dfield.kinds import ElementKind

ArrayLike = Union["np.ndarray", "da.Array"]  # noqa: F821

OVERFLOW_POLICIES = ("saturate", "wrap", "raise")

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def quantization_multiplier(num_dimensions: int, max_error: float) -> float:
    """Return the quantization step that keeps the vector error below ``max_error``.

    Rounding each of the ``num_dimensions`` coordinates to a multiple of
    ``m = 2 * sqrt(max_error**2 / num_dimensions)`` moves it by at most ``m / 2``,
    so the L2 norm of the vector error is at most ``max_error``.

    Parameters
    ----------
    num_dimensions : int
        Number of spatial dimensions (vector components).
    max_error : float
        Largest tolerated L2 error of a reconstructed displacement vector.

    Returns
    -------
    float
        The multiplier from quantized integers to displacement units.
    """
    if num_dimensions < 1:
        raise ValueError(f"num_dimensions must be positive, got {num_dimensions}.")
    if not max_error > 0:
        raise ValueError(f"max_error must be positive, got {max_error}.")
    return 2 * math.sqrt(max_error * max_error / num_dimensions)


@dataclass(frozen=True)
class QuantizationPlan:
    """Quantization parameters of one dataset.

    The multiplier is data: it is persisted with the dataset and the very same
    value is used to invert the quantization.

    Attributes
    ----------
    multiplier : float
        Size of one quantization step in displacement units.
    kind : ElementKind
        Integer kind the displacements are stored as.
    overflow : str
        What to do with values outside the range of ``kind``. One of
        ``"saturate"``, ``"wrap"`` or ``"raise"``.
    """

    multiplier: float
    kind: ElementKind
    overflow: str = "saturate"

    def __post_init__(self):
        if not self.kind.is_quantized:
            raise ValueError(f"Quantized kind must be an integer kind, got {self.kind}.")
        if self.overflow not in OVERFLOW_POLICIES:
            raise ValueError(
                f"Unknown overflow policy '{self.overflow}'. "
                f"Expected one of {OVERFLOW_POLICIES}."
            )

    def quantize(self, displacement: Any) -> np.ndarray:
        """Convert displacements to integers of the plan's kind.

        Parameters
        ----------
        displacement : array_like
            Floating displacement values.

        Returns
        -------
        np.ndarray
            ``round(displacement / multiplier)`` as ``kind.dtype``.

        Raises
        ------
        QuantizationOverflowError
            If ``overflow == "raise"`` and a value does not fit in ``kind``.
            Non-finite values never fit; the other policies store NaN as 0 and
            infinities as the nearest bound.
        """
        steps = np.rint(np.asarray(displacement, dtype=np.float64) / self.multiplier)
        lo, hi = self.kind.value_range
        # NaN and infinite values fit no integer kind
        out_of_range = ~np.isfinite(steps) | (steps < lo) | (steps > hi)
        n_out = int(np.count_nonzero(out_of_range))

        if n_out == 0:
            return steps.astype(self.kind.dtype)

        if self.overflow == "raise":
            raise QuantizationOverflowError(
                f"{n_out} displacement values exceed the range of {self.kind.value} "
                f"with multiplier {self.multiplier}."
            )
        elif self.overflow == "saturate":
            logger.warning(
                f"Saturating {n_out} displacement values to the range of "
                f"{self.kind.value} [{lo}, {hi}]."
            )
            steps = np.nan_to_num(steps, nan=0.0, posinf=hi, neginf=lo)
            return np.clip(steps, lo, hi).astype(self.kind.dtype)

        logger.warning(
            f"Wrapping {n_out} displacement values into the range of {self.kind.value}."
        )
        steps = np.nan_to_num(steps, nan=0.0, posinf=hi, neginf=lo)
        span = int(hi) - int(lo) + 1
        wrapped = np.mod(steps - lo, span) + lo
        return wrapped.astype(self.kind.dtype)

    def dequantize(self, quantized: ArrayLike, dtype: Any = np.float64) -> ArrayLike:
        """Return ``quantized * multiplier`` as ``dtype``. Lazy for dask input."""
        if isinstance(quantized, da.Array):
            return (quantized.astype(np.float64) * self.multiplier).astype(dtype)
        return (np.asarray(quantized, dtype=np.float64) * self.multiplier).astype(dtype)


def plan_quantization(
    num_dimensions: int,
    max_error: float,
    kind: Any,
    overflow: str = "saturate",
) -> QuantizationPlan:
    """Derive the quantization plan for a field with ``num_dimensions`` components.

    Parameters
    ----------
    num_dimensions : int
        Number of spatial dimensions.
    max_error : float
        Largest tolerated L2 error of a reconstructed displacement vector.
    kind : ElementKind or numpy dtype
        The integer kind to store.
    overflow : str, optional
        Overflow policy, see :class:`QuantizationPlan`. Defaults to "saturate".

    Returns
    -------
    QuantizationPlan
        The plan, whose ``multiplier`` must be persisted with the dataset.
    """
    if not isinstance(kind, ElementKind):
        kind = ElementKind.from_dtype(kind)

    multiplier = quantization_multiplier(num_dimensions, max_error)
    logger.info(
        f"Quantizing {num_dimensions}D displacements as {kind.value} with "
        f"multiplier {multiplier} (max vector error {max_error})."
    )
    return QuantizationPlan(multiplier=multiplier, kind=kind, overflow=overflow)

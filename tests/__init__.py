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

# Standard Library Imports

# Third Party Imports
import numpy as np
import zarr

# Local Imports
from warpstore.io.store import ZarrBlockStore
from warpstore.transform.base import RealTransform, as_points


def memory_store() -> ZarrBlockStore:
    """Return an empty zarr block store held in memory."""
    return ZarrBlockStore(zarr.storage.MemoryStore())


class ShiftTransform(RealTransform):
    """Translate every point by a constant vector. Counts its copies."""

    def __init__(self, shift):
        self.shift = np.asarray(shift, dtype=np.float64)
        self.copies = 0

    @property
    def num_source_dimensions(self) -> int:
        return self.shift.size

    @property
    def num_target_dimensions(self) -> int:
        return self.shift.size

    def apply(self, points):
        return as_points(points, self.shift.size) + self.shift

    def copy(self):
        self.copies += 1
        return ShiftTransform(self.shift)


class SmoothWarp(RealTransform):
    """A slowly varying, non-linear warp: x_i + amplitude * sin(x_{i+1} / period)."""

    def __init__(self, num_dimensions: int, amplitude: float = 1.5, period: float = 7.0):
        self.nd = num_dimensions
        self.amplitude = amplitude
        self.period = period

    @property
    def num_source_dimensions(self) -> int:
        return self.nd

    @property
    def num_target_dimensions(self) -> int:
        return self.nd

    def apply(self, points):
        x = as_points(points, self.nd)
        shifted = np.roll(x, -1, axis=-1)
        return x + self.amplitude * np.sin(shifted / self.period)

    def copy(self):
        return SmoothWarp(self.nd, self.amplitude, self.period)


class FailingTransform(ShiftTransform):
    """Shift transform that raises for any block containing ``bad_point``."""

    def __init__(self, shift, bad_point):
        super().__init__(shift)
        self.bad_point = np.asarray(bad_point, dtype=np.float64)

    def apply(self, points):
        x = as_points(points, self.shift.size)
        if np.any(np.all(np.isclose(x, self.bad_point), axis=-1)):
            raise RuntimeError(f"cannot evaluate at {self.bad_point.tolist()}")
        return x + self.shift

    def copy(self):
        return FailingTransform(self.shift, self.bad_point)

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

"""Element kinds that a displacement field dataset may be stored with."""

# Standard Library Imports
from enum import Enum
from typing import Any

# Third Party Imports
import numpy as np

# Local Imports
from warpstore.dfield.errors import UnsupportedElementKindError


class ElementKind(Enum):
    """Closed set of storable element kinds.

    Integer kinds hold quantized displacements and floating kinds hold raw
    displacements. The kind of a dataset is resolved once, when the dataset is
    created or opened, and never per sample.
    """

    INT8 = "int8"
    UINT8 = "uint8"
    INT16 = "int16"
    UINT16 = "uint16"
    INT32 = "int32"
    UINT32 = "uint32"
    INT64 = "int64"
    UINT64 = "uint64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @property
    def is_quantized(self) -> bool:
        return self.dtype.kind in ("i", "u")

    @property
    def value_range(self):
        """Return the (min, max) representable value of the kind."""
        if self.is_quantized:
            info = np.iinfo(self.dtype)
        else:
            info = np.finfo(self.dtype)
        return info.min, info.max

    @classmethod
    def from_dtype(cls, dtype: Any) -> "ElementKind":
        """Resolve a numpy dtype (or anything ``np.dtype`` accepts) to a kind.

        Raises
        ------
        UnsupportedElementKindError
            If the dtype is not one of the supported integer or float types.
        """
        try:
            name = np.dtype(dtype).name
        except TypeError as e:
            raise UnsupportedElementKindError(
                f"Element type {dtype!r} is not a numpy type."
            ) from e

        for kind in cls:
            if kind.value == name:
                return kind

        raise UnsupportedElementKindError(
            f"Element type '{name}' is not supported. Use a signed or unsigned "
            "integer type (quantized) or float32/float64 (raw)."
        )

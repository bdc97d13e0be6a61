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

"""Exceptions raised while writing or reading displacement field datasets."""

# Standard Library Imports
from typing import Optional, Sequence

# Third Party Imports

# Local Imports


class DisplacementFieldError(Exception):
    """Base class for all displacement field codec errors."""


class AxisConventionError(DisplacementFieldError, ValueError):
    """The vector axis of a field is neither the first nor the last axis."""

    def __init__(self, shape: Sequence[int], ambiguous: bool = False):
        n = len(shape)
        self.shape = tuple(int(s) for s in shape)
        self.ambiguous = ambiguous
        if ambiguous:
            message = (
                f"Both the first and the last axis of the {n}-d volume with shape "
                f"{list(self.shape)} have size {n - 1}; name the vector axis."
            )
        else:
            message = (
                "Displacement fields must store vector components in the first or last "
                f"dimension. Found a {n}-d volume with shape {list(self.shape)}; "
                f"expect size [{n - 1},...] or [...,{n - 1}]"
            )
        super().__init__(message)


class DatasetCreationError(DisplacementFieldError):
    """The block store could not create the output dataset."""


class DatasetNotFoundError(DisplacementFieldError, LookupError):
    """The requested dataset does not exist in the block store."""


class UnsupportedElementKindError(DisplacementFieldError, TypeError):
    """The element type is neither an integer nor a 32/64-bit float type."""


class QuantizationOverflowError(DisplacementFieldError, OverflowError):
    """A quantized displacement does not fit in the chosen integer type."""


class BlockWriteError(DisplacementFieldError):
    """Writing a single block to the store failed."""

    def __init__(self, grid_position: Sequence[int], cause: BaseException):
        self.grid_position = tuple(int(p) for p in grid_position)
        self.cause = cause
        super().__init__(f"Block {list(self.grid_position)} failed: {cause}")


class PartialWriteError(DisplacementFieldError):
    """One or more blocks of a dataset could not be written.

    Parameters
    ----------
    summary : BlockWriteSummary
        The summary of the write, including every failed block.
    message : str, optional
        Overrides the default message.
    """

    def __init__(self, summary, message: Optional[str] = None):
        self.summary = summary
        if message is None:
            message = (
                f"{len(summary.failures)} of {summary.num_blocks} blocks of "
                f"'{summary.dataset}' could not be written."
            )
        super().__init__(message)

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

"""Default parameters for writing and reading displacement field datasets."""

# Persisted attribute keys. Must match exactly for interoperability.
MULTIPLIER_ATTR = "quantization_multiplier"
AFFINE_ATTR = "affine"
SPACING_ATTR = "spacing"

# Default dataset locations of the forward and inverse fields.
FORWARD_ATTR = "dfield"
INVERSE_ATTR = "invdfield"

save_defaults = {
    # (1) layout
    # Block size along each spatial axis. The vector axis is never split.
    "spatial_block_size": 64,
    # 'raw', 'gzip', 'blosc' or 'zstd'. HDF5 stores only accept 'raw' and 'gzip'.
    "compression": "gzip",
    # (2) quantization
    # Integer kind of quantized fields, e.g. 'int8', 'int16'. None stores raw floats.
    "quantized_kind": None,
    # Largest tolerated L2 error of a reconstructed displacement vector.
    "max_error": None,
    # What to do with values beyond the integer range
    # 'saturate': clip to the range. Default value.
    # 'wrap':     two's-complement wrap around
    # 'raise':    fail the block, and the save
    "overflow": "saturate",
    # (3) scheduling
    # Threads of the private pool; None uses the CPU count.
    "num_workers": None,
    # Most block tasks in flight; None uses twice the number of workers.
    "max_in_flight": None,
    # Raise PartialWriteError when a block fails instead of only reporting it.
    "raise_on_failure": False,
}

open_defaults = {
    # Element type of the reconstructed displacements.
    "dtype": "float64",
    # 'nearest', 'linear' or 'cubic'
    "interpolation": "linear",
    # Out-of-bounds extension
    # 'zero':   zeros beyond the edge
    # 'mirror': mirror at the edge, repeating the edge sample
    # 'border': repeat the edge sample. Default value.
    "extension": "border",
}

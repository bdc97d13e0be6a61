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

"""Fill displacement field blocks from a transform or from an existing field."""

# Standard Library Imports
import logging
from typing import Optional, Sequence, Union

# Third Party Imports
import numpy as np
import dask.array as da

# Local Imports
from warpstore.dfield.axes import permute
from warpstore.dfield.grid import BlockInfo
from warpstore.dfield.quantize import QuantizationPlan
from warpstore.transform.affine import AffineTransform, translation
from warpstore.transform.base import RealTransform

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def block_pixel_to_physical(
    pixel_to_physical: AffineTransform, block_min: Sequence[float]
) -> AffineTransform:
    """Re-base a pixel-to-physical affine onto the first voxel of a block.

    The result maps the block-local pixel ``c`` to ``pixel_to_physical(c + block_min)``.
    """
    return pixel_to_physical.concatenate(translation(block_min))


def evaluate_block(
    transform: RealTransform,
    pixel_to_physical: AffineTransform,
    block_buffer: np.ndarray,
    quantization: Optional[QuantizationPlan] = None,
) -> np.ndarray:
    """Write the displacements of ``transform`` into a vector-first block buffer.

    For every voxel ``c`` of the block the displacement
    ``transform(p) - p`` with ``p = pixel_to_physical(c)`` is stored at ``c``.

    Parameters
    ----------
    transform : RealTransform
        The transform to sample. Must not be shared with any concurrent caller.
    pixel_to_physical : AffineTransform
        Block-local pixel-to-physical transform, see :func:`block_pixel_to_physical`.
    block_buffer : np.ndarray
        Output buffer of shape ``(N, *spatial_extent)``. Written in place.
    quantization : QuantizationPlan, optional
        When given, displacements are stored quantized.

    Returns
    -------
    np.ndarray
        ``block_buffer``.
    """
    nd = block_buffer.ndim - 1
    if block_buffer.shape[0] != nd:
        raise ValueError(
            f"Block buffer of shape {block_buffer.shape} is not vector-first."
        )
    if transform.num_source_dimensions != nd or transform.num_target_dimensions < nd:
        raise ValueError(
            f"Cannot sample a {transform.num_source_dimensions}D -> "
            f"{transform.num_target_dimensions}D transform into a {nd}D field."
        )

    # Vector-last view of the buffer, writes go through to block_buffer
    vectors = permute(block_buffer, [nd] + list(range(nd)))
    extent = vectors.shape[:-1]

    pixels = np.moveaxis(np.indices(extent, dtype=np.float64), 0, -1)
    physical = pixel_to_physical.apply(pixels)
    target = transform.apply(physical)
    displacement = target[..., :nd] - physical

    if quantization is None:
        vectors[...] = displacement
    else:
        vectors[...] = quantization.quantize(displacement)
    return block_buffer


def copy_block(
    field: Union[np.ndarray, da.Array],
    block: BlockInfo,
    block_buffer: np.ndarray,
    quantization: Optional[QuantizationPlan] = None,
) -> np.ndarray:
    """Copy one block of a vector-first field into ``block_buffer``.

    Parameters
    ----------
    field : np.ndarray or dask.array.Array
        The whole vector-first field.
    block : BlockInfo
        The block to copy.
    block_buffer : np.ndarray
        Output buffer with shape ``block.extent``. Written in place.
    quantization : QuantizationPlan, optional
        When given, displacements are stored quantized.

    Returns
    -------
    np.ndarray
        ``block_buffer``.
    """
    values = np.asarray(field[block.slices])
    if quantization is None:
        block_buffer[...] = values
    else:
        block_buffer[...] = quantization.quantize(values)
    return block_buffer

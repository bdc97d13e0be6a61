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

"""Block grid of a displacement field dataset."""

# Standard Library Imports
import logging
import math
from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple, Union

# Third Party Imports
import numpy as np

# Local Imports

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class BlockInfo:
    """Position and bounds of one block of the grid."""

    index: int

    # Position of the block in the grid of blocks
    grid_position: Tuple[int, ...]

    # First voxel of the block and its (possibly clipped) size, per axis
    min: Tuple[int, ...]
    extent: Tuple[int, ...]

    @property
    def max(self) -> Tuple[int, ...]:
        """Exclusive upper bound of the block, per axis."""
        return tuple(m + e for m, e in zip(self.min, self.extent))

    @property
    def slices(self) -> Tuple[slice, ...]:
        return tuple(slice(m, m + e) for m, e in zip(self.min, self.extent))

    @property
    def spatial_min(self) -> Tuple[int, ...]:
        """Block minimum without the leading vector axis."""
        return self.min[1:]

    @property
    def spatial_extent(self) -> Tuple[int, ...]:
        """Block size without the leading vector axis."""
        return self.extent[1:]


@dataclass(frozen=True)
class ChunkGridPlan:
    """Output and block dimensions of a vector-first displacement field.

    Axis 0 is the vector axis. Its extent and block extent are both the number
    of spatial dimensions, so a vector is never split across blocks.
    """

    output_dimensions: Tuple[int, ...]
    block_dimensions: Tuple[int, ...]

    @property
    def num_spatial_dimensions(self) -> int:
        return len(self.output_dimensions) - 1

    @property
    def grid_dimensions(self) -> Tuple[int, ...]:
        return tuple(
            int(math.ceil(d / b))
            for d, b in zip(self.output_dimensions, self.block_dimensions)
        )

    @property
    def num_blocks(self) -> int:
        return int(np.prod(self.grid_dimensions, dtype=np.int64))

    def block(self, index: int) -> BlockInfo:
        """Return the grid position and bounds of the block with flat ``index``.

        Flat indices are row-major over :attr:`grid_dimensions`. The result only
        depends on ``index``, so blocks can be processed in any order.

        Parameters
        ----------
        index : int
            Flat block index in ``[0, num_blocks)``.

        Returns
        -------
        BlockInfo
            The block, with its extent clipped at the dataset boundary.
        """
        if not 0 <= index < self.num_blocks:
            raise IndexError(
                f"Block index {index} out of range for {self.num_blocks} blocks."
            )

        grid_position = tuple(
            int(p) for p in np.unravel_index(index, self.grid_dimensions)
        )
        block_min = tuple(
            p * b for p, b in zip(grid_position, self.block_dimensions)
        )
        extent = tuple(
            min(b, d - m)
            for m, b, d in zip(block_min, self.block_dimensions, self.output_dimensions)
        )
        return BlockInfo(
            index=int(index), grid_position=grid_position, min=block_min, extent=extent
        )

    def __iter__(self) -> Iterator[BlockInfo]:
        for index in range(self.num_blocks):
            yield self.block(index)

    def __len__(self) -> int:
        return self.num_blocks


def plan_grid(
    spatial_dimensions: Sequence[int],
    spatial_block_size: Union[int, Sequence[int]],
) -> ChunkGridPlan:
    """Compute the block grid of a vector-first field over ``spatial_dimensions``.

    Parameters
    ----------
    spatial_dimensions : sequence of int
        Size of the field along each spatial axis.
    spatial_block_size : int or sequence of int
        Block size along each spatial axis. A single int gives cubic blocks.

    Returns
    -------
    ChunkGridPlan
        The plan, with the vector axis prepended.
    """
    spatial_dimensions = tuple(int(d) for d in spatial_dimensions)
    nd = len(spatial_dimensions)

    # Ensure spatial_block_size is a tuple
    if isinstance(spatial_block_size, (int, np.integer)):
        spatial_block_size = (int(spatial_block_size),) * nd
    else:
        spatial_block_size = tuple(int(b) for b in spatial_block_size)

    if len(spatial_block_size) != nd:
        raise ValueError(
            f"Block size {spatial_block_size} does not match the "
            f"{nd} spatial dimensions {spatial_dimensions}."
        )
    if any(d < 1 for d in spatial_dimensions) or any(b < 1 for b in spatial_block_size):
        raise ValueError("Dimensions and block sizes must be positive.")

    plan = ChunkGridPlan(
        output_dimensions=(nd,) + spatial_dimensions,
        block_dimensions=(nd,) + spatial_block_size,
    )
    logger.info(
        f"Block grid {plan.grid_dimensions} ({plan.num_blocks} blocks) for output "
        f"shape {plan.output_dimensions} with block shape {plan.block_dimensions}."
    )
    return plan

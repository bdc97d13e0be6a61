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
import pytest

# Local Imports
from warpstore.dfield.grid import ChunkGridPlan, plan_grid


class TestPlanGrid:
    """Test suite for plan_grid and ChunkGridPlan."""

    def test_vector_axis_is_prepended(self):
        plan = plan_grid((100, 80, 60), 32)
        assert plan.output_dimensions == (3, 100, 80, 60)
        assert plan.block_dimensions == (3, 32, 32, 32)
        assert plan.grid_dimensions == (1, 4, 3, 2)
        assert plan.num_blocks == 24
        assert len(plan) == 24

    def test_per_axis_block_size(self):
        plan = plan_grid((10, 20), (5, 7))
        assert plan.block_dimensions == (2, 5, 7)
        assert plan.grid_dimensions == (1, 2, 3)

    def test_blocks_cover_output_exactly_once(self):
        plan = plan_grid((7, 5), 3)
        covered = {}
        for block in plan:
            for i in range(block.min[1], block.max[1]):
                for j in range(block.min[2], block.max[2]):
                    covered[(i, j)] = covered.get((i, j), 0) + 1
        assert len(covered) == 35
        assert set(covered.values()) == {1}

    def test_edge_blocks_are_clipped(self):
        plan = plan_grid((7, 5), 3)
        last = plan.block(plan.num_blocks - 1)
        assert last.grid_position == (0, 2, 1)
        assert last.min == (0, 6, 3)
        assert last.extent == (2, 1, 2)
        assert last.spatial_min == (6, 3)
        assert last.spatial_extent == (1, 2)

    def test_flat_index_is_row_major(self):
        plan = plan_grid((4, 6), 2)
        assert [b.grid_position for b in plan][:4] == [
            (0, 0, 0),
            (0, 0, 1),
            (0, 0, 2),
            (0, 1, 0),
        ]

    def test_block_only_depends_on_index(self):
        plan = plan_grid((9, 9, 9), 4)
        assert plan.block(13) == plan.block(13)
        assert plan.block(13).index == 13

    def test_index_out_of_range(self):
        plan = plan_grid((4, 4), 2)
        with pytest.raises(IndexError):
            plan.block(plan.num_blocks)

    def test_block_larger_than_field(self):
        plan = plan_grid((3, 3), 64)
        assert plan.num_blocks == 1
        assert plan.block(0).extent == (2, 3, 3)

    @pytest.mark.parametrize(
        "dims, size", [((4, 4), (2,)), ((0, 4), 2), ((4, 4), 0)]
    )
    def test_invalid(self, dims, size):
        with pytest.raises(ValueError):
            plan_grid(dims, size)

    def test_frozen(self):
        plan = ChunkGridPlan(output_dimensions=(1, 4), block_dimensions=(1, 2))
        with pytest.raises(AttributeError):
            plan.block_dimensions = (1, 1)

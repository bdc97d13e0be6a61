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
import threading
from concurrent.futures import ThreadPoolExecutor

# Third Party Imports
import numpy as np
import pytest

# Local Imports
from tests import memory_store
from warpstore.dfield.errors import DatasetCreationError, PartialWriteError
from warpstore.dfield.grid import plan_grid
from warpstore.dfield.kinds import ElementKind
from warpstore.dfield.scheduler import write_all
from warpstore.io.store import read_dataset


def fill_with_index(block, buffer):
    buffer[...] = block.index + 1


class TestWriteAll:
    """Test suite for write_all."""

    def test_writes_every_block(self):
        store = memory_store()
        grid = plan_grid((10, 7), 4)
        summary = write_all(grid, fill_with_index, store, "dfield", ElementKind.FLOAT32)

        assert summary.ok
        assert summary.written == grid.num_blocks
        assert summary.completed == grid.num_blocks

        out = read_dataset(store, "dfield").compute()
        assert out.shape == (2, 10, 7)
        for block in grid:
            assert np.all(out[block.slices] == block.index + 1)

    def test_empty_blocks_are_skipped(self):
        store = memory_store()
        grid = plan_grid((8, 8), 4)

        def fill_some(block, buffer):
            if block.index % 2:
                buffer[...] = 1

        summary = write_all(grid, fill_some, store, "dfield", ElementKind.INT8)
        assert summary.written == 2
        assert summary.skipped == 2
        assert np.all(read_dataset(store, "dfield").compute()[:, :4, :4] == 0)

    def test_failures_are_aggregated(self):
        store = memory_store()
        grid = plan_grid((6, 6), 2)

        def fail_on_four(block, buffer):
            if block.index == 4:
                raise RuntimeError("boom")
            buffer[...] = 1

        summary = write_all(grid, fail_on_four, store, "dfield", ElementKind.FLOAT64)
        assert not summary.ok
        assert summary.written == grid.num_blocks - 1
        assert len(summary.failures) == 1
        failure = summary.failures[0]
        assert failure.grid_position == grid.block(4).grid_position
        assert isinstance(failure.cause, RuntimeError)

    def test_raise_on_failure(self):
        grid = plan_grid((4, 4), 2)

        def always_fail(block, buffer):
            raise RuntimeError("boom")

        with pytest.raises(PartialWriteError) as exc_info:
            write_all(
                grid, always_fail, memory_store(), "dfield", ElementKind.FLOAT64,
                raise_on_failure=True,
            )
        assert len(exc_info.value.summary.failures) == grid.num_blocks

    def test_dataset_creation_failure(self):
        grid = plan_grid((4, 4), 2)
        calls = []

        with pytest.raises(DatasetCreationError):
            write_all(
                grid, lambda b, buf: calls.append(b), memory_store(), "dfield",
                ElementKind.FLOAT64, compression="lzma",
            )
        assert calls == []

    def test_caller_executor_is_not_shut_down(self):
        grid = plan_grid((4, 4), 2)
        with ThreadPoolExecutor(max_workers=2) as executor:
            write_all(
                grid, fill_with_index, memory_store(), "dfield", ElementKind.FLOAT64,
                executor=executor,
            )
            assert executor.submit(lambda: 5).result() == 5

    def test_in_flight_window_is_bounded(self):
        grid = plan_grid((16, 16), 2)
        lock = threading.Lock()
        running = [0, 0]

        def track(block, buffer):
            with lock:
                running[0] += 1
                running[1] = max(running[1], running[0])
            buffer[...] = 1
            with lock:
                running[0] -= 1

        summary = write_all(
            grid, track, memory_store(), "dfield", ElementKind.FLOAT64,
            num_workers=4, max_in_flight=2,
        )
        assert summary.written == grid.num_blocks
        assert running[1] <= 2

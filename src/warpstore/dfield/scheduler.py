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

"""Parallel evaluation and writing of every block of a dataset."""

# Standard Library Imports
import logging
import os
from concurrent.futures import (
    FIRST_COMPLETED,
    Executor,
    Future,
    ThreadPoolExecutor,
    as_completed,
    wait,
)
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

# Third Party Imports
import numpy as np

# Local Imports
from warpstore.dfield.errors import (
    BlockWriteError,
    DatasetCreationError,
    PartialWriteError,
)
from warpstore.dfield.grid import BlockInfo, ChunkGridPlan
from warpstore.dfield.kinds import ElementKind
from warpstore.io.store import BlockStore

# Fills a freshly allocated block buffer in place
BlockFiller = Callable[[BlockInfo, np.ndarray], None]

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class BlockWriteSummary:
    """Outcome of writing all blocks of a dataset."""

    dataset: str
    num_blocks: int
    written: int = 0
    skipped: int = 0
    failures: List[BlockWriteError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def completed(self) -> int:
        return self.written + self.skipped + len(self.failures)


def _write_one(
    block: BlockInfo,
    fill_block: BlockFiller,
    store: BlockStore,
    dataset: str,
    kind: ElementKind,
) -> bool:
    # Each task owns its buffer; nothing is shared between tasks but the store
    buffer = np.zeros(block.extent, dtype=kind.dtype)
    fill_block(block, buffer)
    return store.write_block(dataset, block.grid_position, buffer)


def write_all(
    grid: ChunkGridPlan,
    fill_block: BlockFiller,
    store: BlockStore,
    dataset: str,
    kind: ElementKind,
    compression: Optional[str] = "gzip",
    executor: Optional[Executor] = None,
    num_workers: Optional[int] = None,
    max_in_flight: Optional[int] = None,
    raise_on_failure: bool = False,
) -> BlockWriteSummary:
    """Create ``dataset`` and write every block of ``grid`` in parallel.

    Parameters
    ----------
    grid : ChunkGridPlan
        The dataset shape and block shape.
    fill_block : callable
        ``fill_block(block, buffer)`` fills the zero-initialised buffer of one
        block in place. Called concurrently from several workers.
    store : BlockStore
        The destination store.
    dataset : str
        The dataset name.
    kind : ElementKind
        Element kind of the dataset.
    compression : str, optional
        Compression passed to :meth:`BlockStore.create_dataset`. Defaults to "gzip".
    executor : concurrent.futures.Executor, optional
        Executor to run block tasks on. It is not shut down here. When None,
        a thread pool with ``num_workers`` threads is used for this call.
    num_workers : int, optional
        Size of the private thread pool. Defaults to the CPU count.
    max_in_flight : int, optional
        Most block tasks submitted but not finished at any time. Defaults to
        twice the number of workers.
    raise_on_failure : bool, optional
        Raise :class:`PartialWriteError` if any block failed (default is False).

    Returns
    -------
    BlockWriteSummary
        Counts of written and skipped (empty) blocks, and every block failure.

    Raises
    ------
    DatasetCreationError
        If the dataset cannot be created. No block is attempted.
    PartialWriteError
        If ``raise_on_failure`` is set and at least one block failed.
    """
    try:
        store.create_dataset(
            dataset,
            grid.output_dimensions,
            grid.block_dimensions,
            kind,
            compression,
        )
    except Exception as e:
        logger.error(f"Could not create dataset '{dataset}': {e}")
        raise DatasetCreationError(f"Could not create dataset '{dataset}'") from e

    num_workers = num_workers or os.cpu_count() or 1
    if max_in_flight is None:
        max_in_flight = 2 * num_workers
    max_in_flight = max(1, int(max_in_flight))

    summary = BlockWriteSummary(dataset=dataset, num_blocks=grid.num_blocks)
    logger.info(
        f"Writing {grid.num_blocks} blocks of '{dataset}' with at most "
        f"{max_in_flight} in flight."
    )

    def _collect(future: Future, block: BlockInfo) -> None:
        try:
            if future.result():
                summary.written += 1
            else:
                summary.skipped += 1
        except Exception as e:
            failure = BlockWriteError(block.grid_position, e)
            logger.error(f"Block {block.index} of '{dataset}' failed: {failure}")
            summary.failures.append(failure)

    own_executor = executor is None
    if own_executor:
        executor = ThreadPoolExecutor(max_workers=num_workers)

    try:
        pending: Dict[Future, BlockInfo] = {}
        for block in grid:
            if len(pending) >= max_in_flight:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    _collect(future, pending.pop(future))

            future = executor.submit(
                _write_one, block, fill_block, store, dataset, kind
            )
            pending[future] = block

        for future in as_completed(pending):
            _collect(future, pending[future])
    finally:
        if own_executor:
            executor.shutdown(wait=True)

    logger.info(
        f"Finished '{dataset}': {summary.written} written, {summary.skipped} empty, "
        f"{len(summary.failures)} failed."
    )

    if summary.failures and raise_on_failure:
        raise PartialWriteError(summary)
    return summary

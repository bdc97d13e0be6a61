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

"""Chunked block stores that displacement field datasets are persisted in."""

# Standard Library Imports
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple, Union

# Third Party Imports
import dask
import dask.array as da
import h5py
import numpy as np
import zarr
from zarr.codecs import BloscCodec, GzipCodec, ZstdCodec

# Local Imports
from warpstore.dfield.grid import ChunkGridPlan
from warpstore.dfield.kinds import ElementKind

COMPRESSIONS = ("raw", "gzip", "blosc", "zstd")

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class DatasetInfo:
    name: str
    shape: Tuple[int, ...]
    block_shape: Tuple[int, ...]
    dtype: Any

    @property
    def kind(self) -> ElementKind:
        """The element kind. Raises UnsupportedElementKindError for other dtypes."""
        return ElementKind.from_dtype(self.dtype)


def _to_attribute(value: Any) -> Any:
    """Convert numpy values to plain Python values that every store can persist."""
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (list, tuple)):
        return [_to_attribute(v) for v in value]
    return value


class BlockStore(ABC):
    """Abstract chunked-array store holding named datasets and their attributes.

    Blocks are addressed by their position in the grid of blocks. Writes of
    different blocks may happen concurrently.
    """

    @abstractmethod
    def create_dataset(
        self,
        name: str,
        shape: Sequence[int],
        block_shape: Sequence[int],
        kind: ElementKind,
        compression: Optional[str] = "gzip",
    ) -> None:
        """Create (or replace) a dataset."""

    @abstractmethod
    def dataset_exists(self, name: str) -> bool:
        """Return whether ``name`` is an existing dataset."""

    @abstractmethod
    def get_dataset_info(self, name: str) -> DatasetInfo:
        """Return the shape, block shape and dtype of a dataset."""

    @abstractmethod
    def read_block(self, name: str, grid_position: Sequence[int]) -> np.ndarray:
        """Return the block at ``grid_position``, clipped at the dataset boundary."""

    @abstractmethod
    def get_attribute(self, name: str, key: str) -> Any:
        """Return an attribute of a dataset, or None if it is absent."""

    @abstractmethod
    def set_attribute(self, name: str, key: str, value: Any) -> None:
        """Set an attribute of a dataset."""

    @abstractmethod
    def _write_block(
        self, name: str, grid_position: Sequence[int], buffer: np.ndarray
    ) -> None:
        """Store a block unconditionally."""

    def fill_value(self, name: str) -> Any:
        """The value that unwritten blocks read back as."""
        return 0

    def is_empty_block(self, name: str, buffer: np.ndarray) -> bool:
        """Return whether every element of ``buffer`` is the dataset's fill value."""
        return bool(np.all(buffer == self.fill_value(name)))

    def write_block(
        self, name: str, grid_position: Sequence[int], buffer: np.ndarray
    ) -> bool:
        """Write a block unless it only holds the fill value.

        Returns
        -------
        bool
            True if the block was written, False if it was skipped as empty.
        """
        if self.is_empty_block(name, buffer):
            return False
        self._write_block(name, grid_position, buffer)
        return True

    def block_slices(
        self, name: str, grid_position: Sequence[int]
    ) -> Tuple[slice, ...]:
        info = self.get_dataset_info(name)
        return tuple(
            slice(p * b, min((p + 1) * b, s))
            for p, b, s in zip(grid_position, info.block_shape, info.shape)
        )

    def close(self) -> None:
        """Release any open handle. The store must not be used afterwards."""


class ZarrBlockStore(BlockStore):
    """Block store backed by a zarr group.

    Parameters
    ----------
    store : str, os.PathLike or zarr store
        Path of the group on disk, or any store accepted by ``zarr.open_group``
        (for example ``zarr.storage.MemoryStore()``).
    mode : str, optional
        Persistence mode passed to ``zarr.open_group``. Defaults to "a".
    """

    def __init__(self, store: Union[str, os.PathLike, Any], mode: str = "a"):
        if isinstance(store, os.PathLike):
            store = os.fspath(store)
        self.root = zarr.open_group(store=store, mode=mode)

    @staticmethod
    def _parts(name: str):
        parts = [p for p in name.strip("/").split("/") if p]
        if not parts:
            raise ValueError(f"Invalid dataset name '{name}'.")
        return parts

    def _node(self, name: str):
        node = self.root
        for part in self._parts(name):
            node = node[part]
        return node

    def _array(self, name: str) -> zarr.Array:
        node = self._node(name)
        if not isinstance(node, zarr.Array):
            raise KeyError(f"'{name}' is a group, not a dataset.")
        return node

    @staticmethod
    def _compressors(compression: Optional[str]):
        if compression is None or compression == "raw":
            return None
        elif compression == "gzip":
            return (GzipCodec(level=5),)
        elif compression == "blosc":
            return (BloscCodec(cname="zstd", clevel=5, shuffle="shuffle"),)
        elif compression == "zstd":
            return (ZstdCodec(level=3),)
        raise ValueError(
            f"Unknown compression '{compression}'. Expected one of {COMPRESSIONS}."
        )

    def create_dataset(
        self,
        name: str,
        shape: Sequence[int],
        block_shape: Sequence[int],
        kind: ElementKind,
        compression: Optional[str] = "gzip",
    ) -> None:
        parts = self._parts(name)
        group = self.root
        for part in parts[:-1]:
            group = group.require_group(part)

        group.create_array(
            name=parts[-1],
            shape=tuple(int(s) for s in shape),
            chunks=tuple(int(b) for b in block_shape),
            dtype=kind.dtype,
            compressors=self._compressors(compression),
            fill_value=0,
            overwrite=True,
        )
        logger.info(
            f"Created zarr dataset '{name}' {tuple(shape)} in blocks of "
            f"{tuple(block_shape)} as {kind.value} ({compression})."
        )

    def dataset_exists(self, name: str) -> bool:
        try:
            return isinstance(self._node(name), zarr.Array)
        except (KeyError, ValueError):
            return False

    def get_dataset_info(self, name: str) -> DatasetInfo:
        arr = self._array(name)
        return DatasetInfo(
            name=name,
            shape=tuple(arr.shape),
            block_shape=tuple(arr.chunks),
            dtype=np.dtype(arr.dtype),
        )

    def fill_value(self, name: str) -> Any:
        fill = self._array(name).fill_value
        return 0 if fill is None else fill

    def read_block(self, name: str, grid_position: Sequence[int]) -> np.ndarray:
        arr = self._array(name)
        return np.asarray(arr[self.block_slices(name, grid_position)])

    def _write_block(
        self, name: str, grid_position: Sequence[int], buffer: np.ndarray
    ) -> None:
        arr = self._array(name)
        arr[self.block_slices(name, grid_position)] = buffer

    def get_attribute(self, name: str, key: str) -> Any:
        return self._array(name).attrs.get(key)

    def set_attribute(self, name: str, key: str, value: Any) -> None:
        self._array(name).attrs[key] = _to_attribute(value)


class HDF5BlockStore(BlockStore):
    """Block store backed by an HDF5 file.

    All access to the file is serialized with a lock, since HDF5 handles are not
    safe to use from several threads at once.

    Parameters
    ----------
    path : str or os.PathLike
        The HDF5 file. Created if it does not exist.
    mode : str, optional
        h5py file mode. Defaults to "a".
    """

    def __init__(self, path: Union[str, os.PathLike], mode: str = "a"):
        # Be tolerant of a trailing '/' on the filename.
        self.path = str(path).rstrip(os.sep)
        self._file = h5py.File(self.path, mode=mode)
        self._lock = threading.Lock()

    def close(self) -> None:
        with self._lock:
            self._file.close()

    def __enter__(self) -> "HDF5BlockStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _dataset(self, name: str) -> h5py.Dataset:
        node = self._file[name]
        if not isinstance(node, h5py.Dataset):
            raise KeyError(f"'{name}' is a group, not a dataset.")
        return node

    def create_dataset(
        self,
        name: str,
        shape: Sequence[int],
        block_shape: Sequence[int],
        kind: ElementKind,
        compression: Optional[str] = "gzip",
    ) -> None:
        if compression in (None, "raw"):
            h5_compression = None
        elif compression == "gzip":
            h5_compression = "gzip"
        else:
            raise ValueError(
                f"HDF5 stores support 'raw' and 'gzip' compression, got '{compression}'."
            )

        with self._lock:
            if name in self._file:
                del self._file[name]
            self._file.create_dataset(
                name,
                shape=tuple(int(s) for s in shape),
                chunks=tuple(int(b) for b in block_shape),
                dtype=kind.dtype,
                compression=h5_compression,
                fillvalue=0,
            )
        logger.info(
            f"Created HDF5 dataset '{name}' {tuple(shape)} in blocks of "
            f"{tuple(block_shape)} as {kind.value} ({compression})."
        )

    def dataset_exists(self, name: str) -> bool:
        with self._lock:
            return name in self._file and isinstance(self._file[name], h5py.Dataset)

    def get_dataset_info(self, name: str) -> DatasetInfo:
        with self._lock:
            ds = self._dataset(name)
            return DatasetInfo(
                name=name,
                shape=tuple(ds.shape),
                block_shape=tuple(ds.chunks or ds.shape),
                dtype=ds.dtype,
            )

    def fill_value(self, name: str) -> Any:
        with self._lock:
            return self._dataset(name).fillvalue

    def read_block(self, name: str, grid_position: Sequence[int]) -> np.ndarray:
        slices = self.block_slices(name, grid_position)
        with self._lock:
            return self._dataset(name)[slices]

    def _write_block(
        self, name: str, grid_position: Sequence[int], buffer: np.ndarray
    ) -> None:
        slices = self.block_slices(name, grid_position)
        with self._lock:
            self._dataset(name)[slices] = buffer

    def get_attribute(self, name: str, key: str) -> Any:
        with self._lock:
            value = self._dataset(name).attrs.get(key)
        if isinstance(value, bytes):
            return value.decode()
        return _to_attribute(value)

    def set_attribute(self, name: str, key: str, value: Any) -> None:
        with self._lock:
            self._dataset(name).attrs[key] = np.asarray(value)


HDF5_SUFFIXES = (".h5", ".hdf5", ".hdf")


def open_store(path: Union[str, os.PathLike], mode: str = "a") -> BlockStore:
    """Open an HDF5 file by its suffix, or a zarr group otherwise."""
    path = os.fspath(path)
    if path.rstrip(os.sep).lower().endswith(HDF5_SUFFIXES):
        return HDF5BlockStore(path, mode=mode)
    return ZarrBlockStore(path, mode=mode)


def read_dataset(store: BlockStore, name: str) -> da.Array:
    """Open a dataset as a lazy dask array with one task per stored block.

    Parameters
    ----------
    store : BlockStore
        The store holding the dataset.
    name : str
        The dataset name.

    Returns
    -------
    dask.array.Array
        The dataset, chunked like the store's blocks.
    """
    info = store.get_dataset_info(name)
    grid = ChunkGridPlan(
        output_dimensions=tuple(info.shape), block_dimensions=tuple(info.block_shape)
    )

    blocks = {
        block.grid_position: da.from_delayed(
            dask.delayed(store.read_block)(name, block.grid_position),
            shape=block.extent,
            dtype=info.dtype,
        )
        for block in grid
    }

    # da.block wants the blocks as lists nested once per axis
    def _nest(prefix: Tuple[int, ...]):
        if len(prefix) == len(grid.grid_dimensions):
            return blocks[prefix]
        return [_nest(prefix + (i,)) for i in range(grid.grid_dimensions[len(prefix)])]

    logger.debug(f"Opened '{name}' as a dask array of {grid.num_blocks} blocks.")
    return da.block(_nest(()))

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
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Type, Union

# Third Party Imports
import ants
import dask.array as da
import h5py
import numpy as np
import tifffile
import zarr

# Local Imports

ArrayLike = Union["np.ndarray", "da.Array"]  # noqa: F821

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class FieldInfo:
    path: Path
    shape: Tuple[int, ...]
    dtype: Any
    # Physical pixel size per spatial axis, when the file carries it
    spacing: Optional[Tuple[float, ...]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _spacing_from(attrs: Dict[str, Any]) -> Optional[Tuple[float, ...]]:
    for key in ("spacing", "pixel_spacing", "resolution"):
        value = attrs.get(key)
        if value is not None:
            return tuple(float(v) for v in np.ravel(value))
    return None


class Reader(ABC):
    """Abstract strategy for opening displacement field files."""

    # file suffixes this reader *typically* supports
    SUFFIXES: Tuple[str, ...] = ()

    @classmethod
    def claims(cls, path: Path) -> bool:
        """Lightweight test, usually an extension check."""
        return path.suffix.lower() in cls.SUFFIXES

    @abstractmethod
    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        dataset: Optional[str] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, FieldInfo]:
        """Return the field (NumPy or Dask) and its FieldInfo."""


class TiffReader(Reader):
    """Reader for TIFF files using tifffile."""

    SUFFIXES = (".tif", ".tiff")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        dataset: Optional[str] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, FieldInfo]:
        """Open a TIFF file.

        The ImageJ ``spacing`` (z) and the X/Y resolution tags are used as the
        pixel spacing when present.

        Parameters
        ----------
        path : Path
            The path to the TIFF file.
        prefer_dask : bool, optional
            Return a lazy Dask array. Defaults to False.
        dataset : str, optional
            Ignored.
        **kwargs : dict
            Passed to tifffile.imread.

        Returns
        -------
        arr : np.ndarray or dask.array.Array
            The field.
        info : FieldInfo
            Shape, dtype and spacing of the field.
        """
        spacing = None
        metadata: Dict[str, Any] = {}
        with tifffile.TiffFile(str(path)) as tf:
            ij = tf.imagej_metadata or {}
            metadata = {k: v for k, v in ij.items() if isinstance(v, (int, float, str))}
            page = tf.pages[0]
            xres = page.tags.get("XResolution")
            yres = page.tags.get("YResolution")
            if xres is not None and yres is not None:
                # Resolution tags hold pixels per unit as (numerator, denominator)
                xy = [
                    float(t.value[1]) / float(t.value[0]) if t.value[0] else 1.0
                    for t in (yres, xres)
                ]
                spacing = (float(ij["spacing"]), *xy) if "spacing" in ij else tuple(xy)

        if prefer_dask:
            store = tifffile.imread(str(path), aszarr=True, **kwargs)
            arr = da.from_zarr(store)
            logger.info(f"Loaded {path.name} as a Dask array.")
        else:
            arr = tifffile.imread(str(path), **kwargs)
            logger.info(f"Loaded {path.name} as a NumPy array.")

        info = FieldInfo(
            path=path,
            shape=tuple(arr.shape),
            dtype=arr.dtype,
            spacing=spacing,
            metadata=metadata,
        )
        return arr, info


class ZarrReader(Reader):
    """Reader for zarr groups. Picks ``dataset``, or the largest array."""

    SUFFIXES = (".zarr", ".zarr/")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        dataset: Optional[str] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, FieldInfo]:
        grp = zarr.open_group(str(path), mode="r")

        if dataset is not None:
            array = grp[dataset.strip("/")]
        else:
            arrays = [grp[k] for k in grp.array_keys()]
            if not arrays:
                logger.error(f"No arrays found in Zarr group: {path}")
                raise ValueError(f"No arrays found in Zarr group: {path}")
            array = max(arrays, key=lambda a: int(np.prod(a.shape)))

        meta = dict(array.attrs)
        if prefer_dask:
            arr = da.from_zarr(array)
            logger.info(f"Loaded {path.name} as a Dask array.")
        else:
            arr = np.asarray(array[...])
            logger.info(f"Loaded {path.name} as a NumPy array.")

        info = FieldInfo(
            path=path,
            shape=tuple(arr.shape),
            dtype=arr.dtype,
            spacing=_spacing_from(meta),
            metadata=meta,
        )
        return arr, info


class HDF5Reader(Reader):
    """Reader for HDF5 files using h5py."""

    SUFFIXES = (".h5", ".hdf5", ".hdf")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        dataset: Optional[str] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, FieldInfo]:
        """Open ``dataset`` of an HDF5 file, or its largest dataset.

        Parameters
        ----------
        path : Path
            Path to the HDF5 file.
        prefer_dask : bool, optional
            Return a Dask array backed by the on-disk dataset. The file then
            stays open for as long as the array is used.
        dataset : str, optional
            Path of the dataset inside the file.

        Returns
        -------
        arr : np.ndarray or dask.array.Array
            The field.
        info : FieldInfo
            Shape, dtype, spacing and attributes of the dataset.

        Raises
        ------
        ValueError
            If the file contains no datasets.
        """
        # Be tolerant of a trailing '/' on the filename.
        path_str = str(path).rstrip(os.sep)
        f = h5py.File(path_str, mode="r")

        def _collect_datasets(group: h5py.Group) -> list:
            out = []
            for obj in group.values():
                if isinstance(obj, h5py.Dataset):
                    out.append(obj)
                elif isinstance(obj, h5py.Group):
                    out.extend(_collect_datasets(obj))
            return out

        if dataset is not None:
            ds = f[dataset]
        else:
            datasets = _collect_datasets(f)
            if not datasets:
                logger.error(f"No datasets found in HDF5 file: {path_str}")
                f.close()
                raise ValueError(f"No datasets found in HDF5 file: {path_str}")
            ds = max(datasets, key=lambda d: int(np.prod(d.shape)))

        meta = {k: np.asarray(v).tolist() for k, v in ds.attrs.items()}

        if prefer_dask:
            arr = da.from_array(
                ds,
                chunks=ds.chunks or "auto",
                name=f"h5::{os.path.basename(path_str)}::{ds.name}",
                lock=True,
            )
            logger.info(f"Loaded {Path(path_str).name} '{ds.name}' as a Dask array.")
        else:
            arr = ds[...]
            f.close()
            logger.info(f"Loaded {Path(path_str).name} '{ds.name}' as a NumPy array.")

        info = FieldInfo(
            path=Path(path_str),
            shape=tuple(arr.shape),
            dtype=arr.dtype,
            spacing=_spacing_from(meta),
            metadata=meta,
        )
        return arr, info


class NumpyReader(Reader):
    SUFFIXES = (".npy", ".npz")

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        dataset: Optional[str] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, FieldInfo]:
        metadata: Dict[str, Any] = {}
        if path.suffix.lower() == ".npy":
            if prefer_dask:
                arr = da.from_array(np.load(str(path), mmap_mode="r"), chunks="auto")
            else:
                arr = np.load(str(path))
        else:
            with np.load(str(path)) as npz:
                key = dataset or list(npz.keys())[0]
                arr = npz[key]
            metadata["npz_key"] = key
            if prefer_dask:
                arr = da.from_array(arr, chunks="auto")

        info = FieldInfo(path=path, shape=tuple(arr.shape), dtype=arr.dtype, metadata=metadata)
        return arr, info


class AntsWarpReader(Reader):
    """Reader for ANTs/ITK displacement field images (NIfTI) using ANTsPy."""

    SUFFIXES = (".nii", ".nii.gz", ".nrrd", ".mha")

    @classmethod
    def claims(cls, path: Path) -> bool:
        return path.name.lower().endswith(cls.SUFFIXES)

    def open(
        self,
        path: Path,
        prefer_dask: bool = False,
        dataset: Optional[str] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, FieldInfo]:
        """Open a multi-component warp image, with the vector in the last axis.

        Parameters
        ----------
        path : Path
            The warp image, e.g. ``1Warp.nii.gz`` written by ANTs.
        prefer_dask : bool, optional
            Wrap the loaded field in a Dask array. Defaults to False.
        dataset : str, optional
            Ignored.

        Returns
        -------
        arr : np.ndarray or dask.array.Array
            The field, shape ``(*spatial, N)``.
        info : FieldInfo
            Shape, dtype, spacing, origin and direction of the image.

        Notes
        -----
        The image origin and direction are kept in ``info.metadata`` only. A
        warning is logged when they differ from the zero origin and identity
        direction the stored field assumes.
        """
        image = ants.image_read(str(path))
        arr = image.numpy()
        if image.components == 1:
            logger.warning(f"{path.name} has a single component per voxel.")

        metadata = {
            "origin": list(image.origin),
            "direction": np.asarray(image.direction).tolist(),
            "components": int(image.components),
        }
        origin = np.asarray(image.origin, dtype=np.float64)
        direction = np.asarray(image.direction, dtype=np.float64)
        if np.any(origin != 0.0) or not np.allclose(direction, np.eye(direction.shape[0])):
            logger.warning(
                f"{path.name} has origin {origin.tolist()} and direction "
                f"{direction.tolist()}. The field is imported as if it sat at the "
                "origin on the pixel axes; shift points by the origin before "
                "applying the stored transform."
            )
        if prefer_dask:
            arr = da.from_array(arr, chunks="auto")
        logger.info(f"Loaded {path.name} as a {image.dimension}D warp field.")

        info = FieldInfo(
            path=path,
            shape=tuple(arr.shape),
            dtype=arr.dtype,
            spacing=tuple(float(s) for s in image.spacing),
            metadata=metadata,
        )
        return arr, info


class FieldOpener:
    """Open a displacement field file with the reader that claims it."""

    def __init__(self, readers: Optional[Iterable[Type[Reader]]] = None) -> None:
        # Registry order is priority order
        self._readers: Tuple[Type[Reader], ...] = tuple(
            readers
            or (TiffReader, ZarrReader, NumpyReader, HDF5Reader, AntsWarpReader)
        )

    def open(
        self,
        path: Union[str, os.PathLike],
        prefer_dask: bool = False,
        dataset: Optional[str] = None,
        **kwargs: Any,
    ) -> Tuple[ArrayLike, FieldInfo]:
        """Open a field file with the appropriate reader.

        Readers claiming the file by its extension are tried first, then every
        other reader.

        Parameters
        ----------
        path : str or os.PathLike
            Path to the field file or directory.
        prefer_dask : bool, optional
            Return a Dask array when possible. Defaults to False.
        dataset : str, optional
            Dataset inside a container file (zarr, HDF5, npz).
        **kwargs : dict
            Passed to the reader's ``open`` method.

        Returns
        -------
        arr : np.ndarray or dask.array.Array
            The field.
        info : FieldInfo
            Metadata about the field.

        Raises
        ------
        FileNotFoundError
            If the path does not exist.
        ValueError
            If no reader can open the file.
        """
        p = Path(path)
        if not p.exists():
            logger.error(f"File {p} does not exist")
            raise FileNotFoundError(p)

        logger.info(f"Opening {p}")
        claiming = [r for r in self._readers if r.claims(p)]
        others = [r for r in self._readers if r not in claiming]

        last_error: Optional[Exception] = None
        for reader_cls in claiming + others:
            try:
                arr, info = reader_cls().open(
                    p, prefer_dask=prefer_dask, dataset=dataset, **kwargs
                )
            except Exception as e:
                logger.debug(f"{reader_cls.__name__} could not open {p}: {e}")
                last_error = e
                continue
            logger.info(f"Opened {p} with {reader_cls.__name__}.")
            return arr, info

        logger.error(f"No suitable reader found for {p}")
        raise ValueError(f"No suitable reader found for: {p}") from last_error

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

"""Save transforms as chunked displacement fields and open them again.

A persisted transform is a vector-first displacement field dataset plus optional
attributes: the row-packed ``affine``, the pixel ``spacing`` and, for integer
datasets, the ``quantization_multiplier``. Opening a dataset rebuilds a
continuous transform: the field is dequantized, interpolated, calibrated to
physical units and composed with the affine.
"""

# Standard Library Imports
import logging
from concurrent.futures import Executor
from typing import Any, List, Optional, Sequence, Tuple, Union

# Third Party Imports
import numpy as np
import dask.array as da

# Local Imports
from warpstore.dfield.axes import stored_to_vector_last, to_vector_first
from warpstore.dfield.errors import (
    DatasetNotFoundError,
    PartialWriteError,
)
from warpstore.dfield.evaluate import block_pixel_to_physical, copy_block, evaluate_block
from warpstore.dfield.grid import BlockInfo, plan_grid
from warpstore.dfield.kinds import ElementKind
from warpstore.dfield.parameters import (
    AFFINE_ATTR,
    FORWARD_ATTR,
    INVERSE_ATTR,
    MULTIPLIER_ATTR,
    SPACING_ATTR,
)
from warpstore.dfield.quantize import QuantizationPlan, plan_quantization
from warpstore.dfield.scheduler import BlockWriteSummary, write_all
from warpstore.io.store import BlockStore, read_dataset
from warpstore.transform.affine import AffineTransform, scale
from warpstore.transform.base import (
    ExplicitInvertibleTransform,
    RealTransform,
    TransformSequence,
)
from warpstore.transform.displacement import CalibratedField, DisplacementFieldTransform

ArrayLike = Union["np.ndarray", "da.Array"]  # noqa: F821

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def level_datasets(level: int) -> Tuple[str, str]:
    """Return the forward and inverse dataset names of a resolution level."""
    return f"/{level}/{FORWARD_ATTR}", f"/{level}/{INVERSE_ATTR}"


def _resolve_storage(
    num_dimensions: int,
    quantized_kind: Any,
    max_error: Optional[float],
    raw_kind: Any,
    overflow: str,
) -> Tuple[ElementKind, Optional[QuantizationPlan]]:
    """Pick the stored element kind, and the quantization plan if quantizing."""
    if quantized_kind is None:
        kind = raw_kind if isinstance(raw_kind, ElementKind) else ElementKind.from_dtype(raw_kind)
        return kind, None

    kind = (
        quantized_kind
        if isinstance(quantized_kind, ElementKind)
        else ElementKind.from_dtype(quantized_kind)
    )
    if not kind.is_quantized:
        raise ValueError(
            f"Quantized kind must be an integer kind, got '{kind.value}'. "
            "Use raw_kind to store floating displacements."
        )
    if max_error is None:
        raise ValueError("max_error is required when storing a quantized field.")
    return kind, plan_quantization(num_dimensions, max_error, kind, overflow=overflow)


def _spacing_affine(spacing: Optional[Sequence[float]], nd: int) -> AffineTransform:
    if spacing is None:
        return AffineTransform.identity(nd)
    spacing = [float(s) for s in spacing]
    if len(spacing) != nd:
        raise ValueError(f"Expected {nd} spacing values, got {len(spacing)}.")
    return scale(spacing)


def _write_metadata(
    store: BlockStore,
    dataset: str,
    affine: Optional[AffineTransform],
    spacing: Optional[Sequence[float]],
    quantization: Optional[QuantizationPlan],
) -> None:
    if quantization is not None:
        store.set_attribute(dataset, MULTIPLIER_ATTR, float(quantization.multiplier))
    save_affine(store, dataset, affine)
    if spacing is not None:
        store.set_attribute(dataset, SPACING_ATTR, [float(s) for s in spacing])


def save_affine(
    store: BlockStore, dataset: str, affine: Optional[AffineTransform]
) -> None:
    """Store an affine as the row-packed ``affine`` attribute of ``dataset``.

    Nothing is written when ``affine`` is None.
    """
    if affine is not None:
        store.set_attribute(dataset, AFFINE_ATTR, affine.row_packed().tolist())


def save_transform(
    store: BlockStore,
    dataset: str,
    transform: RealTransform,
    shape: Sequence[int],
    spatial_block_size: Union[int, Sequence[int]] = 64,
    compression: Optional[str] = "gzip",
    affine: Optional[AffineTransform] = None,
    spacing: Optional[Sequence[float]] = None,
    max_error: Optional[float] = None,
    quantized_kind: Any = None,
    raw_kind: Any = np.float64,
    overflow: str = "saturate",
    executor: Optional[Executor] = None,
    num_workers: Optional[int] = None,
    max_in_flight: Optional[int] = None,
    raise_on_failure: bool = False,
) -> BlockWriteSummary:
    """Sample a transform on a pixel grid and save it as a displacement field.

    Every block is evaluated in parallel with its own copy of ``transform``.
    The stored value at pixel ``c`` is ``transform(p) - p`` where ``p`` is the
    physical position of ``c`` given by ``spacing``.

    Parameters
    ----------
    store : BlockStore
        The destination store.
    dataset : str
        The dataset name, e.g. "dfield" or "/0/dfield".
    transform : RealTransform
        The transform to save. Copied once per block.
    shape : sequence of int
        Number of pixels along each spatial axis.
    spatial_block_size : int or sequence of int, optional
        Block size along each spatial axis (default is 64).
    compression : str, optional
        "raw", "gzip" (default), "blosc" or "zstd".
    affine : AffineTransform, optional
        Affine stored with the field, applied after it when the transform is
        opened.
    spacing : sequence of float, optional
        Physical size of a pixel along each axis. Stored with the field.
    max_error : float, optional
        Largest tolerated L2 error per displacement vector. Required when
        ``quantized_kind`` is given.
    quantized_kind : ElementKind or numpy dtype, optional
        Integer kind to quantize displacements to. None stores raw floats.
    raw_kind : ElementKind or numpy dtype, optional
        Float kind of an unquantized field (default is float64).
    overflow : str, optional
        Quantization overflow policy: "saturate" (default), "wrap" or "raise".
        With "raise", an overflowing block makes the save raise PartialWriteError.
    executor : concurrent.futures.Executor, optional
        Executor for the block tasks. Not shut down by this function.
    num_workers : int, optional
        Threads of the private pool used when no executor is given.
    max_in_flight : int, optional
        Most block tasks submitted at once.
    raise_on_failure : bool, optional
        Raise PartialWriteError when a block could not be written.

    Returns
    -------
    BlockWriteSummary
        The written, empty and failed block counts.

    Raises
    ------
    UnsupportedElementKindError
        If a kind is not an integer or float32/float64 kind.
    DatasetCreationError
        If the dataset cannot be created.
    PartialWriteError
        If blocks failed and ``raise_on_failure`` is set (or overflow is "raise").
    """
    nd = transform.num_source_dimensions
    shape = tuple(int(s) for s in shape)
    if len(shape) != nd:
        raise ValueError(
            f"A {nd}D transform cannot be sampled on a {len(shape)}D grid {shape}."
        )

    kind, quantization = _resolve_storage(nd, quantized_kind, max_error, raw_kind, overflow)
    pixel_to_physical = _spacing_affine(spacing, nd)
    grid = plan_grid(shape, spatial_block_size)

    def _fill(block: BlockInfo, buffer: np.ndarray) -> None:
        evaluate_block(
            transform.copy(),
            block_pixel_to_physical(pixel_to_physical, block.spatial_min),
            buffer,
            quantization,
        )

    logger.info(f"Saving {nd}D transform over {shape} to '{dataset}' as {kind.value}.")
    summary = write_all(
        grid,
        _fill,
        store,
        dataset,
        kind,
        compression=compression,
        executor=executor,
        num_workers=num_workers,
        max_in_flight=max_in_flight,
    )
    _write_metadata(store, dataset, affine, spacing, quantization)

    if summary.failures and (raise_on_failure or overflow == "raise"):
        raise PartialWriteError(summary)
    return summary


def save_field(
    store: BlockStore,
    dataset: str,
    field: ArrayLike,
    spatial_block_size: Union[int, Sequence[int]] = 64,
    compression: Optional[str] = "gzip",
    affine: Optional[AffineTransform] = None,
    spacing: Optional[Sequence[float]] = None,
    max_error: Optional[float] = None,
    quantized_kind: Any = None,
    overflow: str = "saturate",
    vector_axis: Optional[str] = None,
    executor: Optional[Executor] = None,
    num_workers: Optional[int] = None,
    max_in_flight: Optional[int] = None,
    raise_on_failure: bool = False,
) -> BlockWriteSummary:
    """Save an existing displacement field, optionally quantized.

    Parameters
    ----------
    store : BlockStore
        The destination store.
    dataset : str
        The dataset name.
    field : np.ndarray or dask.array.Array
        (N+1)-dimensional field with the vector in the first or last axis.
        Stored as its own float kind unless ``quantized_kind`` is given.
    spatial_block_size : int or sequence of int, optional
        Block size along each spatial axis (default is 64).
    compression : str, optional
        "raw", "gzip" (default), "blosc" or "zstd".
    affine : AffineTransform, optional
        Affine stored with the field.
    spacing : sequence of float, optional
        Physical size of a pixel along each axis.
    max_error : float, optional
        Largest tolerated L2 error per vector when quantizing.
    quantized_kind : ElementKind or numpy dtype, optional
        Integer kind to quantize to.
    overflow : str, optional
        Quantization overflow policy (default is "saturate").
    vector_axis : str, optional
        "first" or "last". Required when both the first and the last axis of
        ``field`` have length N.
    executor, num_workers, max_in_flight, raise_on_failure
        See :func:`save_transform`.

    Returns
    -------
    BlockWriteSummary
        The written, empty and failed block counts.

    Raises
    ------
    AxisConventionError
        If the vector axis is missing or cannot be told from the shape.
    """
    field_first = to_vector_first(field, vector_axis)
    nd = field_first.ndim - 1

    kind, quantization = _resolve_storage(
        nd, quantized_kind, max_error, field_first.dtype, overflow
    )
    grid = plan_grid(field_first.shape[1:], spatial_block_size)

    def _fill(block: BlockInfo, buffer: np.ndarray) -> None:
        copy_block(field_first, block, buffer, quantization)

    logger.info(
        f"Saving {nd}D field of shape {tuple(field_first.shape)} to '{dataset}' "
        f"as {kind.value}."
    )
    summary = write_all(
        grid,
        _fill,
        store,
        dataset,
        kind,
        compression=compression,
        executor=executor,
        num_workers=num_workers,
        max_in_flight=max_in_flight,
    )
    _write_metadata(store, dataset, affine, spacing, quantization)

    if summary.failures and (raise_on_failure or overflow == "raise"):
        raise PartialWriteError(summary)
    return summary


def save_forward_and_inverse(
    store: BlockStore,
    affine: Optional[AffineTransform],
    forward_field: ArrayLike,
    forward_spacing: Optional[Sequence[float]],
    inverse_field: ArrayLike,
    inverse_spacing: Optional[Sequence[float]],
    spatial_block_size: Union[int, Sequence[int]] = 64,
    compression: Optional[str] = "gzip",
    forward_dataset: str = FORWARD_ATTR,
    inverse_dataset: str = INVERSE_ATTR,
    **kwargs: Any,
) -> Tuple[BlockWriteSummary, BlockWriteSummary]:
    """Save a forward and an inverse field with mutually inverse affines.

    The forward field is stored with ``affine`` and the inverse field with
    ``affine.inverse()``. Each field keeps its own spacing.

    Parameters
    ----------
    store : BlockStore
        The destination store.
    affine : AffineTransform or None
        Affine of the forward transform.
    forward_field, inverse_field : np.ndarray or dask.array.Array
        The forward and inverse displacement fields.
    forward_spacing, inverse_spacing : sequence of float or None
        Pixel spacing of each field.
    spatial_block_size : int or sequence of int, optional
        Block size along each spatial axis (default is 64).
    compression : str, optional
        Compression of both datasets (default is "gzip").
    forward_dataset, inverse_dataset : str, optional
        Dataset names. Default to "dfield" and "invdfield".
    **kwargs
        Passed to :func:`save_field` for both datasets.

    Returns
    -------
    tuple of BlockWriteSummary
        The forward and inverse summaries.
    """
    forward = save_field(
        store,
        forward_dataset,
        forward_field,
        spatial_block_size,
        compression,
        affine=affine,
        spacing=forward_spacing,
        **kwargs,
    )
    inverse = save_field(
        store,
        inverse_dataset,
        inverse_field,
        spatial_block_size,
        compression,
        affine=affine.inverse() if affine is not None else None,
        spacing=inverse_spacing,
        **kwargs,
    )
    return forward, inverse


def open_affine(store: BlockStore, dataset: str) -> Optional[AffineTransform]:
    """Return the affine stored with ``dataset``, or None if it is absent.

    A value whose length is not 2, 6 or 12 counts as absent.
    """
    values = store.get_attribute(dataset, AFFINE_ATTR)
    if values is None:
        return None
    try:
        affine = AffineTransform.from_row_packed(values)
    except (TypeError, ValueError):
        affine = None
    if affine is None:
        logger.warning(f"Ignoring malformed '{AFFINE_ATTR}' attribute of '{dataset}'.")
    return affine


def open_pixel_to_physical(
    store: BlockStore, dataset: str
) -> Optional[AffineTransform]:
    """Return the pixel-to-physical scaling of ``dataset``, or None if absent.

    Spacing of any length but 1, 2 or 3 counts as absent.
    """
    spacing = store.get_attribute(dataset, SPACING_ATTR)
    if spacing is None:
        return None
    try:
        spacing = np.asarray(spacing, dtype=np.float64).ravel()
    except (TypeError, ValueError):
        spacing = np.empty(0)
    if not 1 <= spacing.size <= 3:
        logger.warning(f"Ignoring malformed '{SPACING_ATTR}' attribute of '{dataset}'.")
        return None
    return scale(spacing)


def open_raw(store: BlockStore, dataset: str, dtype: Any = np.float64) -> da.Array:
    """Open a floating field lazily, with the vector in the last axis."""
    return stored_to_vector_last(read_dataset(store, dataset)).astype(dtype)


def open_quantized(
    store: BlockStore, dataset: str, dtype: Any = np.float64
) -> da.Array:
    """Open an integer field lazily as displacements, with the vector last.

    The stored integers are multiplied by the ``quantization_multiplier``
    attribute, or by 1.0 when it is absent.
    """
    kind = store.get_dataset_info(dataset).kind
    multiplier = store.get_attribute(dataset, MULTIPLIER_ATTR)
    if multiplier is None:
        logger.info(f"'{dataset}' has no '{MULTIPLIER_ATTR}'. Using 1.0.")
        multiplier = 1.0

    plan = QuantizationPlan(multiplier=float(multiplier), kind=kind)
    return plan.dequantize(stored_to_vector_last(read_dataset(store, dataset)), dtype)


def open_field(store: BlockStore, dataset: str, dtype: Any = np.float64) -> da.Array:
    """Open a displacement field lazily, with the vector in the last axis.

    Parameters
    ----------
    store : BlockStore
        The store holding the dataset.
    dataset : str
        The dataset name.
    dtype : numpy dtype, optional
        Floating type of the returned displacements (default is float64).

    Returns
    -------
    dask.array.Array
        The displacements in physical units, shape ``(*spatial, N)``.

    Raises
    ------
    DatasetNotFoundError
        If the dataset does not exist.
    UnsupportedElementKindError
        If the dataset is neither an integer nor a float32/float64 dataset.
    AxisConventionError
        If no axis of the dataset can hold the vector.
    """
    if ElementKind.from_dtype(dtype).is_quantized:
        raise ValueError(f"Displacements must be opened as a float type, got {dtype}.")
    if not store.dataset_exists(dataset):
        raise DatasetNotFoundError(f"Dataset '{dataset}' does not exist.")

    kind = store.get_dataset_info(dataset).kind
    if kind.is_quantized:
        return open_quantized(store, dataset, dtype)
    return open_raw(store, dataset, dtype)


def open_calibrated_field(
    store: BlockStore,
    dataset: str,
    interpolation="linear",
    extension: str = "border",
    dtype: Any = np.float64,
) -> List[CalibratedField]:
    """Return one continuous, physically calibrated field per displacement axis.

    Parameters
    ----------
    store : BlockStore
        The store holding the dataset.
    dataset : str
        The dataset name.
    interpolation : str or int, optional
        "nearest", "linear" (default) or "cubic".
    extension : str, optional
        Out-of-bounds extension: "zero", "mirror" or "border" (default).
    dtype : numpy dtype, optional
        Floating type the samples are read as (default is float64).

    Returns
    -------
    list of CalibratedField
        ``fields[i]`` is the displacement along axis ``i``.
    """
    # Computed vector-first, so each channel is a contiguous view of one buffer
    values = np.ascontiguousarray(
        to_vector_first(open_field(store, dataset, dtype), "last").compute()
    )
    nd = values.shape[0]

    pixel_to_physical = open_pixel_to_physical(store, dataset)
    if pixel_to_physical is not None and pixel_to_physical.num_source_dimensions != nd:
        logger.warning(
            f"Ignoring {pixel_to_physical.num_source_dimensions}D spacing of the "
            f"{nd}D field '{dataset}'."
        )
        pixel_to_physical = None

    return [
        CalibratedField(
            values[i],
            interpolation=interpolation,
            extension=extension,
            pixel_to_physical=pixel_to_physical,
        )
        for i in range(nd)
    ]


def open_transform(
    store: BlockStore,
    dataset: str,
    inverse: bool = False,
    dtype: Any = np.float64,
    interpolation="linear",
    extension: str = "border",
) -> Optional[RealTransform]:
    """Open a saved transform.

    The result is the displacement field transform, composed with the stored
    affine when there is one. A forward transform applies the field first and
    then the affine; an inverse transform applies the affine first.

    Parameters
    ----------
    store : BlockStore
        The store holding the dataset.
    dataset : str
        The dataset name.
    inverse : bool, optional
        Whether ``dataset`` holds an inverse transform (default is False).
    dtype : numpy dtype, optional
        Floating type the samples are read as (default is float64).
    interpolation : str or int, optional
        "nearest", "linear" (default) or "cubic".
    extension : str, optional
        "zero", "mirror" or "border" (default).

    Returns
    -------
    RealTransform or None
        The transform, or None if the dataset does not exist.
    """
    if not store.dataset_exists(dataset):
        logger.error(f"dataset : {dataset} does not exist.")
        return None

    affine = open_affine(store, dataset)
    dfield = DisplacementFieldTransform(
        open_calibrated_field(store, dataset, interpolation, extension, dtype)
    )
    logger.info(
        f"Opened '{dataset}' as {dfield!r}"
        + (" with an affine." if affine is not None else ".")
    )

    if affine is None:
        return dfield
    if inverse:
        return TransformSequence([affine, dfield])
    return TransformSequence([dfield, affine])


def open_invertible(
    store: BlockStore,
    forward_dataset: str = FORWARD_ATTR,
    inverse_dataset: str = INVERSE_ATTR,
    level: Optional[int] = None,
    dtype: Any = np.float64,
    interpolation="linear",
    extension: str = "border",
) -> Optional[ExplicitInvertibleTransform]:
    """Open a forward and an inverse dataset as one invertible transform.

    Parameters
    ----------
    store : BlockStore
        The store holding both datasets.
    forward_dataset, inverse_dataset : str, optional
        Dataset names. Default to "dfield" and "invdfield".
    level : int, optional
        Resolution level. When given, the datasets "/<level>/dfield" and
        "/<level>/invdfield" are opened instead.
    dtype, interpolation, extension
        See :func:`open_transform`.

    Returns
    -------
    ExplicitInvertibleTransform or None
        The transform pair, or None if either dataset does not exist.
    """
    if level is not None:
        forward_dataset, inverse_dataset = level_datasets(level)

    for name in (forward_dataset, inverse_dataset):
        if not store.dataset_exists(name):
            logger.error(f"dataset : {name} does not exist.")
            return None

    return ExplicitInvertibleTransform(
        open_transform(store, forward_dataset, False, dtype, interpolation, extension),
        open_transform(store, inverse_dataset, True, dtype, interpolation, extension),
    )


def get_min_max(field: ArrayLike) -> Tuple[float, float]:
    """Return the smallest and largest absolute value of a field.

    Useful to check that a field fits an integer kind before quantizing it.
    """
    magnitude = abs(field)
    lo, hi = magnitude.min(), magnitude.max()
    if isinstance(field, da.Array):
        lo, hi = da.compute(lo, hi)
    return float(lo), float(hi)

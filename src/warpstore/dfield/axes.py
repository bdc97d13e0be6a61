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

"""Canonicalize which array axis of a displacement field carries the vector."""

# Standard Library Imports
import logging
from typing import Optional, Sequence, Union

# Third Party Imports
import numpy as np
import dask.array as da

# Local Imports
from warpstore.dfield.errors import AxisConventionError

ArrayLike = Union["np.ndarray", "da.Array"]  # noqa: F821

# Start logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def permute(source: ArrayLike, p: Sequence[int]) -> ArrayLike:
    """Permute the axes of an array without copying its data.

    The ith value of ``p`` gives the destination of the ith input axis in the
    output, so ``permute(x, p).shape[p[i]] == x.shape[i]``.

    Parameters
    ----------
    source : np.ndarray or dask.array.Array
        The array to permute.
    p : sequence of int
        The permutation, one destination axis per input axis.

    Returns
    -------
    np.ndarray or dask.array.Array
        A permuted view of ``source``.
    """
    p = [int(v) for v in p]
    if sorted(p) != list(range(source.ndim)):
        raise ValueError(f"{p} is not a permutation of {source.ndim} axes.")

    # transpose takes, for each output axis, the input axis that lands there
    order = [0] * source.ndim
    for i, destination in enumerate(p):
        order[destination] = i

    if isinstance(source, da.Array):
        return da.transpose(source, order)
    return np.transpose(source, order)


def vector_axis_last(source: ArrayLike) -> ArrayLike:
    """Return a view of a displacement field with the vector in the last axis.

    Parameters
    ----------
    source : np.ndarray or dask.array.Array
        An (N+1)-dimensional field whose first or last axis has length N.

    Returns
    -------
    np.ndarray or dask.array.Array
        ``source`` itself if the vector is already last, otherwise a permuted
        view in which the remaining axes keep their relative order.

    Raises
    ------
    AxisConventionError
        If neither the first nor the last axis has length N.
    """
    n = source.ndim
    if source.shape[n - 1] == n - 1:
        return source
    elif source.shape[0] == n - 1:
        p = [n - 1] + list(range(n - 1))
        return permute(source, p)

    raise AxisConventionError(source.shape)


def vector_axis_first(source: ArrayLike) -> ArrayLike:
    """Return a view of a displacement field with the vector in the first axis.

    Parameters
    ----------
    source : np.ndarray or dask.array.Array
        An (N+1)-dimensional field whose first or last axis has length N.

    Returns
    -------
    np.ndarray or dask.array.Array
        ``source`` itself if the vector is already first, otherwise a permuted
        view in which the remaining axes keep their relative order.

    Raises
    ------
    AxisConventionError
        If neither the first nor the last axis has length N.
    """
    n = source.ndim
    if source.shape[0] == n - 1:
        return source
    elif source.shape[n - 1] == n - 1:
        p = list(range(1, n)) + [0]
        return permute(source, p)

    raise AxisConventionError(source.shape)


def is_ambiguous(shape: Sequence[int]) -> bool:
    """Whether both the first and the last axis of ``shape`` could hold the vector."""
    n = len(shape)
    return n > 1 and shape[0] == n - 1 and shape[n - 1] == n - 1


def to_vector_first(source: ArrayLike, vector_axis: Optional[str] = None) -> ArrayLike:
    """Return a vector-first view of a field whose vector axis may be named.

    Parameters
    ----------
    source : np.ndarray or dask.array.Array
        An (N+1)-dimensional displacement field.
    vector_axis : str, optional
        "first" or "last". When None the axis is inferred from the shape.

    Raises
    ------
    AxisConventionError
        If the named axis does not have length N, or if ``vector_axis`` is
        None and both the first and the last axis have length N.
    """
    n = source.ndim
    if vector_axis is None:
        if is_ambiguous(source.shape):
            raise AxisConventionError(source.shape, ambiguous=True)
        return vector_axis_first(source)
    if vector_axis == "first":
        if source.shape[0] != n - 1:
            raise AxisConventionError(source.shape)
        return source
    if vector_axis == "last":
        if source.shape[n - 1] != n - 1:
            raise AxisConventionError(source.shape)
        return permute(source, list(range(1, n)) + [0])
    raise ValueError(f"vector_axis must be 'first', 'last' or None, got '{vector_axis}'.")


def stored_to_vector_last(source: ArrayLike) -> ArrayLike:
    """Move the vector of a stored, vector-first dataset to the last axis.

    Stored datasets are always vector-first, so the layout is never inferred
    from the shape.
    """
    n = source.ndim
    if source.shape[0] != n - 1:
        raise AxisConventionError(source.shape)
    return permute(source, [n - 1] + list(range(n - 1)))

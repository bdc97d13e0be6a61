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
import sys
from typing import Optional, Sequence

# Third Party Imports

# Local Imports
from warpstore.dfield.axes import to_vector_first
from warpstore.dfield.codec import (
    get_min_max,
    open_affine,
    open_pixel_to_physical,
    save_field,
)
from warpstore.dfield.errors import DisplacementFieldError
from warpstore.dfield.parameters import MULTIPLIER_ATTR, SPACING_ATTR
from warpstore.io.cli import (
    block_size_option,
    create_parser,
    display_logo,
    resolve_num_workers,
    validate_convert_args,
)
from warpstore.io.log import initialize_logging, log_and_echo
from warpstore.io.read import FieldOpener
from warpstore.io.store import BlockStore, open_store
from warpstore.transform.affine import AffineTransform

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def describe(store: BlockStore, dataset: str) -> int:
    """Echo the layout and metadata of a stored field."""
    if not store.dataset_exists(dataset):
        log_and_echo(logger, f"Dataset '{dataset}' does not exist.", level="error")
        return 1

    info = store.get_dataset_info(dataset)
    log_and_echo(logger, f"Dataset:     {dataset}")
    log_and_echo(logger, f"Kind:        {info.kind.value}")
    log_and_echo(logger, f"Shape:       {info.shape}")
    log_and_echo(logger, f"Block shape: {info.block_shape}")

    multiplier = store.get_attribute(dataset, MULTIPLIER_ATTR)
    if info.kind.is_quantized:
        log_and_echo(logger, f"Multiplier:  {1.0 if multiplier is None else multiplier}")

    affine = open_affine(store, dataset)
    if affine is not None:
        log_and_echo(logger, f"Affine:      {affine.row_packed().tolist()}")

    if open_pixel_to_physical(store, dataset) is not None:
        log_and_echo(logger, f"Spacing:     {store.get_attribute(dataset, SPACING_ATTR)}")
    return 0


def convert(args) -> int:
    """Import a field file into a store."""
    field, field_info = FieldOpener().open(
        args.field, prefer_dask=args.dask, dataset=args.input_dataset
    )
    field = to_vector_first(field, args.vector_axis)
    nd = field.ndim - 1

    spacing = args.spacing
    if spacing is None and field_info.spacing is not None:
        if len(field_info.spacing) == nd:
            spacing = field_info.spacing
        else:
            logger.warning(
                f"Ignoring the {len(field_info.spacing)}D spacing of a {nd}D field."
            )
    if spacing is not None and len(spacing) != nd:
        log_and_echo(
            logger, f"--spacing needs {nd} values, got {len(spacing)}.", level="error"
        )
        return 1

    affine = None
    if args.affine is not None:
        affine = AffineTransform.from_row_packed(args.affine)
        if affine.num_source_dimensions != nd:
            log_and_echo(
                logger, f"A {affine.num_source_dimensions}D affine does not fit a {nd}D field.",
                level="error",
            )
            return 1

    if args.quantize is not None:
        lo, hi = get_min_max(field)
        log_and_echo(logger, f"Absolute displacements range from {lo} to {hi}.")

    store = open_store(args.store)
    try:
        summary = save_field(
            store,
            args.dataset,
            field,
            spatial_block_size=block_size_option(args.block_size),
            compression=args.compression,
            affine=affine,
            spacing=spacing,
            max_error=args.max_error,
            quantized_kind=args.quantize,
            overflow=args.overflow,
            vector_axis="first",
            num_workers=resolve_num_workers(args.num_workers),
        )
    finally:
        store.close()

    log_and_echo(
        logger,
        f"Wrote '{args.dataset}': {summary.written} blocks written, "
        f"{summary.skipped} empty, {len(summary.failures)} failed.",
        level="info" if summary.ok else "error",
    )
    return 0 if summary.ok else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the warpstore command line interface."""
    parser = create_parser()
    args = parser.parse_args(argv)
    if args.command == "convert":
        validate_convert_args(parser, args)

    display_logo()
    initialize_logging(args.log_directory, args.log)
    logger.info(f"Command line arguments: {args}")

    try:
        if args.command == "info":
            store = open_store(args.store, mode="r")
            try:
                return describe(store, args.dataset)
            finally:
                store.close()
        return convert(args)
    except (DisplacementFieldError, FileNotFoundError, ValueError) as e:
        log_and_echo(logger, str(e), level="error")
        return 1


if __name__ == "__main__":
    sys.exit(main())

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
import argparse
import os
from typing import List, Optional, Sequence

# Third Party Imports

# Local Imports
from warpstore.dfield.parameters import FORWARD_ATTR, save_defaults
from warpstore.io.store import COMPRESSIONS


def resolve_num_workers(cli_value: Optional[int]) -> int:
    """Resolve the number of block-writing workers from CLI or environment.

    The worker count is taken, in priority order, from:
    1. The explicitly provided ``cli_value`` (if not ``None``).
    2. The ``WARPSTORE_NUM_WORKERS`` environment variable.
    3. The ``SLURM_CPUS_PER_TASK`` environment variable.
    4. The number of CPUs of the machine.

    Parameters
    ----------
    cli_value : Optional[int]
        Value provided on the CLI; if not ``None`` this is returned directly.

    Returns
    -------
    int
        The resolved, positive worker count.

    Raises
    ------
    ValueError
        If a value is not a positive integer.
    """
    if cli_value is not None:
        if cli_value < 1:
            raise ValueError(f"--num-workers must be positive, got {cli_value}")
        return cli_value

    for key in ("WARPSTORE_NUM_WORKERS", "SLURM_CPUS_PER_TASK"):
        env_val: str | None = os.environ.get(key)
        if env_val is None:
            continue
        try:
            value = int(env_val)
        except ValueError:
            raise ValueError(f"{key} environment variable is not an integer")
        if value < 1:
            raise ValueError(f"{key} environment variable must be positive")
        return value

    return os.cpu_count() or 1


def parse_floats(value: str) -> List[float]:
    """Parse '1.0,2.0,3.0' (or a single number) into a list of floats."""
    try:
        return [float(v) for v in value.split(",") if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma separated numbers, got '{value}'")


def parse_ints(value: str) -> List[int]:
    """Parse '64,64,32' (or a single int) into a list of ints."""
    try:
        return [int(v) for v in value.split(",") if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma separated integers, got '{value}'")


def create_parser():
    # Parse command line arguments
    parser = argparse.ArgumentParser(
        prog="warpstore",
        description="Store displacement field transforms in chunked containers.",
    )
    parser.add_argument(
        "--log",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write a log file and log to stdout (use --no-log to disable)",
    )
    parser.add_argument(
        "--log-directory",
        type=str,
        default=os.getcwd(),
        help="Directory the log file is written to",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    info = commands.add_parser("info", help="Describe a stored displacement field")
    info.add_argument("store", type=str, help="Path to a zarr group or an HDF5 file")
    info.add_argument(
        "-d",
        "--dataset",
        type=str,
        default=FORWARD_ATTR,
        help="Dataset to describe",
    )

    convert = commands.add_parser(
        "convert", help="Import a displacement field file into a store"
    )
    convert.add_argument(
        "field",
        type=str,
        help="Path to the field (TIFF, .npy/.npz, HDF5, zarr or ANTs NIfTI warp)",
    )
    convert.add_argument("store", type=str, help="Destination zarr group or HDF5 file")

    dataset_args = convert.add_argument_group("Dataset Arguments")
    dataset_args.add_argument(
        "-d",
        "--dataset",
        type=str,
        default=FORWARD_ATTR,
        help="Destination dataset name, e.g. 'dfield' or '/0/dfield'",
    )
    dataset_args.add_argument(
        "--input-dataset",
        type=str,
        default=None,
        help="Dataset inside the input file (zarr, HDF5 or npz)",
    )
    dataset_args.add_argument(
        "--vector-axis",
        choices=("first", "last"),
        default=None,
        help="Axis of the input holding the vector. Required when both could",
    )
    dataset_args.add_argument(
        "--block-size",
        type=parse_ints,
        default=[save_defaults["spatial_block_size"]],
        help="Spatial block size, e.g. '64' or '64,64,32'",
    )
    dataset_args.add_argument(
        "--compression",
        choices=COMPRESSIONS,
        default=save_defaults["compression"],
        help="Block compression",
    )
    dataset_args.add_argument(
        "--spacing",
        type=parse_floats,
        default=None,
        help="Pixel spacing, e.g. '0.5,0.5,2.0'. Defaults to the file's own spacing",
    )
    dataset_args.add_argument(
        "--affine",
        type=parse_floats,
        default=None,
        help="Row-packed affine applied after the field (2, 6 or 12 values)",
    )

    quant_args = convert.add_argument_group("Quantization Arguments")
    quant_args.add_argument(
        "--quantize",
        type=str,
        default=save_defaults["quantized_kind"],
        help="Integer type to quantize to, e.g. 'int8' or 'int16'",
    )
    quant_args.add_argument(
        "--max-error",
        type=float,
        default=save_defaults["max_error"],
        help="Largest tolerated error of a quantized displacement vector",
    )
    quant_args.add_argument(
        "--overflow",
        choices=("saturate", "wrap", "raise"),
        default=save_defaults["overflow"],
        help="Handling of values beyond the integer range",
    )

    convert.add_argument(
        "--num-workers",
        type=int,
        default=save_defaults["num_workers"],
        help="Block-writing threads (overrides WARPSTORE_NUM_WORKERS / SLURM_CPUS_PER_TASK)",
    )
    convert.add_argument(
        "--dask",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Read the input lazily when possible (use --no-dask to load it in memory)",
    )
    return parser


def validate_convert_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Reject option combinations argparse cannot express."""
    if (args.quantize is None) != (args.max_error is None):
        parser.error("--quantize and --max-error must be given together")
    if args.affine is not None and len(args.affine) not in (2, 6, 12):
        parser.error("--affine needs 2, 6 or 12 values")


def block_size_option(values: Sequence[int]):
    """A single value means cubic blocks."""
    return values[0] if len(values) == 1 else tuple(values)


def display_logo():
    logo = r"""
                                 _
     __      ____ _ _ __ _ __  ___| |_ ___  _ __ ___
     \ \ /\ / / _` | '__| '_ \/ __| __/ _ \| '__/ _ \
      \ V  V / (_| | |  | |_) \__ \ || (_) | | |  __/
       \_/\_/ \__,_|_|  | .__/|___/\__\___/|_|  \___|
                        |_|
    """
    print(logo)

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
import os

# Third Party Imports
import numpy as np
import pytest

# Local Imports
from warpstore.dfield.kinds import ElementKind
from warpstore.dfield.parameters import MULTIPLIER_ATTR, SPACING_ATTR
from warpstore.io.cli import (
    block_size_option,
    create_parser,
    parse_floats,
    resolve_num_workers,
)
from warpstore.io.store import ZarrBlockStore
from warpstore.main import main


class TestResolveNumWorkers:
    """Test suite for resolve_num_workers."""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        monkeypatch.delenv("WARPSTORE_NUM_WORKERS", raising=False)
        monkeypatch.delenv("SLURM_CPUS_PER_TASK", raising=False)

    def test_cli_value_wins(self, monkeypatch):
        monkeypatch.setenv("WARPSTORE_NUM_WORKERS", "3")
        assert resolve_num_workers(5) == 5

    def test_environment_priority(self, monkeypatch):
        monkeypatch.setenv("SLURM_CPUS_PER_TASK", "8")
        assert resolve_num_workers(None) == 8
        monkeypatch.setenv("WARPSTORE_NUM_WORKERS", "3")
        assert resolve_num_workers(None) == 3

    def test_cpu_count_fallback(self):
        assert resolve_num_workers(None) == (os.cpu_count() or 1)

    @pytest.mark.parametrize("value", ["four", "0"])
    def test_invalid_environment(self, monkeypatch, value):
        monkeypatch.setenv("WARPSTORE_NUM_WORKERS", value)
        with pytest.raises(ValueError):
            resolve_num_workers(None)

    def test_invalid_cli_value(self):
        with pytest.raises(ValueError):
            resolve_num_workers(0)


class TestParser:
    """Test suite for the argument parser."""

    def test_convert_defaults(self):
        args = create_parser().parse_args(["convert", "in.npy", "out.zarr"])
        assert args.dataset == "dfield"
        assert args.compression == "gzip"
        assert block_size_option(args.block_size) == 64
        assert args.quantize is None
        assert args.overflow == "saturate"

    def test_lists(self):
        args = create_parser().parse_args(
            ["convert", "in.npy", "out.zarr", "--block-size", "32,32,16", "--spacing", "0.5,0.5,2"]
        )
        assert block_size_option(args.block_size) == (32, 32, 16)
        assert args.spacing == [0.5, 0.5, 2.0]

    def test_parse_floats(self):
        assert parse_floats("1, 2.5") == [1.0, 2.5]

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])


class TestMain:
    """End to end runs of the command line interface."""

    @pytest.fixture
    def field_file(self, tmp_path):
        field = np.zeros((8, 8, 2))
        field[..., 0] = 1.5
        field[..., 1] = -0.5
        path = tmp_path / "field.npy"
        np.save(path, field)
        return path

    def test_convert_then_info(self, tmp_path, field_file, capsys):
        store_path = tmp_path / "out.zarr"
        code = main(
            [
                "--no-log",
                "convert",
                str(field_file),
                str(store_path),
                "--block-size",
                "4",
                "--spacing",
                "1,2",
                "--quantize",
                "int16",
                "--max-error",
                "0.01",
                "--num-workers",
                "2",
            ]
        )
        assert code == 0

        store = ZarrBlockStore(store_path, mode="r")
        info = store.get_dataset_info("dfield")
        assert info.kind is ElementKind.INT16
        assert info.shape == (2, 8, 8)
        assert store.get_attribute("dfield", SPACING_ATTR) == [1.0, 2.0]
        assert store.get_attribute("dfield", MULTIPLIER_ATTR) > 0

        capsys.readouterr()
        assert main(["--no-log", "info", str(store_path)]) == 0
        out = capsys.readouterr().out
        assert "int16" in out
        assert "(2, 8, 8)" in out

    def test_info_missing_dataset(self, tmp_path, field_file):
        store_path = tmp_path / "out.zarr"
        assert main(["--no-log", "convert", str(field_file), str(store_path)]) == 0
        assert main(["--no-log", "info", str(store_path), "-d", "invdfield"]) == 1

    def test_spacing_length_mismatch(self, tmp_path, field_file):
        code = main(
            ["--no-log", "convert", str(field_file), str(tmp_path / "o.zarr"), "--spacing", "1,1,1"]
        )
        assert code == 1

    def test_quantize_needs_max_error(self, tmp_path, field_file):
        with pytest.raises(SystemExit):
            main(["--no-log", "convert", str(field_file), str(tmp_path / "o.zarr"), "--quantize", "int8"])

    def test_missing_input(self, tmp_path):
        assert main(["--no-log", "convert", str(tmp_path / "nope.npy"), str(tmp_path / "o.zarr")]) == 1

    def test_ambiguous_field_needs_vector_axis(self, tmp_path):
        path = tmp_path / "field.npy"
        np.save(path, np.ones((2, 5, 2)))
        store_path = tmp_path / "o.zarr"
        assert main(["--no-log", "convert", str(path), str(store_path)]) == 1

        code = main(
            ["--no-log", "convert", str(path), str(store_path), "--vector-axis", "last"]
        )
        assert code == 0
        assert ZarrBlockStore(store_path, mode="r").get_dataset_info("dfield").shape == (2, 2, 5)

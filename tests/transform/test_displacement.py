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
import numpy as np
import pytest
from scipy import ndimage

# Local Imports
from warpstore.transform.affine import scale
from warpstore.transform.displacement import CalibratedField, DisplacementFieldTransform
from warpstore.transform.interpolate import (
    EXTEND_MIRROR,
    resolve_extension,
    resolve_interpolation,
)


class TestResolve:
    """Test suite for interpolation and extension names."""

    def test_interpolation_orders(self):
        assert resolve_interpolation("nearest") == 0
        assert resolve_interpolation("linear") == 1
        assert resolve_interpolation("cubic") == 3
        assert resolve_interpolation(2) == 2

    @pytest.mark.parametrize("name", ["sinc", 7, -1])
    def test_bad_interpolation(self, name):
        with pytest.raises(ValueError):
            resolve_interpolation(name)

    def test_persisted_extension_aliases(self):
        assert resolve_extension(EXTEND_MIRROR) == resolve_extension("mirror")
        with pytest.raises(ValueError):
            resolve_extension("wrap")


class TestCalibratedField:
    """Test suite for CalibratedField."""

    def test_linear_between_samples(self):
        f = CalibratedField(np.array([0.0, 10.0, 20.0]))
        np.testing.assert_allclose(f.sample([[0.25], [1.5]]), [2.5, 15.0])

    def test_nearest(self):
        f = CalibratedField(np.array([0.0, 10.0, 20.0]), interpolation="nearest")
        np.testing.assert_allclose(f.sample([[0.4], [1.6]]), [0.0, 20.0])

    def test_cubic_reproduces_samples(self):
        samples = np.sin(np.linspace(0, 3, 12)).reshape(3, 4)
        f = CalibratedField(samples, interpolation="cubic")
        pixels = np.moveaxis(np.indices((3, 4), dtype=float), 0, -1)
        np.testing.assert_allclose(f.sample(pixels), samples, atol=1e-9)

    @pytest.mark.parametrize("extension", ["border", "zero", "mirror"])
    def test_cubic_edges_reproduce_samples(self, extension):
        samples = np.random.default_rng(4).normal(size=(5, 6))
        f = CalibratedField(samples, interpolation="cubic", extension=extension)
        pixels = np.moveaxis(np.indices((5, 6), dtype=float), 0, -1)
        np.testing.assert_allclose(f.sample(pixels), samples, atol=1e-9)

    @pytest.mark.parametrize(
        "extension, mode", [("border", "nearest"), ("zero", "grid-constant")]
    )
    def test_cubic_matches_scipy_between_samples(self, extension, mode):
        samples = np.sin(np.linspace(0, 3, 12)).reshape(3, 4)
        f = CalibratedField(samples, interpolation="cubic", extension=extension)
        points = np.array([[0.3, 0.1], [1.5, 2.75], [2.0, 3.4], [-0.6, 1.0]])
        expected = ndimage.map_coordinates(samples, points.T, order=3, mode=mode)
        np.testing.assert_allclose(f.sample(points), expected, atol=1e-6)

    def test_linear_samples_are_not_copied(self):
        samples = np.arange(12.0).reshape(3, 4)
        f = CalibratedField(samples)
        assert np.shares_memory(f._coefficients, samples)
        assert not f._coefficients.flags.writeable

    def test_extensions(self):
        samples = np.array([1.0, 2.0, 3.0, 4.0])
        points = np.array([[-1.0], [5.0]])
        border = CalibratedField(samples, extension="border")
        zero = CalibratedField(samples, extension="zero")
        mirror = CalibratedField(samples, extension="mirror")
        np.testing.assert_allclose(border.sample(points), [1.0, 4.0])
        np.testing.assert_allclose(zero.sample(points), [0.0, 0.0])
        # (d c b a | a b c d): pixel -1 is a, pixel 5 is c
        np.testing.assert_allclose(mirror.sample(points), [1.0, 3.0])

    def test_physical_calibration(self):
        f = CalibratedField(np.array([0.0, 1.0, 2.0]), pixel_to_physical=scale([4.0]))
        np.testing.assert_allclose(f.sample([[6.0]]), [1.5])

    def test_calibration_dimensions_must_match(self):
        with pytest.raises(ValueError):
            CalibratedField(np.zeros((3, 3)), pixel_to_physical=scale([1.0]))

    def test_caller_array_is_not_frozen(self):
        samples = np.zeros((2, 2))
        CalibratedField(samples)
        samples[0, 0] = 1.0
        assert samples.flags.writeable


class TestDisplacementFieldTransform:
    """Test suite for DisplacementFieldTransform."""

    def test_apply_adds_displacement(self):
        fields = [
            CalibratedField(np.full((3, 3), 1.0)),
            CalibratedField(np.full((3, 3), -2.0)),
        ]
        t = DisplacementFieldTransform(fields)
        np.testing.assert_allclose(t.apply([[1.0, 1.0], [0.5, 2.0]]), [[2.0, -1.0], [1.5, 0.0]])
        np.testing.assert_allclose(t.displacement([[1.0, 1.0]]), [[1.0, -2.0]])

    def test_copy_shares_read_only_fields(self):
        t = DisplacementFieldTransform([CalibratedField(np.zeros(4))])
        assert t.copy().fields == t.fields

    def test_component_count_must_match(self):
        with pytest.raises(ValueError):
            DisplacementFieldTransform([CalibratedField(np.zeros((3, 3)))])
        with pytest.raises(ValueError):
            DisplacementFieldTransform([])

    def test_wrong_point_dimensions(self):
        t = DisplacementFieldTransform([CalibratedField(np.zeros(4))])
        with pytest.raises(ValueError):
            t.apply([[1.0, 2.0]])

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
import ants
import numpy as np

# Local Imports
from warpstore.dfield.codec import open_invertible, save_forward_and_inverse
from warpstore.io.read import FieldOpener
from warpstore.io.store import open_store
from warpstore.transform.affine import AffineTransform


def import_ants_affine(transform_path: str) -> AffineTransform:
    """Convert an ANTs/ITK ``.mat`` affine into an ``[A | t]`` affine.

    ITK stores the matrix, a translation and a center of rotation; the
    offset of the equivalent affine is ``t + c - A @ c``.
    """
    transform = ants.read_transform(transform_path)
    n = transform.dimension
    params = np.asarray(transform.parameters, dtype=np.float64)
    center = np.asarray(transform.fixed_parameters, dtype=np.float64)

    linear = params[: n * n].reshape(n, n)
    offset = params[n * n :] + center - linear @ center
    return AffineTransform(np.hstack([linear, offset[:, None]]))


def main(
    warp_path: str,
    inverse_warp_path: str,
    affine_path: str,
    store_path: str,
):
    opener = FieldOpener()

    print(f"Loading forward warp: {warp_path}")
    forward, forward_info = opener.open(warp_path)

    print(f"Loading inverse warp: {inverse_warp_path}")
    inverse, inverse_info = opener.open(inverse_warp_path)

    print(f"Importing affine transform from: {affine_path}")
    affine = import_ants_affine(affine_path)

    print(f"Saving quantized fields to: {store_path}")
    store = open_store(store_path)
    forward_summary, inverse_summary = save_forward_and_inverse(
        store,
        affine,
        forward,
        forward_info.spacing,
        inverse,
        inverse_info.spacing,
        spatial_block_size=64,
        compression="blosc",
        max_error=0.05,
        quantized_kind="int16",
        vector_axis="last",
    )
    print(f"Forward: {forward_summary.written} blocks, inverse: {inverse_summary.written} blocks")

    origin = np.asarray(forward_info.metadata["origin"])
    if np.any(origin != 0.0):
        print(f"The warp origin {origin.tolist()} is not stored, subtract it from points first")

    print("Checking the stored pair...")
    transform = open_invertible(store)
    points = np.random.default_rng(0).uniform(0, 10, size=(5, affine.num_source_dimensions))
    error = np.linalg.norm(transform.apply_inverse(transform.apply(points)) - points, axis=-1)
    print(f"Largest forward/inverse round trip error: {error.max():.4f}")

    store.close()
    print("Done.")


if __name__ == "__main__":
    # Example file paths, replace with the outputs of an ANTs registration
    base_path = os.path.expanduser("~/registration")
    main(
        warp_path=os.path.join(base_path, "1Warp.nii.gz"),
        inverse_warp_path=os.path.join(base_path, "1InverseWarp.nii.gz"),
        affine_path=os.path.join(base_path, "0GenericAffine.mat"),
        store_path=os.path.join(base_path, "transform.zarr"),
    )

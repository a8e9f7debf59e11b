"""
Tests for embedding helpers and still-frame encoding.

Run with: pytest tests/test_embedding.py -v
"""

import numpy as np
import pytest

from conftest import gradient_frame
from facelogin.embedding import (
    as_embedding,
    embedding_from_bytes,
    embedding_to_bytes,
)
from facelogin.embedding_model import BoundingBox
from facelogin.frames import StillFrame, data_uri_to_frame, frame_to_data_uri


class TestAsEmbedding:
    """Tests for as_embedding()."""

    def test_copies_and_freezes(self):
        source = np.array([0.1, 0.2, 0.3], dtype=np.float32)

        embedding = as_embedding(source)
        source[0] = 5.0

        assert embedding[0] == np.float32(0.1)
        assert embedding.dtype == np.float32
        assert not embedding.flags.writeable

    def test_list_becomes_float64(self):
        assert as_embedding([1, 2, 3]).dtype == np.float64

    def test_row_vector_is_flattened(self):
        assert as_embedding(np.ones((1, 4))).shape == (4,)

    @pytest.mark.parametrize("values", [
        [],
        np.ones((2, 3)),
        [0.1, float("nan")],
        [0.1, float("inf")],
        ["a", "b"],
    ])
    def test_invalid(self, values):
        with pytest.raises(ValueError):
            as_embedding(values)

    def test_expected_dim(self):
        assert as_embedding(np.ones(512), expected_dim=512).shape == (512,)
        with pytest.raises(ValueError):
            as_embedding(np.ones(128), expected_dim=512)


class TestEmbeddingHelpers:
    """Tests for serialization helpers."""

    @pytest.mark.parametrize("dtype, tag", [(np.float32, "<f4"), (np.float64, "<f8")])
    def test_bytes_keep_precision(self, dtype, tag):
        embedding = as_embedding(np.linspace(-1, 1, 7, dtype=dtype))

        restored = embedding_from_bytes(embedding_to_bytes(embedding), tag)

        assert restored.dtype == dtype
        np.testing.assert_array_equal(restored, embedding)


class TestFrames:
    """Tests for StillFrame and data URIs."""

    def test_png_data_uri_is_lossless(self):
        frame = gradient_frame(40, 30)

        uri = frame_to_data_uri(frame)

        assert uri.startswith("data:image/png;base64,")
        np.testing.assert_array_equal(data_uri_to_frame(uri), frame)

    def test_jpeg_data_uri(self):
        uri = frame_to_data_uri(gradient_frame(40, 30), format="jpeg")

        assert uri.startswith("data:image/jpeg;base64,")
        assert data_uri_to_frame(uri).shape == (30, 40, 3)

    def test_invalid_payload(self):
        with pytest.raises(ValueError):
            data_uri_to_frame("data:image/png;base64,bm90IGFuIGltYWdl")
        with pytest.raises(ValueError):
            data_uri_to_frame("data:image/png;base64,")
        with pytest.raises(ValueError):
            data_uri_to_frame("data:image/png,rawbytes")

    def test_still_frame_dimensions(self):
        still = StillFrame(image=gradient_frame(40, 30), generation=1)

        assert (still.width, still.height) == (40, 30)
        assert still.to_data_uri().startswith("data:image/png;base64,")


class TestBoundingBox:
    """Tests for BoundingBox."""

    def test_size(self):
        box = BoundingBox(10, 20, 50, 80, 0.9)
        assert (box.width, box.height) == (40, 60)

    def test_mirrored(self):
        box = BoundingBox(10, 20, 50, 80, 0.9)

        mirrored = box.mirrored(300)

        assert mirrored == BoundingBox(250, 20, 290, 80, 0.9)
        assert mirrored.mirrored(300) == box

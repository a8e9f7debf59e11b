"""
Tests for DescriptorExtractor.

Run with: pytest tests/test_extractor.py -v
"""

import numpy as np
import pytest

from conftest import gradient_frame
from facelogin.errors import ErrorKind, ModelLoadError
from facelogin.extractor import DescriptorExtractor
from facelogin.frames import StillFrame


@pytest.fixture
def frame():
    return StillFrame(image=gradient_frame(), generation=3, mirrored=True)


class TestDescriptorExtractor:
    """Tests for extract()."""

    @pytest.mark.asyncio
    async def test_success(self, loader, model, frame):
        result = await DescriptorExtractor(loader).extract(frame, expected_generation=3)

        assert result.ok
        assert result.error is None
        assert result.frame is frame
        np.testing.assert_array_equal(result.embedding, model.embedding)
        assert not result.embedding.flags.writeable
        assert result.elapsed_ms >= 0.0
        assert model.extract_calls == 1

    @pytest.mark.asyncio
    async def test_stale_frame_rejected_without_inference(self, loader, model, frame):
        result = await DescriptorExtractor(loader).extract(frame, expected_generation=4)

        assert result.error is ErrorKind.STALE_FRAME
        assert result.embedding is None
        assert model.extract_calls == 0

    @pytest.mark.asyncio
    async def test_model_unavailable(self, loader, model, frame):
        model.ready_error = ModelLoadError("weights missing")

        result = await DescriptorExtractor(loader).extract(frame)

        assert result.error is ErrorKind.MODEL_UNAVAILABLE
        assert model.extract_calls == 0

    @pytest.mark.asyncio
    async def test_no_face(self, loader, model, frame):
        model.embedding = None

        result = await DescriptorExtractor(loader).extract(frame)

        assert result.error is ErrorKind.NO_FACE_DETECTED

    @pytest.mark.asyncio
    async def test_model_exception(self, loader, model, frame):
        model.extract_error = RuntimeError("CUDA out of memory")

        result = await DescriptorExtractor(loader).extract(frame)

        assert result.error is ErrorKind.DESCRIPTOR_COMPUTE_FAILURE
        assert not result.ok

    @pytest.mark.asyncio
    async def test_timeout(self, loader, model, frame):
        model.extract_delay = 0.3
        extractor = DescriptorExtractor(loader, {"extract_timeout_sec": 0.05})

        result = await extractor.extract(frame)

        assert result.error is ErrorKind.DESCRIPTOR_COMPUTE_FAILURE

    @pytest.mark.asyncio
    async def test_wrong_dimension(self, loader, frame):
        extractor = DescriptorExtractor(loader, {"embedding_dim": 512})

        result = await extractor.extract(frame)

        assert result.error is ErrorKind.DESCRIPTOR_COMPUTE_FAILURE

    @pytest.mark.asyncio
    async def test_non_finite_vector(self, loader, model, frame):
        model.embedding = np.array([0.1, np.nan, 0.3])

        result = await DescriptorExtractor(loader).extract(frame)

        assert result.error is ErrorKind.DESCRIPTOR_COMPUTE_FAILURE

    @pytest.mark.asyncio
    async def test_float32_precision_preserved(self, loader, model, frame):
        model.embedding = np.linspace(0.0, 1.0, 8, dtype=np.float32)

        result = await DescriptorExtractor(loader).extract(frame)

        assert result.embedding.dtype == np.float32

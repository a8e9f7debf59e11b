"""
Face Image Enhancement

Optional step of enrollment: the captured still is sent to an enhancement
service that returns a cleaner, frontal, well-lit version. The enhanced image
is stored alongside the raw one; it never affects the embedding, which is
always computed from the raw still.

Wire format (JSON over HTTP POST):
    request:  {"photoDataUri": "data:image/png;base64,..."}
    response: {"enhancedPhotoDataUri": "data:image/png;base64,..."}

A response whose image does not decode is treated as a failed enhancement.

Usage:
    enhancer = create_enhancer(get_enhancement_config())
    try:
        enhanced = await enhancer.enhance(raw_uri)
    except EnhanceError:
        ...
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from facelogin.errors import EnhanceError
from facelogin.frames import data_uri_to_frame

logger = logging.getLogger(__name__)


# ============================================================
# Wire Schemas
# ============================================================

class EnhanceRequest(BaseModel):
    """Request body for the enhancement service."""
    model_config = ConfigDict(populate_by_name=True)

    photo_data_uri: str = Field(
        ...,
        alias="photoDataUri",
        description="Face photo as a base64 data URI ('data:<mimetype>;base64,<data>')",
    )


class EnhanceResponse(BaseModel):
    """Response body from the enhancement service."""
    model_config = ConfigDict(populate_by_name=True)

    enhanced_photo_data_uri: str = Field(
        ...,
        alias="enhancedPhotoDataUri",
        pattern=r"^data:image/[\w.+-]+;base64,",
        description="Enhanced face photo as a base64 data URI",
    )


# ============================================================
# Enhancers
# ============================================================

class ImageEnhancer(ABC):
    """Abstract face image enhancer."""

    @abstractmethod
    async def enhance(self, image: str) -> str:
        """
        Enhance a face photo.

        Args:
            image: Data URI of the captured still.

        Returns:
            Data URI of the enhanced image.

        Raises:
            EnhanceError: If enhancement fails for any reason.
        """
        pass


class PassthroughEnhancer(ImageEnhancer):
    """Returns the image unchanged. Used when enhancement is disabled."""

    async def enhance(self, image: str) -> str:
        return image


class HttpImageEnhancer(ImageEnhancer):
    """
    Calls a remote enhancement service.

    Args:
        config: Dictionary with optional keys:
            - endpoint: Service URL (default http://localhost:8100/enhance)
            - timeout_sec: Request timeout (default 30)
        client: Optional httpx.AsyncClient to reuse (not closed by close()).
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if config is None:
            config = {}
        self.endpoint = config.get("endpoint", "http://localhost:8100/enhance")
        self.timeout = float(config.get("timeout_sec", 30.0))
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def enhance(self, image: str) -> str:
        payload = EnhanceRequest(photo_data_uri=image).model_dump(by_alias=True)

        try:
            response = await self._get_client().post(self.endpoint, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = EnhanceResponse.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            logger.error(f"Enhancement service returned {e.response.status_code}")
            raise EnhanceError(f"Enhancement service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Enhancement request failed: {type(e).__name__}: {e}")
            raise EnhanceError(f"Enhancement request failed: {e}") from e
        except (ValueError, ValidationError) as e:
            logger.error(f"Enhancement service sent an invalid response: {e}")
            raise EnhanceError("Enhancement service sent an invalid response") from e

        enhanced = result.enhanced_photo_data_uri
        try:
            data_uri_to_frame(enhanced)
        except ValueError as e:
            logger.error(f"Enhanced image cannot be decoded: {e}")
            raise EnhanceError("Enhancement service returned an unusable image") from e

        return enhanced

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def create_enhancer(config: Optional[Dict[str, Any]] = None) -> ImageEnhancer:
    """
    Build the enhancer described by the `enhancement` config section.

    Returns:
        HttpImageEnhancer when `enabled` is true, PassthroughEnhancer otherwise.
    """
    if config is None:
        config = {}
    if config.get("enabled", False):
        logger.info(f"Image enhancement enabled: {config.get('endpoint')}")
        return HttpImageEnhancer(config)
    return PassthroughEnhancer()

import asyncio
import base64
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
import structlog
from pydantic import BaseModel, Field

from teto_agent.domain.models.conversation_state import Degraded, Ok

logger = structlog.get_logger(__name__)

# Image formats supported by most vision models
SUPPORTED_IMAGE_FORMATS = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
})


class RawAttachment(BaseModel):
    """An attachment as it arrives from the chat platform"""
    url: str
    content_type: Optional[str] = None
    filename: Optional[str] = Field(None, description="Original file name, informational only")


AttachmentOutcome = Union[Ok, Degraded]


def is_image_attachment(attachment: RawAttachment) -> bool:
    return (attachment.content_type or "").lower() in SUPPORTED_IMAGE_FORMATS


class AttachmentPreprocessor:
    """Turns image attachments into inline data-URL content parts"""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def process_images(self, attachments: Sequence[RawAttachment]) -> AttachmentOutcome:
        """
        Download every supported image and encode it for the vision model.

        A single failed download degrades the whole batch to "no images",
        so the turn falls back to the text path instead of failing.
        """
        images = [a for a in attachments if is_image_attachment(a)]
        if not images:
            return Ok(value=[])

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, follow_redirects=True
        ) as client:
            results = await asyncio.gather(
                *(self._to_image_part(client, image) for image in images),
                return_exceptions=True,
            )

        failures = [r for r in results if isinstance(r, Exception)]
        if failures:
            logger.warning(
                "Image attachments dropped",
                attachments=len(images),
                failures=len(failures),
                error=str(failures[0]),
            )
            return Degraded(value=[], reason=f"Failed to process image attachments: {failures[0]}")

        logger.debug("Image attachments processed", attachments=len(images))
        return Ok(value=list(results))

    async def _to_image_part(self, client: httpx.AsyncClient, attachment: RawAttachment) -> Dict[str, Any]:
        response = await client.get(attachment.url)
        if response.is_error:
            raise httpx.HTTPStatusError(
                f"Failed to fetch image: {response.status_code} {response.reason_phrase}",
                request=response.request,
                response=response,
            )

        encoded = base64.b64encode(response.content).decode("ascii")
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{attachment.content_type};base64,{encoded}"},
        }


def image_parts(outcome: AttachmentOutcome) -> List[Dict[str, Any]]:
    return list(outcome.value or [])

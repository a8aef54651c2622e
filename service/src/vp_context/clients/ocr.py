"""Image to text."""

import logging

from .base import ServiceClient, ServiceResult

logger = logging.getLogger(__name__)

REGION_PROMPT = "OCR this region exactly. Return clear text in reading order."
IMAGE_PROMPT = "OCR this image exactly. Return clean text."
FRAME_PROMPT = "OCR this image exactly. Return clear text. Ignore UI chrome."


class OCRClient(ServiceClient):
    """Sends an image plus an instruction to the OCR endpoint."""

    path = "/api/vinay/ocr"
    name = "OCR"

    async def recognize(
        self,
        image: bytes,
        prompt: str = IMAGE_PROMPT,
        filename: str = "capture.png",
        content_type: str = "image/png",
    ) -> ServiceResult:
        logger.debug(f"OCR request: {filename} ({len(image)} bytes)")
        return await self._post(
            files={"file": (filename, image, content_type)},
            data={"prompt": prompt},
        )

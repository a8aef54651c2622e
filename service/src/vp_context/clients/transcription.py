"""Media to text."""

from .base import ServiceClient, ServiceResult


class TranscriptionClient(ServiceClient):
    path = "/api/vinay/transcribe"
    name = "Transcription"

    async def transcribe(
        self, media: bytes, filename: str, content_type: str
    ) -> ServiceResult:
        return await self._post(files={"file": (filename, media, content_type)})

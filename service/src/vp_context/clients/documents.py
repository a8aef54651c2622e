"""PDF to text."""

from .base import ServiceClient, ServiceResult


class DocumentClient(ServiceClient):
    path = "/api/vinay/pdf"
    name = "PDF"

    async def extract(self, document: bytes, filename: str) -> ServiceResult:
        return await self._post(
            files={"file": (filename, document, "application/pdf")}
        )

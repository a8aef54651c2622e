"""Clients for the tutoring app's OCR, transcription and answer endpoints."""

from .answer import AnswerClient
from .base import ServiceClient, ServiceResult
from .discovery import BaseUrlResolver
from .documents import DocumentClient
from .ocr import OCRClient
from .transcription import TranscriptionClient

__all__ = [
    "AnswerClient",
    "BaseUrlResolver",
    "DocumentClient",
    "OCRClient",
    "ServiceClient",
    "ServiceResult",
    "TranscriptionClient",
]

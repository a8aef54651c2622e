"""Question plus context to assistant answer."""

import logging

from .base import ServiceClient, ServiceResult

logger = logging.getLogger(__name__)


def build_prompt(question: str, context: str) -> str:
    """Inline the context ahead of the question when there is any."""
    context = context.strip()
    if not context:
        return question
    return (
        "Use the following context to answer the question.\n\n"
        f"Context:\n{context}\n\nQuestion:\n{question}"
    )


class AnswerClient(ServiceClient):
    path = "/api/vinay/ask"
    name = "Answer"

    async def ask(self, question: str, context: str = "") -> ServiceResult:
        logger.debug(
            f"Asking ({len(question)} chars question, {len(context)} chars context)"
        )
        return await self._post(
            json={"prompt": build_prompt(question, context), "context": context}
        )

"""
Async Completion Client for DataWell
Wraps the Groq chat-completion API (via LlamaIndex) behind one call:
role-tagged messages in, a single free-text completion out.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from llama_index.core.llms import ChatMessage, MessageRole
from llama_index.llms.groq import Groq

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.1-8b-instant"

_ROLES = {
    "system": MessageRole.SYSTEM,
    "user": MessageRole.USER,
    "assistant": MessageRole.ASSISTANT,
}


class CompletionError(RuntimeError):
    """Raised when the completion service fails or returns unusable content."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyCompletionError(CompletionError):
    """The service answered but produced no text."""


def _status_code_of(error: Exception) -> Optional[int]:
    """Best-effort HTTP status extraction from SDK exceptions."""
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def to_chat_messages(messages: Sequence[Dict[str, str]]) -> List[ChatMessage]:
    """Convert {role, content} dicts to LlamaIndex chat messages (unknown roles -> user)."""
    return [
        ChatMessage(
            role=_ROLES.get(str(msg.get("role", "user")).lower(), MessageRole.USER),
            content=msg.get("content", ""),
        )
        for msg in messages
    ]


def format_history(history: Sequence[Dict[str, str]], empty: str = "No previous context") -> str:
    """Render conversation turns as `role: content` lines for prompt embedding."""
    if not history:
        return empty
    return "\n".join(f"{msg.get('role', 'user')}: {msg.get('content', '')}" for msg in history)


class CompletionClient:
    """Async chat completions against Groq"""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, llm: Any = None):
        self.model = model
        self.llm = llm or Groq(model=model, api_key=api_key, temperature=0.1)

    async def complete(
        self,
        messages: Sequence[Dict[str, str]],
        max_tokens: int = 200,
        temperature: float = 0.1,
    ) -> str:
        """
        Run one chat completion and return the trimmed text.

        Args:
            messages: Ordered {role, content} dicts
            max_tokens: Completion token cap
            temperature: Sampling temperature

        Returns:
            Generated text

        Raises:
            CompletionError: On API failure or empty output
        """
        start_time = datetime.now()
        try:
            response = await self.llm.achat(
                to_chat_messages(messages),
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            status = _status_code_of(e)
            logger.error(f"Groq completion failed (status={status}): {str(e)}")
            raise CompletionError(f"Completion failed: {str(e)}", status_code=status) from e

        content = (response.message.content or "").strip() if response and response.message else ""
        if not content:
            raise EmptyCompletionError(f"Empty response from model {self.model}")

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(f"Completion from {self.model} in {elapsed:.2f}s")
        return content

    async def complete_prompt(self, prompt: str, max_tokens: int = 200, temperature: float = 0.1) -> str:
        """Single user-message convenience wrapper"""
        return await self.complete(
            [{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
        )

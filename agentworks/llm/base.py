"""LLM client boundary.

The router only talks to providers through ``LLMClient``. Implementations get a
``CancellationToken`` they may propagate to the provider SDK; the router itself
enforces the deadline and cancellation around the call (see
``call_with_deadline``), so an implementation that ignores the token is still
aborted.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from pydantic import Field

from ..core.concurrency import CancellationToken
from ..schemas.base import BaseSchema


class CompletionRequest(BaseSchema):
    provider: str
    model: str
    prompt: str
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, description="None or 0 means the model default")


class CompletionResponse(BaseSchema):
    """Completion text plus provider-reported token counts when the SDK exposes them."""

    content: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


@runtime_checkable
class LLMClient(Protocol):
    async def complete(
        self, request: CompletionRequest, *, cancel_token: Optional[CancellationToken] = None
    ) -> CompletionResponse: ...

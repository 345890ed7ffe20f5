from .base import CompletionRequest, CompletionResponse, LLMClient
from .cancellation import call_with_deadline

__all__ = ["CompletionRequest", "CompletionResponse", "LLMClient", "call_with_deadline"]

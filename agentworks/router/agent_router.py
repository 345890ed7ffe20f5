from __future__ import annotations

"""Agent router.

``AgentRouter.route_request`` turns ``(agent, prompt, project, card)`` into one
LLM call and exactly one usage event:

1. Load the agent's ``AgentConfig`` from the project store and check it is
   active and allowed in the requested lane.
2. Resolve provider and model in the provider catalog; disabled providers are
   refused.
3. Call the ``LLMClient`` under the provider's timeout and the caller's
   cancellation token.
4. Compute usage, provider cost and customer price.
5. Record the ``UsageEvent`` (success or failure) through the usage meter.

Failures in steps 1-3 are returned as a failed ``RouterResult`` after a
zero-cost failure event is recorded. Failures of the recording itself raise
``PersistenceError``. The router never retries.
"""

import time
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import Field

from ..catalog.providers import ProviderCatalog
from ..core.concurrency import CancellationToken
from ..core.errors import AgentInactiveError, AgentWorksError, LaneNotAllowedError, ProviderDisabledError
from ..core.logging_config import get_logger
from ..llm.base import CompletionRequest, CompletionResponse, LLMClient
from ..llm.cancellation import call_with_deadline
from ..metering.meter import UsageMeter
from ..metering.pricing import compute_cost, compute_usage
from ..repos.interfaces import ProjectStore
from ..schemas.base import BaseSchema, utc_now
from ..schemas.usage import CostBreakdown, TokenUsage, UsageEvent

logger = get_logger(__name__)

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


class RouterResult(BaseSchema):
    success: bool
    request_id: str
    content: Optional[str] = None
    usage: Optional[TokenUsage] = None
    cost: Optional[CostBreakdown] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AgentRouter:
    """
    Routes agent requests to LLM providers and meters every attempt.

    Args:
        projects: Source of agent configs.
        catalog: Provider catalog used to resolve provider/model.
        llm_client: Provider boundary.
        meter: Usage meter events are recorded through; its pricing policy prices calls.
        default_timeout_seconds: Used when a provider record carries no timeout.
        prefer_provider_usage: Bill provider-reported token counts when available
            instead of the 4 chars/token estimate.
        prompt_preview_chars: Prompt characters kept on each usage event.
    """

    def __init__(
        self,
        *,
        projects: ProjectStore,
        catalog: ProviderCatalog,
        llm_client: LLMClient,
        meter: UsageMeter,
        default_timeout_seconds: float = 60.0,
        prefer_provider_usage: bool = False,
        prompt_preview_chars: int = 100,
    ) -> None:
        self._projects = projects
        self._catalog = catalog
        self._llm = llm_client
        self._meter = meter
        self._default_timeout = default_timeout_seconds
        self._prefer_provider_usage = prefer_provider_usage
        self._preview_chars = prompt_preview_chars

    def _usage_for(self, prompt: str, response: CompletionResponse) -> tuple[TokenUsage, str]:
        if self._prefer_provider_usage and response.input_tokens is not None and response.output_tokens is not None:
            return TokenUsage.of(response.input_tokens, response.output_tokens), "provider"
        return compute_usage(prompt, response.content), "estimate"

    async def route_request(
        self,
        agent_name: str,
        prompt: str,
        project_id: str,
        card_id: Optional[str] = None,
        *,
        lane: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RouterResult:
        """
        Route one request and record its usage event.

        Args:
            agent_name: Agent whose config selects provider and model.
            prompt: Full prompt text; only a preview is stored on the event.
            project_id: Owning project.
            card_id: Card the request works on, if any.
            lane: Lane the request runs in; checked against the agent's allowed lanes.
            cancel_token: Aborts the provider call when cancelled.

        Returns:
            ``RouterResult`` whose ``request_id`` is also the usage event id.

        Raises:
            PersistenceError: If the usage event could not be recorded.
        """
        request_id = str(uuid4())
        started = time.monotonic()
        provider_id: Optional[str] = None
        model: Optional[str] = None
        preview = prompt[: self._preview_chars]

        def _elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            config = await self._projects.get_agent_config(project_id, agent_name)
            provider_id, model = config.provider, config.model
            if not config.active:
                raise AgentInactiveError(f"Agent {agent_name} is not active in project {project_id}")
            if lane is not None and not config.allows_lane(lane):
                raise LaneNotAllowedError(
                    f"Agent {agent_name} is not allowed to run in lane {lane}",
                    details={"allowed_lanes": config.lanes, "lane": lane},
                )

            provider = self._catalog.validate_model(provider_id, model)
            if not provider.enabled:
                raise ProviderDisabledError(f"Provider {provider_id} is disabled")

            request = CompletionRequest(
                provider=provider_id,
                model=model,
                prompt=prompt,
                system_prompt=config.system_prompt,
                temperature=config.temperature,
                max_tokens=config.max_tokens or None,
            )
            logger.info(f"Agent Router: routing {agent_name} -> {provider_id}:{model}")
            response = await call_with_deadline(
                lambda: self._llm.complete(request, cancel_token=cancel_token),
                timeout=provider.timeout_seconds or self._default_timeout,
                cancel_token=cancel_token,
                label=f"{provider_id}:{model}",
            )
        except Exception as exc:
            if isinstance(exc, AgentWorksError):
                code, message = exc.code, exc.message
                logger.warning(f"Agent Router: {agent_name} failed [{code}]: {message}")
            else:
                code, message = INTERNAL_ERROR_CODE, f"{type(exc).__name__}: {exc}"
                logger.error(f"Agent Router: unexpected error routing {agent_name}", exc_info=True)
            duration_ms = _elapsed_ms()
            await self._meter.record_event(
                UsageEvent(
                    id=request_id,
                    timestamp=utc_now(),
                    project_id=project_id,
                    card_id=card_id,
                    agent_name=agent_name,
                    provider=provider_id,
                    model=model,
                    prompt_preview=preview,
                    duration_ms=duration_ms,
                    success=False,
                    error=message,
                    error_code=code,
                )
            )
            return RouterResult(
                success=False,
                request_id=request_id,
                error=message,
                error_code=code,
                metadata={"provider": provider_id, "model": model, "duration_ms": duration_ms},
            )

        usage, usage_source = self._usage_for(prompt, response)
        cost = compute_cost(usage, provider, self._meter.pricing)
        duration_ms = _elapsed_ms()
        await self._meter.record_event(
            UsageEvent(
                id=request_id,
                timestamp=utc_now(),
                project_id=project_id,
                card_id=card_id,
                agent_name=agent_name,
                provider=provider_id,
                model=model,
                prompt_preview=preview,
                usage=usage,
                cost=cost,
                duration_ms=duration_ms,
                success=True,
            )
        )
        logger.info(
            f"Agent Router: {agent_name} completed ({usage.total_tokens} tokens, ${cost.customer_price:.4f})"
        )
        return RouterResult(
            success=True,
            request_id=request_id,
            content=response.content,
            usage=usage,
            cost=cost,
            metadata={
                "provider": provider_id,
                "model": model,
                "duration_ms": duration_ms,
                "usage_source": usage_source,
            },
        )

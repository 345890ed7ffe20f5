from __future__ import annotations

"""Card automator.

Drives cards through the lane pipeline:

- ``move_card`` changes a card's lane, records the transition, keeps the
  project's lane index in step and fires the target lane's auto-triggers.
- ``update_card_status`` records a status transition; reaching ``completed``
  evaluates the lane's completion criteria and advances the card when they
  all hold.
- ``run_agent`` executes one agent on a card inside a run session and stores
  its output as a card artifact.

Card documents are read-modify-written under a per-card lock shared with the
session recorder. The lock is only held around a single load/save, never
across an agent run or a session seal.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..core.concurrency import CancellationToken, KeyedLock
from ..core.errors import CardNotFoundError, InvalidLaneError, InvalidStatusError
from ..core.logging_config import get_logger
from ..repos.interfaces import ArtifactStore, CardStore, ProjectStore
from ..router.agent_router import AgentRouter, RouterResult
from ..schemas.base import utc_now
from ..schemas.cards import MAX_LANE, MIN_LANE, AgentOutput, Card, CardStatus, LaneTransition, StatusTransition
from ..schemas.sessions import LogLevel, RunType, SessionStatus
from ..terminal.recorder import SessionLogRecorder
from .definitions import LANES, criteria_met, get_lane_name, is_valid_lane
from .prompts import build_agent_prompt

logger = get_logger(__name__)

PROMPT_LOG_PREVIEW_CHARS = 100


@dataclass(frozen=True)
class TriggerOutcome:
    """Result of one auto-triggered agent run."""

    agent_name: str
    result: Optional[RouterResult] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.result is not None and self.result.success


class CardAutomator:
    """
    Lane state machine over the card store.

    Args:
        projects: Project store (lane index, context documents).
        cards: Card store.
        artifacts: Artifact store agent outputs are written to.
        router: Agent router used for every agent run.
        recorder: Session recorder; one session per agent run.
        card_locks: Per-card lock family; pass the recorder's so both serialize
            writes to the same card document.
    """

    def __init__(
        self,
        *,
        projects: ProjectStore,
        cards: CardStore,
        artifacts: ArtifactStore,
        router: AgentRouter,
        recorder: SessionLogRecorder,
        card_locks: Optional[KeyedLock] = None,
    ) -> None:
        self._projects = projects
        self._cards = cards
        self._artifacts = artifacts
        self._router = router
        self._recorder = recorder
        self._card_locks = card_locks or KeyedLock()

    async def get_card(self, project_id: str, card_id: str) -> Card:
        return await self._cards.get_card(project_id, card_id)

    async def move_card(
        self,
        project_id: str,
        card_id: str,
        target_lane: int,
        reason: str = "manual",
    ) -> Card:
        """
        Move a card to ``target_lane`` and fire that lane's auto-triggers.

        Any lane may be targeted; moving exactly one lane forward marks the
        card ``ready``, anything else marks it ``moved``.

        Raises:
            InvalidLaneError: ``target_lane`` is not one of the defined lanes.
            CardNotFoundError: The card does not exist.
        """
        if not is_valid_lane(target_lane):
            raise InvalidLaneError(
                f"Invalid lane {target_lane!r}; lanes run from {MIN_LANE} to {MAX_LANE}",
                details={"lane": target_lane},
            )

        async with self._card_locks.hold((project_id, card_id)):
            card = await self._cards.get_card(project_id, card_id)
            from_lane = card.lane
            now = utc_now()
            card.lane_history.append(
                LaneTransition(from_lane=from_lane, to_lane=target_lane, timestamp=now, reason=reason)
            )
            card.lane = target_lane
            card.status = CardStatus.ready if target_lane == from_lane + 1 else CardStatus.moved
            card.updated_at = now
            await self._cards.save_card(project_id, card)

        await self._projects.update_lane_index(project_id, card_id, from_lane, target_lane)
        logger.info(f"Card {card_id} moved: lane {from_lane} -> lane {target_lane} ({reason})")

        if await self.check_auto_triggers(project_id, card_id, target_lane):
            card = await self._cards.get_card(project_id, card_id)
        return card

    async def update_card_status(
        self,
        project_id: str,
        card_id: str,
        status: Union[CardStatus, str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Card:
        """
        Record a status transition; ``completed`` also checks lane completion.

        Returns:
            The card after the update, or after the automatic move when the
            lane's criteria were met.

        Raises:
            InvalidStatusError: ``status`` is not a card status.
            CardNotFoundError: The card does not exist.
        """
        try:
            new_status = CardStatus(status)
        except ValueError:
            raise InvalidStatusError(
                f"Invalid status {status!r}; expected one of: {', '.join(s.value for s in CardStatus)}",
                details={"status": status},
            ) from None

        async with self._card_locks.hold((project_id, card_id)):
            card = await self._cards.get_card(project_id, card_id)
            now = utc_now()
            card.status_history.append(
                StatusTransition(from_status=card.status, to_status=new_status, timestamp=now, metadata=metadata or {})
            )
            card.status = new_status
            card.updated_at = now
            await self._cards.save_card(project_id, card)
        logger.debug(f"Card {card_id} status -> {new_status.value}")

        if new_status is CardStatus.completed:
            moved = await self.check_lane_completion(project_id, card_id)
            if moved is not None:
                return moved
        return card

    async def check_auto_triggers(self, project_id: str, card_id: str, lane: int) -> List[TriggerOutcome]:
        """
        Run every auto-trigger agent of ``lane`` on the card concurrently.

        Each agent runs in its own session; one agent's failure is logged and
        reported in its outcome without affecting the others.
        """
        definition = LANES.get(lane)
        if definition is None or not definition.auto_triggers:
            return []

        logger.info(f"Auto-triggers for lane {lane}: {', '.join(definition.auto_triggers)}")
        results = await asyncio.gather(
            *(
                self.run_agent(project_id, card_id, agent_name, auto_mode=True)
                for agent_name in definition.auto_triggers
            ),
            return_exceptions=True,
        )

        outcomes: List[TriggerOutcome] = []
        for agent_name, result in zip(definition.auto_triggers, results):
            if isinstance(result, Exception):
                logger.error(f"Auto-trigger {agent_name} failed on card {card_id}: {result}")
                outcomes.append(TriggerOutcome(agent_name=agent_name, error=str(result)))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(TriggerOutcome(agent_name=agent_name, result=result))
        return outcomes

    async def check_lane_completion(self, project_id: str, card_id: str) -> Optional[Card]:
        """
        Advance the card to its lane's ``next_lane`` if every criterion holds.

        Returns:
            The moved card, or ``None`` when the card stays where it is.
        """
        card = await self._cards.get_card(project_id, card_id)
        definition = LANES.get(card.lane)
        if definition is None or definition.next_lane is None:
            return None
        if not criteria_met(definition, card):
            logger.debug(f"Card {card_id}: lane {card.lane} criteria not met")
            return None

        logger.info(f"Card {card_id}: lane {card.lane} criteria met, advancing to lane {definition.next_lane}")
        return await self.move_card(project_id, card_id, definition.next_lane, "auto_completion")

    async def generate_agent_prompt(self, project_id: str, card_id: str, agent_name: str) -> str:
        card = await self._cards.get_card(project_id, card_id)
        project = await self._projects.get_project(project_id)
        context = await self._projects.load_context_documents(project_id)
        return build_agent_prompt(agent_name, project, card, context)

    async def process_agent_output(self, project_id: str, card_id: str, agent_name: str, output: str) -> Card:
        """Write ``output`` as the agent's artifact and record it on the card."""
        reference = await self._artifacts.write_artifact(project_id, card_id, agent_name, output)
        async with self._card_locks.hold((project_id, card_id)):
            card = await self._cards.get_card(project_id, card_id)
            card.agent_outputs[agent_name] = AgentOutput(content=output)
            card.artifacts[agent_name] = reference
            card.updated_at = utc_now()
            await self._cards.save_card(project_id, card)
        return card

    async def run_agent(
        self,
        project_id: str,
        card_id: str,
        agent_name: str,
        prompt: Optional[str] = None,
        *,
        auto_mode: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RouterResult:
        """
        Run one agent on a card inside its own run session.

        The card goes ``in_progress`` while the agent runs, then ``review`` on
        success or ``error`` on failure. The session is always sealed before
        this returns or raises: ``completed`` on success, ``failed`` otherwise.

        Args:
            prompt: Explicit prompt; synthesized from the card and project
                context documents when omitted.
            auto_mode: Marks the session as an automatic run.
            cancel_token: Aborts the provider call when cancelled.

        Returns:
            The router result. A failed agent call is a result, not an exception.

        Raises:
            CardNotFoundError: The card does not exist.
            PersistenceError: A store write failed.
        """
        run_type = RunType.auto if auto_mode else RunType.manual
        run_id = await self._recorder.start_session(project_id, card_id, agent_name, run_type)
        final_status = SessionStatus.failed
        summary: Dict[str, Any] = {"message": f"Agent {agent_name} did not complete"}

        try:
            await self._recorder.log(run_id, LogLevel.agent, f"Starting {agent_name} agent execution")
            card = await self.update_card_status(
                project_id,
                card_id,
                CardStatus.in_progress,
                {"agent_name": agent_name, "run_id": run_id, "start_time": utc_now().isoformat()},
            )
            if agent_name not in LANES[card.lane].agents:
                await self._recorder.log(
                    run_id,
                    LogLevel.warning,
                    f"Agent {agent_name} is not listed for lane {card.lane} ({get_lane_name(card.lane)})",
                )

            if prompt is None:
                prompt = await self.generate_agent_prompt(project_id, card_id, agent_name)
            await self._recorder.log(
                run_id, LogLevel.info, f"Executing with prompt: {prompt[:PROMPT_LOG_PREVIEW_CHARS]}..."
            )

            result = await self._router.route_request(
                agent_name, prompt, project_id, card_id, lane=card.lane, cancel_token=cancel_token
            )

            if result.success:
                await self._recorder.log(run_id, LogLevel.success, "Agent execution completed successfully")
                await self._recorder.log(
                    run_id,
                    LogLevel.info,
                    f"Usage: {result.usage.total_tokens} tokens, ${result.cost.customer_price:.4f}",
                    {"request_id": result.request_id},
                )
                await self.process_agent_output(project_id, card_id, agent_name, result.content or "")
                await self.update_card_status(
                    project_id,
                    card_id,
                    CardStatus.review,
                    {
                        "agent_name": agent_name,
                        "run_id": run_id,
                        "end_time": utc_now().isoformat(),
                        "success": True,
                        "request_id": result.request_id,
                        "usage": result.usage.model_dump(),
                        "cost": result.cost.model_dump(),
                    },
                )
                final_status = SessionStatus.completed
                summary = {
                    "message": f"Agent {agent_name} completed successfully",
                    "request_id": result.request_id,
                    "total_tokens": result.usage.total_tokens,
                    "customer_price": result.cost.customer_price,
                }
            else:
                await self._recorder.log(
                    run_id,
                    LogLevel.error,
                    f"Agent execution failed: {result.error}",
                    {"error_code": result.error_code, "request_id": result.request_id},
                )
                await self.update_card_status(
                    project_id,
                    card_id,
                    CardStatus.error,
                    {
                        "agent_name": agent_name,
                        "run_id": run_id,
                        "end_time": utc_now().isoformat(),
                        "success": False,
                        "error": result.error,
                        "error_code": result.error_code,
                    },
                )
                summary = {
                    "message": f"Agent {agent_name} failed: {result.error}",
                    "request_id": result.request_id,
                    "error_code": result.error_code,
                }
            return result

        except Exception as exc:
            summary = {"message": f"Agent {agent_name} failed: {exc}"}
            logger.error(f"Agent {agent_name} run {run_id} on card {card_id} raised: {exc}")
            if not isinstance(exc, CardNotFoundError):
                await self._mark_error(project_id, card_id, agent_name, run_id, exc)
            raise

        finally:
            await self._recorder.end_session(run_id, final_status, summary)

    async def _mark_error(
        self, project_id: str, card_id: str, agent_name: str, run_id: str, exc: Exception
    ) -> None:
        try:
            await self.update_card_status(
                project_id,
                card_id,
                CardStatus.error,
                {"agent_name": agent_name, "run_id": run_id, "error": str(exc), "end_time": utc_now().isoformat()},
            )
        except Exception:
            logger.warning(f"Could not mark card {card_id} as error after run {run_id} failed", exc_info=True)

"""AgentWorks command line interface.

Commands are grouped by subsystem and take positional arguments::

    agentworks router route <agent> <project> [card]
    agentworks router report <project> [timeframe]
    agentworks router providers
    agentworks cards move|status|run|trigger|show <project> <card> ...
    agentworks terminal start|log|end|show|sessions|html|export ...
    agentworks usage report|analytics|export|reconcile <project> ...
    agentworks onboarding validate|register ...

Every command exits 0 on success. Domain failures print one line,
``Error [CODE]: message``, to stderr and exit 1.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
from dotenv import load_dotenv

from .core.config import Settings
from .core.errors import AgentWorksError
from .core.logging_config import setup_logging
from .factory import Services, build_services
from .lanes.definitions import get_lane_name
from .metering.reports import (
    export_billing_report,
    generate_billing_report,
    generate_usage_analytics,
    parse_timeframe,
)
from .schemas.cards import CardStatus
from .schemas.sessions import LogLevel, RunType, SessionStatus
from .terminal.export import EXPORT_FORMATS, text_line

T = TypeVar("T")

DEFAULT_ROUTE_PROMPT = "Default prompt for testing"


class CommandError(click.ClickException):
    """A domain error rendered as ``Error [CODE]: message``."""

    exit_code = 1

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code

    def format_message(self) -> str:
        return f"[{self.code}]: {self.message}"

    def show(self, file: Any = None) -> None:
        click.echo(f"Error {self.format_message()}", err=True, file=file)


@dataclass
class CliState:
    settings: Settings
    as_json: bool = False
    quiet: bool = False
    services_factory: Callable[[Settings], Services] = build_services
    _services: Optional[Services] = field(default=None, repr=False)

    def services(self) -> Services:
        if self._services is None:
            self._services = self.services_factory(self.settings)
        return self._services

    def run(self, operation: Callable[[Services], Awaitable[T]]) -> T:
        """Run one async operation against the services, mapping domain errors to exit 1."""
        services = self.services()

        async def _main() -> T:
            await services.startup()
            try:
                return await operation(services)
            finally:
                await services.shutdown()

        try:
            return asyncio.run(_main())
        except AgentWorksError as exc:
            raise CommandError(exc.code, exc.message) from exc
        except ValueError as exc:
            raise CommandError("INVALID_ARGUMENT", str(exc)) from exc

    def emit(self, data: Any, text: Optional[str] = None) -> None:
        if self.quiet:
            return
        if self.as_json or text is None:
            click.echo(json.dumps(data, indent=2, default=str))
        else:
            click.echo(text)


pass_state = click.make_pass_decorator(CliState)


@click.group()
@click.option(
    "--projects-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the projects (default: AGENTWORKS_PROJECTS_ROOT or ./projects).",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON.")
@click.option("--quiet", is_flag=True, default=False, help="Print nothing on success.")
@click.pass_context
def cli(ctx: click.Context, projects_root: Optional[Path], as_json: bool, quiet: bool) -> None:
    """AgentWorks agent router, card automation, session logs and usage billing."""
    load_dotenv()
    overrides = {"projects_root": projects_root} if projects_root is not None else {}
    settings = Settings(**overrides)
    setup_logging(log_level="WARNING" if quiet else settings.log_level, log_format=settings.log_format)
    if isinstance(ctx.obj, CliState):
        ctx.obj.settings = settings
        ctx.obj.as_json = as_json
        ctx.obj.quiet = quiet
    else:
        ctx.obj = CliState(settings=settings, as_json=as_json, quiet=quiet)


# =====================================================================
# router
# =====================================================================


@cli.group()
def router() -> None:
    """Route prompts to agents and inspect providers."""


@router.command("route")
@click.argument("agent")
@click.argument("project")
@click.argument("card", required=False)
@click.option("--prompt", envvar="AGENT_PROMPT", default=DEFAULT_ROUTE_PROMPT, show_default=True)
@click.option("--lane", type=int, default=None, help="Lane the request runs in.")
@pass_state
def router_route(state: CliState, agent: str, project: str, card: Optional[str], prompt: str, lane: Optional[int]) -> None:
    """Send PROMPT to AGENT of PROJECT and record its usage."""
    result = state.run(lambda s: s.router.route_request(agent, prompt, project, card, lane=lane))
    state.emit(result.model_dump(mode="json"))
    if not result.success:
        raise CommandError(result.error_code or "PROVIDER_ERROR", result.error or "request failed")


@router.command("report")
@click.argument("project")
@click.argument("timeframe", required=False, default="7d")
@pass_state
def router_report(state: CliState, project: str, timeframe: str) -> None:
    """Usage analytics for PROJECT over TIMEFRAME (e.g. 7d)."""
    state.emit(state.run(_analytics_for(project, timeframe)))


def _analytics_for(project: str, timeframe: str) -> Callable[[Services], Awaitable[dict]]:
    async def _analytics(services: Services) -> dict:
        start, end, days = parse_timeframe(timeframe)
        report = await generate_billing_report(services.usage_store, project, start, end)
        return generate_usage_analytics(report, days).model_dump(mode="json")

    return _analytics


@router.command("providers")
@pass_state
def router_providers(state: CliState) -> None:
    """List catalog providers and their models."""
    providers = state.services().catalog.list_providers()
    lines = ["Available providers:"]
    for provider in providers:
        suffix = "" if provider.enabled else " [disabled]"
        lines.append(f"- {provider.id}: {provider.name} ({', '.join(provider.models)}){suffix}")
    state.emit([p.model_dump(mode="json", by_alias=True) for p in providers], "\n".join(lines))


# =====================================================================
# cards
# =====================================================================


@cli.group()
def cards() -> None:
    """Move cards through lanes and run agents on them."""


@cards.command("move")
@click.argument("project")
@click.argument("card")
@click.argument("target_lane", type=int)
@click.argument("reason", required=False, default="manual")
@pass_state
def cards_move(state: CliState, project: str, card: str, target_lane: int, reason: str) -> None:
    """Move CARD to TARGET_LANE and fire that lane's auto-triggers."""
    moved = state.run(lambda s: s.automator.move_card(project, card, target_lane, reason))
    state.emit(
        moved.model_dump(mode="json", by_alias=True),
        f"Card {card} moved to lane {moved.lane} ({get_lane_name(moved.lane)}), status {moved.status.value}",
    )


@cards.command("status")
@click.argument("project")
@click.argument("card")
@click.argument("status", type=click.Choice([s.value for s in CardStatus]))
@pass_state
def cards_status(state: CliState, project: str, card: str, status: str) -> None:
    """Set CARD's status; ``completed`` may advance it to the next lane."""
    updated = state.run(lambda s: s.automator.update_card_status(project, card, status))
    state.emit(
        updated.model_dump(mode="json", by_alias=True),
        f"Card {card}: status {updated.status.value}, lane {updated.lane} ({get_lane_name(updated.lane)})",
    )


@cards.command("run")
@click.argument("project")
@click.argument("card")
@click.argument("agent")
@click.argument("prompt", nargs=-1)
@pass_state
def cards_run(state: CliState, project: str, card: str, agent: str, prompt: tuple[str, ...]) -> None:
    """Run AGENT on CARD; the prompt is synthesized when not given."""
    text = " ".join(prompt) or None
    result = state.run(lambda s: s.automator.run_agent(project, card, agent, text))
    state.emit(result.model_dump(mode="json"), f"Agent result: {'Success' if result.success else 'Failed'}")
    if not result.success:
        raise CommandError(result.error_code or "PROVIDER_ERROR", result.error or "agent run failed")


@cards.command("trigger")
@click.argument("project")
@click.argument("card")
@click.argument("lane", type=int)
@pass_state
def cards_trigger(state: CliState, project: str, card: str, lane: int) -> None:
    """Run LANE's auto-trigger agents on CARD."""
    outcomes = state.run(lambda s: s.automator.check_auto_triggers(project, card, lane))
    lines = [
        f"- {o.agent_name}: {'Success' if o.success else (o.error or (o.result.error if o.result else 'Failed'))}"
        for o in outcomes
    ] or [f"No auto-triggers for lane {lane}"]
    data = [
        {"agent_name": o.agent_name, "success": o.success, "result": o.result.model_dump(mode="json") if o.result else None, "error": o.error}
        for o in outcomes
    ]
    state.emit(data, "\n".join(lines))


@cards.command("show")
@click.argument("project")
@click.argument("card")
@pass_state
def cards_show(state: CliState, project: str, card: str) -> None:
    """Print a card document."""
    loaded = state.run(lambda s: s.automator.get_card(project, card))
    state.emit(loaded.model_dump(mode="json", by_alias=True))


# =====================================================================
# terminal
# =====================================================================


@cli.group()
def terminal() -> None:
    """Run session logs: record, replay and export."""


@terminal.command("start")
@click.argument("project")
@click.argument("card")
@click.argument("agent")
@click.argument("run_type", required=False, default=RunType.manual.value, type=click.Choice([t.value for t in RunType]))
@pass_state
def terminal_start(state: CliState, project: str, card: str, agent: str, run_type: str) -> None:
    """Open a session and print its run id."""
    run_id = state.run(lambda s: s.recorder.start_session(project, card, agent, run_type))
    state.emit({"run_id": run_id}, run_id)


@terminal.command("log")
@click.argument("run_id")
@click.argument("level", type=click.Choice([level.value for level in LogLevel]))
@click.argument("message", nargs=-1, required=True)
@pass_state
def terminal_log(state: CliState, run_id: str, level: str, message: tuple[str, ...]) -> None:
    """Append MESSAGE to a running session."""
    entry = state.run(lambda s: s.recorder.log(run_id, level, " ".join(message)))
    state.emit(entry.model_dump(mode="json"), text_line(entry))


@terminal.command("end")
@click.argument("run_id")
@click.argument(
    "status",
    required=False,
    default=SessionStatus.completed.value,
    type=click.Choice([SessionStatus.completed.value, SessionStatus.failed.value]),
)
@click.argument("summary", nargs=-1)
@pass_state
def terminal_end(state: CliState, run_id: str, status: str, summary: tuple[str, ...]) -> None:
    """Seal a session."""
    session = state.run(lambda s: s.recorder.end_session(run_id, status, " ".join(summary) or None))
    state.emit(
        session.model_dump(mode="json", exclude={"entries"}),
        f"Session {run_id} ended: {session.status.value} ({len(session.entries)} entries)",
    )


@terminal.command("show")
@click.argument("run_id")
@pass_state
def terminal_show(state: CliState, run_id: str) -> None:
    """Print a session's log lines."""
    entries = state.run(lambda s: s.recorder.get_session_logs(run_id))
    state.emit([e.model_dump(mode="json") for e in entries], "\n".join(text_line(e) for e in entries))


@terminal.command("sessions")
@click.argument("project")
@click.argument("card")
@pass_state
def terminal_sessions(state: CliState, project: str, card: str) -> None:
    """List a card's sessions, newest first."""
    sessions = state.run(lambda s: s.recorder.get_card_sessions(project, card))
    data = [session.model_dump(mode="json", exclude={"entries"}) | {"log_count": len(session.entries)} for session in sessions]
    lines = [
        f"{session.id}  {session.agent_name:<16} {session.status.value:<9} {session.start_time.isoformat()}"
        for session in sessions
    ]
    state.emit(data, "\n".join(lines) or "No sessions")


@terminal.command("html")
@click.argument("run_id")
@click.argument("theme", required=False, default="dark", type=click.Choice(["dark", "light"]))
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None)
@pass_state
def terminal_html(state: CliState, run_id: str, theme: str, output: Optional[Path]) -> None:
    """Write a session's themed HTML replay page."""
    page = state.run(lambda s: s.recorder.render_html(run_id, theme))
    target = output or Path(f"terminal_{run_id}.html")
    target.write_text(page, encoding="utf-8")
    state.emit({"path": str(target)}, f"Terminal HTML saved to: {target}")


@terminal.command("export")
@click.argument("run_id")
@click.argument("format", required=False, default="json", type=click.Choice(list(EXPORT_FORMATS)))
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None)
@pass_state
def terminal_export(state: CliState, run_id: str, format: str, output: Optional[Path]) -> None:
    """Export a session as json or txt, to stdout or OUTPUT."""
    body = state.run(lambda s: s.recorder.export(run_id, format))
    if output is None:
        if not state.quiet:
            click.echo(body)
        return
    output.write_text(body, encoding="utf-8")
    state.emit({"path": str(output)}, f"Exported {run_id} to {output}")


# =====================================================================
# usage
# =====================================================================


@cli.group()
def usage() -> None:
    """Billing reports rebuilt from the usage event log."""


@usage.command("report")
@click.argument("project")
@click.argument("start", required=False, type=click.DateTime(formats=["%Y-%m-%d"]))
@click.argument("end", required=False, type=click.DateTime(formats=["%Y-%m-%d"]))
@pass_state
def usage_report(state: CliState, project: str, start: Any, end: Any) -> None:
    """Billing report for PROJECT between START and END (inclusive UTC days)."""
    report = state.run(lambda s: generate_billing_report(s.usage_store, project, _day(start), _day(end)))
    summary = report.summary
    text = "\n".join(
        [
            f"Billing report for {project} ({report.period.start} to {report.period.end})",
            f"  Calls:          {summary.total_calls} ({summary.failed_calls} failed)",
            f"  Provider cost:  ${summary.total_provider_cost:.4f}",
            f"  Customer price: ${summary.total_customer_price:.2f}",
            f"  Margin:         ${summary.total_margin:.4f} ({summary.average_margin_percent}%)",
        ]
    )
    state.emit(report.model_dump(mode="json"), text)


@usage.command("analytics")
@click.argument("project")
@click.argument("timeframe", required=False, default="7d")
@pass_state
def usage_analytics(state: CliState, project: str, timeframe: str) -> None:
    """Trend, efficiency and insights over the last TIMEFRAME days."""
    state.emit(state.run(_analytics_for(project, timeframe)))


@usage.command("export")
@click.argument("project")
@click.argument("format", required=False, default="json", type=click.Choice(["json", "csv"]))
@click.argument("start", required=False, type=click.DateTime(formats=["%Y-%m-%d"]))
@click.argument("end", required=False, type=click.DateTime(formats=["%Y-%m-%d"]))
@pass_state
def usage_export(state: CliState, project: str, format: str, start: Any, end: Any) -> None:
    """Export a billing report as json or csv."""
    report = state.run(lambda s: generate_billing_report(s.usage_store, project, _day(start), _day(end)))
    if not state.quiet:
        click.echo(export_billing_report(report, format))


@usage.command("reconcile")
@click.argument("project")
@pass_state
def usage_reconcile(state: CliState, project: str) -> None:
    """Rebuild PROJECT's cached usage aggregate from its event log."""
    drifted = state.run(lambda s: s.meter.reconcile(project))
    state.emit(
        {"project_id": project, "drifted": drifted},
        f"Aggregate for {project} {'was out of date and has been rebuilt' if drifted else 'matches the event log'}",
    )


def _day(value: Any) -> Optional[date]:
    return value.date() if value is not None else None


# =====================================================================
# onboarding
# =====================================================================


@cli.group()
def onboarding() -> None:
    """Validate and register agent onboarding configs."""


def _load_config(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CommandError("INVALID_FORMAT", f"{path} is not valid JSON: {exc}") from exc


def _emit_validation(state: CliState, result: Any) -> None:
    lines = [f"{'VALID' if result.valid else 'INVALID'}: {len(result.errors)} error(s), {len(result.warnings)} warning(s)"]
    lines += [f"  error   {issue.field}: {issue.message} [{issue.code.value}]" for issue in result.errors]
    lines += [f"  warning {warning}" for warning in result.warnings]
    state.emit(result.model_dump(mode="json"), "\n".join(lines))
    if not result.valid:
        raise click.exceptions.Exit(1)


@onboarding.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_state
def onboarding_validate(state: CliState, config_file: Path) -> None:
    """Validate an onboarding config JSON file; exits 1 when it has errors."""
    result = state.services().onboarding.validate(_load_config(config_file))
    _emit_validation(state, result)


@onboarding.command("register")
@click.argument("project")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_state
def onboarding_register(state: CliState, project: str, config_file: Path) -> None:
    """Validate a config and, when valid, add the agent to PROJECT."""
    config = _load_config(config_file)
    result = state.run(lambda s: s.onboarding.register(project, config))
    _emit_validation(state, result)


def main() -> None:
    cli(prog_name="agentworks")


if __name__ == "__main__":
    main()

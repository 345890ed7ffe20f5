"""AgentWorks agent router and usage metering.

This package drives AgentWorks cards through the eleven-lane delivery pipeline
by routing agent requests to LLM providers and metering every attempt for
billing.

High-level architecture
-----------------------

- ``catalog``: read-only registry of LLM providers, models, rate limits and
  per-1K-token costs.
- ``metering``: token estimation, cost/price arithmetic, the append-only usage
  event log with its cached per-project aggregate, and billing reports.
- ``onboarding``: validation of full agent definitions; only configs that
  validate are registered for routing.
- ``router``: resolves an agent's provider/model, calls the LLM through the
  ``llm`` client boundary and records exactly one usage event per attempt.
- ``lanes``: the lane state machine and card automator (moves, auto-triggers,
  completion checks, agent runs).
- ``terminal``: per-run session log recorder with live subscriptions and
  replay/export.
- ``repos``: repository protocols plus file-backed and SQL-backed stores.
- ``server`` / ``cli``: thin HTTP and command-line surfaces over the services
  wired in ``factory``.
"""

__version__ = "0.1.0"

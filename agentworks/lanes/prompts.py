from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional

from ..schemas.cards import Card
from ..schemas.projects import Project
from .definitions import get_lane_name

ContextDocs = Mapping[str, str]
PromptBuilder = Callable[[Project, Card, ContextDocs], str]


def _project_name(project: Project) -> str:
    return project.name or project.id


def _excerpt(context: ContextDocs, key: str, limit: int) -> str:
    text = context.get(key)
    if not text:
        return "Not available"
    return f"{text[:limit]}..." if len(text) > limit else text


def _availability(context: ContextDocs, key: str) -> str:
    return "Available" if context.get(key) else "Missing"


def _criteria(card: Card) -> str:
    return ", ".join(card.acceptance_criteria) or "Not specified"


def _ceo_prompt(project: Project, card: Card, context: ContextDocs) -> str:
    return f"""As the CEO CoPilot Agent for project "{_project_name(project)}", analyze the current state and provide strategic guidance.

Project Context:
- Blueprint: {_availability(context, "blueprint")}
- PRD: {_availability(context, "prd")}
- MVP: {_availability(context, "mvp")}

Current Card: {card.title}
Description: {card.description}
Lane: {card.lane} ({get_lane_name(card.lane)})

Tasks:
1. Review current project progress and alignment with Blueprint
2. Identify any risks or blockers
3. Provide strategic recommendations for next steps
4. Ensure work stays aligned with project vision

Please provide your analysis and recommendations."""


def _strategy_prompt(project: Project, card: Card, context: ContextDocs) -> str:
    return f"""As the Strategy Agent for project "{_project_name(project)}", assess the market and positioning for this work.

Project Context:
- Blueprint: {_excerpt(context, "blueprint", 500)}
- Existing strategy analysis: {_excerpt(context, "strategy", 500)}

Current Card: {card.title}
Description: {card.description}

Tasks:
1. Identify target users and the problem being solved
2. Compare against competing approaches
3. Highlight differentiators and risks
4. Recommend priorities for the MVP

Please provide a concise strategy analysis."""


def _architect_prompt(project: Project, card: Card, context: ContextDocs) -> str:
    return f"""As the Architect Agent for project "{_project_name(project)}", design the technical architecture for this feature.

Project Context:
- Blueprint: {_excerpt(context, "blueprint", 500)}
- PRD Requirements: {_excerpt(context, "prd", 500)}

Feature Card: {card.title}
Description: {card.description}
Acceptance Criteria: {_criteria(card)}

Tasks:
1. Design system architecture for this feature
2. Choose appropriate technology stack
3. Define data models and API contracts
4. Identify infrastructure requirements
5. Document security and scalability considerations

Please provide a detailed technical architecture plan."""


def _dev_prompt(kind: str) -> PromptBuilder:
    def _build(project: Project, card: Card, context: ContextDocs) -> str:
        return f"""As the {kind} Development Agent for project "{_project_name(project)}", implement this feature.

Project Context:
- Architecture: {_excerpt(context, "architecture", 300)}
- Feature: {card.title}
- Description: {card.description}
- Acceptance Criteria: {_criteria(card)}

Tasks:
1. Implement the {kind} code for this feature
2. Follow the defined architecture patterns
3. Write appropriate tests
4. Ensure proper error handling
5. Document the implementation

Please provide the implementation code and documentation."""

    return _build


def _qa_prompt(project: Project, card: Card, context: ContextDocs) -> str:
    return f"""As the QA Agent for project "{_project_name(project)}", verify this feature.

Project Context:
- Architecture: {_excerpt(context, "architecture", 300)}
- Feature: {card.title}
- Description: {card.description}
- Acceptance Criteria: {_criteria(card)}

Tasks:
1. Derive test cases from the acceptance criteria
2. Cover edge cases and failure paths
3. Report defects with reproduction steps
4. State whether the feature is ready to deploy

Please provide the test plan and results."""


def _docs_prompt(project: Project, card: Card, context: ContextDocs) -> str:
    return f"""As the Documentation Agent for project "{_project_name(project)}", document this feature.

Project Context:
- PRD: {_excerpt(context, "prd", 300)}
- Architecture: {_excerpt(context, "architecture", 300)}

Feature Card: {card.title}
Description: {card.description}

Tasks:
1. Write user-facing documentation
2. Write developer notes covering setup and APIs
3. Add a short training guide for new team members

Please provide the documentation in Markdown."""


def _generic_prompt(project: Project, card: Card, agent_name: str) -> str:
    return f"""As the {agent_name} agent for project "{_project_name(project)}", work on the following card.

Card: {card.title}
Description: {card.description}
Lane: {card.lane} ({get_lane_name(card.lane)})
Acceptance Criteria: {_criteria(card)}

Please provide your output for this card."""


AGENT_PROMPTS: Dict[str, PromptBuilder] = {
    "ceo_copilot": _ceo_prompt,
    "strategy": _strategy_prompt,
    "architect": _architect_prompt,
    "dev_backend": _dev_prompt("backend"),
    "dev_frontend": _dev_prompt("frontend"),
    "qa": _qa_prompt,
    "docs": _docs_prompt,
}


def build_agent_prompt(
    agent_name: str, project: Project, card: Card, context: Optional[ContextDocs] = None
) -> str:
    """Agent-specific prompt for ``card``; agents without a template get a generic one."""
    builder = AGENT_PROMPTS.get(agent_name)
    if builder is None:
        return _generic_prompt(project, card, agent_name)
    return builder(project, card, context or {})

from .agent_router import AgentRouter, RouterResult

__all__ = ["AgentRouter", "RouterResult"]

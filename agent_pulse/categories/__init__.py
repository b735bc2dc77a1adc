"""RSS content category resolution."""

from agent_pulse.categories.config import CategoryConfig
from agent_pulse.categories.resolver import CategoryDecision, CategoryResolver

__all__ = ["CategoryConfig", "CategoryDecision", "CategoryResolver"]

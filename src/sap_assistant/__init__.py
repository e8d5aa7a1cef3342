"""SAP assistant package."""

from .config import AgentConfig, DataConfig, LLMConfig, MatchConfig

__all__ = ["AgentConfig", "DataConfig", "LLMConfig", "MatchConfig"]

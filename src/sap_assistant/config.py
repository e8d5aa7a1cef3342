"""Configuration models for the SAP assistant."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

_PACKAGE_DATA_DIR = Path(__file__).resolve().parent / "data"


class MatchConfig(BaseModel):
    """Fuzzy-match thresholds per index (0 = exact, 1 = accept anything).

    Values were tuned by hand against the bundled datasets.
    """

    inventory_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    sales_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    purchase_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    status_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    knowledge_threshold: float = Field(default=0.45, ge=0.0, le=1.0)
    kb_confidence_cutoff: float = Field(default=0.45, ge=0.0, le=1.0)
    kb_max_candidates: int = Field(default=3, ge=1)
    # terms this short (after compacting) must appear verbatim inside a KB term
    kb_short_term_length: int = Field(default=4, ge=0)


class LLMConfig(BaseModel):
    """Chat model settings for any OpenAI-compatible endpoint."""

    model: str = "llama-3.1-8b-instant"
    base_url: str | None = "https://api.groq.com/openai/v1"
    temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    api_key: str | None = None

    @classmethod
    def from_env(cls) -> "LLMConfig":
        groq_key = os.getenv("GROQ_API_KEY")
        openai_key = os.getenv("OPENAI_API_KEY")
        if groq_key:
            default_base = "https://api.groq.com/openai/v1"
            default_model = "llama-3.1-8b-instant"
        else:
            default_base = None
            default_model = "gpt-4o-mini"
        return cls(
            model=os.getenv("SAP_ASSISTANT_MODEL", default_model),
            base_url=os.getenv("SAP_ASSISTANT_BASE_URL", default_base),
            api_key=groq_key or openai_key,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class AgentConfig(BaseModel):
    """Configures pipeline behavior and latency targets."""

    target_latency_seconds: float = Field(default=8.0, gt=0.0)
    enable_extraction: bool = True


class DataConfig(BaseModel):
    """Locations of the read-only datasets and the leave store."""

    data_dir: Path = _PACKAGE_DATA_DIR
    leave_db_path: Path = Path("leave_applications.db")

    @classmethod
    def from_env(cls) -> "DataConfig":
        return cls(
            data_dir=Path(os.getenv("SAP_ASSISTANT_DATA_DIR", str(_PACKAGE_DATA_DIR))),
            leave_db_path=Path(
                os.getenv("SAP_ASSISTANT_LEAVE_DB", "leave_applications.db")
            ),
        )


def configure_logging(level: str | None = None) -> None:
    """Root logging setup for the service entrypoint."""
    logging.basicConfig(
        level=(level or os.getenv("SAP_ASSISTANT_LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

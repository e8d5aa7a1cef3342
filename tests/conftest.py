"""Shared fixtures: bundled datasets and a scripted language model."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from sap_assistant.config import DataConfig, MatchConfig
from sap_assistant.retrieval.datasets import Datasets, load_datasets

# Importing the API module builds the default app; keep its leave DB out of the repo.
os.environ.setdefault(
    "SAP_ASSISTANT_LEAVE_DB", str(Path(tempfile.gettempdir()) / "sap_assistant_test_leave.db")
)

Reply = str | Exception | Callable[[str, str], str]


@dataclass
class ScriptedLLM:
    """Returns queued replies in order and records every prompt it saw."""

    replies: list[Reply] = field(default_factory=list)
    calls: list[tuple[str, str, bool]] = field(default_factory=list)

    async def complete(
        self, system_prompt: str, user_prompt: str, *, json_mode: bool = False
    ) -> str:
        self.calls.append((system_prompt, user_prompt, json_mode))
        if not self.replies:
            raise AssertionError(f"Unexpected model call: {user_prompt[:80]!r}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompt)
        return reply


@pytest.fixture(scope="session")
def datasets() -> Datasets:
    return load_datasets(DataConfig(), MatchConfig())


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()

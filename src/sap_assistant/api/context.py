"""Builds the process-lifetime objects shared by every request."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sap_assistant.agent.classifier import DecisionClassifier
from sap_assistant.agent.definitions import DefinitionResolver
from sap_assistant.agent.extractor import ParameterExtractor
from sap_assistant.agent.fallback import DeterministicPlanner
from sap_assistant.agent.llm import LanguageModel, create_chat_model
from sap_assistant.agent.planner import SapAssistantPlanner
from sap_assistant.agent.registry import ToolRegistry
from sap_assistant.agent.tools import register_builtin_tools
from sap_assistant.config import AgentConfig, DataConfig, LLMConfig, MatchConfig
from sap_assistant.forms.leave_store import LeaveStore
from sap_assistant.obs.tracing import TraceStore
from sap_assistant.retrieval.datasets import Datasets, load_datasets
from sap_assistant.retrieval.executor import RetrievalExecutor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    datasets: Datasets
    registry: ToolRegistry
    planner: SapAssistantPlanner
    trace_store: TraceStore
    leave_store: LeaveStore
    llm: LanguageModel | None

    @property
    def planner_mode(self) -> str:
        return "deterministic" if isinstance(self.planner, DeterministicPlanner) else "llm"


def build_context(
    *,
    datasets: Datasets | None = None,
    llm: LanguageModel | None = None,
    use_env_llm: bool = True,
    data_config: DataConfig | None = None,
    match_config: MatchConfig | None = None,
    agent_config: AgentConfig | None = None,
) -> AppContext:
    """Construct indices, registry and planner once.

    With no ``llm`` given, one is created from the environment when
    ``use_env_llm`` is set; without credentials the deterministic planner is
    used instead.
    """

    data = data_config or DataConfig.from_env()
    match = match_config or MatchConfig()
    agent = agent_config or AgentConfig()
    if datasets is None:
        datasets = load_datasets(data, match)
    if llm is None and use_env_llm:
        llm = create_chat_model(LLMConfig.from_env())

    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        executor=RetrievalExecutor(datasets, match),
        resolver=DefinitionResolver(datasets.knowledge, llm, match),
    )
    trace_store = TraceStore()

    planner: SapAssistantPlanner
    if llm is not None:
        planner = SapAssistantPlanner(
            classifier=DecisionClassifier(llm, registry),
            tool_registry=registry,
            trace_store=trace_store,
            extractor=ParameterExtractor(llm),
            llm=llm,
            config=agent,
        )
    else:
        logger.warning("No language model configured; using deterministic planner")
        planner = DeterministicPlanner(
            tool_registry=registry, trace_store=trace_store, config=agent
        )

    return AppContext(
        datasets=datasets,
        registry=registry,
        planner=planner,
        trace_store=trace_store,
        leave_store=LeaveStore(data.leave_db_path),
        llm=llm,
    )

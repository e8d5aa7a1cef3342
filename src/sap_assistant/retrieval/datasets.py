"""Process-lifetime dataset indices, built once at startup."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sap_assistant.config import DataConfig, MatchConfig
from sap_assistant.ingest import loader
from sap_assistant.retrieval.fuzzy import FuzzyIndex
from sap_assistant.types import KnowledgeEntry, Record

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Datasets:
    """The four read-only indices shared by every request."""

    inventory: FuzzyIndex
    sales_orders: FuzzyIndex
    purchase_orders: FuzzyIndex
    knowledge: FuzzyIndex

    def index(self, name: str) -> FuzzyIndex:
        index = getattr(self, name, None)
        if not isinstance(index, FuzzyIndex):
            raise KeyError(f"Unknown dataset: {name}")
        return index

    def sizes(self) -> dict[str, int]:
        return {
            "inventory": len(self.inventory),
            "sales_orders": len(self.sales_orders),
            "purchase_orders": len(self.purchase_orders),
            "knowledge": len(self.knowledge),
        }


def knowledge_records(entries: list[KnowledgeEntry]) -> list[Record]:
    return [{"term": entry.term, "definition": entry.definition} for entry in entries]


def build_datasets(
    materials: list[Record],
    sales_orders: list[Record],
    purchase_orders: list[Record],
    knowledge: list[KnowledgeEntry],
    match_config: MatchConfig | None = None,
) -> Datasets:
    config = match_config or MatchConfig()
    return Datasets(
        inventory=FuzzyIndex(
            materials,
            ["Material", "Description"],
            threshold=config.inventory_threshold,
            identity="Material",
        ),
        sales_orders=FuzzyIndex(
            sales_orders,
            ["customer"],
            threshold=config.sales_threshold,
            identity="id",
        ),
        purchase_orders=FuzzyIndex(
            purchase_orders,
            ["vendor"],
            threshold=config.purchase_threshold,
            identity="id",
        ),
        knowledge=FuzzyIndex(
            knowledge_records(knowledge),
            ["term", "definition"],
            threshold=config.knowledge_threshold,
            identity="term",
        ),
    )


def load_datasets(
    data_config: DataConfig | None = None,
    match_config: MatchConfig | None = None,
) -> Datasets:
    """Read every JSON collection under ``data_dir`` and index it."""
    data = data_config or DataConfig()
    datasets = build_datasets(
        loader.load_materials(data.data_dir / loader.STOCK_FILE),
        loader.load_orders(data.data_dir / loader.SALES_ORDERS_FILE),
        loader.load_orders(data.data_dir / loader.PURCHASE_ORDERS_FILE),
        loader.load_knowledge(data.data_dir / loader.KNOWLEDGE_FILE),
        match_config,
    )
    logger.info("Loaded datasets from %s: %s", data.data_dir, datasets.sizes())
    return datasets

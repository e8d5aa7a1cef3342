"""Runs data-lookup tools against the dataset indices."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sap_assistant.config import MatchConfig
from sap_assistant.retrieval.datasets import Datasets
from sap_assistant.retrieval.fuzzy import FuzzyIndex, NumericFilter
from sap_assistant.types import ParameterSet, Record

logger = logging.getLogger(__name__)

_IDENTIFIER_PATTERN = re.compile(r"[A-Za-z]+-\d+|\d{3,}")


@dataclass(frozen=True, slots=True)
class Column:
    """An output column and the record field it is read from."""

    header: str
    field: str


@dataclass(frozen=True, slots=True)
class LookupPlan:
    """How one tool's parameters map onto one dataset index.

    Filters run in a fixed order: name -> material -> status -> numeric.
    """

    dataset: str
    columns: tuple[Column, ...]
    name_param: str | None = None
    material_param: str | None = None
    status_param: str | None = None
    comparison_param: str | None = None
    quantity_param: str | None = None
    numeric_field: str | None = None


INVENTORY_COLUMNS = (
    Column("Material", "Material"),
    Column("Description", "Description"),
    Column("Stock Level", "Stock Level"),
    Column("Plant", "Plant"),
)
SALES_ORDER_COLUMNS = (
    Column("ID", "id"),
    Column("Customer", "customer"),
    Column("Material", "material"),
    Column("Quantity", "quantity"),
    Column("Status", "status"),
    Column("Value", "value"),
)
PURCHASE_ORDER_COLUMNS = (
    Column("ID", "id"),
    Column("Vendor", "vendor"),
    Column("Material", "material"),
    Column("Quantity", "quantity"),
    Column("Status", "status"),
    Column("Value", "value"),
)

LOOKUP_PLANS: dict[str, LookupPlan] = {
    "query_inventory": LookupPlan(
        dataset="inventory",
        columns=INVENTORY_COLUMNS,
        name_param="material_id",
        comparison_param="comparison",
        quantity_param="quantity",
        numeric_field="Stock Level",
    ),
    "get_sales_orders": LookupPlan(
        dataset="sales_orders",
        columns=SALES_ORDER_COLUMNS,
        name_param="customer",
        material_param="material",
        status_param="status",
    ),
    "get_purchase_orders": LookupPlan(
        dataset="purchase_orders",
        columns=PURCHASE_ORDER_COLUMNS,
        name_param="vendor",
        material_param="material",
        status_param="status",
    ),
}

# Searched in order for single-record detail lookups.
DETAIL_SOURCES: tuple[tuple[str, tuple[Column, ...]], ...] = (
    ("inventory", INVENTORY_COLUMNS),
    ("sales_orders", SALES_ORDER_COLUMNS),
    ("purchase_orders", PURCHASE_ORDER_COLUMNS),
)


@dataclass(slots=True)
class RetrievalResult:
    """Raw records plus the declared column schema of the tool."""

    tool_name: str
    columns: tuple[Column, ...]
    records: list[Record] = field(default_factory=list)


@dataclass(slots=True)
class DetailResult:
    dataset: str
    columns: tuple[Column, ...]
    record: Record


class RetrievalExecutor:
    """Executes a lookup plan with compound fuzzy filters."""

    def __init__(
        self,
        datasets: Datasets,
        match_config: MatchConfig | None = None,
        plans: dict[str, LookupPlan] | None = None,
    ) -> None:
        self.datasets = datasets
        self.config = match_config or MatchConfig()
        self.plans = plans or LOOKUP_PLANS

    def supports(self, tool_name: str) -> bool:
        return tool_name in self.plans

    def run(self, tool_name: str, parameters: ParameterSet) -> RetrievalResult:
        plan = self.plans.get(tool_name)
        if plan is None:
            raise KeyError(f"No lookup plan for tool: {tool_name}")

        index = self.datasets.index(plan.dataset)
        records: list[Record] = list(index.records)

        name_query = _param(parameters, plan.name_param)
        if name_query:
            records = index.search_terms(name_query)
            logger.info(
                "Filtered %s by %s=%r: %d matches",
                plan.dataset,
                plan.name_param,
                name_query,
                len(records),
            )

        material_query = _param(parameters, plan.material_param)
        if material_query:
            records = self._filter_by_material(index, records, material_query)

        status_query = _param(parameters, plan.status_param)
        if status_query:
            status_index = index.subset(
                records, keys=["status"], threshold=self.config.status_threshold
            )
            records = status_index.search_terms(status_query)
            logger.info("Filtered %s by status=%r: %d matches", plan.dataset, status_query, len(records))

        numeric_filter = None
        if plan.numeric_field is not None:
            numeric_filter = NumericFilter.parse(
                _param(parameters, plan.comparison_param),
                _param(parameters, plan.quantity_param),
                field=plan.numeric_field,
            )
        if numeric_filter is not None:
            before = len(records)
            records = numeric_filter.apply(records)
            logger.info(
                "Filtered %s by %s %s %s: %d -> %d",
                plan.dataset,
                numeric_filter.field,
                numeric_filter.comparator,
                numeric_filter.threshold,
                before,
                len(records),
            )

        logger.info("Returning %d %s rows for %s", len(records), plan.dataset, tool_name)
        return RetrievalResult(tool_name=tool_name, columns=plan.columns, records=records)

    def find_record(self, identifier: Any) -> DetailResult | None:
        """Exact identity lookup across materials, sales and purchase orders."""
        candidates = _identifier_candidates(identifier)
        for dataset, columns in DETAIL_SOURCES:
            index = self.datasets.index(dataset)
            for candidate in candidates:
                record = index.get(candidate)
                if record is not None:
                    return DetailResult(dataset=dataset, columns=columns, record=record)
        return None

    def _filter_by_material(
        self, index: FuzzyIndex, records: list[Record], material_query: str
    ) -> list[Record]:
        # Order rows only carry material ids, so descriptive terms such as
        # "bearings" are first resolved to ids through the inventory index.
        material_ids = {
            str(item["Material"]).casefold()
            for item in self.datasets.inventory.search_terms(material_query)
        }
        by_id = [
            record
            for record in records
            if str(record.get("material", "")).casefold() in material_ids
        ]
        direct = index.subset(
            records, keys=["material"], threshold=self.config.inventory_threshold
        ).search_terms(material_query)
        selected = {id(record) for record in by_id} | {id(record) for record in direct}
        filtered = [record for record in records if id(record) in selected]
        logger.info("Filtered by material=%r: %d matches", material_query, len(filtered))
        return filtered


def _param(parameters: ParameterSet, name: str | None) -> str | None:
    if name is None:
        return None
    value = parameters.get(name)
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.casefold() in {"null", "none"}:
        return None
    return text


def _identifier_candidates(identifier: Any) -> list[str]:
    if identifier is None:
        return []
    text = str(identifier).strip()
    if not text:
        return []
    candidates = [text]
    candidates.extend(
        match for match in _IDENTIFIER_PATTERN.findall(text) if match not in candidates
    )
    return candidates

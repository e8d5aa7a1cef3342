"""Loaders for the static JSON collections backing each dataset index."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sap_assistant.types import KnowledgeEntry, Record

logger = logging.getLogger(__name__)

STOCK_FILE = "stock_level.json"
SALES_ORDERS_FILE = "sales_orders.json"
PURCHASE_ORDERS_FILE = "purchase_orders.json"
KNOWLEDGE_FILE = "knowledge_base.json"


def read_json_safely(path: str | Path, default: Any) -> Any:
    """Read a JSON file, falling back to ``default`` when missing or invalid."""
    file_path = Path(path)
    if not file_path.exists():
        logger.warning("Data file not found at %s; using default value", file_path)
        return default
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Error reading or parsing JSON file at %s: %s", file_path, exc)
        return default


def load_materials(path: str | Path) -> list[Record]:
    """Flatten ``{material_id: {...}}`` into rows carrying a ``Material`` key."""
    payload = read_json_safely(path, {})
    if not isinstance(payload, dict):
        logger.warning("Expected an object keyed by material id in %s", path)
        return []
    rows: list[Record] = []
    for material_id, data in payload.items():
        if not isinstance(data, dict):
            continue
        rows.append({"Material": material_id, **data})
    return rows


def load_orders(path: str | Path) -> list[Record]:
    payload = read_json_safely(path, [])
    if not isinstance(payload, list):
        logger.warning("Expected a list of orders in %s", path)
        return []
    return [dict(item) for item in payload if isinstance(item, dict)]


def load_knowledge(path: str | Path) -> list[KnowledgeEntry]:
    payload = read_json_safely(path, [])
    if not isinstance(payload, list):
        logger.warning("Expected a list of knowledge entries in %s", path)
        return []
    entries: list[KnowledgeEntry] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        term = str(item.get("term", "")).strip()
        definition = str(item.get("definition", "")).strip()
        if term and definition:
            entries.append(KnowledgeEntry(term=term, definition=definition))
    return entries

"""
Knowledge Source
================

Reads the curated campus knowledge file and turns it into KnowledgeItems
for the vector store.

FILE SHAPE:
    {
        "categories": [
            {
                "name": "图书馆",
                "items": [
                    {"id": "lib01", "question": "...", "answer": "...",
                     "keywords": ["图书馆", "开馆"]}
                ]
            }
        ]
    }

A category may use "category" instead of "name". Items missing an id,
question or answer are skipped with a warning rather than failing the load.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from campus_rag.config import Settings, get_settings
from campus_rag.exceptions import KnowledgeSourceError
from campus_rag.schemas.models import KnowledgeItem

logger = logging.getLogger(__name__)


def load_knowledge_file(path: Path) -> dict[str, Any]:
    """
    Read the raw knowledge JSON.

    Raises:
        KnowledgeSourceError: If the file is missing or not valid JSON
    """
    path = Path(path)
    if not path.exists():
        raise KnowledgeSourceError(f"Knowledge file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise KnowledgeSourceError(f"Could not read knowledge file {path}: {e}") from e


def parse_knowledge(data: dict[str, Any]) -> list[KnowledgeItem]:
    """
    Flatten categories into KnowledgeItems, preserving file order.

    Args:
        data: Parsed knowledge JSON

    Returns:
        Valid items in the order they appear
    """
    items: list[KnowledgeItem] = []

    for category in data.get("categories") or []:
        category_name = category.get("name") or category.get("category") or ""

        for raw in category.get("items") or []:
            try:
                items.append(KnowledgeItem(
                    id=str(raw.get("id", "")),
                    category=category_name,
                    question=raw.get("question", ""),
                    answer=raw.get("answer", ""),
                    keywords=tuple(str(k) for k in raw.get("keywords") or []),
                ))
            except ValidationError as e:
                logger.warning(
                    f"Skipping malformed knowledge item {raw.get('id', '?')!r}: "
                    f"{e.error_count()} validation errors"
                )

    return items


class KnowledgeSource:
    """
    Callable loader handed to the vector store.

    Usage:
        store = InMemoryVectorStore(embedder, loader=KnowledgeSource())
    """

    def __init__(self, path: Optional[Path] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self._path = Path(path or settings.knowledge_path)

    @property
    def path(self) -> Path:
        return self._path

    def __call__(self) -> list[KnowledgeItem]:
        items = parse_knowledge(load_knowledge_file(self._path))
        logger.info(f"Read {len(items)} knowledge items from {self._path}")
        return items

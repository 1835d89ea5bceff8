"""Tests for reading the knowledge file."""

import json
from pathlib import Path

import pytest

from campus_rag.exceptions import KnowledgeSourceError
from campus_rag.services.knowledge_service import KnowledgeSource, load_knowledge_file, parse_knowledge

from conftest import make_settings

BUNDLED_KNOWLEDGE = Path(__file__).resolve().parent.parent / "data" / "campus_knowledge.json"


def write_json(path: Path, data) -> Path:
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


class TestLoadKnowledgeFile:
    def test_missing_file(self, tmp_path):
        with pytest.raises(KnowledgeSourceError, match="not found"):
            load_knowledge_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(KnowledgeSourceError):
            load_knowledge_file(path)


class TestParseKnowledge:
    def test_flattens_in_order(self):
        data = {
            "categories": [
                {"name": "图书馆", "items": [
                    {"id": "lib01", "question": "图书馆几点开门？", "answer": "早8点到晚10点。", "keywords": ["图书馆"]},
                ]},
                {"category": "食堂", "items": [
                    {"id": "can01", "question": "食堂几点开饭？", "answer": "6:30。"},
                ]},
            ]
        }

        items = parse_knowledge(data)

        assert [item.id for item in items] == ["lib01", "can01"]
        assert items[0].category == "图书馆"
        assert items[0].keywords == ("图书馆",)
        assert items[1].category == "食堂"
        assert items[1].keywords == ()

    def test_skips_malformed_items(self):
        data = {"categories": [{"name": "宿舍", "items": [
            {"id": "dorm01", "question": "宿舍几点熄灯？"},
            {"id": "dorm02", "question": "宿舍能用电饭锅吗？", "answer": "不能。"},
        ]}]}

        assert [item.id for item in parse_knowledge(data)] == ["dorm02"]

    def test_no_categories(self):
        assert parse_knowledge({}) == []


class TestKnowledgeSource:
    def test_path_from_settings(self, tmp_path):
        path = write_json(tmp_path / "kb.json", {"categories": []})
        source = KnowledgeSource(settings=make_settings(knowledge_path=path))

        assert source.path == path
        assert source() == []

    def test_bundled_file(self):
        items = KnowledgeSource(path=BUNDLED_KNOWLEDGE, settings=make_settings())()

        ids = [item.id for item in items]
        assert "lib01" in ids
        assert len(ids) == len(set(ids))
        assert all(item.keywords for item in items)

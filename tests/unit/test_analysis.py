"""Tests for document analysis prompts and batch reports."""

from __future__ import annotations

from pathlib import Path
from typing import cast

import pytest

from watsonx_mcp.analysis import (
    CATEGORIES,
    BatchResult,
    DocumentAnalysis,
    DocumentAnalyzer,
    build_report,
    clip,
    normalize_category,
    process_batch,
    split_topics,
)
from watsonx_mcp.client import GenerationParameters, WatsonxClient


class ScriptedGenerator:
    """Answer each prompt type with a fixed reply and record the request."""

    def __init__(self, replies: dict[str, str] | None = None) -> None:
        self.replies = replies or {
            "Classify": " Code, obviously",
            "Extract": "python, testing, , ci ",
            "one sentence": " A short summary. ",
        }
        self.calls: list[tuple[str, str, GenerationParameters | None]] = []

    async def generate_text(
        self, prompt: str, model_id: str, parameters: GenerationParameters | None = None
    ) -> str:
        self.calls.append((prompt, model_id, parameters))
        for marker, reply in self.replies.items():
            if marker in prompt:
                return reply
        return "  generic reply  "


def make_analyzer(generator: ScriptedGenerator) -> DocumentAnalyzer:
    return DocumentAnalyzer(cast(WatsonxClient, generator), model_id="test/granite")


class TestHelpers:
    def test_clip_marks_truncation_only_when_asked(self) -> None:
        assert clip("abcdef", 3) == "abc"
        assert clip("abcdef", 3, ellipsis=True) == "abc..."
        assert clip("abc", 3, ellipsis=True) == "abc"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Technical", "technical"),
            ("  legal.", "legal"),
            ("Code, obviously", "code"),
            ("spaceship", "other"),
            ("", "other"),
        ],
    )
    def test_normalize_category(self, raw: str, expected: str) -> None:
        assert normalize_category(raw) == expected
        assert normalize_category(raw) in CATEGORIES

    def test_split_topics_drops_blanks(self) -> None:
        assert split_topics("a, b ,, c,") == ["a", "b", "c"]


class TestDocumentAnalyzer:
    @pytest.mark.asyncio
    async def test_summarize_truncates_long_documents(self) -> None:
        generator = ScriptedGenerator()
        analyzer = make_analyzer(generator)

        summary = await analyzer.summarize("x" * 5000, max_words=50)

        prompt, model_id, parameters = generator.calls[0]
        assert summary == "generic reply"
        assert model_id == "test/granite"
        assert "in 50 words or less" in prompt
        assert "x" * 4000 + "..." in prompt
        assert "x" * 4001 not in prompt
        assert parameters is not None
        assert parameters.stop_sequences == ["\n\n"]

    @pytest.mark.asyncio
    async def test_question_includes_question_text(self) -> None:
        generator = ScriptedGenerator()
        analyzer = make_analyzer(generator)

        await analyzer.question("Short doc.", "Who wrote it?")

        prompt = generator.calls[0][0]
        assert "Short doc." in prompt
        assert prompt.endswith("Question: Who wrote it?\n\nAnswer:")

    @pytest.mark.asyncio
    async def test_classify_uses_tight_generation_bounds(self) -> None:
        generator = ScriptedGenerator()
        analyzer = make_analyzer(generator)

        category = await analyzer.classify("def main(): pass")

        parameters = generator.calls[0][2]
        assert category == "code"
        assert parameters is not None
        assert parameters.max_new_tokens == 10
        assert parameters.stop_sequences == ["\n", ".", ","]

    @pytest.mark.asyncio
    async def test_extract_topics_and_one_liner(self) -> None:
        analyzer = make_analyzer(ScriptedGenerator())

        assert await analyzer.extract_topics("doc") == ["python", "testing", "ci"]
        assert await analyzer.one_line_summary("doc") == "A short summary."


class TestBatch:
    @pytest.mark.asyncio
    async def test_process_batch_runs_selected_operations(self, tmp_path: Path) -> None:
        first = tmp_path / "first.txt"
        first.write_text("print('hello')", encoding="utf-8")
        missing = tmp_path / "missing.txt"
        generator = ScriptedGenerator()

        batch = await process_batch(
            make_analyzer(generator), [first, missing], classify=True, topics=True
        )

        assert batch.count == 2
        ok, failed = batch.results
        assert ok.filename == "first.txt"
        assert ok.size == len("print('hello')")
        assert ok.category == "code"
        assert ok.topics == ["python", "testing", "ci"]
        assert ok.summary is None
        assert failed.filename == "missing.txt"
        assert failed.error
        assert len(generator.calls) == 2

    def test_build_report_aggregates_categories_and_topics(self) -> None:
        batch = BatchResult(
            results=[
                DocumentAnalysis(filename="a.txt", category="code", topics=["python", "ci"]),
                DocumentAnalysis(filename="b.txt", category="code", topics=["python"]),
                DocumentAnalysis(filename="c.txt", category="legal", topics=["contracts"]),
                DocumentAnalysis(filename="d.txt", error="unreadable"),
            ],
            elapsed_seconds=2.0,
        )

        report = build_report(batch)

        assert report.summary == {
            "total_documents": 4,
            "processing_time": "2.00s",
            "avg_time_per_doc": "0.50s",
        }
        assert report.category_distribution == {"code": 2, "legal": 1}
        assert report.top_topics[0].topic == "python"
        assert report.top_topics[0].count == 2
        assert len(report.documents) == 4

    def test_build_report_limits_top_topics(self) -> None:
        topics = [f"topic-{i}" for i in range(15)]
        batch = BatchResult(results=[DocumentAnalysis(filename="a.txt", topics=topics)])

        report = build_report(batch)

        assert len(report.top_topics) == 10
        assert build_report(BatchResult()).summary["avg_time_per_doc"] == "0.00s"

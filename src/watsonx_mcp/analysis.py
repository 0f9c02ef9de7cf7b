"""Single-document analysis and batch classification with watsonx.ai.

Every operation is one generation request over a truncated copy of the
document. Batches run one document at a time.
"""

from __future__ import annotations

import re
import time
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from .client import GenerationParameters, WatsonxClient

DEFAULT_MODEL_ID = "ibm/granite-3-3-8b-instruct"

CATEGORIES: tuple[str, ...] = (
    "technical",
    "business",
    "creative",
    "personal",
    "code",
    "legal",
    "marketing",
    "educational",
    "other",
)

SUMMARY_PROMPT = """Summarize the following document in {max_words} words or less. Focus on the key points and main ideas.

Document:
{document}

Summary:"""

ANALYSIS_PROMPT = """Analyze the following document and provide:
1. Document Type (e.g., technical documentation, article, notes, code, etc.)
2. Main Topics (comma-separated list of 3-5 topics)
3. Key Entities (people, organizations, technologies mentioned)
4. Sentiment (positive, negative, neutral)

Document:
{document}

Analysis:"""

QUESTION_PROMPT = """Based on the following document, answer the question.

Document:
{document}

Question: {question}

Answer:"""

CLASSIFY_PROMPT = """Classify this document into exactly one category. Reply with ONLY the category name, nothing else.

Categories: {categories}

Document:
{document}

Category:"""

TOPICS_PROMPT = """Extract 3-5 key topics from this document. Return only a comma-separated list.

Document:
{document}

Topics:"""

ONE_LINER_PROMPT = """Summarize this document in exactly one sentence (max 20 words).

Document:
{document}

One-line summary:"""


def clip(text: str, limit: int, *, ellipsis: bool = False) -> str:
    """Truncate ``text`` to ``limit`` characters, optionally marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + ("..." if ellipsis else "")


def normalize_category(raw: str) -> str:
    """Map a free-form model reply onto one of ``CATEGORIES``."""
    words = raw.strip().lower().split()
    if not words:
        return "other"
    category = re.sub(r"[^a-z]", "", words[0])
    return category if category in CATEGORIES else "other"


def split_topics(raw: str) -> list[str]:
    return [topic.strip() for topic in raw.split(",") if topic.strip()]


class DocumentAnalyzer:
    """Prompt templates for summarizing, analyzing and classifying documents."""

    def __init__(self, client: WatsonxClient, model_id: str = DEFAULT_MODEL_ID) -> None:
        self._client = client
        self.model_id = model_id

    async def _generate(self, prompt: str, parameters: GenerationParameters) -> str:
        text = await self._client.generate_text(prompt, self.model_id, parameters)
        return text.strip()

    async def summarize(self, text: str, max_words: int = 200) -> str:
        prompt = SUMMARY_PROMPT.format(
            max_words=max_words, document=clip(text, 4000, ellipsis=True)
        )
        return await self._generate(
            prompt,
            GenerationParameters(max_new_tokens=300, temperature=0.3, stop_sequences=["\n\n"]),
        )

    async def analyze(self, text: str) -> str:
        prompt = ANALYSIS_PROMPT.format(document=clip(text, 3000, ellipsis=True))
        return await self._generate(
            prompt, GenerationParameters(max_new_tokens=300, temperature=0.2)
        )

    async def question(self, text: str, question: str) -> str:
        prompt = QUESTION_PROMPT.format(
            document=clip(text, 3500, ellipsis=True), question=question
        )
        return await self._generate(
            prompt, GenerationParameters(max_new_tokens=300, temperature=0.3)
        )

    async def classify(self, text: str) -> str:
        prompt = CLASSIFY_PROMPT.format(
            categories=", ".join(CATEGORIES), document=clip(text, 2000)
        )
        raw = await self._generate(
            prompt,
            GenerationParameters(
                max_new_tokens=10, temperature=0.1, stop_sequences=["\n", ".", ","]
            ),
        )
        return normalize_category(raw)

    async def extract_topics(self, text: str) -> list[str]:
        prompt = TOPICS_PROMPT.format(document=clip(text, 2000))
        raw = await self._generate(
            prompt, GenerationParameters(max_new_tokens=100, temperature=0.2)
        )
        return split_topics(raw)

    async def one_line_summary(self, text: str) -> str:
        prompt = ONE_LINER_PROMPT.format(document=clip(text, 2000))
        return await self._generate(
            prompt, GenerationParameters(max_new_tokens=50, temperature=0.3)
        )


class DocumentAnalysis(BaseModel):
    """Per-document result of a batch run."""

    filename: str
    path: str | None = None
    size: int | None = None
    processed_at: datetime | None = None
    category: str | None = None
    topics: list[str] | None = None
    summary: str | None = None
    error: str | None = None


class BatchResult(BaseModel):
    results: list[DocumentAnalysis] = Field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def count(self) -> int:
        return len(self.results)


class TopicCount(BaseModel):
    topic: str
    count: int


class BatchReport(BaseModel):
    """Aggregated view of a batch run, written to the output directory."""

    summary: dict[str, Any]
    category_distribution: dict[str, int]
    top_topics: list[TopicCount]
    documents: list[DocumentAnalysis]


async def process_batch(
    analyzer: DocumentAnalyzer,
    paths: list[Path],
    *,
    classify: bool = False,
    topics: bool = False,
    summarize: bool = False,
) -> BatchResult:
    """Run the selected analyses over each file in order.

    A file that cannot be read or analyzed is recorded with its error and
    the batch continues.
    """
    results: list[DocumentAnalysis] = []
    started = time.perf_counter()

    for position, path in enumerate(paths, start=1):
        logger.info(f"[{position}/{len(paths)}] Processing: {path.name}")
        try:
            content = path.read_text(encoding="utf-8")
            result = DocumentAnalysis(
                filename=path.name,
                path=str(path),
                size=len(content),
                processed_at=datetime.now(UTC),
            )
            if classify:
                result.category = await analyzer.classify(content)
            if topics:
                result.topics = await analyzer.extract_topics(content)
            if summarize:
                result.summary = await analyzer.one_line_summary(content)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Failed to process {path.name}: {exc}")
            result = DocumentAnalysis(filename=path.name, error=str(exc))
        results.append(result)

    return BatchResult(results=results, elapsed_seconds=time.perf_counter() - started)


def build_report(batch: BatchResult, top_n: int = 10) -> BatchReport:
    """Summarize categories and topics across a batch."""
    categories = Counter(r.category for r in batch.results if r.category)
    topic_counts = Counter(topic for r in batch.results for topic in r.topics or [])

    elapsed = round(batch.elapsed_seconds, 2)
    per_doc = round(batch.elapsed_seconds / batch.count, 2) if batch.count else 0.0

    return BatchReport(
        summary={
            "total_documents": batch.count,
            "processing_time": f"{elapsed:.2f}s",
            "avg_time_per_doc": f"{per_doc:.2f}s",
        },
        category_distribution=dict(categories),
        top_topics=[
            TopicCount(topic=topic, count=count) for topic, count in topic_counts.most_common(top_n)
        ],
        documents=batch.results,
    )

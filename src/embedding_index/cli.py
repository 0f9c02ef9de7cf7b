"""Command line interface for the watsonx.ai embedding index.

Usage:
    watsonx-index build 50
    watsonx-index search "how are deployments configured?"
    watsonx-index rag "what does the release checklist require?"
    watsonx-index stats
    watsonx-index analyze notes.txt --question "who owns this?"
    watsonx-index batch 20 --classify --topics
"""

import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Any

import click
import httpx
from loguru import logger

from embedding_index.config import WatsonxSettings, load_config
from embedding_index.embedding import WatsonxEmbedding
from embedding_index.index import IndexBuilder, IndexStore, list_source_files
from embedding_index.models import BuildResult, RagAnswer, SearchResult
from embedding_index.rag import RagAssembler
from embedding_index.search import search_index
from watsonx_mcp.analysis import DocumentAnalyzer, build_report, process_batch
from watsonx_mcp.auth import Credentials, IAMTokenManager, MissingCredentialsError
from watsonx_mcp.client import WatsonxClient
from watsonx_mcp.transform import WatsonxAPIError, translate_watsonx_fault

REMOTE_ERRORS = (WatsonxAPIError, httpx.HTTPError, ValueError, RuntimeError)


def configure_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO", format="<level>{message}</level>")


def require_credentials() -> Credentials:
    """Load credentials or exit before any remote call is attempted."""
    try:
        return Credentials.from_env().require()
    except (MissingCredentialsError, FileNotFoundError) as e:
        logger.error(str(e))
        sys.exit(1)


def run_remote(coro: Any) -> Any:
    """Run a coroutine, turning remote failures into exit status 1."""
    try:
        return asyncio.run(coro)
    except WatsonxAPIError as e:
        fault = translate_watsonx_fault(e)
        hint = " (retryable)" if fault["retryable"] else ""
        logger.error(f"watsonx.ai request failed: {e}{hint}")
        sys.exit(1)
    except REMOTE_ERRORS as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


def watsonx_client(http_client: httpx.AsyncClient, credentials: Credentials) -> WatsonxClient:
    return WatsonxClient(http_client, IAMTokenManager(http_client, credentials), credentials)


async def _build(
    settings: WatsonxSettings, credentials: Credentials, source: Path, max_documents: int
) -> BuildResult:
    async with httpx.AsyncClient(timeout=settings.service.timeout_seconds) as http_client:
        embedder = WatsonxEmbedding(watsonx_client(http_client, credentials), settings.embedding)
        builder = IndexBuilder(
            embedder, IndexStore(settings.index.index_path), settings.embedding, settings.index
        )
        return await builder.build(source, max_documents)


async def _search(
    settings: WatsonxSettings, credentials: Credentials, query: str, top_k: int
) -> list[SearchResult]:
    index = IndexStore(settings.index.index_path).load()
    async with httpx.AsyncClient(timeout=settings.service.timeout_seconds) as http_client:
        embedder = WatsonxEmbedding(watsonx_client(http_client, credentials), settings.embedding)
        return await search_index(query, index, embedder, top_k)


async def _rag(
    settings: WatsonxSettings, credentials: Credentials, question: str, top_k: int
) -> RagAnswer:
    async with httpx.AsyncClient(timeout=settings.service.timeout_seconds) as http_client:
        client = watsonx_client(http_client, credentials)
        assembler = RagAssembler(
            client,
            WatsonxEmbedding(client, settings.embedding),
            IndexStore(settings.index.index_path),
            settings,
        )
        return await assembler.answer(question, top_k=top_k)


async def _analyze(
    settings: WatsonxSettings,
    credentials: Credentials,
    text: str,
    question: str | None,
    mode: str,
) -> str:
    async with httpx.AsyncClient(timeout=settings.service.timeout_seconds) as http_client:
        analyzer = DocumentAnalyzer(
            watsonx_client(http_client, credentials), settings.generation.model_id
        )
        if question:
            return await analyzer.question(text, question)
        if mode == "analysis":
            return await analyzer.analyze(text)
        return await analyzer.summarize(text)


async def _batch(
    settings: WatsonxSettings,
    credentials: Credentials,
    paths: list[Path],
    options: dict[str, bool],
) -> dict[str, Any]:
    async with httpx.AsyncClient(timeout=settings.service.timeout_seconds) as http_client:
        analyzer = DocumentAnalyzer(
            watsonx_client(http_client, credentials), settings.generation.model_id
        )
        batch = await process_batch(analyzer, paths, **options)
    return build_report(batch).model_dump(mode="json")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config-name", default="default", help="Hydra config name")
@click.option(
    "--override",
    "overrides",
    multiple=True,
    help="Hydra config override, e.g. index.rag_top_k=5 (repeatable)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_name: str, overrides: tuple[str, ...]):
    """Build, search and query a local watsonx.ai embedding index."""
    configure_logging(verbose)
    ctx.obj = load_config(config_name, overrides=list(overrides))


@cli.command()
@click.argument("max_documents", type=int, required=False)
@click.option(
    "--documents-path",
    type=click.Path(path_type=Path),
    help="Directory of .txt files (defaults to the configured documents path)",
)
@click.pass_obj
def build(settings: WatsonxSettings, max_documents: int | None, documents_path: Path | None):
    """Rebuild the index from up to MAX_DOCUMENTS text files."""
    credentials = require_credentials()
    source = documents_path or Path(settings.index.documents_path)
    limit = settings.index.max_documents if max_documents is None else max_documents

    try:
        result = run_remote(_build(settings, credentials, source, limit))
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    click.echo(f"Indexed {result.indexed_count} documents into {result.index_path}")
    for skipped in result.skipped:
        click.echo(f"Skipped {skipped.filename}: {skipped.error}")


@cli.command()
@click.argument("query")
@click.option(
    "--top-k", type=click.IntRange(min=1), default=None, help="Number of results to return"
)
@click.pass_obj
def search(settings: WatsonxSettings, query: str, top_k: int | None):
    """Find the indexed documents most similar to QUERY."""
    credentials = require_credentials()
    if top_k is None:
        top_k = settings.index.search_top_k

    results = run_remote(_search(settings, credentials, query, top_k))
    if not results:
        click.echo("Index is empty. Run 'build' first.")
        return

    click.echo(f'Top {len(results)} results for: "{query}"')
    click.echo()
    for result in results:
        click.echo(f"{result.rank}. {result.filename} ({result.similarity:.4f})")
        click.echo(f"   {result.preview[:80]}...")
        click.echo()


@cli.command()
@click.argument("question")
@click.option(
    "--top-k", type=click.IntRange(min=1), default=None, help="Documents to retrieve as context"
)
@click.pass_obj
def rag(settings: WatsonxSettings, question: str, top_k: int | None):
    """Answer QUESTION from the most relevant indexed documents."""
    credentials = require_credentials()
    if top_k is None:
        top_k = settings.index.rag_top_k

    answer = run_remote(_rag(settings, credentials, question, top_k))
    click.echo("Answer:")
    click.echo(answer.answer)
    if answer.sources:
        click.echo()
        click.echo(f"Sources: {', '.join(answer.sources)}")
    for skipped in answer.skipped:
        click.echo(f"Skipped {skipped.filename}: {skipped.error}")


@cli.command()
@click.pass_obj
def stats(settings: WatsonxSettings):
    """Show index statistics. Needs no credentials."""
    store = IndexStore(settings.index.index_path)
    index = store.load()

    click.echo("Index Statistics")
    click.echo(f"  Documents:  {len(index)}")
    click.echo(f"  Created:    {index.metadata.created.isoformat()}")
    updated = index.metadata.updated.isoformat() if index.metadata.updated else "never"
    click.echo(f"  Updated:    {updated}")
    click.echo(f"  Model:      {index.metadata.embedding_model or 'n/a'}")
    click.echo(f"  Index file: {store.index_path}")

    if not index.is_empty:
        click.echo()
        click.echo("Sample documents:")
        for document in index.documents[:5]:
            click.echo(f"  - {document.filename} ({document.length} chars)")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--question", "-q", default=None, help="Ask a question about the document")
@click.option(
    "--mode",
    type=click.Choice(["summary", "analysis"]),
    default="summary",
    show_default=True,
    help="Summarize or analyze the document",
)
@click.pass_obj
def analyze(settings: WatsonxSettings, file: Path, question: str | None, mode: str):
    """Summarize, analyze or question a single document."""
    credentials = require_credentials()
    text = file.read_text(encoding="utf-8")
    logger.info(f"Document: {file.name} ({len(text)} chars)")

    output = run_remote(_analyze(settings, credentials, text, question, mode))
    click.echo(output)


@cli.command()
@click.argument("count", type=click.IntRange(min=1), required=False)
@click.option("--classify", is_flag=True, help="Classify each document")
@click.option("--topics", is_flag=True, help="Extract topics from each document")
@click.option("--summarize", is_flag=True, help="Write a one-line summary per document")
@click.pass_obj
def batch(
    settings: WatsonxSettings, count: int | None, classify: bool, topics: bool, summarize: bool
):
    """Analyze COUNT documents and write a JSON report.

    Without any of --classify, --topics or --summarize all three run.
    """
    credentials = require_credentials()
    if count is None:
        count = settings.analysis.batch_count
    if not (classify or topics or summarize):
        classify = topics = summarize = True

    try:
        paths = list_source_files(
            Path(settings.index.documents_path), settings.index.file_suffix
        )[:count]
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    options = {"classify": classify, "topics": topics, "summarize": summarize}
    report = run_remote(_batch(settings, credentials, paths, options))

    output_dir = Path(settings.analysis.output_path)
    output_dir.mkdir(parents=True, exist_ok=True)
    out_file = output_dir / f"batch-{int(time.time() * 1000)}.json"
    out_file.write_text(json.dumps(report, indent=2), encoding="utf-8")

    click.echo(f"Documents: {report['summary']['total_documents']}")
    for category, total in report["category_distribution"].items():
        click.echo(f"  {category}: {total}")
    for position, entry in enumerate(report["top_topics"][:5], start=1):
        click.echo(f"  {position}. {entry['topic']} ({entry['count']})")
    click.echo(f"Results saved to: {out_file}")


if __name__ == "__main__":
    cli()

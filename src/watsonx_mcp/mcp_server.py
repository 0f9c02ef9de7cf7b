"""MCP server entry point exposing watsonx.ai tools over stdio."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Coroutine
from importlib import metadata
from typing import Any, cast

import httpx
from loguru import logger

from embedding_index.config import load_config

from .auth import Credentials, IAMTokenManager
from .client import WatsonxClient
from .tools import (
    TOOLS,
    ChatModelId,
    EmbeddingModelId,
    GenerationModelId,
    MaxNewTokens,
    Messages,
    ModelLimit,
    Prompt,
    Query,
    Question,
    RagTopK,
    SamplingTopK,
    SearchTopK,
    Temperature,
    Texts,
    ToolDispatcher,
    TopP,
)

FastMCP: type[Any] | None = None

__all__ = [
    "run_server",
    "run",
    "__version__",
    "FastMCP",
    "Credentials",
    "WatsonxClient",
    "httpx",
]


def _resolve_version() -> str:
    """Return the installed distribution version or fall back to the project default."""

    try:
        return metadata.version("watsonx-mcp")
    except metadata.PackageNotFoundError:
        return "2.0.0"


__version__ = _resolve_version()


def _import_fastmcp() -> type[Any]:
    """Import FastMCP lazily so tests can stub the implementation."""

    global FastMCP
    if FastMCP is not None:
        return FastMCP

    try:
        import fastmcp
        from fastmcp import FastMCP as FastMCPClass

        # Disable banner for stdio transport compatibility
        fastmcp.settings.show_cli_banner = False
    except ModuleNotFoundError as exc:  # pragma: no cover - exercised in tests
        raise ImportError(
            "FastMCP is required to run the watsonx MCP server. Install `fastmcp` to proceed."
        ) from exc

    FastMCP = cast(type[Any], FastMCPClass)
    return FastMCP


def register_tools(server: Any, dispatcher: ToolDispatcher) -> None:
    """Register one FastMCP tool per catalog entry, each forwarding to the dispatcher.

    Names and descriptions come from ``TOOLS``; parameter bounds come from the
    annotations shared with the dispatcher's argument models.
    """

    catalog = {definition.name: definition for definition in TOOLS}

    def tool(func: Callable[..., Any]) -> Callable[..., Any]:
        definition = catalog[func.__name__]
        return server.tool(name=definition.name, description=definition.description)(func)

    @tool
    async def watsonx_generate(
        prompt: Prompt,
        model_id: GenerationModelId = None,
        max_new_tokens: MaxNewTokens = 500,
        temperature: Temperature = 0.7,
        top_p: TopP = 1.0,
        top_k: SamplingTopK = 50,
    ) -> str:
        result = await dispatcher.call_tool(
            "watsonx_generate",
            {
                "prompt": prompt,
                "model_id": model_id,
                "max_new_tokens": max_new_tokens,
                "temperature": temperature,
                "top_p": top_p,
                "top_k": top_k,
            },
        )
        return result.text

    @tool
    async def watsonx_list_models(limit: ModelLimit = 100) -> str:
        """Returns a JSON list of models with id, name, provider and tasks."""
        result = await dispatcher.call_tool("watsonx_list_models", {"limit": limit})
        return result.text

    @tool
    async def watsonx_embeddings(texts: Texts, model_id: EmbeddingModelId = None) -> str:
        result = await dispatcher.call_tool(
            "watsonx_embeddings", {"texts": texts, "model_id": model_id}
        )
        return result.text

    @tool
    async def watsonx_chat(
        messages: Messages,
        model_id: ChatModelId = None,
        max_new_tokens: MaxNewTokens = 500,
        temperature: Temperature = 0.7,
    ) -> str:
        result = await dispatcher.call_tool(
            "watsonx_chat",
            {
                "messages": messages,
                "model_id": model_id,
                "max_new_tokens": max_new_tokens,
                "temperature": temperature,
            },
        )
        return result.text

    @tool
    async def watsonx_search_documents(query: Query, top_k: SearchTopK = 5) -> str:
        """Returns a JSON list of documents with filename, preview, length,
        similarity and rank."""
        result = await dispatcher.call_tool(
            "watsonx_search_documents", {"query": query, "top_k": top_k}
        )
        return result.text

    @tool
    async def watsonx_rag_query(question: Question, top_k: RagTopK = 3) -> str:
        """Returns JSON with status, answer and the source filenames used."""
        result = await dispatcher.call_tool(
            "watsonx_rag_query", {"question": question, "top_k": top_k}
        )
        return result.text


async def run_server() -> None:
    """Run the MCP server event loop."""

    credentials = Credentials.from_env()
    settings = load_config()
    fastmcp_class = _import_fastmcp()

    async with httpx.AsyncClient(timeout=settings.service.timeout_seconds) as http_client:
        client: WatsonxClient | None = None
        if credentials.is_configured:
            client = WatsonxClient(
                http_client, IAMTokenManager(http_client, credentials), credentials
            )
        else:
            logger.warning("WATSONX_API_KEY is not set; tool calls will report an error.")

        dispatcher = ToolDispatcher(client, settings)

        server = _instantiate_fastmcp(
            fastmcp_class,
            server_id="watsonx-mcp-server",
            name="watsonx-mcp-server",
            version=__version__,
            description="MCP server exposing IBM watsonx.ai generation, chat and embeddings.",
        )
        register_tools(server, dispatcher)

        logger.info("watsonx MCP server running on stdio")
        await server.run_async()


def run(main: Callable[[], Coroutine[Any, Any, None]] | None = None) -> None:
    """Synchronous helper for CLI entry points."""
    entry = main or run_server
    try:
        asyncio.run(entry())
    except KeyboardInterrupt:
        logger.warning("MCP server interrupted by user.")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled MCP server failure: {}", exc)
        raise


def _instantiate_fastmcp(class_: type[Any], **metadata: Any) -> Any:
    signature = inspect.signature(class_.__init__)
    parameters = signature.parameters

    filtered: dict[str, Any] = {key: value for key, value in metadata.items() if key in parameters}

    if "server_id" in metadata and "server_id" not in filtered and "id" in parameters:
        filtered["id"] = metadata["server_id"]

    if not filtered and any(
        param.kind == inspect.Parameter.VAR_KEYWORD for param in parameters.values()
    ):
        filtered = metadata

    return class_(**filtered)

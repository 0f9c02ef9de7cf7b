"""MCP tool catalog and dispatcher for watsonx.ai operations.

``TOOLS`` names and describes every tool. The argument annotations below are
shared by the pydantic argument models and the FastMCP tool signatures in
:mod:`watsonx_mcp.mcp_server`, so the served input schema carries the same
bounds the dispatcher enforces. ``ToolDispatcher.call_tool()`` maps a tool
name and raw arguments onto the remote operation and always returns a text
result; failures come back as error text rather than exceptions.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Annotated, Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from .client import GenerationParameters, WatsonxClient
from .transform import CHAT_STOP_SEQUENCES, format_chat_prompt

if TYPE_CHECKING:
    from embedding_index.config import WatsonxSettings
    from embedding_index.index import IndexStore

NOT_CONFIGURED_MESSAGE = (
    "Error: watsonx.ai not configured. Set WATSONX_API_KEY environment variable."
)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


Prompt = Annotated[str, Field(min_length=1, description="The prompt to send to the model")]
GenerationModelId = Annotated[
    str | None,
    Field(
        description=(
            "Model ID (e.g., 'ibm/granite-3-3-8b-instruct', 'meta-llama/llama-3-70b-instruct')"
        )
    ),
]
MaxNewTokens = Annotated[
    int, Field(ge=1, le=8192, description="Maximum number of tokens to generate")
]
Temperature = Annotated[
    float, Field(ge=0.0, le=2.0, description="Temperature for sampling (0-2)")
]
TopP = Annotated[float, Field(gt=0.0, le=1.0, description="Top-p nucleus sampling")]
SamplingTopK = Annotated[int, Field(ge=1, le=100, description="Top-k sampling")]
ModelLimit = Annotated[
    int, Field(ge=1, le=200, description="Maximum number of models to list")
]
Texts = Annotated[list[str], Field(min_length=1, description="Array of texts to embed")]
EmbeddingModelId = Annotated[str | None, Field(description="Embedding model ID")]
Messages = Annotated[
    list[ChatMessage], Field(min_length=1, description="Array of chat messages")
]
ChatModelId = Annotated[str | None, Field(description="Chat model ID")]
Query = Annotated[str, Field(min_length=1, description="Natural language search query")]
SearchTopK = Annotated[int, Field(ge=1, le=100, description="Number of results to return")]
Question = Annotated[
    str, Field(min_length=1, description="Question to answer from indexed documents")
]
RagTopK = Annotated[int, Field(ge=1, le=20, description="Documents to retrieve as context")]


class GenerateArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt: Prompt
    model_id: GenerationModelId = None
    max_new_tokens: MaxNewTokens = 500
    temperature: Temperature = 0.7
    top_p: TopP = 1.0
    top_k: SamplingTopK = 50


class ListModelsArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    limit: ModelLimit = 100


class EmbeddingsArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    texts: Texts
    model_id: EmbeddingModelId = None


class ChatArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: Messages
    model_id: ChatModelId = None
    max_new_tokens: MaxNewTokens = 500
    temperature: Temperature = 0.7


class SearchDocumentsArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: Query
    top_k: SearchTopK = 5


class RagQueryArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    question: Question
    top_k: RagTopK = 3


class ToolDefinition(BaseModel):
    """A catalog entry: the served tool name, its description and argument model."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    arguments: type[BaseModel] = Field(exclude=True)


TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="watsonx_generate",
        description=(
            "Generate text using IBM watsonx.ai foundation models (Granite, Llama, Mistral, etc.)"
        ),
        arguments=GenerateArguments,
    ),
    ToolDefinition(
        name="watsonx_list_models",
        description="List available foundation models in watsonx.ai",
        arguments=ListModelsArguments,
    ),
    ToolDefinition(
        name="watsonx_embeddings",
        description="Generate text embeddings using watsonx.ai embedding models",
        arguments=EmbeddingsArguments,
    ),
    ToolDefinition(
        name="watsonx_chat",
        description="Have a conversation with watsonx.ai chat models",
        arguments=ChatArguments,
    ),
    ToolDefinition(
        name="watsonx_search_documents",
        description="Search the local embedding index for documents similar to a query",
        arguments=SearchDocumentsArguments,
    ),
    ToolDefinition(
        name="watsonx_rag_query",
        description="Answer a question from the most relevant indexed documents",
        arguments=RagQueryArguments,
    ),
)

_TOOLS_BY_NAME: dict[str, ToolDefinition] = {tool.name: tool for tool in TOOLS}


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """Text-typed result of a tool invocation."""

    content: list[TextContent]
    is_error: bool = False

    @classmethod
    def from_text(cls, text: str, *, is_error: bool = False) -> ToolResult:
        return cls(content=[TextContent(text=text)], is_error=is_error)

    @property
    def text(self) -> str:
        return "\n".join(item.text for item in self.content)


class ToolDispatcher:
    """Route tool calls to the watsonx.ai client."""

    def __init__(
        self,
        client: WatsonxClient | None,
        settings: WatsonxSettings | None = None,
        store: IndexStore | None = None,
    ) -> None:
        if settings is None:
            from embedding_index.config import WatsonxSettings

            settings = WatsonxSettings()
        self._client = client
        self._settings = settings
        self._store = store
        self._handlers: dict[str, Callable[[Any], Awaitable[str]]] = {
            "watsonx_generate": self._generate,
            "watsonx_list_models": self._list_models,
            "watsonx_embeddings": self._embeddings,
            "watsonx_chat": self._chat,
            "watsonx_search_documents": self._search_documents,
            "watsonx_rag_query": self._rag_query,
        }

    @property
    def store(self) -> IndexStore:
        if self._store is None:
            from embedding_index.index import IndexStore

            self._store = IndexStore(self._settings.index.index_path)
        return self._store

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Invoke a tool by name. Never raises."""
        if self._client is None:
            return ToolResult.from_text(NOT_CONFIGURED_MESSAGE, is_error=True)

        definition = _TOOLS_BY_NAME.get(name)
        if definition is None:
            return ToolResult.from_text(f"Unknown tool: {name}", is_error=True)

        logger.info(f"Tool call: {name}")
        try:
            parsed = definition.arguments.model_validate(arguments or {})
            text = await self._handlers[name](parsed)
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Tool {name} failed: {exc}")
            return ToolResult.from_text(f"Error calling watsonx.ai: {exc}", is_error=True)

        return ToolResult.from_text(text)

    @property
    def client(self) -> WatsonxClient:
        if self._client is None:
            raise RuntimeError(NOT_CONFIGURED_MESSAGE)
        return self._client

    async def _generate(self, args: GenerateArguments) -> str:
        return await self.client.generate_text(
            args.prompt,
            args.model_id or self._settings.generation.model_id,
            GenerationParameters(
                max_new_tokens=args.max_new_tokens,
                temperature=args.temperature,
                top_p=args.top_p,
                top_k=args.top_k,
            ),
        )

    async def _list_models(self, args: ListModelsArguments) -> str:
        models = await self.client.list_models(limit=args.limit)
        return json.dumps([model.model_dump() for model in models], indent=2)

    async def _embeddings(self, args: EmbeddingsArguments) -> str:
        response = await self.client.embed_texts(
            args.texts, args.model_id or self._settings.embedding.model_id
        )
        return json.dumps(response.raw or response.model_dump(), indent=2)

    async def _chat(self, args: ChatArguments) -> str:
        prompt = format_chat_prompt(message.model_dump() for message in args.messages)
        text = await self.client.generate_text(
            prompt,
            args.model_id or self._settings.generation.model_id,
            GenerationParameters(
                max_new_tokens=args.max_new_tokens,
                temperature=args.temperature,
                stop_sequences=list(CHAT_STOP_SEQUENCES),
            ),
        )
        return text.strip()

    async def _search_documents(self, args: SearchDocumentsArguments) -> str:
        from embedding_index.embedding import WatsonxEmbedding
        from embedding_index.search import search_index

        embedder = WatsonxEmbedding(self.client, self._settings.embedding)
        results = await search_index(args.query, self.store.load(), embedder, args.top_k)
        if not results:
            return "Index is empty. Run 'build' first."
        return json.dumps([r.model_dump(mode="json") for r in results], indent=2)

    async def _rag_query(self, args: RagQueryArguments) -> str:
        from embedding_index.embedding import WatsonxEmbedding
        from embedding_index.rag import RagAssembler

        assembler = RagAssembler(
            self.client,
            WatsonxEmbedding(self.client, self._settings.embedding),
            self.store,
            self._settings,
        )
        answer = await assembler.answer(args.question, top_k=args.top_k)
        return json.dumps(
            {"status": answer.status.value, "answer": answer.answer, "sources": answer.sources},
            indent=2,
        )

"""Minimal watsonx.ai REST client for generation, embeddings and model specs."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from .auth import Credentials, IAMTokenManager
from .transform import error_from_response, first_generated_text


class GenerationParameters(BaseModel):
    """Sampling parameters sent with a text generation request."""

    max_new_tokens: int = Field(default=500, ge=1, le=8192)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, gt=0.0, le=1.0)
    top_k: int | None = Field(default=None, ge=1, le=100)
    stop_sequences: list[str] | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class FoundationModel(BaseModel):
    """Summary of a foundation model spec, as returned to MCP clients."""

    id: str = Field(description="Model identifier", examples=["ibm/granite-3-3-8b-instruct"])
    name: str | None = Field(default=None, description="Human-readable label")
    provider: str | None = Field(default=None, description="Model provider")
    tasks: list[str] = Field(default_factory=list, description="Supported task IDs")

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> FoundationModel:
        tasks = [
            task["id"] if isinstance(task, dict) else str(task)
            for task in resource.get("tasks") or []
        ]
        return cls(
            id=resource["model_id"],
            name=resource.get("label"),
            provider=resource.get("provider"),
            tasks=tasks,
        )


class EmbeddingResponse(BaseModel):
    """Vectors returned by the embeddings endpoint, in input order."""

    model_id: str
    vectors: list[list[float]]
    input_token_count: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)


class WatsonxClient:
    """Wrap the watsonx.ai endpoints used by the tools and the index."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_manager: IAMTokenManager,
        credentials: Credentials,
    ) -> None:
        self._client = client
        self._token_manager = token_manager
        self._credentials = credentials

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    def _url(self, path: str) -> str:
        return f"{self._credentials.url.rstrip('/')}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = self._url(path)
        query = {"version": self._credentials.api_version, **(params or {})}
        headers = await self._token_manager.auth_headers()

        logger.debug(f"Making API request to {method} {url}")
        response = await self._client.request(method, url, params=query, json=json, headers=headers)
        logger.debug(f"API response status: {response.status_code}")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise error_from_response(response) from exc

        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"Unexpected watsonx.ai response for {path}: {type(body).__name__}")
        return body

    async def generate_text(
        self,
        prompt: str,
        model_id: str,
        parameters: GenerationParameters | None = None,
    ) -> str:
        """Generate text for a single prompt and return the first candidate."""
        payload: dict[str, Any] = {
            "input": prompt,
            "model_id": model_id,
            "parameters": (parameters or GenerationParameters()).to_payload(),
            **self._credentials.workspace(),
        }
        body = await self._request("POST", "/ml/v1/text/generation", json=payload)
        text = first_generated_text(body)
        logger.debug(f"Generated {len(text)} characters with {model_id}")
        return text

    async def embed_texts(self, texts: list[str], model_id: str) -> EmbeddingResponse:
        """Embed texts with the given model, preserving input order."""
        payload: dict[str, Any] = {
            "inputs": texts,
            "model_id": model_id,
            **self._credentials.workspace(),
        }
        body = await self._request("POST", "/ml/v1/text/embeddings", json=payload)
        vectors = [list(item["embedding"]) for item in body.get("results") or []]
        logger.debug(f"Embedded {len(texts)} texts with {model_id}")
        return EmbeddingResponse(
            model_id=str(body.get("model_id", model_id)),
            vectors=vectors,
            input_token_count=body.get("input_token_count"),
            raw=body,
        )

    async def list_models(self, limit: int = 100) -> list[FoundationModel]:
        """List available foundation model specs."""
        body = await self._request("GET", "/ml/v1/foundation_model_specs", params={"limit": limit})
        resources = body.get("resources") or []
        logger.info(f"Retrieved {len(resources)} foundation model specs")
        return [FoundationModel.from_resource(resource) for resource in resources]

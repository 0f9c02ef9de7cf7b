"""Credential loading and IAM token exchange for watsonx.ai."""

from __future__ import annotations

import os
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import httpx
from loguru import logger
from omegaconf import OmegaConf
from pydantic import BaseModel, Field

IAM_TOKEN_URL = "https://iam.cloud.ibm.com/identity/token"
IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"

DEFAULT_SERVICE_URL = "https://us-south.ml.cloud.ibm.com"
DEFAULT_API_VERSION = "2024-05-31"

_ENV_KEYS: dict[str, str] = {
    "WATSONX_API_KEY": "api_key",
    "WATSONX_URL": "url",
    "WATSONX_SPACE_ID": "space_id",
    "WATSONX_PROJECT_ID": "project_id",
    "WATSONX_API_VERSION": "api_version",
}


class MissingCredentialsError(ValueError):
    """Raised when required watsonx.ai configuration is absent."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing watsonx.ai configuration: {', '.join(missing)} must be set")


def _load_normalized_secrets(location: Path) -> dict[str, Any]:
    raw_config = OmegaConf.load(location)
    config = OmegaConf.to_container(raw_config, resolve=True)
    if not isinstance(config, dict):
        raise ValueError("Secrets file must contain a mapping of credential keys.")
    return {str(key).upper(): value for key, value in config.items()}


def _credentials_kwargs(normalized: Mapping[str, Any]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for env_key, field_name in _ENV_KEYS.items():
        value = normalized.get(env_key)
        if value:
            kwargs[field_name] = str(value)
    return kwargs


class Credentials(BaseModel):
    """watsonx.ai account settings.

    Only ``api_key`` and one workspace identifier are ever required, and only
    by the callers that reach the remote service. Everything else defaults.
    """

    api_key: str | None = Field(
        default=None,
        description="IBM Cloud API key exchanged for an IAM bearer token",
    )
    url: str = Field(
        default=DEFAULT_SERVICE_URL,
        description="watsonx.ai regional service URL",
        examples=["https://us-south.ml.cloud.ibm.com"],
    )
    space_id: str | None = Field(
        default=None,
        description="Deployment space ID (preferred workspace)",
    )
    project_id: str | None = Field(
        default=None,
        description="Project ID, used when no deployment space is configured",
    )
    api_version: str = Field(
        default=DEFAULT_API_VERSION,
        description="Date-stamped watsonx.ai API version",
    )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Credentials:
        """Read credentials from ``WATSONX_*`` environment variables.

        When ``WATSONX_CONFIG_PATH`` names a YAML secrets file, its keys are
        loaded first and the environment overrides them.
        """
        env = os.environ if environ is None else environ
        merged: dict[str, Any] = {}

        config_path = env.get("WATSONX_CONFIG_PATH")
        if config_path:
            merged.update(cls._read_secrets(Path(config_path).expanduser()))

        merged.update({key: env[key] for key in _ENV_KEYS if env.get(key)})
        return cls(**_credentials_kwargs(merged))

    @staticmethod
    def _read_secrets(location: Path) -> dict[str, Any]:
        if not location.exists():
            raise FileNotFoundError(f"Secrets file not found: {location}")
        return _load_normalized_secrets(location)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def workspace(self) -> dict[str, str]:
        """Return the workspace field for request bodies (space preferred)."""
        if self.space_id:
            return {"space_id": self.space_id}
        if self.project_id:
            return {"project_id": self.project_id}
        return {}

    def require(self, *, workspace: bool = True) -> Credentials:
        """Raise ``MissingCredentialsError`` unless the needed keys are present."""
        missing: list[str] = []
        if not self.api_key:
            missing.append("WATSONX_API_KEY")
        if workspace and not (self.space_id or self.project_id):
            missing.append("WATSONX_SPACE_ID (or WATSONX_PROJECT_ID)")
        if missing:
            raise MissingCredentialsError(missing)
        return self


class IAMTokenManager:
    """Exchange an IBM Cloud API key for a bearer token and cache it."""

    REFRESH_MARGIN_SECONDS = 60

    def __init__(self, client: httpx.AsyncClient, credentials: Credentials) -> None:
        self._client = client
        self._credentials = credentials
        self._token: str | None = None
        self._expires_at: float = 0.0

    async def get_token(self) -> str:
        """Return a cached token or fetch a new one when close to expiry."""
        if self._token and time.time() < self._expires_at - self.REFRESH_MARGIN_SECONDS:
            return self._token

        if not self._credentials.api_key:
            raise MissingCredentialsError(["WATSONX_API_KEY"])

        logger.debug("Requesting IAM access token")
        response = await self._client.post(
            IAM_TOKEN_URL,
            data={"grant_type": IAM_GRANT_TYPE, "apikey": self._credentials.api_key},
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()

        body = response.json()
        token = body.get("access_token")
        if not token:
            raise RuntimeError("IAM token response missing access_token")

        if "expiration" in body:
            self._expires_at = float(body["expiration"])
        else:
            self._expires_at = time.time() + float(body.get("expires_in", 3600))
        self._token = str(token)
        return self._token

    def clear_token(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def auth_headers(self) -> dict[str, str]:
        token = await self.get_token()
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

"""watsonx.ai MCP server and REST client."""

from .auth import Credentials, IAMTokenManager, MissingCredentialsError
from .client import WatsonxClient
from .mcp_server import run_server

__all__ = [
    "Credentials",
    "IAMTokenManager",
    "MissingCredentialsError",
    "WatsonxClient",
    "run_server",
]

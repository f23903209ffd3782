"""Test helper functions."""

import json
from typing import Any, Dict, Optional

from src.services.auth_tokens import issue_access_token
from src.utils.config import ServiceConfig


def auth_headers(user_id: str, config: ServiceConfig, **extra) -> Dict[str, str]:
    """Authorization header carrying a fresh access token."""
    headers = {"Authorization": f"Bearer {issue_access_token(user_id, config)}"}
    headers.update(extra)
    return headers


def json_body(response: Dict[str, Any]) -> Dict[str, Any]:
    """Decode a Vercel-style response body."""
    return json.loads(response["body"])


def create_vercel_request(
    method: str = "GET",
    path: str = "/api/food/sweep",
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    if headers is None:
        headers = {
            "content-type": "application/json"
        }

    return {
        "method": method,
        "path": path,
        "headers": headers,
        "body": json.dumps(body) if isinstance(body, dict) else body,
        "query": {}
    }

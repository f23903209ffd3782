"""Food listing endpoints for Vercel."""

from http.server import BaseHTTPRequestHandler
from typing import Optional
from urllib.parse import urlsplit
import asyncio
import json

from src.models.outcome import OperationResult
from src.services.auth_tokens import resolve_principal
from src.services.lifecycle import ListingLifecycleEngine, build_engine
from src.utils.config import ServiceConfig
from src.utils.errors import AuthenticationError, ErrorKind, InvalidInputError, LifecycleError, NotFoundError
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

BASE_PATH = "/api/food"

STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.CONFLICT: 409,
}

# PUT /api/food/<action>/<id>
PUT_ACTIONS = ("request", "accept-request", "confirm-deal", "confirm-receipt")


def _response(status_code: int, body: dict, headers: Optional[dict] = None) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **(headers or {})},
        "body": json.dumps(body),
    }


def _error_response(error: LifecycleError, headers: dict) -> dict:
    return _response(STATUS_CODES[error.kind], OperationResult.failure(error).to_api(), headers)


def _failure(status_code: int, kind: str, message: str, headers: dict, detail: Optional[str] = None) -> dict:
    """Error body for failures outside the lifecycle error hierarchy."""
    return _response(status_code, {"ok": False, "error": {"kind": kind, "message": message, "detail": detail}}, headers)


def _parse_body(raw_body: Optional[str]) -> dict:
    if not raw_body:
        return {}
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError:
        raise InvalidInputError("Request body is not valid JSON")
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return body


def _route(method: str, path: str) -> tuple[Optional[str], Optional[str]]:
    """Map (method, path) to (operation, listing_id)."""
    if path != BASE_PATH and not path.startswith(BASE_PATH + "/"):
        return None, None
    parts = [p for p in path[len(BASE_PATH):].split("/") if p]

    if method == "GET":
        if not parts:
            return "list_available", None
        if parts == ["mine"]:
            return "list_mine", None
        if len(parts) == 1:
            return "get_listing", parts[0]
    elif method == "POST":
        if not parts:
            return "create_listing", None
    elif method == "PUT":
        if len(parts) == 2 and parts[0] in PUT_ACTIONS:
            return parts[0].replace("-", "_"), parts[1]
    return None, None


async def dispatch(
    method: str,
    raw_path: str,
    headers: dict,
    raw_body: Optional[str] = None,
    engine: Optional[ListingLifecycleEngine] = None,
    config: Optional[ServiceConfig] = None,
) -> dict:
    """Handle one listing request and return a Vercel-style response dict."""
    headers = {str(k).lower(): v for k, v in (headers or {}).items()}
    path = urlsplit(raw_path).path.rstrip("/") or "/"
    operation, listing_id = _route(method.upper(), path)

    correlation_header = LoggingConfig.LOG_CORRELATION_ID_HEADER
    with correlation_context(headers.get(correlation_header.lower())) as correlation_id:
        out_headers = {correlation_header: correlation_id}

        if operation is None:
            return _failure(404, "NOT_FOUND", "Route not found", out_headers, detail=f"{method.upper()} {path}")

        config = config or ServiceConfig.from_env()
        if engine is None:
            try:
                engine = build_engine(config)
            except Exception as e:
                logger.error("Failed to initialize listing services", error=str(e))
                return _failure(500, "INTERNAL", "service initialization failed", out_headers)

        try:
            body = _parse_body(raw_body)

            if operation == "list_available":
                views = await engine.list_available()
                return _response(200, {"ok": True, "listings": [v.to_api() for v in views]}, out_headers)

            if operation == "get_listing":
                view = await engine.get_listing(listing_id)
                return _response(200, {"ok": True, "listing": view.to_api()}, out_headers)

            resolution = await resolve_principal(
                headers.get("authorization"),
                headers.get("x-refresh-token"),
                engine.store,
                config,
            )
            if resolution.new_access_token:
                out_headers["X-New-Access-Token"] = resolution.new_access_token
            principal = resolution.principal

            if operation == "list_mine":
                views = await engine.list_mine(principal)
                return _response(200, {"ok": True, "listings": [v.to_api() for v in views]}, out_headers)

            if operation == "create_listing":
                outcome = await engine.create_listing(principal, body)
                return _response(201, OperationResult.success(outcome).to_api(), out_headers)

            if operation == "request":
                outcome = await engine.request_listing(principal, listing_id)
            elif operation == "accept_request":
                outcome = await engine.accept_request(principal, listing_id, body.get("receiverId"))
            elif operation == "confirm_deal":
                outcome = await engine.confirm_deal(principal, listing_id, body.get("receiverLocation"))
            elif operation == "confirm_receipt":
                outcome = await engine.confirm_receipt(principal, listing_id)
            else:
                raise NotFoundError(f"Unknown operation {operation}")
            return _response(200, OperationResult.success(outcome).to_api(), out_headers)

        except LifecycleError as e:
            logger.info(
                "Listing operation rejected",
                operation=operation,
                listing_id=listing_id,
                kind=e.kind.value,
                detail=e.detail,
            )
            return _error_response(e, out_headers)
        except AuthenticationError as e:
            logger.warning("Authentication failed", operation=operation, error=str(e))
            return _failure(401, "UNAUTHENTICATED", "Authentication required", out_headers, detail=str(e))
        except Exception as e:
            logger.error(
                "Error processing listing request",
                exc_info=True,
                operation=operation,
                listing_id=listing_id,
                error=str(e),
            )
            return _failure(500, "INTERNAL", "internal server error", out_headers)


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for food listings."""

    def _handle(self, method: str) -> None:
        LoggingConfig.ensure_configured()
        content_length = int(self.headers.get('Content-Length', 0))
        raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""

        response = asyncio.run(dispatch(method, self.path, dict(self.headers), raw_body))

        self.send_response(response["statusCode"])
        for name, value in response["headers"].items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(response["body"].encode('utf-8'))

    def do_GET(self):
        self._handle("GET")

    def do_POST(self):
        self._handle("POST")

    def do_PUT(self):
        self._handle("PUT")

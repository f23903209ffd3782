"""Health check endpoint.

Reports whether the marketplace can serve traffic: the listing store and
token secrets are required, email delivery is optional (notifications are
skipped, never fatal, when it is unset).
"""

from http.server import BaseHTTPRequestHandler
import json

from src.utils.config import ServiceConfig
from src.utils.logging_config import LoggingConfig

REQUIRED_CHECKS = ("store", "auth")


def health_report(config: ServiceConfig) -> tuple[int, dict]:
    checks = {
        "store": bool(config.supabase_url and config.supabase_key),
        "auth": bool(config.jwt_secret and config.jwt_refresh_secret),
        "email": bool(config.email_api_key),
    }
    ready = all(checks[name] for name in REQUIRED_CHECKS)
    body = {
        "status": "ok" if ready else "degraded",
        "service": LoggingConfig.SERVICE_NAME,
        "environment": LoggingConfig.ENVIRONMENT,
        "checks": checks,
    }
    return (200 if ready else 503), body


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        status, body = health_report(ServiceConfig.from_env())
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Cache-Control', 'no-store')
        self.end_headers()
        self.wfile.write(json.dumps(body).encode('utf-8'))

    def do_POST(self):
        """Same as GET; some uptime monitors only POST."""
        self.do_GET()

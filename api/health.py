"""Health check endpoint, also pinged to keep functions warm."""

from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler

from src.utils.http import send_json


class handler(BaseHTTPRequestHandler):
    """Health check handler for serverless function."""

    def do_GET(self):
        """Handle GET request."""
        send_json(self, 200, {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "doppel-slack-bot",
        })

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()

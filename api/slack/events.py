"""Slack webhook endpoint (events, slash commands, URL verification)."""

from http.server import BaseHTTPRequestHandler

from src.services.background_loop import run_coroutine
from src.services.slack_router import RouterResponse, get_slack_event_router
from src.services.slack_verifier import verify_slack_request
from src.utils.errors import MalformedRequestError
from src.utils.http import read_body, send_json
from src.utils.logging import correlation_context, get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


async def dispatch_request(content_type: str, raw_body: str) -> RouterResponse:
    """Route one webhook body; the correlation ID flows into spawned tasks."""
    with correlation_context():
        return await get_slack_event_router().dispatch(content_type, raw_body)


class handler(BaseHTTPRequestHandler):
    """Serverless function handler for Slack."""

    def do_POST(self):
        """Handle POST request from Slack; acknowledge before answering."""
        try:
            raw_body = read_body(self)
            content_type = self.headers.get("Content-Type", "")

            timestamp = self.headers.get("X-Slack-Request-Timestamp", "")
            signature = self.headers.get("X-Slack-Signature", "")
            if not verify_slack_request(timestamp, signature, raw_body):
                logger.warning(
                    "Slack signature verification failed",
                    has_timestamp=bool(timestamp),
                    has_signature=bool(signature)
                )
                send_json(self, 401, {"error": "invalid signature"})
                return

            response = run_coroutine(dispatch_request(content_type, raw_body))
            send_json(self, response.status, response.body)

        except MalformedRequestError as e:
            logger.warning("Unreadable Slack request body", error=str(e))
            send_json(self, 400, {"error": "Invalid request body"})

        except Exception as e:
            logger.error("Error processing Slack request", error=str(e), exc_info=True)
            send_json(self, 500, {"error": "internal server error"})

    def do_GET(self):
        """Handle GET request (health check)."""
        send_json(self, 200, {"status": "ok", "endpoint": "slack"})

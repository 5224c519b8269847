"""OAuth callback: reports the outcome to the opener window and closes."""

import json
from http.server import BaseHTTPRequestHandler
from typing import Optional
from urllib.parse import urlencode

from src.models.connection import OAuthCompletionMessage
from src.services.background_loop import run_coroutine
from src.services.connection_service import CALLBACK_WAIT_SECONDS, get_connection_service
from src.utils.http import query_params, send_html, send_redirect
from src.utils.logging import get_structured_logger, mask_user_id, setup_logging

setup_logging()
logger = get_structured_logger(__name__)

CALLBACK_PAGE = """<!DOCTYPE html>
<html>
  <head><title>Connecting...</title></head>
  <body>
    <p>{status_text}</p>
    <script>
      if (window.opener) {{
        window.opener.postMessage({message}, '*');
      }}
      window.close();
    </script>
  </body>
</html>
"""


def render_callback_page(user_id: str, tool: str, success: bool, error: Optional[str] = None) -> str:
    """HTML that posts the completion message; values go in JSON-encoded."""
    message = OAuthCompletionMessage(tool=tool, user_id=user_id, success=success, error=error)
    # Keep "</script>" in a value from closing the script element
    payload = json.dumps(message.model_dump(by_alias=True, exclude_none=True)).replace("</", "<\\/")
    status_text = "Connection complete. You can close this window." if success else "Connection failed. You can close this window."
    return CALLBACK_PAGE.format(status_text=status_text, message=payload)


class handler(BaseHTTPRequestHandler):

    def do_GET(self):
        params = query_params(self)
        user_id = params.get("user")
        tool = params.get("tool")
        if not user_id or not tool:
            query = {"error": "missing_params"}
            if user_id:
                query = {"user": user_id, **query}
            send_redirect(self, f"/setup?{urlencode(query)}")
            return

        connection_request_id = params.get("connectionRequestId") or params.get("connectedAccountId")
        try:
            success = run_coroutine(
                get_connection_service().complete_connection(user_id, tool, connection_request_id),
                timeout=CALLBACK_WAIT_SECONDS + 30.0,
            )
            error = None if success else "Connection was not completed"
        except Exception as e:
            logger.error("Error completing connection", tool=tool, error=str(e), exc_info=True)
            success, error = False, "Connection check failed"

        logger.info(
            "OAuth callback handled",
            tool=tool,
            slack_user_id=mask_user_id(user_id),
            success=success
        )
        send_html(self, 200, render_callback_page(user_id, tool, success, error))

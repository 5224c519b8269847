"""Test helper functions."""

import json
import hmac
import hashlib
from email.message import Message
from io import BytesIO
from typing import Any, Dict, Optional, Union
from unittest.mock import Mock


def generate_slack_signature(secret: str, timestamp: str, body: str) -> str:
    """Generate a valid Slack signature for testing."""
    sig_basestring = f"v0:{timestamp}:{body}"
    signature = hmac.new(
        secret.encode('utf-8'),
        sig_basestring.encode('utf-8'),
        hashlib.sha256
    ).hexdigest()
    return f"v0={signature}"


def build_handler(
    handler_cls,
    method: str = "GET",
    path: str = "/",
    body: Union[str, bytes] = "",
    headers: Optional[Dict[str, str]] = None
):
    """
    Instantiate a BaseHTTPRequestHandler subclass without a socket.

    Response status and headers are captured by mocks; the body lands
    in ``wfile``.
    """
    h = handler_cls.__new__(handler_cls)
    h.command = method
    h.path = path
    h.request_version = "HTTP/1.1"
    h.requestline = f"{method} {path} HTTP/1.1"
    h.client_address = ("127.0.0.1", 8000)

    h.headers = Message()
    for name, value in (headers or {}).items():
        h.headers[name] = value
    raw = body if isinstance(body, bytes) else body.encode('utf-8')
    if raw and "Content-Length" not in h.headers:
        h.headers["Content-Length"] = str(len(raw))

    h.rfile = BytesIO(raw)
    h.wfile = BytesIO()
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()
    return h


def response_status(h) -> int:
    return h.send_response.call_args[0][0]


def response_header(h, name: str) -> Optional[str]:
    for call in h.send_header.call_args_list:
        if call[0][0] == name:
            return call[0][1]
    return None


def response_json(h) -> Any:
    h.wfile.seek(0)
    return json.loads(h.wfile.read().decode('utf-8'))


def response_text(h) -> str:
    h.wfile.seek(0)
    return h.wfile.read().decode('utf-8')

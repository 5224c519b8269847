"""Helpers shared by the BaseHTTPRequestHandler endpoints."""

import json
from http.server import BaseHTTPRequestHandler
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from src.utils.errors import MalformedRequestError


def send_json(handler: BaseHTTPRequestHandler, status: int, payload: Any, headers: Optional[dict] = None) -> None:
    """Write a JSON response."""
    handler.send_response(status)
    handler.send_header('Content-Type', 'application/json')
    for name, value in (headers or {}).items():
        handler.send_header(name, value)
    handler.end_headers()
    handler.wfile.write(json.dumps(payload).encode('utf-8'))


def send_html(handler: BaseHTTPRequestHandler, status: int, html: str) -> None:
    handler.send_response(status)
    handler.send_header('Content-Type', 'text/html; charset=utf-8')
    handler.end_headers()
    handler.wfile.write(html.encode('utf-8'))


def send_redirect(handler: BaseHTTPRequestHandler, location: str) -> None:
    handler.send_response(302)
    handler.send_header('Location', location)
    handler.end_headers()


def read_body(handler: BaseHTTPRequestHandler) -> str:
    """Request body as text. Raises MalformedRequestError if it is not UTF-8."""
    content_length = int(handler.headers.get('Content-Length', 0) or 0)
    if content_length <= 0:
        return ""
    try:
        return handler.rfile.read(content_length).decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedRequestError(f"Request body is not valid UTF-8: {e}") from e


def query_params(handler: BaseHTTPRequestHandler) -> dict[str, str]:
    """First value of each query-string parameter."""
    query = urlsplit(handler.path).query
    return {key: values[0] for key, values in parse_qs(query).items() if values}

"""Connection status endpoint: which tools a user has connected."""

from http.server import BaseHTTPRequestHandler

from src.services.background_loop import run_coroutine
from src.services.connection_service import get_connection_service
from src.utils.errors import ConnectionBrokerError
from src.utils.http import query_params, send_json
from src.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


class handler(BaseHTTPRequestHandler):

    def do_GET(self):
        user_id = query_params(self).get("user")
        if not user_id:
            send_json(self, 400, {"error": "User ID is required"})
            return

        try:
            status = run_coroutine(get_connection_service().get_connection_status(user_id))
        except ConnectionBrokerError as e:
            logger.error("Error fetching connection status", error=str(e))
            send_json(self, e.status_code, {"error": "Failed to fetch connection status"})
            return

        send_json(self, 200, status.model_dump(by_alias=True))

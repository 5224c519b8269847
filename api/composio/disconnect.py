"""Connection delete endpoint."""

from http.server import BaseHTTPRequestHandler

from src.services.background_loop import run_coroutine
from src.services.connection_service import get_connection_service
from src.utils.errors import ConnectionBrokerError
from src.utils.http import query_params, send_json
from src.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


class handler(BaseHTTPRequestHandler):

    def do_DELETE(self):
        connection_id = query_params(self).get("connectionId")
        if not connection_id:
            send_json(self, 400, {"error": "Connection ID is required"})
            return

        try:
            result = run_coroutine(get_connection_service().disconnect_connection(connection_id))
        except ConnectionBrokerError as e:
            logger.error("Error deleting connection", connection_id=connection_id, error=str(e))
            send_json(self, e.status_code, {"error": "Failed to delete connection"})
            return

        logger.info("Connection deleted", connection_id=connection_id)
        send_json(self, 200, result)

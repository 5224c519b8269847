"""Connection initiate endpoint: returns the OAuth redirect for a tool."""

from http.server import BaseHTTPRequestHandler

from src.services.background_loop import run_coroutine
from src.services.connection_service import get_connection_service
from src.utils.errors import ConnectionBrokerError
from src.utils.http import query_params, send_json
from src.utils.logging import get_structured_logger, mask_user_id, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


class handler(BaseHTTPRequestHandler):

    def do_GET(self):
        params = query_params(self)
        tool = params.get("tool")
        user_id = params.get("user")
        if not tool or not user_id:
            send_json(self, 400, {"error": "Tool and user parameters are required"})
            return

        try:
            initiation = run_coroutine(get_connection_service().initiate_connection(tool, user_id))
        except ConnectionBrokerError as e:
            logger.error(
                "Error initiating connection",
                tool=tool,
                slack_user_id=mask_user_id(user_id),
                error=str(e)
            )
            send_json(self, e.status_code, {"error": str(e)})
            return

        send_json(self, 200, initiation.model_dump(by_alias=True, exclude_none=True))

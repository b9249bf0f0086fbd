import logging
from typing import Callable
from typing import Optional
from urllib.parse import urlparse

from requests import request
from requests.exceptions import RequestException

from smpclient.defaults import DEFAULT_HTTPC_PARAMS
from smpclient.exception import NotFound
from smpclient.exception import SMPConnectionError
from smpclient.exception import UnsupportedProtocolError

logger = logging.getLogger(__name__)


class RequestExecutor(object):
    """Fetches a document from an SMP."""

    def execute(self, url: str) -> bytes:
        raise NotImplementedError()


class DefaultRequestExecutor(RequestExecutor):
    """
    HTTP GET using requests.

    :param httpc: The HTTP client function, has the same signature as requests.request
    :param httpc_params: Extra arguments to the HTTP client function, e.g. verify and timeout
    """

    def __init__(self, httpc: Optional[Callable] = None, httpc_params: Optional[dict] = None,
                 **kwargs):
        self.httpc = httpc or request
        _params = DEFAULT_HTTPC_PARAMS.copy()
        _params.update(httpc_params or {})
        self.httpc_params = _params

    def execute(self, url: str) -> bytes:
        """
        :param url: Target URL
        :return: The response body
        """
        if urlparse(url).scheme.lower() not in ("http", "https"):
            raise UnsupportedProtocolError(f"Only http and https are supported: '{url}'")

        logger.debug(f"Using HTTPC Params: {self.httpc_params}")
        try:
            response = self.httpc("GET", url, **self.httpc_params)
        except RequestException as err:
            logger.error(f"Could not connect to {url}: {err}")
            raise SMPConnectionError(f"Could not connect to {url}") from err

        if response.status_code == 200:
            _type = response.headers.get("Content-Type", "")
            if "xml" not in _type:
                logger.warning(f"Wrong Content-Type: {_type}")
            return response.content
        elif response.status_code == 404:
            raise NotFound(f"No such page: '{url}'")
        else:
            logger.error(f"Got HTTP status {response.status_code} from {url}")
            raise SMPConnectionError(f"Unexpected HTTP status {response.status_code} from {url}")

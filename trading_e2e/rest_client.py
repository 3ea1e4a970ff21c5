"""
REST client for the trading platform API.

Thin wrapper over requests.Session. Every call returns a RestResponse holding
the HTTP status and the decoded body ({status, payload} or {status, error});
HTTP error statuses are returned so tests can assert on rejections, only
transport failures raise.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .errors import RestClientError


@dataclass
class RestResponse:
    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def _field(self, name: str) -> Any:
        return self.body.get(name) if isinstance(self.body, dict) else None

    @property
    def status(self) -> Optional[str]:
        return self._field("status")

    @property
    def payload(self) -> Any:
        return self._field("payload")

    @property
    def error(self) -> Any:
        return self._field("error")


class RestClient:
    """
    REST API client bound to one bearer token.

    Provides get/post/put/patch/delete/head against a base URL; absolute URLs
    are used as given.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "accept": "application/json",
            "cache-control": "no-cache",
            "content-type": "application/json",
            "pragma": "no-cache",
        })
        self.logger = logging.getLogger("RestClient")
        if token:
            self.set_token(token)

    def set_token(self, token: str):
        self.session.headers["authorization"] = f"Bearer {token}"

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    def request(self, method: str, path: str, body: Any = None,
                params: Optional[Dict[str, Any]] = None) -> RestResponse:
        """
        Send a request and decode the JSON body.

        Raises:
            RestClientError: on connection errors and timeouts
        """
        url = self.url_for(path)
        self.logger.info(f"{method} {url}")
        if body is not None:
            self.logger.debug(f"payload:\n{json.dumps(body, default=str)}")
        try:
            response = self.session.request(method, url, json=body, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f"{method} {url} failed: {e}")
            raise RestClientError(f"{method} {url} failed: {e}") from e

        try:
            decoded = response.json()
        except ValueError:
            decoded = response.text
        if response.ok:
            self.logger.debug(f"response:\n{response.text}")
        else:
            self.logger.info(f"error: ({response.status_code})\n{response.text}")
        return RestResponse(response.status_code, decoded)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> RestResponse:
        return self.request("GET", path, params=params)

    def post(self, path: str, body: Any = None) -> RestResponse:
        return self.request("POST", path, body)

    def put(self, path: str, body: Any = None) -> RestResponse:
        return self.request("PUT", path, body)

    def patch(self, path: str, body: Any = None) -> RestResponse:
        return self.request("PATCH", path, body)

    def delete(self, path: str, body: Any = None) -> RestResponse:
        return self.request("DELETE", path, body)

    def head(self, path: str) -> RestResponse:
        return self.request("HEAD", path)

    def close(self):
        self.session.close()

    def __repr__(self):
        return f"RestClient(base_url='{self.base_url}')"

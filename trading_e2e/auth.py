"""
Bearer token acquisition.

A token provider is any object with get_token(username, password) -> str.
TokenIssuer asks the platform's get-token endpoint; StaticTokenProvider hands
out a fixed token (mock platforms, pre-issued tokens).
"""

import logging
from typing import Optional

import requests

from .configuration import Configuration
from .errors import AuthenticationError

GET_TOKEN_PATH = "/auth/v1/get-token"

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Obtains tokens from POST <api>/auth/v1/get-token."""

    def __init__(self, configuration: Configuration, admin: bool = False,
                 session: Optional[requests.Session] = None):
        self.configuration = configuration
        self.admin = admin
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        if self.admin:
            return self.configuration.admin_api_url(GET_TOKEN_PATH)
        return self.configuration.trader_api_url(GET_TOKEN_PATH)

    def get_token(self, username: str, password: Optional[str]) -> str:
        """
        Raises:
            AuthenticationError: on transport errors, rejections or an empty token
        """
        request = {
            "type": "ADMIN" if self.admin else "TRADER",
            "username": username,
            "password": password,
        }
        logger.info(f"get-token username={username}")
        try:
            response = self.session.post(self.url, json=request, timeout=self.configuration.request_timeout)
        except requests.RequestException as e:
            raise AuthenticationError(f"get-token for {username} failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"get-token for {username} rejected: ({response.status_code}) {response.text[:200]}"
            )
        try:
            token = response.json().get("payload")
        except (ValueError, AttributeError) as e:
            raise AuthenticationError(f"get-token for {username} returned an invalid body") from e
        if not token:
            raise AuthenticationError(f"get-token for {username} returned no token")
        return token


class StaticTokenProvider:
    """Returns the same token for every user."""

    def __init__(self, token: str):
        self.token = token

    def get_token(self, username: str, password: Optional[str] = None) -> str:
        return self.token

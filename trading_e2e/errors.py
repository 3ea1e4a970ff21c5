"""
Exception hierarchy for the end-to-end framework.

Failures a test should report as assertions (unmatched expectations, unexpected
messages, comparison mismatches, sends on a dead channel) derive from
AssertionError so both pytest and testplan show them as test failures rather
than errors.
"""

from typing import Any, List, Optional


class E2EError(Exception):
    """Base class for all framework errors."""


class ChannelError(E2EError):
    """Base class for WebSocket channel errors."""


class ChannelConnectionError(ChannelError):
    """Opening the WebSocket connection failed (handshake, auth, refused)."""


class ChannelClosedError(ChannelError, AssertionError):
    """An operation needed a live connection but the channel is closed."""


class ExpectationError(E2EError, AssertionError):
    """Base class for expectation failures."""


class MatchTimeoutError(ExpectationError):
    """One or more expected templates never matched within the deadline."""

    def __init__(self, message: str, unmatched: Optional[List[Any]] = None,
                 candidates: Optional[List[Any]] = None):
        super().__init__(message)
        self.unmatched = unmatched or []
        self.candidates = candidates or []


class UnexpectedMessageError(ExpectationError):
    """No message was expected but the queue was not empty."""

    def __init__(self, message: str, received: Optional[List[Any]] = None):
        super().__init__(message)
        self.received = received or []


class ConcurrentExpectError(ExpectationError):
    """Two expect() calls overlapped on the same session."""


class ComparisonFailure(E2EError, AssertionError):
    """A direct equals/contains assertion failed."""

    def __init__(self, message: str, path: str = "", expected: Any = None, actual: Any = None):
        super().__init__(message)
        self.path = path
        self.expected = expected
        self.actual = actual


class SessionStartError(E2EError):
    """A subscription handshake step failed during session start."""


class ConfigurationError(E2EError):
    """Configuration is missing or invalid."""


class RestClientError(E2EError):
    """A REST request failed at the transport level."""


class AuthenticationError(E2EError):
    """No bearer token could be obtained for a session."""


class SubscriptionRejectedError(ExpectationError):
    """The platform answered a subscription request with a status other than OK."""

    def __init__(self, message: str, response: Optional[Any] = None):
        super().__init__(message)
        self.response = response

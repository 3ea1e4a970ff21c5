"""
End-to-end test harness for a WebSocket + REST trading platform.

Sessions log in, subscribe to platform channels over a single WebSocket,
buffer everything received and let tests assert on it with partial,
wildcard-aware templates.
"""

from .auth import StaticTokenProvider, TokenIssuer
from .comparator import compare, contains, describe_mismatch, diff, does_not_contain, equals
from .configuration import Configuration, Credentials, IgnoreOptions, build_uri
from .errors import (
    AuthenticationError,
    ChannelClosedError,
    ChannelConnectionError,
    ChannelError,
    ComparisonFailure,
    ConcurrentExpectError,
    ConfigurationError,
    E2EError,
    ExpectationError,
    MatchTimeoutError,
    RestClientError,
    SessionStartError,
    SubscriptionRejectedError,
    UnexpectedMessageError,
)
from .expectation_matcher import ExpectationMatcher
from .inbound_queue import InboundQueue, ReceivedEvent
from .rest_client import RestClient, RestResponse
from .subscriptions import Subscription, subscribe_message, unsubscribe_message
from .trader_session import TraderSession
from .web_socket_channel import ConnectionState, WebSocketChannel

__version__ = "0.1.0"

__all__ = [
    'AuthenticationError',
    'ChannelClosedError',
    'ChannelConnectionError',
    'ChannelError',
    'ComparisonFailure',
    'ConcurrentExpectError',
    'Configuration',
    'ConfigurationError',
    'ConnectionState',
    'Credentials',
    'E2EError',
    'ExpectationError',
    'ExpectationMatcher',
    'IgnoreOptions',
    'InboundQueue',
    'MatchTimeoutError',
    'ReceivedEvent',
    'RestClient',
    'RestClientError',
    'RestResponse',
    'SessionStartError',
    'StaticTokenProvider',
    'Subscription',
    'SubscriptionRejectedError',
    'TokenIssuer',
    'TraderSession',
    'UnexpectedMessageError',
    'WebSocketChannel',
    'build_uri',
    'compare',
    'contains',
    'describe_mismatch',
    'diff',
    'does_not_contain',
    'equals',
    'subscribe_message',
    'unsubscribe_message',
]

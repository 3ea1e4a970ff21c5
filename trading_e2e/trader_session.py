"""
Trader session: one authenticated user's view of the trading platform.

A TraderSession owns a WebSocket channel, the inbound queue it feeds and the
expectation matcher over that queue, plus a REST client for order entry.
Tests drive it like this:

    async with TraderSession("trader1", configuration) as session:
        await session.start("MKT", "BTC-USD")
        await session.submit_order({...})
        await session.expect({"type": "EXECUTION_REPORT", "payload": {...}})
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from . import subscriptions
from .auth import TokenIssuer
from .configuration import Configuration
from .errors import (
    AuthenticationError,
    ChannelClosedError,
    ChannelError,
    ExpectationError,
    MatchTimeoutError,
    SessionStartError,
    SubscriptionRejectedError,
)
from .expectation_matcher import ExpectationMatcher
from .inbound_queue import InboundQueue
from .rest_client import RestClient
from .subscriptions import Subscription
from .utils import unique_id
from .web_socket_channel import HEARTBEAT_MESSAGE, WebSocketChannel

ORDER_PATH = "/spot/v1/order"
QUERY_ORDERS_PATH = "/order/v1/query/"
MASS_CANCEL_PATH = "/order/v1/mass-cancel"

# (request, expect an initial_data snapshot after the acknowledgement)
HandshakeStep = Tuple[Dict[str, Any], bool]


class TraderSession:
    """
    Session façade for a trader.

    Provides:
    - login and the subscription handshake (start / lazy_start)
    - expect / clear / send over the session's channel
    - REST order entry with local tracking of live orders
    - teardown that cancels tracked orders and confirms disconnection
    """

    def __init__(
        self,
        username: str,
        configuration: Configuration,
        password: Optional[str] = None,
        token_provider=None,
        rest_client: Optional[RestClient] = None,
        firm_id: Optional[str] = None,
    ):
        credentials = configuration.credentials_for(username)
        self.username = credentials.username
        self.password = password if password is not None else credentials.password
        self.configuration = configuration
        self.firm_id = firm_id
        self.token_provider = token_provider or TokenIssuer(configuration)
        self.client = rest_client
        self.token: Optional[str] = None
        self.is_logged_in = False

        name = unique_id(self.username)
        self.queue = InboundQueue()
        self.channel = WebSocketChannel(self.queue, configuration.ignore, name=name)
        self.matcher = ExpectationMatcher(
            self.queue,
            is_connected=self.channel.connected,
            ignore=configuration.ignore,
            poll_interval=configuration.poll_interval,
            name=name,
        )

        self._orders: List[Dict[str, Any]] = []
        self._id = 0

        self.logger = logging.getLogger(f"TraderSession.{self.username}")

    # ========================================================================
    # Login
    # ========================================================================

    def login(self):
        """
        Obtain a bearer token and bind the REST client to it.

        Raises:
            AuthenticationError: when no token is issued
        """
        self.logger.info(f"login() username={self.username}")
        token = self.token_provider.get_token(self.username, self.password)
        if not token:
            raise AuthenticationError(f"No token issued for {self.username}")
        self.token = token
        if self.client is None:
            self.client = RestClient(
                self.configuration.trader_api_base_url, token, timeout=self.configuration.request_timeout
            )
        else:
            self.client.set_token(token)
        self.is_logged_in = True

    @property
    def web_socket_url(self) -> str:
        return self.configuration.web_socket_url_with_token(self.token)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def _handshake_plan(self, market_id: str, symbol: str, enable_quote_book: bool) -> List[HandshakeStep]:
        market = subscriptions.market_filters(market_id, symbol)
        instruments = subscriptions.instrument_filters(market_id, symbol)
        user = {"userId": self.username}

        plan: List[HandshakeStep] = [
            (subscriptions.subscribe_message(subscriptions.TRADE, **market), True),
            (subscriptions.subscribe_message(subscriptions.ORDER_BOOK, **market), True),
        ]
        if enable_quote_book:
            plan.append((subscriptions.subscribe_message(subscriptions.QUOTE_BOOK, **instruments), False))
        plan += [
            (subscriptions.subscribe_message(subscriptions.MD_STAT, **instruments), True),
            (subscriptions.subscribe_message(subscriptions.COB_ORDER, **user), False),
            (subscriptions.subscribe_message(subscriptions.USER_POSITION, **user), False),
            (subscriptions.subscribe_message(subscriptions.NEGOTIATION, **user), False),
            (subscriptions.subscribe_message(subscriptions.RFQ, **user), False),
            (subscriptions.subscribe_message(subscriptions.REGISTRY_TRANSACTION), False),
        ]
        if self.firm_id is not None:
            plan.append(
                (subscriptions.subscribe_message(subscriptions.TRADE_CAPTURE, firmId=self.firm_id), False)
            )
        plan.append((subscriptions.subscribe_message(subscriptions.NOTIFICATION), False))
        return plan

    async def _handshake(self, request: Dict[str, Any], initial_data: bool):
        """
        Send a (un)subscribe request and wait for its echo, then its snapshot.

        Raises:
            SubscriptionRejectedError: the echo carries a status other than OK
            MatchTimeoutError: the echo or the snapshot never arrived, even
                when ``ignore.unmatched`` tolerates misses elsewhere
        """
        await self.channel.send(request)
        acknowledgement = subscriptions.acknowledgement(request, status="${string}")
        echoes = await self.matcher.expect(acknowledgement)
        if not echoes:
            raise MatchTimeoutError(f"({self.username}) {request['id']} was not acknowledged",
                                    unmatched=[acknowledgement])
        if echoes[0].get("status") != "OK":
            raise SubscriptionRejectedError(
                f"({self.username}) {request['id']} answered with status {echoes[0].get('status')}", echoes[0]
            )
        if initial_data:
            snapshot = subscriptions.initial_data(request)
            if not await self.matcher.expect(snapshot):
                raise MatchTimeoutError(f"({self.username}) no initial_data for {request['id']}",
                                        unmatched=[snapshot])

    async def start(self, market_id: str, symbol: str, enable_quote_book: bool = True):
        """
        Login, connect and subscribe to the session's channels.

        Raises:
            SessionStartError: a subscription was not acknowledged; the
                channel is disconnected before raising
        """
        self.logger.info(f"start() market_id={market_id} symbol={symbol}")
        await asyncio.to_thread(self.login)
        await self.channel.connect(self.web_socket_url)

        for request, initial_data in self._handshake_plan(market_id, symbol, enable_quote_book):
            try:
                await self._handshake(request, initial_data)
            except (ExpectationError, ChannelError) as e:
                self.logger.error(f"Subscription {request['id']} failed: {e}")
                await self.channel.disconnect()
                raise SessionStartError(f"({self.username}) subscription {request['id']} failed: {e}") from e

        self.logger.info("------------- subscription success -------------")
        self.clear()
        self._orders = []
        self.channel.start_heartbeat(self.configuration.heartbeat_interval)

    async def lazy_start(self):
        """Login and connect without subscribing to anything."""
        self.logger.info("lazy_start()")
        await asyncio.to_thread(self.login)
        await self.channel.connect(self.web_socket_url)
        self._orders = []
        self.channel.start_heartbeat(self.configuration.heartbeat_interval)

    async def stop(self):
        """Cancel tracked orders, stop the heartbeat and disconnect."""
        self.logger.info("stop()")
        try:
            if self.client is not None and self._orders:
                await self.cancel_all_orders()
        finally:
            await self.channel.stop_heartbeat()
            await self.channel.disconnect()
            self.is_logged_in = False

    async def __aenter__(self) -> "TraderSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # ========================================================================
    # Channel
    # ========================================================================

    async def subscribe(self, subscription: Subscription, **filters) -> Dict[str, Any]:
        """Subscribe to a channel and wait for its acknowledgement (and snapshot)."""
        request = subscriptions.subscribe_message(subscription, **filters)
        await self._handshake(request, subscription.initial_data)
        return request

    async def unsubscribe(self, subscription: Subscription, **filters) -> Dict[str, Any]:
        """Unsubscribe from a channel and wait for its acknowledgement."""
        request = subscriptions.unsubscribe_message(subscription, **filters)
        await self._handshake(request, False)
        return request

    async def expect(self, expected: Any = None, timeout: float = 0, splice: bool = True) -> List[Dict[str, Any]]:
        """
        Wait for ``expected`` on the session's channel.

        Raises:
            ChannelClosedError: immediately, when the channel is down
            MatchTimeoutError, UnexpectedMessageError: see ExpectationMatcher.expect
        """
        if not self.channel.connected():
            raise ChannelClosedError(f"({self.username}) socket disconnected")
        return await self.matcher.expect(expected, timeout, splice)

    async def find(self, template: Dict[str, Any], key: str = "requestId", timeout: float = 30):
        return await self.matcher.find(template, key, timeout)

    def clear(self) -> List[Dict[str, Any]]:
        """Drop everything queued so far."""
        return self.queue.clear()

    async def send(self, event: Dict[str, Any]) -> bool:
        return await self.channel.send(event)

    async def send_heartbeat(self) -> bool:
        return await self.channel.send(dict(HEARTBEAT_MESSAGE))

    async def logout(self, reason: str = "User initiated") -> bool:
        """Ask the platform to end the session."""
        return await self.channel.send(subscriptions.logout_message(reason))

    # ========================================================================
    # Orders
    # ========================================================================

    def next_id(self) -> str:
        request_id = f"teste2e-{self.username}-{int(time.time() * 1000)}-{self._id}"
        self._id += 1
        return request_id

    @property
    def orders(self) -> List[Dict[str, Any]]:
        return list(self._orders)

    async def _call(self, method: str, target: str, body: Any = None) -> Any:
        if self.client is None:
            raise AuthenticationError(f"({self.username}) not logged in")
        url = self.configuration.trader_api_url(target)
        response = await asyncio.to_thread(self.client.request, method, url, body)
        return response.body

    def _track(self, result: Any):
        payload = result.get("payload") if isinstance(result, dict) else None
        if isinstance(payload, dict) and payload.get("orderId"):
            self.logger.debug(f"caching order {payload['orderId']}")
            self._orders.append(payload)

    async def submit_order(self, order: Dict[str, Any]) -> Any:
        order = {**order, "requestId": self.next_id()}
        self.logger.debug(f"submitting order {json.dumps(order, default=str)}")
        result = await self._call("POST", ORDER_PATH, order)
        self._track(result)
        return result

    async def modify_order(self, order: Dict[str, Any]) -> Any:
        self.logger.debug(f"modifying order {json.dumps(order, default=str)}")
        result = await self._call("PUT", ORDER_PATH, order)
        self._track(result)
        return result

    async def cancel_order(self, order: Dict[str, Any]) -> Any:
        order = {**order, "requestUserId": self.username, "requestId": self.next_id()}
        self.logger.debug(f"cancelling order {json.dumps(order, default=str)}")
        result = await self._call("DELETE", ORDER_PATH, order)
        if isinstance(result, dict) and result.get("status") == "OK":
            payload = result.get("payload")
            if isinstance(payload, dict) and payload.get("orderId"):
                self.logger.debug(f"removing order {payload['orderId']}")
                self.remove_order(payload["orderId"])
        return result

    async def query_orders(self, query: Dict[str, Any]) -> Any:
        self.logger.debug(f"querying orders {json.dumps(query, default=str)}")
        return await self._call("POST", QUERY_ORDERS_PATH, query)

    async def cancel_all_orders(self):
        self.logger.info(f"cancelling all orders for {self.username}")
        for order in list(self._orders):
            await self.cancel_order({
                "orderId": order.get("orderId"),
                "clOrderId": self.next_id(),
                "symbol": order.get("symbol"),
                "marketId": order.get("marketId"),
            })
        self._orders = []

    async def send_mass_cancel(self, mass_cancel: Dict[str, Any]) -> Any:
        self.logger.debug(f"mass cancel {json.dumps(mass_cancel, default=str)}")
        return await self._call("POST", MASS_CANCEL_PATH, mass_cancel)

    def get_order(self, cl_order_id: str) -> Optional[Dict[str, Any]]:
        for order in self._orders:
            if order.get("clOrderId") == cl_order_id:
                return order
        return None

    def remove_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        for index, order in enumerate(self._orders):
            if order.get("orderId") == order_id:
                return self._orders.pop(index)
        return None

    def clear_orders(self, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Forget tracked orders whose fields equal every key of ``criteria``; returns them."""
        kept, removed = [], []
        for order in self._orders:
            matches = all(order.get(key) == value for key, value in criteria.items())
            (removed if matches else kept).append(order)
        self._orders = kept
        return removed

    def __repr__(self):
        return f"TraderSession(username='{self.username}', connected={self.channel.connected()})"

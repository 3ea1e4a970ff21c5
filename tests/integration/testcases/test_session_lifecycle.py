#!/usr/bin/env python3
"""
Session lifecycle test suite.

Covers login, the subscription handshake, rejected handshakes and teardown
against the mock platform.
"""

from testplan.testing.multitest import testcase, testsuite

from trading_e2e import ChannelConnectionError, SessionStartError
from .base_test_suite import BaseTestSuite, MARKET_ID, SYMBOL

HANDSHAKE_IDS = [
    "trade.4", "orderbook.5", "quoteBook.5", "mdstat.5", "cobOrder.6", "userPosition.7",
    "negotiation.16", "rfq.10", "registryTransaction.10", "notification.xxxxxx",
]


@testsuite
class SessionLifecycleTests(BaseTestSuite):
    """Test suite for session start and stop"""

    # ========================================================================
    # Start
    # ========================================================================

    @testcase(tags={'session', 'smoke'})
    def test_start_handshake(self, env, result):
        """start() subscribes to every channel in a fixed order"""
        async def scenario():
            async with self.new_session() as session:
                await session.start(MARKET_ID, SYMBOL)
                return session.channel.heartbeat_running, len(session.queue)

        heartbeat_running, queued = self.run(scenario())

        result.equal(self.subscription_ids(), HANDSHAKE_IDS, "Handshake order")
        result.true(heartbeat_running, "Heartbeat should run after start")
        result.equal(queued, 0, "Queue is cleared after the handshake")

        trade = self.platform.received("subscribe")[0]
        self.check_template(
            {"type": "subscribe", "channel": "trade", "marketId": MARKET_ID, "symbol": SYMBOL},
            trade, result, "Trade subscription carries the instrument",
        )

    @testcase(tags={'session'})
    def test_start_with_firm_and_no_quote_book(self, env, result):
        """Optional handshake steps follow the session parameters"""
        async def scenario():
            async with self.new_session(firm_id="FIRM1") as session:
                await session.start(MARKET_ID, SYMBOL, enable_quote_book=False)

        self.run(scenario())
        ids = self.subscription_ids()
        result.not_contain("quoteBook.5", ids, "quoteBook skipped")
        result.contain("tradeCapture.15", ids, "tradeCapture subscribed for firm sessions")
        result.equal(ids[-1], "notification.xxxxxx", "notification is the last step")

    @testcase(tags={'session', 'batched'})
    def test_start_on_batched_platform(self, env, result):
        """Acknowledgements packed in batch frames complete the handshake"""
        async def scenario():
            async with self.new_session(platform=self.batched) as session:
                await session.start(MARKET_ID, SYMBOL)
                return session.channel.connected()

        result.true(self.run(scenario()), "Session connected")
        result.equal(self.subscription_ids(self.batched), HANDSHAKE_IDS, "Handshake order")

    # ========================================================================
    # Failures
    # ========================================================================

    @testcase(tags={'session', 'negative'})
    def test_rejected_subscription(self, env, result):
        """A non-OK acknowledgement aborts start() and disconnects"""
        self.platform.reject_subscription("negotiation")

        async def scenario():
            session = self.new_session()
            try:
                await session.start(MARKET_ID, SYMBOL)
            except SessionStartError as e:
                return str(e), session.channel.connected()
            finally:
                await session.stop()
            return None, True

        message, connected = self.run(scenario())
        result.true(message is not None, "start() should raise SessionStartError")
        result.contain("negotiation.16", message or "", "Error names the failed step")
        result.false(connected, "Channel is disconnected after a failed start")

    @testcase(tags={'session', 'negative'})
    def test_bad_token_refused(self, env, result):
        """The platform refuses a WebSocket handshake with an unknown token"""
        async def scenario():
            session = self.new_session(token="not-the-token")
            try:
                await session.start(MARKET_ID, SYMBOL)
            except ChannelConnectionError:
                return True
            return False

        result.true(self.run(scenario()), "Connection refused")
        result.equal(self.subscription_ids(), [], "No subscription reached the platform")

    # ========================================================================
    # Lazy start and stop
    # ========================================================================

    @testcase(tags={'session'})
    def test_lazy_start(self, env, result):
        """lazy_start() connects without subscribing"""
        async def scenario():
            async with self.new_session() as session:
                await session.lazy_start()
                return session.channel.connected()

        result.true(self.run(scenario()), "Connected")
        result.equal(self.subscription_ids(), [], "No subscriptions sent")

    @testcase(tags={'session'})
    def test_stop_disconnects(self, env, result):
        """stop() confirms disconnection and later expectations fail fast"""
        async def scenario():
            session = self.new_session()
            await session.start(MARKET_ID, SYMBOL)
            await session.stop()
            try:
                await session.expect({"type": "trade"})
            except AssertionError as e:
                return session.channel.connected(), type(e).__name__
            return session.channel.connected(), None

        connected, error = self.run(scenario())
        result.false(connected, "Disconnected after stop()")
        result.equal(error, "ChannelClosedError", "expect() fails fast on a closed session")

"""
Subscribe/unsubscribe protocol messages.

The client sends {"type": "subscribe", "id": ..., "channel": ..., **filters};
the server echoes the request with "status": "OK" and, for channels that
carry state, follows with {"id": ..., "type": "initial_data", "payload": [...]}.
"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class Subscription:
    """A subscribable channel and the request id used for it."""
    channel: str
    request_id: str
    initial_data: bool = False


TRADE = Subscription("trade", "trade.4", initial_data=True)
ORDER_BOOK = Subscription("orderbook", "orderbook.5", initial_data=True)
QUOTE_BOOK = Subscription("quoteBook", "quoteBook.5")
MD_STAT = Subscription("mdstat", "mdstat.5", initial_data=True)
ALL_MD_STATS = Subscription("allMdStats", "allMdStats.6")
COB_ORDER = Subscription("cobOrder", "cobOrder.6")
USER_POSITION = Subscription("userPosition", "userPosition.7")
USER_POSITION_SUMMARY = Subscription("userPosition", "userPosition.13")
MY_ASSETS = Subscription("myAssets", "myAssets.7")
RFQ = Subscription("rfq", "rfq.10")
REGISTRY_TRANSACTION = Subscription("registryTransaction", "registryTransaction.10")
AUCTION = Subscription("auction", "auction.11")
NOTIFICATION = Subscription("notification", "notification.xxxxxx")
NFT_NOTIFICATION = Subscription("notification", "notification.11")
TRADE_CAPTURE = Subscription("tradeCapture", "tradeCapture.15")
NEGOTIATION = Subscription("negotiation", "negotiation.16")
USER_CHATS = Subscription("userChats", "userChats.19")
GENERAL_DATA = Subscription("generalData", "generalData.19")
ORDER = Subscription("order", "order.20")
ALL_REGISTRY_TRANSACTION = Subscription("allRegistryTransaction", "allRegistryTransaction.60")
REFDATA = Subscription("refdata", "refdata.xxxxxx")
SYSTEM_STATE = Subscription("systemState", "systemState.xxxxxx")
GATEWAY_CONTROLLER = Subscription("gatewayController", "gatewayController.xxxxxx")
MAKER_CHECKER = Subscription("makerCheckerEvent", "makerCheckerEvent.xxxxxx")

ALL_SUBSCRIPTIONS = (
    TRADE, ORDER_BOOK, QUOTE_BOOK, MD_STAT, ALL_MD_STATS, COB_ORDER, USER_POSITION,
    MY_ASSETS, RFQ, REGISTRY_TRANSACTION, AUCTION, NOTIFICATION, TRADE_CAPTURE,
    NEGOTIATION, USER_CHATS, GENERAL_DATA, ORDER, ALL_REGISTRY_TRANSACTION, REFDATA,
    SYSTEM_STATE, GATEWAY_CONTROLLER, MAKER_CHECKER, NFT_NOTIFICATION, USER_POSITION_SUMMARY,
)


def subscribe_message(subscription: Subscription, **filters) -> Dict[str, Any]:
    return {"type": "subscribe", "id": subscription.request_id, "channel": subscription.channel, **filters}


def unsubscribe_message(subscription: Subscription, **filters) -> Dict[str, Any]:
    return {"type": "unsubscribe", "id": subscription.request_id, "channel": subscription.channel, **filters}


def acknowledgement(request: Dict[str, Any], status: str = "OK") -> Dict[str, Any]:
    """Template for the server's echo of a request."""
    return {**request, "status": status}


def initial_data(request: Dict[str, Any]) -> Dict[str, Any]:
    """Template for the snapshot that follows a subscription."""
    return {"id": request["id"], "type": "initial_data"}


def market_filters(market_id: str, symbol: str) -> Dict[str, Any]:
    return {"marketId": market_id, "symbol": symbol}


def instrument_filters(market_id: str, symbol: str) -> Dict[str, Any]:
    return {"instruments": [{"marketId": market_id, "symbol": symbol}]}


def logout_message(reason: str = "User initiated") -> Dict[str, Any]:
    return {"type": "logout", "reason": reason}

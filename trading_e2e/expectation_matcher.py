"""
Expectation matcher: waits for expected events to appear in an InboundQueue.

expect() runs in rounds. Each round waits (in poll_interval ticks) until enough
unconsumed events are queued or the round's budget is spent, then matches:

- None: the queue must hold no unconsumed event.
- a list of templates: each remaining template is paired with the first
  unclaimed event in the window [cursor, cursor + required_count) that
  satisfies it, in any order. A template with no partner ends the round with
  a larger required_count for the next one:

      remaining_count = unmatched + matched_this_round + 1 + retry_index

  The extra one-plus-retry widens the window every round so that events
  trickling in one at a time are still waited for. On full success the
  cursor moves by required_count.
- a single template: the next unconsumed event is consumed and compared; a
  miss asks the next round for one more event.

Rounds repeat while the remaining budget is at least 50 ms. Events before the
cursor are spliced out of the queue afterwards (or only the cursor is reset
when splice=False).
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .comparator import closest_candidates, compare
from .configuration import IgnoreOptions
from .errors import (
    ChannelClosedError,
    ConcurrentExpectError,
    MatchTimeoutError,
    UnexpectedMessageError,
)
from .inbound_queue import InboundQueue

PER_EVENT_TIMEOUT = 30
MIN_RETRY_BUDGET_MS = 50

Expected = Any
# (absolute queue position at match time, event)
Match = Tuple[int, Dict[str, Any]]


@dataclass
class RoundResult:
    """Outcome of one wait+match round."""
    matched: List[Match] = field(default_factory=list)
    done: bool = True
    remaining_time: float = 0
    remaining_count: int = 0
    unmatched: List[Any] = field(default_factory=list)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


def required_count(expected: Expected) -> int:
    if expected is None:
        return 0
    if isinstance(expected, list):
        return len(expected)
    return 1


def default_timeout_ms(count: int) -> float:
    return max(1, PER_EVENT_TIMEOUT * count) * 1000


class ExpectationMatcher:
    """Matches expected templates against one session's inbound queue."""

    def __init__(
        self,
        queue: InboundQueue,
        is_connected: Optional[Callable[[], bool]] = None,
        ignore: Optional[IgnoreOptions] = None,
        poll_interval: float = 0.1,
        name: str = "matcher",
    ):
        self.queue = queue
        self.is_connected = is_connected or (lambda: True)
        self.ignore = ignore or IgnoreOptions()
        self.poll_interval = poll_interval
        self.name = name
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(f"ExpectationMatcher.{name}")

    # ========================================================================
    # expect()
    # ========================================================================

    async def expect(self, expected: Expected = None, timeout: float = 0, splice: bool = True) -> List[Dict[str, Any]]:
        """
        Wait for ``expected`` and consume the matching events.

        Args:
            expected: None (no event may arrive), a template, or a list of templates
            timeout: seconds; 0 means 30s per expected event with a 1s floor
            splice: remove consumed events from the queue (True) or only reset the cursor

        Returns:
            Matched events; for a list, in arrival order

        Raises:
            MatchTimeoutError: templates still unmatched at the deadline
            UnexpectedMessageError: ``expected`` is None and events are queued
            ChannelClosedError: the channel is down with too few events queued
            ConcurrentExpectError: another expect() is running on this queue
        """
        if self._lock.locked():
            raise ConcurrentExpectError(f"({self.name}) expect() is already running")
        async with self._lock:
            try:
                return await self._expect(expected, timeout, splice)
            except BaseException:
                self.queue.rewind()
                raise

    async def _expect(self, expected: Expected, timeout: float, splice: bool) -> List[Dict[str, Any]]:
        self.logger.debug(f"--------expect()-------- {_dumps(expected)}")

        count = required_count(expected)
        timeout_ms = timeout * 1000 if timeout else default_timeout_ms(count)
        templates = list(expected) if isinstance(expected, list) else None
        claimed: Set[int] = set()

        matched: List[Match] = []
        retry = 0
        result = await self._round(expected, templates, timeout_ms, count, retry, claimed)
        matched.extend(result.matched)
        while not result.done and result.remaining_time >= MIN_RETRY_BUDGET_MS:
            retry += 1
            self.logger.debug(
                f"No match yet, retry={retry} remaining_time(ms)={result.remaining_time} "
                f"required_count={result.remaining_count}"
            )
            result = await self._round(
                expected, templates, result.remaining_time, result.remaining_count, retry, claimed
            )
            matched.extend(result.matched)

        if result.remaining_count > 0:
            self._report_unmatched(expected, result.unmatched)

        if splice:
            self.logger.debug(f"Splicing consumed events, length={len(self.queue)} cursor={self.queue.cursor}")
            self.queue.splice_consumed()
        else:
            self.queue.rewind()

        if templates is not None:
            matched.sort(key=lambda match: match[0])
        return [event for _, event in matched]

    # ========================================================================
    # Rounds
    # ========================================================================

    async def _wait(self, budget_ms: float, count: int) -> float:
        """
        Poll until ``count`` events are unconsumed, the channel drops, or the budget is spent.

        Returns:
            Milliseconds actually spent waiting; 0 when the condition already held
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        elapsed = 0.0
        while elapsed < budget_ms:
            if not self.is_connected() or self.queue.unconsumed_count() >= count:
                break
            await asyncio.sleep(self.poll_interval)
            elapsed = (loop.time() - started) * 1000
        return elapsed

    async def _round(
        self,
        expected: Expected,
        templates: Optional[List[Any]],
        budget_ms: float,
        count: int,
        retry: int,
        claimed: Set[int],
    ) -> RoundResult:
        if not self.is_connected() and self.queue.unconsumed_count() < count:
            raise ChannelClosedError(
                f"({self.name}) not connected: expected count={count} "
                f"queued={self.queue.unconsumed_count()}"
            )
        self.logger.debug(f"round: required_count={count} budget(ms)={budget_ms} retry={retry}")

        waited = await self._wait(budget_ms, count)
        remaining = budget_ms - waited
        self.logger.debug(
            f"Wait over: required_count={count} queued={self.queue.unconsumed_count()} "
            f"remaining(ms)={remaining}"
        )

        if expected is None:
            return self._match_none()
        if templates is not None:
            return self._match_list(templates, count, retry, claimed, remaining)
        return self._match_single(expected, remaining)

    def _match_none(self) -> RoundResult:
        pending = self.queue.unconsumed_count()
        if pending != 0:
            received = self.queue.peek_window(pending)
            raise UnexpectedMessageError(
                f"({self.name}) expected no message but {pending} received: {_dumps(received)}",
                received,
            )
        return RoundResult()

    def _scan(self, template: Any, count: int, claimed: Set[int]) -> Optional[int]:
        for offset in range(count):
            if offset in claimed:
                continue
            actual = self.queue.peek(offset)
            if actual is not None and compare(template, actual):
                return offset
        return None

    def _match_list(
        self,
        templates: List[Any],
        count: int,
        retry: int,
        claimed: Set[int],
        remaining: float,
    ) -> RoundResult:
        matched: List[Match] = []
        while templates:
            template = templates[0]
            offset = self._scan(template, count, claimed)
            if offset is None:
                self.logger.debug(
                    f"Not matched: unmatched={len(templates)} queued={self.queue.unconsumed_count()}"
                )
                self._log_closest(template)
                return RoundResult(
                    matched=matched,
                    done=False,
                    remaining_time=remaining,
                    remaining_count=len(templates) + len(matched) + 1 + retry,
                    unmatched=list(templates),
                )
            templates.pop(0)
            claimed.add(offset)
            matched.append((self.queue.cursor + offset, self.queue.peek(offset)))

        self.queue.advance(count)
        self.logger.debug("List fully matched")
        return RoundResult(matched=matched)

    def _match_single(self, expected: Any, remaining: float) -> RoundResult:
        if self.queue.unconsumed_count() <= 0:
            if self.ignore.unmatched:
                self.logger.warning(
                    f"No message received within the timeout for {_dumps(expected)}, continuing"
                )
                return RoundResult()
            raise MatchTimeoutError(
                f"({self.name}) no matching messages received within the timeout for {_dumps(expected)}",
                unmatched=[expected],
            )

        position = self.queue.cursor
        actual = self.queue.peek(0)
        self.queue.advance(1)
        if not compare(expected, actual):
            self.logger.debug(f"Not matched: {_dumps(actual)}")
            return RoundResult(done=False, remaining_time=remaining, remaining_count=1, unmatched=[expected])

        self.logger.debug("Message matched")
        return RoundResult(matched=[(position, actual)])

    # ========================================================================
    # Diagnostics
    # ========================================================================

    def _log_closest(self, template: Any):
        for candidate in closest_candidates(template, self.queue.events()):
            self.logger.debug(f"Closest match:\n{candidate}")

    def _report_unmatched(self, expected: Expected, unmatched: List[Any]):
        unmatched = unmatched or [expected]
        if self.ignore.unmatched:
            self.logger.warning(f"Not matched, continuing: {_dumps(unmatched)}")
            return

        candidates: List[str] = []
        for template in unmatched:
            candidates.extend(closest_candidates(template, self.queue.events()))
        message = f"({self.name}) no match found for {_dumps(unmatched)}"
        if candidates:
            message += "\nClosest candidates:\n" + "\n".join(candidates[:3])
        raise MatchTimeoutError(message, unmatched=unmatched, candidates=candidates)

    # ========================================================================
    # Lookup by key
    # ========================================================================

    async def find(self, template: Dict[str, Any], key: str = "requestId", timeout: float = 30):
        """
        Wait for the event whose ``payload[key]`` equals the template's, remove it
        from the queue and compare it against the whole template.

        Returns:
            (is_valid, event) - event is None when nothing arrived in time
        """
        wanted = (template.get("payload") or {}).get(key)
        tick_ms = self.poll_interval * 1000
        elapsed = 0.0
        while True:
            for index, event in enumerate(self.queue.events()):
                payload = event.get("payload")
                if isinstance(payload, dict) and key in payload and payload[key] == wanted:
                    actual = self.queue.take(index)
                    self.logger.debug(f"Found event by {key}={wanted}")
                    return compare(template, actual), actual
            if elapsed >= timeout * 1000:
                self.logger.debug(f"No event with {key}={wanted} within {timeout}s")
                return False, None
            await asyncio.sleep(self.poll_interval)
            elapsed += tick_ms

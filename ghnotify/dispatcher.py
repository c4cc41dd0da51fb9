"""Deliver routed notifications to every destination chat.

Each chat is handled independently: a failure for one never prevents
delivery to the others. Sends to different chats run concurrently, while
the retry sequence for a single chat is strictly sequential.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from ghnotify.errors import DispatchError, DispatchErrorKind
from ghnotify.routing import RoutingDecision

logger = logging.getLogger(__name__)


class MessageClient(Protocol):
    """Anything that can send a text message to a chat."""

    async def send_message(self, chat_id: int, text: str) -> object:
        ...


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of delivering one message to one chat."""

    chat_id: int
    success: bool
    attempts: int
    last_error: Optional[DispatchErrorKind] = None
    detail: Optional[str] = None


def summarize(outcomes: Sequence[DispatchOutcome], label: str = "") -> None:
    """Log one line per failed destination and an overall total."""
    failed = [o for o in outcomes if not o.success]
    for outcome in failed:
        kind = outcome.last_error.value if outcome.last_error else "Unknown"
        logger.error(
            f"❌ Delivery to chat {outcome.chat_id} failed after "
            f"{outcome.attempts} attempt(s) [{kind}]: {outcome.detail}"
        )
    if outcomes:
        prefix = f"{label}: " if label else ""
        logger.info(
            f"{prefix}delivered to {len(outcomes) - len(failed)}/{len(outcomes)} chat(s)"
        )


class Dispatcher:
    """Sends a routed message to its chats with bounded retries."""

    def __init__(
        self,
        client: MessageClient,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        timeout_seconds: float = 10.0,
        max_delay_seconds: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the dispatcher.

        Args:
            client: Provider client used for every send.
            max_attempts: Upper bound on attempts per chat, including the first.
            backoff_seconds: Base delay, doubled after every failed attempt.
            timeout_seconds: Bound on a single attempt.
            max_delay_seconds: Ceiling on any single delay, including a
                provider-requested ``retry_after``.
            sleep: Awaitable used to wait between attempts.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds
        self.max_delay_seconds = max_delay_seconds
        self._sleep = sleep

    def delay_for(self, attempt: int, error: DispatchError) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        delay = self.backoff_seconds * (2 ** (attempt - 1))
        if error.retry_after is not None:
            delay = max(delay, float(error.retry_after))
        return min(delay, self.max_delay_seconds)

    async def _attempt(self, chat_id: int, text: str) -> None:
        try:
            await asyncio.wait_for(
                self.client.send_message(chat_id, text), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise DispatchError(
                f"Send to chat {chat_id} timed out after {self.timeout_seconds}s",
                transient=True,
            ) from e

    async def send_with_retry(self, chat_id: int, text: str) -> DispatchOutcome:
        """Deliver ``text`` to one chat, retrying transient failures.

        Args:
            chat_id: Destination chat id.
            text: Message body.

        Returns:
            DispatchOutcome for this chat. Never raises for send failures.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._attempt(chat_id, text)
            except DispatchError as e:
                if not e.transient:
                    logger.warning(f"Permanent failure for chat {chat_id}: {e}")
                    return DispatchOutcome(chat_id, False, attempt, e.kind, str(e))
                if attempt == self.max_attempts:
                    return DispatchOutcome(chat_id, False, attempt, e.kind, str(e))
                delay = self.delay_for(attempt, e)
                logger.warning(
                    f"Send attempt {attempt} to chat {chat_id} failed: {e}, "
                    f"retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
            except Exception as e:
                logger.error(f"Unexpected error sending to chat {chat_id}: {e}", exc_info=True)
                return DispatchOutcome(
                    chat_id, False, attempt, DispatchErrorKind.PERMANENT, str(e)
                )
            else:
                if attempt > 1:
                    logger.info(f"Delivered to chat {chat_id} on attempt {attempt}")
                return DispatchOutcome(chat_id, True, attempt)

        # max_attempts >= 1 guarantees the loop returns
        raise AssertionError("unreachable")

    async def dispatch(self, decision: RoutingDecision) -> List[DispatchOutcome]:
        """Send a routed message to all of its chats concurrently.

        Args:
            decision: The routing decision for one delivery.

        Returns:
            One DispatchOutcome per chat, ordered by chat id. Empty when the
            decision is suppressed.
        """
        if decision.suppressed or decision.message is None:
            return []
        chats = sorted(decision.chats)
        results = await asyncio.gather(
            *(self.send_with_retry(chat_id, decision.message) for chat_id in chats)
        )
        return list(results)

    async def dispatch_and_log(
        self, decision: RoutingDecision, label: str = ""
    ) -> List[DispatchOutcome]:
        """Dispatch and log a summary of the outcomes."""
        outcomes = await self.dispatch(decision)
        summarize(outcomes, label)
        return outcomes

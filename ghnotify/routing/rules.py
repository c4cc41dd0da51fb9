"""Routing rules for GitHub webhooks.

This module decides which Telegram chats receive a notification for an
event. A repository without a ``[[repository]]`` entry goes to the default
chats. A repository with an entry uses its own ``send_to`` (which replaces
the defaults, never merges with them) unless the event's branch is listed in
``branch_ignore``, in which case the event is suppressed.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from ghnotify.config import Config
from ghnotify.events import Event
from ghnotify.formatter import format_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutingDecision:
    """Where an event goes and what is sent there."""

    chats: FrozenSet[int]
    """Destination chat ids, empty when the event is suppressed."""

    message: Optional[str] = None
    """Rendered message, only produced when there is at least one chat."""

    @property
    def suppressed(self) -> bool:
        return not self.chats


def resolve_chats(event: Event, config: Config) -> FrozenSet[int]:
    """Compute the destination chats for an event.

    Args:
        event: The normalized event.
        config: The configuration snapshot.

    Returns:
        The destination chat ids, possibly empty.
    """
    route_cfg = config.repositories.get(event.repository)
    if route_cfg is None:
        return config.telegram.default_chats

    if event.branch is not None and event.branch in route_cfg.branch_ignore:
        logger.info(
            f"Branch {event.branch} of {event.repository} is ignored, suppressing"
        )
        return frozenset()

    if route_cfg.chats is not None:
        return route_cfg.chats
    return config.telegram.default_chats


def route(event: Event, config: Config) -> RoutingDecision:
    """Route an event and render its message when it has somewhere to go.

    Args:
        event: The normalized event.
        config: The configuration snapshot.

    Returns:
        RoutingDecision for this delivery.
    """
    chats = resolve_chats(event, config)
    if not chats:
        return RoutingDecision(chats=frozenset())
    return RoutingDecision(chats=chats, message=format_event(event))


class EventRouter:
    """Routes events against a fixed configuration snapshot."""

    def __init__(self, config: Config):
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    def route(self, event: Event) -> RoutingDecision:
        """Route an event.

        Args:
            event: The normalized event.

        Returns:
            RoutingDecision for this delivery.
        """
        return route(event, self._config)

    @property
    def registered_repositories(self) -> List[str]:
        """Get the sorted list of repositories with an explicit route."""
        return sorted(self._config.repositories)

"""Event routing for GitHub webhooks."""

from .rules import EventRouter, RoutingDecision, resolve_chats, route

__all__ = ["EventRouter", "RoutingDecision", "resolve_chats", "route"]

"""Event dispatcher component.

Routes decoded chat events to the listeners registered for their channel,
after resolving the sender's name into a user profile. Events whose sender
cannot be resolved are dropped silently.

Listeners are invoked synchronously, on the caller's thread (typically the
client's read loop), in registration order. A listener that blocks stalls
the read loop.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import dataclasses
import threading
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from .ircmessage import ChatEvent
    from .registry import ChannelRegistry

logger = structlog.get_logger()


@dataclasses.dataclass(frozen=True)
class UserProfile:
    """The identity of a chat user."""

    login: str
    display_name: str = ""
    id: str = ""

    def __str__(self) -> str:
        return self.display_name or self.login


class UserResolver(Protocol):
    """Looks up user profiles by login name."""

    def resolve(self, name: str) -> UserProfile | None:
        """Return the profile of the given user, or None if there is no such user."""


class ChatListener(Protocol):
    """Receives chat messages for the channels it has been registered against."""

    def on_message_received(self, profile: UserProfile, text: str, emotes: str) -> None:
        """Handle a chat message."""


class StaticUserResolver:
    """Resolves every non-empty name to a bare profile, without any lookup."""

    def resolve(self, name: str) -> UserProfile | None:
        """Return a profile with the login name set, or None for an empty name."""
        if not name:
            return None
        return UserProfile(login=name.lower(), display_name=name)


class EventDispatcher:
    """Fan-out of chat events to the listeners of a ChannelRegistry."""

    def __init__(
        self,
        registry: ChannelRegistry,
        resolver: UserResolver,
        lock: threading.RLock | None = None,
        metrics: dict[str, Any] | None = None,
    ) -> None:
        self.registry = registry
        self.resolver = resolver
        self.lock = lock or threading.RLock()
        self.metrics = metrics or {}

    def dispatch(self, event: ChatEvent) -> int:
        """Dispatch an event to every listener of its channel.

        Returns the number of listeners invoked.
        """
        profile = self.resolver.resolve(event.sender)
        if profile is None:
            logger.debug("Sender could not be resolved, dropping", sender=event.sender, channel=event.channel)
            if "dropped" in self.metrics:
                self.metrics["dropped"].inc()
            return 0

        # snapshot under the lock; listeners may join or leave while being invoked
        with self.lock:
            listeners = self.registry.listeners(event.channel)

        for listener in listeners:
            try:
                listener.on_message_received(profile, event.text, event.emotes)
            except Exception:
                if "errors" in self.metrics:
                    self.metrics["errors"].labels("listener").inc()
                logger.exception("Listener raised an exception", listener=repr(listener), channel=event.channel)
                continue  # a failing listener does not starve the others

        if "messages" in self.metrics:
            self.metrics["messages"].inc()
        return len(listeners)

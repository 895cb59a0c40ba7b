"""Channel registry component.

Tracks the channels the client is subscribed to, with a reference count of
the outstanding join() calls per channel, and the listeners registered
against each channel. The registry represents the *desired* set of
subscriptions and is independent of the connection: it is replayed after
every (re)connection.

The registry itself performs no locking and no I/O; join() and leave()
report whether a JOIN or PART needs to be sent, and the caller is expected
to serialize access to it.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from typing import Any


def canonical(channel: str) -> str:
    """Return the canonical form of a channel name: lowercase, without the #."""
    return channel.strip().lstrip("#").lower()


@dataclasses.dataclass
class ChannelSubscription:
    """A subscribed channel, its reference count and its listeners."""

    name: str
    refcount: int = 0
    listeners: list[Any] = dataclasses.field(default_factory=list)

    def add_listener(self, listener: Any) -> None:
        """Register a listener; registering the same listener twice is a no-op."""
        if not self.has_listener(listener):
            self.listeners.append(listener)

    def remove_listener(self, listener: Any) -> None:
        """Unregister a listener, if registered."""
        self.listeners = [registered for registered in self.listeners if registered is not listener]

    def has_listener(self, listener: Any) -> bool:
        """Return True if the listener is registered (by identity)."""
        return any(registered is listener for registered in self.listeners)


class ChannelRegistry:
    """Reference-counted channel subscriptions and their listeners."""

    def __init__(self) -> None:
        self._channels: dict[str, ChannelSubscription] = {}

    def join(self, channel: str, listener: Any) -> bool:
        """Subscribe a listener to a channel.

        Returns True if this was the first subscription for the channel, i.e.
        a JOIN needs to be sent.
        """
        name = canonical(channel)
        subscription = self._channels.setdefault(name, ChannelSubscription(name))
        subscription.add_listener(listener)
        subscription.refcount += 1
        return subscription.refcount == 1

    def leave(self, channel: str, listener: Any) -> bool:
        """Unsubscribe a listener from a channel.

        Returns True if this was the last subscription for the channel, i.e.
        a PART needs to be sent. Leaving a channel never joined is a no-op.
        """
        subscription = self._channels.get(canonical(channel))
        if subscription is None:
            return False

        subscription.remove_listener(listener)
        subscription.refcount -= 1
        if subscription.refcount > 0:
            return False
        del self._channels[subscription.name]
        return True

    def refcount(self, channel: str) -> int:
        """Return the number of outstanding subscriptions for a channel."""
        subscription = self._channels.get(canonical(channel))
        return subscription.refcount if subscription else 0

    def listeners(self, channel: str) -> list[Any]:
        """Return a snapshot of the listeners of a channel, in registration order."""
        subscription = self._channels.get(canonical(channel))
        return list(subscription.listeners) if subscription else []

    @property
    def channels(self) -> Iterable[str]:
        """Return a list of all the channels currently subscribed to."""
        return list(self._channels)

    def listener_count(self) -> int:
        """Return the number of (channel, listener) registrations."""
        return sum(len(subscription.listeners) for subscription in self._channels.values())

    def __contains__(self, channel: object) -> bool:
        return isinstance(channel, str) and canonical(channel) in self._channels

    def __len__(self) -> int:
        return len(self._channels)

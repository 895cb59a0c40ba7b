"""Credentials used to log in to the chat server.

Acquiring and refreshing OAuth tokens happens outside of this package; the
client only consumes a token provider, which hands out a bearer token on
demand and can be told to invalidate it.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import enum
from typing import Protocol


class Scope(enum.Flag):
    """OAuth scopes relevant to chat."""

    NONE = 0
    CHAT_READ = enum.auto()
    CHAT_EDIT = enum.auto()


class TokenProvider(Protocol):
    """A provider of bearer tokens."""

    scopes: Scope

    def get_token(self) -> str:
        """Return a (possibly freshly acquired) token."""

    def invalidate(self) -> None:
        """Forget the current token, so that the next get_token() acquires a new one."""


class StaticTokenProvider:
    """A token provider for a pre-acquired token, e.g. one read from the configuration file."""

    def __init__(self, token: str, scopes: Scope = Scope.NONE) -> None:
        self.token = token
        self.scopes = scopes
        self.invalidations = 0

    def get_token(self) -> str:
        """Return the configured token."""
        return self.token

    def invalidate(self) -> None:
        """Count the invalidation; a static token cannot be refreshed."""
        self.invalidations += 1

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} scopes={self.scopes}>"


def as_password(token: str) -> str:
    """Return the token in the form the PASS command expects, i.e. prefixed with "oauth:"."""
    return token if token.startswith("oauth:") else f"oauth:{token}"

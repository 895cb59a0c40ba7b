"""Exceptions raised by the chat client components."""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations


class ChatError(Exception):
    """Base class for all chat client errors."""


class NoCredentialError(ChatError):
    """A connection was attempted without a token provider."""


class TlsHandshakeError(ChatError):
    """The TLS negotiation or the server certificate validation failed."""


class NotConnectedError(ChatError):
    """A write was attempted while no transport is live."""


class WriteError(ChatError):
    """The underlying socket refused or failed a write."""


class ParseAnomalyError(ChatError, ValueError):
    """A line that does not follow the protocol grammar."""

    def __init__(self, reason: str, line: str) -> None:
        super().__init__(f"{reason}: {line!r}")
        self.reason = reason
        self.line = line

"""Command encoder component.

Formats the outbound commands the client sends, as the exact wire text the
chat server expects, including the CRLF line terminator.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

TERMINATOR = "\r\n"


def terminate(line: str) -> str:
    """Append the line terminator to a line."""
    return line + TERMINATOR


def cap_req(capabilities: str) -> str:
    """Request one or more (space-separated) capabilities."""
    return terminate(f"CAP REQ :{capabilities}")


def password(token: str) -> str:
    """Send the credential."""
    return terminate(f"PASS {token}")


def nick(name: str) -> str:
    """Send the nickname."""
    return terminate(f"NICK {name}")


def user(name: str, realname: str) -> str:
    """Send the user identity line."""
    return terminate(f"USER {name} 0 * :{realname}")


def join(channel: str) -> str:
    """Join a channel, given without its leading #."""
    return terminate(f"JOIN #{channel}")


def part(channel: str) -> str:
    """Leave a channel, given without its leading #."""
    return terminate(f"PART #{channel}")


def pong(payload: str = "") -> str:
    """Reply to a PING, echoing its payload when there is one."""
    if payload:
        return terminate(f"PONG :{payload}")
    return terminate("PONG")


def privmsg(channel: str, text: str) -> str:
    """Send a chat message to a channel."""
    return terminate(f"PRIVMSG #{channel} :{text}")


def quit() -> str:  # noqa: A001
    """Terminate the session."""
    return terminate("QUIT")


def raw(text: str) -> str:
    """Pass a caller-formatted line through."""
    return terminate(text)

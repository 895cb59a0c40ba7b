"""Protocol parser component.

Decomposes raw lines of the Twitch flavour of the IRC protocol into their
atoms: IRCv3 message tags, the optional prefix, the command and the
parameters. Chat messages (PRIVMSG) are further decomposed into a ChatEvent.

Parsing is split in the same three stages the protocol grammar has: the line
envelope, the prefix, and the PRIVMSG payload. Absent optional parts are
represented as empty strings (or an empty mapping for tags) and never raise.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import dataclasses
from collections.abc import Mapping

from .errors import ParseAnomalyError

# IRCv3 message-tags, "Escaping values"
TAG_ESCAPES = {
    ":": ";",
    "s": " ",
    "\\": "\\",
    "r": "\r",
    "n": "\n",
}


def unescape_tag_value(value: str) -> str:
    """Unescape an IRCv3 tag value, e.g. "Hello\\sworld" to "Hello world"."""
    if "\\" not in value:
        return value

    unescaped = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            unescaped.append(char)
            continue
        # a trailing lone backslash is dropped; unknown escapes yield the char itself
        escaped = next(chars, "")
        unescaped.append(TAG_ESCAPES.get(escaped, escaped))
    return "".join(unescaped)


def parse_tags(raw_tags: str) -> dict[str, str]:
    """Parse the tags part of a message (without the leading @) into a dict."""
    tags = {}
    for tag in raw_tags.split(";"):
        if not tag:
            continue
        key, _, value = tag.partition("=")
        tags[key] = unescape_tag_value(value)
    return tags


@dataclasses.dataclass(frozen=True)
class Prefix:
    """The origin of a message.

    Either a bare servername (e.g. tmi.twitch.tv) or a nick!user@host triple;
    exactly one of the two forms is populated, the other is left empty.
    """

    servername: str = ""
    nick: str = ""
    user: str = ""
    host: str = ""

    @classmethod
    def from_string(cls, prefix: str) -> Prefix:
        """Parse a prefix, given without its leading colon."""
        nick, bang, userhost = prefix.partition("!")
        if bang:
            user, at, host = userhost.partition("@")
            if at:
                return cls(nick=nick, user=user, host=host)

        # anything else is a servername, up to the first ! or @
        servername = prefix.split("!", 1)[0].split("@", 1)[0]
        return cls(servername=servername)

    @property
    def name(self) -> str:
        """Return the name of the origin: the nick, falling back to the servername."""
        return self.nick or self.servername

    def __bool__(self) -> bool:
        return bool(self.servername or self.nick)


@dataclasses.dataclass(frozen=True)
class IRCMessage:
    """Represents a single line of the protocol.

    Can be either initialized:
    * with its constructor using a command, raw params and (optionally) tags and prefix
    * given a raw line, using the from_message() class method

    The params are kept verbatim as the remainder of the line after the command;
    the args property splits them into middle and trailing parameters.
    """

    command: str
    params: str = ""
    tags: Mapping[str, str] = dataclasses.field(default_factory=dict)
    prefix: Prefix = dataclasses.field(default_factory=Prefix)

    @classmethod
    def from_message(cls, message: str) -> IRCMessage:
        """Parse a raw line. Returns an instance of IRCMessage.

        Raises ParseAnomalyError if no command can be found in the line.
        """
        line = message.rstrip("\r\n")

        tags: dict[str, str] = {}
        if line.startswith("@"):
            raw_tags, _, line = line.partition(" ")
            tags = parse_tags(raw_tags[1:])

        prefix = Prefix()
        if line.startswith(":"):
            raw_prefix, _, line = line.partition(" ")
            prefix = Prefix.from_string(raw_prefix[1:])

        command, _, params = line.lstrip(" ").partition(" ")
        if not command:
            raise ParseAnomalyError("Invalid IRC message (no command specified)", message)
        if not command.isalnum():
            raise ParseAnomalyError("Invalid IRC message (malformed command)", message)

        return cls(command.upper(), params, tags, prefix)

    @property
    def args(self) -> list[str]:
        """Return the parameters as a list, with the trailing parameter last."""
        params = self.params
        args = []
        while params:
            if params.startswith(":"):
                args.append(params[1:])
                break
            arg, _, params = params.partition(" ")
            # skip multiple spaces in middle of message, as per RFC 1459
            if arg:
                args.append(arg)
        return args


@dataclasses.dataclass(frozen=True)
class ChatEvent:
    """A chat message, as decomposed from a PRIVMSG line."""

    channel: str
    text: str
    emotes: str
    sender: str

    @classmethod
    def from_message(cls, msg: IRCMessage) -> ChatEvent:
        """Decompose a parsed PRIVMSG into its channel, text, emotes and sender."""
        if msg.command != "PRIVMSG":
            raise ValueError(f"Not a chat message: {msg.command}")

        args = msg.args
        channel = args[0].lstrip("#").lower() if args else ""
        text = args[1] if len(args) > 1 else ""
        return cls(
            channel=channel,
            text=text,
            emotes=msg.tags.get("emotes", ""),
            sender=msg.prefix.name,
        )

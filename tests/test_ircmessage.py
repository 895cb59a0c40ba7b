"""Test the validity of our IRCMessage parser and the ChatEvent decomposition."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest
import yaml

from tmiclient import ChatEvent, IRCMessage, ParseAnomalyError, Prefix
from tmiclient.ircmessage import unescape_tag_value

TEST_DATA_DIR = Path(__file__).parent / "data"


def pytest_generate_tests(metafunc: pytest.Metafunc) -> None:
    """Generate test data fixtures from the lines.yaml file.

    Create one test for each of the lines in there, to avoid lumping all of
    them together in one big test.
    """
    if "data_line" in metafunc.fixturenames:
        with (TEST_DATA_DIR / "lines.yaml").open(encoding="utf-8") as yamlfile:
            yamldata = yaml.safe_load(yamlfile.read())
        tests = yamldata["tests"]
        metafunc.parametrize("data_line", tests, ids=[test["desc"] for test in tests])


def test_line_split(data_line: Mapping[str, Any]) -> None:
    """Parse a raw line and check whether all of its atoms are how they should be."""
    atoms = data_line["atoms"]
    parsed = IRCMessage.from_message(data_line["input"])

    assert dict(parsed.tags) == atoms.get("tags", {})
    assert parsed.prefix.servername == atoms.get("servername", "")
    assert parsed.prefix.nick == atoms.get("nick", "")
    assert parsed.prefix.user == atoms.get("user", "")
    assert parsed.prefix.host == atoms.get("host", "")
    assert parsed.command == atoms["command"]
    assert parsed.params == atoms.get("params", "")
    assert parsed.args == atoms.get("args", [])


def test_privmsg_event() -> None:
    """Test the decomposition of a chat message into a ChatEvent."""
    line = "@emotes=25:0-4;id=abc :user!user@user.tmi.twitch.tv PRIVMSG #somechannel :Hello Kappa"
    parsed = IRCMessage.from_message(line)

    assert parsed.tags["emotes"] == "25:0-4"
    assert parsed.prefix.nick == "user"
    assert parsed.command == "PRIVMSG"

    event = ChatEvent.from_message(parsed)
    assert event == ChatEvent(channel="somechannel", text="Hello Kappa", emotes="25:0-4", sender="user")


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        # no emotes tag at all
        (":a!a@a PRIVMSG #chan :no emotes", ChatEvent("chan", "no emotes", "", "a")),
        # emotes as the last tag, without a trailing semicolon
        ("@id=1;emotes=1:0-1 :a!a@a PRIVMSG #chan :hi", ChatEvent("chan", "hi", "1:0-1", "a")),
        # empty emotes tag
        ("@emotes=;id=1 :a!a@a PRIVMSG #chan :hi", ChatEvent("chan", "hi", "", "a")),
        # colons within the text belong to the text
        (":a!a@a PRIVMSG #chan :hi :) there", ChatEvent("chan", "hi :) there", "", "a")),
        # uppercase channels are canonicalized
        (":a!a@a PRIVMSG #Chan :hi", ChatEvent("chan", "hi", "", "a")),
        # single-word text without the colon
        (":a!a@a PRIVMSG #chan hi", ChatEvent("chan", "hi", "", "a")),
        # missing text
        (":a!a@a PRIVMSG #chan", ChatEvent("chan", "", "", "a")),
        # missing everything
        ("PRIVMSG", ChatEvent("", "", "", "")),
        # sender falls back to the servername
        (":tmi.twitch.tv PRIVMSG #chan :from the server", ChatEvent("chan", "from the server", "", "tmi.twitch.tv")),
    ],
)
def test_privmsg_event_edge_cases(line: str, expected: ChatEvent) -> None:
    """Test that absent parts of a chat message yield empty strings instead of errors."""
    assert ChatEvent.from_message(IRCMessage.from_message(line)) == expected


def test_event_not_privmsg() -> None:
    """Test that only PRIVMSG lines can be turned into chat events."""
    with pytest.raises(ValueError, match="Not a chat message"):
        ChatEvent.from_message(IRCMessage.from_message("PING :tmi.twitch.tv"))


@pytest.mark.parametrize(
    ("prefix", "expected"),
    [
        ("nick!user@host", Prefix(nick="nick", user="user", host="host")),
        ("tmi.twitch.tv", Prefix(servername="tmi.twitch.tv")),
        ("nick!user", Prefix(servername="nick")),
        ("nick@host", Prefix(servername="nick")),
        ("", Prefix()),
    ],
)
def test_prefix(prefix: str, expected: Prefix) -> None:
    """Test that exactly one of the two prefix forms is populated."""
    parsed = Prefix.from_string(prefix)
    assert parsed == expected
    assert not (parsed.servername and parsed.nick)


def test_prefix_name() -> None:
    """Test the name of a prefix, falling back from the nick to the servername."""
    assert Prefix(nick="nick", user="user", host="host").name == "nick"
    assert Prefix(servername="tmi.twitch.tv").name == "tmi.twitch.tv"
    assert Prefix().name == ""
    assert not Prefix()


@pytest.mark.parametrize("line", ["", "\r\n", "   ", "@only=tags", ":only.prefix", "@a=b :prefix", "%$& params"])
def test_parse_anomaly(line: str) -> None:
    """Test that lines without a (valid) command are rejected."""
    with pytest.raises(ParseAnomalyError) as exc:
        IRCMessage.from_message(line)
    assert exc.value.line == line
    assert isinstance(exc.value, ValueError)


@pytest.mark.parametrize(
    ("escaped", "unescaped"),
    [
        ("plain", "plain"),
        ("a\\sb", "a b"),
        ("a\\:b", "a;b"),
        ("a\\\\b", "a\\b"),
        ("a\\r\\nb", "a\r\nb"),
        ("a\\bc", "abc"),  # unknown escapes drop the backslash
        ("trailing\\", "trailing"),
    ],
)
def test_tag_unescape(escaped: str, unescaped: str) -> None:
    """Test the IRCv3 tag value unescaping."""
    assert unescape_tag_value(escaped) == unescaped

"""Testing initialization."""

from __future__ import annotations

import configparser
import logging
import queue
from collections.abc import Generator

import pytest
import structlog

import tmiclient

from .faketransport import FakeNetwork


@pytest.fixture(autouse=True)
def fixture_configure_structlog() -> None:
    """Fixture to configure structlog. Currently just silences it entirely."""

    def dummy_processor(
        logger: logging.Logger, name: str, event_dict: structlog.types.EventDict
    ) -> structlog.types.EventDict:
        raise structlog.exceptions.DropEvent

    structlog.configure(processors=[dummy_processor])


@pytest.fixture(name="config")
def fixture_config() -> configparser.ConfigParser:
    """Fixture representing an example configuration."""
    config = configparser.ConfigParser()
    config.read_string(
        """
        [chat]
        nickname = TestBot
        token = s3cr3t
        channels = #first, second
        # retry immediately; tests cannot wait for a backoff
        reconnect_delay = 0
        """
    )
    return config


class RecordingListener:
    """A chat listener that records every message received in a queue."""

    def __init__(self, name: str = "listener") -> None:
        self.name = name
        self.received: queue.Queue[tuple[tmiclient.UserProfile, str, str]] = queue.Queue()

    def on_message_received(self, profile: tmiclient.UserProfile, text: str, emotes: str) -> None:
        """Record the message."""
        self.received.put((profile, text, emotes))

    def get(self, timeout: float = 2) -> tuple[tmiclient.UserProfile, str, str]:
        """Return the next message received, waiting up to timeout seconds."""
        return self.received.get(timeout=timeout)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class MappingUserResolver:
    """Resolves only the users it has been given."""

    def __init__(self, *logins: str) -> None:
        self.profiles = {login: tmiclient.UserProfile(login=login, display_name=login.title()) for login in logins}
        self.lookups: list[str] = []

    def resolve(self, name: str) -> tmiclient.UserProfile | None:
        """Return the known profile, or None."""
        self.lookups.append(name)
        return self.profiles.get(name)


@pytest.fixture(name="network")
def fixture_network() -> FakeNetwork:
    """Fixture for a factory of in-memory transports."""
    return FakeNetwork()


@pytest.fixture(name="resolver")
def fixture_resolver() -> MappingUserResolver:
    """Fixture for a resolver knowing a couple of users."""
    return MappingUserResolver("alice", "bob")


@pytest.fixture(name="token_provider")
def fixture_token_provider() -> tmiclient.StaticTokenProvider:
    """Fixture for a static token provider."""
    return tmiclient.StaticTokenProvider("s3cr3t")


@pytest.fixture(name="client")
def fixture_client(
    config: configparser.ConfigParser,
    network: FakeNetwork,
    resolver: MappingUserResolver,
    token_provider: tmiclient.StaticTokenProvider,
) -> Generator[tmiclient.ChatClient, None, None]:
    """Fixture for a ChatClient, wired to the in-memory network.

    Makes sure that the client is disconnected and its read loop has
    finished after the test.
    """
    client = tmiclient.ChatClient(config["chat"], token_provider, resolver, transport_factory=network)
    yield client
    thread = client._thread  # noqa: SLF001
    client.disconnect()
    if thread is not None:
        thread.join(timeout=2)

"""Connection manager component.

This implements a persistent client to the Twitch chat server: it owns the
(single) transport to the server, performs the login handshake, joins and
leaves channels on behalf of the channel registry, and runs the background
read loop that handles server commands and dispatches chat messages.

Threading model: one background thread reads from the socket; all public
methods may be called from any thread. A single reentrant lock guards the
transport handle, the connection state, the channel registry and all writes
to the socket. Reads are performed by the read loop alone, outside of the
lock, so that disconnect() can always close the transport to unblock them.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import configparser
import enum
import threading
from collections.abc import Callable, Iterable
from typing import Any

import prometheus_client
import structlog
from prometheus_client import Counter, Gauge

from . import commands
from .auth import Scope, TokenProvider, as_password
from .dispatcher import ChatListener, EventDispatcher, UserResolver
from .errors import ChatError, NoCredentialError, NotConnectedError, ParseAnomalyError, TlsHandshakeError
from .ircmessage import ChatEvent, IRCMessage
from .registry import ChannelRegistry, canonical
from .transport import LineTransport

logger = structlog.get_logger()

SERVER = "irc.chat.twitch.tv"


class ConnectionState(enum.Enum):
    """The lifecycle states of a ChatClient."""

    DISCONNECTED = enum.auto()
    CONNECTING = enum.auto()
    AUTHENTICATING = enum.auto()
    READY = enum.auto()
    RECONNECTING = enum.auto()


class ChatClient:
    """A persistent client to the chat server, for a single identity.

    Channels are joined with join() and left with leave(); both are
    reference-counted, and a JOIN (or PART) is only sent on the wire on the
    first join (or last leave) of a channel. The set of joined channels
    survives reconnections, and is replayed after each one.
    """

    def __init__(
        self,
        config: configparser.SectionProxy,
        token_provider: TokenProvider | None,
        resolver: UserResolver,
        transport_factory: Callable[..., LineTransport] = LineTransport,
    ) -> None:
        self.nickname = config.get("nickname", fallback="").lower()
        if not self.nickname:
            raise ValueError("A nickname is required")
        self.realname = config.get("realname", fallback=self.nickname)
        self.server = config.get("server", fallback=SERVER)
        self.port = config.getint("port", fallback=6697)
        self.tls = config.getboolean("tls", fallback=True)
        self.capabilities = config.get("capabilities", fallback="twitch.tv/tags")
        self.timeout = config.getfloat("timeout", fallback=30.0)
        self.read_timeout = config.getfloat("read_timeout", fallback=0.0) or None
        self.reconnect_delay = config.getfloat("reconnect_delay", fallback=1.0)
        self.reconnect_delay_max = config.getfloat("reconnect_delay_max", fallback=30.0)

        self.token_provider = token_provider
        self.transport_factory = transport_factory
        self.log = logger.new(nick=self.nickname, server=self.server)

        self.state = ConnectionState.DISCONNECTED
        self.stay_connected = False
        self._lock = threading.RLock()
        self._transport: LineTransport | None = None
        # channels JOINed on the current transport, and not PARTed since
        self._wire_channels: set[str] = set()
        self._thread: threading.Thread | None = None
        self._wakeup = threading.Event()
        self._failures = 0

        # set up a few Prometheus metrics
        registry = prometheus_client.CollectorRegistry()
        self.metrics: dict[str, Any] = {
            "lines": Counter("tmiclient_lines", "Count of protocol lines received", registry=registry),
            "messages": Counter("tmiclient_messages", "Count of chat messages dispatched", registry=registry),
            "dropped": Counter("tmiclient_dropped", "Count of chat messages from unknown senders", registry=registry),
            "reconnects": Counter("tmiclient_reconnects", "Count of connections lost while connected", registry=registry),
            "errors": Counter("tmiclient_errors", "Count of errors and exceptions", ["type"], registry=registry),
            "channels": Gauge("tmiclient_channels", "Number of joined channels", registry=registry),
            "listeners": Gauge("tmiclient_listeners", "Number of registered channel listeners", registry=registry),
        }
        self.metrics_registry = registry

        self.registry = ChannelRegistry()
        self.dispatcher = EventDispatcher(self.registry, resolver, self._lock, self.metrics)
        self.metrics["channels"].set_function(lambda: self._locked(len, self.registry))
        self.metrics["listeners"].set_function(lambda: self._locked(self.registry.listener_count))

    def _locked(self, func: Callable[..., int], *args: Any) -> int:
        with self._lock:
            return func(*args)

    def _set_state(self, new_state: ConnectionState) -> None:
        if self.state != new_state:
            self.log.debug("State change", old_state=self.state.name, new_state=new_state.name)
            self.state = new_state

    @property
    def connected(self) -> bool:
        """Return True if the client is logged in and ready."""
        return self.state is ConnectionState.READY

    @property
    def channels(self) -> Iterable[str]:
        """Return a list of all the channels currently joined."""
        with self._lock:
            return self.registry.channels

    def connect(self) -> bool:
        """Connect to the server, log in and start the read loop.

        Returns False if there is no token provider to authenticate with, True
        otherwise. Network and TLS failures are not raised: they are logged, and
        the read loop keeps retrying until disconnect() is called.
        """
        with self._lock:
            if self.token_provider is None:
                # make sure we're able to authenticate BEFORE trying to connect
                self.log.warning("Missing authentication to connect with server")
                return False
            self.token_provider.scopes |= Scope.CHAT_READ | Scope.CHAT_EDIT
            self.stay_connected = True

            if self._thread is not None:
                # the read loop is running and (re)establishes the session itself
                self._wakeup.set()
                return True
            thread = self._thread = threading.Thread(name="tmiclient-reader", target=self._run, daemon=True)

        try:
            self._establish()
        finally:
            # the loop retries (or exits) on its own; it must run even if establishing raised
            thread.start()
        return True

    def disconnect(self) -> None:
        """Quit and close the connection, and stop the read loop.

        The loop exits after its current read attempt. Disconnecting an
        already disconnected client is a no-op.
        """
        with self._lock:
            self.stay_connected = False
            self._wakeup.set()
            transport, self._transport = self._transport, None
            self._wire_channels.clear()
            if transport is not None:
                try:
                    transport.write(commands.quit())
                except ChatError as exc:
                    self.log.debug("Unable to send QUIT", error=str(exc))
                transport.close()
                self.log.info("Disconnected")
            self._set_state(ConnectionState.DISCONNECTED)

    def send_raw(self, text: str) -> None:
        """Send a raw protocol line, appending the line terminator.

        Raises NotConnectedError if there is no connection, WriteError if the write fails.
        """
        self._send(commands.raw(text))

    def send_message(self, channel: str, text: str) -> None:
        """Send a chat message to a channel."""
        self._send(commands.privmsg(canonical(channel), text))

    def _send(self, wire: str) -> None:
        with self._lock:
            if self._transport is None:
                raise NotConnectedError("Connect before attempting to send")
            line = wire.rstrip("\r\n")
            if line.startswith("PASS "):
                line = "PASS ***"
            self.log.debug("Data sent", message=line)
            self._transport.write(wire)

    def join(self, channel: str, listener: ChatListener) -> None:
        """Join a channel, and register a listener to receive its messages.

        While not logged in the subscription is only recorded, to be sent on
        (re)connection.
        """
        name = canonical(channel)
        with self._lock:
            if self.registry.join(name, listener) and self.connected:
                if self._send_deferrable(commands.join(name)):
                    self._wire_channels.add(name)

    def leave(self, channel: str, listener: ChatListener) -> None:
        """Unregister a listener from a channel, and leave the channel if it was the last one.

        A PART is sent whenever the channel has been joined on the current
        connection, even in the middle of a login handshake.
        """
        name = canonical(channel)
        with self._lock:
            if self.registry.leave(name, listener) and name in self._wire_channels:
                self._wire_channels.discard(name)
                self._send_deferrable(commands.part(name))

    def _send_deferrable(self, wire: str) -> bool:
        """Send a command whose effect is replayed on reconnection anyway. Returns True if sent."""
        try:
            self._send(wire)
        except ChatError as exc:
            self.metrics["errors"].labels("write").inc()
            self.log.warning("Unable to send, deferring until reconnection", message=wire.rstrip(), error=str(exc))
            return False
        return True

    def login(self) -> None:
        """Perform the login handshake on the current transport.

        Requests the capabilities, sends the credentials, waits for the
        server's greeting and then joins all the registered channels again.
        """
        with self._lock:
            transport = self._transport
            if transport is None:
                raise NotConnectedError("Connect before attempting to log in")
            if self.token_provider is None:
                raise NoCredentialError("Missing authentication to log in with server")
            self._set_state(ConnectionState.AUTHENTICATING)
            # always ask for a fresh token
            self.token_provider.invalidate()
            self._send(commands.cap_req(self.capabilities))
            self._send(commands.password(as_password(self.token_provider.get_token())))
            self._send(commands.nick(self.nickname))
            self._send(commands.user(self.nickname, self.realname))

        # flush the server's greeting burst
        greeting = transport.readline()
        self.log.debug("Greeting received", message=greeting)

        with self._lock:
            if self._transport is not transport:
                raise NotConnectedError("Connection closed during login")
            channels = self.registry.channels
            for channel in channels:
                self._send(commands.join(channel))
                self._wire_channels.add(channel)
            self._set_state(ConnectionState.READY)
        self.log.info("Logged in", channels=len(channels))

    def _establish(self) -> bool:
        """Create a transport (unless one exists already) and log in.

        Failures are logged and counted, and return False; the caller retries.
        """
        with self._lock:
            if self._transport is not None:
                return True
            if not self.stay_connected:
                return False

            self._set_state(ConnectionState.CONNECTING)
            transport = self.transport_factory(
                self.server,
                self.port,
                tls=self.tls,
                timeout=self.timeout,
                read_timeout=self.read_timeout,
            )
            try:
                transport.connect()
            except TlsHandshakeError as exc:
                self.metrics["errors"].labels("tls").inc()
                self.log.warning("TLS handshake failed", error=str(exc))
                return self._failed()
            except OSError as exc:
                self.metrics["errors"].labels("connect").inc()
                self.log.warning("Unable to connect", error=exc.strerror or str(exc))
                return self._failed()
            self._transport = transport
            self._wire_channels.clear()
            self.log.info("Connected to server", port=self.port)

        try:
            self.login()
        except ChatError as exc:
            self.metrics["errors"].labels("login").inc()
            self.log.warning("Login failed", error=str(exc))
        except Exception:
            # e.g. the token provider failing to acquire a token
            self.metrics["errors"].labels("login").inc()
            self.log.exception("Login failed")
        else:
            self._failures = 0
            return True

        self._drop(transport)
        return self._failed()

    def _failed(self) -> bool:
        """Account for a failed connection attempt."""
        with self._lock:
            self._failures += 1
            if self.stay_connected:
                self._set_state(ConnectionState.RECONNECTING)
        return False

    def _drop(self, transport: LineTransport) -> bool:
        """Close and forget a transport, unless it has been replaced (or cleared) meanwhile."""
        with self._lock:
            transport.close()
            if self._transport is not transport:
                return False
            self._transport = None
            self._wire_channels.clear()
            if self.stay_connected:
                self._set_state(ConnectionState.RECONNECTING)
            else:
                self._set_state(ConnectionState.DISCONNECTED)
            return True

    def _backoff(self) -> None:
        """Wait before retrying after failed attempts; disconnect() and connect() cut the wait short."""
        if self.reconnect_delay <= 0:
            return  # immediate retry
        delay = min(self.reconnect_delay * 2 ** (self._failures - 1), self.reconnect_delay_max)
        self.log.info("Waiting before reconnecting", delay=delay, attempt=self._failures)
        self._wakeup.wait(delay)
        self._wakeup.clear()

    def _run(self) -> None:
        """Read loop; runs in a background thread until disconnect() is called."""
        self.log.debug("Read loop started")
        try:
            while True:
                # checked together with _thread, so that connect() never relies on an exiting loop
                with self._lock:
                    if not self.stay_connected:
                        self._thread = None
                        break
                    transport = self._transport

                if transport is None:
                    # the first attempt after losing a connection is immediate
                    if self._failures:
                        self._backoff()
                    self._establish()
                    continue

                self._read(transport)
                if self._drop(transport):
                    self.metrics["reconnects"].inc()
                    self.log.warning("Connection lost, reconnecting")
        finally:
            with self._lock:
                if self._thread is threading.current_thread():
                    self._thread = None
            self.log.debug("Read loop finished")

    def _read(self, transport: LineTransport) -> None:
        """Read and handle lines, until the stream ends or the client is disconnected."""
        while transport.readable and self.stay_connected:
            line = transport.readline()
            try:
                self.handle_line(line)
            except ParseAnomalyError as exc:
                self.metrics["errors"].labels("parse").inc()
                self.log.info("Unparseable line, skipping", reason=exc.reason, message=exc.line)
            except Exception:
                self.metrics["errors"].labels("loop").inc()
                self.log.exception("Error while handling line", message=line)

    def handle_line(self, line: str) -> None:
        """Handle a single line of input, dispatching it to a handle_ method."""
        # empty lines are returned on timeouts and at the end of the stream
        if not line.strip():
            return
        self.metrics["lines"].inc()
        self.log.debug("Data received", message=line)

        msg = IRCMessage.from_message(line)
        handler = getattr(self, f"handle_{msg.command.lower()}", None)
        if not handler:
            return  # unknown or uninteresting command
        handler(msg)

    def handle_ping(self, msg: IRCMessage) -> None:
        """Handle the PING command, by replying with a PONG."""
        args = msg.args
        self._send(commands.pong(args[0] if args else ""))

    def handle_reconnect(self, _: IRCMessage) -> None:
        """Handle the RECONNECT command, by performing the login handshake again."""
        self.log.info("Reconnection requested by the server")
        try:
            self.login()
        except Exception:
            self.metrics["errors"].labels("login").inc()
            self.log.exception("Login failed, reconnecting")
            # ends the read loop's current session, which then reconnects
            with self._lock:
                if self._transport is not None:
                    self._transport.close()

    def handle_privmsg(self, msg: IRCMessage) -> None:
        """Handle the PRIVMSG command, by dispatching it to the channel listeners."""
        self.dispatcher.dispatch(ChatEvent.from_message(msg))

    def __repr__(self) -> str:
        """Return a user-readable description of the client."""
        return f"<{self.__class__.__name__} {self.nickname}@{self.server}:{self.port} {self.state.name}>"

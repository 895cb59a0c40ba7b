"""Line transport component.

Owns the (TLS) socket to the chat server and provides blocking, line-based
read and write primitives on top of it.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import socket
import ssl

import structlog

from .errors import NotConnectedError, TlsHandshakeError, WriteError

logger = structlog.get_logger()


class LineTransport:
    """A blocking, CRLF-delimited line transport over TCP, optionally wrapped in TLS.

    Reads return the empty string when the stream has ended or a read timeout
    has expired; the two are distinguished by the ``readable`` property, which
    turns False once the stream has ended or the transport has been closed.
    """

    # 512 including CRLF per RFC 2813; Twitch tags push lines well beyond that
    max_line_length = 16 * 1024

    def __init__(
        self,
        host: str,
        port: int,
        *,
        tls: bool = True,
        timeout: float | None = 30.0,
        read_timeout: float | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.tls = tls
        self.timeout = timeout
        self.read_timeout = read_timeout
        self.ssl_context = ssl_context
        self.sock: socket.socket | None = None
        self._buffer = b""
        self._eof = False

    def connect(self) -> None:
        """Establish the connection and, if enabled, negotiate TLS and validate the certificate.

        Raises TlsHandshakeError on TLS failures, OSError on network failures.
        """
        sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        if self.tls:
            context = self.ssl_context or ssl.create_default_context()
            try:
                sock = context.wrap_socket(sock, server_hostname=self.host)
            except (ssl.SSLError, ssl.CertificateError) as exc:
                sock.close()
                logger.warning("TLS negotiation failed", host=self.host, port=self.port, error=str(exc))
                raise TlsHandshakeError(f"TLS negotiation with {self.host}:{self.port} failed: {exc}") from exc
            except OSError:
                sock.close()
                raise

        sock.settimeout(self.read_timeout)
        self.sock = sock
        self._buffer = b""
        self._eof = False
        logger.debug("Connected", host=self.host, port=self.port, tls=self.tls)

    @property
    def readable(self) -> bool:
        """Return True while lines can still be read from the stream."""
        return self.sock is not None and not self._eof

    def readline(self) -> str:
        """Read and return a single line, without its terminator.

        Returns the empty string at the end of the stream, on a read timeout,
        or if the transport has been closed.
        """
        while b"\n" not in self._buffer:
            sock = self.sock
            if sock is None or self._eof:
                return ""
            try:
                data = sock.recv(4096)
            except socket.timeout:
                return ""
            except OSError as exc:
                logger.debug("Read failed", error=str(exc))
                data = b""

            if not data:
                self._eof = True
                return ""
            self._buffer += data
            if len(self._buffer) > self.max_line_length and b"\n" not in self._buffer:
                logger.debug("Line exceeded max length, ignoring")
                self._buffer = b""

        bline, _, self._buffer = self._buffer.partition(b"\n")
        return bline.rstrip(b"\r").decode("utf8", errors="replace")

    def write(self, data: str) -> None:
        """Write already-terminated wire text to the socket.

        Raises NotConnectedError if the transport is closed, WriteError on failures.
        """
        sock = self.sock
        if sock is None:
            raise NotConnectedError("Connect before attempting to send")
        try:
            sock.sendall(data.encode("utf8"))
        except (OSError, UnicodeEncodeError) as exc:
            raise WriteError(f"Unable to write to connection: {exc}") from exc

    def close(self) -> None:
        """Close the socket, unblocking any pending read."""
        sock, self.sock = self.sock, None
        self._eof = True
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # not connected anymore
        sock.close()

    def __repr__(self) -> str:
        state = "open" if self.readable else "closed"
        return f"<{self.__class__.__name__} {self.host}:{self.port} {state}>"

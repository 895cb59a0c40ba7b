"""Command-line executable component.

Responsible for parsing the command-line arguments and the configuration
file, connecting a ChatClient to the configured channels and logging the
chat messages received, until interrupted.

Provides a run() function, used by __main__ or directly.
"""

# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import configparser
import errno
import logging
import os
import pathlib
import re
import sys
import threading
from collections.abc import Sequence

import prometheus_client
import structlog

from ._version import __version__
from .auth import StaticTokenProvider
from .client import ChatClient
from .dispatcher import StaticUserResolver, UserProfile

logger = structlog.get_logger()

RENDERERS = {
    "plain": (None, lambda: structlog.dev.ConsoleRenderer(colors=False)),
    "console": ("%Y-%m-%d %H:%M:%S", lambda: structlog.dev.ConsoleRenderer(colors=True)),
    "json": ("iso", lambda: structlog.processors.JSONRenderer(sort_keys=True)),
}


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    """Parse and return the parsed command line arguments."""
    parser = argparse.ArgumentParser(
        prog="tmiclient",
        description="Twitch chat client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    cfg_dflt = pathlib.Path("tmiclient.conf")
    if not cfg_dflt.exists():
        cfg_dflt = pathlib.Path("/etc/tmiclient.conf")
    parser.add_argument("--config-file", "-c", type=pathlib.Path, default=cfg_dflt, help="Path to configuration file")

    parser.add_argument("--log-level", choices=("DEBUG", "INFO", "WARNING", "ERROR"), type=str.upper, help="Log level")
    log_dflt = "console" if sys.stdout.isatty() else "plain"
    parser.add_argument("--log-format", default=log_dflt, choices=tuple(RENDERERS), help="Log format")
    return parser.parse_args(argv)


def configure_logging(log_format: str) -> None:
    """Configure structlog to render through the standard library's logging."""
    try:
        timestamp_fmt, renderer_factory = RENDERERS[log_format]
    except KeyError:
        raise ValueError(f"Invalid logging format specified: {log_format}") from None

    shared: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if timestamp_fmt:
        shared.append(structlog.processors.TimeStamper(fmt=timestamp_fmt, utc=timestamp_fmt == "iso"))

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # events from the standard library's loggers go through the same chain
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*shared, structlog.stdlib.ExtraAdder()],
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer_factory()],
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    # until the config file has been read
    root_logger.setLevel(logging.WARNING)


def configure_log_levels(override_level: str | int | None, config: configparser.SectionProxy | None = None) -> None:
    """Configure logging levels from the [loggers] section, and an override (typically from the CLI)."""
    if config:
        for name, level in config.items():
            logging.getLogger(name if name != "root" else None).setLevel(level.upper())

    if override_level:
        logging.getLogger("tmiclient").setLevel(override_level)


def read_config(path: pathlib.Path) -> configparser.ConfigParser:
    """Read the configuration file; exit on errors."""
    config = configparser.ConfigParser(strict=True)
    try:
        with path.open(encoding="utf-8") as config_fh:
            config.read_file(config_fh)
    except OSError as exc:
        logger.critical(f"Cannot open configuration file: {exc.strerror}", errno=errno.errorcode.get(exc.errno or 0))
        raise SystemExit(-1) from exc
    except configparser.Error as exc:
        msg = repr(exc).replace("\n", " ")  # configparser exceptions sometimes include newlines
        logger.critical(f"Invalid configuration, {msg}")
        raise SystemExit(-1) from exc

    if "chat" not in config:
        logger.critical('Invalid configuration, missing section "chat"')
        raise SystemExit(-1)
    return config


def split_channels(value: str) -> list[str]:
    """Split a comma- and/or whitespace-separated list of channels."""
    return [channel for channel in re.split(r"[\s,]+", value) if channel]


class LoggingListener:
    """A chat listener that logs every message received."""

    log = structlog.get_logger("tmiclient.chat")

    def __init__(self, channel: str) -> None:
        self.channel = channel

    def on_message_received(self, profile: UserProfile, text: str, emotes: str) -> None:
        """Log the chat message."""
        self.log.info(text, channel=self.channel, user=str(profile), emotes=emotes or None)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} #{self.channel}>"


def start_client(config: configparser.ConfigParser) -> ChatClient:
    """Create a client, connect it and join the configured channels."""
    chat_config = config["chat"]
    token = chat_config.get("token") or os.environ.get("TMICLIENT_TOKEN")
    token_provider = StaticTokenProvider(token) if token else None

    try:
        client = ChatClient(chat_config, token_provider, StaticUserResolver())
    except ValueError as exc:
        logger.critical(f"Invalid configuration, {exc}")
        raise SystemExit(-1) from exc

    if not client.connect():
        logger.critical("Unable to connect, no token configured")
        raise SystemExit(-1)

    for channel in split_channels(chat_config.get("channels", fallback="")):
        client.join(channel, LoggingListener(channel))

    if "prometheus" in config:
        prom_config = config["prometheus"]
        address = prom_config.get("listen_address", fallback="::")
        port = prom_config.getint("listen_port", fallback=9200)
        prometheus_client.start_http_server(port, addr=address, registry=client.metrics_registry)
        logger.info("Listening for Prometheus HTTP", listen_address=address, listen_port=port)

    return client


def run(argv: Sequence[str] | None = None) -> None:
    """Entry point."""
    options = parse_args(argv)

    configure_logging(options.log_format)
    configure_log_levels(options.log_level or logging.INFO)
    logger.info("Starting tmiclient", config_file=str(options.config_file), version=__version__)

    config = read_config(options.config_file)
    # now that we've read the config, configure with the levels defined there (but CLI option takes precedence)
    if "loggers" in config:
        configure_log_levels(options.log_level, config["loggers"])

    client = start_client(config)
    try:
        threading.Event().wait()  # run forever
    except KeyboardInterrupt:
        pass
    finally:
        client.disconnect()

"""tmiclient: a persistent client for the Twitch chat (TMI) server.

tmiclient keeps a single TLS connection to the Twitch flavour of IRC, logs in
with an OAuth token, joins and leaves channels on behalf of reference-counted
subscribers, and hands chat messages to the listeners registered for each
channel, reconnecting (and rejoining) whenever the connection is lost.
"""

# Copyright © Faidon Liambotis
# Copyright © Wikimedia Foundation, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY CODE, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-FileCopyrightText: Faidon Liambotis
# SPDX-FileCopyrightText: Wikimedia Foundation
# SPDX-License-Identifier: Apache-2.0

from ._version import __version__
from .auth import Scope, StaticTokenProvider, TokenProvider
from .client import ChatClient, ConnectionState
from .dispatcher import ChatListener, EventDispatcher, StaticUserResolver, UserProfile, UserResolver
from .errors import (
    ChatError,
    NoCredentialError,
    NotConnectedError,
    ParseAnomalyError,
    TlsHandshakeError,
    WriteError,
)
from .ircmessage import ChatEvent, IRCMessage, Prefix
from .main import run
from .registry import ChannelRegistry
from .transport import LineTransport

__all__ = [
    "__version__",
    "ChannelRegistry",
    "ChatClient",
    "ChatError",
    "ChatEvent",
    "ChatListener",
    "ConnectionState",
    "EventDispatcher",
    "IRCMessage",
    "LineTransport",
    "NoCredentialError",
    "NotConnectedError",
    "ParseAnomalyError",
    "Prefix",
    "Scope",
    "StaticTokenProvider",
    "StaticUserResolver",
    "TlsHandshakeError",
    "TokenProvider",
    "UserProfile",
    "UserResolver",
    "WriteError",
    "run",
]

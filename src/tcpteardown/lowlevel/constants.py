# Copyright 2021-2025, Francis Clairicia-Rose-Claire-Josephine
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
#
"""tcp-teardown's constants module."""

from __future__ import annotations

__all__ = [
    "ACCEPT_CAPACITY_ERRNOS",
    "ACCEPT_CAPACITY_ERROR_SLEEP_TIME",
    "DEFAULT_DRAIN_BUFSIZE",
    "DEFAULT_LISTEN_BACKLOG",
    "DEFAULT_SEND_NUMBERS_COUNT",
    "DEFAULT_SLEEP_DURATION",
    "DEFAULT_STREAM_BUFSIZE",
    "INJECTED_ODD_NUMBER",
    "NUMBER_FRAME_SIZE",
]

import errno as _errno
from typing import Final

# Size of a single frame on the wire: one big-endian unsigned 32-bit integer
NUMBER_FRAME_SIZE: Final[int] = 4

# Buffer size for a recv(2) operation while draining a connection
DEFAULT_DRAIN_BUFSIZE: Final[int] = 32 * 1024  # 32KiB

# Buffer size of the buffered reader/writer variants
DEFAULT_STREAM_BUFSIZE: Final[int] = 8 * 1024  # 8KiB

DEFAULT_LISTEN_BACKLOG: Final[int] = 128

# Time to sleep when using the `sleep-then-close` teardown mode
DEFAULT_SLEEP_DURATION: Final[float] = 0.005  # 5ms

# Upper bound of the client sender loop (at most 8 * 4 MiB numbers)
DEFAULT_SEND_NUMBERS_COUNT: Final[int] = 1 << 23

# The odd number sent in the middle of the client number stream
INJECTED_ODD_NUMBER: Final[int] = 23

# Errors that accept(2) can return, and which indicate that the system is overloaded
ACCEPT_CAPACITY_ERRNOS: Final[frozenset[int]] = frozenset(
    {
        _errno.EMFILE,
        _errno.ENFILE,
        _errno.ENOMEM,
        _errno.ENOBUFS,
    }
)

# How long to sleep when we get one of those errors
ACCEPT_CAPACITY_ERROR_SLEEP_TIME: Final[float] = 0.100

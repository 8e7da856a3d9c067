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
"""Exceptions definition module.

Here are all the exception classes defined and used by the library.
"""

from __future__ import annotations

__all__ = [
    "ConnectionHandlerError",
    "DeserializeError",
    "HandleConsumedError",
    "ServerAlreadyRunning",
    "ServerClosedError",
    "UnexpectedEOFError",
]


class UnexpectedEOFError(EOFError):
    """The peer closed its write side before the expected amount of bytes was received."""

    def __init__(self, expected: int, received: int) -> None:
        """
        Parameters:
            expected: Number of bytes requested.
            received: Number of bytes actually received before end-of-stream.
        """

        super().__init__(f"unexpected end of stream: received {received} bytes out of {expected}")

        self.expected: int = expected
        """Number of bytes requested."""

        self.received: int = received
        """Number of bytes actually received before end-of-stream."""


class HandleConsumedError(RuntimeError):
    """Error raised when using a stream handle after :meth:`~.StreamReader.into_raw` has been called."""


class DeserializeError(Exception):
    """Error raised by the number serializer if the data format is invalid."""


class ConnectionHandlerError(Exception):
    """A server connection could not be handled up to the end of its teardown.

    The original error is available through the ``__cause__`` attribute.
    """

    def __init__(self, phase: str, error: BaseException) -> None:
        """
        Parameters:
            phase: What the handler was doing (e.g. ``"read from connection"``).
            error: Error instance.
        """

        super().__init__(f"{phase}: {error}")

        self.phase: str = phase
        """What the handler was doing."""

        self.error: BaseException = error
        """Error instance."""


class ServerClosedError(RuntimeError):
    """Error raised when trying to do an operation on a closed server."""


class ServerAlreadyRunning(RuntimeError):
    """The server is already running."""

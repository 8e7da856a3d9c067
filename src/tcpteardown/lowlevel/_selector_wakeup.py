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
"""Interface to interrupt a thread waiting on a selector."""

from __future__ import annotations

__all__ = [
    "SelectorWakeup",
]

import contextlib
import selectors
import socket
from types import TracebackType
from typing import Self, final


@final
class SelectorWakeup:
    """
    A self-pipe registered in a selector: :meth:`wakeup` makes a pending :meth:`selectors.BaseSelector.select`
    call return from any thread.
    """

    __slots__ = ("__receiver", "__sender")

    def __init__(self) -> None:
        receiver, sender = socket.socketpair()
        for sock in (receiver, sender):
            sock.setblocking(False)
        # A single pending byte is enough; further wakeups are no-ops until cleared.
        receiver.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 1)
        sender.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, 1)
        self.__receiver: socket.socket = receiver
        self.__sender: socket.socket = sender

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None) -> None:
        self.close()

    def close(self) -> None:
        self.__sender.close()
        self.__receiver.close()

    def register(self, selector: selectors.BaseSelector) -> selectors.SelectorKey:
        """
        Registers the read end in `selector` for :data:`~selectors.EVENT_READ`.
        """
        return selector.register(self, selectors.EVENT_READ)

    def wakeup(self) -> None:
        """
        Makes the selector ready. Thread-safe, and can be called from a signal handler.
        """
        with contextlib.suppress(BlockingIOError, InterruptedError):
            self.__sender.send(b"\x00")

    def clear(self) -> None:
        """
        Consumes the pending wakeups.
        """
        with contextlib.suppress(BlockingIOError):
            while self.__receiver.recv(64):
                pass

    def fileno(self) -> int:
        return self.__receiver.fileno()

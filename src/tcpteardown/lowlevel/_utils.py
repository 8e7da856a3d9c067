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
from __future__ import annotations

__all__ = [
    "ElapsedTime",
    "OneShotFlag",
    "convert_socket_bind_error",
    "error_kind",
    "log_elapsed_time",
    "set_reuseaddr",
    "set_reuseport",
]

import contextlib
import errno as _errno
import socket as _socket
import time
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    import logging

    from .socket import SupportsSocketOptions


def error_kind(exc: BaseException) -> str:
    """
    Reduces an I/O error to its category.

    Two errors of the same kind compare equal, regardless of their message.
    """
    from ..exceptions import UnexpectedEOFError

    match exc:
        case UnexpectedEOFError():
            return "unexpected-eof"
        case OSError(errno=int(errno)) if errno in _errno.errorcode:
            return _errno.errorcode[errno]
        case _:
            return type(exc).__name__


def set_reuseaddr(sock: SupportsSocketOptions) -> None:
    sock.setsockopt(_socket.SOL_SOCKET, _socket.SO_REUSEADDR, True)


def set_reuseport(sock: SupportsSocketOptions) -> None:
    if hasattr(_socket, "SO_REUSEPORT"):
        try:
            sock.setsockopt(_socket.SOL_SOCKET, _socket.SO_REUSEPORT, True)
        except OSError:
            raise ValueError("reuse_port not supported by socket module, SO_REUSEPORT defined but not implemented.") from None
    else:
        raise ValueError("reuse_port not supported by socket module")


def convert_socket_bind_error(exc: OSError, addr: Any) -> OSError:
    if exc.errno:
        msg = f"error while attempting to bind on address {addr!r}: {exc.strerror}"
        return OSError(exc.errno, msg).with_traceback(exc.__traceback__)
    else:
        msg = f"error while attempting to bind on address {addr!r}: {exc}"
        return OSError(_errno.EINVAL, msg).with_traceback(exc.__traceback__)


class OneShotFlag:
    """
    A flag which can only go from unset to set.

    Written by one thread, polled by others. There is no lock: reading or replacing
    a bool attribute is atomic.
    """

    __slots__ = ("__value", "__weakref__")

    def __init__(self) -> None:
        self.__value: bool = False

    def is_set(self) -> bool:
        return self.__value

    def set(self) -> None:
        self.__value = True


class ElapsedTime:
    __slots__ = ("_current_time_func", "_start_time", "_end_time")

    def __init__(self) -> None:
        self._current_time_func: Callable[[], float] = time.perf_counter
        self._start_time: float | None = None
        self._end_time: float | None = None

    def __enter__(self) -> Self:
        if self._start_time is not None:
            raise RuntimeError("Already entered")
        self._start_time = self._current_time_func()
        return self

    def __exit__(self, *args: Any) -> None:
        end_time = self._current_time_func()
        if self._end_time is not None:
            raise RuntimeError("Already exited")
        self._end_time = end_time

    def get_elapsed(self) -> float:
        start_time = self._start_time
        if start_time is None:
            raise RuntimeError("Not entered")
        end_time = self._end_time
        if end_time is None:
            raise RuntimeError("Within context")
        return end_time - start_time


@contextlib.contextmanager
def log_elapsed_time(logger: logging.Logger, name: str) -> Iterator[None]:
    elapsed = ElapsedTime()
    try:
        with elapsed:
            yield
    finally:
        logger.debug("%s: %.6fs", name, elapsed.get_elapsed())

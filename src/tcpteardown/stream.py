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
"""Buffered/unbuffered stream handles module.

A connection is split into a reader and a writer, each one owning its own duplicate
of the socket file descriptor. Both can be converted back to the raw :class:`~socket.socket`
with ``into_raw()``, which is required before a shutdown(2) or close(2) because
a buffering layer must not delay or hide them.
"""

from __future__ import annotations

__all__ = [
    "BufferedStreamReader",
    "BufferedStreamWriter",
    "StreamReader",
    "StreamWriter",
    "UnbufferedStreamReader",
    "UnbufferedStreamWriter",
    "split_connection",
]

import contextlib
import io
import socket
import warnings
from abc import ABCMeta, abstractmethod
from types import TracebackType
from typing import TYPE_CHECKING, Any, Self, final

from .exceptions import HandleConsumedError, UnexpectedEOFError
from .lowlevel import constants

if TYPE_CHECKING:
    from _typeshed import WriteableBuffer


class _StreamHandle(metaclass=ABCMeta):
    __slots__ = ("__socket", "__weakref__")

    def __init__(self, sock: socket.socket) -> None:
        if sock.type != socket.SOCK_STREAM:
            raise ValueError("A 'SOCK_STREAM' socket is expected")
        self.__socket: socket.socket | None = sock

    def __del__(self, *, _warn: Any = warnings.warn) -> None:
        try:
            sock = self.__socket
        except AttributeError:
            return
        if sock is not None and sock.fileno() >= 0:
            _warn(f"unclosed stream handle {self!r}", ResourceWarning, source=self)
            sock.close()

    def __repr__(self) -> str:
        sock = self.__socket
        if sock is None:
            return f"<{self.__class__.__name__} (consumed)>"
        return f"<{self.__class__.__name__} fd={sock.fileno()}>"

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None) -> None:
        """
        Calls :meth:`close`.
        """
        self.close()

    def is_consumed(self) -> bool:
        """
        Checks if :meth:`into_raw` has been called.
        """
        return self.__socket is None

    def is_closed(self) -> bool:
        """
        Checks if :meth:`close` has been called (or if the handle has been consumed).
        """
        sock = self.__socket
        return sock is None or sock.fileno() < 0

    def close(self) -> None:
        """
        Closes the handle and its socket duplicate. Does nothing if the handle has been consumed.
        """
        sock = self.__socket
        if sock is None:
            return
        try:
            self._close_buffer()
        finally:
            sock.close()

    def into_raw(self) -> socket.socket:
        """
        Recovers the underlying socket. The handle is consumed and must not be used afterwards.

        Raises:
            HandleConsumedError: Already called.
            OSError: Pending data could not be flushed. The handle is not consumed.

        Returns:
            the raw socket, which is now owned by the caller.
        """
        sock = self._get_socket()
        self._release_buffer()
        self.__socket = None
        return sock

    def _get_socket(self) -> socket.socket:
        sock = self.__socket
        if sock is None:
            raise HandleConsumedError(f"{self.__class__.__name__} has been converted to a raw socket")
        return sock

    def _close_buffer(self) -> None:
        pass

    def _release_buffer(self) -> None:
        pass


class StreamReader(_StreamHandle):
    """
    The read side of a connection.
    """

    __slots__ = ()

    @abstractmethod
    def recv_into(self, buffer: WriteableBuffer) -> int:
        """
        Read into the given `buffer`.

        Returns:
            the number of bytes written. Returning ``0`` for a non-zero buffer indicates an EOF.
        """
        raise NotImplementedError

    def recv_exactly(self, n: int) -> bytes:
        """
        Read exactly `n` bytes.

        Raises:
            UnexpectedEOFError: The peer closed its write side before `n` bytes were received.
        """
        if n < 0:
            raise ValueError("'n' must be a positive or null integer")

        data = bytearray(n)
        received: int = 0
        with memoryview(data) as buffer:
            while received < n:
                nbytes = self.recv_into(buffer[received:])
                if not nbytes:
                    raise UnexpectedEOFError(n, received)
                received += nbytes
        return bytes(data)


class StreamWriter(_StreamHandle):
    """
    The write side of a connection.
    """

    __slots__ = ()

    @abstractmethod
    def send_all(self, data: bytes | bytearray | memoryview) -> None:
        """
        Send all the `data` bytes to the remote peer (or into the write buffer).

        On error, an exception is raised, and there is no way to determine how much data,
        if any, was successfully sent.
        """
        raise NotImplementedError

    @abstractmethod
    def flush(self) -> None:
        """
        Send the buffered data, if any.
        """
        raise NotImplementedError


@final
class UnbufferedStreamReader(StreamReader):
    """
    Every read is a recv(2) system call.
    """

    __slots__ = ()

    def recv_into(self, buffer: WriteableBuffer) -> int:
        return self._get_socket().recv_into(buffer)


@final
class BufferedStreamReader(StreamReader):
    """
    Reads are batched through an in-memory buffer.

    The buffered data which has not been read yet is lost on :meth:`into_raw`.
    """

    __slots__ = ("__file",)

    def __init__(self, sock: socket.socket, buffer_size: int = constants.DEFAULT_STREAM_BUFSIZE) -> None:
        super().__init__(sock)
        self.__file: io.BufferedReader = sock.makefile("rb", buffering=buffer_size)

    def recv_into(self, buffer: WriteableBuffer) -> int:
        self._get_socket()
        return self.__file.readinto1(buffer)

    def _close_buffer(self) -> None:
        self.__file.close()

    def _release_buffer(self) -> None:
        # Closing the file object does not close the socket itself.
        self.__file.close()


@final
class UnbufferedStreamWriter(StreamWriter):
    """
    Every write is a send(2) system call.
    """

    __slots__ = ()

    def send_all(self, data: bytes | bytearray | memoryview) -> None:
        self._get_socket().sendall(data)

    def flush(self) -> None:
        self._get_socket()


@final
class BufferedStreamWriter(StreamWriter):
    """
    Writes are batched through an in-memory buffer.

    Data which is at least as large as the buffer is sent directly.
    Pending data is sent on :meth:`close`, ignoring errors.
    """

    __slots__ = ("__buffer", "__buffer_size")

    def __init__(self, sock: socket.socket, buffer_size: int = constants.DEFAULT_STREAM_BUFSIZE) -> None:
        super().__init__(sock)
        if buffer_size <= 0:
            raise ValueError("'buffer_size' must be a positive integer")
        self.__buffer: bytearray = bytearray()
        self.__buffer_size: int = buffer_size

    def send_all(self, data: bytes | bytearray | memoryview) -> None:
        sock = self._get_socket()
        with memoryview(data) as data:
            if len(self.__buffer) + data.nbytes > self.__buffer_size:
                self.__flush(sock)
            if data.nbytes >= self.__buffer_size:
                sock.sendall(data)
            else:
                self.__buffer.extend(data)

    def flush(self) -> None:
        self.__flush(self._get_socket())

    def __flush(self, sock: socket.socket) -> None:
        # On error, there is no way to know how much data has been sent, so the buffer is cleared anyway.
        data, self.__buffer = self.__buffer, bytearray()
        if data:
            sock.sendall(data)

    def _close_buffer(self) -> None:
        # The peer may already be gone.
        with contextlib.suppress(OSError):
            self.flush()

    def _release_buffer(self) -> None:
        self.flush()


def split_connection(sock: socket.socket, buffered: bool) -> tuple[StreamReader, StreamWriter]:
    """
    Splits a connection into independent read and write handles.

    Each handle owns a duplicate of `sock`; the connection is released when both handles are closed.
    This function takes the ownership of `sock` (which is closed once duplicated).

    Parameters:
        sock: A connected :data:`~socket.SOCK_STREAM` socket.
        buffered: If :data:`True`, reads and writes are batched through in-memory buffers.

    Returns:
        a ``(reader, writer)`` pair.
    """
    with sock:
        read_sock = sock.dup()
        try:
            write_sock = sock.dup()
        except BaseException:
            read_sock.close()
            raise

    reader: StreamReader
    writer: StreamWriter
    if buffered:
        reader = BufferedStreamReader(read_sock)
        writer = BufferedStreamWriter(write_sock)
    else:
        reader = UnbufferedStreamReader(read_sock)
        writer = UnbufferedStreamWriter(write_sock)
    return reader, writer

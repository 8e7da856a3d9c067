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
"""Teardown server module.

The server reads numbers until it hits an odd number, sends the odd number back to the client,
then tears the connection down. The configuration supports different kinds of teardowns.

Connections are handled one at a time, so that the timing of each teardown can be observed.
"""

from __future__ import annotations

__all__ = [
    "ConnectionReport",
    "ServerConfig",
    "TeardownMode",
    "TeardownServer",
    "drain",
]

import contextlib
import dataclasses
import enum
import logging
import selectors
import socket
import threading
import time
from collections.abc import Iterator
from types import TracebackType
from typing import Any, Self, assert_never, final

from .exceptions import ConnectionHandlerError, ServerAlreadyRunning, ServerClosedError
from .lowlevel import _utils, constants
from .lowlevel._selector_wakeup import SelectorWakeup
from .lowlevel.socket import SocketAddress, enable_socket_linger, resolve_stream_address
from .serializer import NumberSerializer
from .stream import StreamReader, split_connection

logger = logging.getLogger(__name__)


@enum.unique
class TeardownMode(enum.Enum):
    """What the server does with a connection once the odd number has been sent back."""

    CLOSE_IMMEDIATELY = "close-immediately"
    """Close the connection."""

    DRAIN_THEN_CLOSE = "drain-then-close"
    """Read and discard until end-of-stream, then close."""

    SHUTDOWN_WRITE_THEN_DRAIN = "shutdown-write-then-drain"
    """Shut down the write side, read and discard until end-of-stream, then close."""

    SHUTDOWN_WRITE_THEN_CLOSE = "shutdown-write-then-close"
    """Shut down the write side, then close."""

    SLEEP_THEN_CLOSE = "sleep-then-close"
    """Sleep for the configured duration, then close."""

    SHUTDOWN_BOTH_THEN_CLOSE = "shutdown-both-then-close"
    """Shut down both directions, then close."""

    @classmethod
    def from_name(cls, name: str) -> TeardownMode:
        """
        Parses a kebab-case mode name (e.g. ``"drain-then-close"``).

        Raises:
            ValueError: Unknown mode.
        """
        try:
            return cls(name)
        except ValueError:
            choices = ", ".join(f"{mode.value!r}" for mode in cls)
            raise ValueError(f"Unknown teardown mode {name!r} (expected one of {choices})") from None

    def __str__(self) -> str:
        return self.value


@dataclasses.dataclass(frozen=True, kw_only=True)
class ServerConfig:
    """The teardown server options."""

    listen_address: SocketAddress
    """Address to bind the listener to."""

    teardown_mode: TeardownMode
    """Applied to every connection."""

    buffered: bool = False
    """Use buffered reads and writes until the odd number has been received."""

    sleep: float = constants.DEFAULT_SLEEP_DURATION
    """Time to sleep (in seconds) when using :attr:`TeardownMode.SLEEP_THEN_CLOSE`."""

    linger: float | None = None
    """
    If set, SO_LINGER is enabled on each accepted connection with this timeout (truncated to whole seconds).
    Otherwise, the operating system default is kept.
    """

    backlog: int = constants.DEFAULT_LISTEN_BACKLOG

    def __post_init__(self) -> None:
        if self.sleep < 0:
            raise ValueError("'sleep' must be a positive or null duration")
        if self.linger is not None and self.linger < 0:
            raise ValueError("'linger' must be a positive or null duration")


@dataclasses.dataclass(frozen=True, kw_only=True)
class ConnectionReport:
    """What happened to a connection which has been handled successfully."""

    number: int
    """The odd number sent back to the client."""

    teardown_mode: TeardownMode

    drained_bytes: int | None = None
    """The number of bytes discarded, if the teardown mode drains the connection."""


def drain(sock: socket.socket, bufsize: int = constants.DEFAULT_DRAIN_BUFSIZE) -> int:
    """
    Reads and discards from `sock` until end-of-stream.

    Raises:
        OSError: Any error other than end-of-stream (a connection reset included).

    Returns:
        the number of discarded bytes.
    """
    bytecount: int = 0
    with memoryview(bytearray(bufsize)) as buffer:
        while True:
            try:
                nbytes = sock.recv_into(buffer)
            except OSError as exc:
                logger.debug("error while draining: %r", exc)
                raise
            if not nbytes:
                return bytecount
            bytecount += nbytes


@contextlib.contextmanager
def _connection_phase(phase: str) -> Iterator[None]:
    try:
        yield
    except (OSError, EOFError) as exc:
        raise ConnectionHandlerError(phase, exc) from exc


@final
class TeardownServer:
    """
    A TCP server which handles connections sequentially.

    The listener socket is bound and listening as soon as the object is created.
    """

    __slots__ = (
        "__config",
        "__listener",
        "__serializer",
        "__wakeup",
        "__shutdown_requested",
        "__is_up_event",
        "__weakref__",
    )

    def __init__(self, config: ServerConfig) -> None:
        """
        Parameters:
            config: The server options.

        Raises:
            OSError: The listener socket could not be created or bound.
        """
        self.__config: ServerConfig = config
        self.__serializer = NumberSerializer()
        self.__shutdown_requested = _utils.OneShotFlag()
        self.__is_up_event = threading.Event()

        family, sockaddr = resolve_stream_address(config.listen_address)
        listener = socket.socket(family, socket.SOCK_STREAM)
        try:
            _utils.set_reuseaddr(listener)
            try:
                listener.bind(sockaddr)
            except OSError as exc:
                raise _utils.convert_socket_bind_error(exc, sockaddr) from None
            listener.listen(config.backlog)
        except BaseException:
            listener.close()
            raise
        self.__listener: socket.socket | None = listener
        self.__wakeup = SelectorWakeup()
        logger.info("listening on %s", listener.getsockname())

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None) -> None:
        """
        Calls :meth:`server_close`.
        """
        self.server_close()

    @property
    def config(self) -> ServerConfig:
        """The server options. Read-only attribute."""
        return self.__config

    def get_address(self) -> Any:
        """
        Returns the address the listener is bound to, as returned by :meth:`socket.socket.getsockname`.
        """
        return self.__get_listener().getsockname()

    def is_closed(self) -> bool:
        return self.__listener is None

    def is_serving(self) -> bool:
        return self.__is_up_event.is_set()

    def wait_for_server_to_be_up(self, timeout: float | None = None) -> bool:
        """
        Waits for :meth:`serve_forever` to be running.

        Returns:
            :data:`True` if the server is up before the timeout expires.
        """
        return self.__is_up_event.wait(timeout)

    def server_close(self) -> None:
        """
        Closes the listener socket. Must not be called while :meth:`serve_forever` is running.
        """
        listener, self.__listener = self.__listener, None
        if listener is not None:
            listener.close()
            self.__wakeup.close()

    def shutdown(self) -> None:
        """
        Asks :meth:`serve_forever` to return. Thread-safe.

        The connection being handled, if any, is handled up to the end first.
        Once shut down, :meth:`serve_forever` returns immediately.
        """
        self.__shutdown_requested.set()
        if self.__listener is not None:
            self.__wakeup.wakeup()

    def serve_forever(self) -> None:
        """
        Accepts and handles connections until :meth:`shutdown` is called.

        Errors raised by accept(2) and by the connection handler are logged, and do not stop the server.
        """
        listener = self.__get_listener()
        if self.__is_up_event.is_set():
            raise ServerAlreadyRunning("Server is already running")

        with selectors.DefaultSelector() as selector:
            selector.register(listener, selectors.EVENT_READ)
            self.__wakeup.register(selector)
            self.__is_up_event.set()
            try:
                while not self.__shutdown_requested.is_set():
                    logger.info("accepting connection")
                    ready = {key.fileobj for key, _ in selector.select()}
                    if self.__wakeup in ready:
                        self.__wakeup.clear()
                    if listener in ready and not self.__shutdown_requested.is_set():
                        self.__accept_and_handle(listener)
            finally:
                self.__is_up_event.clear()

    def __accept_and_handle(self, listener: socket.socket) -> None:
        try:
            conn, addr = listener.accept()
        except OSError as exc:
            logger.error("accept error: %s", exc)
            if exc.errno in constants.ACCEPT_CAPACITY_ERRNOS:
                time.sleep(constants.ACCEPT_CAPACITY_ERROR_SLEEP_TIME)
            return

        logger.info("accepted connection from %s", addr)
        try:
            report = self.handle_connection(conn)
        except ConnectionHandlerError as exc:
            logger.error("connection %s failed: %s", addr, exc)
        except Exception as exc:
            logger.error("Unhandled exception while handling %s: %s", addr, exc, exc_info=exc)
        else:
            logger.info("connection %s closed after %s (%s)", addr, report.teardown_mode, report)

    def handle_connection(self, conn: socket.socket) -> ConnectionReport:
        """
        Runs the whole lifecycle of an accepted connection. `conn` is closed in all cases.

        Raises:
            ConnectionHandlerError: An I/O error occurred. The connection is released nonetheless.

        Returns:
            what happened to the connection.
        """
        config = self.__config
        with contextlib.ExitStack() as stack:
            stack.callback(conn.close)
            if config.linger is not None:
                with _connection_phase("set linger"):
                    enable_socket_linger(conn, int(config.linger))
            with _connection_phase("split connection"):
                reader, writer = split_connection(conn, config.buffered)
            stack.enter_context(reader)
            stack.enter_context(writer)

            number = self.__scan_numbers(reader)
            logger.info("client sent odd number %d", number)

            with _connection_phase("convert buffered writer to unbuffered writer"):
                write_sock = stack.enter_context(writer.into_raw())
            read_sock = stack.enter_context(reader.into_raw())
            with _connection_phase("write error to connection"):
                write_sock.sendall(self.__serializer.serialize(number))

            drained_bytes = self.__teardown(read_sock, write_sock)

            with _utils.log_elapsed_time(logger, "close duration"):
                stack.close()

        return ConnectionReport(number=number, teardown_mode=config.teardown_mode, drained_bytes=drained_bytes)

    def __scan_numbers(self, reader: StreamReader) -> int:
        serializer = self.__serializer
        while True:
            with _connection_phase("read from connection"):
                number = serializer.deserialize(reader.recv_exactly(serializer.size))
            if number % 2 != 0:
                return number

    def __teardown(self, read_sock: socket.socket, write_sock: socket.socket) -> int | None:
        drained_bytes: int | None = None
        mode = self.__config.teardown_mode
        match mode:
            case TeardownMode.CLOSE_IMMEDIATELY:
                pass
            case TeardownMode.SLEEP_THEN_CLOSE:
                time.sleep(self.__config.sleep)
            case TeardownMode.DRAIN_THEN_CLOSE:
                drained_bytes = self.__drain(read_sock)
            case TeardownMode.SHUTDOWN_WRITE_THEN_DRAIN:
                logger.info("shutting down write-end of the connection")
                with _connection_phase("shutdown"):
                    write_sock.shutdown(socket.SHUT_WR)
                drained_bytes = self.__drain(read_sock)
            case TeardownMode.SHUTDOWN_WRITE_THEN_CLOSE:
                with _connection_phase("shutdown write"), _utils.log_elapsed_time(logger, "shutdown write duration"):
                    write_sock.shutdown(socket.SHUT_WR)
            case TeardownMode.SHUTDOWN_BOTH_THEN_CLOSE:
                with _connection_phase("shutdown"), _utils.log_elapsed_time(logger, "shutdown duration"):
                    write_sock.shutdown(socket.SHUT_RDWR)
            case _:  # pragma: no cover
                assert_never(mode)
        return drained_bytes

    @staticmethod
    def __drain(read_sock: socket.socket) -> int:
        logger.info("draining connection")
        with _connection_phase("drain connection"):
            drained_bytes = drain(read_sock)
        logger.info("drained %d bytes", drained_bytes)
        return drained_bytes

    def __get_listener(self) -> socket.socket:
        listener = self.__listener
        if listener is None:
            raise ServerClosedError("Closed server")
        return listener

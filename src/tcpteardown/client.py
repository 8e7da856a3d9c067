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
"""Probe client module.

A probe run races two threads over one connection: the calling thread sends a long stream of numbers,
while a worker thread waits for the server response and tells the sender to stop.
The way the run ends is classified, and repeated runs are aggregated into statistics.
"""

from __future__ import annotations

__all__ = [
    "BothErr",
    "ClientConfig",
    "ProbeClient",
    "ReadResponseError",
    "ResponseCorrect",
    "RunOutcome",
    "SingleRunResult",
    "WriteNumberError",
    "classify",
    "format_stats",
    "number_stream",
    "send_numbers",
]

import collections
import concurrent.futures
import dataclasses
import logging
import socket
from collections.abc import Iterator
from typing import final

from .lowlevel import _utils, constants
from .lowlevel.socket import SocketAddress, resolve_stream_address
from .serializer import NumberSerializer
from .stream import StreamReader, StreamWriter, split_connection

logger = logging.getLogger(__name__)


class SingleRunResult:
    """What has been observed during a probe run. Used for statistics."""

    __slots__ = ()


@final
@dataclasses.dataclass(frozen=True, slots=True)
class ResponseCorrect(SingleRunResult):
    """The response has been read and no write failed."""

    def __str__(self) -> str:
        return "ResponseCorrect"


@final
@dataclasses.dataclass(frozen=True, slots=True)
class ReadResponseError(SingleRunResult):
    """The response could not be read."""

    kind: str

    def __str__(self) -> str:
        return f"ReadResponseError({self.kind})"


@final
@dataclasses.dataclass(frozen=True, slots=True)
class WriteNumberError(SingleRunResult):
    """The response has been read, but sending a number failed."""

    kind: str

    def __str__(self) -> str:
        return f"WriteNumberError({self.kind})"


@final
@dataclasses.dataclass(frozen=True, slots=True)
class BothErr(SingleRunResult):
    """Both the response reader and the number sender failed."""

    read_kind: str
    write_kind: str

    def __str__(self) -> str:
        return f"BothErr {{ read: {self.read_kind}, write: {self.write_kind} }}"


def classify(read_error: BaseException | None, write_error: BaseException | None) -> SingleRunResult:
    """
    Categorizes a run from the errors of both sides. Errors are reduced to their kind.
    """
    match read_error, write_error:
        case None, None:
            return ResponseCorrect()
        case _, None:
            return ReadResponseError(_utils.error_kind(read_error))
        case None, _:
            return WriteNumberError(_utils.error_kind(write_error))
        case _:
            return BothErr(read_kind=_utils.error_kind(read_error), write_kind=_utils.error_kind(write_error))


@dataclasses.dataclass(frozen=True, kw_only=True)
class ClientConfig:
    """The probe client options."""

    connect_address: SocketAddress
    """The server address."""

    bind_address: SocketAddress | None = None
    """If given, the local address to bind the socket to before connecting."""

    times: int = 1
    """Number of runs."""

    buffered: bool = False
    """Use buffered reads and writes."""

    send_numbers_count: int = constants.DEFAULT_SEND_NUMBERS_COUNT
    """Maximum number of numbers sent during a run."""

    def __post_init__(self) -> None:
        if self.times < 0:
            raise ValueError("'times' must be a positive or null integer")
        if self.send_numbers_count <= 0:
            raise ValueError("'send_numbers_count' must be a positive integer")


@dataclasses.dataclass(frozen=True, kw_only=True)
class RunOutcome:
    """The details of a single probe run."""

    result: SingleRunResult
    """The classification of the run."""

    response: int | None
    """The number sent back by the server, if it has been read."""

    numbers_sent: int
    """How many numbers have been successfully passed to the writer."""


def number_stream(count: int, *, odd_number: int = constants.INJECTED_ODD_NUMBER) -> Iterator[int]:
    """
    Yields `count` numbers: only even numbers, except `odd_number` in the middle of the stream.

    Example:
        >>> list(number_stream(8))
        [0, 0, 2, 2, 23, 4, 6, 6]
    """
    middle = count // 2
    for i in range(count):
        if i == middle:
            # We are in the middle of the number stream.
            yield odd_number
        else:
            # Produce even numbers by rounding down.
            yield (i & ~1) & 0xFFFFFFFF


def send_numbers(
    writer: StreamWriter,
    stop_sending: _utils.OneShotFlag,
    count: int,
    serializer: NumberSerializer | None = None,
) -> tuple[int, OSError | None]:
    """
    Sends the numbers of ``number_stream(count)`` until `stop_sending` is set or a write fails.

    The writer is flushed if the whole stream has been written.

    Returns:
        a ``(numbers_sent, write_error)`` pair.
    """
    if serializer is None:
        serializer = NumberSerializer()

    numbers_sent: int = 0
    try:
        for number in number_stream(count):
            # Did the response reader thread receive a response?
            if stop_sending.is_set():
                logger.info("stop sending numbers")
                break
            writer.send_all(serializer.serialize(number))
            numbers_sent += 1
        else:
            writer.flush()
    except OSError as exc:
        logger.debug("write error after %d numbers: %r", numbers_sent, exc)
        return numbers_sent, exc
    return numbers_sent, None


@final
class ProbeClient:
    """
    Runs probes against a teardown server.
    """

    __slots__ = ("__config", "__serializer", "__weakref__")

    def __init__(self, config: ClientConfig) -> None:
        """
        Parameters:
            config: The client options.
        """
        self.__config: ClientConfig = config
        self.__serializer = NumberSerializer()

    @property
    def config(self) -> ClientConfig:
        """The client options. Read-only attribute."""
        return self.__config

    def run(self) -> collections.Counter[SingleRunResult]:
        """
        Performs :attr:`ClientConfig.times` sequential runs.

        Raises:
            OSError: Connection or bind failure.

        Returns:
            the number of runs per result.
        """
        stats: collections.Counter[SingleRunResult] = collections.Counter()
        for _ in range(self.__config.times):
            outcome = self.single_run()
            logger.info("run result: %s", outcome.result)
            stats[outcome.result] += 1
        return stats

    def single_run(self) -> RunOutcome:
        """
        Connects to the server, sends numbers while waiting for the response, and classifies what happened.

        Raises:
            OSError: Connection or bind failure.
        """
        config = self.__config
        logger.info("connecting to %s", config.connect_address)
        sock = self.__connect()
        logger.info("connected %s -> %s", sock.getsockname(), sock.getpeername())
        reader, writer = split_connection(sock, config.buffered)

        # Set by the response reader thread to indicate that the number sender should stop sending numbers.
        stop_sending = _utils.OneShotFlag()

        with (
            reader,
            writer,
            concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="response-reader") as executor,
        ):
            response_future = executor.submit(self.__read_response, reader, stop_sending)

            numbers_sent, write_error = send_numbers(writer, stop_sending, config.send_numbers_count, self.__serializer)

            response: int | None = None
            read_error: BaseException | None = None
            try:
                response = response_future.result()
            except (OSError, EOFError) as exc:
                read_error = exc

        return RunOutcome(result=classify(read_error, write_error), response=response, numbers_sent=numbers_sent)

    def __read_response(self, reader: StreamReader, stop_sending: _utils.OneShotFlag) -> int:
        serializer = self.__serializer
        try:
            number = serializer.deserialize(reader.recv_exactly(serializer.size))
        except BaseException as exc:
            logger.info("server response error, stopping sender: %r", exc)
            raise
        else:
            logger.info("server response received, stopping sender: %d", number)
            return number
        finally:
            stop_sending.set()

    def __connect(self) -> socket.socket:
        config = self.__config
        family, remote_address = resolve_stream_address(config.connect_address)
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            # Repeated runs must not exhaust the local ports.
            _utils.set_reuseaddr(sock)
            if hasattr(socket, "SO_REUSEPORT"):
                _utils.set_reuseport(sock)
            if config.bind_address is not None:
                _, local_address = resolve_stream_address(config.bind_address, family=family)
                try:
                    sock.bind(local_address)
                except OSError as exc:
                    raise _utils.convert_socket_bind_error(exc, local_address) from None
            sock.connect(remote_address)
        except BaseException:
            sock.close()
            raise
        return sock


def format_stats(stats: collections.Counter[SingleRunResult]) -> str:
    """
    Renders the statistics table, most common results first.
    """
    lines = ["multi run stats:"]
    lines.extend(f"    {result}: {count}" for result, count in stats.most_common())
    lines.append(f"    total: {stats.total()}")
    return "\n".join(lines)

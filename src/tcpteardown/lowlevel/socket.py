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
"""Network socket helper module."""

from __future__ import annotations

__all__ = [
    "IPv4SocketAddress",
    "IPv6SocketAddress",
    "SocketAddress",
    "SupportsSocketOptions",
    "enable_socket_linger",
    "parse_socket_address",
    "resolve_stream_address",
]

import os
import socket as _socket
from struct import Struct
from typing import Any, NamedTuple, Protocol, TypeAlias


class IPv4SocketAddress(NamedTuple):
    """An internet (IPv4) socket address, or a host name."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port:d}"

    def for_connection(self) -> tuple[str, int]:
        """
        Returns:
            A pair of (host, port)
        """
        return self.host, self.port


class IPv6SocketAddress(NamedTuple):
    """An internet (IPv6) socket address."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"[{self.host}]:{self.port:d}"

    def for_connection(self) -> tuple[str, int]:
        """
        Returns:
            A pair of (host, port)
        """
        return self.host, self.port


SocketAddress: TypeAlias = IPv4SocketAddress | IPv6SocketAddress
"""Alias to :class:`IPv4SocketAddress` | :class:`IPv6SocketAddress` types."""


def parse_socket_address(address: str) -> SocketAddress:
    """
    Parses a ``host:port`` string. IPv6 addresses must be enclosed in square brackets.

    Example:
        >>> parse_socket_address("127.0.0.1:9000")
        IPv4SocketAddress(host='127.0.0.1', port=9000)
        >>> parse_socket_address("[::1]:9000")
        IPv6SocketAddress(host='::1', port=9000)
        >>> parse_socket_address("localhost")
        Traceback (most recent call last):
        ...
        ValueError: Invalid socket address 'localhost': expected 'host:port'

    Raises:
        ValueError: Invalid format or port number.
    """
    host, sep, port_str = address.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Invalid socket address {address!r}: expected 'host:port'")
    try:
        port = int(port_str, 10)
    except ValueError:
        raise ValueError(f"Invalid socket address {address!r}: {port_str!r} is not a port number") from None
    if not (0 <= port <= 65535):
        raise ValueError(f"Invalid socket address {address!r}: port out of range")

    if host.startswith("[") and host.endswith("]"):
        return IPv6SocketAddress(host[1:-1], port)
    if ":" in host:
        raise ValueError(f"Invalid socket address {address!r}: IPv6 hosts must be enclosed in brackets")
    return IPv4SocketAddress(host, port)


def resolve_stream_address(address: SocketAddress, *, family: int = _socket.AF_UNSPEC) -> tuple[int, Any]:
    """
    Resolves `address` for a TCP socket.

    Returns:
        the first ``(family, sockaddr)`` pair returned by :func:`socket.getaddrinfo`.
    """
    host, port = address.for_connection()
    infos = _socket.getaddrinfo(host, port, family=family, type=_socket.SOCK_STREAM, proto=_socket.IPPROTO_TCP)
    if not infos:
        raise OSError(f"getaddrinfo({host!r}) returned empty list")
    found_family, _, _, _, sockaddr = infos[0]
    return found_family, sockaddr


class SupportsSocketOptions(Protocol):
    def setsockopt(self, level: int, optname: int, value: int | bytes, /) -> None:  # pragma: no cover
        """
        Similar to :meth:`socket.socket.setsockopt`.
        """
        ...


if os.name == "nt":  # Windows
    # https://learn.microsoft.com/en-us/windows/win32/api/winsock2/ns-winsock2-linger
    # linger struct uses unsigned short ints
    _linger_struct = Struct("@HH")
else:  # Unix/macOS
    # https://manpages.debian.org/bookworm/manpages/socket.7.en.html#SO_LINGER
    # linger struct uses signed ints
    _linger_struct = Struct("@ii")


def enable_socket_linger(sock: SupportsSocketOptions, timeout: int) -> None:
    """
    Enables socket linger.

    Quote from :manpage:`socket(7)` (Linux):
    When enabled, a close(2) or shutdown(2) will not return until all queued messages for the socket have
    been successfully sent or the linger timeout has been reached. Otherwise, the call returns immediately
    and the closing is done in the background.

    A zero `timeout` makes close(2) abort the connection (RST) instead of the normal FIN sequence.

    Parameters:
        sock: The socket.
        timeout: How many seconds to linger for.
    """
    sock.setsockopt(_socket.SOL_SOCKET, _socket.SO_LINGER, _linger_struct.pack(True, timeout))


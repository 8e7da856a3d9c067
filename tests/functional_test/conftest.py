from __future__ import annotations

from collections.abc import Iterator
from socket import create_connection, create_server, socket as Socket

import pytest


@pytest.fixture
def localhost_ip() -> str:
    return "127.0.0.1"


@pytest.fixture
def tcp_socket_pair(localhost_ip: str) -> Iterator[tuple[Socket, Socket]]:
    """A connected (client, server) pair of TCP sockets."""
    with create_server((localhost_ip, 0)) as listener:
        client = create_connection(listener.getsockname())
        with client:
            server, _ = listener.accept()
            with server:
                client.settimeout(5)
                server.settimeout(5)
                yield client, server

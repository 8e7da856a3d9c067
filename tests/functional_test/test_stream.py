from __future__ import annotations

from socket import SHUT_WR, socket as Socket

from tcpteardown.exceptions import UnexpectedEOFError
from tcpteardown.serializer import NumberSerializer
from tcpteardown.stream import split_connection

import pytest


@pytest.fixture(params=[False, True], ids=lambda p: "buffered" if p else "unbuffered")
def buffered(request: pytest.FixtureRequest) -> bool:
    return request.param


def test____split_connection____read_and_write(tcp_socket_pair: tuple[Socket, Socket], buffered: bool) -> None:
    # Arrange
    client, server = tcp_socket_pair
    serializer = NumberSerializer()
    reader, writer = split_connection(server, buffered)

    # Act
    with reader, writer:
        client.sendall(serializer.serialize(0) + serializer.serialize(23))
        first = serializer.deserialize(reader.recv_exactly(4))
        second = serializer.deserialize(reader.recv_exactly(4))
        writer.send_all(serializer.serialize(second))
        writer.flush()

    # Assert
    assert (first, second) == (0, 23)
    assert client.recv(4) == b"\x00\x00\x00\x17"
    assert client.recv(4) == b""


def test____split_connection____original_socket_is_closed(tcp_socket_pair: tuple[Socket, Socket], buffered: bool) -> None:
    # Arrange
    _, server = tcp_socket_pair

    # Act
    reader, writer = split_connection(server, buffered)

    # Assert
    with reader, writer:
        assert server.fileno() == -1
        assert not reader.is_closed()
        assert not writer.is_closed()


def test____close____connection_released_when_both_handles_are_closed(tcp_socket_pair: tuple[Socket, Socket]) -> None:
    # Arrange
    client, server = tcp_socket_pair
    reader, writer = split_connection(server, False)
    client.settimeout(0.1)

    # Act & Assert
    writer.close()
    with pytest.raises(TimeoutError):
        client.recv(1024)
    reader.close()
    client.settimeout(5)
    assert client.recv(1024) == b""


def test____into_raw____shutdown_affects_the_whole_connection(tcp_socket_pair: tuple[Socket, Socket]) -> None:
    # Arrange
    client, server = tcp_socket_pair
    reader, writer = split_connection(server, False)

    # Act
    with reader, writer.into_raw() as write_sock:
        write_sock.shutdown(SHUT_WR)

        # Assert
        assert client.recv(1024) == b""
        client.sendall(b"still open")
        assert reader.recv_exactly(10) == b"still open"


def test____into_raw____buffered_writer_flushes_pending_data(tcp_socket_pair: tuple[Socket, Socket]) -> None:
    # Arrange
    client, server = tcp_socket_pair
    reader, writer = split_connection(server, True)
    client.settimeout(0.1)

    # Act
    with reader:
        writer.send_all(b"pending")
        with pytest.raises(TimeoutError):
            client.recv(1024)
        with writer.into_raw():
            pass

    # Assert
    client.settimeout(5)
    assert client.recv(1024) == b"pending"


def test____close____buffered_writer_sends_pending_data(tcp_socket_pair: tuple[Socket, Socket]) -> None:
    # Arrange
    client, server = tcp_socket_pair
    reader, writer = split_connection(server, True)
    writer.send_all(b"\x00\x00\x00\x02")

    # Act
    writer.close()
    reader.close()

    # Assert
    assert client.recv(16) == b"\x00\x00\x00\x02"
    assert client.recv(16) == b""


def test____recv_exactly____unexpected_eof(tcp_socket_pair: tuple[Socket, Socket], buffered: bool) -> None:
    # Arrange
    client, server = tcp_socket_pair
    reader, writer = split_connection(server, buffered)
    client.sendall(b"\x00\x00")
    client.shutdown(SHUT_WR)

    # Act
    with reader, writer, pytest.raises(UnexpectedEOFError) as exc_info:
        reader.recv_exactly(4)

    # Assert
    assert exc_info.value.received == 2

from __future__ import annotations

import errno
from typing import TYPE_CHECKING, Any

from tcpteardown.lowlevel.socket import IPv4SocketAddress
from tcpteardown.server import ServerConfig, TeardownMode, drain

import pytest

if TYPE_CHECKING:
    from unittest.mock import MagicMock


class TestTeardownMode:
    @pytest.mark.parametrize(
        ["name", "expected_mode"],
        [
            ("close-immediately", TeardownMode.CLOSE_IMMEDIATELY),
            ("drain-then-close", TeardownMode.DRAIN_THEN_CLOSE),
            ("shutdown-write-then-drain", TeardownMode.SHUTDOWN_WRITE_THEN_DRAIN),
            ("shutdown-write-then-close", TeardownMode.SHUTDOWN_WRITE_THEN_CLOSE),
            ("sleep-then-close", TeardownMode.SLEEP_THEN_CLOSE),
            ("shutdown-both-then-close", TeardownMode.SHUTDOWN_BOTH_THEN_CLOSE),
        ],
    )
    def test____from_name____kebab_case(self, name: str, expected_mode: TeardownMode) -> None:
        # Arrange

        # Act
        mode = TeardownMode.from_name(name)

        # Assert
        assert mode is expected_mode
        assert str(mode) == name

    @pytest.mark.parametrize("name", ["CLOSE_IMMEDIATELY", "close_immediately", "linger-then-close", ""])
    def test____from_name____unknown_mode(self, name: str) -> None:
        # Arrange

        # Act & Assert
        with pytest.raises(ValueError, match=r"^Unknown teardown mode .+ \(expected one of 'close-immediately', .+\)$"):
            TeardownMode.from_name(name)


class TestServerConfig:
    def test____dunder_init____default_values(self) -> None:
        # Arrange

        # Act
        config = ServerConfig(
            listen_address=IPv4SocketAddress("localhost", 9000),
            teardown_mode=TeardownMode.CLOSE_IMMEDIATELY,
        )

        # Assert
        assert config.buffered is False
        assert config.sleep == pytest.approx(0.005)
        assert config.linger is None

    @pytest.mark.parametrize("field", ["sleep", "linger"])
    def test____dunder_init____negative_duration(self, field: str) -> None:
        # Arrange
        kwargs: dict[str, Any] = {field: -1.0}

        # Act & Assert
        with pytest.raises(ValueError, match=rf"^'{field}' must be a positive or null duration$"):
            ServerConfig(
                listen_address=IPv4SocketAddress("localhost", 9000),
                teardown_mode=TeardownMode.CLOSE_IMMEDIATELY,
                **kwargs,
            )


class TestDrain:
    @staticmethod
    def _set_recv_into_chunks(mock_socket: MagicMock, *chunks: int | BaseException) -> None:
        def side_effect(buffer: Any) -> int:
            item = remaining.pop(0) if remaining else 0
            if isinstance(item, BaseException):
                raise item
            return item

        remaining = list(chunks)
        mock_socket.recv_into.side_effect = side_effect

    def test____drain____count_discarded_bytes_until_eof(self, mock_tcp_socket: MagicMock) -> None:
        # Arrange
        self._set_recv_into_chunks(mock_tcp_socket, 4096, 10, 1)

        # Act
        drained_bytes = drain(mock_tcp_socket, 4096)

        # Assert
        assert drained_bytes == 4107
        assert mock_tcp_socket.recv_into.call_count == 4

    def test____drain____immediate_eof(self, mock_tcp_socket: MagicMock) -> None:
        # Arrange
        self._set_recv_into_chunks(mock_tcp_socket)

        # Act & Assert
        assert drain(mock_tcp_socket) == 0

    def test____drain____connection_reset_is_an_error(self, mock_tcp_socket: MagicMock) -> None:
        # Arrange
        self._set_recv_into_chunks(mock_tcp_socket, 12, ConnectionResetError(errno.ECONNRESET, "Connection reset by peer"))

        # Act & Assert
        with pytest.raises(ConnectionResetError):
            drain(mock_tcp_socket)

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
"""Command-line interface module."""

from __future__ import annotations

__all__ = ["build_parser", "main", "parse_duration"]

import argparse
import logging
import math
import re
import sys
from collections.abc import Sequence
from typing import Final

from .client import ClientConfig, ProbeClient, format_stats
from .lowlevel import constants
from .lowlevel.socket import SocketAddress, parse_socket_address
from .server import ServerConfig, TeardownMode, TeardownServer

logger = logging.getLogger(__name__)

# Unit lengths in nanoseconds
_DURATION_UNITS: Final[dict[str, int]] = {
    "ns": 1,
    "us": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}

_DURATION_PART_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?P<value>\d+(?:\.\d*)?)\s*(?P<unit>ns|us|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """
    Parses a duration, in seconds.

    A bare number is a number of seconds. Otherwise, the duration is a sequence of ``<value><unit>`` parts.

    Example:
        >>> parse_duration("5ms")
        0.005
        >>> parse_duration("1m 30s")
        90.0
        >>> parse_duration("1.5")
        1.5

    Raises:
        ValueError: Invalid duration.
    """
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds) or seconds < 0:
            raise ValueError(f"Invalid duration {value!r}")
        return seconds

    total_ns: float = 0.0
    position: int = 0
    for match in _DURATION_PART_PATTERN.finditer(value):
        if value[position : match.start()].strip():
            break
        total_ns += float(match["value"]) * _DURATION_UNITS[match["unit"]]
        position = match.end()
    else:
        if position > 0 and not value[position:].strip():
            return total_ns / 1e9
    raise ValueError(f"Invalid duration {value!r}")


def _duration_type(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _address_type(value: str) -> SocketAddress:
    try:
        return parse_socket_address(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _optional_address_type(value: str) -> SocketAddress | None:
    if value == "-":
        return None
    return _address_type(value)


def _teardown_mode_type(value: str) -> TeardownMode:
    try:
        return TeardownMode.from_name(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tcp-teardown",
        description="Probe how TCP connection teardown strategies interact with a peer still sending data.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="DEBUG",
        help="Logging level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    server_parser = subparsers.add_parser(
        "server",
        help="Read numbers until an odd one, send it back, then tear the connection down",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    server_parser.add_argument("listen", type=_address_type, help="Listen address (host:port)")
    server_parser.add_argument(
        "teardown_mode",
        type=_teardown_mode_type,
        metavar="teardown-mode",
        help=", ".join(f"`{mode}`" for mode in TeardownMode),
    )
    server_parser.add_argument("--buffered", action="store_true", help="Use buffered reads and writes")
    server_parser.add_argument(
        "--sleep",
        type=_duration_type,
        default=constants.DEFAULT_SLEEP_DURATION,
        help="Time to sleep when using `sleep-then-close` teardown mode (e.g. 5ms)",
    )
    server_parser.add_argument(
        "--linger",
        type=_duration_type,
        default=None,
        help="Enable SO_LINGER on accepted connections with this timeout (whole seconds)",
    )
    server_parser.set_defaults(func=_run_server)

    client_parser = subparsers.add_parser(
        "client",
        help="Send numbers while waiting for the server response, then print statistics",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    client_parser.add_argument("bind", type=_optional_address_type, help="Local address (host:port), or '-'")
    client_parser.add_argument("connect", type=_address_type, help="Server address (host:port)")
    client_parser.add_argument("--times", type=int, default=1, help="Number of runs")
    client_parser.add_argument("--buffered", action="store_true", help="Use buffered reads and writes")
    client_parser.set_defaults(func=_run_client)

    return parser


def _run_server(args: argparse.Namespace) -> int:
    config = ServerConfig(
        listen_address=args.listen,
        teardown_mode=args.teardown_mode,
        buffered=args.buffered,
        sleep=args.sleep,
        linger=args.linger,
    )
    with TeardownServer(config) as server:
        server.serve_forever()
    return 0


def _run_client(args: argparse.Namespace) -> int:
    config = ClientConfig(
        connect_address=args.connect,
        bind_address=args.bind,
        times=args.times,
        buffered=args.buffered,
    )
    stats = ProbeClient(config).run()
    print(format_stats(stats))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="[ %(levelname)s ] [ %(name)s ] %(message)s")

    try:
        return args.func(args)
    except KeyboardInterrupt:
        return 130
    except (OSError, ValueError) as exc:
        logger.debug("fatal error", exc_info=exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

"""Server configuration from command-line arguments and environment variables."""

from __future__ import annotations

import argparse
import os
import re
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation

_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_SEGMENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}

# Maps the destination of each option to the environment variable that sets it.
_ENVIRONMENT = {
    "engine": "ENGINE",
    "port": "PORT",
    "bind": "BIND",
    "chore_interval": "CHORE_INTERVAL",
    "chore_initial_delay": "CHORE_INITIAL_DELAY",
    "chore_initial_random": "CHORE_INITIAL_RANDOM",
    "pagination_max_limit": "PAGINATION_MAX_LIMIT",
    "pagination_max_offset": "PAGINATION_MAX_OFFSET",
}


@dataclass
class ServerConfig:
    """Settings for the API server."""

    port: int = 80
    bind: str = "0.0.0.0"


@dataclass
class ChoreConfig:
    """Settings for periodic background jobs."""

    interval: timedelta = timedelta(seconds=10)
    initial_delay: timedelta = timedelta(0)
    initial_random: bool = False


@dataclass
class PaginationConfig:
    """Limits applied to paginated listings."""

    max_limit: int = 100
    max_offset: int = 10000


@dataclass
class Config:
    """Complete configuration of a server instance."""

    engine: str = "memdb"
    server: ServerConfig = field(default_factory=ServerConfig)
    chore: ChoreConfig = field(default_factory=ChoreConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "1.5h" or "2h45m"."""
    if not isinstance(text, str):
        raise TypeError(f"duration must be a string, not {type(text).__name__}")
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")

    total = Decimal(0)
    position = 0
    while position < len(rest):
        match = _SEGMENT.match(rest, position)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        try:
            total += Decimal(match[1]) * _NANOSECONDS[match[2]]
        except InvalidOperation as exc:
            raise ValueError(f"invalid duration {text!r}") from exc
        position = match.end()

    nanoseconds = int(total)
    return timedelta(microseconds=sign * (nanoseconds // 1000))


def _duration(text: str) -> timedelta:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _boolean(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _unsigned(text: str) -> int:
    try:
        value = int(text, 10)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid unsigned integer {text!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError(f"invalid unsigned integer {text!r}")
    return value


def _integer(text: str) -> int:
    try:
        return int(text, 10)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer {text!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Create the parser for the server's command-line options."""
    parser = argparse.ArgumentParser(prog="ratus", description="RESTful asynchronous task queue server")
    parser.add_argument(
        "--engine", metavar="NAME", default="memdb", help="name of the storage engine to be used"
    )
    parser.add_argument(
        "-p", "--port", type=_unsigned, metavar="PORT", default=80,
        help="port on which to listen for API requests",
    )
    parser.add_argument(
        "-b", "--bind", metavar="ADDR", default="0.0.0.0",
        help="address on which to listen for API requests",
    )
    parser.add_argument(
        "--chore-interval", type=_duration, metavar="DURATION", default=timedelta(seconds=10),
        help="interval for running periodic background jobs such as recovering and expiring tasks",
    )
    parser.add_argument(
        "--chore-initial-delay", type=_duration, metavar="DURATION", default=timedelta(0),
        help="delay before the initial execution of background jobs to avoid spikes "
        "while starting multiple instances",
    )
    parser.add_argument(
        "--chore-initial-random", type=_boolean, nargs="?", const=True, default=False,
        metavar="BOOL",
        help="randomly defer the initial execution of background jobs within a range "
        "that does not exceed the initial delay",
    )
    parser.add_argument(
        "--pagination-max-limit", type=_integer, metavar="LIMIT", default=100,
        help="maximum number of resources to return in pagination",
    )
    parser.add_argument(
        "--pagination-max-offset", type=_integer, metavar="OFFSET", default=10000,
        help="maximum number of resources to be skipped in pagination",
    )
    return parser


def _normalize(argv: Sequence[str]) -> list[str]:
    """Accept long options written with a single dash, as in "-chore-interval"."""
    result: list[str] = []
    passthrough = False
    for token in argv:
        if passthrough or token == "--":
            passthrough = True
            result.append(token)
            continue
        name = token.split("=", 1)[0]
        if len(name) > 2 and name[0] == "-" and name[1] != "-" and name[1].isalpha():
            token = "-" + token
        result.append(token)
    return result


def parse_config(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Build a configuration from arguments, falling back to the environment and defaults."""
    if argv is None:
        argv = sys.argv[1:]
    if environ is None:
        environ = os.environ

    parser = build_parser()
    parser.set_defaults(
        **{dest: environ[name] for dest, name in _ENVIRONMENT.items() if name in environ}
    )
    namespace = parser.parse_args(_normalize(argv))

    return Config(
        engine=namespace.engine,
        server=ServerConfig(port=namespace.port, bind=namespace.bind),
        chore=ChoreConfig(
            interval=namespace.chore_interval,
            initial_delay=namespace.chore_initial_delay,
            initial_random=namespace.chore_initial_random,
        ),
        pagination=PaginationConfig(
            max_limit=namespace.pagination_max_limit,
            max_offset=namespace.pagination_max_offset,
        ),
    )
"""Command-line argument parsing for the renderer."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

_UINT16_MAX = 0xFFFF
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1

_ALIASES = {
    "-m": "--mode",
    "--cores": "--threads",
    "-c": "--threads",
    "-t": "--threads",
    "--debug": "-d",
    "-v": "-d",
    "--verbose": "-d",
}

USAGE = (
    "USAGE: ./raytracer [--mode program_mode] [--threads threads_amount] "
    "[--config config_filepath] [-h host] [-p port] [-d] [--tile-size tile_size] "
    "[--no-preview] scene_filepath\n"
    "\tprogram_mode\tProgram mode (`self`, `server`, `client`). Defaults to `self`.\n"
    "\tthreads_amount\tNumber of threads that will be used to render the image. "
    "Defaults to `auto` (maximum threads available).\n"
    "\tconfig_filepath\tFile path of the server configuration. If mode is not set "
    "to `server`, an exception will be thrown.\n"
    "\thost\t\tHost to connect to. Only works if mode is set to `client`.\n"
    "\tport\t\tPort to connect to / host from. Only works if clustering is used "
    "(mode is set to either `client` or `server`).\n"
    "\ttile_size\tTile size (square). For multi-threading or cluster mode. Defaults "
    "to `auto`: 64 (for multi-threading) or 1024 (for clustering).\n"
    "\tscene_filepath\tFile path of the scene to render. If mode is set to "
    "`client`, an exception will be thrown.\n"
)

ABOUT = "Raytracer\nDistributed ray tracing renderer.\n"


class InvalidUsage(Exception):
    """The command line is malformed or inconsistent."""


class Mode(Enum):
    SELF = "self"
    SERVER = "server"
    CLIENT = "client"


def _default_threads() -> int:
    return os.cpu_count() or 1


@dataclass
class Attributes:
    """Settings gathered from the command line."""

    program_mode: Mode = Mode.SELF
    threads_amount: int = field(default_factory=_default_threads)
    port: int = 0
    host: str = ""
    debug_mode: bool = False
    scene_filepaths: list[str] = field(default_factory=list)
    server_config_filepath: str = ""
    no_preview: bool = False
    tile_size: int = -1


def normalize_flag(flag: str) -> str:
    """Map an alias to its canonical flag; other tokens pass through."""
    return _ALIASES.get(flag, flag)


_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


def _leading_int(text: str) -> int:
    """Parse the leading integer of ``text`` the way a C++ ``stoi`` does."""
    match = _INT_PREFIX.match(text)
    if match is None:
        raise ValueError(f"no integer in {text!r}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _bounded_int(text: str, high: Optional[int], what: str) -> int:
    try:
        value = _leading_int(text)
    except ValueError:
        raise InvalidUsage(f"Invalid {what}: {text}") from None
    if value <= 0 or (high is not None and value > high):
        raise InvalidUsage(f"Invalid {what}: {text}")
    return value


class Parser:
    """Parses the command line into :class:`Attributes`."""

    def __init__(self) -> None:
        self.tokens: list[str] = []
        self.attributes = Attributes()

    def parse(self, argv: Optional[Sequence[str]] = None) -> bool:
        """Parse the arguments (without the program name).

        Returns True when the program should exit right away, as after
        ``--help`` or ``--about``; otherwise checks the arguments and
        returns False.
        """
        if argv is None:
            argv = sys.argv[1:]
        self.tokens.extend(argv)
        attrs = self.attributes
        tokens = iter(self.tokens)

        def value_after(message: str) -> str:
            try:
                return next(tokens)
            except StopIteration:
                raise InvalidUsage(message) from None

        for raw in tokens:
            token = normalize_flag(raw)
            if token == "--mode":
                value = value_after("Expected mode after --mode")
                try:
                    attrs.program_mode = Mode(value)
                except ValueError:
                    raise InvalidUsage(f"Invalid mode: {value}") from None
            elif token == "--threads":
                value = value_after("Expected value after --threads")
                if value != "auto":
                    attrs.threads_amount = _bounded_int(value, _UINT16_MAX, "thread count")
            elif token == "--tile-size":
                value = value_after("Expected value after --tile-size")
                if value != "auto":
                    attrs.tile_size = _bounded_int(value, None, "tile size")
            elif token == "--config":
                attrs.server_config_filepath = value_after("Expected value after --config")
            elif token == "-h":
                host = value_after("Expected host after -h")
                attrs.host = "127.0.0.1" if host == "localhost" else host
            elif token == "-p":
                value = value_after("Expected port after -p")
                attrs.port = _bounded_int(value, _UINT16_MAX, "port number")
            elif token == "-d":
                attrs.debug_mode = True
            elif token == "--no-preview":
                attrs.no_preview = True
            elif token.startswith("-"):
                continue
            else:
                attrs.scene_filepaths.append(token)

        if not self.process_flags():
            self.validate()
            return False
        return True

    def process_flags(self) -> bool:
        """Print help or about text for a lone flag; True if one was shown."""
        if not (len(self.tokens) == 1 and self.tokens[0].startswith("-")):
            return False
        if self.has_flag("--help") or self.has_flag("-h"):
            print(USAGE)
            return True
        if self.has_flag("--about") or self.has_flag("-a"):
            print(ABOUT, end="")
            return True
        return False

    def has_flag(self, flag: str) -> bool:
        """Whether ``flag`` appears among the raw arguments."""
        return flag in self.tokens

    def get_flag_value(self, flag: str) -> str:
        """Return the argument right after ``flag``, or an empty string."""
        for current, following in zip(self.tokens, self.tokens[1:]):
            if current == flag:
                return following
        return ""

    def validate(self) -> None:
        """Check that the arguments fit the chosen mode."""
        attrs = self.attributes
        if attrs.program_mode is Mode.CLIENT:
            if not attrs.host:
                raise InvalidUsage("Client mode requires a host (-h <host>)")
            if not attrs.port:
                raise InvalidUsage("Client mode requires a port (-p <port>)")
            if attrs.scene_filepaths:
                raise InvalidUsage("Client mode must not include a scene file path")
            if attrs.no_preview:
                print("Client mode does not support --no-preview. Ignoring.")
        elif attrs.program_mode is Mode.SERVER:
            if not attrs.port:
                raise InvalidUsage("Server mode requires a port (-p <port>)")
            if not attrs.server_config_filepath:
                raise InvalidUsage(
                    "Server mode requires a configuration file (--config <file>)"
                )
            if not attrs.scene_filepaths:
                raise InvalidUsage("Server mode requires a scene file path")
            if attrs.host:
                raise InvalidUsage("Server mode must not include a host")
        else:
            if not attrs.scene_filepaths:
                raise InvalidUsage("Self mode requires a scene file path")
            if attrs.host:
                raise InvalidUsage("Self mode must not include a host")
            if attrs.port:
                raise InvalidUsage("Self mode must not include a port")
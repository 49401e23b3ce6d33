#!/usr/bin/env python3
"""
Run a Befunge-style program.

A program is a grid of single-character instructions. An instruction pointer
walks the grid in one of four cardinal directions, wrapping around the edges,
and each instruction acts on a single stack of 64-bit signed integers.
Execution stops on `@` or when the grid has nothing to look up.
"""

from __future__ import annotations
import argparse
import enum
import itertools
import logging
import pathlib
import random
import re
import string
import sys
from typing import (
    IO,
    Callable,
    Iterable,
    Iterator,
    NamedTuple,
    TYPE_CHECKING,
    TypeVar,
)

import tqdm

logger = logging.getLogger("befunge")


# Progress bar

QUIET = False

if TYPE_CHECKING:
    T = TypeVar("T")


def show_progress(arg: Iterable[T], enabled: bool = True, **kwargs) -> Iterable[T]:
    if QUIET or not enabled:
        return arg
    return tqdm.tqdm(arg, colour="green", **kwargs)


# Logging


def setup_logging(level: int = logging.WARNING) -> None:
    """
    Configure the `befunge` logger to write to stderr.

    Stdout is reserved for the program output.
    """
    logger.setLevel(level)

    # Avoid duplicate handlers when called more than once
    if logger.hasHandlers():
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logger.addHandler(handler)


# Machine integers

INT_BITS = 64
INT_MIN = -(1 << (INT_BITS - 1))
INT_MAX = (1 << (INT_BITS - 1)) - 1


def wrap_int(value: int) -> int:
    return (value - INT_MIN) % (1 << INT_BITS) + INT_MIN


def divide(dividend: int, divisor: int) -> int:
    # Truncates toward zero, raises ZeroDivisionError on a zero divisor
    quotient = abs(dividend) // abs(divisor)
    return quotient if (dividend < 0) == (divisor < 0) else -quotient


def remainder(dividend: int, divisor: int) -> int:
    # Takes the sign of the dividend
    return dividend - divisor * divide(dividend, divisor)


# Data structures


class Vector(NamedTuple):
    x: int
    y: int

    def then(self, other: Vector) -> Vector:
        return Vector(wrap_int(self.x + other.x), wrap_int(self.y + other.y))

    def wrap(self, bounds: Vector) -> Vector:
        # Floor modulo: negative coordinates land on the opposite edge
        return Vector(self.x % bounds.x, self.y % bounds.y)


class Direction(enum.Enum):
    NORTH = Vector(0, -1)
    EAST = Vector(1, 0)
    SOUTH = Vector(0, 1)
    WEST = Vector(-1, 0)


class Grid:
    """
    The program source as rows of characters.

    Rows keep their original length, so the grid may be ragged. The bounds
    are the longest row and the number of rows.
    """

    def __init__(self, rows: list[tuple[str, ...]]):
        self.rows = rows
        self.bounds = Vector(max((len(row) for row in rows), default=0), len(rows))

    @classmethod
    def parse(cls, text: str) -> Grid:
        lines = text.split("\n")
        # No row after a final line feed
        last = lines.pop()
        rows = [tuple(line.removesuffix("\r")) for line in lines]
        if last:
            rows.append(tuple(last))
        return cls(rows)

    @classmethod
    def from_path(cls, path: pathlib.Path) -> Grid:
        with open(path, encoding="utf-8", newline="") as file:
            return cls.parse(file.read())

    def lookup(self, p: Vector) -> str | None:
        if self.bounds.x == 0 or self.bounds.y == 0:
            return None
        p = p.wrap(self.bounds)
        if not 0 <= p.y < len(self.rows):
            return None
        row = self.rows[p.y]
        if p.x >= len(row):
            return " "
        return row[p.x]


# Input/Output


SYSTEM_RANDOM = random.SystemRandom()


def system_direction() -> Direction:
    return SYSTEM_RANDOM.choice(list(Direction))


class ProgramIO:
    def __init__(
        self,
        input_stream: IO[str],
        output_stream: IO[str],
        error_stream: IO[str] | None = None,
        choose_direction: Callable[[], Direction] | None = None,
    ):
        self.input_stream = input_stream
        self.output_stream = output_stream
        self.error_stream = sys.stderr if error_stream is None else error_stream
        if choose_direction is None:
            choose_direction = system_direction
        self.choose_direction = choose_direction

    def read_line(self) -> str:
        return self.input_stream.readline()

    def write(self, text: str) -> None:
        self.output_stream.write(text)
        self.output_stream.flush()

    def debug(self, *lines: object) -> None:
        for line in lines:
            print(line, file=self.error_stream)
        self.error_stream.flush()

    def random_direction(self) -> Direction:
        return self.choose_direction()


INTEGER = re.compile(r"[+-]?[0-9]+")


def strip_line_ending(line: str) -> str:
    if line.endswith("\n"):
        return line[:-1].removesuffix("\r")
    return line


def parse_integer(text: str) -> int:
    if INTEGER.fullmatch(text) is None:
        logger.debug("Cannot parse %r as an integer, using 0", text)
        return 0
    value = int(text)
    if not INT_MIN <= value <= INT_MAX:
        logger.debug("Integer %s out of range, using 0", text)
        return 0
    return value


def is_scalar_value(value: int) -> bool:
    return 0 <= value <= 0x10FFFF and not 0xD800 <= value <= 0xDFFF


# Execution state


class State:
    def __init__(self):
        self.position = Vector(0, 0)
        self.direction = Direction.EAST.value
        self.stack: list[int] = []
        self.string_mode = False
        self.halted = False
        self.double_jump = False

    def iterate(self, grid: Grid, program_io: ProgramIO) -> Iterator[int]:
        """Step until halted, yielding the number of steps executed so far."""
        for count in itertools.count(1):
            if self.halted:
                return
            self.step(grid, program_io)
            yield count

    def run(
        self, grid: Grid, program_io: ProgramIO, max_steps: int | None = None
    ) -> int:
        steps = 0
        for steps in itertools.islice(self.iterate(grid, program_io), max_steps):
            pass
        return steps

    def step(self, grid: Grid, program_io: ProgramIO) -> None:
        if self.halted:
            return
        char = grid.lookup(self.position)
        if char is None:
            logger.info("Nothing to look up at %s, halting", self.position)
            self.halted = True
            return
        self.update(char, program_io)
        self.move_pointer()

    def move_pointer(self) -> None:
        self.position = self.position.then(self.direction)
        if self.double_jump:
            self.double_jump = False
            self.position = self.position.then(self.direction)

    def update(self, char: str, program_io: ProgramIO) -> None:
        if char == '"':
            self.string_mode = not self.string_mode
        elif self.string_mode:
            self.push(ord(char))
        elif char in string.digits:
            self.push(int(char))
        else:
            instruction = INSTRUCTIONS.get(char)
            if instruction is not None:
                instruction(self, program_io)

    # Stack helpers

    def push(self, value: int) -> None:
        self.stack.append(wrap_int(value))

    def pop(self) -> int | None:
        if not self.stack:
            return None
        return self.stack.pop()

    def unary(self, operation: Callable[[int], int]) -> None:
        a = self.pop()
        if a is None:
            return
        self.push(operation(a))

    def binary(self, operation: Callable[[int, int], int]) -> None:
        a = self.pop()
        if a is None:
            return
        b = self.pop()
        if b is None:
            self.push(a)
            return
        self.push(operation(a, b))

    # Instructions

    def dump(self, program_io: ProgramIO) -> None:
        program_io.debug(self.position, self.direction, self.stack)

    def swap(self, program_io: ProgramIO) -> None:
        a = self.pop()
        if a is None:
            return
        b = self.pop()
        if b is None:
            self.push(a)
            return
        self.push(a)
        self.push(b)

    def discard(self, program_io: ProgramIO) -> None:
        self.pop()

    def duplicate(self, program_io: ProgramIO) -> None:
        a = self.pop()
        if a is None:
            return
        self.push(a)
        self.push(a)

    def randomize(self, program_io: ProgramIO) -> None:
        self.direction = program_io.random_direction().value

    def vertical_if(self, program_io: ProgramIO) -> None:
        a = self.pop()
        if a is None:
            return
        self.direction = (Direction.SOUTH if a == 0 else Direction.NORTH).value

    def horizontal_if(self, program_io: ProgramIO) -> None:
        a = self.pop()
        if a is None:
            return
        self.direction = (Direction.EAST if a == 0 else Direction.WEST).value

    def print_integer(self, program_io: ProgramIO) -> None:
        a = self.pop()
        if a is None:
            return
        program_io.write(str(a))

    def print_character(self, program_io: ProgramIO) -> None:
        a = self.pop()
        if a is None:
            return
        if is_scalar_value(a):
            program_io.write(chr(a))

    def bridge(self, program_io: ProgramIO) -> None:
        self.double_jump = True

    def halt(self, program_io: ProgramIO) -> None:
        self.halted = True

    def read_integer(self, program_io: ProgramIO) -> None:
        try:
            line = program_io.read_line()
        except (OSError, UnicodeDecodeError, ValueError):
            logger.debug("Failed to read an input line, using 0", exc_info=True)
            line = ""
        self.push(parse_integer(strip_line_ending(line)))


# Characters


def make_move(direction: Direction) -> Callable[[State, ProgramIO], None]:
    def instruction(state: State, program_io: ProgramIO) -> None:
        state.direction = direction.value

    return instruction


def make_unary(operation: Callable[[int], int]) -> Callable[[State, ProgramIO], None]:
    def instruction(state: State, program_io: ProgramIO) -> None:
        state.unary(operation)

    return instruction


def make_binary(
    operation: Callable[[int, int], int]
) -> Callable[[State, ProgramIO], None]:
    # The operation receives the top of the stack first
    def instruction(state: State, program_io: ProgramIO) -> None:
        state.binary(operation)

    return instruction


INSTRUCTIONS: dict[str, Callable[[State, ProgramIO], None]] = {
    ";": State.dump,
    "v": make_move(Direction.SOUTH),
    "^": make_move(Direction.NORTH),
    ">": make_move(Direction.EAST),
    "<": make_move(Direction.WEST),
    "+": make_binary(lambda a, b: b + a),
    "-": make_binary(lambda a, b: b - a),
    "*": make_binary(lambda a, b: b * a),
    "/": make_binary(lambda a, b: divide(b, a)),
    "%": make_binary(lambda a, b: remainder(b, a)),
    "!": make_unary(lambda a: 1 if a == 0 else 0),
    "`": make_binary(lambda a, b: 1 if b > a else 0),
    "\\": State.swap,
    "$": State.discard,
    "?": State.randomize,
    "|": State.vertical_if,
    "_": State.horizontal_if,
    ":": State.duplicate,
    ".": State.print_integer,
    ",": State.print_character,
    "#": State.bridge,
    "@": State.halt,
    "&": State.read_integer,
}


# Main routine


def main(
    path: pathlib.Path,
    input_stream: IO[str] | None = None,
    output_stream: IO[str] | None = None,
    max_steps: int | None = None,
    progress: bool = False,
) -> State:
    # Input/Output
    if input_stream is None:
        input_stream = sys.stdin
    if output_stream is None:
        output_stream = sys.stdout

    # Load grid
    grid = Grid.from_path(path)
    logger.info("Loaded %s with bounds %d x %d", path, *grid.bounds)

    # Run
    program_io = ProgramIO(input_stream, output_stream)
    state = State()
    steps = 0
    for steps in show_progress(
        itertools.islice(state.iterate(grid, program_io), max_steps),
        enabled=progress,
        desc="Running",
        unit=" steps",
    ):
        pass

    if state.halted:
        logger.info("Halted after %d steps", steps)
    else:
        logger.info("Stopped after %d steps without halting", steps)
    return state


def cli(argv: list[str] | None = None) -> None:
    global QUIET
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("file", type=pathlib.Path)
    parser.add_argument(
        "--input", type=argparse.FileType("r", encoding="utf-8"), default=None
    )
    parser.add_argument(
        "--output", type=argparse.FileType("w", encoding="utf-8"), default=None
    )
    parser.add_argument("--max-steps", type=int, default=None)
    parser.add_argument("--progress", action="store_true", default=False)
    parser.add_argument("--quiet", action="store_true", default=False)
    parser.add_argument("--verbose", action="store_true", default=False)
    namespace = parser.parse_args(argv)
    QUIET = namespace.quiet
    setup_logging(logging.DEBUG if namespace.verbose else logging.WARNING)

    try:
        main(
            namespace.file,
            namespace.input,
            namespace.output,
            namespace.max_steps,
            namespace.progress,
        )
    # Ignore KeyboardInterrupt
    except KeyboardInterrupt:
        if not QUIET:
            print("Execution interrupted.", file=sys.stderr)
        sys.exit(130)
    finally:
        for stream in (namespace.input, namespace.output):
            if stream is not None and stream not in (sys.stdin, sys.stdout):
                stream.close()


if __name__ == "__main__":
    cli()

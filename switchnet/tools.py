"""Helpers shared by the switch, system and load balancer processes."""

from __future__ import annotations

import os

MAX_BUFF = 4096
NUM_OF_PIPES = 100

DOT = "."
SPACE = " "
UNDERLINE = "_"
DIR_SEPARATOR = "/"

FIFO_FILE_PATH = "./namedPipe/fifo"

EXIT = "exit"
CONNECT = "Connect"
SEND = "Send"
RECV = "Recv"
DELETE = "Delete"


def _split_fields(text: str, sep: str) -> list[str]:
    """Split like repeated getline: empty inner fields kept, no trailing empty field."""
    if not text:
        return []
    fields = text.split(sep)
    if fields[-1] == "":
        fields.pop()
    return fields


def does_contain_dot(line: str) -> bool:
    """Return True if the line holds a dot."""
    return DOT in line


def find_maximum(values) -> int:
    """Largest value, never below -1; -1 for an empty sequence."""
    return max(-1, *values) if values else -1


def find_minimum(values) -> int:
    """Smallest value, or -1 for an empty sequence."""
    return min(values) if values else -1


def get_named_fifo_name(process_name: str) -> str:
    """Path of the named pipe used to report back for a process."""
    return f"{FIFO_FILE_PATH}{UNDERLINE}{process_name}"


def remove_all_spaces(line: str) -> str:
    """Drop every space character from the line."""
    return line.replace(SPACE, "")


def vector_to_string(values) -> str:
    """Render each value as the character offset from '0', each followed by a space."""
    return "".join(chr(value + ord("0")) + SPACE for value in values)


def split_slash(date: str) -> list[int]:
    """Split a slash separated date into integers."""
    return [int(field) for field in _split_fields(date, DIR_SEPARATOR)]


def split_space(text: str) -> list[str]:
    """Split on single spaces, dropping empty fields."""
    return [field for field in text.split(SPACE) if field]


def split_command(command: str) -> tuple[int, str, str] | None:
    """Return (id, start_date, end_date) from a command, or None if it is too short."""
    fields = _split_fields(command, SPACE)
    if len(fields) < 4:
        return None
    return int(fields[1]), fields[2], fields[3]


def read_nonblocking(fd: int) -> str | None:
    """Read one chunk from a non-blocking descriptor; None when nothing is ready."""
    try:
        data = os.read(fd, MAX_BUFF)
    except BlockingIOError:
        return None
    return data.decode("utf-8", errors="replace")


def write_fifo(path: str, message: str) -> None:
    """Write a message to a named pipe (created as a file if missing)."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT, 0o666)
    try:
        os.write(fd, message.encode("utf-8"))
    finally:
        os.close(fd)
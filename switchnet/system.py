"""An end system process that sends and receives files through a switch."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path
from typing import NamedTuple

from .tools import (
    CONNECT,
    EXIT,
    MAX_BUFF,
    RECV,
    SEND,
    get_named_fifo_name,
    read_nonblocking,
    split_space,
    write_fifo,
)

_POLL_INTERVAL = 0.01
DEFAULT_OUTPUT_DIR = "./Test_Files"


class _Link(NamedTuple):
    read_fd: int
    write_fd: int
    peer_fd: int


def read_file(filename):
    """Return a file's text without its final newline, or "" if it cannot be read."""
    try:
        with open(filename, encoding="utf-8", errors="replace", newline="") as handle:
            content = handle.read()
    except OSError:
        return ""
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return "\n".join(lines)


class System:
    """A system attached to at most one switch link."""

    def __init__(self, name, command_fd, fifo_path, output_dir=DEFAULT_OUTPUT_DIR, delay=1.0):
        self.name = name
        self.command_fd = command_fd
        self.fifo_path = fifo_path
        self.output_dir = Path(output_dir)
        self.delay = delay
        self.waited = True
        self.link: _Link | None = None
        self.file_content = ""
        self.files: set[str] = set()

    @property
    def connected(self):
        return self.link is not None

    def report(self, message):
        """Send a status message back to the load balancer."""
        write_fifo(self.fifo_path, message)

    def wait_for_command(self):
        """Serve commands and link traffic until told to exit; return the last command."""
        last = ""
        while self.waited:
            text = read_nonblocking(self.command_fd)
            if text is not None:
                last = text
                self.handle_command(split_space(text))
            self.check_pipe()
            if self.waited:
                time.sleep(_POLL_INTERVAL)
        os.close(self.command_fd)
        return last

    def handle_command(self, command):
        """Dispatch one split command from the load balancer."""
        if not command:
            print("Failed connection!", file=sys.stderr)
            return
        kind = command[0]
        if kind == EXIT:
            self.waited = False
        elif kind == CONNECT:
            if len(command) == 4:
                self.create_pipe(command)
                self.report("S")
            else:
                self.report("F")
        elif kind == SEND:
            if len(command) != 4:
                print("The <Send> Message not sent.")
                return
            self.file_content = read_file(command[3])
            if not self.file_content:
                print("The file you requested does not exist.")
                return
            while self.file_content:
                time.sleep(self.delay)
                self.send_message(self.prepare_message_send(command))
                print(f"The system {self.name} sent the <Send> message.")
        elif kind == RECV:
            if len(command) != 4:
                print("The <Recv> Message not sent.")
                return
            self.send_message(self.prepare_message_recv(command))
            print(f"The system {self.name} sent the <Recv> message.")

    def create_pipe(self, command):
        """Attach the switch link from a Connect command's descriptors."""
        self.link = _Link(int(command[1]), int(command[2]), int(command[3]))

    def send_message(self, message):
        """Write a message to the switch."""
        if self.link is None:
            raise RuntimeError(f"system {self.name} is not connected")
        os.write(self.link.write_fd, message.encode("utf-8"))

    def prepare_message_send(self, command):
        """Build the next Send chunk, consuming that part of the pending file content."""
        message = " ".join([SEND, self.name, command[1], command[2], command[3]])
        room = MAX_BUFF - len(message) - 2
        chunk, self.file_content = self.file_content[:room], self.file_content[room:]
        return f"{message} {chunk}"

    def prepare_message_recv(self, command):
        """Build a Recv request for a file."""
        return " ".join([command[0], self.name, command[1], command[2], command[3]])

    def handle_message(self, fields, content):
        """Act on a message addressed to this system."""
        if not fields:
            print("Failed connection!", file=sys.stderr)
            return
        kind = fields[0]
        if kind == SEND:
            if len(fields) < 5:
                print("<Send> Message's format is not correct.")
                return
            print(f"The system {self.name} received the <Send> message.")
            filename = fields[4]
            mode = "a" if filename in self.files else "w"
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with open(self.output_dir / filename, mode, encoding="utf-8") as handle:
                handle.write(content + "\n")
            self.files.add(filename)
        elif kind == RECV:
            if len(fields) != 5:
                print("<Recv> Message's format is not correct.")
                return
            self.file_content = read_file(fields[4])
            if not self.file_content:
                print("The file you requested does not exist.")
                return
            command = [fields[0], fields[3], fields[2], fields[4]]
            while self.file_content:
                self.send_message(self.prepare_message_send(command))
                print(f"The system {self.name} sent the <Recv> message.")

    def check_pipe(self):
        """Handle whatever the switch has delivered to this system."""
        if self.link is None:
            return
        text = read_nonblocking(self.link.peer_fd)
        if text is None:
            return
        fields = split_space(text)
        if len(fields) <= 3 or fields[3] != self.name:
            return
        for field in fields[:5]:
            pos = text.find(field)
            if pos != -1:
                text = text[:pos] + text[pos + len(field) + 1:]
        self.handle_message(fields, text)


def start_system(pipe_fd, name):
    """Read the start message from the pipe, report, and serve; None if nothing was sent."""
    fifo_path = get_named_fifo_name(str(os.getpid()))
    if read_nonblocking(pipe_fd) is None:
        write_fifo(fifo_path, "F")
        os.close(pipe_fd)
        return None
    system = System(name, pipe_fd, fifo_path)
    system.report("S")
    system.wait_for_command()
    return system


def main(argv=None):
    parser = argparse.ArgumentParser(prog="system", description="Run an end system.")
    parser.add_argument("pipe_fd", type=int)
    parser.add_argument("name")
    args = parser.parse_args(argv)
    start_system(args.pipe_fd, args.name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
"""A learning switch process that forwards messages between connected systems."""

from __future__ import annotations

import argparse
import os
import re
import sys
import time
from typing import NamedTuple

from .tools import (
    CONNECT,
    DELETE,
    EXIT,
    RECV,
    SEND,
    get_named_fifo_name,
    read_nonblocking,
    split_space,
    write_fifo,
)

_POLL_INTERVAL = 0.01
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class _Port(NamedTuple):
    read_fd: int
    write_fd: int
    peer_fd: int


class Switch:
    """Switch with a fixed number of ports and a learned lookup table."""

    def __init__(self, name, number_of_ports, command_fd, fifo_path):
        self.name = name
        self.number_of_ports = number_of_ports
        self.remained_ports = number_of_ports
        self.command_fd = command_fd
        self.fifo_path = fifo_path
        self.waited = True
        self.ports: list[_Port | None] = []
        self.lookup_table: dict[str, int] = {}

    def report(self, message):
        """Send a status message back to the load balancer."""
        write_fifo(self.fifo_path, message)

    def wait_for_command(self):
        """Serve commands and port traffic until told to exit; return the last command."""
        last = ""
        while self.waited:
            text = read_nonblocking(self.command_fd)
            if text is not None:
                last = text
                self.handle_command(split_space(text))
            self.check_pipes()
            if self.waited:
                time.sleep(_POLL_INTERVAL)
        os.close(self.command_fd)
        return last

    def handle_command(self, command):
        """Dispatch one split command."""
        if not command:
            print("Failed connection!", file=sys.stderr)
            return
        kind = command[0]
        if kind == EXIT:
            self.waited = False
        elif kind == CONNECT:
            if self.remained_ports > 0 and len(command) == 4:
                self.create_pipe(command)
                self.report("S")
            else:
                self.report("F")
        elif kind in (SEND, RECV):
            self.update_lookup(command[1], int(command[-1]))
            if kind == SEND:
                message = self.prepare_message_send(command)
            else:
                message = self.prepare_message_recv(command)
            self.send_message(message, command[1], command[3])
            print(f"The switch {self.name} sent the <{kind}> message.")
        elif kind == DELETE:
            self.delete_pipe(int(command[2]))

    def create_pipe(self, command):
        """Attach a new port from a Connect command's descriptors."""
        self.ports.append(_Port(int(command[1]), int(command[2]), int(command[3])))
        self.remained_ports -= 1

    def delete_pipe(self, read_fd):
        """Free every port whose read descriptor matches."""
        for index, port in enumerate(self.ports):
            if port is not None and port.read_fd == read_fd:
                self.ports[index] = None
                self.remained_ports += 1
                self._forget_port(index)

    def _forget_port(self, index):
        for node_id, port_index in self.lookup_table.items():
            if port_index == index:
                del self.lookup_table[node_id]
                break

    def check_pipes(self):
        """Handle whatever has arrived on the connected ports."""
        for index, port in enumerate(self.ports):
            if port is None:
                continue
            text = read_nonblocking(port.peer_fd)
            if text is not None:
                self.handle_command(split_space(text) + [str(index)])

    def update_lookup(self, node_id, index):
        """Learn the port of a node unless it is already known."""
        self.lookup_table.setdefault(node_id, index)

    def send_message(self, message, src, dest):
        """Forward to the learned port of dest, or flood all other ports."""
        data = message.encode("utf-8")
        if dest in self.lookup_table:
            port = self.ports[self.lookup_table[dest]]
            if port is not None:
                os.write(port.write_fd, data)
            return
        source_port = self.lookup_table.get(src)
        for index, port in enumerate(self.ports):
            if index == source_port or port is None:
                continue
            os.write(port.write_fd, data)

    def prepare_message_send(self, command):
        """Rewrite a Send message with this switch's name, keeping its content."""
        if len(command) < 5:
            raise ValueError("Send message needs kind, sender, source, destination and file")
        return " ".join([command[0], self.name, *command[2:5], *command[5:-1]])

    def prepare_message_recv(self, command):
        """Rewrite a Recv message with this switch's name."""
        if len(command) < 5:
            raise ValueError("Recv message needs kind, sender, source, destination and file")
        return " ".join([command[0], self.name, *command[2:5]])


def start_switch(pipe_fd, name):
    """Read the port count from the pipe, report, and serve; None if nothing was sent."""
    fifo_path = get_named_fifo_name(str(os.getpid()))
    text = read_nonblocking(pipe_fd)
    if text is None:
        write_fifo(fifo_path, "F")
        os.close(pipe_fd)
        return None
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"invalid number of ports: {text!r}")
    switch = Switch(name, int(match.group(1)), pipe_fd, fifo_path)
    switch.report("S")
    switch.wait_for_command()
    return switch


def main(argv=None):
    parser = argparse.ArgumentParser(prog="switch", description="Run a network switch.")
    parser.add_argument("pipe_fd", type=int)
    parser.add_argument("name")
    args = parser.parse_args(argv)
    start_switch(args.pipe_fd, args.name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
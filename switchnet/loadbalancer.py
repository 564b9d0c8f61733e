"""Interactive controller that starts switches and systems and wires them together."""

from __future__ import annotations

import argparse
import enum
import os
import subprocess
import sys
import time
from collections import deque
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

from .tools import (
    CONNECT,
    DELETE,
    EXIT,
    FIFO_FILE_PATH,
    MAX_BUFF,
    NUM_OF_PIPES,
    RECV,
    SEND,
    SPACE,
    get_named_fifo_name,
)

RESET = "\033[0m"
RED = "\033[31m"
CYAN = "\033[36m"

SWITCH_COMMAND = (sys.executable, "-m", "switchnet.switch")
SYSTEM_COMMAND = (sys.executable, "-m", "switchnet.system")

_POLL_INTERVAL = 0.01


class Kind(enum.Enum):
    """The two kinds of component the load balancer runs."""

    SWITCH = 0
    SYSTEM = 1


@dataclass
class _Component:
    name: str
    process: subprocess.Popen
    write_fd: int


def _split_line(line: str) -> list[str]:
    """Split on single spaces, keeping inner empty fields but no trailing one."""
    if not line:
        return []
    fields = line.split(SPACE)
    if fields[-1] == "":
        fields.pop()
    return fields


def _error(message: str) -> None:
    print(message, file=sys.stderr)


class SwitchTopology:
    """Symmetric adjacency matrix of the links between switches."""

    def __init__(self):
        self.matrix: list[list[bool]] = []

    def __len__(self):
        return len(self.matrix)

    def add_switch(self):
        """Add an unconnected switch and return its index."""
        for row in self.matrix:
            row.append(False)
        self.matrix.append([False] * (len(self.matrix) + 1))
        return len(self.matrix) - 1

    def connect(self, a, b):
        """Link switches a and b."""
        self.matrix[a][b] = True
        self.matrix[b][a] = True

    def disconnect(self, a, b):
        """Remove the link between switches a and b."""
        self.matrix[a][b] = False
        self.matrix[b][a] = False

    def will_cause_loops(self, a, b, path=None):
        """Return True if b is already reachable from a, so a new a-b link closes a loop."""
        path = [a] if path is None else list(path)
        if path[-1] == b:
            return True
        if path[-1] in path[:-1]:
            return False
        if a == b:
            return True
        for neighbour, linked in enumerate(self.matrix[a]):
            if linked:
                path.append(neighbour)
                if self.will_cause_loops(neighbour, b, path):
                    return True
        return False

    def spanning_tree(self, root):
        """Breadth-first spanning tree from root, as an adjacency matrix."""
        size = len(self.matrix)
        tree = [[False] * size for _ in range(size)]
        visited = [False] * size
        queue = deque([root])
        while queue:
            node = queue.popleft()
            visited[node] = True
            for neighbour, linked in enumerate(self.matrix[node]):
                if linked and not visited[neighbour]:
                    tree[node][neighbour] = True
                    tree[neighbour][node] = True
                    queue.append(neighbour)
                    visited[neighbour] = True
        return tree

    def first_extra_edge(self, tree):
        """First (i, j) in row order where the links differ from tree, or None."""
        for i, (row, tree_row) in enumerate(zip(self.matrix, tree)):
            for j, (linked, in_tree) in enumerate(zip(row, tree_row)):
                if linked != in_tree:
                    return i, j
        return None

    def format_matrix(self):
        """Render the matrix as rows of '1 ' and '0 '."""
        return "".join(
            "".join("1 " if linked else "0 " for linked in row) + "\n" for row in self.matrix
        )


class LoadBalancer:
    """Starts switch and system processes and relays commands to them."""

    def __init__(self, switch_command=SWITCH_COMMAND, system_command=SYSTEM_COMMAND):
        self.switch_command = list(switch_command)
        self.system_command = list(system_command)
        self.running = True
        self.topology = SwitchTopology()
        self.switch_index: dict[str, int] = {}
        self.system_index: dict[str, int] = {}
        self.connections: dict[str, str] = {}
        self.connection_pipes: dict[tuple[int, int], tuple[str, str]] = {}
        self._components: dict[Kind, list[_Component]] = {Kind.SWITCH: [], Kind.SYSTEM: []}
        self._processes: list[subprocess.Popen] = []
        self._closed = False
        Path(FIFO_FILE_PATH).parent.mkdir(parents=True, exist_ok=True)
        self._pipes: list[tuple[int, int]] = []
        self._open_fds: set[int] = set()
        for _ in range(NUM_OF_PIPES):
            try:
                read_fd, write_fd = os.pipe()
            except OSError:
                _error("Pipe construction failed!")
                continue
            self._pipes.append((read_fd, write_fd))
            self._open_fds.update((read_fd, write_fd))
        self._next_pipe = 0
        self._handlers = {
            EXIT: self._handle_exit,
            "Switch": self._handle_switch,
            "System": self._handle_system,
            CONNECT: self._handle_connect,
            "Connect_S": self._handle_connect_switches,
            SEND: self._handle_forward,
            RECV: self._handle_forward,
        }

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _index_map(self, kind):
        return self.switch_index if kind is Kind.SWITCH else self.system_index

    def _allocate_pipe(self):
        if self._next_pipe >= len(self._pipes):
            raise RuntimeError("no pipes left to allocate")
        read_fd, write_fd = self._pipes[self._next_pipe]
        self._next_pipe += 1
        os.set_blocking(read_fd, False)
        return read_fd, write_fd

    def _close_fd(self, fd):
        if fd in self._open_fds:
            self._open_fds.discard(fd)
            with suppress(OSError):
                os.close(fd)

    def read_input(self, stream):
        """Read and handle commands line by line until exit or end of input."""
        while self.running:
            print(f"{CYAN}Enter your command:{RESET}")
            line = stream.readline()
            if not line:
                self.handle_command(EXIT)
                break
            self.handle_command(line.rstrip("\n"))

    def handle_command(self, line):
        """Handle one command line."""
        command = _split_line(line)
        if not command:
            return
        handler = self._handlers.get(command[0])
        if handler is None:
            print("Invalid command!")
            return
        handler(command)

    def _handle_exit(self, command):
        self.running = False
        self.exit_all_components()

    def _handle_switch(self, command):
        if len(command) != 3:
            _error("Bad request!")
            return
        if self._start_component(Kind.SWITCH, command[2], command[1]):
            self.topology.add_switch()

    def _handle_system(self, command):
        if len(command) != 2:
            _error("Bad request!")
            return
        self._start_component(Kind.SYSTEM, command[1], command[1])

    def _start_component(self, kind, name, payload):
        if name in self.switch_index or name in self.system_index:
            _error("Duplicate name!")
            return False
        read_fd, write_fd = self._allocate_pipe()
        os.write(write_fd, payload.encode("utf-8"))
        base = self.switch_command if kind is Kind.SWITCH else self.system_command
        try:
            process = subprocess.Popen(
                [*base, str(read_fd), name], pass_fds=sorted(self._open_fds)
            )
        except OSError:
            _error("Process construction failed!")
            self._close_fd(read_fd)
            self._close_fd(write_fd)
            return False
        self._processes.append(process)
        self._close_fd(read_fd)

        components = self._components[kind]
        index_map = self._index_map(kind)
        components.append(_Component(name, process, write_fd))
        index = len(components) - 1
        index_map[name] = index
        with suppress(FileExistsError):
            os.mkfifo(get_named_fifo_name(str(process.pid)), 0o666)

        reply = self.get_message(index, kind)
        if reply in ("F", ""):
            label = "Switch" if kind is Kind.SWITCH else "System"
            _error(f"{label} does not create correctly!")
            components.pop()
            del index_map[name]
            self._close_fd(write_fd)
            return False
        return True

    def _handle_connect(self, command):
        if (
            len(command) != 3
            or command[1] not in self.system_index
            or command[2] not in self.switch_index
        ):
            _error("Bad request!")
            return
        system_i = self.system_index[command[1]]
        switch_i = self.switch_index[command[2]]
        to_switch, to_system = self.prepare_connect_message()
        self.send_message(to_switch, switch_i, Kind.SWITCH)
        if self.get_message(switch_i, Kind.SWITCH) != "S":
            _error("There is no free port on this switch!")
            return
        self.connections[command[1]] = command[2]
        self.send_message(to_system, system_i, Kind.SYSTEM)
        if self.get_message(system_i, Kind.SYSTEM) == "S":
            print("Connected!")
        else:
            _error("Could not connect!")

    def _handle_connect_switches(self, command):
        if (
            len(command) != 3
            or command[1] not in self.switch_index
            or command[2] not in self.switch_index
        ):
            _error("Bad request!")
            return
        first = self.switch_index[command[1]]
        second = self.switch_index[command[2]]
        causes_loop = self.topology.will_cause_loops(first, second)

        messages = self.prepare_connect_message()
        to_second, to_first = messages
        self.send_message(to_second, second, Kind.SWITCH)
        if self.get_message(second, Kind.SWITCH) == "S":
            self.connections[command[1]] = command[2]
            self.send_message(to_first, first, Kind.SWITCH)
            if self.get_message(first, Kind.SWITCH) == "S":
                self.topology.connect(first, second)
                self.connection_pipes[(second, first)] = messages
                print("Connected!")
            else:
                _error("There is no free port on this switch!")
        else:
            _error("There is no free port on this switch!")

        if causes_loop:
            print("This connection caused a loop!")
            self._break_loop(first)

    def _break_loop(self, root):
        tree = self.topology.spanning_tree(root)
        edge = self.topology.first_extra_edge(tree)
        if edge is None:
            return
        a, b = edge
        self.topology.disconnect(a, b)
        names = self.find_loop_edge(a, b)
        if len(names) > 1:
            print(f"For removing loop, we delete edge between switches {names[0]}-{names[1]}")
        for key in ((a, b), (b, a)):
            messages = self.connection_pipes.pop(key, None)
            if messages is not None:
                self.send_message(f"{DELETE} {messages[0]}", key[0], Kind.SWITCH)
                self.send_message(f"{DELETE} {messages[1]}", key[1], Kind.SWITCH)
                break

    def _handle_forward(self, command):
        if len(command) != 4:
            _error("Bad request!")
            return
        if command[1] not in self.system_index or command[2] not in self.system_index:
            _error("Wrong source or destination!")
            return
        message = "".join(field + SPACE for field in command)
        self.send_message(message, self.system_index[command[1]], Kind.SYSTEM)

    def prepare_connect_message(self):
        """Allocate a pipe pair and return the Connect messages for both ends."""
        switch_read, switch_write = self._allocate_pipe()
        system_read, system_write = self._allocate_pipe()
        to_switch = SPACE.join([CONNECT, str(switch_read), str(switch_write), str(system_read)])
        to_system = SPACE.join([CONNECT, str(system_read), str(system_write), str(switch_read)])
        return to_switch, to_system

    def send_message(self, message, index, kind):
        """Write a message to a component's command pipe."""
        component = self._components[kind][index]
        os.write(component.write_fd, message.encode("utf-8"))

    def get_message(self, index, kind):
        """Wait for a component's reply on its named pipe; "" if it exits without one."""
        component = self._components[kind][index]
        path = get_named_fifo_name(str(component.process.pid))
        fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
        try:
            while True:
                data = self._read_available(fd)
                if data:
                    return data.decode("utf-8", errors="replace")
                if component.process.poll() is not None:
                    return self._read_available(fd).decode("utf-8", errors="replace")
                time.sleep(_POLL_INTERVAL)
        finally:
            os.close(fd)

    @staticmethod
    def _read_available(fd):
        try:
            return os.read(fd, MAX_BUFF)
        except BlockingIOError:
            return b""

    def find_loop_edge(self, a, b):
        """Names of the switches with indices a and b, in name order, at most two."""
        names: list[str] = []
        for name, index in sorted(self.switch_index.items()):
            if index == a:
                names.append(name)
                if len(names) == 2:
                    break
            if index == b:
                names.append(name)
                if len(names) == 2:
                    break
        return names

    def exit_all_components(self):
        """Tell every running switch and system to exit."""
        for kind in (Kind.SWITCH, Kind.SYSTEM):
            for index in range(len(self._components[kind])):
                with suppress(BrokenPipeError):
                    self.send_message(EXIT, index, kind)

    def close(self):
        """Stop the components, wait for every process and release the pipes."""
        if self._closed:
            return
        if self.running:
            self.running = False
            self.exit_all_components()
        for process in self._processes:
            process.wait()
        for fd in list(self._open_fds):
            self._close_fd(fd)
        self._closed = True


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="network", description="Start switches and systems and route files between them."
    )
    parser.parse_args(argv)
    print(f"{RED}Welcome!{RESET}")
    with LoadBalancer() as balancer:
        balancer.read_input(sys.stdin)
    return 0


if __name__ == "__main__":
    sys.exit(main())
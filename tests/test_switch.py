import contextlib
import os
import threading
import time

import pytest

from switchnet import tools
from switchnet.switch import Switch, main, start_switch


@pytest.fixture
def fds():
    opened = []

    def make_pipe():
        read_fd, write_fd = os.pipe()
        os.set_blocking(read_fd, False)
        opened.extend([read_fd, write_fd])
        return read_fd, write_fd

    yield make_pipe
    for fd in opened:
        with contextlib.suppress(OSError):
            os.close(fd)


def _switch(tmp_path, fds, ports=3):
    cmd_r, _ = fds()
    return Switch("sw", ports, cmd_r, str(tmp_path / "fifo"))


def _connect(sw, fds):
    to_r, to_w = fds()
    from_r, from_w = fds()
    sw.handle_command(["Connect", str(to_r), str(to_w), str(from_r)])
    return to_r, from_w


def test_connect_uses_a_port(tmp_path, fds):
    sw = _switch(tmp_path, fds)
    _connect(sw, fds)
    assert sw.remained_ports == 2
    assert (tmp_path / "fifo").read_text() == "S"


def test_connect_without_free_port_fails(tmp_path, fds):
    sw = _switch(tmp_path, fds, ports=0)
    _connect(sw, fds)
    assert sw.ports == []
    assert (tmp_path / "fifo").read_text() == "F"


def test_connect_with_wrong_arguments_fails(tmp_path, fds):
    sw = _switch(tmp_path, fds)
    sw.handle_command(["Connect", "1", "2"])
    assert sw.remained_ports == 3
    assert (tmp_path / "fifo").read_text() == "F"


def test_flood_then_learned_route(tmp_path, fds):
    sw = _switch(tmp_path, fds)
    a_in, _ = _connect(sw, fds)
    b_in, _ = _connect(sw, fds)
    c_in, _ = _connect(sw, fds)

    sw.handle_command(["Send", "A", "A", "B", "f.txt", "hi", "0"])
    assert sw.lookup_table == {"A": 0}
    assert tools.read_nonblocking(b_in) == "Send sw A B f.txt hi"
    assert tools.read_nonblocking(c_in) == "Send sw A B f.txt hi"
    assert tools.read_nonblocking(a_in) is None

    sw.handle_command(["Recv", "B", "B", "A", "f.txt", "1"])
    assert sw.lookup_table == {"A": 0, "B": 1}
    assert tools.read_nonblocking(a_in) == "Recv sw B A f.txt"
    assert tools.read_nonblocking(c_in) is None


def test_check_pipes_forwards_incoming(tmp_path, fds):
    sw = _switch(tmp_path, fds, ports=2)
    _, a_out = _connect(sw, fds)
    b_in, _ = _connect(sw, fds)
    os.write(a_out, b"Send A A B f.txt hello")
    sw.check_pipes()
    assert tools.read_nonblocking(b_in) == "Send sw A B f.txt hello"
    assert sw.lookup_table["A"] == 0


def test_delete_pipe_frees_port_and_route(tmp_path, fds):
    sw = _switch(tmp_path, fds)
    a_in, _ = _connect(sw, fds)
    _connect(sw, fds)
    sw.update_lookup("A", 0)
    sw.handle_command(["Delete", "Connect", str(a_in), "0", "0"])
    assert sw.ports[0] is None
    assert sw.remained_ports == 2
    assert "A" not in sw.lookup_table


def test_update_lookup_keeps_first_port(tmp_path, fds):
    sw = _switch(tmp_path, fds)
    sw.update_lookup("A", 0)
    sw.update_lookup("A", 2)
    assert sw.lookup_table == {"A": 0}


def test_prepare_messages(tmp_path, fds):
    sw = _switch(tmp_path, fds)
    assert sw.prepare_message_send(["Send", "A", "A", "B", "f", "x", "y", "0"]) == "Send sw A B f x y"
    assert sw.prepare_message_recv(["Recv", "A", "A", "B", "f", "0"]) == "Recv sw A B f"
    with pytest.raises(ValueError):
        sw.prepare_message_send(["Send", "A", "0"])


def test_wait_for_command_stops_on_exit(tmp_path):
    cmd_r, cmd_w = os.pipe()
    os.set_blocking(cmd_r, False)
    os.write(cmd_w, b"exit")
    sw = Switch("sw", 1, cmd_r, str(tmp_path / "fifo"))
    try:
        assert sw.wait_for_command() == "exit"
        assert sw.waited is False
        with pytest.raises(OSError):
            os.fstat(cmd_r)
    finally:
        os.close(cmd_w)


def test_start_switch_reports_failure_without_data(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "namedPipe").mkdir()
    cmd_r, cmd_w = os.pipe()
    os.set_blocking(cmd_r, False)
    try:
        assert start_switch(cmd_r, "sw") is None
        fifo = tmp_path / "namedPipe" / f"fifo_{os.getpid()}"
        assert fifo.read_text() == "F"
    finally:
        os.close(cmd_w)


def test_start_switch_reads_port_count(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "namedPipe").mkdir()
    cmd_r, cmd_w = os.pipe()
    os.set_blocking(cmd_r, False)
    os.write(cmd_w, b"2")

    def stop():
        time.sleep(0.2)
        os.write(cmd_w, b"exit")

    worker = threading.Thread(target=stop)
    worker.start()
    try:
        sw = start_switch(cmd_r, "sw")
    finally:
        worker.join()
        os.close(cmd_w)
    assert sw.number_of_ports == 2
    assert sw.name == "sw"
    assert (tmp_path / "namedPipe" / f"fifo_{os.getpid()}").read_text() == "S"


def test_main_rejects_bad_arguments():
    with pytest.raises(SystemExit):
        main(["not-a-number"])
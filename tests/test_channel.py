import os
import queue
import threading

import pytest

from helpers import wait_for
from ssht.channel import ChannelSession, ChannelState, CloseLatch, CloseReason
from ssht.exceptions import TerminalError
from ssht.interceptor import FakeResponses
from ssht.wire import pty_request_payload, window_change_payload


class FakeChannel:
    closed = False

    def __init__(self):
        self.incoming = queue.Queue()
        self.sent = bytearray()
        self.exit_status = None

    def get_id(self):
        return 0

    def recv(self, size):
        return self.incoming.get()

    def sendall(self, data):
        self.sent.extend(data)

    def send_exit_status(self, status):
        self.exit_status = status

    def close(self):
        self.closed = True
        self.incoming.put(b"")


class FakeTerminal:
    def __init__(self, command):
        self.command = command
        self.read_fd, self.write_fd = os.pipe()
        self.written = bytearray()
        self.sizes = []
        self.returncode = None
        self.closed = False

    def fileno(self):
        return self.read_fd

    def read(self, size):
        return os.read(self.read_fd, size)

    def write(self, data):
        self.written.extend(data)

    def resize(self, rows, cols):
        self.sizes.append((rows, cols))

    def output(self, data):
        os.write(self.write_fd, data)

    def exit(self, returncode):
        self.returncode = returncode
        os.close(self.write_fd)
        self.write_fd = None

    def terminate(self, timeout=None):
        if self.returncode is None:
            self.returncode = -1
        return self.returncode

    def close(self):
        self.terminate()
        if self.write_fd is not None:
            os.close(self.write_fd)
            self.write_fd = None
        if not self.closed:
            os.close(self.read_fd)
            self.closed = True
        return self.returncode


@pytest.fixture
def terminals():
    return []


@pytest.fixture
def responses():
    return FakeResponses()


@pytest.fixture
def channel_session(responses, terminals):
    def factory(command):
        terminal = FakeTerminal(command)
        terminals.append(terminal)
        return terminal

    session = ChannelSession(0, ("sh",), responses, terminal_factory=factory)
    yield session
    session.close()


@pytest.fixture
def channel():
    return FakeChannel()


def test_shell_request(channel_session):
    assert channel_session.handle_request("shell", b"")
    assert not channel_session.handle_request("shell", b"\x00\x00\x00\x02ls")


@pytest.mark.parametrize("kind", ["exec", "subsystem", "env", "x11-req", "unknown"])
def test_other_requests_are_not_acknowledged(channel_session, kind):
    assert not channel_session.handle_request(kind, b"\x00\x00\x00\x02ls")


def test_pty_request_before_activation(channel_session, channel, terminals):
    assert channel_session.handle_request("pty-req", pty_request_payload(b"xterm", 80, 24))
    assert channel_session.activate(channel)
    assert terminals[0].sizes == [(24, 80)]
    assert terminals[0].command == ("sh",)


def test_window_change_resizes(channel_session, channel, terminals):
    channel_session.activate(channel)
    assert channel_session.handle_request("window-change", window_change_payload(120, 40))
    assert channel_session.handle_request("window-change", window_change_payload(120, 40))
    assert terminals[0].sizes == [(40, 120), (40, 120)]


@pytest.mark.parametrize(
    "kind, payload",
    [
        ("pty-req", b""),
        ("pty-req", b"\x00\x00\x01\x00xterm"),
        ("window-change", b"\x00\x00\x00\x50"),
    ],
)
def test_malformed_request_is_rejected(channel_session, channel, terminals, kind, payload):
    channel_session.activate(channel)
    assert not channel_session.handle_request(kind, payload)
    assert terminals[0].sizes == []
    assert channel_session.state == ChannelState.ACTIVE


def test_client_input_is_written_to_shell(channel_session, channel, terminals):
    channel_session.activate(channel)
    channel.incoming.put(b"echo hello\n")
    assert wait_for(lambda: bytes(terminals[0].written) == b"echo hello\n")


def test_shell_output_passthrough_without_rules(channel_session, channel, terminals):
    channel_session.activate(channel)
    terminals[0].output(b"$ ")
    assert wait_for(lambda: bytes(channel.sent) == b"$ ")


def test_fake_response_replaces_shell_output(channel_session, channel, terminals, responses):
    responses.add("ls -lha", b"this is a test")
    channel_session.activate(channel)
    terminals[0].output(b"$ ")
    channel.incoming.put(b"ls -lha\n")
    terminals[0].output(b"ls -lha\r\ntotal 0\r\n")
    assert wait_for(lambda: bytes(channel.sent) == b"this is a test")
    assert wait_for(lambda: bytes(terminals[0].written) == b"ls -lha\n")
    assert channel_session.interceptor.buffer == b""
    assert responses.call_count("ls -lha") == 1


def test_partial_command_is_buffered(channel_session, channel, terminals, responses):
    responses.add("ls -lha", b"this is a test")
    channel_session.activate(channel)
    channel.incoming.put(b"ls -lh")
    assert wait_for(lambda: channel_session.interceptor.buffer == b"ls -lh")
    assert bytes(channel.sent) == b""


def test_client_eof_closes_session(channel_session, channel, terminals):
    channel_session.activate(channel)
    channel.incoming.put(b"")
    assert channel_session.closed_event.wait(5)
    assert channel_session.close_reason == CloseReason.CLIENT_EOF
    assert channel_session.state == ChannelState.CLOSED
    assert channel.closed
    assert channel.exit_status is None
    assert terminals[0].closed


def test_shell_exit_reports_status(channel_session, channel, terminals):
    channel_session.activate(channel)
    terminals[0].exit(3)
    assert channel_session.closed_event.wait(5)
    assert channel_session.close_reason == CloseReason.SHELL_EOF
    assert channel.exit_status == 3
    assert channel.closed


def test_pty_failure_closes_without_activation(responses, channel):
    def failing_factory(command):
        raise TerminalError("no pty")

    channel_session = ChannelSession(1, ("sh",), responses, terminal_factory=failing_factory)
    assert not channel_session.activate(channel)
    assert channel_session.state == ChannelState.CLOSED
    assert channel_session.close_reason == CloseReason.PTY_FAILED
    assert channel.closed
    assert channel_session.terminal is None


def test_close_runs_once(channel_session, channel):
    channel_session.activate(channel)
    assert channel_session.close(CloseReason.SHUTDOWN)
    assert not channel_session.close(CloseReason.CLIENT_EOF)
    assert channel_session.close_reason == CloseReason.SHUTDOWN


def test_activate_twice(channel_session, channel):
    assert channel_session.activate(channel)
    assert not channel_session.activate(FakeChannel())


def test_close_latch_fires_once_under_contention():
    latch = CloseLatch()
    calls = []
    results = []
    barrier = threading.Barrier(16)

    def trigger(number):
        barrier.wait()
        results.append(latch.fire(calls.append, number))

    threads = [threading.Thread(target=trigger, args=(i,)) for i in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert results.count(True) == 1
    assert latch.fired


def test_close_notifies_owner_once(responses, channel, terminals):
    released = []

    def factory(command):
        terminal = FakeTerminal(command)
        terminals.append(terminal)
        return terminal

    channel_session = ChannelSession(
        2, ("sh",), responses, terminal_factory=factory, on_closed=released.append
    )
    channel_session.activate(channel)
    channel.incoming.put(b"")
    assert channel_session.closed_event.wait(5)
    channel_session.close(CloseReason.SHUTDOWN)
    assert released == [channel_session]


def test_close_clears_command_buffer(channel_session, channel, responses):
    responses.add("ls -lha", b"this is a test")
    channel_session.activate(channel)
    channel.incoming.put(b"ls -l")
    assert wait_for(lambda: channel_session.interceptor.buffer == b"ls -l")
    channel_session.close(CloseReason.SHUTDOWN)
    assert channel_session.interceptor.buffer == b""

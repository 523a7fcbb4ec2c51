"""
Channel sessions.

A :class:`ChannelSession` binds one accepted ``session`` channel to a shell
in a pseudo terminal. Two pump threads copy data between the channel and the
terminal. The client to shell pump also feeds the session's
:class:`~ssht.interceptor.CommandInterceptor`, which owns the command buffer.
While interception rules exist the shell output is drained and dropped, so
the client only sees fake responses.

Whichever side reaches end of stream first closes the session through a
:class:`CloseLatch`, which runs the close sequence exactly once.
"""

import logging
import select
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Tuple

import paramiko
from colored.colored import attr, fg  # type: ignore[import-untyped]

from ssht.exceptions import MalformedRequestError, TerminalError
from ssht.interceptor import CommandInterceptor, FakeResponses
from ssht.logger import Colors
from ssht.terminal import Terminal
from ssht.utils import format_hex
from ssht.wire import parse_pty_request, parse_window_change

if TYPE_CHECKING:
    from ssht.session import Session

TerminalFactory = Callable[[Sequence[str]], Terminal]


class ChannelState(Enum):
    ACCEPTING = "accepting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(Enum):
    CLIENT_EOF = "client closed the channel"
    SHELL_EOF = "shell exited"
    PTY_FAILED = "pty could not be started"
    SHUTDOWN = "connection closed"


class CloseLatch:
    """Runs an action at most once, no matter how many threads fire it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False

    @property
    def fired(self) -> bool:
        with self._lock:
            return self._fired

    def fire(self, action: Callable[..., Any], *args: Any) -> bool:
        """
        Run ``action`` if the latch has not fired yet.

        :return: ``True`` if this call ran the action
        """
        with self._lock:
            if self._fired:
                return False
            self._fired = True
        action(*args)
        return True


class ChannelSession:  # pylint: disable=too-many-instance-attributes
    """
    One shell session on an ssh channel.

    The session is created when the client opens the channel and activated
    once the transport hands out the accepted :class:`paramiko.Channel`.
    Requests may arrive in between, a requested terminal size is kept until
    the pty exists.

    :param chanid: id of the channel within the connection
    :param command: shell command started in the pty
    :param responses: interception rules of the server
    :param session: the connection session, used for log context
    :param terminal_factory: starts the pty host, :meth:`Terminal.spawn` by default
    :param on_closed: called with the session once it is closed
    """

    BUF_LEN = 32768
    SELECT_TIMEOUT = 0.2
    JOIN_TIMEOUT = 5.0

    def __init__(  # pylint: disable=too-many-arguments
        self,
        chanid: int,
        command: Sequence[str],
        responses: FakeResponses,
        *,
        session: Optional["Session"] = None,
        terminal_factory: TerminalFactory = Terminal.spawn,
        on_closed: Optional[Callable[["ChannelSession"], None]] = None,
    ) -> None:
        self.chanid = chanid
        self.command = tuple(command)
        self.session = session
        self.terminal_factory = terminal_factory
        self.on_closed = on_closed

        self.channel: Optional[paramiko.Channel] = None
        self.terminal: Optional[Terminal] = None
        self.state = ChannelState.ACCEPTING
        self.close_reason: Optional[CloseReason] = None
        self.closed_event = threading.Event()

        self.interceptor = CommandInterceptor(responses, self.send_to_client)
        self.latch = CloseLatch()

        self._lock = threading.RLock()
        self._pending_size: Optional[Tuple[int, int]] = None
        self._threads: List[threading.Thread] = []

    def __str__(self) -> str:
        if self.session is not None:
            return f"{self.session}#{self.chanid}"
        return f"channel#{self.chanid}"

    def _register(self) -> None:
        if self.session is not None:
            self.session.register_session_thread()

    @property
    def active(self) -> bool:
        return self.state == ChannelState.ACTIVE

    def activate(self, channel: paramiko.Channel) -> bool:
        """
        Start the shell for ``channel`` and begin copying data.

        :return: ``False`` if the pty could not be started, the session is closed then
        """
        with self._lock:
            if self.state != ChannelState.ACCEPTING:
                logging.error("(%s) channel session already %s", self, self.state.value)
                return False
            self.channel = channel
            logging.debug("(%s) creating pty...", self)
            try:
                self.terminal = self.terminal_factory(self.command)
            except TerminalError as err:
                logging.error("(%s) could not start pty: %s", self, err)
                terminal_started = False
            else:
                terminal_started = True
                if self._pending_size is not None:
                    width, height = self._pending_size
                    self.terminal.resize(height, width)
                self.state = ChannelState.ACTIVE

        if not terminal_started:
            self.close(CloseReason.PTY_FAILED)
            return False

        for name, target in (
            ("client-to-shell", self._pump_client_to_shell),
            ("shell-to-client", self._pump_shell_to_client),
        ):
            thread = threading.Thread(
                target=target, name=f"{self}-{name}", daemon=True
            )
            self._threads.append(thread)
            thread.start()
        logging.info(
            "%s (%s) shell %s started",
            Colors.emoji("computer"),
            self,
            Colors.stylize(" ".join(self.command), fg("light_blue") + attr("bold")),
        )
        return True

    def handle_request(self, kind: str, payload: bytes = b"") -> bool:
        """
        Process a channel request.

        :param kind: request type, e.g. ``shell``, ``pty-req`` or ``window-change``
        :param payload: request specific data following the want-reply flag
        :return: ``True`` if the request is acknowledged
        """
        logging.debug("(%s) channel request %s (%d bytes)", self, kind, len(payload))
        if kind == "shell":
            # only the default shell is supported, not a command in the payload
            if payload:
                logging.warning("(%s) shell request with command rejected", self)
                return False
            return True
        if kind == "pty-req":
            try:
                term, width, height = parse_pty_request(payload)
            except MalformedRequestError as err:
                logging.warning("(%s) malformed pty-req: %s", self, err)
                return False
            logging.debug("(%s) pty-req term=%s width=%s height=%s", self, term, width, height)
            self.resize(width, height)
            return True
        if kind == "window-change":
            try:
                width, height = parse_window_change(payload)
            except MalformedRequestError as err:
                logging.warning("(%s) malformed window-change: %s", self, err)
                return False
            self.resize(width, height)
            return True
        logging.debug("(%s) ignoring %s request", self, kind)
        return False

    def resize(self, width: int, height: int) -> None:
        with self._lock:
            if self.terminal is None:
                self._pending_size = (width, height)
                return
            terminal = self.terminal
        terminal.resize(height, width)

    def send_to_client(self, data: bytes) -> None:
        if self.channel is None:
            logging.warning("(%s) no channel to send %d bytes to", self, len(data))
            return
        self.channel.sendall(data)

    def _pump_client_to_shell(self) -> None:
        self._register()
        reason = CloseReason.CLIENT_EOF
        try:
            while self.channel is not None and self.terminal is not None:
                data = self.channel.recv(self.BUF_LEN)
                if not data:
                    break
                if logging.getLogger().isEnabledFor(logging.DEBUG):
                    logging.debug("(%s) client input:\n%s", self, format_hex(data))
                try:
                    self.terminal.write(data)
                except (OSError, ValueError) as err:
                    logging.debug("(%s) write to pty failed: %s", self, err)
                    reason = CloseReason.SHELL_EOF
                    break
                self.interceptor.feed(data)
        except (OSError, EOFError, paramiko.SSHException) as err:
            logging.debug("(%s) error reading from channel: %s", self, err)
        finally:
            logging.debug("(%s) done reading from client", self)
            self.close(reason)

    def _pump_shell_to_client(self) -> None:
        self._register()
        try:
            while self.terminal is not None and not self.latch.fired:
                readable = select.select([self.terminal], [], [], self.SELECT_TIMEOUT)[0]
                if not readable:
                    continue
                data = self.terminal.read(self.BUF_LEN)
                if not data:
                    break
                if self.interceptor.enabled:
                    logging.debug("(%s) dropped %d bytes of shell output", self, len(data))
                    continue
                self.send_to_client(data)
        except (OSError, ValueError, EOFError, paramiko.SSHException) as err:
            logging.debug("(%s) error forwarding shell output: %s", self, err)
        finally:
            logging.debug("(%s) done reading from shell", self)
            self.close(CloseReason.SHELL_EOF)

    def close(self, reason: CloseReason = CloseReason.SHUTDOWN) -> bool:
        """
        Close the session unless it is already closed.

        :return: ``True`` if this call closed the session
        """
        return self.latch.fire(self._close, reason)

    def _close(self, reason: CloseReason) -> None:
        with self._lock:
            self.close_reason = reason
            if self.state == ChannelState.ACTIVE:
                self.state = ChannelState.CLOSING
        logging.debug("(%s) closing channel session: %s", self, reason.value)

        returncode: Optional[int] = None
        if self.terminal is not None:
            returncode = self.terminal.terminate()

        if self.channel is not None:
            if (
                reason == CloseReason.SHELL_EOF
                and returncode is not None
                and returncode >= 0
                and not self.channel.closed
            ):
                try:
                    self.channel.send_exit_status(returncode)
                except (OSError, EOFError, paramiko.SSHException) as err:
                    logging.debug("(%s) unable to send exit status: %s", self, err)
            self.channel.close()

        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join(self.JOIN_TIMEOUT)

        if self.terminal is not None:
            self.terminal.close()

        with self._lock:
            self.state = ChannelState.CLOSED
        self.interceptor.reset()
        if self.on_closed is not None:
            self.on_closed(self)
        self.closed_event.set()
        logging.info("%s (%s) session closed: %s", Colors.emoji("information"), self, reason.value)

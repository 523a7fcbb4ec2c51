"""
Pseudo terminal host.

A :class:`Terminal` owns one pseudo terminal and the shell process attached
to its slave side. The master side is read and written by the channel
session; :meth:`Terminal.resize` changes the window size the shell sees.
"""

import errno
import fcntl
import logging
import os
import signal
import struct
import subprocess  # nosec
import termios
from typing import Dict, List, Optional, Sequence, Tuple

from ssht.exceptions import TerminalError

WINSIZE = struct.Struct("HHHH")
MAX_WINSIZE = 0xFFFF


def shell_environment(base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """copy of the environment without the variables of an outer ssh session"""
    env = dict(os.environ if base is None else base)
    for env_var in [
        "SSH_ASKPASS",
        "SSH_AUTH_SOCK",
        "SSH_CLIENT",
        "SSH_CONNECTION",
        "SSH_ORIGINAL_COMMAND",
        "SSH_TTY",
    ]:
        if env.pop(env_var, None) is not None:
            logging.debug("removed %s from shell environment", env_var)
    env.setdefault("TERM", "xterm")
    return env


def _make_controlling_tty() -> None:
    # runs in the child between fork and exec, stdin is the pty slave
    os.setsid()
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class Terminal:
    """
    A shell running inside a pseudo terminal.

    :param command: program and arguments to start
    :param env: environment of the program, see :func:`shell_environment`
    """

    CLOSE_TIMEOUT = 2.0

    def __init__(
        self, command: Sequence[str], env: Optional[Dict[str, str]] = None
    ) -> None:
        self.command: List[str] = list(command)
        self.env = env if env is not None else shell_environment()
        self.master_fd: Optional[int] = None
        self.process: Optional[subprocess.Popen] = None  # type: ignore[type-arg]
        self.returncode: Optional[int] = None

    @classmethod
    def spawn(
        cls, command: Sequence[str], env: Optional[Dict[str, str]] = None
    ) -> "Terminal":
        """
        Allocate a pseudo terminal and start ``command`` attached to it.

        :raises TerminalError: if no pty is available or the command can not be executed
        """
        terminal = cls(command, env)
        terminal.start()
        return terminal

    def start(self) -> None:
        if self.process is not None:
            msg = f"terminal already started (pid {self.process.pid})"
            raise TerminalError(msg)
        try:
            master_fd, slave_fd = os.openpty()
        except OSError as err:
            msg = f"unable to allocate pty: {err}"
            raise TerminalError(msg) from err
        try:
            self.process = subprocess.Popen(  # nosec # pylint: disable=consider-using-with
                self.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                env=self.env,
                preexec_fn=_make_controlling_tty,  # pylint: disable=subprocess-popen-preexec-fn
                close_fds=True,
            )
        except (OSError, subprocess.SubprocessError) as err:
            os.close(master_fd)
            msg = f"unable to start {self.command[0]}: {err}"
            raise TerminalError(msg) from err
        finally:
            os.close(slave_fd)
        self.master_fd = master_fd
        logging.debug("started %s with pid %s in pty", self.command, self.process.pid)

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def closed(self) -> bool:
        return self.master_fd is None

    def fileno(self) -> int:
        if self.master_fd is None:
            raise ValueError("I/O operation on closed terminal")
        return self.master_fd

    def read(self, size: int) -> bytes:
        """
        Read shell output.

        :return: the data or ``b""`` once the slave side is gone
        """
        try:
            return os.read(self.fileno(), size)
        except OSError as err:
            # linux reports a hung up slave as EIO instead of eof
            if err.errno == errno.EIO:
                return b""
            raise

    def write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self.fileno(), view)
            view = view[written:]

    def resize(self, rows: int, cols: int) -> None:
        """Set the window size of the pty. Errors are logged and ignored."""
        rows = min(max(rows, 0), MAX_WINSIZE)
        cols = min(max(cols, 0), MAX_WINSIZE)
        try:
            fcntl.ioctl(self.fileno(), termios.TIOCSWINSZ, WINSIZE.pack(rows, cols, 0, 0))
        except (OSError, ValueError) as err:
            logging.warning("unable to resize pty to %sx%s: %s", cols, rows, err)
            return
        logging.debug("resized pty to %sx%s", cols, rows)

    def get_size(self) -> Tuple[int, int]:
        """:return: ``(rows, cols)``"""
        packed = fcntl.ioctl(self.fileno(), termios.TIOCGWINSZ, WINSIZE.pack(0, 0, 0, 0))
        rows, cols, _, _ = WINSIZE.unpack(packed)
        return rows, cols

    def poll(self) -> Optional[int]:
        if self.process is None:
            return None
        return self.process.poll()

    def terminate(self, timeout: Optional[float] = None) -> Optional[int]:
        """
        Hang up the shell and wait until it has exited.

        The process group gets SIGHUP first and SIGKILL if it is still
        running after ``timeout`` seconds.

        :return: exit code of the shell
        """
        if self.process is None:
            return None
        if self.returncode is not None:
            return self.returncode
        timeout = self.CLOSE_TIMEOUT if timeout is None else timeout
        if self.poll() is None:
            try:
                os.killpg(self.process.pid, signal.SIGHUP)
            except ProcessLookupError:
                pass
            try:
                self.process.wait(timeout)
            except subprocess.TimeoutExpired:
                logging.warning("shell %s ignored SIGHUP, killing it", self.process.pid)
                self.process.kill()
                self.process.wait()
        self.returncode = self.process.returncode
        if self.returncode:
            logging.info("shell %s exited with status %s", self.process.pid, self.returncode)
        return self.returncode

    def close(self) -> Optional[int]:
        """Terminate the shell and release the pty."""
        returncode = self.terminate()
        if self.master_fd is not None:
            try:
                os.close(self.master_fd)
            except OSError as err:
                logging.debug("error closing pty: %s", err)
            self.master_fd = None
        return returncode

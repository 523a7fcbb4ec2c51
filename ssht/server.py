import errno
import logging
import random
import select
import socket
import sys
import threading
from enum import Enum
from types import TracebackType
from typing import List, Optional, Tuple, Type, Union

from colored.colored import attr, fg  # type: ignore[import-untyped]
from paramiko import PKey
from rich import print as rich_print
from rich.console import Console

from ssht import project_metadata
from ssht.__version__ import version as ssht_version
from ssht.channel import ChannelSession
from ssht.config import ServerConfig
from ssht.exceptions import (
    InvalidPublicKey,
    ServerAlreadyClosedError,
    ServerAlreadyStartedError,
    ServerNotStartedError,
    ServerStartError,
)
from ssht.interceptor import FakeResponses, ResponseRule
from ssht.keys import SSHPubKey, generate_host_key, load_private_key
from ssht.listener import create_server_sock
from ssht.logger import Colors
from ssht.session import Session


class ServerStatus(Enum):
    NEW = "new"
    RUNNING = "running"
    CLOSED = "closed"


class ServerState:
    """
    Listener and liveness of a server.

    Only the accept loop of the server changes the state, callers read it
    through the properties.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listener: Optional[socket.socket] = None
        self._connected = False

    @property
    def listener(self) -> Optional[socket.socket]:
        with self._lock:
            return self._listener

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._connected

    def bind(self, listener: socket.socket) -> None:
        with self._lock:
            self._listener = listener
            self._connected = True

    def clear(self) -> Optional[socket.socket]:
        """forget the listener and return it"""
        with self._lock:
            listener = self._listener
            self._listener = None
            self._connected = False
        return listener


class SSHTestServer:  # pylint: disable=too-many-instance-attributes
    """
    An ssh server for tests which spawns a real shell for each session.

    .. code-block:: python

        with SSHTestServer(ServerConfig(allow_password_auth=True, username="joe", password="user")) as server:
            server.when_called_with("ls -lha", b"this is a test")
            ...  # connect to server.port

    :param config: server configuration, keyword arguments create or update it
    """

    SELECT_TIMEOUT = 0.2
    JOIN_TIMEOUT = 5.0
    PORT_RANGE = (1000, 9999)
    BIND_ATTEMPTS = 20

    def __init__(self, config: Optional[ServerConfig] = None, **options: object) -> None:
        if config is None:
            config = ServerConfig(**options)  # type: ignore[arg-type]
        elif options:
            config = config.replace(**options)
        self.config: ServerConfig = config
        self.state = ServerState()
        self.status = ServerStatus.NEW
        self.port: Optional[int] = config.port or None

        self.responses = FakeResponses()
        if config.command_match:
            self.responses.add(config.command_match, config.fake_response)

        self._random = random.Random()  # nosec
        self._hostkey: Optional[PKey] = None
        self._authorized_key: Optional[SSHPubKey] = None
        self._status_lock = threading.Lock()
        self._stop = threading.Event()
        self._accept_thread: Optional[threading.Thread] = None
        self._sessions: List[Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        """``True`` while the server accepts connections"""
        return self.state.connected

    @property
    def listener(self) -> Optional[socket.socket]:
        return self.state.listener

    @property
    def address(self) -> Tuple[str, int]:
        if self.port is None:
            raise ServerNotStartedError("server has no port before it is started")
        return self.config.host, self.port

    @property
    def host_key(self) -> PKey:
        if self._hostkey is None:
            self.load_keys()
        return self._hostkey  # type: ignore[return-value]

    @property
    def authorized_key(self) -> SSHPubKey:
        if self._authorized_key is None:
            self.load_keys()
        return self._authorized_key  # type: ignore[return-value]

    def load_keys(self) -> None:
        """
        Load or generate the host key and the key accepted for publickey authentication.

        :raises InvalidHostKey: if the configured private key can not be read
        :raises KeyGenerationError: if a temporary host key can not be generated
        :raises InvalidPublicKey: if the configured public key can not be read
        """
        if self._hostkey is None:
            if self.config.private_key:
                self._hostkey = load_private_key(self.config.private_key)
            else:
                self._hostkey = generate_host_key(
                    self.config.host_key_algorithm, self.config.host_key_length
                )
        if self._authorized_key is None:
            if self.config.public_key:
                try:
                    self._authorized_key = SSHPubKey.from_ssh_line(self.config.public_key)
                except ValueError as err:
                    raise InvalidPublicKey(str(err)) from err
            else:
                self._authorized_key = SSHPubKey.from_pkey(self._hostkey)

    def when_called_with(self, command: str, response: Union[bytes, str]) -> ResponseRule:
        """
        Answer ``command`` with ``response`` instead of the shell output.

        Rules apply to running sessions as well.
        """
        if isinstance(response, str):
            response = response.encode("utf-8")
        return self.responses.add(command, response)

    def command_call_count(self, command: str) -> int:
        """how often a fake response was sent for ``command``"""
        return self.responses.call_count(command)

    def sessions(self) -> List[Session]:
        with self._sessions_lock:
            return list(self._sessions)

    def channel_sessions(self) -> List[ChannelSession]:
        return [
            channel_session
            for session in self.sessions()
            for channel_session in session.channel_sessions()
        ]

    def start(self) -> None:
        """
        Bind the listener and accept connections in a background thread.

        :raises ServerAlreadyStartedError: if the server is running
        :raises ServerAlreadyClosedError: if the server was closed
        :raises ServerStartError: if the port can not be bound
        """
        with self._status_lock:
            if self.status == ServerStatus.RUNNING:
                raise ServerAlreadyStartedError(f"server already listening on port {self.port}")
            if self.status == ServerStatus.CLOSED:
                raise ServerAlreadyClosedError("a closed server can not be restarted")
            self.load_keys()
            listener = self._bind()
            self.state.bind(listener)
            self.status = ServerStatus.RUNNING

        logging.info(
            "%s listening on %s:%s...",
            Colors.emoji("computer"),
            self.config.host,
            Colors.stylize(self.port, fg("light_blue") + attr("bold")),
        )
        self._accept_thread = threading.Thread(
            target=self._accept_loop,
            args=(listener,),
            name=f"ssht-accept-{self.port}",
            daemon=True,
        )
        self._accept_thread.start()

    def _bind(self) -> socket.socket:
        if not self.config.random_port:
            try:
                return create_server_sock((self.config.host, self.port))  # type: ignore[arg-type]
            except OSError as err:
                msg = f"failed to listen on {self.port} ({err})"
                logging.error(msg)
                raise ServerStartError(msg) from err

        for _ in range(self.BIND_ATTEMPTS):
            port = self._random.randrange(*self.PORT_RANGE)
            try:
                sock = create_server_sock((self.config.host, port))
            except OSError as err:
                if err.errno in (errno.EADDRINUSE, errno.EACCES):
                    logging.debug("port %s not available (%s)", port, err)
                    continue
                msg = f"failed to listen on {port} ({err})"
                logging.error(msg)
                raise ServerStartError(msg) from err
            self.port = port
            return sock
        msg = f"no free port found after {self.BIND_ATTEMPTS} attempts"
        logging.error(msg)
        raise ServerStartError(msg)

    def _accept_loop(self, listener: socket.socket) -> None:
        try:
            while not self._stop.is_set():
                readable = select.select([listener], [], [], self.SELECT_TIMEOUT)[0]
                if not readable:
                    continue
                client, addr = listener.accept()
                thread = threading.Thread(
                    target=self.create_session, args=(client, addr), daemon=True
                )
                thread.start()
        except (OSError, ValueError) as err:
            if not self._stop.is_set():
                logging.error("failed to accept incoming connection (%s)", err)
        finally:
            listener = self.state.clear() or listener
            listener.close()
            logging.debug("accept loop on port %s stopped", self.port)

    def create_session(
        self,
        client: socket.socket,
        addr: Union[Tuple[str, int], Tuple[str, int, int, int]],
    ) -> None:
        try:
            with Session(self, client, addr) as session:
                logging.debug("incoming connection from %s", addr)
                with self._sessions_lock:
                    self._sessions.append(session)
                try:
                    if session.start():
                        session.serve()
                    else:
                        logging.warning("(%s) session not started", session)
                finally:
                    with self._sessions_lock:
                        self._sessions.remove(session)
        except Exception:  # pylint: disable=broad-exception-caught
            logging.exception("error handling session creation")

    def close(self) -> None:
        """
        Stop accepting connections, release the listener and close open sessions.

        :raises ServerNotStartedError: if the server was never started
        :raises ServerAlreadyClosedError: if the server is already closed
        """
        with self._status_lock:
            if self.status == ServerStatus.NEW:
                raise ServerNotStartedError("server was not started")
            if self.status == ServerStatus.CLOSED:
                raise ServerAlreadyClosedError(f"server on port {self.port} already closed")
            self.status = ServerStatus.CLOSED

        self._stop.set()
        if self._accept_thread is not None:
            self._accept_thread.join(self.JOIN_TIMEOUT)
        for session in self.sessions():
            session.close()
        logging.info(
            "%s %s",
            Colors.emoji("exclamation"),
            Colors.stylize(f"server on port {self.port} closed", fg("red")),
        )

    def print_serverinfo(self, json_log: bool = False) -> None:
        host_key = SSHPubKey.from_pkey(self.host_key)
        log_data = {
            "keygeneration": "loaded" if self.config.private_key else "generated temporary",
            "algorithm": host_key.get_name(),
            "bits": host_key.get_bits(),
            "md5": Colors.stylize(host_key.hash_md5(), fg("light_blue") + attr("bold")),
            "sha256": Colors.stylize(host_key.hash_sha256(), fg("light_blue") + attr("bold")),
            "listen_address": self.config.host,
            "listen_port": self.port,
            "password_auth": self.config.allow_password_auth,
            "publickey_auth": self.config.allow_key_auth,
            "fake_responses": [rule.command for rule in self.responses.rules()],
        }

        if json_log or not sys.stdout.isatty():
            logging.info("ssht server info", extra={"serverinfo": log_data})
            return

        console = Console()
        console.rule(
            f"[bold blue]{project_metadata.PROJECT_NAME} {ssht_version} - {project_metadata.PROJECT_SLOGAN}",
            style="blue",
        )
        rich_print("[bold blue]:key: SSH-Host-Keys:")
        print(
            (
                "   {keygeneration} {algorithm} key with {bits} bit length\n"  # pylint: disable=consider-using-f-string
                "   {md5}\n"
                "   {sha256}"
            ).format(**log_data)
        )
        console.rule(characters=".", style="bright_black")
        rich_print(f"[bold]password authentication:[/bold] {log_data['password_auth']}")
        rich_print(f"[bold]publickey authentication:[/bold] {log_data['publickey_auth']}")
        for command in log_data["fake_responses"]:  # type: ignore[attr-defined]
            rich_print(f"[bold]fake response for:[/bold] {command}")
        console.rule(characters=".", style="bright_black")
        print(
            "{servericon} listen interface {listen_address} on port {listen_port}".format(  # pylint: disable=consider-using-f-string
                **log_data, servericon=Colors.emoji("computer")
            )
        )
        console.rule("[red]waiting for connections", style="red")

    def __enter__(self) -> "SSHTestServer":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        del exc_type
        del exc_value
        del traceback
        if self.status == ServerStatus.RUNNING:
            self.close()


def start_ssh_server(config: ServerConfig) -> SSHTestServer:
    """
    Start a server and return it, the bound socket is available as ``server.listener``.
    """
    server = SSHTestServer(config)
    server.start()
    return server

"""Session Class

A :class:`Session` handles one client connection: it runs the ssh handshake
on a paramiko :class:`~paramiko.Transport` and activates a
:class:`~ssht.channel.ChannelSession` for every accepted session channel.

.. code-block:: python

    try:
        with Session(server, client, addr) as session:
            if session.start():
                session.serve()
            else:
                logging.warning("(%s) session not started", session)
    except Exception:
        logging.exception("error handling session creation")
"""

import logging
import socket
import threading
from types import TracebackType
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Type, Union
from uuid import uuid4

import paramiko
from colored.colored import attr, fg  # type: ignore[import-untyped]
from paramiko import Transport

from ssht.channel import ChannelSession, CloseReason
from ssht.interfaces.server import ServerInterface
from ssht.logger import THREAD_DATA, Colors

if TYPE_CHECKING:
    from ssht.server import SSHTestServer


class Session:
    """Connection handler which stores the channel sessions of one client.

    :param server: the server which accepted the connection
    :param client_socket: the accepted socket
    :param client_address: address of the client
    """

    ACCEPT_TIMEOUT = 0.5

    def __init__(
        self,
        server: "SSHTestServer",
        client_socket: socket.socket,
        client_address: Union[Tuple[str, int], Tuple[str, int, int, int]],
    ) -> None:
        self.sessionid = uuid4()
        self.register_session_thread()
        logging.info(
            "%s session %s created",
            Colors.emoji("information"),
            Colors.stylize(self.sessionid, fg("light_blue") + attr("bold")),
        )
        self.server = server
        self.client_socket = client_socket
        self.client_address = client_address
        self.name = f"{client_address[0]}:{client_address[1]}"
        self.closed = False

        self._transport: Optional[paramiko.Transport] = None
        self._channels: Dict[int, ChannelSession] = {}
        self._lock = threading.Lock()

    def register_session_thread(self) -> None:
        THREAD_DATA.session = self

    @property
    def transport(self) -> paramiko.Transport:
        if self._transport is None:
            self._transport = Transport(self.client_socket)
            if self.server.config.banner_name:
                self._transport.local_version = f"SSH-2.0-{self.server.config.banner_name}"
            self._transport.add_server_key(self.server.host_key)
        return self._transport

    @property
    def running(self) -> bool:
        return not self.closed and self.transport.is_active()

    def open_channel(self, chanid: int) -> ChannelSession:
        """Create the channel session for a channel the client is opening."""
        channel_session = ChannelSession(
            chanid,
            self.server.config.shell,
            self.server.responses,
            session=self,
            on_closed=self.release_channel,
        )
        with self._lock:
            self._channels[chanid] = channel_session
        return channel_session

    def get_channel(self, chanid: int) -> Optional[ChannelSession]:
        with self._lock:
            return self._channels.get(chanid)

    def release_channel(self, channel_session: ChannelSession) -> None:
        """Forget a closed channel session, channel ids are reused by the client."""
        with self._lock:
            if self._channels.get(channel_session.chanid) is channel_session:
                del self._channels[channel_session.chanid]

    def channel_sessions(self) -> List[ChannelSession]:
        with self._lock:
            return list(self._channels.values())

    def start(self) -> bool:
        """
        Run the key exchange.

        :return: ``False`` if the handshake failed
        """
        self.register_session_thread()
        try:
            self.transport.start_server(server=ServerInterface(self))
        except (paramiko.SSHException, EOFError, OSError) as err:
            logging.warning("(%s) failed to handshake (%s)", self, err)
            return False
        logging.info(
            "%s new ssh connection from %s (%s)",
            Colors.emoji("information"),
            self.name,
            self.transport.remote_version,
        )
        return True

    def serve(self) -> None:
        """Activate accepted channels until the connection ends."""
        while self.running:
            channel = self.transport.accept(self.ACCEPT_TIMEOUT)
            if channel is None:
                continue
            channel_session = self.get_channel(channel.get_id())
            if channel_session is None:
                logging.error("(%s) accepted channel %s without session", self, channel.get_id())
                channel.close()
                continue
            channel_session.activate(channel)

    def close(self) -> None:
        """
        Close all channel sessions and the transport.
        """
        with self._lock:
            if self.closed:
                return
            self.closed = True
            channel_sessions = list(self._channels.values())
        for channel_session in channel_sessions:
            channel_session.close(CloseReason.SHUTDOWN)
        if self._transport is not None:
            self._transport.close()
        else:
            self.client_socket.close()
        logging.info(
            "%s session %s closed",
            Colors.emoji("information"),
            Colors.stylize(self.sessionid, fg("light_blue") + attr("bold")),
        )

    def __str__(self) -> str:
        return self.name

    def __enter__(self) -> "Session":
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
        logging.debug("(%s) session exited", self)
        self.close()

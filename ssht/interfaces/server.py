import logging
from typing import TYPE_CHECKING, List, Tuple, Union

import paramiko
from colored.colored import attr, fg  # type: ignore[import-untyped]
from paramiko.pkey import PKey

from ssht.logger import Colors
from ssht.wire import pty_request_payload, window_change_payload

if TYPE_CHECKING:
    from ssht.config import ServerConfig
    from ssht.session import Session


class ServerInterface(paramiko.ServerInterface):  # pylint: disable=too-many-public-methods
    """
    paramiko callbacks of a fake ssh server.

    Authentication is checked against the server configuration. Channel
    requests are handed to the :class:`~ssht.channel.ChannelSession` of the
    channel, which parses the request payload itself.
    """

    def __init__(self, session: "Session") -> None:
        super().__init__()
        self.session = session
        self.session.register_session_thread()

    @property
    def config(self) -> "ServerConfig":
        return self.session.server.config

    def get_allowed_auths(self, username: str) -> str:
        logging.debug("get_allowed_auths: username=%s", username)
        methods: List[str] = []
        if self.config.allow_password_auth:
            methods.append("password")
        if self.config.allow_key_auth:
            methods.append("publickey")
        return ",".join(methods) or "none"

    def check_auth_none(self, username: str) -> int:
        logging.debug("check_auth_none: username=%s", username)
        return paramiko.common.AUTH_FAILED

    def check_auth_password(self, username: str, password: str) -> int:
        logging.debug("check_auth_password: username=%s", username)
        if not self.config.allow_password_auth:
            logging.warning("password login attempt, but password auth is disabled!")
            return paramiko.common.AUTH_FAILED
        # plain comparison, this server is a test double
        if username == self.config.username and password == self.config.password:
            logging.info(
                "%s password authentication successful for %s",
                Colors.emoji("key"),
                Colors.stylize(username, fg("light_blue") + attr("bold")),
            )
            return paramiko.common.AUTH_SUCCESSFUL
        logging.warning("password rejected for %r", username)
        return paramiko.common.AUTH_FAILED

    def check_auth_publickey(self, username: str, key: PKey) -> int:
        logging.debug(
            "check_auth_publickey: username=%s, key=%s %s %sbits",
            username,
            key.get_name(),
            key.fingerprint,
            key.get_bits(),
        )
        if not self.config.allow_key_auth:
            return paramiko.common.AUTH_FAILED
        if self.session.server.authorized_key.matches(key):
            logging.info(
                "%s publickey authentication successful for %s",
                Colors.emoji("key"),
                Colors.stylize(username, fg("light_blue") + attr("bold")),
            )
            return paramiko.common.AUTH_SUCCESSFUL
        logging.warning("invalid key offered by %r: %s", username, key.fingerprint)
        return paramiko.common.AUTH_FAILED

    def check_channel_request(self, kind: str, chanid: int) -> int:
        logging.debug("check_channel_request: kind=%s , chanid=%s", kind, chanid)
        if kind != "session":
            logging.warning("unknown channel type: %s", kind)
            return paramiko.common.OPEN_FAILED_UNKNOWN_CHANNEL_TYPE
        self.session.open_channel(chanid)
        return paramiko.common.OPEN_SUCCEEDED

    def check_channel_direct_tcpip_request(
        self, chanid: int, origin: Tuple[str, int], destination: Tuple[str, int]
    ) -> int:
        logging.warning(
            "unknown channel type: direct-tcpip (chanid=%s, origin=%s, destination=%s)",
            chanid,
            origin,
            destination,
        )
        return paramiko.common.OPEN_FAILED_UNKNOWN_CHANNEL_TYPE

    def _dispatch(self, channel: paramiko.Channel, kind: str, payload: bytes) -> bool:
        channel_session = self.session.get_channel(channel.get_id())
        if channel_session is None:
            logging.error("%s request for unknown channel %s", kind, channel.get_id())
            return False
        return channel_session.handle_request(kind, payload)

    def check_channel_shell_request(self, channel: paramiko.Channel) -> bool:
        logging.debug("check_channel_shell_request: channel=%s", channel)
        return self._dispatch(channel, "shell", b"")

    def check_channel_exec_request(self, channel: paramiko.Channel, command: bytes) -> bool:
        logging.debug("check_channel_exec_request: channel=%s, command=%s", channel, command)
        return self._dispatch(channel, "exec", command)

    def check_channel_subsystem_request(self, channel: paramiko.Channel, name: str) -> bool:
        logging.debug("check_channel_subsystem_request: channel=%s, name=%s", channel, name)
        return self._dispatch(channel, "subsystem", name.encode("utf-8"))

    def check_channel_pty_request(  # pylint: disable=too-many-arguments
        self,
        channel: paramiko.Channel,
        term: bytes,
        width: int,
        height: int,
        pixelwidth: int,
        pixelheight: int,
        modes: bytes,
    ) -> bool:
        logging.debug(
            "check_channel_pty_request: channel=%s, term=%s, width=%s, height=%s, pixelwidth=%s, pixelheight=%s",
            channel,
            term,
            width,
            height,
            pixelwidth,
            pixelheight,
        )
        # paramiko has unpacked the request already
        payload = pty_request_payload(term, width, height, pixelwidth, pixelheight, modes)
        return self._dispatch(channel, "pty-req", payload)

    def check_channel_window_change_request(  # pylint: disable=too-many-arguments
        self,
        channel: paramiko.Channel,
        width: int,
        height: int,
        pixelwidth: int,
        pixelheight: int,
    ) -> bool:
        logging.debug(
            "check_channel_window_change_request: channel=%s, width=%s, height=%s",
            channel,
            width,
            height,
        )
        payload = window_change_payload(width, height, pixelwidth, pixelheight)
        return self._dispatch(channel, "window-change", payload)

    def check_channel_env_request(
        self, channel: paramiko.Channel, name: bytes, value: bytes
    ) -> bool:
        logging.debug("check_channel_env_request: channel=%s, name=%s", channel, name)
        return False

    def check_channel_forward_agent_request(self, channel: paramiko.Channel) -> bool:
        logging.debug("check_channel_forward_agent_request: channel=%s", channel)
        return False

    def check_channel_x11_request(  # pylint: disable=too-many-arguments
        self,
        channel: paramiko.Channel,
        single_connection: bool,
        auth_protocol: str,
        auth_cookie: Union[bytes, bytearray],
        screen_number: int,
    ) -> bool:
        logging.debug("check_channel_x11_request: channel=%s", channel)
        return False

    def check_port_forward_request(self, address: str, port: int) -> Union[int, bool]:
        logging.debug("check_port_forward_request: address=%s, port=%s", address, port)
        return False

    def check_global_request(
        self, kind: str, msg: paramiko.message.Message
    ) -> Union[bool, Tuple[Union[bool, int, str], ...]]:
        logging.debug("discarding global request: kind=%s", kind)
        return False

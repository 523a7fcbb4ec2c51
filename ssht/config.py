"""
Server configuration.

:class:`ServerConfig` is the immutable configuration a test server is started
with. ``CONFIGFILE`` holds the ini based defaults used by the command line
interface: the packaged ``data/default.ini`` is read first, followed by the
first existing file of :data:`ssht.project_metadata.CONFIGFILE_PATH_LIST` and
finally the file named by the ``SSHT_CONFIG`` environment variable.
"""

import dataclasses
import os
from configparser import ConfigParser
from typing import Optional, Tuple

from ssht import project_metadata
from ssht.utils import resources

DEFAULT_SHELL: Tuple[str, ...] = ("bash",)

CONFIGFILE = ConfigParser()

conf = resources.files(project_metadata.MODULE_NAME) / project_metadata.MODULE_CONFIG_PATH
CONFIGFILE.read_string(conf.read_text())

for configpath in project_metadata.CONFIGFILE_PATH_LIST:
    if os.path.isfile(configpath):
        CONFIGFILE.read(configpath)
        break

ssht_config_env = os.environ.get(project_metadata.CONFIG_ENV_VAR_NAME)
if ssht_config_env and os.path.isfile(ssht_config_env):
    CONFIGFILE.read(ssht_config_env)


@dataclasses.dataclass(frozen=True)
class ServerConfig:  # pylint: disable=too-many-instance-attributes
    """Settings of a fake ssh server.

    :param port: listen port, ``None`` or ``0`` picks a random port between 1000 and 9999
    :param host: listen address
    :param allow_key_auth: enable publickey authentication
    :param private_key: host key as PEM text, a temporary key is generated if empty
    :param public_key: OpenSSH public key line accepted for publickey authentication,
        defaults to the public part of the host key
    :param allow_password_auth: enable password authentication
    :param username: user accepted by password authentication
    :param password: password accepted by password authentication
    :param fake_response: bytes sent to the client when ``command_match`` was typed
    :param command_match: substring of the client input which triggers ``fake_response``
    :param shell: command started inside the pseudo terminal of each session
    :param host_key_algorithm: algorithm of a generated host key (``rsa`` or ``ecdsa``)
    :param host_key_length: bit length of a generated rsa host key
    :param banner_name: software version announced in the ssh identification string
    """

    port: Optional[int] = None
    host: str = "0.0.0.0"  # nosec
    allow_key_auth: bool = False
    private_key: Optional[str] = None
    public_key: Optional[str] = None
    allow_password_auth: bool = False
    username: str = ""
    password: str = ""
    fake_response: bytes = b""
    command_match: str = ""
    shell: Tuple[str, ...] = DEFAULT_SHELL
    host_key_algorithm: str = "rsa"
    host_key_length: int = 2048
    banner_name: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.fake_response, str):
            object.__setattr__(self, "fake_response", self.fake_response.encode("utf-8"))
        if isinstance(self.shell, str):
            object.__setattr__(self, "shell", (self.shell,))
        else:
            object.__setattr__(self, "shell", tuple(self.shell))
        if not self.shell:
            msg = "shell command must not be empty"
            raise ValueError(msg)
        if self.host_key_algorithm not in ("rsa", "ecdsa"):
            msg = f"host key algorithm '{self.host_key_algorithm}' not supported!"
            raise ValueError(msg)

    @property
    def random_port(self) -> bool:
        return not self.port

    def replace(self, **changes: object) -> "ServerConfig":
        return dataclasses.replace(self, **changes)

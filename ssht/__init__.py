from ssht.__version__ import version as __version__
from ssht.config import ServerConfig
from ssht.server import SSHTestServer, start_ssh_server

__all__ = [
    "SSHTestServer",
    "ServerConfig",
    "start_ssh_server",
    "__version__",
]

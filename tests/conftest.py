from typing import Callable, Iterator, List

import paramiko
import pytest

from helpers import connect
from ssht.server import ServerStatus, SSHTestServer


@pytest.fixture(scope="session")
def client_key() -> paramiko.PKey:
    return paramiko.ECDSAKey.generate()


@pytest.fixture
def make_server() -> Iterator[Callable[..., SSHTestServer]]:
    servers: List[SSHTestServer] = []

    def factory(**options: object) -> SSHTestServer:
        options.setdefault("host", "127.0.0.1")
        options.setdefault("host_key_algorithm", "ecdsa")
        options.setdefault("shell", ("sh",))
        server = SSHTestServer(**options)
        server.start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        if server.status == ServerStatus.RUNNING:
            server.close()


@pytest.fixture
def password_server(make_server: Callable[..., SSHTestServer]) -> SSHTestServer:
    return make_server(allow_password_auth=True, username="joe", password="user")


@pytest.fixture
def ssh_client() -> Iterator[Callable[..., paramiko.SSHClient]]:
    clients: List[paramiko.SSHClient] = []

    def factory(server: SSHTestServer, **kwargs: object) -> paramiko.SSHClient:
        client = connect(server, **kwargs)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()

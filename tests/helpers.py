import os
import select
import shutil
import time
from typing import Callable

import paramiko
import pytest

from ssht.server import SSHTestServer

posix_only = pytest.mark.skipif(
    os.name != "posix" or shutil.which("sh") is None,
    reason="needs a POSIX system with sh",
)


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def recv_until(channel: paramiko.Channel, expected: bytes, timeout: float = 5.0) -> bytes:
    """read from a client channel until ``expected`` was received"""
    data = b""
    deadline = time.monotonic() + timeout
    while expected not in data and time.monotonic() < deadline:
        if not select.select([channel], [], [], 0.1)[0]:
            continue
        chunk = channel.recv(4096)
        if not chunk:
            break
        data += chunk
    return data


def connect(server: SSHTestServer, **kwargs: object) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    kwargs.setdefault("username", "joe")
    client.connect(
        "127.0.0.1",
        port=server.port,
        look_for_keys=False,
        allow_agent=False,
        timeout=5,
        banner_timeout=5,
        auth_timeout=5,
        **kwargs,  # type: ignore[arg-type]
    )
    return client

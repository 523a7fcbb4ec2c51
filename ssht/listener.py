"""
Listening socket creation.

Based on the ``create_server_sock`` recipe by Giampaolo Rodola'
(https://code.activestate.com/recipes/578504-server-supporting-ipv4-and-ipv6/),
reduced to a single address family per socket.
"""

import os
import socket
import sys
from typing import Optional, Tuple


def create_server_sock(
    address: Tuple[str, int],
    reuse_addr: Optional[bool] = None,
    queue_size: int = 5,
) -> socket.socket:
    """Create a TCP server socket bound to *address* and listening.

    *address* is a ``(host, port)`` tuple. An empty host or ``0.0.0.0``
    listens on all IPv4 interfaces, ``::`` on all IPv6 interfaces.

    *reuse_addr* tells the kernel to reuse a local socket in TIME_WAIT
    state. If not set it defaults to True on POSIX.

    :raises OSError: if no address could be bound
    """
    host: Optional[str]
    host, port = address
    if host in ("", None):
        host = "0.0.0.0"  # nosec
    if reuse_addr is None:
        reuse_addr = os.name == "posix" and sys.platform != "cygwin"
    err: Optional[OSError] = None
    info = socket.getaddrinfo(
        host, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
    )
    # prefer IPv4 when a name resolves to both families
    info.sort(key=lambda x: x[0] == socket.AF_INET, reverse=True)
    for res_address_family, socktype, proto, _, res_socket_address in info:
        sock = None
        try:
            sock = socket.socket(res_address_family, socktype, proto)
            if reuse_addr:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(res_socket_address)
            sock.listen(queue_size)
            return sock
        except OSError as _:
            err = _
            if sock is not None:
                sock.close()
    if err is not None:
        raise err
    raise OSError("getaddrinfo returns an empty list")

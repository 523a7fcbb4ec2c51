"""
Parsers for the channel request payloads that change the terminal size.

``pty-req``::

    uint32  length of terminal name
    bytes   terminal name (TERM)
    uint32  terminal width, characters
    uint32  terminal height, rows
    ...     pixel sizes and encoded terminal modes

``window-change``::

    uint32  terminal width, characters
    uint32  terminal height, rows
    ...     pixel sizes

All integers are big endian.
"""

import struct
from typing import Tuple

from paramiko.message import Message

from ssht.exceptions import MalformedRequestError

UINT32 = struct.Struct(">I")
DIMENSIONS = struct.Struct(">II")


def parse_dims(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Read width and height from ``data`` starting at ``offset``.

    :return: ``(width, height)``
    :raises MalformedRequestError: if fewer than 8 bytes are available
    """
    if len(data) - offset < DIMENSIONS.size:
        msg = f"expected {DIMENSIONS.size} bytes of terminal dimensions at offset {offset}, got {max(len(data) - offset, 0)}"
        raise MalformedRequestError(msg)
    width, height = DIMENSIONS.unpack_from(data, offset)
    return width, height


def parse_pty_request(payload: bytes) -> Tuple[bytes, int, int]:
    """
    Read terminal name, width and height of a ``pty-req`` payload.

    :return: ``(term, width, height)``
    :raises MalformedRequestError: if the payload is truncated
    """
    if len(payload) < UINT32.size:
        raise MalformedRequestError("pty-req payload too short for terminal name length")
    (term_len,) = UINT32.unpack_from(payload)
    term_end = UINT32.size + term_len
    if len(payload) < term_end:
        msg = f"pty-req terminal name truncated ({term_len} bytes announced)"
        raise MalformedRequestError(msg)
    width, height = parse_dims(payload, term_end)
    return payload[UINT32.size:term_end], width, height


def parse_window_change(payload: bytes) -> Tuple[int, int]:
    return parse_dims(payload)


def pty_request_payload(  # pylint: disable=too-many-arguments
    term: bytes,
    width: int,
    height: int,
    pixelwidth: int = 0,
    pixelheight: int = 0,
    modes: bytes = b"",
) -> bytes:
    """Encode the fields of a ``pty-req`` the way a client puts them on the wire."""
    msg = Message()
    msg.add_string(term)
    msg.add_int(width)
    msg.add_int(height)
    msg.add_int(pixelwidth)
    msg.add_int(pixelheight)
    msg.add_string(modes)
    return msg.asbytes()


def window_change_payload(
    width: int, height: int, pixelwidth: int = 0, pixelheight: int = 0
) -> bytes:
    msg = Message()
    msg.add_int(width)
    msg.add_int(height)
    msg.add_int(pixelwidth)
    msg.add_int(pixelheight)
    return msg.asbytes()

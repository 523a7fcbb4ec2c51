"""
Host key and client key handling.

The host key is loaded from PEM text or generated on the fly. Public keys for
publickey authentication are given as OpenSSH lines and compared by their
wire encoding.
"""

import base64
import hashlib
import io
import logging
from typing import Optional, Tuple, Type

from paramiko import ECDSAKey, Ed25519Key, PKey, RSAKey
from paramiko.ssh_exception import SSHException

from ssht.exceptions import InvalidHostKey, KeyGenerationError

PRIVATE_KEY_CLASSES: Tuple[Type[PKey], ...] = (RSAKey, ECDSAKey, Ed25519Key)


class SSHPubKey:

    def __init__(self, key: PKey, comment: Optional[str] = None) -> None:
        self.key = key
        self.comment = comment

    @classmethod
    def from_ssh_line(cls, line: str) -> "SSHPubKey":
        """Loads a public SSH key from a line in the format '<type> <base64> [comment]'"""
        line = line.strip()
        if not line or line.startswith("#"):
            err_msg = "Empty or commented line cannot be loaded"
            raise ValueError(err_msg)

        parts = line.split(None, 2)
        if len(parts) < 2:
            err_msg = f"invalid public key line: {line}"
            raise ValueError(err_msg)

        key_type, key_data = parts[0], parts[1]
        comment: Optional[str] = parts[2] if len(parts) == 3 else None
        try:
            key_bytes = base64.b64decode(key_data)
        except ValueError as err:
            err_msg = f"invalid base64 data in public key: {key_data}"
            raise ValueError(err_msg) from err

        key_obj: PKey
        try:
            if key_type == "ssh-rsa":
                key_obj = RSAKey(data=key_bytes)
            elif key_type.startswith("ecdsa-sha2-"):
                key_obj = ECDSAKey(data=key_bytes)
            elif key_type == "ssh-ed25519":
                key_obj = Ed25519Key(data=key_bytes)
            else:
                err_msg = f"unknown key type: {key_type}"
                raise ValueError(err_msg)
        except SSHException as err:
            err_msg = f"unable to parse {key_type} public key"
            raise ValueError(err_msg) from err

        return cls(key_obj, comment)

    @classmethod
    def from_pkey(cls, key: PKey) -> "SSHPubKey":
        return cls(key)

    def matches(self, other: PKey) -> bool:
        return self.key.asbytes() == other.asbytes()

    def hash_md5(self) -> str:
        """Calculate md5 fingerprint.

        For specification, see RFC4716, section 4."""
        fp_plain = hashlib.md5(self.key.asbytes(), usedforsecurity=False).hexdigest()
        return "MD5:" + ":".join(a + b for a, b in zip(fp_plain[::2], fp_plain[1::2]))

    def hash_sha256(self) -> str:
        """Calculate sha256 fingerprint."""
        fp_plain = hashlib.sha256(self.key.asbytes()).digest()
        return (b"SHA256:" + base64.b64encode(fp_plain).replace(b"=", b"")).decode(
            "utf-8"
        )

    def get_name(self) -> str:
        return self.key.get_name()

    def get_bits(self) -> int:
        return self.key.get_bits()

    def get_base64(self) -> str:
        return self.key.get_base64()

    def to_ssh_line(self) -> str:
        line = f"{self.get_name()} {self.get_base64()}"
        if self.comment:
            line = f"{line} {self.comment}"
        return line


def load_private_key(key_material: str) -> PKey:
    """
    Load a private key from PEM or OpenSSH formatted text.

    :param key_material: the private key as text
    :return: the loaded key
    :raises InvalidHostKey: if none of the supported key types can read the text
    """
    for pkey_class in PRIVATE_KEY_CLASSES:
        try:
            return pkey_class.from_private_key(io.StringIO(key_material))
        except (SSHException, ValueError):
            logging.debug("private key is not a %s", pkey_class.__name__)
    msg = "host key format not supported!"
    raise InvalidHostKey(msg)


def generate_host_key(algorithm: str = "rsa", bits: int = 2048) -> PKey:
    """
    Generate a temporary host key.

    :param algorithm: ``rsa`` or ``ecdsa``
    :param bits: key length for rsa keys
    :raises KeyGenerationError: if the key could not be generated
    """
    try:
        if algorithm == "rsa":
            return RSAKey.generate(bits=bits)
        if algorithm == "ecdsa":
            return ECDSAKey.generate()
    except ValueError as err:
        logging.error(str(err))
        raise KeyGenerationError(str(err)) from err
    msg = f"host key algorithm '{algorithm}' not supported!"
    raise KeyGenerationError(msg)


def private_key_to_text(key: PKey) -> str:
    buffer = io.StringIO()
    key.write_private_key(buffer)
    return buffer.getvalue()

"""
Command line interface of ssht.

``ssht`` starts a fake ssh server in the foreground, which is useful to try
out interception rules with a regular ssh client before using them in tests.
Option defaults are read from the ``[SSHT]`` and ``[SSHT-Server]`` sections of
the config files, see :mod:`ssht.config`.
"""

import argparse
import logging
import os
import shlex
import sys
import threading
from typing import List, Optional

from ssht import project_metadata
from ssht.__version__ import version as ssht_version
from ssht.argparser import ConfigArgumentParser
from ssht.config import CONFIGFILE, ServerConfig
from ssht.exceptions import (
    InvalidHostKey,
    InvalidPublicKey,
    KeyGenerationError,
    ServerStartError,
)
from ssht.logger import set_paramiko_log_level, setup_logging
from ssht.monkeypatch import patch_thread
from ssht.server import SSHTestServer


def read_key_file(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    with open(os.path.expanduser(path), "r", encoding="utf-8") as key_file:
        return key_file.read()


def build_parser() -> ConfigArgumentParser:
    parser = ConfigArgumentParser(
        config=CONFIGFILE,
        prog=project_metadata.COMMAND_NAME,
        description=project_metadata.PROJECT_SLOGAN,
        allow_abbrev=False,
        config_section="SSHT",
    )
    parser_group = parser.add_argument_group(
        "SSHT", description="global options for ssht"
    )
    parser_group.add_argument(
        "-V", "--version", action="version", version=f"{project_metadata.PROJECT_NAME} {ssht_version}"
    )
    parser_group.add_argument(
        "-d",
        "--debug",
        dest="debug",
        action="store_true",
        help="More verbose output of status information",
    )
    parser_group.add_argument(
        "--log-format",
        dest="log_format",
        choices=["text", "json"],
        help="defines the log output format (json will suppress stdout)",
    )
    parser_group.add_argument(
        "--paramiko-log-level",
        dest="paramiko_log_level",
        choices=["warning", "info", "debug"],
        help="set paramikos log level",
    )
    parser_group.add_argument(
        "--disable-workarounds",
        dest="disable_workarounds",
        action="store_true",
        help="disable paramiko workarounds",
    )
    parser_group.add_argument(
        "--config",
        dest="config_path",
        help="additional config file, read after the default config files",
    )

    server_group = parser.add_argument_group(
        "Server", description="options of the fake ssh server", config_section="SSHT-Server"
    )
    server_group.add_argument(
        "--listen-address",
        dest="listen_address",
        help="listen address",
    )
    server_group.add_argument(
        "--listen-port",
        dest="listen_port",
        type=int,
        help="listen port, a random port is used if not set",
    )
    server_group.add_argument(
        "--host-key",
        dest="host_key",
        help="host key file, a temporary key is generated if not set",
    )
    server_group.add_argument(
        "--host-key-algorithm",
        dest="host_key_algorithm",
        choices=["rsa", "ecdsa"],
        help="algorithm of the temporary host key",
    )
    server_group.add_argument(
        "--host-key-length",
        dest="host_key_length",
        type=int,
        help="length of the temporary rsa host key",
    )
    server_group.add_argument(
        "--allow-key-auth",
        dest="allow_key_auth",
        action="store_true",
        help="enable publickey authentication",
    )
    server_group.add_argument(
        "--public-key",
        dest="public_key",
        help="file with the public key accepted for publickey authentication (default: public part of the host key)",
    )
    server_group.add_argument(
        "--allow-password-auth",
        dest="allow_password_auth",
        action="store_true",
        help="enable password authentication",
    )
    server_group.add_argument(
        "--username",
        dest="username",
        help="username for password authentication",
    )
    server_group.add_argument(
        "--password",
        dest="password",
        help="password for password authentication",
    )
    server_group.add_argument(
        "--command-match",
        dest="command_match",
        help="command which is answered with the fake response",
    )
    server_group.add_argument(
        "--fake-response",
        dest="fake_response",
        help="response sent instead of the shell output",
    )
    server_group.add_argument(
        "--shell",
        dest="shell",
        help="shell command started for each session",
    )
    server_group.add_argument(
        "--banner-name",
        dest="banner_name",
        help="software version announced in the ssh banner",
    )
    return parser


def load_config_file(argv: Optional[List[str]]) -> None:
    """read the file given with ``--config`` before the option defaults are evaluated"""
    preparser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    preparser.add_argument("--config", dest="config_path")
    args, _ = preparser.parse_known_args(argv)
    if args.config_path:
        if not os.path.isfile(args.config_path):
            sys.exit(f"config file {args.config_path} not found")
        CONFIGFILE.read(args.config_path)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Create the server configuration from parsed arguments.

    :raises OSError: if a key file can not be read
    """
    public_key = read_key_file(args.public_key)
    return ServerConfig(
        port=int(args.listen_port) if args.listen_port else None,
        host=args.listen_address or "0.0.0.0",  # nosec
        allow_key_auth=bool(args.allow_key_auth),
        private_key=read_key_file(args.host_key),
        public_key=public_key.strip() if public_key else None,
        allow_password_auth=bool(args.allow_password_auth),
        username=args.username or "",
        password=args.password or "",
        fake_response=(args.fake_response or "").encode("utf-8"),
        command_match=args.command_match or "",
        shell=tuple(shlex.split(args.shell or "bash")),
        host_key_algorithm=args.host_key_algorithm or "rsa",
        host_key_length=int(args.host_key_length or 2048),
        banner_name=args.banner_name or None,
    )


def main(argv: Optional[List[str]] = None) -> None:
    load_config_file(argv)
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, log_format=args.log_format or "text")
    if not args.disable_workarounds:
        patch_thread()
    set_paramiko_log_level(args.paramiko_log_level or "warning")

    try:
        server = SSHTestServer(build_config(args))
        server.start()
    except OSError as err:
        logging.error("unable to read key file: %s", err)
        sys.exit(1)
    except (InvalidHostKey, InvalidPublicKey, KeyGenerationError, ServerStartError, ValueError) as err:
        logging.error("unable to start server: %s", err)
        sys.exit(1)

    server.print_serverinfo(json_log=args.log_format == "json")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logging.info("shutting down...")
    finally:
        server.close()


if __name__ == "__main__":
    main()

from configparser import ConfigParser

import paramiko
import pytest

from ssht.argparser import ConfigArgumentParser
from ssht.cli import build_config, build_parser, main
from ssht.keys import SSHPubKey, private_key_to_text
from ssht.utils import resources


@pytest.fixture
def ini():
    config = ConfigParser()
    config.read_string(
        """
[Global]
debug = True
name = from-config

[Server]
port = 2222
password-auth = False
empty =
"""
    )
    return config


def test_defaults_from_config(ini):
    parser = ConfigArgumentParser(config=ini, config_section="Global")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--name")
    parser.add_argument("--missing", default="fallback")
    args = parser.parse_args([])
    assert args.debug is True
    assert args.name == "from-config"
    assert args.missing == "fallback"


def test_command_line_overrides_config(ini):
    parser = ConfigArgumentParser(config=ini, config_section="Global")
    parser.add_argument("--name")
    assert parser.parse_args(["--name", "cli"]).name == "cli"


def test_group_section(ini):
    parser = ConfigArgumentParser(config=ini, config_section="Global")
    group = parser.add_argument_group("server", config_section="Server")
    group.add_argument("--port", type=int)
    group.add_argument("--password-auth", dest="password_auth", action="store_true")
    group.add_argument("--empty", default="kept")
    args = parser.parse_args([])
    assert args.port == 2222
    assert args.password_auth is False
    assert args.empty == "kept"


def test_build_config(tmp_path):
    host_key = paramiko.ECDSAKey.generate()
    client_key = paramiko.ECDSAKey.generate()
    host_key_file = tmp_path / "host_key"
    host_key_file.write_text(private_key_to_text(host_key))
    public_key_file = tmp_path / "client.pub"
    public_key_file.write_text(SSHPubKey.from_pkey(client_key).to_ssh_line() + "\n")

    args = build_parser().parse_args(
        [
            "--listen-address", "127.0.0.1",
            "--listen-port", "2200",
            "--host-key", str(host_key_file),
            "--public-key", str(public_key_file),
            "--allow-password-auth",
            "--username", "alice",
            "--password", "secret",
            "--command-match", "ls -lha",
            "--fake-response", "this is a test",
            "--shell", "bash --norc",
        ]
    )
    config = build_config(args)
    assert config.host == "127.0.0.1"
    assert config.port == 2200
    assert config.private_key == host_key_file.read_text()
    assert config.public_key == SSHPubKey.from_pkey(client_key).to_ssh_line()
    assert config.allow_password_auth
    assert (config.username, config.password) == ("alice", "secret")
    assert config.command_match == "ls -lha"
    assert config.fake_response == b"this is a test"
    assert config.shell == ("bash", "--norc")


def test_build_config_random_port():
    config = build_config(build_parser().parse_args(["--listen-port", "0"]))
    assert config.random_port


def test_version(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--version"])
    assert excinfo.value.code == 0
    assert capsys.readouterr().out.startswith("ssht ")


def test_missing_config_file(tmp_path):
    with pytest.raises(SystemExit):
        main(["--config", str(tmp_path / "missing.ini")])


def test_key_auth_off_by_default():
    packaged = ConfigParser()
    packaged.read_string((resources.files("ssht") / "data/default.ini").read_text())
    assert not packaged.getboolean("SSHT-Server", "allow-key-auth")

    parser = ConfigArgumentParser(config=packaged, config_section="SSHT")
    group = parser.add_argument_group("Server", config_section="SSHT-Server")
    group.add_argument("--allow-key-auth", dest="allow_key_auth", action="store_true")
    assert parser.parse_args([]).allow_key_auth is False
    assert parser.parse_args(["--allow-key-auth"]).allow_key_auth is True


def test_allow_key_auth_option():
    config = build_config(build_parser().parse_args(["--allow-key-auth"]))
    assert config.allow_key_auth

"""
Project-wide constants and default configuration locations for ssht.

Keep this module lightweight, it only holds immutable constants.

:note: Paths in ``CONFIGFILE_PATH_LIST`` are searched in order when loading a
       configuration file. The environment variable named by
       ``CONFIG_ENV_VAR_NAME`` is read last and overrides earlier values.
"""

import os

PROJECT_NAME = "ssht"
PROJECT_SLOGAN = "fake ssh servers for tests"

COMMAND_NAME = "ssht"

MODULE_NAME = "ssht"
MODULE_CONFIG_PATH = "data/default.ini"

CONFIGFILE_PATH_LIST = [
    "/etc/ssht.ini",
    os.path.expanduser("~/ssht.ini"),
]

CONFIG_ENV_VAR_NAME = "SSHT_CONFIG"

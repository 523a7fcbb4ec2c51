"""
Argument parser which takes its defaults from an ini file.

Every option added through :class:`ConfigArgumentParser` or one of its
argument groups looks up the option name (without the leading dashes) in the
config section of the parser or group. A non empty value there replaces the
``default`` of the option, parsed as string for ``store`` actions and as
boolean for ``store_true``/``store_false`` actions.
"""

import argparse
import logging
from configparser import ConfigParser
from typing import Any, Optional


class AddArgumentMethod:
    def __init__(
        self,
        *,
        parser: "ConfigArgumentParser",
        container: Optional[argparse._ActionsContainer] = None,
        config_section: Optional[str] = None,
    ) -> None:
        self.parser = parser
        self.container = container or parser
        self.config_section = config_section or self.parser.config_section
        self._add_argument = self.container.add_argument

    def _get_dest(self, *args: Any, **kwargs: Any) -> Optional[str]:
        dest_1 = kwargs.get("dest")
        dest_2 = None
        if dest_1 is not None:
            dest_1 = dest_1.replace("_", "-")
        long_options = [arg for arg in args if arg.startswith("--")]
        if long_options:
            dest_2 = long_options[0].lstrip(self.container.prefix_chars)
        elif args:
            dest_2 = args[0].lstrip(self.container.prefix_chars)
        if dest_2 is not None:
            dest_2 = dest_2.replace("_", "-")
        return dest_2 or dest_1

    def __call__(self, *args: Any, **kwargs: Any) -> argparse.Action:
        arg_dest = self._get_dest(*args, **kwargs)
        arg_action = kwargs.get("action", "store")
        config = self.parser.config

        if config is None or not self.config_section or not arg_dest:
            return self._add_argument(*args, **kwargs)
        if not config.has_option(self.config_section, arg_dest):
            if arg_action not in ("help", "version"):
                logging.debug(
                    "no config value for %s - %s (%s)",
                    self.config_section,
                    arg_dest,
                    arg_action,
                )
            return self._add_argument(*args, **kwargs)

        if config.get(self.config_section, arg_dest):
            if arg_action in ("store", "store_const"):
                kwargs["default"] = config.get(self.config_section, arg_dest)
            elif arg_action in ("store_true", "store_false"):
                kwargs["default"] = config.getboolean(self.config_section, arg_dest)
        return self._add_argument(*args, **kwargs)


class ConfigArgumentParser(argparse.ArgumentParser):
    """ArgumentParser which reads the defaults of its options from a ConfigParser

    :param config: the parsed ini files
    :param config_section: section used for options added directly to the parser
    """

    def __init__(
        self,
        *args: Any,
        config: Optional[ConfigParser] = None,
        config_section: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.config = config
        self.config_section = config_section
        super().__init__(*args, **kwargs)
        self.add_argument = AddArgumentMethod(parser=self, container=self)  # type: ignore[method-assign]

    def add_argument_group(self, *args: Any, **kwargs: Any) -> argparse._ArgumentGroup:
        config_section = kwargs.pop("config_section", None)
        group = argparse._ArgumentGroup(  # pylint:disable=protected-access
            self, *args, **kwargs
        )
        group.add_argument = AddArgumentMethod(  # type: ignore[method-assign]
            parser=self,
            container=group,
            config_section=config_section,
        )
        self._action_groups.append(group)
        return group

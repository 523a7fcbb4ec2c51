"""
Fake command responses.

A :class:`FakeResponses` registry belongs to the server and holds the
interception rules, each a command substring and the bytes sent back when the
command shows up in a session's input. Every channel session owns a
:class:`CommandInterceptor` which accumulates the client input forwarded to
the shell and checks the accumulated bytes after each forwarded chunk.

Matching is a substring search over everything typed since the last match, so
a command split over several packets matches once it is complete. Two
invocations of the same command typed before the first one matched are
reported as one.
"""

import logging
import threading
from typing import Callable, List, Optional

from colored.colored import attr, fg  # type: ignore[import-untyped]

from ssht.logger import Colors


class ResponseRule:
    """a command substring and the canned response for it"""

    def __init__(self, command: str, response: bytes) -> None:
        if not command:
            msg = "command match must not be empty"
            raise ValueError(msg)
        self.command = command
        self.pattern = command.encode("utf-8")
        self.response = response
        self.calls = 0

    def __repr__(self) -> str:
        return f"ResponseRule(command={self.command!r}, response={self.response!r}, calls={self.calls})"


class FakeResponses:
    """Thread safe list of interception rules shared by all sessions of a server."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rules: List[ResponseRule] = []

    def add(self, command: str, response: bytes) -> ResponseRule:
        """
        Register ``response`` for ``command``.

        Registering a command twice replaces the response and keeps the call count.
        """
        with self._lock:
            for rule in self._rules:
                if rule.command == command:
                    rule.response = response
                    return rule
            rule = ResponseRule(command, response)
            self._rules.append(rule)
            return rule

    def match(self, data: bytes) -> Optional[ResponseRule]:
        with self._lock:
            for rule in self._rules:
                if rule.pattern in data:
                    return rule
        return None

    def record_call(self, rule: ResponseRule) -> None:
        with self._lock:
            rule.calls += 1

    def call_count(self, command: str) -> int:
        with self._lock:
            for rule in self._rules:
                if rule.command == command:
                    return rule.calls
        return 0

    def rules(self) -> List[ResponseRule]:
        with self._lock:
            return list(self._rules)

    def __bool__(self) -> bool:
        with self._lock:
            return bool(self._rules)


class CommandInterceptor:
    """
    Watches the input of one channel session.

    :param responses: the rules of the server
    :param respond: callable which writes a fake response to the client
    """

    def __init__(
        self, responses: FakeResponses, respond: Callable[[bytes], None]
    ) -> None:
        self.responses = responses
        self.respond = respond
        self._buffer = bytearray()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.responses)

    @property
    def buffer(self) -> bytes:
        """input seen since the last match"""
        with self._lock:
            return bytes(self._buffer)

    def feed(self, data: bytes) -> Optional[ResponseRule]:
        """
        Add forwarded input and answer with a fake response on a match.

        The buffer is already empty when the response is sent.

        :param data: bytes just written to the shell
        :return: the rule which matched or ``None``
        """
        if not self.enabled:
            return None
        with self._lock:
            self._buffer.extend(data)
            rule = self.responses.match(bytes(self._buffer))
            if rule is not None:
                self._buffer.clear()
        if rule is None:
            return None
        self.responses.record_call(rule)
        logging.info(
            "%s intercepted command: %s",
            Colors.emoji("clapper_board"),
            Colors.stylize(rule.command, fg("light_blue") + attr("bold")),
        )
        self.respond(rule.response)
        return rule

    def reset(self) -> None:
        with self._lock:
            self._buffer.clear()

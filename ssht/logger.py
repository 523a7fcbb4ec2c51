import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict

from colored.colored import stylize  # type: ignore[import-untyped]
from pythonjsonlogger import jsonlogger
from rich._emoji_codes import EMOJI
from rich.highlighter import NullHighlighter
from rich.logging import RichHandler

THREAD_DATA = threading.local()


class Colors:
    stylize_func: bool = True

    @classmethod
    def emoji(cls, name: str) -> str:
        if name in EMOJI and cls.stylize_func:
            return EMOJI[name]
        return ""

    @classmethod
    def stylize(cls, text: Any, styles: Any, reset: bool = True) -> Any:
        if not cls.stylize_func:
            return cls.do_noformat(text, styles, reset)
        return cls.do_stylize(text, styles, reset)

    @classmethod
    def do_stylize(cls, text: Any, styles: Any, reset: bool = True) -> Any:
        return stylize(text, styles, reset)

    @classmethod
    def do_noformat(cls, text: Any, styles: Any, reset: bool = True) -> Any:
        del styles
        del reset
        return text


class StdoutStream:
    """
    Stream of the json log handler.

    Writes go to the current ``sys.stdout``. When the reader of a piped
    stdout goes away, logging continues on stderr.
    """

    def write(self, text: str) -> None:
        sys.stdout.write(text)

    def flush(self) -> None:
        try:
            sys.stdout.flush()
        except BrokenPipeError:
            sys.stdout = sys.stderr
            logging.warning("stdout closed, logging to stderr")


def rich_handler(*, debug: bool = False) -> RichHandler:
    """console handler, source paths are shown in debug mode"""
    return RichHandler(
        highlighter=NullHighlighter(),
        markup=False,
        rich_tracebacks=True,
        show_path=debug,
    )


class PlainJsonFormatter(jsonlogger.JsonFormatter):
    def process_log_record(self, log_data: Dict[str, Any]) -> Dict[str, Any]:
        log_data["message"] = log_data["message"].strip()
        return log_data

    def add_fields(
        self,
        log_data: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_data, record, message_dict)
        log_data["tid"] = threading.get_native_id()
        log_data["module"] = record.module

        session = getattr(THREAD_DATA, "session", None)
        log_data["sessionid"] = str(session.sessionid) if session is not None else None

        log_data["timestamp"] = datetime.now(timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%S.%fZ"
        )
        log_data["level"] = record.levelname


def setup_logging(*, debug: bool = False, log_format: str = "text") -> None:
    """
    Configure the root logger for console or json output.

    JSON output is also used when stdout is not a terminal. Colors and
    emojis are turned off for json output.

    :param debug: log debug messages and show source paths
    :param log_format: ``text`` or ``json``
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    root_logger.handlers.clear()
    if log_format == "json" or not sys.stdout.isatty():
        Colors.stylize_func = False
        log_handler: logging.Handler = logging.StreamHandler(stream=StdoutStream())  # type: ignore[arg-type]
        log_handler.setFormatter(PlainJsonFormatter())  # type: ignore[no-untyped-call]
    else:
        Colors.stylize_func = True
        log_handler = rich_handler(debug=debug)
    root_logger.addHandler(log_handler)


def set_paramiko_log_level(level: str) -> None:
    logging.getLogger("paramiko").setLevel(
        {"debug": logging.DEBUG, "info": logging.INFO}.get(level, logging.WARNING)
    )

"""
Propagate the connection session into threads created on its behalf.

Threads started by ssht register themselves explicitly. paramiko starts its
own transport thread and ``threading.Timer`` threads, so ``patch_thread``
wraps ``Thread.__init__`` and the relevant ``run`` methods with ``wrapt`` to
hand the creating thread's session over to the new thread. Log records
emitted from those threads then carry the right ``sessionid``.
"""

import threading
from typing import Any

import paramiko
import wrapt  # type: ignore[import-untyped]

from ssht.logger import THREAD_DATA

_PATCHED = False


def do_init(wrapped: Any, instance: Any, *args: Any, **kwargs: Any) -> Any:
    instance.session = getattr(THREAD_DATA, "session", None)
    return wrapped(*args, **kwargs)


def do_run(wrapped: Any, instance: Any, *args: Any, **kwargs: Any) -> Any:
    session = getattr(instance, "session", None)
    if session is not None:
        session.register_session_thread()
    return wrapped(*args, **kwargs)


def patch_thread() -> bool:
    """
    Install the wrappers once per process.

    :return: ``True`` if the wrappers were installed by this call
    """
    global _PATCHED  # pylint: disable=global-statement
    if _PATCHED:
        return False

    @wrapt.patch_function_wrapper(threading.Thread, "__init__")  # type: ignore[misc]
    def thread_init(wrapped: Any, instance: Any, args: Any, kwargs: Any) -> None:
        return do_init(wrapped, instance, *args, **kwargs)

    @wrapt.patch_function_wrapper(threading.Thread, "run")  # type: ignore[misc]
    def thread_run(wrapped: Any, instance: Any, args: Any, kwargs: Any) -> None:
        return do_run(wrapped, instance, *args, **kwargs)

    @wrapt.patch_function_wrapper(paramiko.transport.Transport, "run")  # type: ignore[misc]
    def transport_run(wrapped: Any, instance: Any, args: Any, kwargs: Any) -> None:
        return do_run(wrapped, instance, *args, **kwargs)

    @wrapt.patch_function_wrapper(threading.Timer, "run")  # type: ignore[misc]
    def timer_run(wrapped: Any, instance: Any, args: Any, kwargs: Any) -> None:
        return do_run(wrapped, instance, *args, **kwargs)

    _PATCHED = True
    return True

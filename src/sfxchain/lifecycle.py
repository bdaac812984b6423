"""
Process-lifetime cleanup for scratch directories.

Chains register their :class:`~sfxchain.tempfiles.TempFileRegistry` here.
Every live registry is torn down when the interpreter exits and when the
process receives SIGINT or SIGTERM, after which the previously installed
signal handler runs as usual.
"""

from __future__ import annotations

import atexit
import logging
import signal
import threading
import weakref
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from sfxchain.tempfiles import TempFileRegistry

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_registries: "weakref.WeakSet[TempFileRegistry]" = weakref.WeakSet()
_lock = threading.RLock()
_installed = False
_previous_handlers: Dict[int, object] = {}

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def teardown_all() -> None:
    """Tear down every registered registry."""
    with _lock:
        registries = list(_registries)
    for registry in registries:
        registry.teardown()


def _handle_signal(signum, frame) -> None:
    logger.debug("Signal %d received; removing scratch directories", signum)
    teardown_all()
    previous = _previous_handlers.get(signum)
    if callable(previous):
        previous(signum, frame)
    elif previous == signal.SIG_DFL:
        signal.signal(signum, signal.SIG_DFL)
        signal.raise_signal(signum)


def _install() -> None:
    global _installed
    if _installed:
        return
    _installed = True
    atexit.register(teardown_all)
    # Signal handlers can only be set from the main thread.
    if threading.current_thread() is not threading.main_thread():
        logger.debug("Not on the main thread; relying on atexit cleanup only")
        return
    for signum in HANDLED_SIGNALS:
        _previous_handlers[signum] = signal.getsignal(signum)
        signal.signal(signum, _handle_signal)


def register(registry: "TempFileRegistry") -> None:
    """Track ``registry`` so it is torn down on process exit."""
    with _lock:
        _install()
        _registries.add(registry)


def unregister(registry: "TempFileRegistry") -> None:
    with _lock:
        _registries.discard(registry)

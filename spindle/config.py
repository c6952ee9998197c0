"""Process-wide settings

There's no configuration file; a program adjusts these with the setter functions
below, usually once at startup.

"""
from __future__ import annotations
from dataclasses import dataclass
import logging
import os
import typing as t

if t.TYPE_CHECKING:
    from spindle.core import Task

__all__ = [
    'Settings',
    'settings',
    'enable_diagnostics',
    'allow_multiple_waiters',
    'set_unhandled_failure_hook',
]

logger = logging.getLogger(__name__)

UnhandledFailureHook = t.Callable[[BaseException, 'Task'], None]

@dataclass
class Settings:
    # Record suspension points so failed Tasks carry a reconstructed call chain.
    diagnostics: bool = False
    # Whether more than one Task may wait on the same Future at the same time.
    multiple_waiters: bool = True
    # Called with the failure of a Future which was garbage collected without ever
    # being awaited; if None, such failures are dropped.
    unhandled_failure_hook: t.Optional[UnhandledFailureHook] = None

def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() not in ("", "0", "false", "no")

settings = Settings(diagnostics=_env_flag("SPINDLE_DIAGNOSTICS"))

def enable_diagnostics(enabled: bool=True) -> None:
    logger.debug("diagnostics %s", "enabled" if enabled else "disabled")
    settings.diagnostics = enabled

def allow_multiple_waiters(allowed: bool=True) -> None:
    settings.multiple_waiters = allowed

def set_unhandled_failure_hook(hook: t.Optional[UnhandledFailureHook]) -> None:
    settings.unhandled_failure_hook = hook

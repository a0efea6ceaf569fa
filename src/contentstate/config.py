"""
Editor configuration with process-wide base and contextvars-scoped overrides.

DUAL LAYER PATTERN:
- _base_editor_config: process-wide default (set once at application startup)
- _editor_config_override: ContextVar holding a scoped override

Default behavior: components read get_editor_config() once at construction.
Explicit override: wrap construction in editor_config_context(...) or pass
an EditorConfig directly.
"""

import contextvars
import dataclasses
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditorConfig:
    """Timings and caps for the content reconciliation core.

    All durations are in seconds.
    """
    max_snapshots: int = 50
    capture_debounce: float = 0.5
    settle_delay: float = 0.5
    post_save_settle_delay: float = 0.2
    saved_status_display: float = 3.0
    error_status_display: float = 5.0
    version_list_limit: int = 50

    def __post_init__(self):
        if self.max_snapshots < 1:
            raise ValueError(f"max_snapshots must be >= 1, got {self.max_snapshots}")
        for name in ('capture_debounce', 'settle_delay', 'post_save_settle_delay',
                     'saved_status_display', 'error_status_display'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")


_base_editor_config: EditorConfig = EditorConfig()

_editor_config_override: contextvars.ContextVar[Optional[EditorConfig]] = contextvars.ContextVar(
    '_editor_config_override', default=None
)


def set_base_editor_config(config: EditorConfig) -> None:
    """Set the process-wide base config (what every context sees by default)."""
    global _base_editor_config
    _base_editor_config = config
    logger.debug(f"CONFIG: base editor config set to {config}")


def get_base_editor_config() -> EditorConfig:
    """Get the process-wide base config, ignoring scoped overrides."""
    return _base_editor_config


def get_editor_config() -> EditorConfig:
    """Get the effective config: innermost scoped override, else the base."""
    override = _editor_config_override.get()
    return override if override is not None else _base_editor_config


@contextmanager
def editor_config_context(**overrides) -> Generator[EditorConfig, None, None]:
    """Scope config overrides to the current context.

    Overrides merge into the currently effective config, so nested
    contexts layer on top of each other:

        with editor_config_context(max_snapshots=10):
            with editor_config_context(capture_debounce=0.1) as cfg:
                assert cfg.max_snapshots == 10

    Args:
        **overrides: EditorConfig field values to replace.
    """
    merged = dataclasses.replace(get_editor_config(), **overrides)
    token = _editor_config_override.set(merged)
    try:
        yield merged
    finally:
        _editor_config_override.reset(token)

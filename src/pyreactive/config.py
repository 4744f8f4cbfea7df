"""Store configuration for pyreactive."""

from __future__ import annotations

import dataclasses
import os
from typing import Any


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ReactiveConfig:
    """Reactive instance configuration.

    Parameters
    ----------
    name : str
        Instance name used in debug messages.
    id_field : str
        Field every keyed collection element must carry.
    trace_events : bool
        Log every flushed change event at DEBUG level.
    """

    name: str = "reactive"
    id_field: str = "id"
    trace_events: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> ReactiveConfig:
        """Create configuration from environment variables.

        Reads ``PYREACTIVE_NAME``, ``PYREACTIVE_ID_FIELD`` and
        ``PYREACTIVE_TRACE_EVENTS``. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "PYREACTIVE_NAME": "name",
            "PYREACTIVE_ID_FIELD": "id_field",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        if "trace_events" not in overrides:
            config_kwargs["trace_events"] = _env_bool(env.get("PYREACTIVE_TRACE_EVENTS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

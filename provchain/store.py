"""A live store of the current configuration and context helpers to carry it."""

from __future__ import annotations

import contextvars
import copy
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from .config import CHAINS_CONFIG, Config, ConfigError, new_config_from_config_map

_current_config: contextvars.ContextVar[Config] = contextvars.ContextVar("provchain_config")


def from_context() -> Config:
    """Return the config carried by the current context."""
    try:
        return _current_config.get()
    except LookupError:
        raise LookupError("no configuration in the current context") from None


def to_context(config: Config) -> contextvars.Context:
    """Return a copy of the current context that carries the given config."""
    ctx = contextvars.copy_context()
    ctx.run(_current_config.set, config)
    return ctx


class ConfigStore:
    """Holds the latest valid configuration built from config-map updates."""

    name = "chains"

    def __init__(
        self,
        logger: logging.Logger | None = None,
        *args: Callable[[str, Any], None],
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._on_after_store = list(args)
        self._lock = threading.Lock()
        self._config: Config | None = None

    def on_config_changed(self, config_map: Mapping) -> None:
        """Rebuild the config from an updated config map; invalid data keeps the old one."""
        name = (config_map.get("metadata") or {}).get("name", "")
        if name != CHAINS_CONFIG:
            return
        try:
            result = new_config_from_config_map(config_map)
        except ConfigError as err:
            self._logger.error("Error updating %s config %r: %s", self.name, name, err)
            return
        self._logger.info("%s config %r was added or updated: %r", self.name, name, result)
        with self._lock:
            self._config = result
        for callback in self._on_after_store:
            callback(name, result)

    def load(self) -> Config:
        """Return a copy of the stored config."""
        with self._lock:
            config = self._config
        if config is None:
            raise LookupError(f"config {CHAINS_CONFIG!r} has not been loaded")
        return copy.deepcopy(config)

    def to_context(self) -> contextvars.Context:
        """Return a copy of the current context carrying the stored config."""
        return to_context(self.load())
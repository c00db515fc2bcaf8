"""Narrow interfaces to services owned by the automation host."""

from __future__ import annotations

import logging
from typing import Protocol

from nuki_gateway.config import AppConfig


class DebugSink(Protocol):
    def send_debug(self, tag: str, message: str) -> None: ...


class DeviceRegistry(Protocol):
    def resolve_bridge(self, device_id: str) -> str | None:
        """Return the id of the bridge owning `device_id`, or None if unknown."""
        ...


class LoggingDebugSink:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("nuki_gateway.debug")

    def send_debug(self, tag: str, message: str) -> None:
        self._logger.debug("[%s] %s", tag, message)


class StaticDeviceRegistry:
    """Every configured lock belongs to the single configured bridge."""

    def __init__(self, config: AppConfig) -> None:
        self._bridge_id = config.endpoint.bridge_id or "default"
        self._device_ids = frozenset(config.locks)

    def resolve_bridge(self, device_id: str) -> str | None:
        if not self._device_ids or device_id in self._device_ids:
            return self._bridge_id
        return None

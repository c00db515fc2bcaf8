from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import json
import logging
import os

from nuki_gateway.action_codes import (
    DEFAULT_SWITCH_OFF_ACTION,
    DEFAULT_SWITCH_ON_ACTION,
    ActionCode,
    coerce_action_code,
)
from nuki_gateway.errors import BridgeResult, configuration_error


logger = logging.getLogger(__name__)


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LockConfig:
    device_id: str
    name: str = ""
    switch_off_action: ActionCode = DEFAULT_SWITCH_OFF_ACTION
    switch_on_action: ActionCode = DEFAULT_SWITCH_ON_ACTION
    hide_switch: bool = False

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "LockConfig":
        return LockConfig(
            device_id=str(raw["id"]),
            name=str(raw.get("name") or ""),
            switch_off_action=coerce_action_code(raw.get("switchOffAction"), default=DEFAULT_SWITCH_OFF_ACTION),
            switch_on_action=coerce_action_code(raw.get("switchOnAction"), default=DEFAULT_SWITCH_ON_ACTION),
            hide_switch=bool(raw.get("hideSwitch", False)),
        )


def _parse_locks(value: str | None) -> dict[str, LockConfig]:
    if not value:
        return {}
    try:
        items = json.loads(value)
    except ValueError:
        logger.warning("NUKI_LOCKS is not valid JSON; ignoring")
        return {}
    if not isinstance(items, list):
        logger.warning("NUKI_LOCKS must be a JSON list; ignoring")
        return {}
    locks: dict[str, LockConfig] = {}
    for item in items:
        if not isinstance(item, dict) or "id" not in item:
            continue
        lock = LockConfig.from_dict(item)
        locks[lock.device_id] = lock
    return locks


@dataclass(frozen=True)
class BridgeEndpoint:
    host: Optional[str]
    port: int = 8080
    timeout_ms: int = 5000
    bridge_id: str = ""
    token: Optional[str] = None
    use_callback: bool = False
    callback_host: Optional[str] = None
    callback_port: int = 8081
    callback_bind: str = "0.0.0.0"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def timeout_seconds(self) -> float:
        return max(self.timeout_ms, 1) / 1000.0

    @property
    def callback_url(self) -> str | None:
        if not self.callback_host:
            return None
        return f"http://{self.callback_host}:{self.callback_port}/"

    def validate(self) -> BridgeResult[None]:
        missing = [
            name
            for name, value in (("host", self.host), ("port", self.port), ("token", self.token))
            if not value
        ]
        if self.use_callback:
            if not self.callback_host:
                missing.append("callback_host")
            if not self.callback_port:
                missing.append("callback_port")
        if missing:
            return configuration_error("Bridge endpoint is incomplete", missing=missing)
        return BridgeResult.success(None)


@dataclass(frozen=True)
class AppConfig:
    port: int
    endpoint: BridgeEndpoint
    locks: dict[str, LockConfig] = field(default_factory=dict)
    protocol_entries: int = 6
    resync_seconds: int = 300
    auth_tokens: list[str] = field(default_factory=list)
    api_keys: list[str] = field(default_factory=list)

    def lock(self, device_id: str) -> LockConfig:
        return self.locks.get(device_id) or LockConfig(device_id=device_id)

    @staticmethod
    def from_env() -> "AppConfig":
        protocol_entries = int(os.getenv("NUKI_PROTOCOL_ENTRIES", "6"))
        if protocol_entries < 1:
            raise ValueError("NUKI_PROTOCOL_ENTRIES must be at least 1")
        return AppConfig(
            port=int(os.getenv("PORT", "8000")),
            endpoint=BridgeEndpoint(
                host=os.getenv("NUKI_BRIDGE_HOST"),
                port=int(os.getenv("NUKI_BRIDGE_PORT", "8080")),
                timeout_ms=int(os.getenv("NUKI_TIMEOUT_MS", "5000")),
                bridge_id=os.getenv("NUKI_BRIDGE_ID", ""),
                token=os.getenv("NUKI_API_TOKEN"),
                use_callback=_env_bool("NUKI_USE_CALLBACK"),
                callback_host=os.getenv("NUKI_CALLBACK_HOST"),
                callback_port=int(os.getenv("NUKI_CALLBACK_PORT", "8081")),
                callback_bind=os.getenv("NUKI_CALLBACK_BIND", "0.0.0.0"),
            ),
            locks=_parse_locks(os.getenv("NUKI_LOCKS")),
            protocol_entries=protocol_entries,
            resync_seconds=int(os.getenv("NUKI_RESYNC_SECONDS", "300")),
            auth_tokens=_split_csv(os.getenv("GATEWAY_AUTH_TOKENS")),
            api_keys=_split_csv(os.getenv("GATEWAY_API_KEYS")),
        )

import pytest

from nuki_gateway.action_codes import ActionCode
from nuki_gateway.config import AppConfig, BridgeEndpoint, LockConfig


@pytest.fixture
def endpoint() -> BridgeEndpoint:
    return BridgeEndpoint(
        host="bridge.test",
        port=8080,
        timeout_ms=5000,
        bridge_id="123456",
        token="tok",
        use_callback=False,
    )


@pytest.fixture
def config(endpoint: BridgeEndpoint) -> AppConfig:
    return AppConfig(
        port=8000,
        endpoint=endpoint,
        locks={
            "11": LockConfig(device_id="11", name="Front door"),
            "22": LockConfig(
                device_id="22",
                name="Garage",
                switch_off_action=ActionCode.LOCK_N_GO,
                switch_on_action=ActionCode.UNLATCH,
            ),
        },
        protocol_entries=3,
        resync_seconds=0,
        auth_tokens=["dev-token"],
        api_keys=["dev-key"],
    )

import pytest

from nuki_gateway.action_codes import ActionCode, coerce_action_code, label, resolve


def test_resolve_defaults_off_to_lock_and_on_to_unlock():
    assert resolve("off") == ActionCode.LOCK
    assert resolve("on") == ActionCode.UNLOCK
    assert resolve(False) == ActionCode.LOCK
    assert resolve(True) == ActionCode.UNLOCK


def test_resolve_uses_configured_actions():
    assert resolve("off", off_action=ActionCode.LOCK_N_GO, on_action=ActionCode.UNLATCH) == ActionCode.LOCK_N_GO
    assert resolve("on", off_action=ActionCode.LOCK_N_GO, on_action=ActionCode.UNLATCH) == ActionCode.UNLATCH


def test_label_covers_every_action_code():
    assert label(ActionCode.UNLOCK) == "unlock"
    assert label(ActionCode.LOCK) == "lock"
    assert label(ActionCode.UNLATCH) == "unlatch"
    assert label(ActionCode.LOCK_N_GO) == "lock 'n' go"
    assert label(ActionCode.LOCK_N_GO_WITH_UNLATCH) == "lock 'n' go with unlatch"
    assert label(ActionCode.UNDEFINED) == "undefined"
    assert all(label(code) for code in ActionCode)


def test_label_of_unknown_code_is_a_programming_error():
    with pytest.raises(ValueError):
        label(42)


def test_coerce_action_code_parses_config_values():
    assert coerce_action_code("2") == ActionCode.LOCK
    assert coerce_action_code(5) == ActionCode.LOCK_N_GO_WITH_UNLATCH
    assert coerce_action_code(None, default=ActionCode.UNLOCK) == ActionCode.UNLOCK
    assert coerce_action_code("", default=ActionCode.LOCK) == ActionCode.LOCK
    assert coerce_action_code("banana") == ActionCode.UNDEFINED
    assert coerce_action_code(9) == ActionCode.UNDEFINED
    assert coerce_action_code(True) == ActionCode.UNDEFINED

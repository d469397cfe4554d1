import pytest

from natstier.nts.errors import (
    KeyDeletedError,
    KeyValueOp,
    NotFoundError,
    is_key_deleted,
    is_not_found,
    parse_kv_op,
)


def test_is_not_found_msg_not_found():
    assert is_not_found(NotFoundError("nats: message not found")) is True


def test_is_not_found_key_not_found():
    assert is_not_found(NotFoundError("nats: key not found")) is True


def test_is_not_found_string_match():
    assert is_not_found(RuntimeError("the thing not found in store")) is True


def test_is_not_found_nil():
    assert is_not_found(None) is False


def test_is_not_found_other_error():
    assert is_not_found(RuntimeError("connection timeout")) is False


def test_is_not_found_key_deleted_is_separate():
    assert is_not_found(KeyDeletedError("nats: key deleted")) is False


def test_is_key_deleted_true():
    assert is_key_deleted(KeyDeletedError("nats: key deleted")) is True


def test_is_key_deleted_nil():
    assert is_key_deleted(None) is False


def test_is_key_deleted_other_error():
    assert is_key_deleted(NotFoundError("nats: key not found")) is False


@pytest.mark.parametrize(
    "value, expected",
    [
        ("PUT", KeyValueOp.PUT),
        ("DEL", KeyValueOp.DELETE),
        ("PURGE", KeyValueOp.PURGE),
        ("", KeyValueOp.PUT),
        ("UNKNOWN", KeyValueOp.PUT),
    ],
)
def test_parse_kv_op(value, expected):
    assert parse_kv_op(value) is expected
import pytest

from winewarden.errors import (
    InvalidConfigError,
    PolicyViolationError,
    WineWardenError,
    WineWardenIOError,
)


@pytest.mark.parametrize(
    ("cls", "expected"),
    [
        (InvalidConfigError, "invalid configuration: bad value"),
        (WineWardenIOError, "io error: bad value"),
        (PolicyViolationError, "policy violation: bad value"),
    ],
)
def test_messages_carry_label(cls, expected):
    assert str(cls("bad value")) == expected


def test_subclass_carries_detail_and_base():
    error = PolicyViolationError("ssh keys")
    assert isinstance(error, WineWardenError)
    assert error.detail == "ssh keys"
    assert str(error) == "policy violation: ssh keys"


def test_base_error_message_is_detail():
    assert str(WineWardenError("plain")) == "plain"
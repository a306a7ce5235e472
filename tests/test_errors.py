"""Tests for the error taxonomy."""

from vm_heartbeat.errors import (
    ConfigError,
    DecodeError,
    HeartbeatError,
    TransportError,
    ValidationError,
)


def test_kinds():
    assert ConfigError("x").kind == "config"
    assert TransportError("x").kind == "transport"
    assert DecodeError("x").kind == "decode"
    assert ValidationError("x").kind == "validation"
    assert all(
        issubclass(cls, HeartbeatError)
        for cls in (ConfigError, TransportError, DecodeError, ValidationError)
    )


def test_str_includes_pid_url_and_cause():
    try:
        try:
            raise ValueError("Expecting value: line 1 column 1")
        except ValueError as e:
            raise DecodeError("response body is not valid JSON", pid=2, url="http://h/vm/2") from e
    except DecodeError as err:
        text = str(err)

    assert text.startswith("response body is not valid JSON")
    assert "pid=2" in text
    assert "url=http://h/vm/2" in text
    assert "cause=Expecting value" in text


def test_str_without_context():
    assert str(ConfigError("discovery url is not configured")) == "discovery url is not configured"


def test_to_dict():
    err = TransportError("service returned HTTP 503", pid=9, url="http://h/vm/9")
    assert err.to_dict() == {
        "kind": "transport",
        "message": "service returned HTTP 503",
        "pid": 9,
        "url": "http://h/vm/9",
        "cause": None,
    }

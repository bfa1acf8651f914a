"""Tests for tartrunner.utils module."""

from __future__ import annotations

import threading
import time
from unittest.mock import patch

import pytest

from tartrunner.exceptions import ConfigError, OperationCancelled
from tartrunner.utils import (
    get_env,
    get_env_bool,
    log,
    mask_vnc_password,
    parse_float_env,
    parse_int_env,
    sleep,
    wait_for,
)


class TestLog:
    def test_info_level(self, capsys):
        log("INFO", "test message")
        captured = capsys.readouterr()
        assert "[INFO]" in captured.out
        assert "test message" in captured.out

    def test_debug_suppressed_by_default(self, capsys):
        log("DEBUG", "should not appear")
        captured = capsys.readouterr()
        assert captured.out == ""


class TestGetEnv:
    def test_returns_value(self, monkeypatch):
        monkeypatch.setenv("TEST_VAR", "hello")
        assert get_env("TEST_VAR") == "hello"

    def test_returns_default(self, monkeypatch):
        monkeypatch.delenv("TEST_VAR", raising=False)
        assert get_env("TEST_VAR", "fallback") == "fallback"


class TestGetEnvBool:
    @pytest.mark.parametrize("value", ["1", "true", "yes", "on", "TRUE", "Yes"])
    def test_truthy_values(self, monkeypatch, value):
        monkeypatch.setenv("TEST_BOOL", value)
        assert get_env_bool("TEST_BOOL") is True

    @pytest.mark.parametrize("value", ["0", "false", "no", "off", "random"])
    def test_falsy_values(self, monkeypatch, value):
        monkeypatch.setenv("TEST_BOOL", value)
        assert get_env_bool("TEST_BOOL") is False

    def test_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("TEST_BOOL", raising=False)
        assert get_env_bool("TEST_BOOL", True) is True


class TestParseIntEnv:
    def test_valid_value(self, monkeypatch):
        monkeypatch.setenv("MY_INT", "42")
        assert parse_int_env("MY_INT", "10") == 42

    def test_non_integer_raises(self, monkeypatch):
        monkeypatch.setenv("MY_INT", "abc")
        with pytest.raises(ConfigError, match="must be an integer"):
            parse_int_env("MY_INT", "10")

    def test_above_max_raises(self, monkeypatch):
        monkeypatch.setenv("MY_INT", "70000")
        with pytest.raises(ConfigError, match="must be <= 65535"):
            parse_int_env("MY_INT", "10", max_val=65535)


class TestParseFloatEnv:
    def test_valid_value(self, monkeypatch):
        monkeypatch.setenv("MY_FLOAT", "0.25")
        assert parse_float_env("MY_FLOAT", "1") == 0.25

    def test_default_value(self, monkeypatch):
        monkeypatch.delenv("MY_FLOAT", raising=False)
        assert parse_float_env("MY_FLOAT", "10") == 10.0

    def test_negative_raises(self, monkeypatch):
        monkeypatch.setenv("MY_FLOAT", "-1")
        with pytest.raises(ConfigError, match="must be >= 0"):
            parse_float_env("MY_FLOAT", "1")

    def test_garbage_raises(self, monkeypatch):
        monkeypatch.setenv("MY_FLOAT", "soon")
        with pytest.raises(ConfigError, match="must be a number"):
            parse_float_env("MY_FLOAT", "1")


class TestMaskVncPassword:
    def test_masks_password(self):
        line = "VNC server is running at vnc://:hunter2@127.0.0.1:5900"
        masked = mask_vnc_password(line)
        assert "hunter2" not in masked
        assert masked.endswith("vnc://:********@127.0.0.1:5900")

    def test_leaves_other_text_alone(self):
        assert mask_vnc_password("booting...") == "booting..."


class TestSleep:
    def test_cancel_already_set_raises(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelled):
            sleep(10, cancel)

    def test_zero_without_cancel_returns(self):
        sleep(0)


class TestWaitFor:
    def test_returns_first_non_none(self):
        values = iter([None, None, "ready"])
        with patch("tartrunner.utils.time.sleep"):
            assert wait_for(lambda: next(values), timeout=None, interval=0.01) == "ready"

    def test_timeout_raises(self):
        with pytest.raises(TimeoutError):
            wait_for(lambda: None, timeout=0.05, interval=0.01)

    def test_cancel_from_other_thread(self):
        cancel = threading.Event()
        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        started = time.time()
        with pytest.raises(OperationCancelled):
            wait_for(lambda: None, timeout=None, interval=0.05, cancel=cancel)
        assert time.time() - started < 2.0

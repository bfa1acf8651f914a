"""Tests for tartrunner.models module."""

from tartrunner.models import (
    KeyPress,
    KeystrokeSequence,
    NetworkEndpoint,
    RunnerConfig,
    RunPhase,
    RunState,
    TypeText,
)


class TestNetworkEndpoint:
    def test_address(self):
        assert NetworkEndpoint("127.0.0.1", 5900, "pw").address == "127.0.0.1:5900"

    def test_password_hidden_from_repr(self):
        assert "pw-secret" not in repr(NetworkEndpoint("127.0.0.1", 5900, "pw-secret"))


class TestKeystrokeSequence:
    def test_sequence_protocol(self):
        seq = KeystrokeSequence([TypeText("root"), KeyPress("enter")])
        assert len(seq) == 2
        assert seq[1] == KeyPress("enter")
        assert list(seq) == [TypeText("root"), KeyPress("enter")]

    def test_equality_and_hash(self):
        a = KeystrokeSequence([KeyPress("esc")])
        b = KeystrokeSequence((KeyPress("esc"),))
        assert a == b
        assert hash(a) == hash(b)
        assert a != KeystrokeSequence()


class TestRunnerConfig:
    def test_defaults(self):
        cfg = RunnerConfig(vm_name="vm")
        assert cfg.vnc_enabled is True
        assert cfg.boot_command_requested is False
        assert cfg.communicator_enabled is False

    def test_boot_command_requested(self):
        cfg = RunnerConfig(vm_name="vm", boot_command=["<enter>"])
        assert cfg.boot_command_requested is True
        cfg.disable_vnc = True
        assert cfg.boot_command_requested is False

    def test_from_iso_disables_boot_command(self):
        cfg = RunnerConfig(vm_name="vm", boot_command=["<enter>"], from_iso=["a.iso"])
        assert cfg.boot_command_requested is False


class TestRunState:
    def test_initial_state(self):
        state = RunState()
        assert state.phase is RunPhase.IDLE
        assert state.http_ip is None
        assert state.errors == []

    def test_errors_not_shared(self):
        a, b = RunState(), RunState()
        a.errors.append(RuntimeError("x"))
        assert b.errors == []

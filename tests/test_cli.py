"""Tests for CLI helpers and commands."""

import hashlib
import json

import pytest
import typer
from typer.testing import CliRunner

from firmware_verifier import cli
from firmware_verifier.core import actions
from firmware_verifier.core.results import OperationResult
from firmware_verifier.errors import ErrorCode
from firmware_verifier.manifest import Manifest
from firmware_verifier.platforms import get_platform

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("LIB_DIR", "MANIFEST_URL", "DUMP_PATH", "AVRDUDE", "AVRDUDE_CONF", "DEBUG"):
        monkeypatch.delenv("FIRMWARE_VERIFIER_" + name, raising=False)


@pytest.fixture
def lib_dir(tmp_path, manifest_doc):
    (tmp_path / "manifest.json").write_text(json.dumps(manifest_doc))
    return tmp_path


def _scripted(monkeypatch, results):
    """Replace the serial transport and verify_params with canned results."""
    calls = []

    class Transport:
        @classmethod
        def for_platform(cls, port, platform):
            return cls()

    def fake_verify(transport, platform, manifest, clock=None):
        calls.append(manifest)
        return results[len(calls) - 1]

    monkeypatch.setattr(cli, "SerialTransport", Transport)
    monkeypatch.setattr(actions, "verify_params", fake_verify)
    return calls


def _failed(code):
    return OperationResult.failure("verify_params", "failed", code)


class TestHelpers:

    def test_resolve_platform(self):
        """Platform names are matched case-insensitively."""
        assert cli.resolve_platform("Arduino") is get_platform("arduino")

    def test_resolve_unknown_platform(self):
        """Unknown platforms become a typer usage error."""
        with pytest.raises(typer.BadParameter):
            cli.resolve_platform("esp32")

    def test_missing_local_manifest_is_unloaded(self, tmp_path):
        """Without lib/manifest.json the active manifest is unloaded."""
        config = cli.build_config(lib_dir=tmp_path)
        assert not cli.load_active_manifest(config, use_remote=False).is_loaded()

    def test_local_manifest_is_active(self, lib_dir):
        """The local manifest is used when --remote is not given."""
        config = cli.build_config(lib_dir=lib_dir)
        assert cli.load_active_manifest(config, use_remote=False).timestamp == 1500000000

    def test_result_to_json_carries_messages(self):
        """JSON output includes each coded error with its remediation."""
        doc = json.loads(cli.result_to_json(_failed(ErrorCode.E_CHANNEL)))

        assert doc["ok"] is False
        assert doc["codes"] == ["E_CHANNEL"]
        assert doc["messages"][0]["code"] == "E_CHANNEL"
        assert doc["messages"][0]["level"] == "error"
        assert doc["messages"][0]["remediation"]


class TestCommands:

    def test_verify_params_failure_exits_nonzero(self, monkeypatch, lib_dir):
        """A failed parameters check exits with status 1."""
        calls = _scripted(monkeypatch, [_failed(ErrorCode.E_ILLEGAL_MOD)])
        result = runner.invoke(cli.app, ["verify-params", "-p", "COM3", "--lib-dir", str(lib_dir)])

        assert result.exit_code == 1
        assert calls[0].is_loaded()

    def test_verify_params_success(self, monkeypatch, lib_dir):
        """A passing parameters check prints the firmware and exits 0."""
        ok = OperationResult.success("verify_params", firmware="stock-1.0")
        _scripted(monkeypatch, [ok])
        result = runner.invoke(cli.app, ["verify-params", "-p", "COM3", "--lib-dir", str(lib_dir)])

        assert result.exit_code == 0
        assert "stock-1.0" in result.output

    def test_verify_params_prints_summary(self, monkeypatch, lib_dir):
        """Default output ends with the compact result summary."""
        _scripted(monkeypatch, [_failed(ErrorCode.E_ILLEGAL_MOD)])
        result = runner.invoke(cli.app, ["verify-params", "-p", "COM3", "--lib-dir", str(lib_dir)])

        assert "[FAILED] verify_params" in result.output
        assert "[E_ILLEGAL_MOD] failed" in result.output

    def test_verify_params_retries_channel_errors(self, monkeypatch, lib_dir):
        """--retries repeats the handshake after a channel error."""
        ok = OperationResult.success("verify_params", firmware="stock-1.0")
        calls = _scripted(monkeypatch, [_failed(ErrorCode.E_CHANNEL), ok])
        result = runner.invoke(
            cli.app, ["verify-params", "-p", "COM3", "--retries", "1", "--lib-dir", str(lib_dir)]
        )

        assert result.exit_code == 0
        assert len(calls) == 2

    def test_verify_stops_after_param_failure(self, monkeypatch, lib_dir):
        """verify never dumps memory once the parameters step fails."""
        _scripted(monkeypatch, [_failed(ErrorCode.E_UNKNOWN_MOD)])

        def no_image_check(*args, **kwargs):
            raise AssertionError("image check must not run")

        monkeypatch.setattr(actions, "verify_firmware_image", no_image_check)
        result = runner.invoke(cli.app, ["verify", "-p", "COM3", "--lib-dir", str(lib_dir), "--json"])

        assert result.exit_code == 1
        assert '"verify_device"' in result.output
        assert '"E_UNKNOWN_MOD"' in result.output
        assert '"messages"' in result.output

    def test_verify_runs_image_check_after_params(self, monkeypatch, lib_dir):
        """verify hands the detected firmware to the image check."""
        ok = OperationResult.success("verify_params", firmware="stock-1.0")
        _scripted(monkeypatch, [ok])
        seen = []

        def fake_image_check(firmware_name, manifest, dumper, port, config=None):
            seen.append(firmware_name)
            return OperationResult.success("verify_firmware_image", firmware=firmware_name)

        monkeypatch.setattr(actions, "verify_firmware_image", fake_image_check)
        result = runner.invoke(cli.app, ["verify", "-p", "COM3", "--lib-dir", str(lib_dir)])

        assert result.exit_code == 0
        assert seen == ["stock-1.0"]
        assert "[VERIFIED] verify_device" in result.output
        assert "Controller verified: stock-1.0" in result.output

    def test_verify_retries_before_giving_up(self, monkeypatch, lib_dir):
        """verify retries malformed responses twice by default."""
        calls = _scripted(monkeypatch, [_failed(ErrorCode.E_MALFORMED_RESPONSE)] * 3)
        result = runner.invoke(cli.app, ["verify", "-p", "COM3", "--lib-dir", str(lib_dir)])

        assert result.exit_code == 1
        assert len(calls) == 3
        assert "Controller NOT verified" in result.output

    def test_unknown_platform_is_usage_error(self, lib_dir):
        """An unknown --platform exits with typer's usage status."""
        result = runner.invoke(cli.app, ["verify-params", "-p", "COM3", "--platform", "esp32"])
        assert result.exit_code == 2

    def test_manifest_show(self, lib_dir):
        """manifest-show lists the mods of the local manifest."""
        result = runner.invoke(cli.app, ["manifest-show", "--lib-dir", str(lib_dir)])
        assert result.exit_code == 0
        assert "turbo" in result.output

    def test_manifest_show_without_manifest(self, tmp_path):
        """manifest-show fails when no manifest is loaded."""
        result = runner.invoke(cli.app, ["manifest-show", "--lib-dir", str(tmp_path)])
        assert result.exit_code == 1

    def test_manifest_update_saves_newer_copy(self, monkeypatch, lib_dir, manifest_doc):
        """A newer remote manifest replaces the local one after a backup."""
        manifest_doc["timestamp"] = 1600000000
        monkeypatch.setattr(cli, "fetch_remote_manifest", lambda url, timeout: Manifest.from_dict(manifest_doc))

        result = runner.invoke(cli.app, ["manifest-update", "--lib-dir", str(lib_dir)])

        assert result.exit_code == 0
        assert json.loads((lib_dir / "manifest.json").read_text())["timestamp"] == 1600000000
        assert json.loads((lib_dir / "manifest_old.json").read_text())["timestamp"] == 1500000000

    def test_manifest_update_keeps_current_copy(self, monkeypatch, lib_dir, manifest):
        """A remote manifest that is not newer leaves the local one alone."""
        monkeypatch.setattr(cli, "fetch_remote_manifest", lambda url, timeout: manifest)
        result = runner.invoke(cli.app, ["manifest-update", "--lib-dir", str(lib_dir)])

        assert result.exit_code == 0
        assert not (lib_dir / "manifest_old.json").exists()

    def test_check_hex(self, tmp_path, hex_line):
        """check-hex exits 1 only when a record checksum is wrong."""
        path = tmp_path / "image.hex"
        path.write_text(hex_line(0, [1, 2, 3]) + "\n:00000001FF\n")

        assert runner.invoke(cli.app, ["check-hex", str(path)]).exit_code == 0

        path.write_text(hex_line(0, [1, 2, 3])[:-2] + "00\n")
        assert runner.invoke(cli.app, ["check-hex", str(path)]).exit_code == 1

    def test_hash(self, tmp_path):
        """hash prints the file's SHA-256."""
        path = tmp_path / "image.hex"
        path.write_bytes(b":00000001FF\n")
        result = runner.invoke(cli.app, ["hash", str(path)])

        assert result.exit_code == 0
        assert hashlib.sha256(b":00000001FF\n").hexdigest() in result.output

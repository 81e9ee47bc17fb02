"""
Tests for CLI commands — operations, plans, KDKs, presets, and the ledger.

Commands are invoked with fakes pre-seeded in ``ctx.obj``: a scripted
host runner, a destination probe and a mock privilege boundary.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from rootpatch.adapters.privilege.base import BoundaryResult
from rootpatch.adapters.privilege.mock import MockBoundary
from rootpatch.core.persistence.audit import AuditWriter
from rootpatch.core.services.patcher.data import constants as C
from rootpatch.main import cli
from tests.fakes import FakeHost, ProbeSet


def _invoke(args, settings, *, host=None, boundary=None, probe=None, input=None, mock=False):
    obj = {
        "settings": settings,
        "runner": host or FakeHost(),
        "probe": probe or ProbeSet(),
    }
    if not mock:
        obj["boundary"] = boundary if boundary is not None else MockBoundary()
    runner = CliRunner()
    return runner.invoke(cli, args, obj=obj, input=input)


@pytest.fixture
def payload(tmp_path: Path) -> str:
    kext = tmp_path / "payload" / "Foo.kext"
    kext.mkdir(parents=True)
    return str(kext)


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "reseal its snapshot" in result.output
        for command in ("install", "merge-kdk", "rebuild-cache", "snapshot", "presets", "kdk"):
            assert command in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_explicit_config(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yml"), "kdk", "list"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_config_file_is_used(self, tmp_path: Path):
        kdks = tmp_path / "KDKs"
        (kdks / "KDK_14.2_23C64.kdk").mkdir(parents=True)
        config = tmp_path / "rootpatch.yml"
        config.write_text(f"kdk_dir: {kdks}\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "kdk", "list"])

        assert result.exit_code == 0
        assert "KDK_14.2_23C64.kdk" in result.output


# ── Operations ───────────────────────────────────────────────────────


class TestInstallCommand:
    def test_dry_run_json(self, settings, payload):
        boundary = MockBoundary()
        result = _invoke(
            ["install", payload, "--backup", "--dry-run", "--json"],
            settings, boundary=boundary,
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        labels = [s["label"] for s in data["steps"]]
        assert labels[0] == "Create mount point"
        assert "Install Foo.kext" in labels
        assert data["volume"]["resolved_identifier"] == "disk3s1"
        assert data["script"].startswith("echo '==> Create mount point'")
        assert boundary.calls == 0

    def test_dry_run_text(self, settings, payload):
        result = _invoke(["install", payload, "--dry-run"], settings)
        assert result.exit_code == 0
        assert "Plan for disk3s1" in result.output
        assert "[install] Install Foo.kext" in result.output

    def test_runs_through_boundary(self, settings, payload):
        boundary = MockBoundary()
        result = _invoke(
            ["install", payload, "--no-restart-prompt"], settings, boundary=boundary,
        )
        assert result.exit_code == 0, result.output
        assert "install completed" in result.output
        assert "Restart required" in result.output
        assert boundary.calls == 1

    def test_merge_option(self, settings, tmp_path):
        probe = ProbeSet("/System/Library/Extensions")
        result = _invoke(
            ["install", "--merge", f"/System/Library/Extensions:{tmp_path}", "--dry-run", "--json"],
            settings, probe=probe,
        )
        assert result.exit_code == 0, result.output
        steps = json.loads(result.output)["steps"]
        merge = [s for s in steps if s["kind"] == "merge"]
        assert len(merge) == 1
        assert merge[0]["continue_on_failure"]

    def test_bad_merge_spec(self, settings):
        result = _invoke(["install", "--merge", "no-colon"], settings)
        assert result.exit_code == 2
        assert "DEST:SOURCE" in result.output

    def test_nothing_selected(self, settings):
        boundary = MockBoundary()
        result = _invoke(["install", "--no-restart-prompt"], settings, boundary=boundary)
        assert result.exit_code == 1
        assert "Nothing to install" in result.output
        assert boundary.calls == 0

    def test_restart_prompt_declined(self, settings, payload):
        result = _invoke(["install", payload], settings, input="n\n")
        assert result.exit_code == 0, result.output
        assert "Restart now to apply changes?" in result.output

    def test_relative_paths_compiled_absolute(self, settings, tmp_path, monkeypatch):
        (tmp_path / "Foo.kext").mkdir()
        (tmp_path / "Extras").mkdir()
        (tmp_path / "KDK_14.2.kdk").mkdir()
        monkeypatch.chdir(tmp_path)
        probe = ProbeSet("/System/Library/Extensions")

        result = _invoke(
            ["-q", "install", "Foo.kext", "--merge", "/System/Library/Extensions:./Extras",
             "--kdk", "KDK_14.2.kdk", "--dry-run", "--json"],
            settings, probe=probe,
        )

        assert result.exit_code == 0, result.output
        root = tmp_path.resolve()
        steps = {s["kind"]: s for s in json.loads(result.output)["steps"]}
        assert steps["install"]["argv"][-2] == str(root / "Foo.kext")
        assert steps["merge"]["argv"][-2] == f"{root / 'Extras'}/"
        assert steps["merge_kdk"]["argv"][-2].startswith(str(root / "KDK_14.2.kdk") + "/")

    def test_missing_payload_rejected(self, settings, tmp_path):
        boundary = MockBoundary()
        result = _invoke(
            ["install", str(tmp_path / "Nope.kext"), "--no-restart-prompt"],
            settings, boundary=boundary,
        )
        assert result.exit_code == 2
        assert "does not exist" in result.output
        assert boundary.calls == 0

    def test_missing_merge_source_rejected(self, settings, tmp_path):
        result = _invoke(
            ["install", "--merge", f"/System/Library/Extensions:{tmp_path / 'nope'}"], settings,
        )
        assert result.exit_code == 2
        assert "is not a directory" in result.output


class TestSimpleOperations:
    def test_rebuild_cache_json(self, settings):
        result = _invoke(["rebuild-cache", "--json"], settings)
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "ok"
        assert data["kind"] == "rebuild_cache"
        assert data["requires_restart"]

    def test_failure_exits_nonzero_with_diagnostic(self, settings):
        boundary = MockBoundary([BoundaryResult.failure("bless: Couldn't create snapshot", 1)])
        result = _invoke(["snapshot", "create", "--no-restart-prompt"], settings, boundary=boundary)

        assert result.exit_code == 1
        assert "create_snapshot failed" in result.output
        assert "Couldn't create snapshot" in result.output
        assert "undefined" in result.output

    def test_resolution_failure_json(self, settings):
        host = FakeHost()
        host.fail((C.DISKUTIL, "info", "-plist", "/"), stderr="Could not find disk: /")
        result = _invoke(["snapshot", "restore", "--json"], settings, host=host)
        assert result.exit_code == 1
        assert "ResolutionError" in result.output
        assert "Could not find disk" in result.output

    def test_snapshot_restore_dry_run(self, settings):
        result = _invoke(["snapshot", "restore", "--dry-run"], settings)
        assert result.exit_code == 0
        assert "Restore last sealed snapshot" in result.output

    def test_merge_kdk_dry_run(self, settings, tmp_path):
        kdk = tmp_path / "KDK_14.2_23C64.kdk"
        kdk.mkdir()
        result = _invoke(
            ["merge-kdk", str(kdk), "--dry-run", "--json"], settings,
        )
        assert result.exit_code == 0, result.output
        kinds = [s["kind"] for s in json.loads(result.output)["steps"]]
        assert kinds.index("merge_kdk") < kinds.index("rebuild_cache") < kinds.index("reseal")
        assert "verify" in kinds

    def test_merge_kdk_missing_path(self, settings, tmp_path):
        boundary = MockBoundary()
        result = _invoke(
            ["merge-kdk", str(tmp_path / "nope.kdk"), "--no-restart-prompt"],
            settings, boundary=boundary,
        )
        assert result.exit_code == 2
        assert "does not exist" in result.output
        assert boundary.calls == 0

    def test_mock_flag_selects_mock_boundary(self, settings):
        result = _invoke(
            ["--mock", "rebuild-cache", "--no-restart-prompt"], settings, mock=True,
        )
        assert result.exit_code == 0, result.output
        assert "rebuild_cache completed" in result.output

    def test_audit_written(self, settings):
        _invoke(["rebuild-cache", "--no-restart-prompt"], settings)
        entries = AuditWriter(settings.audit_file).read_all()
        assert len(entries) == 1
        assert entries[0].operation_type == "rebuild_cache"
        assert entries[0].status == "ok"


class TestPlanCommand:
    def test_plan_rebuild(self, settings):
        boundary = MockBoundary()
        result = _invoke(["plan", "rebuild_cache", "--json"], settings, boundary=boundary)
        assert result.exit_code == 0, result.output
        kinds = [s["kind"] for s in json.loads(result.output)["steps"]]
        assert kinds == ["prepare", "resolve", "rebuild_cache", "unmount"]
        assert boundary.calls == 0

    def test_plan_merge_without_kdk(self, settings):
        result = _invoke(["plan", "merge_kdk"], settings)
        assert result.exit_code == 1
        assert "No KDK selected" in result.output

    def test_plan_legacy_system(self, settings):
        host = FakeHost(origin="disk1s5", sealed=False, os_version="10.15.7")
        result = _invoke(["plan", "create_snapshot", "--json"], settings, host=host)
        assert result.exit_code == 0, result.output
        labels = [s["label"] for s in json.loads(result.output)["steps"]]
        assert labels[0] == "Remount / read-write"
        assert "Unmount root volume" not in labels

    def test_unknown_kind(self, settings):
        result = _invoke(["plan", "defragment"], settings)
        assert result.exit_code == 2


class TestRestartCommand:
    def test_yes(self, settings):
        host = FakeHost()
        host.set(
            (C.OSASCRIPT, "-e", C.RESTART_APPLESCRIPT),
            {"ok": True, "stdout": "", "stderr": "", "returncode": 0},
        )
        result = _invoke(["restart", "--yes"], settings, host=host)
        assert result.exit_code == 0, result.output
        assert "Restarting" in result.output
        assert [C.OSASCRIPT, "-e", C.RESTART_APPLESCRIPT] in host.calls

    def test_declined(self, settings):
        host = FakeHost()
        result = _invoke(["restart"], settings, host=host, input="n\n")
        assert result.exit_code == 0
        assert "postponed" in result.output
        assert all(call[0] != C.OSASCRIPT for call in host.calls)

    def test_failure(self, settings):
        result = _invoke(["restart", "--yes", "--json"], settings)
        assert result.exit_code == 1
        assert '"restarted": false' in result.output


# ── KDK ──────────────────────────────────────────────────────────────


class TestKdkCommand:
    def test_list_json(self, settings, tmp_path: Path):
        (tmp_path / "KDKs" / "KDK_14.2_23C64.kdk").mkdir(parents=True)
        result = _invoke(["kdk", "list", "--json"], settings)
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["directory_exists"]
        assert [Path(p).name for p in data["items"]] == ["KDK_14.2_23C64.kdk"]

    def test_missing_directory(self, settings):
        result = _invoke(["kdk", "list"], settings)
        assert result.exit_code == 0
        assert "does not exist" in result.output
        assert C.KDK_DOWNLOAD_URL in result.output

    def test_explicit_dir_empty(self, settings, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = _invoke(["kdk", "list", "--dir", str(empty)], settings)
        assert "No KDK found" in result.output


# ── Presets ──────────────────────────────────────────────────────────


class TestPresetsCommand:
    @pytest.fixture
    def installed_preset(self, settings):
        settings.presets_path.mkdir(parents=True)
        (settings.presets_path / "gpu.json").write_text(json.dumps({
            "name": "Legacy GPU",
            "author": "tester",
            "version": "1.0",
            "files": [
                {"source": "Foo.kext", "conflictResolution": "backup", "systemVersion": "14.2"},
                {"source": "Gone.kext", "conflictResolution": "skip", "systemVersion": "14.2"},
            ],
        }))
        (settings.preset_files_path / "14.2" / "Foo.kext").mkdir(parents=True)
        return settings

    def test_list_empty(self, settings):
        result = _invoke(["presets", "list"], settings)
        assert result.exit_code == 0
        assert "No presets" in result.output

    def test_list_json(self, installed_preset):
        result = _invoke(["presets", "list", "--json"], installed_preset)
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data[0]["name"] == "Legacy GPU"
        assert data[0]["files"][0]["conflictResolution"] == "backup"

    def test_list_text(self, installed_preset):
        result = _invoke(["presets", "list"], installed_preset)
        assert "Legacy GPU 1.0" in result.output
        assert "Versions: 14.2" in result.output

    def test_apply_unknown(self, settings):
        result = _invoke(["presets", "apply", "Nope"], settings)
        assert result.exit_code == 1
        assert "Unknown preset" in result.output

    def test_apply_dry_run(self, installed_preset):
        result = _invoke(
            ["-q", "presets", "apply", "Legacy GPU", "--dry-run", "--json"], installed_preset,
        )
        assert result.exit_code == 0, result.output
        labels = [s["label"] for s in json.loads(result.output)["steps"]]
        assert "Install Foo.kext" in labels
        assert "Install Gone.kext" not in labels

    def test_apply_runs_and_warns(self, installed_preset):
        boundary = MockBoundary()
        result = _invoke(
            ["presets", "apply", "Legacy GPU", "--no-restart-prompt"],
            installed_preset, boundary=boundary,
        )
        assert result.exit_code == 0, result.output
        assert "warning_file_not_found" in result.output
        assert boundary.calls == 1

        entry = AuditWriter(installed_preset.audit_file).read_all()[0]
        assert entry.preset == "Legacy GPU"

    def test_install_resources(self, settings, tmp_path: Path):
        bundle = tmp_path / "bundle"
        (bundle / "Presets").mkdir(parents=True)
        (bundle / "Presets" / "gpu.json").write_text(json.dumps({"name": "GPU"}))
        (bundle / "PresetFiles" / "13.6").mkdir(parents=True)

        result = _invoke(["presets", "install-resources", str(bundle), "--json"], settings)

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"presets": 1, "versions": ["13.6"]}
        assert (settings.presets_path / "gpu.json").is_file()


# ── Ledger ───────────────────────────────────────────────────────────


class TestLogCommand:
    def test_empty(self, settings):
        result = _invoke(["log"], settings)
        assert result.exit_code == 0
        assert "No operations recorded yet" in result.output

    def test_after_operations(self, settings):
        _invoke(["rebuild-cache", "--no-restart-prompt"], settings)
        _invoke(["install", "--no-restart-prompt"], settings)

        result = _invoke(["log", "--json"], settings)
        assert result.exit_code == 0, result.output
        statuses = [e["status"] for e in json.loads(result.output)]
        assert statuses == ["ok", "rejected"]

        text = _invoke(["log", "-n", "1"], settings).output
        assert "rejected" in text
        assert "PreconditionError" in text

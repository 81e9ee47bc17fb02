"""
Tests for preset loading, expansion, and resource installation.
"""

import json
import textwrap
from pathlib import Path

import pytest

from rootpatch.core.errors import PreconditionError, PresetDataError
from rootpatch.core.models.preset import ConflictResolution, PresetDefinition, PresetFile
from rootpatch.core.services.patcher.resolver.presets import (
    PresetExpander,
    find_preset,
    install_preset_resources,
    load_preset_file,
    load_presets,
)


def _preset(*files: PresetFile, **kw) -> PresetDefinition:
    return PresetDefinition(name=kw.pop("name", "Test"), files=files, **kw)


def _file(source: str, policy: str = "skip", version: str = "14.2", destination: str = "") -> PresetFile:
    return PresetFile.model_validate({
        "source": source,
        "destination": destination,
        "conflictResolution": policy,
        "systemVersion": version,
    })


@pytest.fixture
def files_root(tmp_path: Path) -> Path:
    root = tmp_path / "PresetFiles"
    (root / "14.2" / "AMDRadeonX6000.kext").mkdir(parents=True)
    (root / "14.2" / "Metal.framework").mkdir(parents=True)
    (root / "14.2" / "Extensions").mkdir(parents=True)
    return root


# ── Expansion ────────────────────────────────────────────────────────


class TestPresetExpander:
    def test_routes_files_and_merges(self, files_root, event_log):
        preset = _preset(
            _file("AMDRadeonX6000.kext", "backup"),
            _file("Extensions", "merge", destination="/System/Library/Extensions"),
        )
        req = PresetExpander(files_root, event_log).expand(preset)

        assert req.files == [str(files_root / "14.2" / "AMDRadeonX6000.kext")]
        assert len(req.merge_operations) == 1
        merge = req.merge_operations[0]
        assert merge.source == str(files_root / "14.2" / "Extensions")
        assert merge.destination == "/System/Library/Extensions"
        assert req.preset_name == "Test"

    def test_global_flags_are_coarsened(self, files_root):
        preset = _preset(
            _file("AMDRadeonX6000.kext", "overwrite"),
            _file("Metal.framework", "skip"),
        )
        req = PresetExpander(files_root).expand(preset)
        assert req.force_overwrite
        assert not req.backup_existing

    def test_backup_flag(self, files_root):
        req = PresetExpander(files_root).expand(_preset(_file("Metal.framework", "backup")))
        assert req.backup_existing
        assert not req.force_overwrite

    def test_missing_version_dir_is_warning(self, files_root, event_log):
        preset = _preset(_file("AMDRadeonX6000.kext", version="15.0"))
        req = PresetExpander(files_root, event_log).expand(preset)

        assert req.files == []
        assert req.merge_operations == []
        assert event_log.keys() == ["warning_version_not_found"]
        assert event_log.snapshot()[0].parameters == ("15.0",)

    def test_missing_file_is_warning_rest_proceeds(self, files_root, event_log):
        preset = _preset(_file("Gone.kext"), _file("Metal.framework"))
        req = PresetExpander(files_root, event_log).expand(preset)

        assert req.files == [str(files_root / "14.2" / "Metal.framework")]
        assert event_log.keys() == ["warning_file_not_found"]

    def test_flags_carried(self, files_root):
        preset = _preset(_file("Metal.framework"), rebuildCache=True)
        req = PresetExpander(files_root).expand(
            preset, install_to_legacy=True, install_to_private_frameworks=True,
        )
        assert req.rebuild_cache
        assert req.install_to_legacy_extensions_dir
        assert req.install_to_private_frameworks

    def test_requires_kdk_without_kdk(self, files_root, event_log):
        preset = _preset(_file("Metal.framework"), requiresKDK=True)
        with pytest.raises(PreconditionError) as exc:
            PresetExpander(files_root, event_log).expand(preset)
        assert exc.value.key == "error_preset_requires_kdk"
        assert "error_preset_requires_kdk" in event_log.keys()

    def test_requires_kdk_with_kdk_merges(self, files_root):
        preset = _preset(_file("Metal.framework"), requiresKDK=True)
        req = PresetExpander(files_root).expand(preset, kdk_path="/Library/Developer/KDKs/K.kdk")
        assert req.merge_kdk
        assert req.selected_kdk_path == "/Library/Developer/KDKs/K.kdk"

    def test_kdk_ignored_when_not_required(self, files_root):
        req = PresetExpander(files_root).expand(
            _preset(_file("Metal.framework")), kdk_path="/Library/Developer/KDKs/K.kdk",
        )
        assert not req.merge_kdk
        assert req.selected_kdk_path is None


# ── Loading ──────────────────────────────────────────────────────────


class TestLoadPresets:
    def test_json_and_yaml_sorted_by_name(self, tmp_path: Path):
        (tmp_path / "b.json").write_text(json.dumps({
            "name": "Zeta",
            "author": "me",
            "requiresKDK": True,
            "files": [{
                "source": "A.kext",
                "destination": "/System/Library/Extensions",
                "conflictResolution": "overwrite",
                "systemVersion": "14.2",
            }],
            "rebuildCache": True,
            "createSnapshot": False,
        }))
        (tmp_path / "a.yml").write_text(textwrap.dedent("""\
            name: Alpha
            description: YAML preset
            files:
              - source: Metal.framework
                conflictResolution: backup
                systemVersion: "13.6"
        """))
        (tmp_path / "README.md").write_text("ignored")

        presets = load_presets(tmp_path)

        assert [p.name for p in presets] == ["Alpha", "Zeta"]
        zeta = presets[1]
        assert zeta.requires_kdk
        assert zeta.rebuild_cache
        assert zeta.files[0].conflict_resolution == ConflictResolution.OVERWRITE
        assert presets[0].system_versions == ["13.6"]

    def test_undecodable_file_skipped(self, tmp_path: Path):
        (tmp_path / "bad.json").write_text("{not json")
        (tmp_path / "bad2.json").write_text(json.dumps({"author": "no name"}))
        (tmp_path / "good.json").write_text(json.dumps({"name": "Good"}))
        assert [p.name for p in load_presets(tmp_path)] == ["Good"]

    def test_missing_directory(self, tmp_path: Path):
        assert load_presets(tmp_path / "missing") == []

    def test_load_preset_file_rejects_list(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(PresetDataError):
            load_preset_file(path)

    def test_find_preset(self):
        presets = [PresetDefinition(name="A"), PresetDefinition(name="B")]
        assert find_preset(presets, "B").name == "B"
        assert find_preset(presets, "C") is None

    def test_uses_policy(self):
        preset = _preset(_file("x", "merge"))
        assert preset.uses_policy(ConflictResolution.MERGE)
        assert not preset.uses_policy(ConflictResolution.BACKUP)


# ── Resource installation ────────────────────────────────────────────


class TestInstallPresetResources:
    def _bundle(self, root: Path) -> Path:
        (root / "Presets").mkdir(parents=True)
        (root / "Presets" / "gpu.json").write_text(json.dumps({"name": "GPU"}))
        (root / "PresetFiles" / "14.2" / "Foo.kext").mkdir(parents=True)
        return root

    def test_copies_both_trees(self, tmp_path: Path):
        source = self._bundle(tmp_path / "bundle")
        presets_dir = tmp_path / "support" / "Presets"
        files_dir = tmp_path / "support" / "PresetFiles"

        result = install_preset_resources(source, presets_dir, files_dir)

        assert (presets_dir / "gpu.json").is_file()
        assert (files_dir / "14.2" / "Foo.kext").is_dir()
        assert result == {"presets": 1, "versions": ["14.2"]}

    def test_replaces_existing_tree(self, tmp_path: Path):
        source = self._bundle(tmp_path / "bundle")
        presets_dir = tmp_path / "Presets"
        presets_dir.mkdir()
        (presets_dir / "stale.json").write_text("{}")

        install_preset_resources(source, presets_dir, tmp_path / "PresetFiles")

        assert not (presets_dir / "stale.json").exists()

    def test_missing_tree_rejected(self, tmp_path: Path):
        (tmp_path / "bundle" / "Presets").mkdir(parents=True)
        with pytest.raises(PresetDataError):
            install_preset_resources(tmp_path / "bundle", tmp_path / "P", tmp_path / "F")

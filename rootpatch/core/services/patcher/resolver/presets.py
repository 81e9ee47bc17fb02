"""
L2 Resolver — Preset loading and expansion.

A preset names payload files relative to a per-system-version directory
under the preset files root:

    <files_root>/
        13.4/
            AMDRadeonX6000.kext
        14.0/
            ...

Expansion turns a preset into an ``InstallRequest``.  Missing version
directories and missing files are warnings, not failures: the rest of
the preset still applies.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path

import yaml
from pydantic import ValidationError

from rootpatch.core.errors import PreconditionError, PresetDataError
from rootpatch.core.models.preset import ConflictResolution, PresetDefinition
from rootpatch.core.models.request import InstallRequest, MergeOperation
from rootpatch.core.observability.event_log import EventLog

logger = logging.getLogger(__name__)

PRESET_SUFFIXES = (".json", ".yml", ".yaml")
PRESETS_TREE = "Presets"
PRESET_FILES_TREE = "PresetFiles"


# ═══════════════════════════════════════════════════════════════════════
#  Loading
# ═══════════════════════════════════════════════════════════════════════


def load_preset_file(path: Path) -> PresetDefinition:
    """Decode one preset file.

    Raises:
        PresetDataError: If the file cannot be read, parsed or validated.
    """
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise PresetDataError(f"Cannot read preset {path.name}: {e}") from e

    if not isinstance(raw, dict):
        raise PresetDataError(f"Preset {path.name} must be a mapping")

    try:
        return PresetDefinition.model_validate(raw)
    except ValidationError as e:
        raise PresetDataError(f"Invalid preset {path.name}: {e}") from e


def load_presets(presets_dir: Path | str) -> list[PresetDefinition]:
    """Load every preset in ``presets_dir``, sorted by name.

    Undecodable files are skipped with a warning.  A missing directory
    yields an empty list.
    """
    directory = Path(presets_dir)
    if not directory.is_dir():
        logger.info("Presets directory not found: %s", directory)
        return []

    presets: list[PresetDefinition] = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix not in PRESET_SUFFIXES:
            continue
        try:
            presets.append(load_preset_file(path))
        except PresetDataError as e:
            logger.warning("Skipping preset: %s", e)

    return sorted(presets, key=lambda p: p.name)


def find_preset(presets: list[PresetDefinition], name: str) -> PresetDefinition | None:
    for preset in presets:
        if preset.name == name:
            return preset
    return None


# ═══════════════════════════════════════════════════════════════════════
#  Expansion
# ═══════════════════════════════════════════════════════════════════════


class PresetExpander:
    """Expand presets into install requests.

    Args:
        files_root: Directory holding one subdirectory per system version.
        event_log: Receives the per-file warnings.
    """

    def __init__(self, files_root: Path | str, event_log: EventLog | None = None) -> None:
        self.files_root = Path(files_root)
        self._events = event_log

    def version_dir(self, system_version: str) -> Path:
        return self.files_root / system_version

    def expand(
        self,
        preset: PresetDefinition,
        *,
        kdk_path: str | None = None,
        install_to_legacy: bool = False,
        install_to_private_frameworks: bool = False,
    ) -> InstallRequest:
        """Build the install request for ``preset``.

        Merge-policy files go to ``merge_operations``, everything else
        to ``files``.  ``force_overwrite`` / ``backup_existing`` are set
        when ANY file of the preset declares that policy.

        Raises:
            PreconditionError: The preset requires a KDK and none was given.
        """
        if preset.requires_kdk and not kdk_path:
            self._log("error_preset_requires_kdk", preset.name)
            raise PreconditionError(
                f"Preset '{preset.name}' requires a KDK but none is selected.",
                key="error_preset_requires_kdk",
            )

        files: list[str] = []
        merges: list[MergeOperation] = []

        for entry in preset.files:
            version_dir = self.version_dir(entry.system_version)
            if not version_dir.is_dir():
                self._warn("warning_version_not_found", entry.system_version)
                continue

            source = version_dir / entry.source
            if not source.exists():
                self._warn(
                    "warning_file_not_found", entry.source, f"({entry.system_version})",
                )
                continue

            if entry.conflict_resolution == ConflictResolution.MERGE:
                merges.append(MergeOperation(source=str(source), destination=entry.destination))
            else:
                files.append(str(source))

        logger.info(
            "Expanded preset %s: %d files, %d merges", preset.name, len(files), len(merges),
        )
        return InstallRequest(
            files=files,
            merge_operations=merges,
            force_overwrite=preset.uses_policy(ConflictResolution.OVERWRITE),
            backup_existing=preset.uses_policy(ConflictResolution.BACKUP),
            rebuild_cache=preset.rebuild_cache,
            install_to_legacy_extensions_dir=install_to_legacy,
            install_to_private_frameworks=install_to_private_frameworks,
            selected_kdk_path=kdk_path if preset.requires_kdk else None,
            merge_kdk=bool(preset.requires_kdk and kdk_path),
            preset_name=preset.name,
        )

    def _warn(self, key: str, *params: str) -> None:
        logger.warning("%s: %s", key, " ".join(params))
        self._log(key, *params)

    def _log(self, key: str, *params: str) -> None:
        if self._events is not None:
            self._events.append(key, *params)


# ═══════════════════════════════════════════════════════════════════════
#  Resource installation
# ═══════════════════════════════════════════════════════════════════════


def install_preset_resources(
    source_root: Path | str,
    presets_dir: Path | str,
    files_dir: Path | str,
) -> dict:
    """Copy a resource bundle's preset trees into place.

    ``source_root`` must contain both ``Presets/`` and ``PresetFiles/``;
    existing target trees are replaced.

    Returns:
        ``{"presets": N, "versions": [...]}`` describing what landed.

    Raises:
        PresetDataError: A source tree is missing or the copy failed.
    """
    root = Path(source_root)
    src_presets = root / PRESETS_TREE
    src_files = root / PRESET_FILES_TREE
    if not src_presets.is_dir() or not src_files.is_dir():
        raise PresetDataError(
            f"{root} must contain both {PRESETS_TREE}/ and {PRESET_FILES_TREE}/"
        )

    targets = ((src_presets, Path(presets_dir)), (src_files, Path(files_dir)))
    for source, target in targets:
        try:
            if target.exists():
                shutil.rmtree(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source, target)
        except OSError as e:
            raise PresetDataError(f"Failed to copy {source} → {target}: {e}") from e
        logger.info("Installed %s → %s", source, target)

    return {
        "presets": len([p for p in Path(presets_dir).iterdir() if p.suffix in PRESET_SUFFIXES]),
        "versions": sorted(p.name for p in Path(files_dir).iterdir() if p.is_dir()),
    }

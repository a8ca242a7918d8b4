"""Device profile loading and validation for YAML-based gmcctl profiles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from gmcctl.core.errors import ProfileLoadError, ProfileSelectionError, ProfileValidationError
from gmcctl.core.model import DeviceProfile

DEFAULT_PROFILE_ID = "gmc300"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, DeviceProfile]
    warnings: tuple[str, ...]

    def get(self, profile_id: str | None = None) -> DeviceProfile:
        profile_id = profile_id or DEFAULT_PROFILE_ID
        profile = self.profiles.get(profile_id)
        if profile is None:
            available = ", ".join(sorted(self.profiles))
            raise ProfileSelectionError(f"Unknown profile '{profile_id}'. Available: {available}")
        return profile


def _load_schema_validator() -> Any:
    schema_text = resources.files("gmcctl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "gmcctl/profiles", xdg_data / "gmcctl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _build_profile(doc: dict[str, Any], source: Path | Traversable, validator: Any) -> DeviceProfile:
    try:
        validator.validate(doc)
    except ValidationError as exc:
        location = ".".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ProfileValidationError(f"{source}: {location}: {exc.message}") from exc

    line = doc.get("line", {})
    protocol = doc.get("protocol", {})
    return DeviceProfile(
        id=doc["id"],
        name=doc["name"],
        baudrate=int(line.get("baudrate", 57600)),
        read_timeout_s=float(line.get("read_timeout_s", 0.5)),
        write_timeout_s=float(line.get("write_timeout_s", 1.0)),
        flush_max_bytes=int(protocol.get("flush_max_bytes", 10)),
        legacy_firmware_below=float(protocol.get("legacy_firmware_below", 2.23)),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("gmcctl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    validator = _load_schema_validator()
    profiles: dict[str, DeviceProfile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        profile = _build_profile(_read_yaml(path), path, validator)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        profile = _build_profile(_read_yaml(path), path, validator)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))

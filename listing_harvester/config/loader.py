"""Configuration loading helpers for listing-harvester."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import GlobalConfig, SourceDescriptor

GLOBAL_CONFIG_FILENAME = "global_config.yaml"
CATALOG_FILENAME = "catalog.yaml"
HOME_ENV_VAR = "LISTING_HARVESTER_HOME"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


def default_catalog_path() -> Path:
    """Catalog shipped with the package, used until a project catalog exists."""

    return Path(__file__).resolve().parents[1] / "templates" / CATALOG_FILENAME


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    history_dir: Path | None = None
    exports_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV_VAR)
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path.cwd()).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.history_dir = (self.data_dir / "history").resolve()
        self.exports_dir = (self.data_dir / "exports").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.history_dir, self.exports_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME

    def catalog_path(self) -> Path:
        return self.data_dir / CATALOG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None

    # ------------------------------------------------------------------
    # Global configuration helpers
    # ------------------------------------------------------------------
    def load_global_config(self) -> GlobalConfig:
        if self._global_cache is not None:
            return self._global_cache
        path = self.locator.global_config_path()
        if path.exists():
            try:
                global_cfg = GlobalConfig.model_validate(_read_file(path))
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid global configuration {path}: {exc}") from exc
        else:
            global_cfg = GlobalConfig()
            self.save_global_config(global_cfg)
        self._global_cache = global_cfg
        return global_cfg

    def save_global_config(self, config: GlobalConfig) -> None:
        path = self.locator.global_config_path()
        _write_file(path, config.model_dump(mode="json"))
        self._global_cache = config

    # ------------------------------------------------------------------
    # Source catalog helpers
    # ------------------------------------------------------------------
    def catalog_file(self) -> Path:
        """Project catalog if present, otherwise the packaged default."""

        path = self.locator.catalog_path()
        return path if path.exists() else default_catalog_path()

    def load_catalog(self) -> list[SourceDescriptor]:
        path = self.catalog_file()
        payload = _read_file(path)
        entries = payload.get("sources") or []
        if not isinstance(entries, list):
            raise ConfigurationError(f"'sources' must be a list in {path}")
        try:
            catalog = [SourceDescriptor.model_validate(entry) for entry in entries]
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid source catalog {path}: {exc}") from exc
        names = [source.name for source in catalog]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate source names in {path}: {duplicates}")
        return catalog

    def save_catalog(self, catalog: list[SourceDescriptor]) -> Path:
        path = self.locator.catalog_path()
        payload = {"sources": [source.model_dump(mode="json") for source in catalog]}
        _write_file(path, payload)
        return path

    def load_source(self, name: str) -> SourceDescriptor:
        for source in self.load_catalog():
            if source.name == name:
                return source
        raise KeyError(f"Unknown source: {name}")

    def set_source_enabled(self, name: str, enabled: bool) -> SourceDescriptor:
        """Persist an enabled flag change into the project catalog."""

        catalog = self.load_catalog()
        for index, source in enumerate(catalog):
            if source.name == name:
                updated = source.model_copy(update={"enabled": enabled})
                catalog[index] = updated
                self.save_catalog(catalog)
                return updated
        raise KeyError(f"Unknown source: {name}")

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------
    def storage_path(self) -> Path:
        global_cfg = self.load_global_config()
        return global_cfg.storage.resolved_path(self.locator.project_root)

    def exports_path(self) -> Path:
        global_cfg = self.load_global_config()
        exports = global_cfg.exports_dir
        if not exports.is_absolute():
            exports = (self.locator.project_root / exports).resolve()
        exports.mkdir(parents=True, exist_ok=True)
        return exports


__all__ = [
    "CATALOG_FILENAME",
    "ConfigLocator",
    "ConfigRepository",
    "HOME_ENV_VAR",
    "default_catalog_path",
]

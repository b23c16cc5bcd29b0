"""Resolve the pipeline configuration from packaged defaults and overrides.

Layers are deep merged in this order, later layers winning:

1. ``drivesense/data/defaults.toml`` shipped with the package.
2. The ``[tool.drivesense]`` table of a project ``pyproject.toml``.
3. A host supplied YAML or TOML file.
4. An in-memory mapping of overrides.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping as MappingABC
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11 fallback
    import tomli as tomllib  # type: ignore

import yaml

from .settings import PipelineConfig

__all__ = [
    "load_config_mapping",
    "load_default_mapping",
    "load_pipeline_config",
    "load_project_config",
    "merge_overrides",
]

logger = logging.getLogger(__name__)

_DEFAULTS_PACKAGE = "drivesense.data"
_DEFAULTS_RESOURCE = "defaults.toml"
_PROJECT_FILENAME = "pyproject.toml"
_TOOL_SECTION = "drivesense"
_YAML_SUFFIXES = frozenset({".yaml", ".yml"})


def load_default_mapping() -> Mapping[str, Any]:
    """Return the packaged defaults as a read-only mapping."""

    resource = resources.files(_DEFAULTS_PACKAGE).joinpath(_DEFAULTS_RESOURCE)
    with resource.open("rb") as handle:
        payload = tomllib.load(handle)
    return MappingProxyType(_deep_copy_mapping(payload))


def load_project_config(path: str | Path) -> tuple[dict[str, Any], Path] | None:
    """Load the ``[tool.drivesense]`` table from ``pyproject.toml``.

    ``path`` may point at the file itself or at the directory holding it.
    Returns ``None`` when the file or the table does not exist.
    """

    candidate = Path(path).expanduser()
    if candidate.name != _PROJECT_FILENAME:
        if candidate.suffix:
            return None
        candidate = candidate / _PROJECT_FILENAME
    candidate = candidate.resolve(strict=False)
    if not candidate.is_file():
        return None

    with candidate.open("rb") as handle:
        payload = tomllib.load(handle)

    tool_section = payload.get("tool")
    if not isinstance(tool_section, MappingABC):
        return None
    section = tool_section.get(_TOOL_SECTION)
    if not isinstance(section, MappingABC):
        return None
    return _deep_copy_mapping(section), candidate


def load_config_mapping(path: str | Path) -> Mapping[str, Any]:
    """Read a YAML or TOML override file into a read-only mapping."""

    candidate = Path(path).expanduser()
    if not candidate.is_file():
        raise FileNotFoundError(candidate)

    if candidate.suffix.lower() in _YAML_SUFFIXES:
        text = candidate.read_text(encoding="utf-8")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in configuration file: {candidate}") from exc
    else:
        with candidate.open("rb") as handle:
            try:
                data = tomllib.load(handle)
            except tomllib.TOMLDecodeError as exc:
                raise ValueError(f"Invalid TOML in configuration file: {candidate}") from exc

    if data is None:
        return MappingProxyType({})
    if not isinstance(data, MappingABC):
        raise TypeError(f"Configuration in {candidate!s} must decode to a mapping")
    return MappingProxyType(_deep_copy_mapping(data))


def merge_overrides(*layers: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Deep merge ``layers`` left to right into a new read-only mapping."""

    result: dict[str, Any] = {}
    for layer in layers:
        if isinstance(layer, MappingABC):
            _deep_merge(result, layer)
    return MappingProxyType(result)


def load_pipeline_config(
    path: str | Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    project_root: str | Path | None = None,
    search_paths: Iterable[str | Path] | None = None,
) -> PipelineConfig:
    """Build a :class:`PipelineConfig` honouring every configuration layer.

    Parameters
    ----------
    path:
        Explicit YAML or TOML override file. Missing files raise
        :class:`FileNotFoundError`.
    overrides:
        In-memory mapping applied last, typically values edited by the host.
    project_root:
        Directory (or ``pyproject.toml``) whose ``[tool.drivesense]`` table
        is merged over the packaged defaults.
    search_paths:
        Candidate override files inspected when ``path`` is not given; the
        first existing file wins.
    """

    layers: list[Mapping[str, Any] | None] = [load_default_mapping()]
    sources: list[str] = ["defaults"]

    if project_root is not None:
        project = load_project_config(project_root)
        if project is not None:
            layers.append(project[0])
            sources.append(str(project[1]))

    override_path: Path | None = None
    if path is not None:
        override_path = Path(path)
    elif search_paths is not None:
        for entry in search_paths:
            candidate = Path(entry).expanduser()
            if candidate.is_file():
                override_path = candidate
                break
    if override_path is not None:
        layers.append(load_config_mapping(override_path))
        sources.append(str(override_path))

    if overrides:
        layers.append(overrides)
        sources.append("overrides")

    merged = merge_overrides(*layers)
    config = PipelineConfig.from_mapping(merged)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Pipeline configuration resolved",
            extra={"event": "config.resolved", "sources": sources},
        )
    return config


def _deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        key_str = str(key)
        existing = target.get(key_str)
        if isinstance(existing, MappingABC) and isinstance(value, MappingABC):
            merged = dict(existing)
            _deep_merge(merged, value)
            target[key_str] = merged
        elif isinstance(value, MappingABC):
            target[key_str] = _deep_copy_mapping(value)
        else:
            target[key_str] = value


def _deep_copy_mapping(source: Mapping[str, Any]) -> dict[str, Any]:
    copied: dict[str, Any] = {}
    for key, value in source.items():
        key_str = str(key)
        if isinstance(value, MappingABC):
            copied[key_str] = _deep_copy_mapping(value)
        elif isinstance(value, list):
            copied[key_str] = [
                _deep_copy_mapping(item) if isinstance(item, MappingABC) else item
                for item in value
            ]
        else:
            copied[key_str] = value
    return copied

"""Persist committed calibration matrices to a TOML file."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping as MappingABC
from pathlib import Path
from typing import Any, Mapping, Tuple

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11 fallback
    import tomli as tomllib  # type: ignore

from ..core.calibration import CalibrationMatrix, calibration_from_mapping, calibration_to_mapping
from ..errors import InvalidMatrix, log_error

__all__ = ["CalibrationStore"]

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"


def _key_literal(name: str) -> str:
    # JSON string escapes are valid TOML basic-string escapes.
    return json.dumps(name)


def _float_literal(value: float) -> str:
    return repr(float(value))


class CalibrationStore:
    """Keep one calibration matrix per named device profile.

    Entries that fail validation on load are skipped and logged so a single
    corrupt profile does not hide the others.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or "drivesense_calibration.toml")
        self._entries: dict[str, Mapping[str, Any]] = {}
        self._load()

    def profiles(self) -> Tuple[str, ...]:
        return tuple(sorted(self._entries))

    def get(self, profile: str = DEFAULT_PROFILE) -> CalibrationMatrix | None:
        payload = self._entries.get(profile)
        if payload is None:
            return None
        return calibration_from_mapping(payload)

    def put(self, matrix: CalibrationMatrix, profile: str = DEFAULT_PROFILE) -> None:
        if not profile:
            raise ValueError("profile name must not be empty")
        self._entries[profile] = calibration_to_mapping(matrix)

    def remove(self, profile: str = DEFAULT_PROFILE) -> bool:
        return self._entries.pop(profile, None) is not None

    def save(self) -> None:
        if not self._entries:
            if self.path.exists():
                self.path.unlink()
            return
        lines: list[str] = []
        for profile in sorted(self._entries):
            entry = self._entries[profile]
            lines.append(f"[profiles.{_key_literal(profile)}]")
            lines.append(f'calibrated = {"true" if entry.get("calibrated") else "false"}')
            lines.append(f'mode = "{entry.get("mode")}"')
            rows = ", ".join(
                "[" + ", ".join(_float_literal(value) for value in row) + "]"
                for row in entry.get("rotation", ())
            )
            lines.append(f"rotation = [{rows}]")
            offset = entry.get("offset")
            if offset is not None:
                lines.append("offset = [" + ", ".join(_float_literal(value) for value in offset) + "]")
            lines.append("")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("\n".join(lines), encoding="utf8")
        logger.info(
            "Calibration store saved",
            extra={"event": "calibration_store.saved", "path": str(self.path), "profiles": len(self._entries)},
        )

    def _load(self) -> None:
        if not self.path.exists():
            return
        with self.path.open("rb") as handle:
            payload = tomllib.load(handle)
        root = payload.get("profiles", {})
        if not isinstance(root, MappingABC):
            return
        for profile, entry in root.items():
            if not isinstance(entry, MappingABC):
                continue
            try:
                calibration_from_mapping(entry)
            except InvalidMatrix as exc:
                log_error(exc.payload, logger=logger)
                continue
            self._entries[str(profile)] = dict(entry)

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any, Sequence

from bundle_theme_app.config import settings


@dataclass(frozen=True)
class InstallationRecord:
    theme_id: int
    timestamp: datetime
    modifications: tuple[str, ...]

    def to_payload(self) -> dict[str, Any]:
        return {
            "themeId": self.theme_id,
            "timestamp": self.timestamp.isoformat(),
            "modifications": list(self.modifications),
        }


class InstallationRecorder:
    """
    Append-only audit trail of theme installs, one JSON array of records per theme.

    Earlier records are never rewritten. Uninstall works from the fixed asset keys, not from
    these files.
    """

    def __init__(self, backup_dir: Path | None = None) -> None:
        self.backup_dir = Path(backup_dir) if backup_dir is not None else settings.THEME_BACKUP_DIR

    def manifest_path(self, theme_id: int) -> Path:
        return self.backup_dir / f"theme-{theme_id}.json"

    def load_records(self, theme_id: int) -> list[dict[str, Any]]:
        path = self.manifest_path(theme_id)
        if not path.exists():
            return []
        payload = json.loads(path.read_text(encoding="utf-8"))
        # Manifests written before the append-only format hold a single record.
        if isinstance(payload, dict):
            return [payload]
        if not isinstance(payload, list):
            raise ValueError(f"Unexpected manifest content in {path}.")
        return payload

    def record(
        self,
        *,
        theme_id: int,
        modifications: Sequence[str],
        recorded_at: datetime | None = None,
    ) -> InstallationRecord:
        record = InstallationRecord(
            theme_id=theme_id,
            timestamp=recorded_at or datetime.now(timezone.utc),
            modifications=tuple(modifications),
        )
        path = self.manifest_path(theme_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        entries = self.load_records(theme_id)
        entries.append(record.to_payload())
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(entries, indent=2) + "\n", encoding="utf-8")
        tmp_path.replace(path)
        return record

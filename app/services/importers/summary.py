from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class ImportRecordError:
    external_id: str
    error: str


@dataclass
class ImportSummary:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: list[ImportRecordError] = field(default_factory=list)

    def record_error(self, external_id: str, error: Exception) -> None:
        self.errors.append(
            ImportRecordError(external_id=external_id, error=str(error) or type(error).__name__)
        )
        self.skipped += 1

    @property
    def total(self) -> int:
        return self.created + self.updated + self.unchanged + self.skipped

    def to_dict(self, *, error_limit: int | None = None) -> dict[str, Any]:
        errors = self.errors if error_limit is None else self.errors[:error_limit]
        return {
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "error_count": len(self.errors),
            "errors": [asdict(e) for e in errors],
        }

"""Result types for attachment migration, validation and statistics."""

from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, Field


class MigrationError(BaseModel):
    attachment_id: str
    reason: str

    model_config = {"frozen": True}


class MigrationResult(BaseModel):
    """Outcome of one ``migrate_all_files()`` run.

    Attributes:
        total_attachments: Attachments considered, legacy and modern.
        migrated_successfully: Legacy attachments moved to a storage path
            (or, in a dry run, that would have been).
        already_migrated: Attachments that already had a storage path.
        failed: Legacy attachments that could not be migrated.
        dry_run: No files were copied and no records changed.
        cancelled: The run stopped before visiting every attachment.
    """

    total_attachments: int = 0
    migrated_successfully: int = 0
    already_migrated: int = 0
    failed: int = 0
    errors: list[MigrationError] = Field(default_factory=list)
    duration: timedelta = timedelta(0)
    dry_run: bool = False
    cancelled: bool = False

    model_config = {"frozen": True}

    @property
    def success_rate(self) -> float:
        """Share of attachments that end up on a storage path; 1.0 when empty."""
        if self.total_attachments == 0:
            return 1.0
        return (
            self.migrated_successfully + self.already_migrated
        ) / self.total_attachments

    @property
    def has_errors(self) -> bool:
        return self.failed > 0

    @property
    def is_complete(self) -> bool:
        return (
            self.migrated_successfully + self.already_migrated + self.failed
            == self.total_attachments
        )

    def summary(self) -> str:
        lines = [
            "Attachment migration"
            + (" (dry run)" if self.dry_run else "")
            + (" (cancelled)" if self.cancelled else ""),
            f"  Total:            {self.total_attachments}",
            f"  Migrated:         {self.migrated_successfully}",
            f"  Already migrated: {self.already_migrated}",
            f"  Failed:           {self.failed}",
            f"  Success rate:     {self.success_rate:.1%}",
            f"  Duration:         {self.duration.total_seconds():.2f}s",
        ]
        for error in self.errors:
            lines.append(f"  ! {error.attachment_id}: {error.reason}")
        return "\n".join(lines)


class InaccessibleFile(BaseModel):
    attachment_id: str
    name: str
    path: str

    model_config = {"frozen": True}


class ValidationReport(BaseModel):
    """Which attachment records point at readable files."""

    total: int = 0
    accessible: int = 0
    inaccessible: int = 0
    inaccessible_files: list[InaccessibleFile] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 1.0
        return self.accessible / self.total


class MigrationStats(BaseModel):
    """Counts of legacy and modern attachments, by attachment type."""

    legacy_count: int = 0
    migrated_count: int = 0
    total_count: int = 0
    type_breakdown: dict[str, int] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def migration_needed(self) -> bool:
        return self.legacy_count > 0

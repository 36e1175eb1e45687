"""Migration configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class MigrationSettings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///media_migration.db"
    echo_sql: bool = False
    log_level: str = "INFO"

    # Batch driver
    batch_size: int = 50
    max_batches: int = 0  # 0 = unlimited
    item_delay_seconds: float = 0.1
    error_report_limit: int = 10
    error_message_max_length: int = 1000
    stale_processing_minutes: int = 60

    # Destination paths look like <parent_type>/<unit_id>/photos/hd/<media_id>.<ext>
    parent_type: str = "external-units"

    slot_capacity_primary: int = 5
    slot_capacity_secondary: int = 20

    # Source provider (Google Drive, OAuth refresh-token flow)
    # Also read from the unprefixed names the web app deployment already sets.
    google_drive_access_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MIGRATION_GOOGLE_DRIVE_ACCESS_TOKEN", "GOOGLE_DRIVE_ACCESS_TOKEN"),
    )
    google_drive_refresh_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MIGRATION_GOOGLE_DRIVE_REFRESH_TOKEN", "GOOGLE_DRIVE_REFRESH_TOKEN"),
    )
    google_client_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MIGRATION_GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_ID"),
    )
    google_client_secret: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MIGRATION_GOOGLE_CLIENT_SECRET", "GOOGLE_CLIENT_SECRET"),
    )
    google_drive_api_url: str = "https://www.googleapis.com/drive/v3"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    source_timeout_seconds: float = 60.0

    # Destination object store
    object_store_backend: str = "filesystem"  # filesystem/http
    object_store_dir: str = "data/object-store"
    object_store_public_url: str = "http://localhost:8030/objects"
    object_store_upload_url: str | None = None
    object_store_bucket: str = "media"
    object_store_token: str | None = None
    object_store_timeout_seconds: float = 60.0

    model_config = {
        "env_prefix": "MIGRATION_",
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def project_dir(self) -> Path:
        return self.base_dir.parent

    @property
    def object_store_path(self) -> Path:
        path = Path(self.object_store_dir)
        if not path.is_absolute():
            path = self.project_dir / path
        return path

    @property
    def slot_capacities(self) -> dict[str, int]:
        return {
            "primary": self.slot_capacity_primary,
            "secondary": self.slot_capacity_secondary,
        }


settings = MigrationSettings()

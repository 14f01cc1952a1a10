"""
Configuration management for the Voice Memo Transcriber.

Uses pydantic-settings to load configuration from environment variables
(prefixed with ``VMT_``) and .env files.
"""

from functools import lru_cache
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Storage Configuration
    data_dir: Path = Path("~/.local/share/voice-memo-transcriber")
    ledger_filename: str = "processed.sqlite3"
    legacy_ledger_filename: str = "processed.json"
    preferences_filename: str = "preferences.json"

    # Logging Configuration
    log_dir: Path = Path("~/.local/state/voice-memo-transcriber/logs")
    log_level: str = "INFO"

    # API Configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8787
    api_title: str = "Voice Memo Transcriber"
    api_version: str = "1.0.0"

    # Watch Folder Configuration
    supported_extensions: str = "m4a,wav,aiff,caf"
    excluded_folders: str = "Capture"
    package_suffixes: str = "app,bundle,pkg,photoslibrary,musiclibrary"
    watch_recursive: bool = False
    folder_check_interval: float = 5.0  # seconds between watch folder checks

    # Stability Configuration
    stability_wait_interval: float = 2.0  # seconds
    required_stable_checks: int = 2
    max_stability_attempts: int = 8

    # Transcription Configuration
    locale: str = "ja-JP"
    whisper_model: str = "medium"
    whisper_device: str = "auto"

    # Notes Configuration
    notes_folder_name: str = "VoiceMemoTranscriber"
    notes_bundle_id: str = "com.apple.Notes"
    notes_process_name: str = "Notes"
    notes_launch_timeout: float = 6.0  # seconds
    note_retry_attempts: int = 4
    note_retry_cap: float = 2.5
    note_retry_base_not_running: float = 0.5
    note_retry_base_handler_failed: float = 0.7

    # Display Configuration
    recent_results_limit: int = 20

    model_config = SettingsConfigDict(
        env_prefix="VMT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def ledger_path(self) -> Path:
        """Location of the durable dedupe ledger."""
        return self.data_dir.expanduser() / self.ledger_filename

    @property
    def legacy_ledger_path(self) -> Path:
        """Location of the legacy fingerprint -> status ledger."""
        return self.data_dir.expanduser() / self.legacy_ledger_filename

    @property
    def preferences_path(self) -> Path:
        return self.data_dir.expanduser() / self.preferences_filename

    def get_supported_extensions(self) -> set[str]:
        """Parse supported extensions into a lowercase set without dots."""
        return {
            e.strip().lower().lstrip('.')
            for e in self.supported_extensions.split(',')
            if e.strip()
        }

    def get_excluded_folders(self) -> list[str]:
        """Parse excluded folder names into list."""
        return [f.strip() for f in self.excluded_folders.split(',') if f.strip()]

    def get_package_suffixes(self) -> set[str]:
        """Parse package-like directory suffixes into a lowercase set."""
        return {
            s.strip().lower().lstrip('.')
            for s in self.package_suffixes.split(',')
            if s.strip()
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

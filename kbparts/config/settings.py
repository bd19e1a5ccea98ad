from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel
import yaml
import os

class UploadConfig(BaseModel):
    concurrency_limit: int = 3
    pause_poll_interval: float = 0.25    # seconds between pause-flag checks

class GroupingConfig(BaseModel):
    stale_after_minutes: int = 30        # "processing" older than this is stuck

class SplitterConfig(BaseModel):
    max_pages_per_part: int = 20
    max_single_upload_mb: int = 8
    max_file_mb: int = 100

class StorageConfig(BaseModel):
    records_path: str = "./data/records"
    uploads_path: str = "./data/uploads"
    storage_limit_bytes: int = 1024 * 1024 * 1024

class ProcessingConfig(BaseModel):
    endpoint: str = ""                   # empty disables the remote trigger
    process_path: str = "/api/kb/process-pdf"
    timeout_seconds: float = 55.0
    max_retries: int = 3
    base_delay: float = 1.0

class AppSettings(BaseSettings):
    upload: UploadConfig = UploadConfig()
    grouping: GroupingConfig = GroupingConfig()
    splitter: SplitterConfig = SplitterConfig()
    storage: StorageConfig = StorageConfig()
    processing: ProcessingConfig = ProcessingConfig()
    sync_secret: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

def load_settings(config_path: str = "kbparts/config/config.yaml") -> AppSettings:
    """Loads settings from config.yaml and applies env overrides."""

    paths_to_try = [
        config_path,
        "config.yaml",
        "config/config.yaml",
        os.path.join(os.path.dirname(__file__), "config.yaml")
    ]

    yaml_data = {}
    for path in paths_to_try:
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
            break

    # Sections come from yaml; secrets stay in the environment
    return AppSettings(
        upload=UploadConfig(**yaml_data.get("upload", {})),
        grouping=GroupingConfig(**yaml_data.get("grouping", {})),
        splitter=SplitterConfig(**yaml_data.get("splitter", {})),
        storage=StorageConfig(**yaml_data.get("storage", {})),
        processing=ProcessingConfig(**yaml_data.get("processing", {}))
    )

# Global settings instance
settings = load_settings()

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./facilities.db"
    debug: bool = True
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"

    # Upload ceilings enforced before any row is read
    upload_max_file_size_mb: int = 10
    upload_max_rows: int = 50000

    # Wall-clock budget shared by parsing and validation (seconds)
    import_timeout_seconds: int = 120
    validation_parallel_max_workers: int = 4  # Controls parallel validation chunk workers
    validation_chunk_size: int = 2000

    # "per_row" keeps going when one row fails to persist, "transactional" aborts the batch
    commit_mode: str = "per_row"

    # Commit capability; empty means every caller may commit (local development)
    import_api_key: str = ""

    default_schema_version: str = "facility-v1"
    preview_row_limit: int = 5

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()

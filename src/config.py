from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "pet-media-service"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    cors_origins: list[str] = ["*"]

    appwrite_endpoint: str = "https://cloud.appwrite.io/v1"
    appwrite_project_id: str = ""
    appwrite_api_key: str = ""
    appwrite_bucket_id: str = ""
    storage_timeout: float = 30.0
    storage_chunk_size: int = 5 * 1024 * 1024

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "petapp"
    mongo_pets_collection: str = "pets"
    mongo_businesses_collection: str = "businesses"
    mongo_users_collection: str = "users"
    mongo_upload_jobs_collection: str = "upload_jobs"

    firebase_credentials_path: str | None = None

    max_upload_bytes: int = 10 * 1024 * 1024
    multipart_overhead_bytes: int = 64 * 1024
    allowed_mime_types: list[str] = ["image/jpeg", "image/png", "image/webp"]

    journal_stale_after: float = 120.0
    journal_sweep_interval: float = 300.0


settings = Settings()

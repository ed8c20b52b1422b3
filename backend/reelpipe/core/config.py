from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./reelpipe.db"

    # Redis (Celery broker/backend)
    redis_url: str = "redis://localhost:6379"

    # Security
    secret_key: str = "your-secret-key-here-change-this-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Stream host (external transcoding/hosting API)
    stream_api_url: str = "https://video.bunnycdn.com"
    stream_api_key: Optional[str] = None
    stream_library_id: Optional[str] = None
    stream_tus_endpoint: str = "https://video.bunnycdn.com/tusupload"
    stream_cdn_hostname: Optional[str] = None
    stream_embed_url: str = "https://iframe.mediadelivery.net/embed"
    stream_request_timeout_seconds: float = 30.0

    # Upload limits
    upload_max_file_size: int = 10 * 1024 * 1024 * 1024  # 10GB
    upload_credential_ttl_seconds: int = 86400  # 24 hours

    # TUS client
    tus_chunk_size: int = 8 * 1024 * 1024
    tus_chunk_timeout_seconds: float = 60.0
    tus_max_retries: int = 3
    tus_retry_backoff_seconds: float = 1.0

    # Status polling
    poll_interval_detail_seconds: float = 2.0
    poll_interval_list_seconds: float = 5.0
    poll_timeout_seconds: float = 10.0

    # Bulk operations
    bulk_delete_max_ids: int = 50

    # Reconciliation of soft-deleted videos
    reconcile_grace_hours: int = 24
    reconcile_interval_minutes: int = 60

    # Application
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    sqlalchemy_echo: bool = False
    api_base_url: str = "http://localhost:8000"
    frontend_url: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "allow"

settings = Settings()

"""Configuration management for the Media Relay gateway."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "mediarelay"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Remote store (FTP / FTPS)
    FTP_HOST: str = ""
    FTP_PORT: int = 21
    FTP_USER: str = ""
    FTP_PASSWORD: str = ""
    FTP_SECURE: bool = True  # Explicit FTPS; set False for plain FTP hosts
    FTP_PASSIVE: bool = True
    FTP_TIMEOUT_SECONDS: float = 30.0
    FTP_UPLOAD_PATH: str = "/uploads"

    # Public URL prefix under which the remote store serves FTP_UPLOAD_PATH
    PUBLIC_BASE_URL: str = ""

    # Upload Constraints
    MAX_UPLOAD_MB: int = Field(default=50, ge=10, le=50)
    ALLOWED_UPLOAD_MIME_TYPES: str = (
        "image/jpeg,image/png,image/webp,video/mp4,video/quicktime"
    )
    UPLOAD_BUFFER_BACKEND: str = "memory"  # "memory" or "disk"
    UPLOAD_TMP_DIR: str = ""  # Empty = system temp directory

    # CORS
    ALLOWED_ORIGINS: str = ""  # Comma-separated

    # Rate limiting
    RATE_LIMIT_WINDOW_MS: int = 60_000
    RATE_LIMIT_MAX_REQUESTS: int = 20
    TRUST_PROXY_HEADERS: bool = False

    @property
    def allowed_mime_types(self) -> list[str]:
        """Parse ALLOWED_UPLOAD_MIME_TYPES into a list."""
        return [
            mt.strip().lower()
            for mt in self.ALLOWED_UPLOAD_MIME_TYPES.split(",")
            if mt.strip()
        ]

    @property
    def allowed_origins(self) -> list[str]:
        """Parse ALLOWED_ORIGINS into a list."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def rate_limit_window_seconds(self) -> float:
        """Convert RATE_LIMIT_WINDOW_MS to seconds."""
        return self.RATE_LIMIT_WINDOW_MS / 1000


# Singleton settings instance
settings = Settings()

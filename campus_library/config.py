import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")
    # Public base URL the browser-side components call back into
    api_endpoint: str = os.getenv("API_ENDPOINT", "http://127.0.0.1:8000")

    # ImageKit settings
    imagekit_public_key: str = os.getenv("IMAGEKIT_PUBLIC_KEY", "")
    imagekit_private_key: Optional[str] = os.getenv("IMAGEKIT_PRIVATE_KEY")
    imagekit_url_endpoint: str = os.getenv("IMAGEKIT_URL_ENDPOINT", "https://ik.imagekit.io/campus-library")
    imagekit_upload_endpoint: str = os.getenv(
        "IMAGEKIT_UPLOAD_ENDPOINT", "https://upload.imagekit.io/api/v1/files/upload"
    )
    imagekit_token_ttl: int = int(os.getenv("IMAGEKIT_TOKEN_TTL", "1800"))  # 30 minutes

    # HTTP client settings
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "10"))

    # Borrowing settings
    loan_days: int = int(os.getenv("LOAN_DAYS", "7"))
    max_active_borrows: int = int(os.getenv("MAX_ACTIVE_BORROWS", "5"))

    # Rate limiting for auth endpoints
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "5"))
    rate_limit_window: float = float(os.getenv("RATE_LIMIT_WINDOW", "60"))

    # Upload ceilings, in bytes
    max_image_size: int = int(os.getenv("MAX_IMAGE_SIZE", str(20 * 1024 * 1024)))
    max_video_size: int = int(os.getenv("MAX_VIDEO_SIZE", str(50 * 1024 * 1024)))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Campus Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _flag("DEBUG")
    cors_origins: list = field(default_factory=lambda: os.getenv("CORS_ORIGINS", "*").split(","))

    def upload_config(self) -> "UploadConfig":
        return UploadConfig(
            api_endpoint=self.api_endpoint,
            public_key=self.imagekit_public_key,
            url_endpoint=self.imagekit_url_endpoint,
            upload_endpoint=self.imagekit_upload_endpoint,
            timeout=self.http_timeout,
            max_image_size=self.max_image_size,
            max_video_size=self.max_video_size,
        )


@dataclass(frozen=True)
class UploadConfig:
    """Everything the upload authenticator and widget need, passed in explicitly."""

    api_endpoint: str
    public_key: str = ""
    url_endpoint: str = ""
    upload_endpoint: str = "https://upload.imagekit.io/api/v1/files/upload"
    timeout: float = 10.0
    max_image_size: int = 20 * 1024 * 1024
    max_video_size: int = 50 * 1024 * 1024

    @property
    def auth_url(self) -> str:
        return f"{self.api_endpoint.rstrip('/')}/api/auth/imagekit"

    def asset_url(self, file_path: str) -> str:
        """Public CDN URL for an uploaded asset path."""
        return f"{self.url_endpoint.rstrip('/')}/{file_path.lstrip('/')}"


settings = Settings()

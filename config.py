import os
from dataclasses import dataclass
from typing import Optional


def _base_dir() -> str:
    return os.path.abspath(os.getenv("STOCKROOM_BASE_DIR") or os.path.dirname(__file__))


@dataclass
class Settings:
    APP_NAME: str = os.getenv("APP_NAME", "Stockroom")
    ENV: str = os.getenv("STOCKROOM_ENV", "dev").lower()  # dev|stage|prod
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    # request bodies carry inline base64 images
    MAX_BODY_BYTES: int = int(os.getenv("MAX_BODY_BYTES", str(50 * 1024 * 1024)))
    ADMIN_TOKEN: Optional[str] = os.getenv("ADMIN_TOKEN") or None
    PLACEHOLDER_AVATAR: str = "https://via.placeholder.com/150"

    def __post_init__(self):
        base_dir = _base_dir()
        self.BASE_DIR = base_dir
        self.DATA_DIR = os.path.join(base_dir, "data")
        self.UPLOAD_DIR = os.path.join(base_dir, "uploads")
        self.PUBLIC_DIR = os.path.join(base_dir, "public")


# singleton settings
settings = Settings()

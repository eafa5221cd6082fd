"""
Runtime configuration for the storefront API.

Settings are read from the environment once, at startup, and handed to
create_app(). Handlers get them through the get_settings dependency.
"""
import logging
import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_ORIGINS = "http://localhost:3000,http://localhost:3003,http://localhost:5173"


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "confectionery"
    jwt_secret: str = "change-me"
    jwt_expires_in: int = Field(86400, gt=0, description="Token lifetime in seconds")
    manager_code: str = Field("", description="Registration code granting the manager role")
    bcrypt_rounds: int = Field(10, ge=4, le=31)
    allowed_origins: List[str] = Field(default_factory=lambda: DEFAULT_ORIGINS.split(","))
    uploads_dir: str = "uploads"
    max_body_bytes: int = 10 * 1024 * 1024
    low_stock_threshold: int = 10
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        origins = os.getenv("ALLOWED_ORIGINS", DEFAULT_ORIGINS)
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "confectionery"),
            jwt_secret=os.getenv("JWT_SECRET", "change-me"),
            jwt_expires_in=int(os.getenv("JWT_EXPIRES_IN", 86400)),
            manager_code=os.getenv("MANAGER_CODE", ""),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 10)),
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
            uploads_dir=os.getenv("UPLOADS_DIR", "uploads"),
            max_body_bytes=int(os.getenv("MAX_BODY_BYTES", 10 * 1024 * 1024)),
            low_stock_threshold=int(os.getenv("LOW_STOCK_THRESHOLD", 10)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 8000)),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

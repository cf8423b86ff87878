"""
keygate Application Configuration
=================================

PURPOSE:
    Pydantic-Settings based configuration for the keygate service.
    All settings can be overridden via environment variables (KEYGATE_ prefix)
    or a local .env file.

NOTES:
    The scrypt cost parameters are read once at startup and must stay fixed
    for the lifetime of a key store: verifiers written with one set of
    parameters can only be recomputed with the same set.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings

from keygate.core.credentials import KdfParams

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Service settings."""

    debug: bool = False

    # HTTP
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["*"]

    # Storage
    data_directory: str = "./data"
    database_url: Optional[str] = None

    # Key derivation (scrypt). N=2^14, r=8, p=1, 64-byte output.
    scrypt_n: int = 16384
    scrypt_r: int = 8
    scrypt_p: int = 1
    scrypt_dklen: int = 64

    # Logging
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_to_file: bool = True

    class Config:
        env_file = ".env"
        env_prefix = "KEYGATE_"

    def get_database_url(self) -> str:
        """Resolve the database URL.

        Priority:
            1. KEYGATE_DATABASE_URL
            2. DATABASE_URL (Docker / PaaS convention)
            3. SQLite file under data_directory
        """
        if self.database_url:
            return self.database_url
        env_url = os.environ.get("DATABASE_URL")
        if env_url:
            return env_url
        return f"sqlite:///{Path(self.data_directory) / 'keygate.db'}"

    def kdf_params(self) -> KdfParams:
        return KdfParams(
            n=self.scrypt_n,
            r=self.scrypt_r,
            p=self.scrypt_p,
            dklen=self.scrypt_dklen,
        )


settings = Settings()

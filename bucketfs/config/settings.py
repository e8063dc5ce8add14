# Configuration management

from pydantic_settings import BaseSettings  # type: ignore
from functools import lru_cache
from typing import Dict, Optional


class Settings(BaseSettings):
    # Backend
    backend_name: str = "s3-backend"
    # Container name -> "bucket" or "bucket/prefix/..."
    container_paths: Dict[str, str] = {}

    # AWS / S3-compatible connection
    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_session_token: str = ""
    aws_endpoint_url: Optional[str] = None
    aws_use_https: bool = True
    aws_encryption: bool = False  # implies HTTPS
    aws_max_attempts: int = 3
    aws_connect_timeout: int = 10
    aws_read_timeout: int = 60

    # Access control
    # None = derive from public_read (private unless anonymous reads are allowed)
    private_wiki: Optional[bool] = None
    public_read: bool = True

    # Local download cache
    local_cache_path: str = "./s3_cache"
    local_cache_min_size: int = 0  # bytes; smaller downloads are not kept
    presigned_url_ttl: int = 86400  # 1 day
    download_timeout: float = 60.0
    download_retries: int = 3

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def private_mode(self) -> bool:
        """All new objects are private when set."""
        if self.private_wiki is not None:
            return self.private_wiki
        return not self.public_read

    @property
    def use_https(self) -> bool:
        return self.aws_encryption or self.aws_use_https


@lru_cache()
def get_settings() -> Settings:
    return Settings()

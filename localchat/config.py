from __future__ import annotations

import socket
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_local_ip() -> str:
    """Return the primary LAN IPv4 address, falling back to ``localhost``."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # No packet is sent; connect() only selects the outbound interface.
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return "localhost"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LOCALCHAT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = "sqlite://localchat.db"
    admin_password: Optional[str] = None
    # bcrypt hash produced by ``manage.py hash-password``; wins over admin_password
    admin_password_hash: Optional[str] = None
    # comma separated; empty means the LAN dev defaults
    allowed_origins: str = ""
    client_port: int = 5173
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def origin_list(self) -> List[str]:
        if self.allowed_origins.strip():
            return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return [
            f"http://localhost:{self.client_port}",
            f"http://127.0.0.1:{self.client_port}",
            f"http://{get_local_ip()}:{self.client_port}",
        ]

    def client_url(self) -> str:
        return f"http://{get_local_ip()}:{self.client_port}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings", "get_local_ip"]

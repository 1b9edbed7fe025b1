"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


STORE_BACKENDS = ("memory", "rest")


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Record store
    store_backend: str = field(default_factory=lambda: os.getenv("STORE_BACKEND", "memory").lower())
    store_url: Optional[str] = field(default_factory=lambda: os.getenv("STORE_URL"))
    store_api_key: Optional[str] = field(default_factory=lambda: os.getenv("STORE_API_KEY"))
    request_timeout: int = field(default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30")))
    # Seconds a list view may go without a re-fetch; 0 re-fetches on every read
    live_max_age: float = field(default_factory=lambda: float(os.getenv("LIVE_MAX_AGE", "30")))

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))
    actors_file: Optional[str] = field(default_factory=lambda: os.getenv("ACTORS_FILE"))

    def __post_init__(self):
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {self.store_backend!r}"
            )
        if self.store_backend == "rest" and not (self.store_url and self.store_api_key):
            raise ValueError("STORE_URL and STORE_API_KEY are required when STORE_BACKEND=rest")
        if self.live_max_age < 0:
            raise ValueError(f"LIVE_MAX_AGE must be zero or more, got {self.live_max_age}")

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def store_file(self) -> str:
        """JSON file backing the in-memory store."""
        return os.path.join(self.data_dir, "records.json")

    def to_dict(self) -> dict:
        """Convert config to dictionary. The API key is never included."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "store_backend": self.store_backend,
            "store_url": self.store_url,
            "request_timeout": self.request_timeout,
            "live_max_age": self.live_max_age,
            "data_dir": self.data_dir,
            "actors_file": self.actors_file,
        }

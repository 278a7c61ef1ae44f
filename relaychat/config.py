from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(message)s"

CORRUPT_POLICIES = ("empty", "raise")


def _flag(name: str, default: str = "0") -> bool:
    v = (os.getenv(name) or default).strip().lower()
    return v in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    debug_mock: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    max_body_bytes: int = 1 * 1024 * 1024
    recent_pairs: int = 1
    data_dir: str = "db"
    static_dir: str = "frontend"
    prompt_path: str = "prompt.ini"
    signup_auth_code: str = "nontiscordardime"
    corrupt_policy: str = "empty"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.corrupt_policy not in CORRUPT_POLICIES:
            raise ValueError(
                f"STORE_CORRUPT_POLICY must be one of {CORRUPT_POLICIES}, got {self.corrupt_policy!r}"
            )

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            debug_mock=_flag("DEBUG_MOCK"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            max_body_bytes=int(os.getenv("MAX_BODY_BYTES", str(1 * 1024 * 1024))),
            recent_pairs=int(os.getenv("RECENT_PAIRS", "1")),
            data_dir=os.getenv("DATA_DIR", "db"),
            static_dir=os.getenv("STATIC_DIR", "frontend"),
            prompt_path=os.getenv("PROMPT_PATH", "prompt.ini"),
            signup_auth_code=os.getenv("SIGNUP_AUTH_CODE", "nontiscordardime"),
            corrupt_policy=os.getenv("STORE_CORRUPT_POLICY", "empty").strip().lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)

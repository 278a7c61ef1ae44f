from __future__ import annotations

import logging
from pathlib import Path

from dotenv import dotenv_values


logger = logging.getLogger("relaychat")

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly, concise assistant. "
    "Answer the user's question directly and keep replies short unless asked for more. "
    "If you are unsure, say so instead of guessing."
)


def load_custom_prompt(path: str) -> str:
    """Read the ``PROMPT=`` line of an ini-style file. Missing file gives ''."""
    p = Path(path)
    if not p.is_file():
        return ""
    values = dotenv_values(p, encoding="utf-8")
    return (values.get("PROMPT") or "").strip()


def get_system_prompt(custom: str = "") -> str:
    return custom or DEFAULT_SYSTEM_PROMPT


def load_system_prompt(path: str) -> str:
    custom = load_custom_prompt(path)
    logger.info("Custom prompt loaded, length: %s", len(custom))
    return get_system_prompt(custom)

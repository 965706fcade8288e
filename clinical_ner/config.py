from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_SERVICE_URL = "https://ii.nlm.nih.gov/metamaplite/rest/annotate"
DEFAULT_TIMEOUT_SECONDS = 30.0

# Where the API key travels in the outbound request
KEY_PLACEMENTS = ("body", "query")


@dataclass(frozen=True)
class Settings:
    api_key: str
    service_url: str = DEFAULT_SERVICE_URL
    key_placement: str = "body"
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.key_placement not in KEY_PLACEMENTS:
            raise ValueError(
                f"Invalid API key placement {self.key_placement!r}; expected one of {KEY_PLACEMENTS}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout_seconds}")

    def public_summary(self) -> dict:
        """Settings that are safe to show in the UI (no key)."""
        return {
            "service_url": self.service_url,
            "key_placement": self.key_placement,
            "timeout_seconds": self.timeout_seconds,
        }


def load_settings(env_path: Optional[str] = None) -> Settings:
    if env_path:
        load_dotenv(env_path)
    else:
        load_dotenv()

    api_key = os.getenv("METAMAPLITE_API_KEY")
    if not api_key:
        raise RuntimeError("Missing METAMAPLITE_API_KEY in environment")

    return Settings(
        api_key=api_key,
        service_url=os.getenv("METAMAPLITE_URL", DEFAULT_SERVICE_URL),
        key_placement=os.getenv("METAMAPLITE_API_KEY_PLACEMENT", "body").strip().lower(),
        timeout_seconds=float(os.getenv("METAMAPLITE_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))),
    )

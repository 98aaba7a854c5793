from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _normalize_api_url(raw: str) -> str:
    # Endpoints are built as f"{api_url}{controller}/...", so the base must end with "/".
    url = raw.strip()
    if not url.startswith(("http://", "https://")):
        raise RuntimeError(f"Invalid API_URL value: {raw!r}. Expected an http(s) URL.")
    if not url.endswith("/"):
        url += "/"
    return url


def _int_env(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e

    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True)
class Settings:
    api_url: str
    api_token: str | None = None

    api_timeout_seconds: float = 20.0

    # How many times a request is attempted when the transport fails (connect/read errors).
    api_retry_attempts: int = 2

    # Pageable lists
    page_size: int = 20

    # Calendar scroller
    days_to_show: int = 1
    preload_days: int = 1
    tween_duration_ms: int = 300


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    timeout_raw = os.getenv("API_TIMEOUT_SECONDS", "20").strip()
    try:
        api_timeout_seconds = float(timeout_raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid API_TIMEOUT_SECONDS value: {timeout_raw!r}") from e
    if api_timeout_seconds <= 0:
        raise RuntimeError("API_TIMEOUT_SECONDS must be > 0")

    api_token = os.getenv("API_TOKEN", "").strip() or None

    return Settings(
        api_url=_normalize_api_url(_require("API_URL")),
        api_token=api_token,
        api_timeout_seconds=api_timeout_seconds,
        api_retry_attempts=_int_env("API_RETRY_ATTEMPTS", 2, minimum=1),
        page_size=_int_env("PAGE_SIZE", 20, minimum=1),
        days_to_show=_int_env("DAYS_TO_SHOW", 1, minimum=1),
        preload_days=_int_env("PRELOAD_DAYS", 1, minimum=0),
        tween_duration_ms=_int_env("TWEEN_DURATION_MS", 300, minimum=0),
    )

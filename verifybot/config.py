"""
verifybot.config — Secrets & YAML Configuration Loader
=======================================================

**Why this file exists:**
Two kinds of configuration feed the bot, and they live in different places:

* **Secrets** (``DISCORD_TOKEN``, ``APPLICATION_ID``, ``SHARED_KEY``) come
  from the environment, usually via a ``.env`` file.  They are validated
  once at process start; any problem is a :class:`ConfigError` and the bot
  refuses to start.
* **Soft settings** (role name/colour, marker glyph, scan page size) come
  from ``config.yaml``.  The file is optional; every key has a default.

Usage::

    from verifybot.config import load_config, load_secrets

    secrets = load_secrets()     # reads os.environ
    cfg = load_config()          # reads ./config.yaml if present
    print(cfg.role_name)         # "UTexas Verified"
"""

from __future__ import annotations

import base64
import binascii
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

from verifybot.constants import (
    DEFAULT_ROLE_COLOR,
    DEFAULT_ROLE_NAME,
    MEMBER_PAGE_LIMIT,
    VERIFIED_MARKER,
)


class ConfigError(RuntimeError):
    """Startup configuration is missing or malformed.  Always fatal."""


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Secrets:
    """Validated secrets read from the environment."""

    token: str
    application_id: int
    shared_key: bytes  # decoded; consumed by the verification-link signer

    def __repr__(self) -> str:
        return f"Secrets(application_id={self.application_id}, token=***, shared_key=***)"


@dataclass(frozen=True, slots=True)
class VerifyConfig:
    """Immutable soft settings loaded from ``config.yaml``."""

    role_name: str = DEFAULT_ROLE_NAME
    role_color: int = DEFAULT_ROLE_COLOR
    marker: str = VERIFIED_MARKER
    scan_page_size: int = MEMBER_PAGE_LIMIT
    bot_prefix: str = "!"


_URLSAFE_B64 = re.compile(r"[A-Za-z0-9_-]+={0,2}")


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------
def decode_shared_key(raw: str) -> bytes:
    """Decode a URL-safe, unpadded base64 string.

    Padding is restored before decoding, so keys written either with or
    without ``=`` are accepted.  Anything outside the URL-safe alphabet is
    rejected rather than silently dropped.
    """
    raw = raw.strip()
    if not raw:
        raise ConfigError("SHARED_KEY is empty.")
    if not _URLSAFE_B64.fullmatch(raw):
        raise ConfigError(
            "Failed to decode base64 SHARED_KEY: only A-Z a-z 0-9 - _ are allowed."
        )
    unpadded = raw.rstrip("=")
    padded = unpadded + "=" * (-len(unpadded) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        raise ConfigError(f"Failed to decode base64 SHARED_KEY: {exc}") from exc


def load_secrets(environ: Mapping[str, str] | None = None) -> Secrets:
    """Read and validate the bot's secrets from *environ* (default ``os.environ``).

    Raises
    ------
    ConfigError
        If the token or application id is missing, the application id is
        not an integer, or ``SHARED_KEY`` does not decode.
    """
    env = os.environ if environ is None else environ

    token = env.get("DISCORD_TOKEN", "").strip()
    if not token or token == "your-discord-bot-token-here":
        raise ConfigError(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )

    raw_app_id = env.get("APPLICATION_ID", "").strip()
    if not raw_app_id:
        raise ConfigError("APPLICATION_ID is not set.")
    try:
        application_id = int(raw_app_id)
    except ValueError as exc:
        raise ConfigError(
            f"APPLICATION_ID is not a valid id: {raw_app_id!r}"
        ) from exc

    raw_key = env.get("SHARED_KEY")
    if raw_key is None:
        raise ConfigError("SHARED_KEY env variable missing.")

    return Secrets(
        token=token,
        application_id=application_id,
        shared_key=decode_shared_key(raw_key),
    )


# ---------------------------------------------------------------------------
# Soft settings
# ---------------------------------------------------------------------------
def _parse_color(value: object) -> int:
    """Accept ``0xBF5700``, ``"#BF5700"``, ``"bf5700"`` or a plain int."""
    if isinstance(value, bool):
        raise ConfigError(f"role_color must be a colour, got {value!r}")
    if isinstance(value, int):
        color = value
    elif isinstance(value, str):
        text = value.strip().removeprefix("#").removeprefix("0x")
        try:
            color = int(text, 16)
        except ValueError as exc:
            raise ConfigError(f"role_color is not a hex colour: {value!r}") from exc
    else:
        raise ConfigError(f"role_color must be a colour, got {value!r}")

    if not 0 <= color <= 0xFFFFFF:
        raise ConfigError(f"role_color out of range: {value!r}")
    return color


def load_config(path: str | Path = "config.yaml") -> VerifyConfig:
    """Read *path* and return a :class:`VerifyConfig` instance.

    A missing file is not an error — the defaults are used.  Present but
    invalid values raise :class:`ConfigError`.
    """
    config_path = Path(path)
    if not config_path.exists():
        return VerifyConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level.")

    defaults = VerifyConfig()

    role_name = str(raw.get("role_name", defaults.role_name)).strip()
    if not role_name:
        raise ConfigError("role_name must not be empty.")

    marker = str(raw.get("marker", defaults.marker))
    if len(marker) != 1:
        raise ConfigError(f"marker must be a single character, got {marker!r}")

    try:
        page_size = int(raw.get("scan_page_size", defaults.scan_page_size))
    except (TypeError, ValueError) as exc:
        raise ConfigError("scan_page_size must be an integer.") from exc
    if not 1 <= page_size <= MEMBER_PAGE_LIMIT:
        raise ConfigError(
            f"scan_page_size must be between 1 and {MEMBER_PAGE_LIMIT}, got {page_size}"
        )

    return VerifyConfig(
        role_name=role_name,
        role_color=_parse_color(raw.get("role_color", defaults.role_color)),
        marker=marker,
        scan_page_size=page_size,
        bot_prefix=str(raw.get("bot_prefix", defaults.bot_prefix)),
    )

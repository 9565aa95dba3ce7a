"""Expiry of the cached AWS CLI session credentials."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from ..utils.error_handler import PreconditionError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".aws" / "cli" / "cache"
ASSUMED_SESSION_SECONDS = 12 * 3600
BAR_LENGTH = 40


@dataclass
class SessionStatus:
    """Where the cached session stands relative to ``now``."""

    cache_file: Path
    expires_at: datetime
    now: datetime

    @property
    def remaining_seconds(self) -> float:
        return (self.expires_at - self.now).total_seconds()

    @property
    def expired(self) -> bool:
        return self.remaining_seconds < 0

    @property
    def remaining_hours(self) -> float:
        return self.remaining_seconds / 3600

    @property
    def remaining_minutes(self) -> int:
        return int(self.remaining_seconds / 60)

    @property
    def usage_percentage(self) -> float:
        used = ASSUMED_SESSION_SECONDS - self.remaining_seconds
        percentage = used / ASSUMED_SESSION_SECONDS * 100
        return max(0.0, min(100.0, percentage))

    @property
    def local_expiry(self) -> datetime:
        return self.expires_at.astimezone()

    def usage_bar(self, length: int = BAR_LENGTH) -> str:
        filled = int(length * self.usage_percentage / 100)
        return "█" * filled + "░" * (length - filled)


def parse_expiration(value: str) -> datetime:
    """Parse an ISO 8601 expiration such as ``2024-01-01T12:00:00Z`` into an aware datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def find_cached_expiration(cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR):
    """
    Find the first cache file carrying ``Credentials.Expiration``.

    Returns:
        (path, expiration string) or None
    """
    directory = Path(cache_dir).expanduser()
    if not directory.is_dir():
        return None

    for path in sorted(directory.glob("*.json")):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"Skipping unreadable cache file {path}: {e}")
            continue
        expiration = (data.get("Credentials") or {}).get("Expiration") if isinstance(data, dict) else None
        if expiration:
            return path, expiration
    return None


def check_session(
    cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR,
    now: Optional[Callable[[], datetime]] = None,
) -> SessionStatus:
    """
    Read the cached session expiry.

    Raises:
        PreconditionError: No cached session, or an unparseable expiration
    """
    found = find_cached_expiration(cache_dir)
    if found is None:
        raise PreconditionError(
            "No active session found. Please login first: aws sso login --profile <profile>"
        )
    path, expiration = found
    try:
        expires_at = parse_expiration(expiration)
    except ValueError as e:
        raise PreconditionError(f"Could not parse expiration time '{expiration}' in {path}") from e

    current = now() if now else datetime.now(timezone.utc)
    return SessionStatus(cache_file=path, expires_at=expires_at, now=current)

"""Credential store — reads the OAuth token Claude Code keeps on disk.

The file is owned by Claude Code, which refreshes the token out-of-band. We
only ever read it: `invalidate()` drops our cached copy so the next `load()`
picks up whatever Claude Code wrote last.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from src.usage_engine.errors import InvalidCredentials, NoCredentials
from src.usage_engine.models import Credentials, PlanTier

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_PATH = "~/.claude/.credentials.json"


def expand_path(path: str | Path) -> Path:
    """Expand a leading ``~`` to the user's home directory."""
    return Path(path).expanduser()


def plan_tier_from_subscription(subscription_type: str | None) -> PlanTier:
    """Map a raw ``subscriptionType`` value (e.g. "max_5x") to a PlanTier."""
    if not isinstance(subscription_type, str):
        return PlanTier.UNKNOWN
    lowered = subscription_type.lower()
    if "max" in lowered:
        return PlanTier.MAX
    if "pro" in lowered:
        return PlanTier.PRO
    return PlanTier.UNKNOWN


def load_credentials(path: str | Path) -> Credentials:
    """Read and validate the credentials file at *path*.

    Raises NoCredentials if the file cannot be read and InvalidCredentials if
    it is not the expected JSON shape or carries no access token.
    """
    creds_path = expand_path(path)
    try:
        with open(creds_path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise NoCredentials(f"Cannot read credentials file {creds_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise InvalidCredentials(f"Credentials file {creds_path} is not valid UTF-8") from e

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, RecursionError) as e:
        raise InvalidCredentials(f"Credentials file {creds_path} is not valid JSON") from e

    oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
    if not isinstance(oauth, dict):
        raise InvalidCredentials(f"Missing OAuth credentials in {creds_path}")

    token = oauth.get("accessToken")
    if not isinstance(token, str) or not token:
        raise InvalidCredentials(f"Missing access token in {creds_path}")

    return Credentials(
        bearer_token=token,
        plan_tier=plan_tier_from_subscription(oauth.get("subscriptionType")),
        source_path=creds_path,
    )


class CredentialStore:
    """Caches the loaded credentials until invalidated."""

    def __init__(self, path: str | Path = DEFAULT_CREDENTIALS_PATH) -> None:
        self._path = expand_path(path)
        self._credentials: Credentials | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @property
    def plan_tier(self) -> PlanTier:
        return self._credentials.plan_tier if self._credentials else PlanTier.UNKNOWN

    def set_path(self, path: str | Path) -> None:
        """Point the store at a different file; the cached token is dropped."""
        self._path = expand_path(path)
        self.invalidate()

    def load(self, path: str | Path | None = None) -> Credentials:
        """Load credentials from *path* (default: the configured path) and cache them."""
        target = expand_path(path) if path is not None else self._path
        self._credentials = None
        creds = load_credentials(target)
        self._credentials = creds
        logger.debug("Loaded credentials from %s (plan=%s)", target, creds.plan_tier.value)
        return creds

    def ensure_loaded(self) -> Credentials:
        """Return the cached credentials, loading them first if needed."""
        if self._credentials is None:
            return self.load()
        return self._credentials

    def invalidate(self) -> None:
        """Drop the cached token. The file on disk is left alone."""
        if self._credentials is not None:
            logger.debug("Invalidated cached credentials")
        self._credentials = None

    def reload(self) -> Credentials:
        self.invalidate()
        return self.load()

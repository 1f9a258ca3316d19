"""Per-account browser session persistence via Playwright storage state."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class SessionStore:
    """Locates, saves and discards the storage-state file for one account.

    A saved state lets the authenticate stage land on the logged-in feed
    instead of the login wall.
    """

    def __init__(self, account_handle: str, state_dir: str = ".state") -> None:
        self._account = account_handle.strip().lstrip("@").lower()
        self._state_dir = Path(state_dir)
        self._state_dir.mkdir(parents=True, exist_ok=True)

    def state_file(self) -> Path:
        """Return the path for this account's storage state JSON."""
        digest = hashlib.sha256(self._account.encode()).hexdigest()[:16]
        return self._state_dir / f"session_{digest}.json"

    def storage_state_path(self) -> str:
        """Path to pass at browser launch, or ``""`` when nothing is stored."""
        p = self.state_file()
        return str(p) if p.exists() else ""

    async def save(self, driver) -> None:
        """Persist *driver*'s cookies / localStorage for the next run."""
        path = self.state_file()
        await driver.save_storage_state(str(path))
        logger.info("Session saved to %s.", path)

    def forget(self) -> None:
        """Delete a stale session so the next run starts logged out."""
        path = self.state_file()
        if path.exists():
            path.unlink()
            logger.info("Deleted stale session file %s.", path)

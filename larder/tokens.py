"""Access-token caching for external API clients.

The token lives on an explicit cache object owned by the client that uses
it, never in module state, so each client (and each test) controls its own
refresh.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime

    def is_expired(self, now: datetime, leeway: timedelta = timedelta(0)) -> bool:
        return now + leeway >= self.expires_at


class TokenCache:
    """Holds one access token and refreshes it through ``fetch``.

    Args:
        fetch: Callable returning a fresh AccessToken.
        leeway: Refresh this long before the token actually expires.
        clock: Returns the current time (UTC).
    """

    def __init__(
        self,
        fetch: Callable[[], AccessToken],
        *,
        leeway: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetch = fetch
        self._leeway = leeway
        self._clock = clock
        self._current: AccessToken | None = None

    @property
    def current(self) -> AccessToken | None:
        return self._current

    def get(self) -> str:
        """Return a valid token, refreshing it when missing or expiring."""
        if self._current is None or self._current.is_expired(self._clock(), self._leeway):
            self.refresh()
        return self._current.token

    def refresh(self) -> AccessToken:
        token = self._fetch()
        if not token.token:
            raise RuntimeError("token endpoint returned an empty token")
        self._current = token
        logger.debug("Access token refreshed, expires at %s", token.expires_at)
        return token

    def invalidate(self) -> None:
        """Forget the token, e.g. after the API rejected it."""
        self._current = None

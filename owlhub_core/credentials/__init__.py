#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Final

logger: Final = logging.getLogger(__name__)


class Credentials:
    """Key material used to sign requests, with expiry tracking and refresh.

    A single instance may be shared by many concurrent requests. Only the instance's
    own refresh logic mutates it. Subclasses supply :py:meth:`load`; every refresh
    goes through :py:meth:`coalesce_refresh` so that at most one load runs at a time.
    """

    expiry_window: int = 15
    """Seconds before ``expire_time`` at which the credentials count as expired."""

    def __init__(
        self,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session_token: str | None = None,
        *,
        expire_time: datetime | None = None,
    ):
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.expire_time = expire_time
        self.expired = False
        self._refresh_task: asyncio.Future[None] | None = None

    def needs_refresh(self) -> bool:
        if self.expired:
            return True
        if not self.access_key_id or not self.secret_access_key:
            return True
        if self.expire_time is not None:
            window = timedelta(seconds=self.expiry_window)
            return datetime.now(UTC) + window >= self.expire_time
        return False

    async def get(self) -> None:
        """Refresh the credentials if :py:meth:`needs_refresh` says so."""
        if self.needs_refresh():
            await self.refresh()

    async def refresh(self) -> None:
        await self.coalesce_refresh()

    async def coalesce_refresh(self) -> None:
        """Run :py:meth:`load`, joining a load that is already in flight.

        Every caller that arrives while a load is running observes that load's outcome.
        The in-flight marker is cleared before any caller resumes, so a caller that
        refreshes again afterwards starts a new load.
        """
        if self._refresh_task is None:
            logger.debug("Starting credential refresh for %s", type(self).__name__)
            self._refresh_task = asyncio.ensure_future(self._load_once())
        else:
            logger.debug("Joining in-flight refresh for %s", type(self).__name__)
        await asyncio.shield(self._refresh_task)

    async def _load_once(self) -> None:
        try:
            await self.load()
        finally:
            self._refresh_task = None

    async def load(self) -> None:
        """Static credentials have nothing to fetch."""
        self.expired = False

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(access_key_id={self.access_key_id!r}, "
            "secret_access_key='****', "
            f"session_token={'****' if self.session_token else None!r}, "
            f"expire_time={self.expire_time!r}, expired={self.expired!r})"
        )

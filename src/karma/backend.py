"""Async client for the hosted entity backend."""

import asyncio
import json
import logging
from typing import List, Optional

import aiohttp

from .config import Settings

logger = logging.getLogger(__name__)

NONPROFIT = "Nonprofit"
OPPORTUNITY = "Opportunity"
DONATION = "Donation"
MESSAGE = "Message"
REVIEW = "Review"
RECURRING_DONATION = "RecurringDonation"
VOLUNTEER_APPLICATION = "VolunteerApplication"

ME_PATH = "/entities/User/me"


class KarmaError(Exception):
    """Base class for karma errors."""


class BackendError(KarmaError):
    """The backend answered with an error status."""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        super().__init__(f"Backend returned status {status}{': ' + message if message else ''}")


class ActionFailed(KarmaError):
    """A write (create/update) did not go through.

    The cause is not broken down further: a duplicate review, a rejected
    status change and a network error all surface the same way.
    """


class BackendClient:
    """Client for entity list/filter/get/create/update and the auth user.

    Reads never raise: a failed fetch is logged and treated as empty so the
    caller can carry on with degraded results. Writes raise ActionFailed.
    """

    def __init__(self, session: aiohttp.ClientSession, settings: Settings):
        self.session = session
        self.settings = settings
        self.headers = {"Content-Type": "application/json"}
        if settings.api_key:
            self.headers["api_key"] = settings.api_key

    async def _request(self, method: str, path: str, params: Optional[dict] = None,
                       payload: Optional[dict] = None):
        url = f"{self.settings.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout)
        async with self.session.request(method, url, params=params, json=payload,
                                        headers=self.headers, timeout=timeout) as resp:
            if resp.status >= 400:
                text = await resp.text()
                raise BackendError(resp.status, text[:200])
            return await resp.json()

    @staticmethod
    def _query(sort: Optional[str], limit: Optional[int], query: Optional[dict] = None) -> dict:
        params = {}
        if query:
            params["q"] = json.dumps(query)
        if sort:
            params["sort"] = sort
        if limit is not None:
            params["limit"] = str(limit)
        return params

    async def list(self, entity: str, sort: Optional[str] = None,
                   limit: Optional[int] = None) -> List[dict]:
        """All records of an entity, e.g. list(NONPROFIT, "-created_date", 5)."""
        return await self._fetch_many(entity, self._query(sort, limit))

    async def filter(self, entity: str, query: dict, sort: Optional[str] = None,
                     limit: Optional[int] = None) -> List[dict]:
        """Records whose fields equal the values in `query`."""
        return await self._fetch_many(entity, self._query(sort, limit, query))

    async def _fetch_many(self, entity: str, params: dict) -> List[dict]:
        try:
            data = await self._request("GET", f"/entities/{entity}", params=params)
        except (aiohttp.ClientError, asyncio.TimeoutError, BackendError) as e:
            logger.warning(f"Error fetching {entity} records: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Unexpected {entity} response shape: {type(data).__name__}")
            return []
        return data

    async def get(self, entity: str, record_id: str) -> Optional[dict]:
        try:
            return await self._request("GET", f"/entities/{entity}/{record_id}")
        except (aiohttp.ClientError, asyncio.TimeoutError, BackendError) as e:
            logger.warning(f"Error fetching {entity} {record_id}: {e}")
            return None

    async def create(self, entity: str, fields: dict) -> dict:
        try:
            return await self._request("POST", f"/entities/{entity}", payload=fields)
        except (aiohttp.ClientError, asyncio.TimeoutError, BackendError) as e:
            logger.error(f"Error creating {entity}: {e}")
            raise ActionFailed(f"Could not create {entity}") from e

    async def update(self, entity: str, record_id: str, fields: dict) -> dict:
        try:
            return await self._request("PUT", f"/entities/{entity}/{record_id}", payload=fields)
        except (aiohttp.ClientError, asyncio.TimeoutError, BackendError) as e:
            logger.error(f"Error updating {entity} {record_id}: {e}")
            raise ActionFailed(f"Could not update {entity}") from e

    async def current_user(self) -> Optional[dict]:
        """The signed-in user, or None if there is none (or it can't be fetched)."""
        try:
            return await self._request("GET", ME_PATH)
        except (aiohttp.ClientError, asyncio.TimeoutError, BackendError) as e:
            logger.warning(f"Error fetching current user: {e}")
            return None

    async def update_current_user(self, fields: dict) -> dict:
        try:
            return await self._request("PUT", ME_PATH, payload=fields)
        except (aiohttp.ClientError, asyncio.TimeoutError, BackendError) as e:
            logger.error(f"Error updating current user: {e}")
            raise ActionFailed("Could not update user") from e

#!/usr/bin/env python3
"""
Remote Stats Sync - Client for the spreadsheet-backed stats webhook
Pushes go through a single-worker queue so they stay in write order and
never block the caller
"""

import logging
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Optional, Any

import requests

from config import REMOTE_TIMEOUT_SECONDS
from quiz_models import UserStats

logger = logging.getLogger(__name__)


class RemoteSyncError(Exception):
    pass


class RemoteStatsClient:
    """GET ?email=<email> returns stats, POST {email, data} stores them"""

    def __init__(self, base_url: str, timeout: float = REMOTE_TIMEOUT_SECONDS, session: Any = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, email: str) -> Optional[UserStats]:
        """Remote stats for the user, or None when unavailable"""
        try:
            response = self.session.get(self.base_url, params={"email": email}, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Remote stats fetch failed for {email}: {e}")
            return None

        if not isinstance(data, dict) or "totalAttempts" not in data:
            return None
        try:
            return UserStats.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Remote stats for {email} are malformed: {e}")
            return None

    def push(self, email: str, stats: UserStats):
        try:
            response = self.session.post(
                self.base_url,
                json={"email": email, "data": stats.to_dict()},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RemoteSyncError(f"Remote stats push failed for {email}: {e}") from e


class SyncQueue:
    """One-way outbound queue of remote pushes, processed in submission order"""

    def __init__(self, client: RemoteStatsClient):
        self.client = client
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stats-sync")

    def _push(self, email: str, snapshot: UserStats) -> bool:
        try:
            self.client.push(email, snapshot)
            return True
        except RemoteSyncError as e:
            logger.error(str(e))
            return False

    def submit(self, email: str, stats: UserStats) -> Future:
        """Queue a push of a snapshot of stats; the future resolves to True on success"""
        snapshot = UserStats.from_dict(stats.to_dict())
        return self._executor.submit(self._push, email, snapshot)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

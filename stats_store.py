#!/usr/bin/env python3
"""
Stats Store - Durable per-user practice statistics
Records attempts, derives mastered words and per-category accuracy, and
reconciles the local copy with the remote webhook by attempt count
"""

import logging
import threading
from concurrent.futures import Future
from typing import Dict, List, Optional

from quiz_models import QuizCategory, AttemptRecord, UserStats, CategoryStats
from stats_storage import StatsStorage
from remote_sync import RemoteStatsClient, SyncQueue

logger = logging.getLogger(__name__)

STATS_KEY_PREFIX = "vocab_master_stats_"
LAST_USER_KEY = "vocab_master_last_user"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def stats_key(email: str) -> str:
    return f"{STATS_KEY_PREFIX}{email}"


class StatsStore:
    """
    Local storage is the immediately consistent source of truth. The remote
    copy is best-effort: pushes are queued and their failures only logged.
    """

    def __init__(self, storage: StatsStorage, remote: Optional[RemoteStatsClient] = None):
        self.storage = storage
        self.remote = remote
        self.sync_queue = SyncQueue(remote) if remote is not None else None
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, email: str) -> threading.Lock:
        """Serializes read-modify-write of one user's record"""
        with self._locks_guard:
            lock = self._locks.get(email)
            if lock is None:
                lock = self._locks[email] = threading.Lock()
            return lock

    def _load_local(self, email: str) -> UserStats:
        return UserStats.from_dict(self.storage.load(stats_key(email)))

    def _save_local(self, email: str, stats: UserStats):
        self.storage.save(stats_key(email), stats.to_dict())

    def _push_remote(self, email: str, stats: UserStats) -> Optional[Future]:
        if self.sync_queue is None:
            return None
        return self.sync_queue.submit(email, stats)

    def record_attempt(self, email: str, category: QuizCategory, target_word: str,
                       is_correct: bool) -> Optional[Future]:
        """Append an attempt for the user; returns the pending remote push, if any"""
        email = normalize_email(email)
        if not email:
            return None

        with self._lock_for(email):
            stats = self._load_local(email)
            stats.add_attempt(AttemptRecord.now(category, target_word, is_correct))
            self._save_local(email, stats)
            return self._push_remote(email, stats)

    def get_stats(self, email: str) -> UserStats:
        email = normalize_email(email)
        if not email:
            return UserStats()

        if self.remote is None:
            return self._load_local(email)

        # The webhook is never called while holding the user lock
        remote = self.remote.fetch(email)
        remote_total = remote.total_attempts if remote is not None else 0

        with self._lock_for(email):
            local = self._load_local(email)
            # More attempts is treated as more authoritative; equal counts are left alone
            if remote is not None and remote_total > local.total_attempts:
                logger.info(f"Adopting remote stats for {email} ({remote_total} > {local.total_attempts} attempts)")
                self._save_local(email, remote)
                return remote
            if local.total_attempts > remote_total:
                self._push_remote(email, local)
            return local

    def get_mastered_words(self, email: str) -> List[str]:
        return self.get_stats(email).mastered_words

    def get_category_stats(self, email: str) -> List[CategoryStats]:
        """Attempts and accuracy per category, in category order"""
        stats = self.get_stats(email)
        results = []
        for category in QuizCategory:
            history = [r for r in stats.history if r.category == category]
            attempts = len(history)
            correct = sum(1 for r in history if r.is_correct)
            results.append(CategoryStats(
                category=category,
                attempts=attempts,
                accuracy=(correct / attempts * 100) if attempts > 0 else 0,
            ))
        return results

    def clear_data(self, email: str):
        """Delete the local record only; the remote copy is kept"""
        email = normalize_email(email)
        if not email:
            return
        with self._lock_for(email):
            self.storage.delete(stats_key(email))
        logger.info(f"Cleared local stats for {email}")

    # --- Last logged-in user ---

    def remember_user(self, email: str) -> str:
        email = normalize_email(email)
        if email:
            self.storage.save(LAST_USER_KEY, {"email": email})
        return email

    def last_user(self) -> Optional[str]:
        record = self.storage.load(LAST_USER_KEY)
        return record.get("email") if record else None

    def forget_user(self):
        self.storage.delete(LAST_USER_KEY)

    def close(self):
        if self.sync_queue is not None:
            self.sync_queue.shutdown()

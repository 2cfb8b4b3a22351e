"""
Shared fixtures for the quiz service tests
"""

import threading
from typing import List

import pytest

from quiz_models import QuizCategory, Question, UserStats, AttemptRecord
from remote_sync import RemoteSyncError
from stats_storage import InMemoryStatsStorage


def make_questions(count: int = 5, category: QuizCategory = QuizCategory.SYNONYMS) -> List[Question]:
    return [
        Question(
            id=f"q-{i}",
            type=category,
            target_word=f"word{i}",
            question_text=f"Choose the synonym of word{i}",
            options=[f"right{i}", f"wrong{i}a", f"wrong{i}b", f"wrong{i}c"],
            correct_answer=f"right{i}",
            explanation=f"right{i} means the same as word{i}",
            hint="Starts with r",
        )
        for i in range(count)
    ]


def make_stats(attempts: int, correct_every: int = 2) -> UserStats:
    stats = UserStats()
    for i in range(attempts):
        stats.add_attempt(AttemptRecord(
            timestamp=1_700_000_000_000 + i,
            category=QuizCategory.SYNONYMS,
            target_word=f"word{i}",
            is_correct=(i % correct_every == 0),
        ))
    return stats


class ManualTimer:
    """Countdown stand-in driven by the test"""

    def __init__(self, on_tick, registry):
        self.on_tick = on_tick
        self.started = False
        self.cancel_count = 0
        registry.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancel_count += 1

    @property
    def cancelled(self):
        return self.cancel_count > 0


class FakeRemote:
    """In-memory stand-in for the remote stats webhook"""

    def __init__(self, stats: UserStats = None, fail_push: bool = False):
        self.stats = stats
        self.fail_push = fail_push
        self.pushes = []
        self.fetches = []
        self._lock = threading.Lock()

    def fetch(self, email):
        self.fetches.append(email)
        return self.stats

    def push(self, email, stats):
        if self.fail_push:
            raise RemoteSyncError("webhook unavailable")
        with self._lock:
            self.pushes.append((email, stats.total_attempts))


class FakeGenerator:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def generate(self, category, difficulty, count, exclude_words=None):
        from question_generator import GenerationFailed

        self.calls.append({
            "category": category,
            "difficulty": difficulty,
            "count": count,
            "exclude_words": list(exclude_words or []),
        })
        if self.fail:
            raise GenerationFailed()
        return make_questions(count, category)


@pytest.fixture
def timers():
    return []


@pytest.fixture
def timer_factory(timers):
    return lambda on_tick: ManualTimer(on_tick, timers)


@pytest.fixture
def storage():
    return InMemoryStatsStorage()

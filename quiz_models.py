#!/usr/bin/env python3
"""
Quiz Domain Models - Categories, difficulties, questions and per-user statistics
Shared by the session engine, the stats store and the API layer
"""

from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field
from enum import Enum
import time


class QuizCategory(str, Enum):
    SYNONYMS = "Synonyms"
    ANTONYMS = "Antonyms"
    IDIOMS = "Idioms"
    CLOZE = "Cloze Test"
    ONE_WORD = "One Word Substitution"
    SPOT_ERROR = "Spot the Error"
    SENTENCE_ARRANGEMENT = "Sentence Arrangement"
    POSSIBLE_STARTERS = "Possible Starters"


# Categories where the correct answer is a reusable word or idiom
VOCABULARY_CATEGORIES = {
    QuizCategory.SYNONYMS,
    QuizCategory.ANTONYMS,
    QuizCategory.IDIOMS,
    QuizCategory.ONE_WORD,
}


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"

    @property
    def seconds_per_question(self) -> int:
        return DIFFICULTY_SECONDS[self]


DIFFICULTY_SECONDS = {
    Difficulty.EASY: 45,
    Difficulty.MEDIUM: 30,
    Difficulty.HARD: 20,
}


@dataclass(frozen=True)
class Question:
    id: str
    type: QuizCategory
    target_word: str
    question_text: str
    options: List[str]
    correct_answer: str
    explanation: str
    hint: str = ""

    def wrong_options(self) -> List[str]:
        return [o for o in self.options if o != self.correct_answer]


@dataclass(frozen=True)
class AttemptRecord:
    timestamp: int  # epoch milliseconds
    category: QuizCategory
    target_word: str
    is_correct: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "category": self.category.value,
            "targetWord": self.target_word,
            "isCorrect": self.is_correct,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttemptRecord":
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            category=QuizCategory(data["category"]),
            target_word=data.get("targetWord", ""),
            is_correct=bool(data.get("isCorrect", False)),
        )

    @classmethod
    def now(cls, category: QuizCategory, target_word: str, is_correct: bool) -> "AttemptRecord":
        return cls(
            timestamp=int(time.time() * 1000),
            category=QuizCategory(category),
            target_word=target_word,
            is_correct=is_correct,
        )


@dataclass
class UserStats:
    """Aggregate statistics for one user, serialized with camelCase keys"""
    total_attempts: int = 0
    correct_attempts: int = 0
    mastered_words: List[str] = field(default_factory=list)
    history: List[AttemptRecord] = field(default_factory=list)

    @property
    def overall_accuracy(self) -> int:
        if self.total_attempts == 0:
            return 0
        return round(self.correct_attempts / self.total_attempts * 100)

    def add_attempt(self, record: AttemptRecord):
        """Append an attempt and keep the aggregates in step with history"""
        self.history.append(record)
        self.total_attempts += 1
        if record.is_correct:
            self.correct_attempts += 1
            if record.target_word not in self.mastered_words:
                self.mastered_words.append(record.target_word)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAttempts": self.total_attempts,
            "correctAttempts": self.correct_attempts,
            "masteredWords": list(self.mastered_words),
            "history": [r.to_dict() for r in self.history],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserStats":
        if not data:
            return cls()
        return cls(
            total_attempts=int(data.get("totalAttempts", 0)),
            correct_attempts=int(data.get("correctAttempts", 0)),
            mastered_words=list(dict.fromkeys(data.get("masteredWords") or [])),
            history=[AttemptRecord.from_dict(r) for r in data.get("history") or []],
        )


@dataclass
class CategoryStats:
    category: QuizCategory
    attempts: int
    accuracy: float


@dataclass
class SessionSummary:
    score: int
    total_questions: int
    questions_correct: int

    @property
    def accuracy(self) -> int:
        if self.total_questions == 0:
            return 0
        return round(self.questions_correct / self.total_questions * 100)

#!/usr/bin/env python3
"""
Quiz Session Engine - Drives one bounded practice run
Handles question sequencing, timed answers, scoring with speed and streak
bonuses, lifelines (hint and 50-50) and the end-of-session summary
"""

import logging
import random
import threading
from typing import List, Optional, Callable, Any
from dataclasses import dataclass
from enum import Enum

from quiz_models import Question, Difficulty, SessionSummary, QuizCategory

logger = logging.getLogger(__name__)

BASE_POINTS = 10
STREAK_BONUS = 2
LIFELINE_COST = 2
DEFAULT_TICK_SECONDS = 0.1


# === Errors ===

class QuizError(Exception):
    """Base class for session contract violations"""


class EmptyQuestionSet(QuizError):
    pass


class AlreadySubmitted(QuizError):
    pass


class LifelineAlreadyUsed(QuizError):
    pass


class NotSubmitted(QuizError):
    pass


class SessionComplete(QuizError):
    """Raised by advance() on the last question; call finish() instead"""


class SessionIncomplete(QuizError):
    """Raised by finish() before the last question is reached"""


class SessionNotActive(QuizError):
    pass


class SessionState(Enum):
    LOADING = "loading"
    IN_PROGRESS = "in_progress"
    SUMMARY = "summary"
    FAILED = "failed"


@dataclass
class AnswerOutcome:
    is_correct: bool
    points_awarded: int
    correct_answer: str
    explanation: str
    streak: int
    score: int
    timed_out: bool = False


AttemptRecorder = Callable[[QuizCategory, str, bool], Any]


# === Countdown ===

class CountdownTimer:
    """Calls on_tick(elapsed_seconds) every interval on a daemon thread until cancelled"""

    def __init__(self, on_tick: Callable[[float], None], interval: float = DEFAULT_TICK_SECONDS):
        self.on_tick = on_tick
        self.interval = interval
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.on_tick(self.interval)
            except Exception as e:
                logger.error(f"Countdown tick failed: {e}")
                return

    def cancel(self):
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()


# === Engine ===

class SessionEngine:
    """
    State machine for a single quiz run.

    All transitions happen under one lock so the countdown thread and a
    manual answer cannot both submit the same question. The engine owns at
    most one live countdown; starting a new one always cancels the old one.
    """

    def __init__(self,
                 difficulty: Difficulty = Difficulty.MEDIUM,
                 recorder: Optional[AttemptRecorder] = None,
                 timer_factory: Optional[Callable[[Callable[[float], None]], Any]] = CountdownTimer,
                 rng: Optional[random.Random] = None):
        self.difficulty = Difficulty(difficulty)
        self.recorder = recorder
        self.timer_factory = timer_factory
        self.rng = rng or random.Random()
        self._lock = threading.RLock()
        self._timer: Any = None
        self._countdown_id = 0

        self.state = SessionState.LOADING
        self.failure_reason: Optional[str] = None
        self.questions: List[Question] = []
        self.current_index = 0
        self.score = 0
        self.streak = 0
        self.questions_correct = 0
        self.summary: Optional[SessionSummary] = None
        self._reset_question_state()

    def _reset_question_state(self):
        self.selected_option: Optional[str] = None
        self.submitted = False
        self.hidden_options: set = set()
        self.hint_used = False
        self.fifty_fifty_used = False
        self.time_remaining = 100.0

    # --- Lifecycle ---

    def start(self, questions: List[Question]):
        """Begin a run over the given questions, resetting every counter"""
        with self._lock:
            self._cancel_countdown()
            if not questions:
                self.state = SessionState.FAILED
                self.failure_reason = "No questions were generated"
                raise EmptyQuestionSet("Cannot start a session without questions")

            self.questions = list(questions)
            self.current_index = 0
            self.score = 0
            self.streak = 0
            self.questions_correct = 0
            self.summary = None
            self.failure_reason = None
            self._reset_question_state()
            self.state = SessionState.IN_PROGRESS
            self._start_countdown()
        logger.info(f"Session started with {len(self.questions)} questions ({self.difficulty.value})")

    def fail(self, reason: str):
        """Move to the error state after question generation failed"""
        with self._lock:
            self._cancel_countdown()
            self.state = SessionState.FAILED
            self.failure_reason = reason
            self.questions = []
            self.current_index = 0
            self._reset_question_state()

    def close(self):
        """Tear down the session's countdown"""
        with self._lock:
            self._cancel_countdown()
            # Ticks already in flight from the closed countdown are dropped
            self._countdown_id += 1

    # --- Countdown ---

    def _start_countdown(self):
        self._cancel_countdown()
        self.time_remaining = 100.0
        self._countdown_id += 1
        if self.timer_factory is None:
            return
        countdown_id = self._countdown_id
        self._timer = self.timer_factory(lambda elapsed: self._on_timer_tick(countdown_id, elapsed))
        self._timer.start()

    def _cancel_countdown(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer_tick(self, countdown_id: int, elapsed: float):
        with self._lock:
            # Ticks from a cancelled countdown that were already in flight
            if countdown_id != self._countdown_id:
                return
            self.tick(elapsed)

    def tick(self, elapsed_seconds: float):
        """Advance the clock; an expired unanswered question is auto-submitted"""
        with self._lock:
            if self.state != SessionState.IN_PROGRESS or self.submitted:
                return
            duration = self.difficulty.seconds_per_question
            self.time_remaining = max(0.0, self.time_remaining - elapsed_seconds / duration * 100)
            expired = self.time_remaining <= 0
        if expired:
            self.time_expire()

    # --- Answering ---

    @property
    def current_question(self) -> Optional[Question]:
        if self.state != SessionState.IN_PROGRESS and self.state != SessionState.SUMMARY:
            return None
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return bool(self.questions) and self.current_index == len(self.questions) - 1

    @property
    def visible_options(self) -> List[str]:
        question = self.current_question
        if question is None:
            return []
        return [o for o in question.options if o not in self.hidden_options]

    def _require_in_progress(self):
        if self.state != SessionState.IN_PROGRESS:
            raise SessionNotActive(f"Session is {self.state.value}")

    def select_answer(self, option: str) -> AnswerOutcome:
        with self._lock:
            self._require_in_progress()
            if self.submitted:
                raise AlreadySubmitted("Question already answered")

            self._cancel_countdown()
            question = self.questions[self.current_index]
            self.selected_option = option
            self.submitted = True

            is_correct = option == question.correct_answer
            points = 0
            if is_correct:
                points = BASE_POINTS + int(self.time_remaining // 10) + STREAK_BONUS * self.streak
                self.score += points
                self.streak += 1
                self.questions_correct += 1
            else:
                self.streak = 0

            outcome = AnswerOutcome(
                is_correct=is_correct,
                points_awarded=points,
                correct_answer=question.correct_answer,
                explanation=question.explanation,
                streak=self.streak,
                score=self.score,
            )

        self._record(question, is_correct)
        return outcome

    def time_expire(self) -> Optional[AnswerOutcome]:
        """Submit 'no answer' for the current question; no-op once submitted"""
        with self._lock:
            if self.state != SessionState.IN_PROGRESS or self.submitted:
                return None

            self._cancel_countdown()
            index = self.current_index
            question = self.questions[index]
            self.time_remaining = 0.0
            self.selected_option = None
            self.submitted = True
            self.streak = 0

            outcome = AnswerOutcome(
                is_correct=False,
                points_awarded=0,
                correct_answer=question.correct_answer,
                explanation=question.explanation,
                streak=0,
                score=self.score,
                timed_out=True,
            )

        logger.info(f"Question {index + 1} timed out")
        self._record(question, False)
        return outcome

    def _record(self, question: Question, is_correct: bool):
        if self.recorder is None:
            return
        try:
            self.recorder(question.type, question.target_word, is_correct)
        except Exception as e:
            logger.error(f"Failed to record attempt for '{question.target_word}': {e}")

    # --- Lifelines ---

    def _charge_lifeline(self):
        self.score = max(0, self.score - LIFELINE_COST)

    def apply_fifty_fifty(self) -> List[str]:
        """Hide two wrong options and return them"""
        with self._lock:
            self._require_in_progress()
            if self.fifty_fifty_used or self.submitted:
                raise LifelineAlreadyUsed("50-50 is not available for this question")

            wrong = self.questions[self.current_index].wrong_options()
            hidden = self.rng.sample(wrong, min(2, len(wrong)))
            self.hidden_options.update(hidden)
            self.fifty_fifty_used = True
            self._charge_lifeline()
            return hidden

    def apply_hint(self) -> str:
        """Mark the hint as used and return it for display"""
        with self._lock:
            self._require_in_progress()
            if self.hint_used or self.submitted:
                raise LifelineAlreadyUsed("Hint is not available for this question")

            self.hint_used = True
            self._charge_lifeline()
            return self.questions[self.current_index].hint

    # --- Navigation ---

    def advance(self) -> Question:
        with self._lock:
            self._require_in_progress()
            if not self.submitted:
                raise NotSubmitted("Answer the current question first")
            if self.is_last_question:
                raise SessionComplete("No more questions; finish the session")

            self.current_index += 1
            self._reset_question_state()
            self._start_countdown()
            return self.questions[self.current_index]

    def finish(self) -> SessionSummary:
        with self._lock:
            if self.state == SessionState.SUMMARY and self.summary is not None:
                return self.summary
            self._require_in_progress()
            if not self.submitted:
                raise NotSubmitted("Answer the current question first")
            if not self.is_last_question:
                raise SessionIncomplete("Questions remain in this session")

            self._cancel_countdown()
            self.state = SessionState.SUMMARY
            self.summary = SessionSummary(
                score=self.score,
                total_questions=len(self.questions),
                questions_correct=self.questions_correct,
            )

        logger.info(f"Session finished: score {self.summary.score}, "
                    f"{self.summary.questions_correct}/{self.summary.total_questions} correct")
        return self.summary

#!/usr/bin/env python3
"""
Quiz API Models - Request and response schemas for the practice quiz API
"""

from __future__ import annotations
from typing import List, Dict, Optional, Any
from pydantic import BaseModel, Field

from config import QUESTIONS_PER_SESSION
from quiz_models import QuizCategory, Difficulty

# === Auth Models ===

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, description="Email used as the profile key")

class LoginResponse(BaseModel):
    email: str

class LastUserResponse(BaseModel):
    email: Optional[str] = None

# === Catalogue Models ===

class CategoryInfo(BaseModel):
    name: QuizCategory
    is_vocabulary: bool

class DifficultyInfo(BaseModel):
    name: Difficulty
    seconds_per_question: int

# === Session Models ===

class SessionCreateRequest(BaseModel):
    """Start a practice run"""
    email: str = Field(..., min_length=1)
    category: QuizCategory
    difficulty: Difficulty = Difficulty.MEDIUM
    question_count: int = Field(QUESTIONS_PER_SESSION, ge=1, le=20)

class QuestionView(BaseModel):
    """Question shown to the learner (without the correct answer)"""
    question_id: str
    category: QuizCategory
    question_text: str
    options: List[str]
    hidden_options: List[str] = []

class SessionStateResponse(BaseModel):
    session_id: str
    state: str
    category: QuizCategory
    difficulty: Difficulty
    current_index: int
    total_questions: int
    question: Optional[QuestionView] = None
    submitted: bool
    selected_option: Optional[str] = None
    score: int
    streak: int
    time_remaining: float
    hint_used: bool
    fifty_fifty_used: bool
    is_last_question: bool

class AnswerRequest(BaseModel):
    option: str

class AnswerResponse(BaseModel):
    is_correct: bool
    points_awarded: int
    correct_answer: str
    explanation: str
    streak: int
    score: int
    timed_out: bool = False

class HintResponse(BaseModel):
    hint: str
    score: int

class FiftyFiftyResponse(BaseModel):
    hidden_options: List[str]
    remaining_options: List[str]
    score: int

class SessionSummaryResponse(BaseModel):
    session_id: str
    score: int
    total_questions: int
    questions_correct: int
    accuracy: int

# === Stats Models ===

class AttemptRecordModel(BaseModel):
    timestamp: int
    category: QuizCategory
    target_word: str
    is_correct: bool

class UserStatsResponse(BaseModel):
    email: str
    total_attempts: int
    correct_attempts: int
    overall_accuracy: int
    mastered_words: List[str]
    history: List[AttemptRecordModel]

class CategoryStatsModel(BaseModel):
    category: QuizCategory
    attempts: int
    accuracy: float

class MasteredWordsResponse(BaseModel):
    email: str
    mastered_words: List[str]
    count: int

# === Error Models ===

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None

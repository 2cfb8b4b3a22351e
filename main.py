#!/usr/bin/env python3
"""
FastAPI Application for the Vocabulary Practice Quiz
Email-keyed profiles, AI-generated practice sessions and dashboard statistics
"""

import time
import uuid
import logging
import threading
from datetime import datetime
from functools import partial
from typing import List, Dict, Optional
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from config import (
    CORS_ORIGINS, REMOTE_STATS_URL, TIMER_TICK_SECONDS, SESSION_IDLE_TIMEOUT_SECONDS,
)
from quiz_models import QuizCategory, Difficulty, VOCABULARY_CATEGORIES
from quiz_session import (
    SessionEngine, CountdownTimer, QuizError, EmptyQuestionSet,
)
from question_generator import QuestionGenerator, GenerationFailed
from stats_store import StatsStore, normalize_email
from stats_storage import create_storage
from remote_sync import RemoteStatsClient
from quiz_api_models import *

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class ActiveSession:
    email: str
    category: QuizCategory
    engine: SessionEngine
    last_active: float = field(default_factory=time.monotonic)

    def touch(self):
        self.last_active = time.monotonic()


# In-memory storage for running quiz sessions
active_quiz_sessions: Dict[str, ActiveSession] = {}
sessions_lock = threading.Lock()

_stats_store: Optional[StatsStore] = None
_question_generator: Optional[QuestionGenerator] = None

# === Dependencies ===

def get_stats_store() -> StatsStore:
    global _stats_store
    if _stats_store is None:
        remote = RemoteStatsClient(REMOTE_STATS_URL) if REMOTE_STATS_URL else None
        _stats_store = StatsStore(create_storage(), remote)
    return _stats_store

def get_question_generator() -> QuestionGenerator:
    global _question_generator
    if _question_generator is None:
        _question_generator = QuestionGenerator()
    return _question_generator

def get_timer_factory():
    return partial(CountdownTimer, interval=TIMER_TICK_SECONDS)

def get_active_session(session_id: str) -> ActiveSession:
    prune_idle_sessions()
    with sessions_lock:
        session = active_quiz_sessions.get(session_id)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Quiz session not found"
        )
    session.touch()
    return session

# === Session Registry ===

def close_session(session_id: str) -> Optional[ActiveSession]:
    """Remove a session and stop its countdown"""
    with sessions_lock:
        session = active_quiz_sessions.pop(session_id, None)
    if session is not None:
        session.engine.close()
    return session

def close_sessions_for(email: str):
    """A user has at most one live session; starting another ends the old one"""
    with sessions_lock:
        session_ids = [sid for sid, s in active_quiz_sessions.items() if s.email == email]
    for session_id in session_ids:
        close_session(session_id)
        logger.info(f"Replaced session {session_id} for {email}")

def prune_idle_sessions(now: Optional[float] = None):
    now = time.monotonic() if now is None else now
    with sessions_lock:
        expired = [
            sid for sid, s in active_quiz_sessions.items()
            if now - s.last_active > SESSION_IDLE_TIMEOUT_SECONDS
        ]
    for session_id in expired:
        close_session(session_id)
        logger.info(f"Expired idle session {session_id}")

# === Application Lifecycle ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager"""
    logger.info("Starting Vocabulary Practice API...")
    yield
    logger.info("Shutting down Vocabulary Practice API...")
    for session_id in list(active_quiz_sessions):
        close_session(session_id)
    if _stats_store is not None:
        _stats_store.close()

# === FastAPI Application ===

app = FastAPI(
    title="Vocabulary Practice Quiz API",
    description="AI-generated verbal ability practice with per-user progress tracking",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Response Builders ===

def build_session_state(session_id: str, session: ActiveSession) -> SessionStateResponse:
    engine = session.engine
    question = engine.current_question
    question_view = None
    if question is not None:
        question_view = QuestionView(
            question_id=question.id,
            category=question.type,
            question_text=question.question_text,
            options=question.options,
            hidden_options=sorted(engine.hidden_options),
        )

    return SessionStateResponse(
        session_id=session_id,
        state=engine.state.value,
        category=session.category,
        difficulty=engine.difficulty,
        current_index=engine.current_index,
        total_questions=len(engine.questions),
        question=question_view,
        submitted=engine.submitted,
        selected_option=engine.selected_option,
        score=engine.score,
        streak=engine.streak,
        time_remaining=round(engine.time_remaining, 1),
        hint_used=engine.hint_used,
        fifty_fifty_used=engine.fifty_fifty_used,
        is_last_question=engine.is_last_question,
    )

def quiz_conflict(e: QuizError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

# === Authentication Endpoints ===

@app.post("/api/auth/login", response_model=LoginResponse)
def login(user_data: LoginRequest, stats_store: StatsStore = Depends(get_stats_store)):
    """Open the profile for an email and remember it for the next visit"""
    email = stats_store.remember_user(user_data.email)
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required"
        )
    logger.info(f"User logged in: {email}")
    return LoginResponse(email=email)

@app.post("/api/auth/logout")
def logout(stats_store: StatsStore = Depends(get_stats_store)):
    stats_store.forget_user()
    return {"status": "success"}

@app.get("/api/auth/last-user", response_model=LastUserResponse)
def last_user(stats_store: StatsStore = Depends(get_stats_store)):
    """Email of the last logged-in user, used to restore the session on restart"""
    return LastUserResponse(email=stats_store.last_user())

# === Catalogue Endpoints ===

@app.get("/api/quiz/categories", response_model=List[CategoryInfo])
async def get_categories():
    """Get available practice categories"""
    return [
        CategoryInfo(name=category, is_vocabulary=category in VOCABULARY_CATEGORIES)
        for category in QuizCategory
    ]

@app.get("/api/quiz/difficulties", response_model=List[DifficultyInfo])
async def get_difficulties():
    return [
        DifficultyInfo(name=difficulty, seconds_per_question=difficulty.seconds_per_question)
        for difficulty in Difficulty
    ]

# === Quiz Session Endpoints ===

@app.post("/api/quiz/session/create", response_model=SessionStateResponse)
def create_quiz_session(
    request: SessionCreateRequest,
    stats_store: StatsStore = Depends(get_stats_store),
    generator: QuestionGenerator = Depends(get_question_generator),
    timer_factory=Depends(get_timer_factory),
):
    """Generate questions and start a new practice run"""
    email = normalize_email(request.email)
    prune_idle_sessions()
    close_sessions_for(email)

    engine = SessionEngine(
        difficulty=request.difficulty,
        recorder=partial(stats_store.record_attempt, email),
        timer_factory=timer_factory,
    )

    try:
        mastered = stats_store.get_mastered_words(email)
        questions = generator.generate(
            request.category, request.difficulty, request.question_count, mastered
        )
        engine.start(questions)
    except (GenerationFailed, EmptyQuestionSet) as e:
        engine.fail(str(e))
        logger.error(f"Quiz session creation failed for {email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(GenerationFailed())
        )

    session_id = str(uuid.uuid4())
    session = ActiveSession(email=email, category=request.category, engine=engine)
    with sessions_lock:
        replaced = [
            active_quiz_sessions.pop(sid)
            for sid in [sid for sid, s in active_quiz_sessions.items() if s.email == email]
        ]
        active_quiz_sessions[session_id] = session
    # Created concurrently for the same user while questions were generating
    for old in replaced:
        old.engine.close()
    logger.info(f"New session {session_id} for {email} [{request.category.value}, {request.difficulty.value}]")
    return build_session_state(session_id, session)

@app.get("/api/quiz/session/{session_id}", response_model=SessionStateResponse)
def get_quiz_session_status(session_id: str):
    """Get current status of a quiz session"""
    session = get_active_session(session_id)
    return build_session_state(session_id, session)

@app.post("/api/quiz/session/{session_id}/answer", response_model=AnswerResponse)
def submit_answer(session_id: str, answer: AnswerRequest):
    session = get_active_session(session_id)
    try:
        outcome = session.engine.select_answer(answer.option)
    except QuizError as e:
        raise quiz_conflict(e)

    return AnswerResponse(
        is_correct=outcome.is_correct,
        points_awarded=outcome.points_awarded,
        correct_answer=outcome.correct_answer,
        explanation=outcome.explanation,
        streak=outcome.streak,
        score=outcome.score,
        timed_out=outcome.timed_out,
    )

@app.post("/api/quiz/session/{session_id}/hint", response_model=HintResponse)
def use_hint(session_id: str):
    session = get_active_session(session_id)
    try:
        hint = session.engine.apply_hint()
    except QuizError as e:
        raise quiz_conflict(e)
    return HintResponse(hint=hint, score=session.engine.score)

@app.post("/api/quiz/session/{session_id}/fifty-fifty", response_model=FiftyFiftyResponse)
def use_fifty_fifty(session_id: str):
    session = get_active_session(session_id)
    try:
        hidden = session.engine.apply_fifty_fifty()
    except QuizError as e:
        raise quiz_conflict(e)
    return FiftyFiftyResponse(
        hidden_options=hidden,
        remaining_options=session.engine.visible_options,
        score=session.engine.score,
    )

@app.post("/api/quiz/session/{session_id}/next", response_model=SessionStateResponse)
def next_question(session_id: str):
    session = get_active_session(session_id)
    try:
        session.engine.advance()
    except QuizError as e:
        raise quiz_conflict(e)
    return build_session_state(session_id, session)

@app.post("/api/quiz/session/{session_id}/finish", response_model=SessionSummaryResponse)
def finish_session(session_id: str):
    """Close the run and return its summary"""
    session = get_active_session(session_id)
    try:
        summary = session.engine.finish()
    except QuizError as e:
        raise quiz_conflict(e)

    close_session(session_id)
    return SessionSummaryResponse(
        session_id=session_id,
        score=summary.score,
        total_questions=summary.total_questions,
        questions_correct=summary.questions_correct,
        accuracy=summary.accuracy,
    )

@app.delete("/api/quiz/session/{session_id}")
def abandon_session(session_id: str):
    """Exit a run early; answers already given stay recorded"""
    get_active_session(session_id)
    close_session(session_id)
    return {"status": "success"}

# === Stats Endpoints ===

@app.get("/api/stats/{email}", response_model=UserStatsResponse)
def get_user_stats(email: str, stats_store: StatsStore = Depends(get_stats_store)):
    stats = stats_store.get_stats(email)
    return UserStatsResponse(
        email=normalize_email(email),
        total_attempts=stats.total_attempts,
        correct_attempts=stats.correct_attempts,
        overall_accuracy=stats.overall_accuracy,
        mastered_words=stats.mastered_words,
        history=[
            AttemptRecordModel(
                timestamp=r.timestamp,
                category=r.category,
                target_word=r.target_word,
                is_correct=r.is_correct,
            )
            for r in stats.history
        ],
    )

@app.get("/api/stats/{email}/categories", response_model=List[CategoryStatsModel])
def get_category_stats(email: str, stats_store: StatsStore = Depends(get_stats_store)):
    return [
        CategoryStatsModel(category=c.category, attempts=c.attempts, accuracy=c.accuracy)
        for c in stats_store.get_category_stats(email)
    ]

@app.get("/api/stats/{email}/mastered", response_model=MasteredWordsResponse)
def get_mastered_words(email: str, stats_store: StatsStore = Depends(get_stats_store)):
    words = stats_store.get_mastered_words(email)
    return MasteredWordsResponse(email=normalize_email(email), mastered_words=words, count=len(words))

@app.delete("/api/stats/{email}")
def clear_user_stats(email: str, stats_store: StatsStore = Depends(get_stats_store)):
    """Reset local progress; the remote copy is not touched"""
    stats_store.clear_data(email)
    return {"status": "success"}

# === Health Check ===

@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow(),
        "active_sessions": len(active_quiz_sessions),
    }

# === Exception Handlers ===

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            message=f"HTTP {exc.status_code}: {exc.detail}"
        ).model_dump()
    )

@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler"""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal Server Error",
            message="An unexpected error occurred"
        ).model_dump()
    )

# === Development Server ===

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

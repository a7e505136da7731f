#backend/main.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Depends, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import config
from appwrite_auth import (
    AuthenticationError,
    IdentityProviderUnavailable,
    extract_bearer_token,
    verify_jwt,
)
from db import SessionLocal
from logic.errors import (
    InvalidProgressionInput,
    ProgressionError,
    StatisticsNotFound,
    StoreUnavailable,
)
from logic.progression import ProgressionEngine
from logic.store import StatisticsStore
from models.attempt import Attempt
from models.curriculum import Challenge, Lesson, Module
from models.game_result import GameResult
from models.lesson_progress import LessonProgress
from models.user import User
from models.user_statistics import UserStatistics

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# --------- App Setup ---------
app = FastAPI(title="CodeQuest API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------- Error Handlers ---------
_PROGRESSION_STATUS = {
    InvalidProgressionInput: 400,
    StatisticsNotFound: 404,
    StoreUnavailable: 503,
}


@app.exception_handler(ProgressionError)
async def progression_error_handler(request: Request, exc: ProgressionError):
    status_code = _PROGRESSION_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s", exc, exc_info=exc.__cause__)
    else:
        logger.warning("%s", exc)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content={"error": "Unauthorized", "message": str(exc)})


@app.exception_handler(IdentityProviderUnavailable)
async def identity_provider_error_handler(request: Request, exc: IdentityProviderUnavailable):
    return JSONResponse(
        status_code=503, content={"error": "IdentityProviderUnavailable", "message": str(exc)}
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=503, content={"error": "StoreUnavailable", "message": "Database operation failed"}
    )


# --------- Dependencies ---------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_identity(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    return verify_jwt(extract_bearer_token(authorization))


def get_current_user(
    identity: Dict[str, Any] = Depends(get_identity), db: Session = Depends(get_db)
) -> User:
    user = db.query(User).filter_by(appwrite_id=identity["appwrite_id"]).first()
    if not user:
        raise HTTPException(status_code=404, detail="User profile not found in local database")
    return user


def get_progression_engine(db: Session = Depends(get_db)) -> ProgressionEngine:
    return ProgressionEngine(StatisticsStore(db))


# --------- Pydantic Models ---------
class AttemptInput(BaseModel):
    challenge_id: int = Field(..., examples=[1])
    submitted_code: str = Field(..., min_length=1, examples=["<h1>Hello</h1>"])
    lint_report: List[Any] = Field(default_factory=list)
    test_results: List[Any] = Field(default_factory=list)
    score: int = Field(0, ge=0, examples=[80])
    max_score: int = Field(100, gt=0, examples=[100])
    execution_time_ms: Optional[int] = None
    memory_usage_kb: Optional[int] = None
    status: str = "completed"
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def score_within_max(self):
        if self.score > self.max_score:
            raise ValueError("score cannot exceed max_score")
        return self


class GameResultInput(BaseModel):
    game_type: str = Field(..., min_length=1, examples=["css-selector-race"])
    score: int = Field(..., ge=0, examples=[50])
    max_score: int = Field(..., examples=[100])
    time_spent: int = Field(0, ge=0, examples=[30])
    game_data: Dict[str, Any] = Field(default_factory=dict)


class LessonCompleteInput(BaseModel):
    time_spent: int = Field(0, ge=0, examples=[600])


class ProfileUpdateInput(BaseModel):
    username: Optional[str] = Field(None, min_length=1, examples=["ada"])
    avatar_url: Optional[str] = Field(None, examples=["https://example.com/ada.png"])


def _statistics_dict(stats: Optional[UserStatistics]) -> Optional[Dict[str, Any]]:
    if stats is None:
        return None
    return {
        "total_xp": stats.total_xp,
        "level": stats.level,
        "level_title": stats.level_title,
        "challenges_completed": stats.challenges_completed,
        "games_played": stats.games_played,
        "lessons_completed": stats.lessons_completed,
    }


def _user_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "appwrite_id": user.appwrite_id,
        "email": user.email,
        "username": user.username,
        "full_name": user.full_name,
        "avatar_url": user.avatar_url,
    }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# --------- Health ---------
@app.get("/health")
def health():
    return {"status": "ok"}


# --------- Auth Endpoints ---------
@app.get("/auth/verify")
def verify_token(identity: Dict[str, Any] = Depends(get_identity)):
    return {"success": True, "data": identity}


@app.post("/auth/sync")
def sync_user(identity: Dict[str, Any] = Depends(get_identity), db: Session = Depends(get_db)):
    """
    Mirror the Appwrite account into the local users table and make sure
    it has a statistics row to accrue XP into.
    """
    user = db.query(User).filter_by(appwrite_id=identity["appwrite_id"]).first()
    created = user is None
    if created:
        user = User(appwrite_id=identity["appwrite_id"], email=identity["email"])
        db.add(user)

    user.email = identity["email"]
    user.username = identity.get("username") or user.username
    user.full_name = identity.get("full_name") or user.full_name
    user.avatar_url = identity.get("avatar_url") or user.avatar_url
    db.flush()

    StatisticsStore(db).ensure_statistics(user.id)
    db.commit()

    logger.info("User synced", extra={"user_id": user.id, "new_user": created})
    stats = db.get(UserStatistics, user.id)
    return {
        "success": True,
        "data": {"user": _user_dict(user), "statistics": _statistics_dict(stats), "created": created},
    }


# --------- User Endpoints ---------
@app.get("/user/me")
def get_me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    stats = db.get(UserStatistics, user.id)
    return {"success": True, "data": {"user": _user_dict(user), "statistics": _statistics_dict(stats)}}


@app.put("/user/me")
def update_me(data: ProfileUpdateInput, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updates = data.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    for field, value in updates.items():
        setattr(user, field, value)
    db.commit()

    logger.info("User profile updated", extra={"user_id": user.id, "fields": sorted(updates)})
    return {"success": True, "message": "Profile updated successfully", "data": _user_dict(user)}


@app.get("/user/progress")
def get_my_progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(LessonProgress, Lesson.slug, Lesson.title, Module.title, Module.slug)
        .join(Lesson, LessonProgress.lesson_id == Lesson.id)
        .join(Module, Lesson.module_id == Module.id)
        .filter(LessonProgress.user_id == user.id)
        .order_by(LessonProgress.completed_at.desc(), LessonProgress.id.desc())
        .all()
    )
    return {
        "success": True,
        "data": [
            {
                "lesson_id": p.lesson_id,
                "lesson_slug": lesson_slug,
                "lesson_title": lesson_title,
                "module_title": module_title,
                "module_slug": module_slug,
                "status": p.status,
                "xp_earned": p.xp_earned,
                "time_spent": p.time_spent,
                "completed_at": _isoformat(p.completed_at),
            }
            for p, lesson_slug, lesson_title, module_title, module_slug in rows
        ],
    }


# --------- Curriculum Endpoints ---------
@app.get("/modules")
def list_modules(db: Session = Depends(get_db)):
    rows = (
        db.query(Module, func.count(Lesson.id).label("lesson_count"))
        .outerjoin(Lesson, (Lesson.module_id == Module.id) & (Lesson.is_active.is_(True)))
        .filter(Module.is_active.is_(True))
        .group_by(Module.id)
        .order_by(Module.order_index)
        .all()
    )
    return {
        "success": True,
        "data": [
            {
                "id": m.id,
                "slug": m.slug,
                "title": m.title,
                "description": m.description,
                "color": m.color,
                "lesson_count": lesson_count,
            }
            for m, lesson_count in rows
        ],
    }


@app.get("/modules/{slug}")
def get_module(slug: str, db: Session = Depends(get_db)):
    module = db.query(Module).filter_by(slug=slug, is_active=True).first()
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")

    lessons = (
        db.query(Lesson)
        .filter_by(module_id=module.id, is_active=True)
        .order_by(Lesson.order_index)
        .all()
    )
    return {
        "success": True,
        "data": {
            "id": module.id,
            "slug": module.slug,
            "title": module.title,
            "description": module.description,
            "color": module.color,
            "lessons": [
                {
                    "slug": l.slug,
                    "title": l.title,
                    "difficulty": l.difficulty,
                    "estimated_duration": l.estimated_duration,
                }
                for l in lessons
            ],
        },
    }


@app.get("/modules/{slug}/progress")
def get_module_progress(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    module = db.query(Module).filter_by(slug=slug, is_active=True).first()
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")

    rows = (
        db.query(Lesson, LessonProgress)
        .outerjoin(
            LessonProgress,
            (LessonProgress.lesson_id == Lesson.id) & (LessonProgress.user_id == user.id),
        )
        .filter(Lesson.module_id == module.id, Lesson.is_active.is_(True))
        .order_by(Lesson.order_index)
        .all()
    )
    lessons = [
        {
            "id": l.id,
            "slug": l.slug,
            "title": l.title,
            "difficulty": l.difficulty,
            "order_index": l.order_index,
            "progress_status": p.status if p else "not_started",
            "xp_earned": p.xp_earned if p else 0,
            "time_spent": p.time_spent if p else 0,
        }
        for l, p in rows
    ]

    total = len(lessons)
    completed = sum(1 for l in lessons if l["progress_status"] == "completed")
    in_progress = sum(1 for l in lessons if l["progress_status"] == "in_progress")
    return {
        "success": True,
        "data": {
            "total_lessons": total,
            "completed_lessons": completed,
            "in_progress_lessons": in_progress,
            "not_started_lessons": total - completed - in_progress,
            "completion_percentage": round(completed / total * 100, 1) if total else 0,
            "lessons": lessons,
        },
    }


def _get_active_lesson(db: Session, slug: str) -> Lesson:
    lesson = db.query(Lesson).filter_by(slug=slug, is_active=True).first()
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


def _lesson_navigation(db: Session, lesson: Lesson) -> Dict[str, Any]:
    siblings = db.query(Lesson).filter_by(module_id=lesson.module_id, is_active=True)
    previous = (
        siblings.filter(Lesson.order_index < lesson.order_index)
        .order_by(Lesson.order_index.desc())
        .first()
    )
    following = (
        siblings.filter(Lesson.order_index > lesson.order_index)
        .order_by(Lesson.order_index.asc())
        .first()
    )
    return {
        "previous": {"slug": previous.slug, "title": previous.title} if previous else None,
        "next": {"slug": following.slug, "title": following.title} if following else None,
    }


@app.get("/lessons/{slug}")
def get_lesson(slug: str, db: Session = Depends(get_db)):
    lesson = _get_active_lesson(db, slug)
    module = db.get(Module, lesson.module_id)
    challenges = (
        db.query(Challenge)
        .filter_by(lesson_id=lesson.id, is_active=True)
        .order_by(Challenge.id)
        .all()
    )
    return {
        "success": True,
        "data": {
            "id": lesson.id,
            "slug": lesson.slug,
            "title": lesson.title,
            "description": lesson.description,
            "content_md": lesson.content_md,
            "starter_code": lesson.starter_code,
            "difficulty": lesson.difficulty,
            "estimated_duration": lesson.estimated_duration,
            "module": {"title": module.title, "slug": module.slug, "color": module.color},
            "challenges": [
                {
                    "id": c.id,
                    "title": c.title,
                    "description": c.description,
                    "difficulty": c.difficulty,
                    "points": c.points,
                    "time_limit": c.time_limit,
                }
                for c in challenges
            ],
            "navigation": _lesson_navigation(db, lesson),
        },
    }


@app.get("/lessons/{slug}/progress")
def get_lesson_progress(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    lesson = _get_active_lesson(db, slug)
    progress = db.query(LessonProgress).filter_by(user_id=user.id, lesson_id=lesson.id).first()

    rows = (
        db.query(
            Challenge,
            func.coalesce(func.max(Attempt.score), 0).label("best_score"),
            func.count(Attempt.id).label("attempt_count"),
            func.max(Attempt.created_at).label("last_attempt"),
        )
        .outerjoin(Attempt, (Attempt.challenge_id == Challenge.id) & (Attempt.user_id == user.id))
        .filter(Challenge.lesson_id == lesson.id, Challenge.is_active.is_(True))
        .group_by(Challenge.id)
        .order_by(Challenge.id)
        .all()
    )
    challenges = [
        {
            "id": c.id,
            "title": c.title,
            "difficulty": c.difficulty,
            "points": c.points,
            "best_score": best_score,
            "attempt_count": attempt_count,
            "last_attempt": _isoformat(last_attempt),
        }
        for c, best_score, attempt_count, last_attempt in rows
    ]

    return {
        "success": True,
        "data": {
            "lesson_id": lesson.id,
            "status": progress.status if progress else "not_started",
            "xp_earned": progress.xp_earned if progress else 0,
            "time_spent": progress.time_spent if progress else 0,
            "completed_at": _isoformat(progress.completed_at) if progress else None,
            "challenges": challenges,
            "total_challenges": len(challenges),
            "completed_challenges": sum(1 for c in challenges if c["best_score"] > 0),
        },
    }


def _already_completed(progress: LessonProgress) -> Dict[str, Any]:
    return {
        "success": True,
        "message": "Lesson already completed",
        "data": {
            "xp_earned": progress.xp_earned,
            "completed_at": _isoformat(progress.completed_at),
            "progression": None,
        },
    }


@app.post("/lessons/{slug}/complete")
def complete_lesson(
    slug: str,
    data: Optional[LessonCompleteInput] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    lesson = _get_active_lesson(db, slug)
    time_spent = data.time_spent if data else 0

    progress = db.query(LessonProgress).filter_by(user_id=user.id, lesson_id=lesson.id).first()
    if progress and progress.status == "completed":
        # XP is granted once per lesson
        return _already_completed(progress)

    result = engine.apply_lesson_completion(user.id, lesson.estimated_duration or 0)

    if not progress:
        progress = LessonProgress(user_id=user.id, lesson_id=lesson.id)
        db.add(progress)
    progress.status = "completed"
    progress.xp_earned = result.xp_awarded
    progress.time_spent = (progress.time_spent or 0) + time_spent
    progress.completed_at = datetime.utcnow()
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request completed the lesson first; its XP stands, ours is rolled back
        db.rollback()
        progress = db.query(LessonProgress).filter_by(user_id=user.id, lesson_id=lesson.id).one()
        logger.info(
            "Duplicate lesson completion ignored", extra={"user_id": user.id, "lesson_id": lesson.id}
        )
        return _already_completed(progress)

    logger.info("Lesson completed", extra={"user_id": user.id, "lesson_id": lesson.id})
    return {
        "success": True,
        "message": "Lesson marked as complete",
        "data": {
            "xp_earned": result.xp_awarded,
            "completed_at": _isoformat(progress.completed_at),
            "progression": result.to_dict(),
        },
    }


# --------- Challenge Endpoints ---------
def _challenges_with_lessons(db: Session):
    return (
        db.query(Challenge, Lesson.title, Lesson.slug)
        .join(Lesson, Challenge.lesson_id == Lesson.id)
        .filter(Challenge.is_active.is_(True))
    )


def _challenge_dict(challenge: Challenge, lesson_title: str, lesson_slug: str) -> Dict[str, Any]:
    return {
        "id": challenge.id,
        "lesson_id": challenge.lesson_id,
        "title": challenge.title,
        "description": challenge.description,
        "difficulty": challenge.difficulty,
        "points": challenge.points,
        "time_limit": challenge.time_limit,
        "lesson_title": lesson_title,
        "lesson_slug": lesson_slug,
    }


@app.get("/challenges")
def list_challenges(db: Session = Depends(get_db)):
    rows = (
        _challenges_with_lessons(db)
        .order_by(Lesson.order_index, Challenge.difficulty, Challenge.title)
        .all()
    )
    return {"success": True, "data": [_challenge_dict(*row) for row in rows]}


# Registered before /challenges/{challenge_id} so "random" is not parsed as an id
@app.get("/challenges/random")
def get_random_challenge(db: Session = Depends(get_db)):
    row = _challenges_with_lessons(db).order_by(func.random()).first()
    if not row:
        raise HTTPException(status_code=404, detail="No challenges available")
    return {"success": True, "data": _challenge_dict(*row)}


@app.get("/challenges/{challenge_id}")
def get_challenge(challenge_id: int, db: Session = Depends(get_db)):
    row = _challenges_with_lessons(db).filter(Challenge.id == challenge_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return {"success": True, "data": _challenge_dict(*row)}


# --------- Attempt Endpoints ---------
def is_passing_attempt(score: int) -> bool:
    """An attempt counts as passed, and earns XP, when it scored anything."""
    return score > 0


@app.post("/attempts")
def submit_attempt(
    data: AttemptInput,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    challenge = db.query(Challenge).filter_by(id=data.challenge_id, is_active=True).first()
    if not challenge:
        raise HTTPException(status_code=404, detail="Challenge not found")

    passed = is_passing_attempt(data.score)
    result = engine.apply_challenge_completion(user.id, challenge.points) if passed else None

    attempt = Attempt(
        user_id=user.id,
        challenge_id=challenge.id,
        submitted_code=data.submitted_code,
        lint_report=data.lint_report,
        test_results=data.test_results,
        score=data.score,
        max_score=data.max_score,
        passed=passed,
        xp_awarded=result.xp_awarded if result else 0,
        execution_time_ms=data.execution_time_ms,
        memory_usage_kb=data.memory_usage_kb,
        status=data.status,
        error_message=data.error_message,
    )
    db.add(attempt)
    db.commit()

    logger.info(
        "Challenge attempt submitted",
        extra={"user_id": user.id, "challenge_id": challenge.id, "score": data.score},
    )
    return {
        "success": True,
        "message": "Attempt submitted successfully",
        "data": {
            "attempt_id": attempt.id,
            "score": attempt.score,
            "max_score": attempt.max_score,
            "passed": passed,
            "progression": result.to_dict() if result else None,
        },
    }


@app.get("/attempts/me")
def get_my_attempts(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Attempt, Challenge.title, Challenge.points, Lesson.title, Module.title)
        .join(Challenge, Attempt.challenge_id == Challenge.id)
        .join(Lesson, Challenge.lesson_id == Lesson.id)
        .join(Module, Lesson.module_id == Module.id)
        .filter(Attempt.user_id == user.id)
        .order_by(Attempt.created_at.desc(), Attempt.id.desc())
        .limit(50)
        .all()
    )
    return {
        "success": True,
        "data": [
            {
                "id": a.id,
                "challenge_id": a.challenge_id,
                "challenge_title": challenge_title,
                "challenge_points": challenge_points,
                "lesson_title": lesson_title,
                "module_title": module_title,
                "score": a.score,
                "max_score": a.max_score,
                "passed": a.passed,
                "xp_awarded": a.xp_awarded,
                "status": a.status,
                "created_at": _isoformat(a.created_at),
            }
            for a, challenge_title, challenge_points, lesson_title, module_title in rows
        ],
    }


@app.get("/challenges/{challenge_id}/attempts")
def get_challenge_attempts(challenge_id: int, db: Session = Depends(get_db)):
    rows = (
        db.query(Attempt, User.username)
        .join(User, Attempt.user_id == User.id)
        .filter(Attempt.challenge_id == challenge_id)
        .order_by(Attempt.score.desc(), Attempt.execution_time_ms.asc())
        .limit(100)
        .all()
    )
    return {
        "success": True,
        "data": [
            {
                "id": a.id,
                "username": username,
                "score": a.score,
                "max_score": a.max_score,
                "execution_time_ms": a.execution_time_ms,
                "created_at": _isoformat(a.created_at),
            }
            for a, username in rows
        ],
    }


# --------- Game Endpoints ---------
@app.post("/games/results")
def save_game_result(
    data: GameResultInput,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    result = engine.apply_game_completion(user.id, data.score, data.max_score, data.time_spent)

    game_result = GameResult(
        user_id=user.id,
        game_type=data.game_type,
        score=data.score,
        max_score=data.max_score,
        time_spent=data.time_spent,
        xp_awarded=result.xp_awarded,
        game_data=data.game_data,
    )
    db.add(game_result)
    db.commit()

    logger.info(
        "Game result saved",
        extra={
            "user_id": user.id,
            "game_type": data.game_type,
            "score": data.score,
            "max_score": data.max_score,
        },
    )
    return {
        "success": True,
        "message": "Game result saved successfully",
        "data": {
            "game_result_id": game_result.id,
            "score": game_result.score,
            "max_score": game_result.max_score,
            "progression": result.to_dict(),
        },
    }


@app.get("/games/leaderboard")
def get_game_leaderboard(game_type: str = "all", limit: int = 50, db: Session = Depends(get_db)):
    limit = max(1, min(limit, 100))
    best_score = func.max(GameResult.score).label("best_score")
    avg_score = func.avg(GameResult.score).label("avg_score")

    query = (
        db.query(
            User.username,
            User.avatar_url,
            func.count(GameResult.id).label("games_played"),
            avg_score,
            best_score,
            func.sum(GameResult.time_spent).label("total_time"),
        )
        .join(GameResult, GameResult.user_id == User.id)
    )
    if game_type != "all":
        query = query.filter(GameResult.game_type == game_type)

    rows = query.group_by(User.id).order_by(best_score.desc(), avg_score.desc()).limit(limit).all()
    return {
        "success": True,
        "data": {
            "game_type": game_type,
            "leaderboard": [
                {
                    "username": r.username,
                    "avatar_url": r.avatar_url,
                    "games_played": r.games_played,
                    "avg_score": round(float(r.avg_score), 2),
                    "best_score": r.best_score,
                    "total_time": int(r.total_time or 0),
                }
                for r in rows
            ],
        },
    }


@app.get("/games/me/stats")
def get_my_game_stats(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    by_type = (
        db.query(
            GameResult.game_type,
            func.count(GameResult.id).label("games_played"),
            func.avg(GameResult.score).label("avg_score"),
            func.max(GameResult.score).label("best_score"),
            func.min(GameResult.score).label("worst_score"),
            func.sum(GameResult.time_spent).label("total_time"),
            func.avg(GameResult.time_spent).label("avg_time"),
        )
        .filter(GameResult.user_id == user.id)
        .group_by(GameResult.game_type)
        .order_by(func.count(GameResult.id).desc())
        .all()
    )
    overall = (
        db.query(
            func.count(GameResult.id).label("total_games"),
            func.avg(GameResult.score).label("overall_avg_score"),
            func.max(GameResult.score).label("overall_best_score"),
            func.sum(GameResult.time_spent).label("total_time_spent"),
        )
        .filter(GameResult.user_id == user.id)
        .one()
    )
    return {
        "success": True,
        "data": {
            "overall": {
                "total_games": overall.total_games,
                "overall_avg_score": float(overall.overall_avg_score or 0),
                "overall_best_score": overall.overall_best_score or 0,
                "total_time_spent": int(overall.total_time_spent or 0),
            },
            "by_game_type": [
                {
                    "game_type": r.game_type,
                    "games_played": r.games_played,
                    "avg_score": float(r.avg_score),
                    "best_score": r.best_score,
                    "worst_score": r.worst_score,
                    "total_time": int(r.total_time or 0),
                    "avg_time": float(r.avg_time or 0),
                }
                for r in by_type
            ],
        },
    }


@app.get("/games/recent")
def get_recent_games(limit: int = 20, db: Session = Depends(get_db)):
    limit = max(1, min(limit, 50))
    rows = (
        db.query(GameResult, User.username, User.avatar_url)
        .join(User, GameResult.user_id == User.id)
        .order_by(GameResult.created_at.desc(), GameResult.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "success": True,
        "data": [
            {
                "id": g.id,
                "username": username,
                "avatar_url": avatar_url,
                "game_type": g.game_type,
                "score": g.score,
                "max_score": g.max_score,
                "time_spent": g.time_spent,
                "created_at": _isoformat(g.created_at),
            }
            for g, username, avatar_url in rows
        ],
    }


# --------- Leaderboard & Platform Statistics ---------
@app.get("/leaderboard")
def get_xp_leaderboard(limit: int = 50, db: Session = Depends(get_db)):
    limit = max(1, min(limit, 100))
    rows = (
        db.query(User.username, User.avatar_url, UserStatistics)
        .join(UserStatistics, UserStatistics.user_id == User.id)
        .filter(User.is_active.is_(True))
        .order_by(UserStatistics.total_xp.desc(), User.id.asc())
        .limit(limit)
        .all()
    )
    return {
        "success": True,
        "data": [
            {"rank": rank, "username": username, "avatar_url": avatar_url, **_statistics_dict(stats)}
            for rank, (username, avatar_url, stats) in enumerate(rows, start=1)
        ],
    }


def estimate_hours(lesson_count: int) -> int:
    # ~15 minutes per lesson
    return max(1, round(lesson_count * 0.25))


@app.get("/statistics")
def get_platform_statistics(db: Session = Depends(get_db)):
    active_learners = db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar()
    total_lessons = db.query(func.count(Lesson.id)).filter(Lesson.is_active.is_(True)).scalar()
    total_challenges = db.query(func.count(Challenge.id)).filter(Challenge.is_active.is_(True)).scalar()
    total_xp = db.query(func.coalesce(func.sum(UserStatistics.total_xp), 0)).scalar()
    total_attempts = db.query(func.count(Attempt.id)).scalar()
    passed_attempts = db.query(func.count(Attempt.id)).filter(Attempt.passed.is_(True)).scalar()
    success_rate = round(passed_attempts / total_attempts * 100, 1) if total_attempts else 0

    module_rows = (
        db.query(Module.slug, func.count(Lesson.id))
        .outerjoin(Lesson, (Lesson.module_id == Module.id) & (Lesson.is_active.is_(True)))
        .filter(Module.is_active.is_(True))
        .group_by(Module.id, Module.slug)
        .order_by(Module.slug)
        .all()
    )

    return {
        "success": True,
        "data": {
            "active_learners": active_learners,
            "total_lessons": total_lessons,
            "total_challenges": total_challenges,
            "total_xp_earned": int(total_xp),
            "total_attempts": total_attempts,
            "success_rate": success_rate,
            "modules": [
                {"slug": slug, "lessons": count, "estimated_hours": estimate_hours(count)}
                for slug, count in module_rows
            ],
        },
    }

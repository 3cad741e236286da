from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import Any, List, Optional
import logging

from app.config import settings
from app.services.engine import SessionEngine, get_session_engine
from app.services.errors import SessionError
from app.utils.auth_utils import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()

class StartSessionRequest(BaseModel):
    quiz_id: str

class SaveAnswerRequest(BaseModel):
    quiz_question_id: str
    question_type: Optional[str] = None  # informational, the snapshot's type decides
    answer: Any = None
    time_spent_seconds: Optional[int] = None  # client hint only
    is_flagged: Optional[bool] = None

class SaveAnswersRequest(BaseModel):
    answers: List[SaveAnswerRequest]

class FlagRequest(BaseModel):
    quiz_question_id: str
    is_flagged: bool

class SubmitRequest(BaseModel):
    answers: Optional[List[SaveAnswerRequest]] = None

def session_token_header(token: str = Header(..., alias=settings.session_header)) -> str:
    return token

def to_http_exception(e: SessionError) -> HTTPException:
    headers = {"Retry-After": "1"} if e.retryable else None
    return HTTPException(status_code=e.status_code, detail=e.to_detail(), headers=headers)

async def _run(action: str, fn, *args, **kwargs):
    """Run a blocking engine call off the event loop and translate its errors"""
    try:
        return await run_in_threadpool(fn, *args, **kwargs)
    except SessionError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to {action}: {e}")
        raise HTTPException(status_code=400, detail=f"Failed to {action}: {str(e)}")

@router.post("/start")
async def start_session(
    body: StartSessionRequest,
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Start a quiz session, snapshotting the quiz"""
    return await _run("start session", engine.start, body.quiz_id, current_user["id"])

@router.get("/active")
async def get_active_session(
    quiz_id: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Get the user's live session, if any (for resuming after a reload)"""
    session = await _run("get active session", engine.get_active, current_user["id"], quiz_id)
    return {"session": session}

@router.get("/state")
async def get_session_state(
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Get the current session view with server-computed timing"""
    return await _run("get session state", engine.get_state, token, current_user["id"])

@router.get("/heartbeat")
async def heartbeat(
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Resync timing; also applies overdue auto-resume or auto-submit"""
    return await _run("process heartbeat", engine.heartbeat, token, current_user["id"])

@router.post("/save-answer")
async def save_answer(
    body: SaveAnswerRequest,
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Save one answer (replaces any previous answer to the question)"""
    return await _run(
        "save answer",
        engine.save_answer,
        token,
        body.quiz_question_id,
        body.answer,
        time_spent_seconds=body.time_spent_seconds,
        is_flagged=body.is_flagged,
        user_id=current_user["id"],
    )

@router.post("/save-answers")
async def save_answers(
    body: SaveAnswersRequest,
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Save several answers at once; either all are saved or none"""
    entries = [a.model_dump() for a in body.answers]
    return await _run("save answers", engine.save_answers, token, entries, user_id=current_user["id"])

@router.post("/navigate/{question_number}")
async def navigate(
    question_number: int,
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Move to a question (1-indexed)"""
    return await _run("navigate", engine.navigate, token, question_number, user_id=current_user["id"])

@router.post("/flag")
async def flag_question(
    body: FlagRequest,
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Flag or unflag a question for review"""
    return await _run(
        "flag question", engine.flag, token, body.quiz_question_id, body.is_flagged, user_id=current_user["id"]
    )

@router.post("/pause")
async def pause_session(
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Pause the session if the pause policy allows it"""
    return await _run("pause session", engine.pause, token, user_id=current_user["id"])

@router.post("/resume")
async def resume_session(
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Resume a paused session"""
    return await _run("resume session", engine.resume, token, user_id=current_user["id"])

@router.post("/submit")
async def submit_session(
    body: Optional[SubmitRequest] = None,
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Grade and finalize; repeated calls return the same result"""
    answers = [a.model_dump() for a in body.answers] if body and body.answers else None
    return await _run("submit session", engine.submit, token, answers, user_id=current_user["id"])

@router.post("/abandon")
async def abandon_session(
    token: str = Depends(session_token_header),
    current_user: dict = Depends(get_current_user),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Finalize without grading"""
    return await _run("abandon session", engine.abandon, token, user_id=current_user["id"])

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from ..ai_gateway import AIGateway, get_gateway
from ..errors import NotFoundError
from ..session import LearningSession, SessionRegistry
from ..settings import settings
from ..store import ProgressStore, get_store
from .api import request_settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


class StartRequest(BaseModel):
    topic: Optional[str] = None


class AssessmentAnswersRequest(BaseModel):
    # question id -> chosen option index
    answers: Dict[str, int] = Field(default_factory=dict)


class RefineRequest(BaseModel):
    feedback: Optional[str] = None


class FinalizeRequest(BaseModel):
    is_finalized: bool = Field(default=True, alias="isFinalized")


class QuizAnswerRequest(BaseModel):
    question_id: Union[int, str] = Field(alias="questionId")
    choice_index: int = Field(alias="choiceIndex")


_sessions = SessionRegistry(idle_seconds=settings.session_idle_seconds, max_sessions=settings.max_sessions)


def _get_session(session_id: str, store: ProgressStore, api_key: Optional[str]) -> LearningSession:
    session = _sessions.get(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if api_key:
        session.user_settings = request_settings(store, api_key)
    return session


def _reply(session: LearningSession, **extra: Any) -> Dict[str, Any]:
    return {**extra, "state": session.to_wire()}


@router.post("/start")
def start(
    req: StartRequest,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    gateway: AIGateway = Depends(get_gateway),
    store: ProgressStore = Depends(get_store),
):
    user_settings = request_settings(store, api_key) if api_key else None
    session = LearningSession(gateway, store, user_settings=user_settings)
    session.start(req.topic or "")
    _sessions.add(session)
    logger.info("Started session %s for topic %r (step=%s)", session.session_id, session.topic, session.step)
    return _reply(session, resumed=session.path is not None)


@router.get("/{session_id}")
def get_state(session_id: str, store: ProgressStore = Depends(get_store)):
    return _reply(_get_session(session_id, store, None))


@router.delete("/{session_id}")
def end_session(session_id: str):
    if _sessions.pop(session_id) is None:
        raise NotFoundError("Session not found")
    return {"ok": True}


@router.post("/{session_id}/assessment")
async def load_assessment(
    session_id: str,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    store: ProgressStore = Depends(get_store),
):
    session = _get_session(session_id, store, api_key)
    questions = await session.load_assessment()
    return _reply(session, discarded=questions is None)


@router.post("/{session_id}/assessment/answers")
def submit_assessment(session_id: str, req: AssessmentAnswersRequest, store: ProgressStore = Depends(get_store)):
    session = _get_session(session_id, store, None)
    session.submit_assessment(req.answers)
    return _reply(session)


@router.post("/{session_id}/path")
async def load_path(
    session_id: str,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    store: ProgressStore = Depends(get_store),
):
    session = _get_session(session_id, store, api_key)
    path = await session.load_path()
    return _reply(session, discarded=path is None)


@router.post("/{session_id}/refine")
async def refine(
    session_id: str,
    req: RefineRequest,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    store: ProgressStore = Depends(get_store),
):
    session = _get_session(session_id, store, api_key)
    changed = await session.refine(req.feedback or "")
    return _reply(session, discarded=changed is None)


@router.post("/{session_id}/finalize")
def finalize(session_id: str, req: FinalizeRequest, store: ProgressStore = Depends(get_store)):
    session = _get_session(session_id, store, None)
    session.set_finalized(req.is_finalized)
    return _reply(session)


@router.post("/{session_id}/nodes/{node_id}/open")
def open_node(session_id: str, node_id: str, store: ProgressStore = Depends(get_store)):
    session = _get_session(session_id, store, None)
    session.open_node(node_id)
    return _reply(session)


@router.post("/{session_id}/back")
def back_to_path(session_id: str, store: ProgressStore = Depends(get_store)):
    session = _get_session(session_id, store, None)
    session.back_to_path()
    return _reply(session)


@router.post("/{session_id}/resources")
async def load_resources(
    session_id: str,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    store: ProgressStore = Depends(get_store),
):
    session = _get_session(session_id, store, api_key)
    resources = await session.load_resources()
    return _reply(session, discarded=resources is None)


@router.post("/{session_id}/quiz")
async def load_quiz(
    session_id: str,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    store: ProgressStore = Depends(get_store),
):
    session = _get_session(session_id, store, api_key)
    questions = await session.load_quiz()
    return _reply(session, discarded=questions is None)


@router.post("/{session_id}/quiz/answers")
def answer_quiz(session_id: str, req: QuizAnswerRequest, store: ProgressStore = Depends(get_store)):
    session = _get_session(session_id, store, None)
    session.answer_quiz(req.question_id, req.choice_index)
    return _reply(session)


@router.post("/{session_id}/quiz/submit")
def submit_quiz(session_id: str, store: ProgressStore = Depends(get_store)):
    session = _get_session(session_id, store, None)
    result = session.submit_quiz()
    return _reply(session, checkpoint=result.to_wire())

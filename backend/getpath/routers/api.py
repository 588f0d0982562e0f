from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import progression
from ..ai_gateway import AIGateway, get_gateway
from ..errors import ImportValidationError, NotFoundError, ValidationError
from ..schemas import AssessmentResult, Path, PathNode, Resource, UserSettings
from ..settings import settings
from ..store import ProgressStore, get_store


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


class AssessRequest(BaseModel):
    topic: Optional[str] = None


class GeneratePathRequest(BaseModel):
    topic: Optional[str] = None
    assessment_results: List[AssessmentResult] = Field(default_factory=list, alias="assessmentResults")


class QuizRequest(BaseModel):
    node_context: Optional[str] = Field(default=None, alias="nodeContext")


class RefinePathRequest(BaseModel):
    topic: Optional[str] = None
    current_nodes: List[PathNode] = Field(default_factory=list, alias="currentNodes")
    feedback: Optional[str] = None


class GenerateResourcesRequest(BaseModel):
    topic: Optional[str] = None
    node_title: Optional[str] = Field(default=None, alias="nodeTitle")
    node_description: Optional[str] = Field(default="", alias="nodeDescription")
    # When given, the resources are also attached to the stored node
    node_id: Optional[str] = Field(default=None, alias="nodeId")


class FinalizeRequest(BaseModel):
    is_finalized: bool = Field(default=True, alias="isFinalized")


class AttachResourcesRequest(BaseModel):
    node_id: Optional[str] = Field(default=None, alias="nodeId")
    resources: List[Resource] = Field(default_factory=list)


class CompleteNodeRequest(BaseModel):
    node_id: Optional[str] = Field(default=None, alias="nodeId")


def _required(value: Optional[str], name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{name} required")
    return value


def request_settings(store: ProgressStore, api_key: Optional[str]) -> UserSettings:
    """Stored settings, with the per-request apiKey header taking precedence."""
    user_settings = store.get_settings()
    if api_key:
        user_settings = user_settings.model_copy(update={"api_key": api_key})
    return user_settings


def _require_stored_path(store: ProgressStore, topic: str) -> Path:
    path = store.get_path(topic)
    if path is None:
        raise NotFoundError(f"Failed to load path for '{topic}'")
    return path


@router.get("/config")
def get_config():
    return {"hasServerKey": bool(settings.gemini_api_key), "useMockAi": settings.use_mock_ai}


@router.post("/assess")
async def assess(
    req: AssessRequest,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    gateway: AIGateway = Depends(get_gateway),
    store: ProgressStore = Depends(get_store),
):
    user_settings = request_settings(store, api_key)
    gateway.resolve_api_key(user_settings)
    topic = _required(req.topic, "Topic")
    generated = await gateway.generate_assessment(topic, user_settings)
    return generated.to_wire()


@router.post("/generate-path")
async def generate_path(
    req: GeneratePathRequest,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    gateway: AIGateway = Depends(get_gateway),
    store: ProgressStore = Depends(get_store),
):
    user_settings = request_settings(store, api_key)
    gateway.resolve_api_key(user_settings)
    topic = _required(req.topic, "Topic")
    generated = await gateway.generate_path(topic, req.assessment_results, user_settings)
    return generated.to_wire()


@router.post("/quiz")
async def quiz(
    req: QuizRequest,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    gateway: AIGateway = Depends(get_gateway),
    store: ProgressStore = Depends(get_store),
):
    user_settings = request_settings(store, api_key)
    gateway.resolve_api_key(user_settings)
    node_context = _required(req.node_context, "nodeContext")
    generated = await gateway.generate_quiz(node_context, user_settings)
    return generated.to_wire()


@router.post("/refine-path")
async def refine_path(
    req: RefinePathRequest,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    gateway: AIGateway = Depends(get_gateway),
    store: ProgressStore = Depends(get_store),
):
    user_settings = request_settings(store, api_key)
    gateway.resolve_api_key(user_settings)
    topic = _required(req.topic, "Topic")
    feedback = _required(req.feedback, "Feedback")
    if not req.current_nodes:
        raise ValidationError("currentNodes required")
    stored = store.get_path(topic)
    if stored is not None and stored.is_finalized:
        raise ValidationError("Path is finalized; reopen it for editing before refining")
    refined = await gateway.refine_path(topic, req.current_nodes, feedback, user_settings)
    body = refined.to_wire()
    body["changedIds"] = sorted(progression.detect_changes(req.current_nodes, refined.nodes))
    return body


@router.post("/generate-resources")
async def generate_resources(
    req: GenerateResourcesRequest,
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    gateway: AIGateway = Depends(get_gateway),
    store: ProgressStore = Depends(get_store),
):
    user_settings = request_settings(store, api_key)
    gateway.resolve_api_key(user_settings)
    topic = _required(req.topic, "Topic")
    node_title = _required(req.node_title, "nodeTitle")
    generated = await gateway.generate_resources(topic, node_title, req.node_description or "", user_settings)
    if req.node_id and not store.update_resources(topic, req.node_id, generated.resources):
        logger.warning("Resources for %s/%s were generated but no stored node matched", topic, req.node_id)
    return generated.to_wire()


@router.get("/models")
async def list_models(
    api_key: Optional[str] = Header(default=None, alias="apiKey"),
    gateway: AIGateway = Depends(get_gateway),
    store: ProgressStore = Depends(get_store),
):
    user_settings = request_settings(store, api_key)
    return {"models": await gateway.list_models(user_settings.api_key)}


# ---- Progress store ----

@router.get("/history")
def get_history(store: ProgressStore = Depends(get_store)):
    return [entry.to_wire() for entry in store.get_history()]


@router.delete("/history")
def clear_history(store: ProgressStore = Depends(get_store)):
    store.clear_paths()
    return {"ok": True}


@router.get("/path/{topic}")
def get_path(topic: str, store: ProgressStore = Depends(get_store)):
    return _require_stored_path(store, topic).to_wire()


@router.put("/path/{topic}")
def save_path(topic: str, path: Dict[str, Any], store: ProgressStore = Depends(get_store)):
    try:
        saved = store.save_path(topic, path)
    except ValueError as e:
        raise ValidationError("Invalid path", details=str(e)) from e
    return saved.to_wire()


@router.delete("/path/{topic}")
def delete_path(topic: str, store: ProgressStore = Depends(get_store)):
    if not store.delete_path(topic):
        raise NotFoundError(f"Failed to load path for '{topic}'")
    return {"ok": True}


@router.post("/path/{topic}/finalize")
def finalize_path(topic: str, req: FinalizeRequest, store: ProgressStore = Depends(get_store)):
    if not store.finalize_path(topic, req.is_finalized):
        raise NotFoundError(f"Failed to finalize path: no saved path for '{topic}'")
    return _require_stored_path(store, topic).to_wire()


@router.post("/path/{topic}/resources")
def attach_resources(topic: str, req: AttachResourcesRequest, store: ProgressStore = Depends(get_store)):
    node_id = _required(req.node_id, "nodeId")
    if not store.update_resources(topic, node_id, req.resources):
        raise NotFoundError(f"Node {node_id} not found in path '{topic}'")
    return _require_stored_path(store, topic).to_wire()


@router.post("/path/{topic}/complete")
def complete_node(topic: str, req: CompleteNodeRequest, store: ProgressStore = Depends(get_store)):
    node_id = _required(req.node_id, "nodeId")
    path = _require_stored_path(store, topic)
    if progression.node_index(path, node_id) < 0:
        raise NotFoundError(f"Node {node_id} not found in path '{topic}'")
    store.mark_node_completed(topic, node_id)
    return _require_stored_path(store, topic).to_wire()


@router.get("/settings")
def get_settings(store: ProgressStore = Depends(get_store)):
    return store.get_settings().to_wire()


@router.put("/settings")
def save_settings(updates: Dict[str, Any], store: ProgressStore = Depends(get_store)):
    try:
        return store.save_settings(updates).to_wire()
    except ValueError as e:
        raise ValidationError("Invalid settings", details=str(e)) from e


@router.get("/export")
def export_snapshot(store: ProgressStore = Depends(get_store)):
    return JSONResponse(
        content=store.export_snapshot(),
        headers={"Content-Disposition": 'attachment; filename="getpath_backup.json"'},
    )


@router.post("/import")
async def import_snapshot(request: Request, store: ProgressStore = Depends(get_store)):
    try:
        data = json.loads(await request.body())
    except ValueError as e:
        raise ImportValidationError("Backup is not valid JSON", details=str(e)) from e
    snapshot = store.import_snapshot(data)
    return {"ok": True, "paths": len(snapshot["paths"])}

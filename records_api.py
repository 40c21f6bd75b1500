"""
Records API: projects, deployments and conversations kept by the server
instead of the browser's local storage.

Endpoints:
- GET/POST        /api/projects
- GET/PUT/DELETE  /api/projects/{id}
- POST            /api/projects/{id}/files
- GET             /api/projects/{id}/deployments
- GET             /api/deployments/{id}
- POST            /api/files/suggest-path
- GET/POST        /api/conversations
- GET/PATCH/DELETE /api/conversations/{id}
- POST            /api/conversations/{id}/messages
- PUT             /api/conversations/{id}/memory
"""

import json
import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from models import CamelModel, Project
from naming import choose_path_for_new_file, sanitize_file_path
from storage import RecordNotFound, RecordStore

logger = logging.getLogger("records")

router = APIRouter(prefix="/api", tags=["records"])


class BadBody(ValueError):
    pass


async def read_json_object(request: Request, allow_empty: bool = False) -> Dict[str, Any]:
    body = await request.body()
    if not body:
        if allow_empty:
            return {}
        raise BadBody("Empty request body")
    try:
        payload = json.loads(body)
    except ValueError:
        raise BadBody("Invalid JSON payload")
    if not isinstance(payload, dict):
        raise BadBody("JSON payload must be an object")
    return payload


def _store(request: Request) -> RecordStore:
    return request.app.state.store


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _not_found(e: RecordNotFound) -> JSONResponse:
    return _error(404, str(e))


async def _parse(request: Request, model, allow_empty: bool = False):
    try:
        return model.model_validate(await read_json_object(request, allow_empty))
    except BadBody as e:
        return _error(400, str(e))
    except ValidationError as e:
        logger.warning("Payload validation failed: %s", e)
        return _error(400, f"Payload validation failed: {e}")


# Request bodies

class FileSave(BaseModel):
    content: str
    path: Optional[str] = None
    language: Optional[str] = None
    hint: Optional[str] = None


class ConversationCreate(CamelModel):
    title: str = "New Chat"
    use_memory: bool = Field(True, alias="useMemory")


class TitleUpdate(BaseModel):
    title: str


class MessageCreate(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
    model: Optional[str] = None


class MemoryUpdate(BaseModel):
    summary: str
    keywords: List[str] = []


# Projects

@router.get("/projects")
async def list_projects(request: Request):
    return [p.dump() for p in _store(request).projects.list()]


@router.post("/projects")
async def create_project(request: Request):
    project = await _parse(request, Project)
    if isinstance(project, JSONResponse):
        return project
    saved = _store(request).projects.save(project)
    logger.info("Created project %s (%s)", saved.id, saved.name)
    return saved.dump()


@router.get("/projects/{project_id}")
async def get_project(project_id: str, request: Request):
    try:
        return _store(request).projects.get(project_id).dump()
    except RecordNotFound as e:
        return _not_found(e)


@router.put("/projects/{project_id}")
async def update_project(project_id: str, request: Request):
    projects = _store(request).projects
    try:
        changes = await read_json_object(request)
        current = projects.get(project_id)
        merged = {**current.dump(), **changes, "id": project_id}
        project = Project.model_validate(merged)
    except RecordNotFound as e:
        return _not_found(e)
    except BadBody as e:
        return _error(400, str(e))
    except ValidationError as e:
        return _error(400, f"Payload validation failed: {e}")
    return projects.save(project).dump()


@router.delete("/projects/{project_id}")
async def delete_project(project_id: str, request: Request):
    if not _store(request).projects.delete(project_id):
        return _error(404, f"project {project_id} not found")
    return {"ok": True}


@router.post("/projects/{project_id}/files")
async def save_project_file(project_id: str, request: Request):
    body = await _parse(request, FileSave)
    if isinstance(body, JSONResponse):
        return body
    if body.path:
        path = sanitize_file_path(body.path)
    else:
        path = choose_path_for_new_file(body.language, body.content, body.hint)
    try:
        project = _store(request).projects.save_file(project_id, path, body.content)
    except RecordNotFound as e:
        return _not_found(e)
    return {"path": path, "project": project.dump()}


@router.get("/projects/{project_id}/deployments")
async def list_project_deployments(project_id: str, request: Request):
    return [d.dump() for d in _store(request).deployments.for_project(project_id)]


@router.get("/deployments/{deployment_id}")
async def get_deployment(deployment_id: str, request: Request):
    try:
        return _store(request).deployments.get(deployment_id).dump()
    except RecordNotFound as e:
        return _not_found(e)


@router.post("/files/suggest-path")
async def suggest_path(request: Request):
    body = await _parse(request, FileSave)
    if isinstance(body, JSONResponse):
        return body
    path = choose_path_for_new_file(body.language, body.content, body.hint)
    return {"path": path, "fileName": path.rsplit("/", 1)[-1]}


# Conversations

@router.get("/conversations")
async def list_conversations(request: Request):
    return [c.dump() for c in _store(request).conversations.list()]


@router.post("/conversations")
async def create_conversation(request: Request):
    body = await _parse(request, ConversationCreate, allow_empty=True)
    if isinstance(body, JSONResponse):
        return body
    return _store(request).conversations.create(body.title, body.use_memory).dump()


@router.get("/conversations/{conv_id}")
async def get_conversation(conv_id: str, request: Request):
    try:
        return _store(request).conversations.get(conv_id).dump()
    except RecordNotFound as e:
        return _not_found(e)


@router.patch("/conversations/{conv_id}")
async def rename_conversation(conv_id: str, request: Request):
    body = await _parse(request, TitleUpdate)
    if isinstance(body, JSONResponse):
        return body
    try:
        return _store(request).conversations.rename(conv_id, body.title).dump()
    except RecordNotFound as e:
        return _not_found(e)


@router.delete("/conversations/{conv_id}")
async def delete_conversation(conv_id: str, request: Request):
    if not _store(request).conversations.delete(conv_id):
        return _error(404, f"conversation {conv_id} not found")
    return {"ok": True}


@router.post("/conversations/{conv_id}/messages")
async def append_conversation_message(conv_id: str, request: Request):
    body = await _parse(request, MessageCreate)
    if isinstance(body, JSONResponse):
        return body
    try:
        return _store(request).conversations.append_message(conv_id, body.role, body.content, body.model).dump()
    except RecordNotFound as e:
        return _not_found(e)


@router.put("/conversations/{conv_id}/memory")
async def set_conversation_memory(conv_id: str, request: Request):
    body = await _parse(request, MemoryUpdate)
    if isinstance(body, JSONResponse):
        return body
    try:
        return _store(request).conversations.set_summary(conv_id, body.summary, body.keywords).dump()
    except RecordNotFound as e:
        return _not_found(e)

import json
import logging
import os
import tempfile
import threading
from typing import Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from models import (
    Conversation,
    ConversationMemory,
    Deployment,
    Project,
    StoredMessage,
    now_iso,
    now_ms,
)

logger = logging.getLogger("records")

T = TypeVar("T", bound=BaseModel)


class RecordNotFound(KeyError):

    def __init__(self, kind: str, record_id: str):
        super().__init__(record_id)
        self.kind = kind
        self.record_id = record_id

    def __str__(self):
        return f"{self.kind} {self.record_id} not found"


class JsonCollection(Generic[T]):
    """A keyed collection of records kept in one JSON file.

    The whole file is read on every access and rewritten atomically on every
    change, which is plenty for a single-user workspace.
    """

    def __init__(self, path: str, model: Type[T], kind: str):
        self.path = path
        self.model = model
        self.kind = kind
        self._lock = threading.RLock()

    def _read(self) -> Dict[str, T]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError):
            logger.exception("Failed to read %s; treating as empty", self.path)
            return {}
        if not isinstance(raw, dict):
            return {}
        records = {}
        for key, value in raw.items():
            try:
                records[key] = self.model.model_validate(value)
            except ValidationError:
                logger.warning("Skipping malformed %s record %s in %s", self.kind, key, self.path)
        return records

    def _write(self, records: Dict[str, T]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({k: v.model_dump(by_alias=True, exclude_none=True) for k, v in records.items()}, f, indent=2)
            os.replace(tmp, self.path)
        except Exception:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def all(self) -> List[T]:
        with self._lock:
            return list(self._read().values())

    def get(self, record_id: str) -> T:
        with self._lock:
            record = self._read().get(record_id)
        if record is None:
            raise RecordNotFound(self.kind, record_id)
        return record

    def find(self, record_id: str) -> Optional[T]:
        with self._lock:
            return self._read().get(record_id)

    def put(self, record: T) -> T:
        with self._lock:
            records = self._read()
            records[record.id] = record
            self._write(records)
        return record

    def delete(self, record_id: str) -> bool:
        with self._lock:
            records = self._read()
            if record_id not in records:
                return False
            del records[record_id]
            self._write(records)
        return True


class ProjectRepository(JsonCollection[Project]):

    def __init__(self, path: str):
        super().__init__(path, Project, "project")

    def list(self) -> List[Project]:
        return sorted(self.all(), key=lambda p: p.updated_at, reverse=True)

    def save(self, project: Project) -> Project:
        with self._lock:
            if self.find(project.id) is not None:
                project = project.model_copy(update={"updated_at": now_iso()})
            return self.put(project)

    def save_file(self, project_id: str, path: str, content: str) -> Project:
        with self._lock:
            project = self.get(project_id)
            files = dict(project.files)
            files[path] = content
            return self.save(project.model_copy(update={"files": files}))

    def set_deployment_url(self, project_id: str, url: str) -> Optional[Project]:
        with self._lock:
            project = self.find(project_id)
            if project is None:
                return None
            return self.save(project.model_copy(update={"deployment_url": url}))


class DeploymentRepository(JsonCollection[Deployment]):

    def __init__(self, path: str):
        super().__init__(path, Deployment, "deployment")

    def for_project(self, project_id: str) -> List[Deployment]:
        found = [d for d in self.all() if d.project_id == project_id]
        return sorted(found, key=lambda d: d.created_at, reverse=True)


class ConversationRepository(JsonCollection[Conversation]):

    def __init__(self, path: str):
        super().__init__(path, Conversation, "conversation")

    def list(self) -> List[Conversation]:
        return sorted(self.all(), key=lambda c: c.updated_at, reverse=True)

    def create(self, title: str = "New Chat", use_memory: bool = True) -> Conversation:
        return self.put(Conversation(title=title, use_memory=use_memory))

    def _touch(self, conv: Conversation, **changes) -> Conversation:
        changes["updated_at"] = now_ms()
        return self.put(conv.model_copy(update=changes))

    def append_message(self, conv_id: str, role: str, content: str, model: Optional[str] = None) -> Conversation:
        with self._lock:
            conv = self.get(conv_id)
            message = StoredMessage(role=role, content=content, model=model)
            return self._touch(conv, messages=list(conv.messages) + [message])

    def set_summary(self, conv_id: str, summary: str, keywords: Optional[List[str]] = None) -> Conversation:
        with self._lock:
            conv = self.get(conv_id)
            return self._touch(conv, memory=ConversationMemory(summary=summary, keywords=list(keywords or [])))

    def rename(self, conv_id: str, title: str) -> Conversation:
        with self._lock:
            return self._touch(self.get(conv_id), title=title)


class RecordStore:
    """Server-side replacement for the browser's local storage."""

    def __init__(self, root: str):
        self.root = root
        self.projects = ProjectRepository(os.path.join(root, "projects.json"))
        self.deployments = DeploymentRepository(os.path.join(root, "deployments.json"))
        self.conversations = ConversationRepository(os.path.join(root, "conversations.json"))

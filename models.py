import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    return int(time.time() * 1000)


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def new_id() -> str:
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    """Base for payloads exchanged with the browser client (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- chat ---

class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ModelResponse(BaseModel):
    content: Optional[str] = None
    model: str
    usage: Optional[Any] = None


class ChatRequest(CamelModel):
    message: Optional[str] = None
    use_multiple_models: bool = Field(True, alias="useMultipleModels")
    model: Optional[str] = None
    models: Optional[List[str]] = None
    # entries are coerced when the prompt is assembled
    history: Optional[List[Any]] = None
    memory_summary: Optional[str] = Field(None, alias="memorySummary")
    conversation_id: Optional[str] = Field(None, alias="conversationId")


class ChatReply(CamelModel):
    message: str
    model: str
    alternative_count: Optional[int] = Field(None, alias="alternativeCount")


# --- images, publishing, deployment ---

class ImageRequest(CamelModel):
    prompt: Any = None
    model: Optional[str] = None
    size: Literal["256x256", "512x512", "1024x1024"] = "1024x1024"
    image_base64: Optional[str] = Field(None, alias="imageBase64")


class DeployFile(BaseModel):
    path: Optional[str] = None
    content: Optional[str] = None


class PublishRequest(CamelModel):
    owner: Optional[str] = None
    repo: Optional[str] = None
    token: Optional[str] = None
    branch: Optional[str] = None
    create_repo: bool = Field(True, alias="createRepo")
    files: Optional[List[DeployFile]] = None
    deployment_id: Optional[str] = Field(None, alias="deploymentId")
    project_id: Optional[str] = Field(None, alias="projectId")


class DeployRequest(CamelModel):
    project_id: Optional[str] = Field(None, alias="projectId")
    project_name: Optional[str] = Field(None, alias="projectName")
    # path -> text, or path -> {"content": ...} as snapshotted by the editor
    files: Optional[Dict[str, Any]] = None


# --- stored records ---

class Project(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    template: str = "blank"
    language: Optional[str] = None
    created_at: str = Field(default_factory=now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=now_iso, alias="updatedAt")
    files: Dict[str, str] = Field(default_factory=dict)
    is_public: bool = Field(False, alias="isPublic")
    deployment_url: Optional[str] = Field(None, alias="deploymentUrl")


class Deployment(CamelModel):
    id: str = Field(default_factory=new_id)
    project_id: str = Field(alias="projectId")
    url: str
    created_at: str = Field(default_factory=now_iso, alias="createdAt")
    snapshot_files: Dict[str, str] = Field(default_factory=dict, alias="snapshotFiles")


class StoredMessage(CamelModel):
    id: str = Field(default_factory=new_id)
    role: Literal["system", "user", "assistant"]
    content: str
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    model: Optional[str] = None


class ConversationMemory(CamelModel):
    summary: str = ""
    keywords: List[str] = Field(default_factory=list)


class Conversation(CamelModel):
    id: str = Field(default_factory=new_id)
    title: str = "New Chat"
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")
    messages: List[StoredMessage] = Field(default_factory=list)
    memory: ConversationMemory = Field(default_factory=ConversationMemory)
    use_memory: bool = Field(True, alias="useMemory")

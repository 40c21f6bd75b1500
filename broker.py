import logging
from typing import Any, Callable, List, Optional, Sequence

from ai_client import OpenRouterClient
from models import ChatReply, ChatRequest, ChatTurn, ModelResponse

logger = logging.getLogger("llm-broker")

SYSTEM_PROMPT = (
    "You are CodeCraft AI, a helpful coding assistant. Help users create, debug, and optimize "
    "their code. Provide clear explanations and practical solutions. Be concise but thorough."
)
HISTORY_LIMIT = 10
# fan-out polls at most this many candidates and stops early at the target
FANOUT_ATTEMPTS = 3
FANOUT_TARGET = 2


class BrokerError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": self.message, "code": self.code}


class InvalidRequest(BrokerError):
    status_code = 400
    code = "invalid_request"


class MissingCredential(BrokerError):
    status_code = 400
    code = "missing_credential"


class AllBackendsUnavailable(BrokerError):
    status_code = 503
    code = "all_backends_unavailable"

    def __init__(self, message: str = "All AI models are currently unavailable"):
        super().__init__(message)


class InternalFault(BrokerError):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


def resolve_credential(override: Optional[str], default: Optional[str]) -> str:
    """Pick the API key: per-request override first, then the configured default."""
    if override:
        override = override.strip()
        if override.lower().startswith("bearer "):
            override = override[7:].strip()
    key = override or default
    if not key:
        raise MissingCredential("Missing OpenRouter API key (pass x-openrouter-key header or set env)")
    return key


def _coerce_turn(entry: Any) -> ChatTurn:
    role = None
    content: Any = None
    if isinstance(entry, dict):
        role = entry.get("role")
        content = entry.get("content")
    elif isinstance(entry, ChatTurn):
        role, content = entry.role, entry.content
    else:
        content = entry
    if role not in ("user", "assistant"):
        role = "user"
    if content is None:
        content = ""
    return ChatTurn(role=role, content=content if isinstance(content, str) else str(content))


def build_messages(message: str, history: Optional[Sequence[Any]] = None,
                   memory_summary: Optional[str] = None) -> List[ChatTurn]:
    turns = [ChatTurn(role="system", content=SYSTEM_PROMPT)]
    if memory_summary:
        turns.append(ChatTurn(
            role="system",
            content=f"Conversation memory (summary of earlier discussion):\n{memory_summary}",
        ))
    for entry in list(history or [])[-HISTORY_LIMIT:]:
        turns.append(_coerce_turn(entry))
    turns.append(ChatTurn(role="user", content=message))
    return turns


def _has_content(response: Optional[ModelResponse]) -> bool:
    return response is not None and bool(response.content)


class ModelResponseBroker:
    """Turn one chat request into one assistant reply.

    Backends are polled one at a time. Individual failures are swallowed by
    the client; only the aggregate outcome is raised to the caller.
    """

    def __init__(self, settings, client_factory: Optional[Callable[[str], Any]] = None):
        self.settings = settings
        self._client_factory = client_factory or (lambda key: OpenRouterClient.from_settings(key, settings))

    def respond(self, request: ChatRequest, credential: Optional[str] = None,
                explicit_model: Optional[str] = None) -> ChatReply:
        message = request.message
        if not isinstance(message, str) or not message:
            raise InvalidRequest("Message is required")
        api_key = resolve_credential(credential, self.settings.openrouter_api_key)

        client = self._client_factory(api_key)
        messages = build_messages(message, request.history, request.memory_summary)

        explicit = explicit_model or request.model
        tried = None
        if explicit:
            if explicit in self.settings.allowed_models:
                tried = explicit
                response = client.complete(messages, explicit)
                if _has_content(response):
                    return ChatReply(message=response.content, model=response.model)
                logger.info("Explicit model %s gave no answer, falling back to candidates", explicit)
            else:
                logger.info("Explicit model %s is not in the allow-list, ignoring", explicit)

        candidates = [m for m in (request.models or self.settings.default_models) if m != tried]
        if request.use_multiple_models:
            return self._best_of(client, messages, candidates)
        return self._first_success(client, messages, candidates)

    def _best_of(self, client, messages: List[ChatTurn], candidates: List[str]) -> ChatReply:
        responses = []
        for model in candidates[:FANOUT_ATTEMPTS]:
            response = client.complete(messages, model)
            if _has_content(response):
                responses.append(response)
            if len(responses) >= FANOUT_TARGET:
                break

        if not responses:
            fallback = self.settings.fallback_model
            logger.warning("No candidate answered, trying fallback model %s", fallback)
            response = client.complete(messages, fallback)
            if _has_content(response):
                return ChatReply(message=response.content, model=response.model, alternative_count=0)
            raise AllBackendsUnavailable()

        best = responses[0]
        for current in responses[1:]:
            if len(current.content) > len(best.content):
                best = current
        logger.info("Selected %s out of %d responses", best.model, len(responses))
        return ChatReply(message=best.content, model=best.model, alternative_count=len(responses) - 1)

    def _first_success(self, client, messages: List[ChatTurn], candidates: List[str]) -> ChatReply:
        for model in candidates:
            response = client.complete(messages, model)
            if _has_content(response):
                return ChatReply(message=response.content, model=response.model)
        raise AllBackendsUnavailable()

import logging
from typing import Any, Dict, List, Optional

import requests

from models import ChatTurn, ModelResponse

logger = logging.getLogger("openrouter-client")

# Sampling parameters are fixed for every completion attempt.
TEMPERATURE = 0.7
MAX_TOKENS = 2000


class BackendSoftFailure(Exception):
  """A completion attempt that produced no usable answer."""


class ImageGenerationError(Exception):

  def __init__(self, status_code: int, message: str, details: Any = None):
    super().__init__(message)
    self.status_code = status_code
    self.message = message
    self.details = details


class UnrecognizedImageResponse(ImageGenerationError):
  """The image API answered 2xx with a body shape we cannot read."""


class OpenRouterClient:
  """Thin client for an OpenRouter-compatible API.

  One instance is bound to one resolved API key. Completion attempts never
  raise: a failed attempt is logged and reported as ``None`` so the caller
  can move on to the next model.
  """

  def __init__(self, api_key: str, base_url: str = "https://openrouter.ai/api/v1",
               site_url: str = "http://localhost:3000", app_title: str = "CodeCraft AI",
               timeout: Optional[float] = None):
    if not api_key:
      raise ValueError("api_key is required")
    self.api_key = api_key
    self.url = base_url.rstrip("/")
    self.site_url = site_url
    self.app_title = app_title
    self.timeout = timeout

  @classmethod
  def from_settings(cls, api_key: str, settings) -> "OpenRouterClient":
    return cls(
      api_key,
      base_url=settings.openrouter_base_url,
      site_url=settings.site_url,
      app_title=settings.app_title,
      timeout=settings.openrouter_timeout,
    )

  def _headers(self, referer: Optional[str] = None, title: Optional[str] = None) -> Dict[str, str]:
    return {
      "Authorization": f"Bearer {self.api_key}",
      "Content-Type": "application/json",
      "HTTP-Referer": referer or self.site_url,
      "X-Title": title or self.app_title,
    }

  def _request_completion(self, messages: List[ChatTurn], model: str) -> ModelResponse:
    payload = {
      "model": model,
      "messages": [turn.model_dump() for turn in messages],
      "temperature": TEMPERATURE,
      "max_tokens": MAX_TOKENS,
    }
    try:
      resp = requests.post(self.url + "/chat/completions", headers=self._headers(), json=payload, timeout=self.timeout)
    except requests.RequestException as e:
      raise BackendSoftFailure(f"transport error: {e}") from e

    if not 200 <= resp.status_code < 300:
      body = resp.text or "Unknown error"
      raise BackendSoftFailure(f"status {resp.status_code}: {body[:500]}")

    try:
      data = resp.json()
    except ValueError as e:
      raise BackendSoftFailure("response body is not JSON") from e
    if not isinstance(data, dict):
      raise BackendSoftFailure("response body is not a JSON object")

    content = None
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
      message = choices[0].get("message")
      if isinstance(message, dict) and isinstance(message.get("content"), str):
        content = message["content"]

    echoed = data.get("model")
    return ModelResponse(
      content=content,
      model=echoed if isinstance(echoed, str) and echoed else model,
      usage=data.get("usage"),
    )

  def complete(self, messages: List[ChatTurn], model: str) -> Optional[ModelResponse]:
    """Attempt one completion against ``model``; ``None`` on any failure."""
    try:
      return self._request_completion(messages, model)
    except BackendSoftFailure as e:
      logger.warning("Model %s failed: %s", model, e)
      return None

  def generate_image(self, prompt: str, model: str, size: str = "1024x1024",
                     image_base64: Optional[str] = None, referer: Optional[str] = None) -> Dict[str, Any]:
    image = None
    if image_base64:
      image = image_base64 if image_base64.startswith("data:") else f"data:image/png;base64,{image_base64}"
    payload = {"model": model, "prompt": prompt, "size": size}
    if image:
      # providers accept the input image under a generic field
      payload["image"] = image

    resp = requests.post(
      self.url + "/images",
      headers=self._headers(referer=referer, title="Image Generation"),
      json=payload,
      timeout=self.timeout,
    )
    if not 200 <= resp.status_code < 300:
      logger.warning("Image API returned %s for model %s", resp.status_code, model)
      raise ImageGenerationError(resp.status_code, f"Image API error: {resp.status_code}", (resp.text or "")[:1000])

    try:
      data = resp.json()
    except ValueError:
      data = {}
    if not isinstance(data, dict):
      data = {}

    image_url = None
    image_b64 = None
    items = data.get("data")
    first = items[0] if isinstance(items, list) and items and isinstance(items[0], dict) else {}
    if first.get("url"):
      image_url = first["url"]
    if first.get("b64_json"):
      image_b64 = first["b64_json"]

    if not image_url and not image_b64:
      # some models answer with a top-level url or image field
      if data.get("url"):
        image_url = data["url"]
      img = data.get("image")
      if isinstance(img, str) and img:
        if img.startswith("http"):
          image_url = img
        else:
          image_b64 = img

    if image_b64:
      return {"type": "base64", "dataUrl": f"data:image/png;base64,{image_b64}", "model": model}
    if image_url:
      return {"type": "url", "url": image_url, "model": model}
    raise UnrecognizedImageResponse(500, "Unrecognized image response format", data)

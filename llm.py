"""DashScope-backed scene description and voice assistant collaborators."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from camera import encode_jpeg_data_uri
from errors import (
    ASSISTANT_FAILED,
    AUTH_FAILED,
    DESCRIBE_FAILED,
    EMPTY_RESPONSE,
    NETWORK_ERROR,
    CollaboratorError,
)
from models import AssistantReply, AssistantRequest, DescriptionRequest, SceneDescription

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

DESCRIBE_SYSTEM_PROMPT = (
    "You are an expert at describing visual scenes for visually impaired users. "
    "Mention the objects you see, their colour or type when you can tell, and "
    "where they are in the frame (on the left, in the foreground, top-right). "
    "If a person is visible, describe what they are doing but never guess "
    "identities or emotions. Keep it natural and short enough to be read aloud "
    "in a few seconds."
)

DESCRIBE_CHANGES_PROMPT = (
    'The previous description of a very similar scene was: "{previous}". '
    "If the scene is substantially the same, say so briefly and focus on what "
    "is new or changed. If it is different, describe it fully."
)

ASSISTANT_SYSTEM_PROMPT = (
    'You are "Vision Buddy", a friendly and helpful voice assistant for the '
    "Assistive Visions app, designed to help users who may have visual "
    "impairments. Respond clearly, concisely and empathetically. Your answer "
    "is read aloud, so avoid lists, markdown and emoji. If the user's location "
    "is provided and relevant to the question, use it."
)


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return getattr(obj, key, None)


def _extract_text(response: Any) -> str:
    """Pull the first message's text out of a (multimodal) generation response."""
    choices = _get(_get(response, "output"), "choices") or []
    if not choices:
        return ""
    content = _get(_get(choices[0], "message"), "content")
    if isinstance(content, str):
        return content.strip()
    parts = []
    for item in content or []:
        text = _get(item, "text")
        if text:
            parts.append(str(text))
    return " ".join(parts).strip()


def classify_error(message: str, default: str) -> str:
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low or "apikey" in low:
        return AUTH_FAILED
    if "timeout" in low or "timed out" in low or "network" in low or "connection" in low:
        return NETWORK_ERROR
    return default


def _check_response(response: Any, default: str) -> str:
    status = _get(response, "status_code")
    if status is not None and int(status) != 200:
        detail = f"{status} {_get(response, 'code') or ''} {_get(response, 'message') or ''}".strip()
        code = AUTH_FAILED if int(status) in (401, 403) else classify_error(detail, default)
        raise CollaboratorError(code, detail)
    text = _extract_text(response)
    if not text:
        raise CollaboratorError(EMPTY_RESPONSE, "model returned no text")
    return text


class _DashscopeClient:
    default_code = ASSISTANT_FAILED

    def __init__(self, api_key: str = "", model: str = "") -> None:
        self.api_key = api_key
        self.model = model

    def _resolve_key(self) -> str:
        if dashscope is None:
            raise CollaboratorError(self.default_code, "dashscope is not installed")
        api_key = self.api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise CollaboratorError(AUTH_FAILED, "No API key configured")
        return api_key

    def _call(self, endpoint: Any, **kwargs: Any) -> str:
        api_key = self._resolve_key()
        try:
            response = endpoint.call(api_key=api_key, model=self.model, **kwargs)
        except CollaboratorError:
            raise
        except Exception as exc:
            raise CollaboratorError(classify_error(str(exc), self.default_code), str(exc)) from exc
        return _check_response(response, self.default_code)


class DashscopeSceneDescriber(_DashscopeClient):
    default_code = DESCRIBE_FAILED

    def __init__(self, api_key: str = "", model: str = "qwen-vl-plus") -> None:
        super().__init__(api_key, model)

    def describe(self, request: DescriptionRequest) -> SceneDescription:
        image = request.image
        data_uri = image if isinstance(image, str) else encode_jpeg_data_uri(image)
        prompt = "Describe this scene."
        if request.previous_description:
            prompt = DESCRIBE_CHANGES_PROMPT.format(previous=request.previous_description)
        messages = [
            {"role": "system", "content": [{"text": DESCRIBE_SYSTEM_PROMPT}]},
            {"role": "user", "content": [{"image": data_uri}, {"text": prompt}]},
        ]
        text = self._call(dashscope.MultiModalConversation, messages=messages)
        logger.debug("Scene description: %s", text)
        return SceneDescription(description=text)


class DashscopeAssistant(_DashscopeClient):
    def __init__(self, api_key: str = "", model: str = "qwen-plus") -> None:
        super().__init__(api_key, model)

    def ask(self, request: AssistantRequest) -> AssistantReply:
        messages = [
            {"role": "system", "content": ASSISTANT_SYSTEM_PROMPT},
            {"role": "user", "content": _user_message(request.speech, request.location_hint)},
        ]
        text = self._call(dashscope.Generation, messages=messages, result_format="message")
        return AssistantReply(response=text)


def _user_message(speech: str, location_hint: Optional[str]) -> str:
    if not location_hint:
        return speech
    return f"{speech}\n\nMy current location: {location_hint}"

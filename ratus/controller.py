"""Request handling for topic and health endpoints, independent of any web framework."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from http import HTTPStatus
from typing import Any, Protocol

from ratus.client import RatusError
from ratus.context import Commit, _format_time

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


def _default(value: Any) -> Any:
    if isinstance(value, Commit):
        return value.to_dict()
    if isinstance(value, datetime):
        return _format_time(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


@dataclass
class Response:
    """Status code and JSON body of a handled request."""

    status: int = HTTPStatus.OK
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.body is not None:
            self.headers.setdefault("Content-Type", JSON_CONTENT_TYPE)

    @property
    def content_type(self) -> str:
        """The Content-Type header, or an empty string if there is no body."""
        return self.headers.get("Content-Type", "")

    @property
    def content(self) -> bytes:
        """The body encoded as compact JSON, or empty bytes if there is none."""
        if self.body is None:
            return b""
        return json.dumps(self.body, separators=(",", ":"), default=_default).encode()

    @property
    def text(self) -> str:
        """The encoded body as text."""
        return self.content.decode()


def _error_body(error: BaseException) -> tuple[int, dict[str, Any]]:
    code = error.code if isinstance(error, RatusError) and error.code else HTTPStatus.INTERNAL_SERVER_ERROR
    message = str(error)
    if not message:
        try:
            message = HTTPStatus(code).phrase.lower()
        except ValueError:
            message = "error"
    return code, {"error": {"code": code, "message": message}}


def _is_created(value: Any) -> bool:
    if not isinstance(value, Mapping) or "created" not in value or "updated" not in value:
        return False
    created = value.get("created")
    return isinstance(created, int) and created > 0


def send(value: Any, error: BaseException | None = None) -> Response:
    """Build the response for a handler's result or error.

    Errors become a JSON error document with the matching status code; server
    side errors are also logged. A result reporting created resources is
    answered with 201, any other result with 200.
    """
    if error is not None:
        code, body = _error_body(error)
        if code >= HTTPStatus.INTERNAL_SERVER_ERROR:
            logger.error("request failed: %s", error)
        return Response(code, body)
    status = HTTPStatus.CREATED if _is_created(value) else HTTPStatus.OK
    return Response(int(status), value)


class _HealthEngine(Protocol):
    async def ready(self) -> Any: ...


class _TopicEngine(Protocol):
    async def list_topics(self, limit: int, offset: int) -> Any: ...

    async def delete_topics(self) -> Any: ...

    async def get_topic(self, topic: str) -> Any: ...

    async def delete_topic(self, topic: str) -> Any: ...


class HealthController:
    """Handlers for health-related endpoints."""

    def __init__(self, engine: _HealthEngine) -> None:
        self.engine = engine

    async def get_liveness(self) -> Response:
        """Report that the instance is alive."""
        return Response(int(HTTPStatus.OK))

    async def get_readiness(self) -> Response:
        """Report whether the storage engine is ready to serve requests."""
        try:
            await self.engine.ready()
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)
        return Response(int(HTTPStatus.OK))


class TopicController:
    """Handlers for topic-related endpoints."""

    def __init__(self, engine: _TopicEngine) -> None:
        self.engine = engine

    async def get_topics(self, limit: int, offset: int) -> Response:
        """List all topics."""
        try:
            topics = await self.engine.list_topics(limit, offset)
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send({"data": None}, exc)
        return send({"data": list(topics) if topics is not None else None})

    async def delete_topics(self) -> Response:
        """Delete all topics and tasks."""
        try:
            return send(await self.engine.delete_topics())
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def get_topic(self, topic: str) -> Response:
        """Get information about a topic."""
        try:
            return send(await self.engine.get_topic(topic))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def delete_topic(self, topic: str) -> Response:
        """Delete a topic and its tasks."""
        try:
            return send(await self.engine.delete_topic(topic))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)
"""Asynchronous HTTP client for a Ratus task queue server."""

from __future__ import annotations

import asyncio
import inspect
import json
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import quote, urlsplit

import httpx

from ratus.context import Commit, Context, _format_time

DEFAULT_CONCURRENCY_DELAY = 1.0
"""Seconds between the start of two polling workers when none is given."""

DEFAULT_DRAIN_INTERVAL = 5.0
"""Seconds to pause when the topic has been emptied, when none is given."""

DEFAULT_ERROR_INTERVAL = 30.0
"""Seconds to pause after an error, when none is given."""

_METHOD = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_TIME = re.compile(r"^(.*T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|z|[+-]\d{2}:\d{2})$")


class RatusError(Exception):
    """An error reported by the server."""

    code: int = 0

    def __init__(self, message: str = "", code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class BadRequestError(RatusError):
    code = 400


class NotFoundError(RatusError):
    code = 404


class ConflictError(RatusError):
    code = 409


class InternalServerError(RatusError):
    code = 500


class ServiceUnavailableError(RatusError):
    code = 503


_ERRORS: dict[int, type[RatusError]] = {
    cls.code: cls
    for cls in (
        BadRequestError,
        NotFoundError,
        ConflictError,
        InternalServerError,
        ServiceUnavailableError,
    )
}


def error_from_response(status: int, body: Any) -> RatusError:
    """Translate an error response into the matching exception.

    ``body`` is the decoded JSON document or its raw text; a body that is not
    valid JSON raises ``ValueError``.
    """
    if isinstance(body, (bytes, bytearray, str)):
        body = json.loads(body)
    detail = body.get("error") if isinstance(body, Mapping) else None
    if not isinstance(detail, Mapping):
        detail = {}
    code = detail.get("code") or status
    message = detail.get("message") or ""
    cls = _ERRORS.get(code)
    if cls is None:
        return RatusError(message, code)
    return cls(message)


@dataclass
class ClientOptions:
    """Options for connecting to a Ratus instance."""

    origin: str
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 0.0
    transport: httpx.AsyncBaseTransport | None = None


@dataclass
class SubscribeOptions:
    """Options for subscribing to a topic; intervals are in seconds."""

    topic: str
    promise: Mapping[str, Any] = field(default_factory=dict)
    concurrency: int = 1
    concurrency_delay: float = 0.0
    poll_interval: float = 0.0
    drain_interval: float = 0.0
    error_interval: float = 0.0


Handler = Callable[[Context | None, Exception | None], Awaitable[None] | None]


def _escape(segment: str) -> str:
    return quote(segment, safe="$&+:=@")


def _parse_time(text: str) -> datetime:
    match = _TIME.match(text)
    if match is None:
        return datetime.fromisoformat(text)
    fraction = (match[2] or "")[:6].ljust(6, "0")
    zone = "+00:00" if match[3] in ("Z", "z") else match[3]
    return datetime.fromisoformat(f"{match[1]}.{fraction}{zone}")


def _default(value: Any) -> Any:
    if isinstance(value, Commit):
        return value.to_dict()
    if isinstance(value, datetime):
        return _format_time(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


class Client:
    """HTTP client that talks to a Ratus instance."""

    def __init__(self, options: ClientOptions) -> None:
        parts = urlsplit(options.origin)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"invalid origin {options.origin!r}")
        kwargs: dict[str, Any] = {
            "base_url": f"{parts.scheme}://{parts.netloc}",
            "headers": dict(options.headers),
            "timeout": httpx.Timeout(options.timeout or None),
        }
        if options.transport is not None:
            kwargs["transport"] = options.transport
        self._http = httpx.AsyncClient(**kwargs)

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the underlying connections."""
        await self._http.aclose()

    async def request(self, method: str, endpoint: str, body: Any = None) -> Any:
        """Call an endpoint and return the decoded response body, or None if empty.

        Error responses are raised as RatusError subclasses.
        """
        if not _METHOD.match(method):
            raise ValueError(f"invalid method {method!r}")
        content = None
        headers = {}
        if body is not None:
            content = json.dumps(body, default=_default).encode()
            headers["Content-Type"] = "application/json"
        response = await self._http.request(method, endpoint, content=content, headers=headers)
        if response.status_code >= 400:
            raise error_from_response(response.status_code, response.content)
        if not response.content.strip():
            return None
        return response.json()

    async def subscribe(self, options: SubscribeOptions, handler: Handler) -> None:
        """Poll a topic indefinitely, passing each claimed task or error to the handler.

        The handler may be a plain function or a coroutine function. Tasks are
        committed automatically after the handler returns unless it already
        committed. Runs until cancelled.
        """
        promise = {k: options.promise[k] for k in ("consumer", "timeout") if k in options.promise}
        workers = max(options.concurrency, 1)
        stagger = options.concurrency_delay if options.concurrency_delay > 0 else DEFAULT_CONCURRENCY_DELAY
        drain = options.drain_interval if options.drain_interval > 0 else DEFAULT_DRAIN_INTERVAL
        backoff = options.error_interval if options.error_interval > 0 else DEFAULT_ERROR_INTERVAL
        pause = max(options.poll_interval, 0.0)

        async def call(ctx: Context | None, error: Exception | None) -> None:
            result = handler(ctx, error)
            if inspect.isawaitable(result):
                await result

        async def consume(delay: float) -> None:
            await asyncio.sleep(delay)
            while True:
                try:
                    ctx = await self.poll(options.topic, promise)
                    await call(ctx, None)
                    await ctx.commit()
                except NotFoundError:
                    await asyncio.sleep(drain)
                    continue
                except Exception as exc:  # noqa: BLE001 - reported to the handler
                    await call(None, exc)
                    await asyncio.sleep(backoff)
                    continue
                await asyncio.sleep(pause)

        async with asyncio.TaskGroup() as group:
            for index in range(workers):
                group.create_task(consume(stagger * index))

    async def poll(self, topic: str, promise: Mapping[str, Any]) -> Context:
        """Claim the next available task in a topic.

        Raises NotFoundError if the topic is empty or no task is due yet.
        """
        task = await self.post_promises(topic, promise)
        timeout: timedelta | None = None
        consumed, deadline = task.get("consumed"), task.get("deadline")
        if consumed and deadline:
            timeout = _parse_time(deadline) - _parse_time(consumed)
        return Context(task=task, client=self, timeout=timeout)

    async def list_topics(self, limit: int, offset: int) -> list[dict[str, Any]]:
        """List all topics."""
        result = await self.request("GET", f"/v1/topics?limit={limit}&offset={offset}")
        return (result or {}).get("data") or []

    async def delete_topics(self) -> dict[str, Any]:
        """Delete all topics and tasks."""
        return await self.request("DELETE", "/v1/topics")

    async def get_topic(self, topic: str) -> dict[str, Any]:
        """Get information about a topic."""
        return await self.request("GET", f"/v1/topics/{_escape(topic)}")

    async def delete_topic(self, topic: str) -> dict[str, Any]:
        """Delete a topic and its tasks."""
        return await self.request("DELETE", f"/v1/topics/{_escape(topic)}")

    async def list_tasks(self, topic: str, limit: int, offset: int) -> list[dict[str, Any]]:
        """List all tasks in a topic."""
        result = await self.request(
            "GET", f"/v1/topics/{_escape(topic)}/tasks?limit={limit}&offset={offset}"
        )
        return (result or {}).get("data") or []

    async def insert_tasks(self, tasks: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
        """Insert a batch of tasks while ignoring existing ones."""
        return await self.request("POST", "/v1/topics//tasks", {"data": list(tasks)})

    async def upsert_tasks(self, tasks: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
        """Insert or update a batch of tasks."""
        return await self.request("PUT", "/v1/topics//tasks", {"data": list(tasks)})

    async def delete_tasks(self, topic: str) -> dict[str, Any]:
        """Delete all tasks in a topic."""
        return await self.request("DELETE", f"/v1/topics/{_escape(topic)}/tasks")

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """Get a task by its unique ID."""
        return await self.request("GET", f"/v1/topics//tasks/{_escape(task_id)}")

    async def insert_task(self, task: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a new task."""
        return await self.request("POST", f"/v1/topics//tasks/{_escape(task.get('_id', ''))}", task)

    async def upsert_task(self, task: Mapping[str, Any]) -> dict[str, Any]:
        """Insert or update a task."""
        return await self.request("PUT", f"/v1/topics//tasks/{_escape(task.get('_id', ''))}", task)

    async def delete_task(self, task_id: str) -> dict[str, Any]:
        """Delete a task by its unique ID."""
        return await self.request("DELETE", f"/v1/topics//tasks/{_escape(task_id)}")

    async def patch_task(self, task_id: str, commit: Commit | Mapping[str, Any]) -> dict[str, Any]:
        """Apply a set of updates to a task and return the updated task."""
        return await self.request("PATCH", f"/v1/topics//tasks/{_escape(task_id)}", commit)

    async def list_promises(self, topic: str, limit: int, offset: int) -> list[dict[str, Any]]:
        """List all promises in a topic."""
        result = await self.request(
            "GET", f"/v1/topics/{_escape(topic)}/promises?limit={limit}&offset={offset}"
        )
        return (result or {}).get("data") or []

    async def post_promises(self, topic: str, promise: Mapping[str, Any]) -> dict[str, Any]:
        """Promise to claim and execute the next available task in a topic."""
        return await self.request("POST", f"/v1/topics/{_escape(topic)}/promises", promise)

    async def delete_promises(self, topic: str) -> dict[str, Any]:
        """Delete all promises in a topic."""
        return await self.request("DELETE", f"/v1/topics/{_escape(topic)}/promises")

    async def get_promise(self, task_id: str) -> dict[str, Any]:
        """Get a promise by the unique ID of its target task."""
        return await self.request("GET", f"/v1/topics//promises/{_escape(task_id)}")

    async def insert_promise(self, promise: Mapping[str, Any]) -> dict[str, Any]:
        """Promise to claim and execute a task if it is pending."""
        return await self.request(
            "POST", f"/v1/topics//promises/{_escape(promise.get('_id', ''))}", promise
        )

    async def upsert_promise(self, promise: Mapping[str, Any]) -> dict[str, Any]:
        """Promise to claim and execute a task regardless of its state."""
        return await self.request(
            "PUT", f"/v1/topics//promises/{_escape(promise.get('_id', ''))}", promise
        )

    async def delete_promise(self, task_id: str) -> dict[str, Any]:
        """Delete a promise by the unique ID of its target task."""
        return await self.request("DELETE", f"/v1/topics//promises/{_escape(task_id)}")

    async def get_liveness(self) -> None:
        """Check the liveness of the instance."""
        await self.request("GET", "/v1/livez")

    async def get_readiness(self) -> None:
        """Check the readiness of the instance."""
        await self.request("GET", "/v1/readyz")
"""Request handling for promise endpoints, independent of any web framework."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from ratus.client import ConflictError
from ratus.controller import Response, send


class _PromiseEngine(Protocol):
    async def list_promises(self, topic: str, limit: int, offset: int) -> Any: ...

    async def poll(self, topic: str, promise: Mapping[str, Any]) -> Any: ...

    async def delete_promises(self, topic: str) -> Any: ...

    async def get_promise(self, task_id: str) -> Any: ...

    async def insert_promise(self, promise: Mapping[str, Any]) -> Any: ...

    async def upsert_promise(self, promise: Mapping[str, Any]) -> Any: ...

    async def delete_promise(self, task_id: str) -> Any: ...


class PromiseController:
    """Handlers for promise-related endpoints."""

    def __init__(self, engine: _PromiseEngine) -> None:
        self.engine = engine

    async def get_promises(self, topic: str, limit: int, offset: int) -> Response:
        """List all promises in a topic."""
        try:
            promises = await self.engine.list_promises(topic, limit, offset)
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send({"data": None}, exc)
        return send({"data": list(promises) if promises is not None else None})

    async def post_promises(self, topic: str, promise: Mapping[str, Any]) -> Response:
        """Claim the next available task in a topic.

        A promise that names a task is handled as a promise for that task.
        """
        if promise.get("_id"):
            return await self.post_promise(promise)
        try:
            return send(await self.engine.poll(topic, promise))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def delete_promises(self, topic: str) -> Response:
        """Delete all promises in a topic."""
        try:
            return send(await self.engine.delete_promises(topic))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def get_promise(self, task_id: str) -> Response:
        """Get a promise by the unique ID of its target task."""
        try:
            return send(await self.engine.get_promise(task_id))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def post_promise(self, promise: Mapping[str, Any]) -> Response:
        """Claim a task if it is in pending state."""
        try:
            return send(await self.engine.insert_promise(promise))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            if type(exc) is ConflictError:
                exc = ConflictError(
                    f"{str(exc) or 'conflict'}: the target task is not in pending state"
                )
            return send(None, exc)

    async def put_promise(self, promise: Mapping[str, Any]) -> Response:
        """Claim a task regardless of its current state."""
        try:
            return send(await self.engine.upsert_promise(promise))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def delete_promise(self, task_id: str) -> Response:
        """Delete a promise by the unique ID of its target task."""
        try:
            return send(await self.engine.delete_promise(task_id))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)
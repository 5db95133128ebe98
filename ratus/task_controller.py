"""Request handling for task endpoints, independent of any web framework."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from ratus.client import ConflictError
from ratus.context import Commit
from ratus.controller import Response, send


class _TaskEngine(Protocol):
    async def list_tasks(self, topic: str, limit: int, offset: int) -> Any: ...

    async def insert_tasks(self, tasks: list[Mapping[str, Any]]) -> Any: ...

    async def upsert_tasks(self, tasks: list[Mapping[str, Any]]) -> Any: ...

    async def delete_tasks(self, topic: str) -> Any: ...

    async def get_task(self, task_id: str) -> Any: ...

    async def insert_task(self, task: Mapping[str, Any]) -> Any: ...

    async def upsert_task(self, task: Mapping[str, Any]) -> Any: ...

    async def delete_task(self, task_id: str) -> Any: ...

    async def commit(self, task_id: str, commit: Commit | Mapping[str, Any]) -> Any: ...


def _explain_conflict(error: Exception, reason: str) -> Exception:
    """Add a reason to a bare conflict error; leave other errors untouched."""
    if type(error) is ConflictError:
        return ConflictError(f"{str(error) or 'conflict'}: {reason}")
    return error


class TaskController:
    """Handlers for task-related endpoints."""

    def __init__(self, engine: _TaskEngine) -> None:
        self.engine = engine

    async def get_tasks(self, topic: str, limit: int, offset: int) -> Response:
        """List all tasks in a topic."""
        try:
            tasks = await self.engine.list_tasks(topic, limit, offset)
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send({"data": None}, exc)
        return send({"data": list(tasks) if tasks is not None else None})

    async def post_tasks(self, topic: str, tasks: Iterable[Mapping[str, Any]]) -> Response:
        """Insert a batch of tasks while ignoring existing ones."""
        try:
            return send(await self.engine.insert_tasks(list(tasks)))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def put_tasks(self, topic: str, tasks: Iterable[Mapping[str, Any]]) -> Response:
        """Insert or update a batch of tasks."""
        try:
            return send(await self.engine.upsert_tasks(list(tasks)))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def delete_tasks(self, topic: str) -> Response:
        """Delete all tasks in a topic."""
        try:
            return send(await self.engine.delete_tasks(topic))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def get_task(self, task_id: str) -> Response:
        """Get a task by its unique ID."""
        try:
            return send(await self.engine.get_task(task_id))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def post_task(self, task: Mapping[str, Any]) -> Response:
        """Insert a new task."""
        try:
            return send(await self.engine.insert_task(task))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, _explain_conflict(exc, "a task with the same ID already exists"))

    async def put_task(self, task: Mapping[str, Any]) -> Response:
        """Insert or update a task."""
        try:
            return send(await self.engine.upsert_task(task))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def delete_task(self, task_id: str) -> Response:
        """Delete a task by its unique ID."""
        try:
            return send(await self.engine.delete_task(task_id))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, exc)

    async def patch_task(self, task_id: str, commit: Commit | Mapping[str, Any]) -> Response:
        """Apply a set of updates to a task and return the updated task."""
        try:
            return send(await self.engine.commit(task_id, commit))
        except Exception as exc:  # noqa: BLE001 - translated into a response
            return send(None, _explain_conflict(exc, "the task may have been modified by others"))
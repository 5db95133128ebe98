"""Task state, commits and the context carried through poll, execute and commit."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Mapping, Protocol


class TaskState(IntEnum):
    """Lifecycle state of a task."""

    PENDING = 0
    ACTIVE = 1
    COMPLETED = 2
    ARCHIVED = 3


def _format_time(when: datetime) -> str:
    if when.tzinfo is None:
        when = when.astimezone()
    text = when.isoformat()
    if text.endswith("+00:00") and when.utcoffset() == timedelta(0):
        text = text[: -len("+00:00")] + "Z"
    return text


@dataclass
class Commit:
    """A set of updates to apply to a task."""

    nonce: str = ""
    topic: str = ""
    state: TaskState | None = None
    scheduled: datetime | None = None
    payload: Any = None
    defer: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation, leaving out fields that are not set."""
        data: dict[str, Any] = {}
        if self.nonce:
            data["nonce"] = self.nonce
        if self.topic:
            data["topic"] = self.topic
        if self.state is not None:
            data["state"] = int(self.state)
        if self.scheduled is not None:
            data["scheduled"] = _format_time(self.scheduled)
        if self.payload is not None:
            data["payload"] = self.payload
        if self.defer:
            data["defer"] = self.defer
        return data


class _TaskPatcher(Protocol):
    async def patch_task(self, task_id: str, commit: Commit) -> Any: ...


@dataclass(eq=False)
class Context:
    """A claimed task together with the updates to commit once it has run.

    The setter methods return the context itself so that they can be chained.
    """

    task: Mapping[str, Any] | None = None
    client: _TaskPatcher | None = field(default=None, repr=False)
    timeout: timedelta | None = None
    updates: Commit | None = None
    committed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        if self.updates is None:
            self.reset()

    async def commit(self) -> None:
        """Apply the pending updates to the task, at most once."""
        if self.committed:
            return
        if self.client is None:
            raise RuntimeError("cannot commit without an associated client")
        task_id = (self.task or {}).get("_id", "")
        await self.client.patch_task(task_id, self.updates)
        self.committed = True

    def reset(self) -> Context:
        """Discard all uncommitted updates."""
        nonce = (self.task or {}).get("nonce", "") if self.task is not None else ""
        self.updates = Commit(nonce=nonce or "", state=TaskState.COMPLETED)
        return self

    def set_nonce(self, nonce: str) -> Context:
        self.updates.nonce = nonce
        return self

    def set_topic(self, topic: str) -> Context:
        self.updates.topic = topic
        return self

    def set_state(self, state: TaskState) -> Context:
        self.updates.state = TaskState(state)
        return self

    def set_scheduled(self, when: datetime) -> Context:
        self.updates.scheduled = when
        return self

    def set_payload(self, payload: Any) -> Context:
        self.updates.payload = payload
        return self

    def set_defer(self, duration: str) -> Context:
        self.updates.defer = duration
        return self

    def force(self) -> Context:
        """Clear the nonce so the commit is applied regardless of concurrent changes."""
        self.updates.nonce = ""
        return self

    def abstain(self) -> Context:
        """Return the task to the pending state."""
        return self.set_state(TaskState.PENDING)

    def archive(self) -> Context:
        """Move the task to the archived state."""
        return self.set_state(TaskState.ARCHIVED)

    def reschedule(self, when: datetime) -> Context:
        """Return the task to pending and schedule it for the given time."""
        return self.abstain().set_scheduled(when)

    def retry(self, duration: str) -> Context:
        """Return the task to pending and defer it by the given duration."""
        return self.abstain().set_defer(duration)
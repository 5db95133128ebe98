from datetime import datetime, timezone

import pytest

from ratus.context import Commit, Context, TaskState


class _RecordingClient:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def patch_task(self, task_id, commit):
        if self.fail:
            raise ConnectionError("unreachable")
        self.calls.append((task_id, commit.to_dict()))
        return {"_id": task_id}


def test_new_context_defaults_to_completed_with_task_nonce():
    ctx = Context(task={"_id": "1", "nonce": "abc"})
    assert ctx.updates == Commit(nonce="abc", state=TaskState.COMPLETED)
    assert ctx.committed is False


@pytest.mark.asyncio
async def test_invalid_context_cannot_commit():
    c = Context(task={})
    now = datetime.now(timezone.utc)
    (
        c.set_nonce("")
        .set_topic("")
        .set_state(TaskState.PENDING)
        .set_scheduled(now)
        .set_payload("")
        .set_defer("")
        .force()
        .abstain()
        .archive()
        .reschedule(now)
        .retry("")
        .reset()
    )
    with pytest.raises(RuntimeError, match="without an associated client"):
        await c.commit()
    assert c.committed is False


def test_setters_chain_and_update():
    when = datetime(2022, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    ctx = Context(task={"_id": "1"})
    result = (
        ctx.set_nonce("n").set_topic("t").set_state(TaskState.ARCHIVED)
        .set_scheduled(when).set_payload({"a": 1}).set_defer("5s")
    )
    assert result is ctx
    assert ctx.updates == Commit(
        nonce="n", topic="t", state=TaskState.ARCHIVED, scheduled=when,
        payload={"a": 1}, defer="5s",
    )


def test_force_clears_nonce():
    ctx = Context(task={"_id": "1", "nonce": "abc"}).force()
    assert ctx.updates.nonce == ""


def test_abstain_and_archive():
    ctx = Context(task={"_id": "1"})
    assert ctx.abstain().updates.state is TaskState.PENDING
    assert ctx.archive().updates.state is TaskState.ARCHIVED


def test_reschedule_and_retry():
    when = datetime(2030, 5, 1, tzinfo=timezone.utc)
    ctx = Context(task={"_id": "1"}).archive().reschedule(when)
    assert ctx.updates.state is TaskState.PENDING
    assert ctx.updates.scheduled == when
    ctx = Context(task={"_id": "1"}).retry("30s")
    assert ctx.updates.state is TaskState.PENDING
    assert ctx.updates.defer == "30s"


def test_reset_discards_updates():
    ctx = Context(task={"_id": "1", "nonce": "xyz"})
    ctx.set_topic("other").archive().force().reset()
    assert ctx.updates == Commit(nonce="xyz", state=TaskState.COMPLETED)


def test_set_state_accepts_integer():
    ctx = Context(task={}).set_state(1)
    assert ctx.updates.state is TaskState.ACTIVE


def test_commit_to_dict_empty():
    assert Commit().to_dict() == {}


def test_commit_to_dict_keeps_pending_state_and_empty_payload():
    assert Commit(state=TaskState.PENDING, payload="").to_dict() == {"state": 0, "payload": ""}


def test_commit_to_dict_full():
    when = datetime(2022, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    data = Commit(
        nonce="n", topic="t", state=TaskState.COMPLETED, scheduled=when,
        payload=[1, 2], defer="1m",
    ).to_dict()
    assert data == {
        "nonce": "n",
        "topic": "t",
        "state": 2,
        "scheduled": "2022-01-02T03:04:05Z",
        "payload": [1, 2],
        "defer": "1m",
    }


@pytest.mark.asyncio
async def test_commit_sends_updates_once():
    client = _RecordingClient()
    ctx = Context(task={"_id": "id", "nonce": "abc"}, client=client)
    await ctx.set_topic("revisit").retry("30s").commit()
    await ctx.commit()
    assert ctx.committed is True
    assert client.calls == [
        ("id", {"nonce": "abc", "topic": "revisit", "state": 0, "defer": "30s"})
    ]


@pytest.mark.asyncio
async def test_failed_commit_can_be_retried():
    client = _RecordingClient(fail=True)
    ctx = Context(task={"_id": "id"}, client=client)
    with pytest.raises(ConnectionError):
        await ctx.commit()
    assert ctx.committed is False
    client.fail = False
    await ctx.commit()
    assert ctx.committed is True
    assert client.calls == [("id", {"state": 2})]
import pytest

from ratus.client import ConflictError, NotFoundError, ServiceUnavailableError
from ratus.context import TaskState
from ratus.promise_controller import PromiseController


class StubEngine:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def _check(self, name, *args):
        self.calls.append(name)
        if self.error is not None:
            raise self.error

    async def list_promises(self, topic, limit, offset):
        self._check("list_promises", topic, limit, offset)
        return [{"_id": "id", "deadline": "2022-01-01T00:00:00Z"}]

    async def poll(self, topic, promise):
        self._check("poll", topic, promise)
        return {"_id": "id", "topic": topic, "state": int(TaskState.ACTIVE)}

    async def delete_promises(self, topic):
        self._check("delete_promises", topic)
        return {"deleted": 1}

    async def get_promise(self, task_id):
        self._check("get_promise", task_id)
        return {"_id": task_id, "deadline": "2022-01-01T00:00:00Z"}

    async def insert_promise(self, promise):
        self._check("insert_promise", promise)
        return {"_id": promise.get("_id", ""), "topic": "topic", "state": int(TaskState.ACTIVE)}

    async def upsert_promise(self, promise):
        self._check("upsert_promise", promise)
        return {"_id": promise.get("_id", ""), "topic": "topic", "state": int(TaskState.ACTIVE)}

    async def delete_promise(self, task_id):
        self._check("delete_promise", task_id)
        return {"deleted": 1}


@pytest.mark.asyncio
async def test_get_promises():
    r = await PromiseController(StubEngine()).get_promises("topic", 10, 0)
    assert r.status == 200
    assert "application/json" in r.content_type
    assert '"data":[' in r.text
    assert '"deadline":' in r.text


@pytest.mark.asyncio
async def test_post_promises_polls():
    engine = StubEngine()
    r = await PromiseController(engine).post_promises("topic", {})
    assert r.status == 200
    assert '"topic":"topic"' in r.text
    assert engine.calls == ["poll"]


@pytest.mark.asyncio
async def test_post_promises_redirects_with_id():
    engine = StubEngine()
    r = await PromiseController(engine).post_promises("topic", {"_id": "id"})
    assert r.status == 200
    assert '"topic":"topic"' in r.text
    assert engine.calls == ["insert_promise"]


@pytest.mark.asyncio
async def test_delete_promises():
    r = await PromiseController(StubEngine()).delete_promises("topic")
    assert r.status == 200
    assert '"deleted":' in r.text


@pytest.mark.asyncio
async def test_get_promise():
    r = await PromiseController(StubEngine()).get_promise("id")
    assert r.status == 200
    assert '"deadline":' in r.text


@pytest.mark.asyncio
async def test_post_promise():
    r = await PromiseController(StubEngine()).post_promise({})
    assert r.status == 200
    assert r.body["state"] == TaskState.ACTIVE


@pytest.mark.asyncio
async def test_put_promise():
    r = await PromiseController(StubEngine()).put_promise({"_id": "id"})
    assert r.status == 200
    assert r.body["_id"] == "id"


@pytest.mark.asyncio
async def test_delete_promise():
    r = await PromiseController(StubEngine()).delete_promise("id")
    assert r.status == 200
    assert r.body == {"deleted": 1}


@pytest.mark.asyncio
async def test_post_promise_conflict():
    r = await PromiseController(StubEngine(ConflictError())).post_promise({})
    assert r.status == 409
    assert "application/json" in r.content_type
    assert "the target task is not in pending state" in r.text


@pytest.mark.asyncio
async def test_put_promise_conflict_not_explained():
    r = await PromiseController(StubEngine(ConflictError("conflict"))).put_promise({})
    assert r.status == 409
    assert r.body["error"]["message"] == "conflict"


@pytest.mark.asyncio
async def test_post_promises_empty_topic():
    r = await PromiseController(StubEngine(NotFoundError("not found"))).post_promises("topic", {})
    assert r.status == 404
    assert r.body["error"]["code"] == 404


@pytest.mark.asyncio
async def test_get_promises_unavailable():
    r = await PromiseController(StubEngine(ServiceUnavailableError())).get_promises("topic", 10, 0)
    assert r.status == 503
    assert "unavailable" in r.text
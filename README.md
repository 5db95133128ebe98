# ratus

Python tools for working with a RESTful asynchronous task queue.
Producers insert tasks into named topics. Consumers make *promises* to
claim tasks, run them before a deadline, and *commit* the outcome.

The package has these parts:

- `ratus.client`: an asynchronous HTTP client built on `httpx`. It has
  `Client`, `ClientOptions` and `SubscribeOptions`, a method for every API
  endpoint, and `poll` and `subscribe` helpers. Error responses are raised
  as subclasses of `RatusError`: `BadRequestError` (400), `NotFoundError`
  (404), `ConflictError` (409), `InternalServerError` (500) and
  `ServiceUnavailableError` (503). `error_from_response(status, body)`
  performs the same translation on a response you already have.
- `ratus.context`: the `Context` returned by a poll, the `Commit` it builds
  up, and the `TaskState` enumeration (`PENDING`, `ACTIVE`, `COMPLETED`,
  `ARCHIVED`).
- `ratus.config`: the dataclasses `ServerConfig`, `ChoreConfig`,
  `PaginationConfig` and `Config`. `parse_config` reads them from
  command-line arguments and environment variables, and `build_parser`
  returns the underlying `argparse` parser. `parse_duration` parses
  durations such as `3m`, `3500ms` or `2h45m`.
- `ratus.controller`, `ratus.task_controller`, `ratus.promise_controller`:
  request handlers that do not depend on any web framework. They are
  `HealthController`, `TopicController`, `TaskController` and
  `PromiseController`. Each one turns the results and errors of a storage
  engine into a `Response`.

## Client

```python
from ratus.client import Client, ClientOptions

async with Client(ClientOptions(origin="http://127.0.0.1:80")) as client:
    await client.insert_task({"_id": "1", "topic": "example", "payload": "hello world"})

    ctx = await client.poll("example", {"timeout": "30s"})
    print(ctx.task["payload"])
    await ctx.commit()
```

`ClientOptions` takes these settings:

- `origin`: must be an `http` or `https` URL. Anything else raises `ValueError`.
- `headers`: sent with every request.
- `timeout`: in seconds. `0` means no timeout.
- `transport`: an optional `httpx` transport.

Tasks, promises and results are plain dictionaries that follow the server's
JSON. A task's ID is under `"_id"`.

`Client.request(method, endpoint, body)` sends a request to any endpoint and
works as follows:

- The body is encoded as JSON.
- The decoded response is returned, or `None` if the response body is empty.
- A method name that is not a valid token raises `ValueError`.
- An error body that is not JSON raises `ValueError`.

`poll` raises `NotFoundError` in two cases: the topic is empty, or no task
has reached its scheduled time yet. When the task carries `consumed` and
`deadline` times, the difference between them is stored as `ctx.timeout`.

## Subscribing to a topic

```python
from ratus.client import SubscribeOptions

async def handle(ctx, error):
    if error is not None:
        print("poll failed:", error)
        return
    process(ctx.task)
    ctx.set_topic("revisit").retry("30s")

options = SubscribeOptions(
    topic="fresh",
    promise={"consumer": "worker", "timeout": "30s"},
    concurrency=5,
)
await client.subscribe(options, handle)
```

`subscribe` starts `concurrency` workers, at least one. They start
`concurrency_delay` seconds apart, 1 s by default. Each worker repeats these
steps:

1. It polls the topic, using only the `consumer` and `timeout` of the given
   promise.
2. It passes the context to the handler. The handler may be a plain
   function or a coroutine function.
3. It commits the task, unless the handler has already done so.
4. It waits `poll_interval` seconds.

A worker also handles two other cases:

- When the topic is drained, it waits `drain_interval` seconds, 5 s by
  default.
- On any other error, it calls the handler with `(None, error)` and then
  waits `error_interval` seconds, 30 s by default.

`subscribe` runs until it is cancelled.

## Commits

A fresh context commits the task as `COMPLETED` and carries the task's
nonce. The commit is applied at most once. A context with no client raises
`RuntimeError` on commit.

All setters return the context, so calls can be chained:

- `set_nonce`, `set_topic`, `set_state`, `set_scheduled`, `set_payload` and
  `set_defer` set one field of the commit.
- `force()` clears the nonce.
- `abstain()` sets the state to `PENDING`.
- `archive()` sets the state to `ARCHIVED`.
- `reschedule(when)` is `abstain()` followed by `set_scheduled(when)`.
- `retry(duration)` is `abstain()` followed by `set_defer(duration)`.
- `reset()` discards every change.

`Commit.to_dict()` gives the JSON form and leaves out fields that are not set.

## Configuration

```python
from ratus.config import parse_config

config = parse_config(["-p", "8000", "--chore-interval", "3m"], environ={})
config.server.port            # 8000
config.chore.interval         # timedelta(minutes=3)
config.pagination.max_limit   # 100
```

| Option | Environment variable | Default |
| --- | --- | --- |
| `--engine` | `ENGINE` | `memdb` |
| `-p`, `--port` | `PORT` | `80` |
| `-b`, `--bind` | `BIND` | `0.0.0.0` |
| `--chore-interval` | `CHORE_INTERVAL` | `10s` |
| `--chore-initial-delay` | `CHORE_INITIAL_DELAY` | `0s` |
| `--chore-initial-random` | `CHORE_INITIAL_RANDOM` | false |
| `--pagination-max-limit` | `PAGINATION_MAX_LIMIT` | `100` |
| `--pagination-max-offset` | `PAGINATION_MAX_OFFSET` | `10000` |

Long options may also be written with a single dash, as in
`-chore-initial-delay 3500ms`. Arguments take precedence over the
environment, and the environment takes precedence over the defaults.

## Request handlers

Each controller is built around an engine object that you supply. The
engine provides async methods such as `ready`, `list_topics`, `get_task`,
`insert_task`, `commit`, `poll`, `insert_promise` and so on. Each handler
returns a `Response`, which has a `status`, a `body`, `headers`, and the
JSON-encoded `content` and `text`.

`send(value, error)` builds these responses:

- An error becomes `{"error": {"code": ..., "message": ...}}` with the
  status code of the error.
- Anything other than a `RatusError` is answered with 500 and logged.
- A result that reports created resources gets status 201.
- Any other result gets status 200.

Bare conflicts get an explanation added to their message:

- inserting a task: "a task with the same ID already exists"
- patching a task: "the task may have been modified by others"
- making a promise for a task: "the target task is not in pending state"

`PromiseController.post_promises` hands a promise that names a task over
to `post_promise`.

## What this package does not do

The package does not contain the following:

- a server or HTTP routing layer
- a storage engine
- a metrics endpoint
- any command to run

The controllers handle requests only once you have given them an engine
and connected them to a web framework of your choice. `parse_config` reads
settings, but nothing in the package starts a server or runs background
jobs with them.
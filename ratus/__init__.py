"""Async client, configuration and request handlers for a RESTful task queue."""

__version__ = "0.6.1"

__all__ = [
    "client",
    "config",
    "context",
    "controller",
    "promise_controller",
    "task_controller",
]
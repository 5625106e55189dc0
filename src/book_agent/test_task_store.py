"""Tests for the task model and in-memory store."""

import re

import pytest

from src.book_agent.task_store import (
    REDACTED,
    Task,
    TaskEvent,
    TaskState,
    TaskStatus,
    TaskStore,
    generate_task_id,
    task_timestamp_ms,
)
from src.book_agent.validation import parse_push_notification_config


def make_task(created_ms: int = 1_700_000_000_000) -> Task:
    return Task(
        id=generate_task_id(created_ms),
        session_id="session-1",
        status=TaskStatus(TaskState.WORKING),
    )


def test_task_id_embeds_timestamp():
    task_id = generate_task_id(1_700_000_000_123)

    assert re.match(r"^task_1700000000123_[a-z0-9]{9}$", task_id)
    assert task_timestamp_ms(task_id) == 1_700_000_000_123
    assert task_timestamp_ms("custom-id") is None


def test_task_ids_are_unique():
    assert len({generate_task_id(1) for _ in range(50)}) == 50


def test_crud():
    store = TaskStore()
    task = make_task()

    store.create_task(task)
    assert store.get_task(task.id) is task
    assert store.get_all_tasks() == [task]
    assert len(store) == 1

    task.status = TaskStatus(TaskState.COMPLETED)
    store.update_task(task.id, task)
    assert store.get_task(task.id).state == TaskState.COMPLETED

    assert store.delete_task(task.id) is True
    assert store.delete_task(task.id) is False
    assert store.get_task(task.id) is None


def test_duplicate_ids_rejected():
    store = TaskStore()
    task = make_task()
    store.create_task(task)

    with pytest.raises(ValueError):
        store.create_task(task)


def test_evict_older_than():
    store = TaskStore()
    old = make_task(created_ms=1_000_000)
    fresh = make_task(created_ms=1_000_000 + 50_000)
    store.create_task(old)
    store.create_task(fresh)

    evicted = store.evict_older_than(30, at_ms=1_000_000 + 60_000)

    assert evicted == 1
    assert store.get_task(old.id) is None
    assert store.get_task(fresh.id) is fresh


def test_transition_appends_one_history_record():
    task = make_task()
    task.record(TaskEvent.CREATED, {"searchQuery": "Emma"})

    task.transition(TaskState.CANCELED, None, TaskEvent.CANCELED, {"reason": "user_request"})

    assert task.is_terminal
    assert [entry.event for entry in task.history] == [TaskEvent.CREATED, TaskEvent.CANCELED]


def test_terminal_states_are_final():
    task = make_task()
    task.transition(TaskState.CANCELED, None, TaskEvent.CANCELED, {"reason": "user_request"})

    with pytest.raises(ValueError):
        task.transition(TaskState.COMPLETED, None, TaskEvent.COMPLETED)

    assert task.state == TaskState.CANCELED
    assert [entry.event for entry in task.history] == [TaskEvent.CANCELED]


def test_to_dict_uses_wire_names_and_redacts_secrets():
    task = make_task()
    task.record(TaskEvent.CREATED, {"searchQuery": "Emma"})
    task.push_notification_config = parse_push_notification_config({
        "url": "https://hooks.example.com/a2a",
        "authentication": {"type": "basic", "username": "bot", "password": "hunter2"},
    })

    rendered = task.to_dict()

    assert rendered["sessionId"] == "session-1"
    assert rendered["status"]["state"] == "working"
    assert rendered["history"][0]["event"] == "task_created"
    assert rendered["pushNotificationConfig"]["authentication"] == {
        "type": "basic",
        "username": "bot",
        "password": REDACTED,
    }
    assert "hunter2" not in str(rendered)


def test_age_from_id():
    task = make_task(created_ms=5_000)

    assert task.age_ms(at_ms=7_500) == 2_500

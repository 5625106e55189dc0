"""
task_store.py
A2A task model and the in-memory task store.

Task ids embed their creation time (task_<epoch-millis>_<suffix>), which is
used for age, processing time and TTL eviction.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from src.book_agent.validation import PushNotificationConfig

REDACTED = "********"
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class TaskState(str, Enum):
    WORKING = "working"
    COMPLETED = "completed"
    CANCELED = "canceled"


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.CANCELED})


class TaskEvent(str, Enum):
    """Events recorded in a task's history."""
    CREATED = "task_created"
    COMPLETED = "task_completed"
    CANCELED = "task_canceled"
    PUSH_CONFIG_SET = "push_notification_config_set"
    RESUBSCRIBED = "task_resubscribed"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_task_id(timestamp_ms: Optional[int] = None) -> str:
    timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"task_{timestamp_ms}_{suffix}"


def task_timestamp_ms(task_id: str) -> Optional[int]:
    """Creation time embedded in a task id, or None for foreign ids."""
    parts = task_id.split("_")
    if len(parts) >= 3 and parts[1].isdigit():
        return int(parts[1])
    return None


def text_message(role: str, text: str) -> Dict[str, Any]:
    return {"role": role, "parts": [{"kind": "text", "text": text}]}


def redact_push_config(config: Optional[PushNotificationConfig]) -> Optional[Dict[str, Any]]:
    """Render a push config with its secrets masked."""
    if config is None:
        return None
    rendered = config.model_dump(exclude_none=True)
    auth = rendered.get("authentication")
    if auth:
        for secret in ("token", "password"):
            if auth.get(secret):
                auth[secret] = REDACTED
    return rendered


@dataclass
class TaskStatus:
    state: TaskState
    timestamp: str = field(default_factory=utc_now_iso)
    message: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        status = {"state": self.state.value, "timestamp": self.timestamp}
        if self.message is not None:
            status["message"] = self.message
        return status


@dataclass
class HistoryRecord:
    event: TaskEvent
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "event": self.event.value, "data": self.data}


@dataclass
class Artifact:
    type: str
    name: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "name": self.name, "data": self.data, "timestamp": self.timestamp}


@dataclass
class Task:
    """A unit of work tracked by the A2A handler."""
    id: str
    session_id: str
    status: TaskStatus
    artifacts: List[Artifact] = field(default_factory=list)
    history: List[HistoryRecord] = field(default_factory=list)
    push_notification_config: Optional[PushNotificationConfig] = None

    @property
    def state(self) -> TaskState:
        return self.status.state

    @property
    def is_terminal(self) -> bool:
        return self.status.state in TERMINAL_STATES

    def age_ms(self, at_ms: Optional[int] = None) -> Optional[int]:
        created = task_timestamp_ms(self.id)
        if created is None:
            return None
        return (now_ms() if at_ms is None else at_ms) - created

    def record(self, event: TaskEvent, data: Optional[Dict[str, Any]] = None) -> HistoryRecord:
        entry = HistoryRecord(event, data or {})
        self.history.append(entry)
        return entry

    def transition(
        self,
        state: TaskState,
        message: Optional[Dict[str, Any]],
        event: TaskEvent,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Set a new status and append the matching history record.

        Raises:
            ValueError: If the task is already completed or canceled
        """
        if self.is_terminal:
            raise ValueError(f"Task {self.id} is already {self.state.value}")
        self.status = TaskStatus(state, message=message)
        self.record(event, data)

    def to_dict(self) -> Dict[str, Any]:
        task = {
            "id": self.id,
            "sessionId": self.session_id,
            "status": self.status.to_dict(),
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "history": [entry.to_dict() for entry in self.history],
        }
        if self.push_notification_config is not None:
            task["pushNotificationConfig"] = redact_push_config(self.push_notification_config)
        return task


class TaskStore:
    """
    In-memory task storage keyed by task id.

    Lives as long as the object that owns it. Not synchronized: callers run
    on a single event loop.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._tasks: Dict[str, Task] = {}
        self._logger = logger or logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._tasks)

    def create_task(self, task: Task) -> None:
        if task.id in self._tasks:
            raise ValueError(f"Task already exists: {task.id}")
        self._tasks[task.id] = task
        self._logger.info(f"Task created: {task.id}", extra={"task_id": task.id, "session_id": task.session_id})

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        self._logger.debug(f"Retrieved task: {task_id} (found={task is not None})")
        return task

    def update_task(self, task_id: str, task: Task) -> None:
        self._tasks[task_id] = task
        self._logger.info(f"Task updated: {task_id} -> {task.state.value}")

    def get_all_tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def delete_task(self, task_id: str) -> bool:
        deleted = self._tasks.pop(task_id, None) is not None
        if deleted:
            self._logger.info(f"Task deleted: {task_id}")
        return deleted

    def evict_older_than(self, ttl_seconds: float, at_ms: Optional[int] = None) -> int:
        """Delete tasks created more than `ttl_seconds` ago. Returns the count."""
        at_ms = now_ms() if at_ms is None else at_ms
        cutoff = at_ms - int(ttl_seconds * 1000)
        expired = [
            task_id for task_id in self._tasks
            if (task_timestamp_ms(task_id) or at_ms) < cutoff
        ]
        for task_id in expired:
            del self._tasks[task_id]
        if expired:
            self._logger.info(f"Evicted {len(expired)} tasks older than {ttl_seconds}s")
        return len(expired)

import threading
import time
from typing import Any


_lock = threading.Lock()
_tasks: dict[str, dict[str, Any]] = {}


def create_task(*, task_id: str, kind: str, entity_id: int, owner_id: int) -> None:
    """Register a background task. `kind` is "job" or "student"; `entity_id` is the id it runs for."""
    now = time.time()
    with _lock:
        _tasks[task_id] = {
            "task_id": task_id,
            "kind": str(kind),
            "entity_id": int(entity_id),
            "owner_id": int(owner_id),
            "status": "queued",  # queued|running|done|error
            "percent": 0,
            "message": "Queued",
            "result": None,
            "error": None,
            "created_at": now,
            "updated_at": now,
        }


def update_task(*, task_id: str, percent: int | None = None, message: str | None = None) -> None:
    now = time.time()
    with _lock:
        t = _tasks.get(task_id)
        if not t or t.get("status") not in {"queued", "running"}:
            return
        t["status"] = "running"
        if percent is not None:
            t["percent"] = max(0, min(99, int(percent)))
        if message is not None:
            t["message"] = str(message)
        t["updated_at"] = now


def complete_task(*, task_id: str, result: Any) -> None:
    now = time.time()
    with _lock:
        t = _tasks.get(task_id)
        if not t:
            return
        t["status"] = "done"
        t["percent"] = 100
        t["message"] = "Done"
        t["result"] = result
        t["error"] = None
        t["updated_at"] = now


def fail_task(*, task_id: str, error_message: str) -> None:
    now = time.time()
    with _lock:
        t = _tasks.get(task_id)
        if not t:
            return
        t["status"] = "error"
        t["error"] = str(error_message or "Failed")
        t["message"] = t["error"]
        t["percent"] = min(99, int(t.get("percent") or 0))
        t["updated_at"] = now


def get_task(*, task_id: str) -> dict[str, Any] | None:
    with _lock:
        t = _tasks.get(task_id)
        return dict(t) if t else None


def public_view(task: dict[str, Any]) -> dict[str, Any]:
    return {
        "task_id": task.get("task_id"),
        "kind": task.get("kind"),
        "entity_id": task.get("entity_id"),
        "status": task.get("status"),
        "percent": int(task.get("percent") or 0),
        "message": task.get("message") or "",
        "result": task.get("result"),
        "error": task.get("error"),
        "updated_at": task.get("updated_at"),
    }

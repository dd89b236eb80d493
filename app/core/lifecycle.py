# app/core/lifecycle.py
"""
Жизненный цикл задачи: правила согласования status / completed_at / is_archived / archived_at,
нормализация тегов, агрегация time-логов и вычисляемые представления (overdue, completed, progress).

Модуль не зависит от хранилища: всё работает на простых значениях и dict-ах,
поэтому одни и те же функции вызываются и из ORM-хуков (полное сохранение),
и из частичного обновления (crud.task.update_task).
"""
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional

from app.core.exceptions import TaskValidationError

# === ПЕРЕЧИСЛЕНИЯ ===

STATUS_BACKLOG = "backlog"
STATUS_TODO = "todo"
STATUS_IN_PROGRESS = "in_progress"
STATUS_BLOCKED = "blocked"
STATUS_DONE = "done"
STATUS_CANCELED = "canceled"
STATUS_ARCHIVED = "archived"

TASK_STATUSES = (
    STATUS_BACKLOG, STATUS_TODO, STATUS_IN_PROGRESS, STATUS_BLOCKED,
    STATUS_DONE, STATUS_CANCELED, STATUS_ARCHIVED,
)
ACTIVE_STATUSES = (STATUS_BACKLOG, STATUS_TODO, STATUS_IN_PROGRESS, STATUS_BLOCKED)
CLOSED_STATUSES = (STATUS_DONE, STATUS_CANCELED, STATUS_ARCHIVED)

# Порядок объявления = порядок сортировки (low < urgent)
PRIORITIES = ("low", "medium", "high", "urgent")
VISIBILITIES = ("private", "team", "public")
RECURRENCE_FREQUENCIES = ("daily", "weekly", "monthly", "yearly")

DEFAULT_STATUS = STATUS_TODO
DEFAULT_PRIORITY = "medium"
DEFAULT_VISIBILITY = "private"

# total_time_seconds хранится в BIGINT
MAX_TIME_SECONDS = 2 ** 63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    SQLite отдаёт naive datetime даже для DateTime(timezone=True) — считаем такие значения UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# === ПРАВИЛА ДЕРИВАЦИИ СТАТУСА ===

@dataclass(frozen=True)
class LifecycleState:
    """Производные от status поля задачи."""
    completed_at: Optional[datetime] = None
    is_archived: bool = False
    archived_at: Optional[datetime] = None


def derive_status_fields(status: Optional[str], state: LifecycleState, now: Optional[datetime] = None) -> LifecycleState:
    """
    Единая чистая функция (текущее состояние, целевой status) -> новые производные поля.

    Порядок правил фиксирован, правила независимы:
      1. archived  -> is_archived=True, archived_at=now только если ещё не задан.
      2. done      -> completed_at=now только если ещё не задан.
      3. не done   -> completed_at сбрасывается.
    Выход из архива в активный статус (backlog/todo/in_progress/blocked) снимает
    is_archived и archived_at; переход в done/canceled архивные флаги сохраняет.
    """
    status = status or DEFAULT_STATUS
    now = now or utcnow()
    completed_at = state.completed_at
    is_archived = bool(state.is_archived)
    archived_at = state.archived_at

    if status == STATUS_ARCHIVED:
        is_archived = True
        if archived_at is None:
            archived_at = now

    if status == STATUS_DONE:
        if completed_at is None:
            completed_at = now
    else:
        completed_at = None

    if status in ACTIVE_STATUSES and is_archived:
        is_archived = False
        archived_at = None

    return replace(state, completed_at=completed_at, is_archived=is_archived, archived_at=archived_at)


# === ТЕГИ ===

def normalize_tags(tags: Optional[Iterable[Any]]) -> List[str]:
    """
    trim + lowercase, пустые выбрасываются, повторы схлопываются с сохранением
    порядка первого вхождения.
    """
    if tags is None:
        return []
    if isinstance(tags, str) or not isinstance(tags, (list, tuple, set)):
        raise TaskValidationError("Tags must be a list of strings.")
    result: List[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            raise TaskValidationError("Tags must be a list of strings.")
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


# === ВАЛИДАЦИЯ ПЕРЕЧИСЛЕНИЙ ===

def _validate_choice(value: Any, choices: tuple, field: str) -> str:
    if not isinstance(value, str) or value not in choices:
        raise TaskValidationError(
            f"Invalid {field} '{value}'. Allowed: {', '.join(choices)}.",
            error=f"invalid_{field}",
        )
    return value


def validate_status(value: Any) -> str:
    return _validate_choice(value, TASK_STATUSES, "status")


def validate_priority(value: Any) -> str:
    return _validate_choice(value, PRIORITIES, "priority")


def validate_visibility(value: Any) -> str:
    return _validate_choice(value, VISIBILITIES, "visibility")


def validate_title(value: Any) -> str:
    title = value.strip() if isinstance(value, str) else ""
    if not title:
        raise TaskValidationError("Title is required.", error="invalid_title")
    return title


def validate_recurrence(rule: Optional[dict]) -> Optional[dict]:
    """
    Проверяет форму правила повторения. Экземпляры задач по правилу не создаются.
    """
    if rule is None:
        return None
    if not isinstance(rule, dict):
        raise TaskValidationError("Recurrence must be an object.")
    rule = dict(rule)
    frequency = rule.get("frequency")
    if frequency is not None and frequency not in RECURRENCE_FREQUENCIES:
        raise TaskValidationError(f"Invalid recurrence frequency '{frequency}'.")
    interval = rule.get("interval", 1)
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise TaskValidationError("Recurrence interval must be an integer >= 1.")
    rule["interval"] = interval
    weekdays = rule.get("by_weekday") or []
    if any(isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6 for d in weekdays):
        raise TaskValidationError("Recurrence weekdays must be integers 0-6.")
    rule["by_weekday"] = sorted(set(weekdays))
    month_days = rule.get("by_month_day") or []
    if any(isinstance(d, bool) or not isinstance(d, int) or not 1 <= d <= 31 for d in month_days):
        raise TaskValidationError("Recurrence month days must be integers 1-31.")
    rule["by_month_day"] = sorted(set(month_days))
    count = rule.get("count")
    if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count < 1):
        raise TaskValidationError("Recurrence count must be a positive integer.")
    rule.setdefault("enabled", False)
    rule.setdefault("is_series_master", False)
    return rule


# === TIME TRACKING ===

def time_log_contribution(
    started_at: Optional[datetime],
    ended_at: Optional[datetime],
    seconds: Any = None,
) -> int:
    """
    Вклад одной записи в total_time_seconds:
    явные seconds > разница ended_at - started_at > 0 (открытый интервал).
    Вклад больше MAX_TIME_SECONDS (или inf / nan) — ошибка валидации.
    """
    if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
        if (isinstance(seconds, float) and not math.isfinite(seconds)) or seconds > MAX_TIME_SECONDS:
            raise TaskValidationError(
                f"Seconds must be a finite number up to {MAX_TIME_SECONDS}.",
                error="invalid_seconds",
            )
        return int(math.floor(max(0, seconds)))
    if started_at is not None and ended_at is not None:
        delta = (as_utc(ended_at) - as_utc(started_at)).total_seconds()
        return max(0, int(math.floor(delta)))
    return 0


# === ВЫЧИСЛЯЕМЫЕ ПРЕДСТАВЛЕНИЯ ===

def is_overdue(due_date: Optional[datetime], status: Optional[str], now: Optional[datetime] = None) -> bool:
    if due_date is None or status in CLOSED_STATUSES:
        return False
    return as_utc(due_date) < as_utc(now or utcnow())


def is_completed(status: Optional[str], completed_at: Optional[datetime]) -> bool:
    return status == STATUS_DONE or completed_at is not None


def _item_value(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def subtask_progress(subtasks: Optional[Iterable[Any]]) -> dict:
    """
    {total, done, progress}; progress округляется half-up, при total == 0 — 0.
    """
    items = list(subtasks or [])
    total = len(items)
    done = sum(1 for item in items if _item_value(item, "completed"))
    if total == 0:
        return {"total": 0, "done": 0, "progress": 0}
    percent = (Decimal(done) * 100 / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return {"total": total, "done": done, "progress": int(percent)}

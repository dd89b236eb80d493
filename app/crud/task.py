#app/crud/task.py
import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import String as SQLString, case, cast, update
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.models.task import Task, prepare_partial_update
from app.core.exceptions import (
    PersistenceError,
    SubtaskNotFound,
    TaskNotFound,
    TaskValidationError,
)
from app.core.lifecycle import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DEFAULT_VISIBILITY,
    MAX_TIME_SECONDS,
    PRIORITIES,
    as_utc,
    normalize_tags,
    time_log_contribution,
    utcnow,
    validate_priority,
    validate_recurrence,
    validate_status,
    validate_title,
    validate_visibility,
)
import logging

logger = logging.getLogger("TaskFlow.Tasks")

# Поля, которые можно менять через create/update (остальное — только через отдельные операции)
EDITABLE_FIELDS = (
    "title", "description", "status", "priority", "visibility",
    "start_date", "due_date", "tags", "assignees", "watchers", "blocked_by",
    "recurrence", "subtasks", "reminders", "custom_fields",
)

# === ВСПОМОГАТЕЛЬНОЕ ===

def _new_id() -> str:
    return uuid.uuid4().hex

def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value is not None else None

def _parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """
    Принимает datetime или ISO-строку, возвращает aware datetime в UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        try:
            return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise TaskValidationError(f"Invalid {field} format. Use ISO 8601.", error=f"invalid_{field}")

def _validate_id_list(value: Any, field: str) -> List[int]:
    if value is None:
        return []
    if not isinstance(value, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise TaskValidationError(f"{field} must be a list of integer ids.", error=f"invalid_{field}")
    return list(value)

def _tag_pattern(tag: Any) -> str:
    """
    LIKE-шаблон для поиска тега в JSON-тексте колонки tags: ищем элемент целиком,
    в кавычках, с экранированием % и _.
    """
    element = json.dumps(str(tag).strip().lower(), ensure_ascii=False)
    for char in ("\\", "%", "_"):
        element = element.replace(char, "\\" + char)
    return f"%{element}%"

def _activity_entry(actor_id: Optional[int], action: str, details: dict = None, now: datetime = None) -> dict:
    return {
        "id": _new_id(),
        "actor_id": actor_id,
        "action": action,
        "details": details or {},
        "at": _iso(now or utcnow()),
    }

def _build_subtask(data: dict, order: int, now: datetime) -> dict:
    if not isinstance(data, dict):
        raise TaskValidationError("Subtask must be an object.")
    title = (data.get("title") or "").strip() if isinstance(data.get("title"), str) else ""
    if not title:
        raise TaskValidationError("Subtask title is required.", error="invalid_subtask_title")
    explicit_order = data.get("order")
    return {
        "id": _new_id(),
        "title": title,
        "completed": bool(data.get("completed", False)),
        "assignees": _validate_id_list(data.get("assignees"), "assignees"),
        "due_date": _iso(_parse_datetime(data.get("due_date"), "due_date")),
        "order": explicit_order if isinstance(explicit_order, int) else order,
        "created_at": _iso(now),
        "updated_at": _iso(now),
    }

def _build_reminder(data: dict) -> dict:
    if not isinstance(data, dict):
        raise TaskValidationError("Reminder must be an object.")
    remind_at = _parse_datetime(data.get("remind_at"), "remind_at")
    if remind_at is None:
        raise TaskValidationError("Reminder time is required.", error="invalid_remind_at")
    return {
        "id": _new_id(),
        "remind_at": _iso(remind_at),
        "channel": data.get("channel") or "in_app",
        "sent": False,
    }

def _build_recurrence(rule: Any) -> Optional[dict]:
    rule = validate_recurrence(rule)
    if rule is not None and rule.get("until") is not None:
        rule["until"] = _iso(_parse_datetime(rule["until"], "until"))
    return rule

# === ВАЛИДАЦИЯ ===

def validate_task_payload(data: dict, partial: bool = False) -> Dict[str, Any]:
    """
    Валидирует и нормализует payload задачи (обычный dict, без БД).
    partial=False — создание: подставляются значения по умолчанию, title обязателен.
    partial=True  — обновление: возвращаются только присланные поля.
    """
    if not isinstance(data, dict):
        raise TaskValidationError("Task payload must be an object.")
    unknown = set(data) - set(EDITABLE_FIELDS)
    if unknown:
        raise TaskValidationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}.", error="unknown_fields")

    values: Dict[str, Any] = {}
    now = utcnow()

    if not partial or "title" in data:
        values["title"] = validate_title(data.get("title"))
    if "description" in data:
        values["description"] = (data["description"] or "").strip()
    elif not partial:
        values["description"] = ""

    for field, validator, default in (
        ("status", validate_status, DEFAULT_STATUS),
        ("priority", validate_priority, DEFAULT_PRIORITY),
        ("visibility", validate_visibility, DEFAULT_VISIBILITY),
    ):
        if data.get(field) is not None:
            values[field] = validator(data[field])
        elif not partial:
            values[field] = default

    for field in ("start_date", "due_date"):
        if field in data:
            values[field] = _parse_datetime(data[field], field)
    start_date, due_date = values.get("start_date"), values.get("due_date")
    if start_date and due_date and due_date < start_date:
        raise TaskValidationError("Due date cannot be before start date.", error="invalid_due_date")

    if "tags" in data or not partial:
        values["tags"] = normalize_tags(data.get("tags"))
    for field in ("assignees", "watchers", "blocked_by"):
        if field in data or not partial:
            values[field] = _validate_id_list(data.get(field), field)

    if "recurrence" in data:
        values["recurrence"] = _build_recurrence(data["recurrence"])
    if "subtasks" in data or not partial:
        subtasks = data.get("subtasks") or []
        if not isinstance(subtasks, list):
            raise TaskValidationError("Subtasks must be a list.")
        values["subtasks"] = [_build_subtask(s, i, now) for i, s in enumerate(subtasks)]
    if "reminders" in data or not partial:
        reminders = data.get("reminders") or []
        if not isinstance(reminders, list):
            raise TaskValidationError("Reminders must be a list.")
        values["reminders"] = [_build_reminder(r) for r in reminders]

    if "custom_fields" in data or not partial:
        custom_fields = data.get("custom_fields")
        if custom_fields is None:
            custom_fields = {}
        if not isinstance(custom_fields, dict):
            raise TaskValidationError("Custom fields must be a dictionary (JSON object).")
        values["custom_fields"] = custom_fields

    return values

# === CRUD ===

def save_task(db: Session, task: Task) -> Task:
    """
    Полное сохранение объекта через ORM. Правила деривации применяются
    mapper-хуками before_insert / before_update (app.models.task).
    """
    db.add(task)
    try:
        db.commit()
        db.refresh(task)
        return task
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save task {task.id}: {e}")
        raise PersistenceError("Database error while saving task.", error=str(e))

def create_task(db: Session, owner_id: int, data: dict) -> Task:
    """
    Создать новую задачу для владельца.
    """
    if owner_id is None:
        raise TaskValidationError("Owner is required.", error="invalid_owner")
    values = validate_task_payload(data)
    task = Task(owner_id=owner_id, **values)
    task.activity = [_activity_entry(owner_id, "created", {"status": values["status"]})]
    task = save_task(db, task)
    logger.info(f"Created task {task.id} for owner {owner_id}")
    return task

def get_task(db: Session, task_id: int, owner_id: Optional[int] = None) -> Task:
    """
    Получить задачу по ID; если передан owner_id — только задачу этого владельца.
    """
    query = db.query(Task).filter(Task.id == task_id)
    if owner_id is not None:
        query = query.filter(Task.owner_id == owner_id)
    task = query.first()
    if not task:
        raise TaskNotFound(f"Task {task_id} not found.")
    return task

def get_all_tasks(db: Session, owner_id: int, filters: dict = None) -> List[Task]:
    """
    Задачи владельца с фильтрами status / priority / due_before / due_after / tag.
    Сортировка: due_date по возрастанию (пустые в конце), затем priority по убыванию.
    """
    filters = {k: v for k, v in (filters or {}).items() if v is not None}
    query = db.query(Task).filter(Task.owner_id == owner_id)

    if "status" in filters:
        query = query.filter(Task.status == validate_status(filters["status"]))
    if "priority" in filters:
        query = query.filter(Task.priority == validate_priority(filters["priority"]))
    if "due_before" in filters:
        query = query.filter(Task.due_date <= _parse_datetime(filters["due_before"], "due_before"))
    if "due_after" in filters:
        query = query.filter(Task.due_date >= _parse_datetime(filters["due_after"], "due_after"))
    if "tag" in filters:
        query = query.filter(cast(Task.tags, SQLString).like(_tag_pattern(filters["tag"]), escape="\\"))

    priority_rank = case(
        {name: rank for rank, name in enumerate(PRIORITIES)},
        value=Task.priority,
        else_=-1,
    )
    query = query.order_by(Task.due_date.asc().nulls_last(), priority_rank.desc(), Task.id.asc())
    return query.all()

def replace_task(db: Session, task_id: int, owner_id: int, data: dict) -> Task:
    """
    Обновление через полное сохранение объекта (ORM flush + pre-save хуки).
    """
    task = get_task(db, task_id, owner_id)
    values = validate_task_payload(data, partial=True)
    previous_status = task.status
    for field, value in values.items():
        setattr(task, field, value)
    if "status" in values and values["status"] != previous_status:
        task.activity = [
            *(task.activity or []),
            _activity_entry(owner_id, "status_changed", {"from": previous_status, "to": values["status"]}),
        ]
    task = save_task(db, task)
    logger.info(f"Saved task {task.id} fields: {sorted(values)}")
    return task

def update_task(db: Session, task_id: int, owner_id: int, data: dict) -> Task:
    """
    Частичное обновление: SQL UPDATE только присланных полей.
    Перед записью payload проходит pre-update хук prepare_partial_update.
    """
    task = get_task(db, task_id, owner_id)
    values = validate_task_payload(data, partial=True)
    if not values:
        logger.info(f"Update called but no changes for task {task.id}")
        return task

    values = prepare_partial_update(task, values)
    if "status" in values and values["status"] != task.status:
        values["activity"] = [
            *(task.activity or []),
            _activity_entry(owner_id, "status_changed", {"from": task.status, "to": values["status"]}),
        ]

    stmt = (
        update(Task)
        .where(Task.id == task.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    try:
        db.execute(stmt)
        db.commit()
        db.refresh(task)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update task {task_id}: {e}")
        raise PersistenceError("Database error while updating task.", error=str(e))
    logger.info(f"Updated task {task.id} fields: {sorted(values)}")
    return task

def delete_task(db: Session, task_id: int, owner_id: int) -> None:
    """
    Удаляет задачу (hard delete, без каскадов).
    """
    task = get_task(db, task_id, owner_id)
    db.delete(task)
    try:
        db.commit()
        logger.info(f"Deleted task {task_id}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete task {task_id}: {e}")
        raise PersistenceError("Database error while deleting task.", error=str(e))

# === ВЛОЖЕННЫЕ КОЛЛЕКЦИИ ===

def add_time_log(db: Session, task_id: int, owner_id: int, user_id: int, data: dict) -> Task:
    """
    Добавляет запись учёта времени и увеличивает total_time_seconds на её вклад.
    Лог не пересчитывается целиком и не переупорядочивается.
    """
    task = get_task(db, task_id, owner_id)
    now = utcnow()
    started_at = _parse_datetime(data.get("started_at"), "started_at") or now
    ended_at = _parse_datetime(data.get("ended_at"), "ended_at")
    seconds = data.get("seconds")
    if seconds is not None and (isinstance(seconds, bool) or not isinstance(seconds, (int, float))):
        raise TaskValidationError("Seconds must be a number.", error="invalid_seconds")

    contribution = time_log_contribution(started_at, ended_at, seconds)
    if (task.total_time_seconds or 0) + contribution > MAX_TIME_SECONDS:
        raise TaskValidationError("Total tracked time exceeds the allowed maximum.", error="invalid_seconds")
    entry = {
        "id": _new_id(),
        "user_id": user_id,
        "started_at": _iso(started_at),
        "ended_at": _iso(ended_at),
        "seconds": seconds,
        "note": data.get("note"),
        "created_at": _iso(now),
    }
    task.time_logs = [*(task.time_logs or []), entry]
    task.total_time_seconds = (task.total_time_seconds or 0) + contribution
    task.activity = [
        *(task.activity or []),
        _activity_entry(user_id, "time_logged", {"time_log_id": entry["id"], "seconds": contribution}, now),
    ]
    task = save_task(db, task)
    logger.info(f"Logged {contribution}s on task {task.id} (total {task.total_time_seconds}s)")
    return task

def add_subtask(db: Session, task_id: int, owner_id: int, data: dict) -> Task:
    task = get_task(db, task_id, owner_id)
    now = utcnow()
    subtasks = list(task.subtasks or [])
    subtask = _build_subtask(data, len(subtasks), now)
    task.subtasks = [*subtasks, subtask]
    task.activity = [
        *(task.activity or []),
        _activity_entry(owner_id, "subtask_added", {"subtask_id": subtask["id"]}, now),
    ]
    return save_task(db, task)

def update_subtask(db: Session, task_id: int, owner_id: int, subtask_id: str, data: dict) -> Task:
    """
    Обновляет поля одной сабтаски (title, completed, assignees, due_date, order).
    """
    task = get_task(db, task_id, owner_id)
    now = utcnow()
    subtasks = []
    found = None
    for subtask in task.subtasks or []:
        if subtask.get("id") == subtask_id:
            found = dict(subtask)
            if data.get("title") is not None:
                title = data["title"].strip() if isinstance(data["title"], str) else ""
                if not title:
                    raise TaskValidationError("Subtask title is required.", error="invalid_subtask_title")
                found["title"] = title
            if data.get("completed") is not None:
                found["completed"] = bool(data["completed"])
            if data.get("assignees") is not None:
                found["assignees"] = _validate_id_list(data["assignees"], "assignees")
            if "due_date" in data:
                found["due_date"] = _iso(_parse_datetime(data["due_date"], "due_date"))
            if isinstance(data.get("order"), int):
                found["order"] = data["order"]
            found["updated_at"] = _iso(now)
            subtasks.append(found)
        else:
            subtasks.append(subtask)
    if found is None:
        raise SubtaskNotFound(f"Subtask {subtask_id} not found in task {task_id}.")
    task.subtasks = subtasks
    task.activity = [
        *(task.activity or []),
        _activity_entry(owner_id, "subtask_updated", {"subtask_id": subtask_id, "completed": found["completed"]}, now),
    ]
    return save_task(db, task)

def add_comment(db: Session, task_id: int, owner_id: int, author_id: int, data: dict) -> Task:
    task = get_task(db, task_id, owner_id)
    body = (data.get("body") or "").strip() if isinstance(data.get("body"), str) else ""
    if not body:
        raise TaskValidationError("Comment body is required.", error="invalid_comment")
    now = utcnow()
    comment = {"id": _new_id(), "author_id": author_id, "body": body, "created_at": _iso(now)}
    task.comments = [*(task.comments or []), comment]
    task.activity = [
        *(task.activity or []),
        _activity_entry(author_id, "comment_added", {"comment_id": comment["id"]}, now),
    ]
    return save_task(db, task)

def add_attachment(db: Session, task_id: int, owner_id: int, uploader_id: int, data: dict) -> Task:
    task = get_task(db, task_id, owner_id)
    url = (data.get("url") or "").strip() if isinstance(data.get("url"), str) else ""
    if not url:
        raise TaskValidationError("Attachment url is required.", error="invalid_attachment")
    size = data.get("size")
    if size is not None and (isinstance(size, bool) or not isinstance(size, int) or size < 0):
        raise TaskValidationError("Attachment size must be a non-negative integer.", error="invalid_attachment")
    now = utcnow()
    attachment = {
        "id": _new_id(),
        "url": url,
        "name": data.get("name"),
        "type": data.get("type"),
        "size": size,
        "uploaded_by": uploader_id,
        "uploaded_at": _iso(now),
    }
    task.attachments = [*(task.attachments or []), attachment]
    task.activity = [
        *(task.activity or []),
        _activity_entry(uploader_id, "attachment_added", {"attachment_id": attachment["id"]}, now),
    ]
    return save_task(db, task)

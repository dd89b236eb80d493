#app/models/task.py
from datetime import datetime
from sqlalchemy import (
    BigInteger, Column, Integer, String, DateTime, ForeignKey, JSON, Boolean, Index, event, func
)
from app.models.base import Base
from app.core.lifecycle import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DEFAULT_VISIBILITY,
    LifecycleState,
    derive_status_fields,
    normalize_tags,
)

class Task(Base):
    """
    Task — задача пользователя. Сабтаски, комментарии, вложения, time-логи, активность
    и напоминания хранятся внутри задачи (JSON), отдельного жизненного цикла у них нет.
    """
    __tablename__ = "tasks"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    owner_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True, doc="ID владельца")
    title: str = Column(String(200), nullable=False, doc="Название задачи")
    description: str = Column(String(5000), default="", doc="Описание")
    status: str = Column(String(24), nullable=False, default=DEFAULT_STATUS, doc="Статус: backlog, todo, in_progress, blocked, done, canceled, archived")
    priority: str = Column(String(16), nullable=False, default=DEFAULT_PRIORITY, doc="Приоритет: low, medium, high, urgent")
    visibility: str = Column(String(16), nullable=False, default=DEFAULT_VISIBILITY, doc="Видимость: private, team, public")

    start_date: datetime = Column(DateTime(timezone=True), nullable=True, doc="Дата начала")
    due_date: datetime = Column(DateTime(timezone=True), nullable=True, doc="Дедлайн")
    completed_at: datetime = Column(DateTime(timezone=True), nullable=True, doc="Когда задача переведена в done")

    is_archived: bool = Column(Boolean, default=False, nullable=False, doc="В архиве")
    archived_at: datetime = Column(DateTime(timezone=True), nullable=True, doc="Когда задача впервые архивирована")

    recurrence: dict = Column(JSON, nullable=True, doc="Правило повторения (не разворачивается)")
    tags: list = Column(JSON, nullable=False, default=lambda: [], doc="Теги задачи")
    assignees: list = Column(JSON, nullable=False, default=lambda: [], doc="ID назначенных пользователей")
    watchers: list = Column(JSON, nullable=False, default=lambda: [], doc="ID наблюдателей")
    blocked_by: list = Column(JSON, nullable=False, default=lambda: [], doc="ID задач-блокеров")
    subtasks: list = Column(JSON, nullable=False, default=lambda: [], doc="Сабтаски")
    comments: list = Column(JSON, nullable=False, default=lambda: [], doc="Комментарии")
    attachments: list = Column(JSON, nullable=False, default=lambda: [], doc="Вложения")
    time_logs: list = Column(JSON, nullable=False, default=lambda: [], doc="Учёт времени")
    activity: list = Column(JSON, nullable=False, default=lambda: [], doc="Журнал активности")
    reminders: list = Column(JSON, nullable=False, default=lambda: [], doc="Напоминания")
    total_time_seconds: int = Column(BigInteger, nullable=False, default=0, doc="Накопленное время (сек)")
    custom_fields: dict = Column(JSON, nullable=False, default=lambda: {}, doc="Произвольные данные (без валидации)")

    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, doc="Дата создания")
    updated_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, doc="Дата изменения")

    __table_args__ = (
        Index("ix_tasks_due_date", "due_date"),
        Index("ix_tasks_status", "status"),
        Index("ix_tasks_priority", "priority"),
    )

    def lifecycle_state(self) -> LifecycleState:
        return LifecycleState(
            completed_at=self.completed_at,
            is_archived=bool(self.is_archived),
            archived_at=self.archived_at,
        )

    def __repr__(self):
        return (
            f"<Task(id={self.id}, title='{self.title}', status={self.status}, "
            f"owner_id={self.owner_id}, priority={self.priority}, due_date={self.due_date})>"
        )


# --- Pre-save хуки: полное сохранение объекта через ORM ---

def apply_save_rules(task: Task) -> None:
    """
    Прогоняет все правила деривации и нормализацию тегов над объектом перед записью.
    """
    if not task.status:
        task.status = DEFAULT_STATUS
    state = derive_status_fields(task.status, task.lifecycle_state())
    task.completed_at = state.completed_at
    task.is_archived = state.is_archived
    task.archived_at = state.archived_at
    task.tags = normalize_tags(task.tags)


@event.listens_for(Task, "before_insert")
def _task_before_insert(mapper, connection, target):
    apply_save_rules(target)


@event.listens_for(Task, "before_update")
def _task_before_update(mapper, connection, target):
    apply_save_rules(target)


# --- Pre-update хук: частичное обновление (SQL UPDATE без загрузки в ORM-flush) ---

def prepare_partial_update(task: Task, values: dict, now: datetime = None) -> dict:
    """
    Применяет к payload частичного обновления те же правила, что и apply_save_rules,
    используя текущие производные поля задачи. Правила статуса срабатывают только
    если status есть в payload.
    """
    values = dict(values)
    if "status" in values:
        state = derive_status_fields(values["status"], task.lifecycle_state(), now)
        values["completed_at"] = state.completed_at
        values["is_archived"] = state.is_archived
        values["archived_at"] = state.archived_at
    if "tags" in values:
        values["tags"] = normalize_tags(values["tags"])
    return values

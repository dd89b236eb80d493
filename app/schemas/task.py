#app/schemas/task.py
from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.core import lifecycle


# --- Вложенные сущности (create) ---

class RecurrenceRule(BaseModel):
    """
    RecurrenceRule — правило повторения задачи. Хранится как есть, экземпляры не создаются.
    """
    enabled: bool = Field(False, description="Повторение включено")
    frequency: Optional[str] = Field(None, examples=["weekly"], description="daily, weekly, monthly, yearly")
    interval: int = Field(1, examples=[1], description="Шаг повторения (>= 1)")
    by_weekday: List[int] = Field(default_factory=list, examples=[[0, 2, 4]], description="Дни недели 0-6 (пн = 0)")
    by_month_day: List[int] = Field(default_factory=list, description="Дни месяца 1-31")
    count: Optional[int] = Field(None, description="Максимум повторений")
    until: Optional[datetime] = Field(None, description="Дата окончания серии")
    series_id: Optional[str] = Field(None, description="ID серии")
    is_series_master: bool = Field(False, description="Задача — мастер серии")


class SubtaskCreate(BaseModel):
    title: str = Field(..., examples=["Write migration"], description="Название сабтаски")
    completed: bool = Field(False, description="Выполнена")
    assignees: List[int] = Field(default_factory=list, description="ID исполнителей")
    due_date: Optional[datetime] = Field(None, description="Дедлайн сабтаски")
    order: Optional[int] = Field(None, description="Порядок сортировки")


class SubtaskUpdate(BaseModel):
    title: Optional[str] = None
    completed: Optional[bool] = None
    assignees: Optional[List[int]] = None
    due_date: Optional[datetime] = None
    order: Optional[int] = None


class ReminderCreate(BaseModel):
    remind_at: datetime = Field(..., description="Когда напомнить")
    channel: str = Field("in_app", examples=["email"], description="Канал напоминания")


class CommentCreate(BaseModel):
    body: str = Field(..., examples=["Looks good to me"], description="Текст комментария")


class AttachmentCreate(BaseModel):
    """
    AttachmentCreate — файл или вложение для задачи.
    """
    url: str = Field(..., examples=["https://cdn.example.com/files/doc1.pdf"], description="Ссылка на файл")
    name: Optional[str] = Field(None, examples=["Design doc"], description="Имя файла")
    type: Optional[str] = Field(None, examples=["pdf"], description="Тип файла")
    size: Optional[int] = Field(None, examples=[102400], description="Размер в байтах")


class TimeLogCreate(BaseModel):
    """
    TimeLogCreate — запись учёта времени. seconds имеет приоритет над интервалом.
    """
    started_at: Optional[datetime] = Field(None, description="Начало (по умолчанию — сейчас)")
    ended_at: Optional[datetime] = Field(None, description="Окончание")
    seconds: Optional[float] = Field(None, examples=[90], description="Явная длительность в секундах")
    note: Optional[str] = Field(None, description="Комментарий к записи")


# --- Задача ---

class TaskCreate(BaseModel):
    """
    TaskCreate — создание задачи. Владелец берётся из токена.
    """
    title: str = Field(..., examples=["Prepare release notes"], description="Название задачи")
    description: Optional[str] = Field("", description="Описание задачи")
    status: Optional[str] = Field(None, examples=["todo"], description="backlog, todo, in_progress, blocked, done, canceled, archived")
    priority: Optional[str] = Field(None, examples=["medium"], description="low, medium, high, urgent")
    visibility: Optional[str] = Field(None, examples=["private"], description="private, team, public")
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list, description="Теги задачи")
    assignees: List[int] = Field(default_factory=list, description="ID исполнителей")
    watchers: List[int] = Field(default_factory=list, description="ID наблюдателей")
    blocked_by: List[int] = Field(default_factory=list, description="ID задач-блокеров")
    recurrence: Optional[RecurrenceRule] = None
    subtasks: List[SubtaskCreate] = Field(default_factory=list)
    reminders: List[ReminderCreate] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict, description="Произвольные данные, без валидации")


class TaskUpdate(BaseModel):
    """
    TaskUpdate — обновление задачи (все поля опциональны).
    """
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    visibility: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    assignees: Optional[List[int]] = None
    watchers: Optional[List[int]] = None
    blocked_by: Optional[List[int]] = None
    recurrence: Optional[RecurrenceRule] = None
    subtasks: Optional[List[SubtaskCreate]] = None
    reminders: Optional[List[ReminderCreate]] = None
    custom_fields: Optional[Dict[str, Any]] = None


# --- Read ---

class SubtaskRead(BaseModel):
    id: str
    title: str
    completed: bool = False
    assignees: List[int] = Field(default_factory=list)
    due_date: Optional[datetime] = None
    order: int = 0
    created_at: datetime
    updated_at: datetime


class CommentRead(BaseModel):
    id: str
    author_id: int
    body: str
    created_at: datetime


class AttachmentRead(BaseModel):
    id: str
    url: str
    name: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None
    uploaded_by: Optional[int] = None
    uploaded_at: datetime


class TimeLogRead(BaseModel):
    id: str
    user_id: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    seconds: Optional[float] = None
    note: Optional[str] = None
    created_at: datetime


class ActivityEntryRead(BaseModel):
    id: str
    actor_id: Optional[int] = None
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    at: datetime


class ReminderRead(BaseModel):
    id: str
    remind_at: datetime
    channel: str
    sent: bool = False


class SubtaskProgress(BaseModel):
    total: int
    done: int
    progress: int


class TaskRead(BaseModel):
    """
    TaskRead — полная схема задачи для ответа. is_overdue / is_completed / subtask_progress
    считаются при сериализации и в базе не хранятся.
    """
    id: int
    owner_id: int
    title: str
    description: Optional[str] = ""
    status: str
    priority: str
    visibility: str
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    recurrence: Optional[RecurrenceRule] = None
    tags: List[str] = Field(default_factory=list)
    assignees: List[int] = Field(default_factory=list)
    watchers: List[int] = Field(default_factory=list)
    blocked_by: List[int] = Field(default_factory=list)
    subtasks: List[SubtaskRead] = Field(default_factory=list)
    comments: List[CommentRead] = Field(default_factory=list)
    attachments: List[AttachmentRead] = Field(default_factory=list)
    time_logs: List[TimeLogRead] = Field(default_factory=list)
    activity: List[ActivityEntryRead] = Field(default_factory=list)
    reminders: List[ReminderRead] = Field(default_factory=list)
    total_time_seconds: int = 0
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def is_overdue(self) -> bool:
        return lifecycle.is_overdue(self.due_date, self.status)

    @computed_field
    @property
    def is_completed(self) -> bool:
        return lifecycle.is_completed(self.status, self.completed_at)

    @computed_field
    @property
    def subtask_progress(self) -> SubtaskProgress:
        return SubtaskProgress(**lifecycle.subtask_progress(self.subtasks))

#app/api/task.py
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from app.schemas.task import (
    AttachmentCreate,
    CommentCreate,
    SubtaskCreate,
    SubtaskUpdate,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TimeLogCreate,
)
from app.schemas.response import MessageResponse, TaskListResponse, TaskResponse
from app.crud.task import (
    add_attachment,
    add_comment,
    add_subtask,
    add_time_log,
    create_task,
    delete_task,
    get_all_tasks,
    get_task,
    replace_task,
    update_subtask,
    update_task,
)
from app.dependencies import get_db, get_current_active_user
from app.models.user import User as UserModel

logger = logging.getLogger("TaskFlow.TasksAPI")

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])

def _task_response(task) -> TaskResponse:
    return TaskResponse(task=TaskRead.model_validate(task))

@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_new_task(
    data: TaskCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Создать задачу. Владелец — текущий пользователь.
    """
    task = create_task(db, current_user.id, data.model_dump(mode="json"))
    return _task_response(task)

@router.get("", response_model=TaskListResponse)
def list_tasks(
    task_status: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    due_before: Optional[str] = Query(None),
    due_after: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Список задач текущего пользователя с фильтрами.
    """
    filters = {
        "status": task_status,
        "priority": priority,
        "due_before": due_before,
        "due_after": due_after,
        "tag": tag,
    }
    tasks = get_all_tasks(db, current_user.id, filters=filters)
    return TaskListResponse(tasks=[TaskRead.model_validate(t) for t in tasks])

@router.get("/{task_id}", response_model=TaskResponse)
def get_one_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    return _task_response(get_task(db, task_id, current_user.id))

@router.patch("/{task_id}", response_model=TaskResponse)
def update_one_task(
    task_id: int,
    data: TaskUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Частичное обновление (только присланные поля).
    """
    task = update_task(db, task_id, current_user.id, data.model_dump(mode="json", exclude_unset=True))
    return _task_response(task)

@router.put("/{task_id}", response_model=TaskResponse)
def save_one_task(
    task_id: int,
    data: TaskCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Сохранение задачи целиком через ORM (title обязателен).
    """
    task = replace_task(db, task_id, current_user.id, data.model_dump(mode="json", exclude_unset=True))
    return _task_response(task)

@router.delete("/{task_id}", response_model=MessageResponse)
def delete_one_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    delete_task(db, task_id, current_user.id)
    return MessageResponse(message="Task deleted successfully")

@router.post("/{task_id}/time-logs", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def log_time(
    task_id: int,
    data: TimeLogCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Добавить запись учёта времени (увеличивает total_time_seconds).
    """
    task = add_time_log(db, task_id, current_user.id, current_user.id, data.model_dump(mode="json", exclude_unset=True))
    return _task_response(task)

@router.post("/{task_id}/subtasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_subtask(
    task_id: int,
    data: SubtaskCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    task = add_subtask(db, task_id, current_user.id, data.model_dump(mode="json", exclude_unset=True))
    return _task_response(task)

@router.patch("/{task_id}/subtasks/{subtask_id}", response_model=TaskResponse)
def update_one_subtask(
    task_id: int,
    subtask_id: str,
    data: SubtaskUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    task = update_subtask(db, task_id, current_user.id, subtask_id, data.model_dump(mode="json", exclude_unset=True))
    return _task_response(task)

@router.post("/{task_id}/comments", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_comment(
    task_id: int,
    data: CommentCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    task = add_comment(db, task_id, current_user.id, current_user.id, data.model_dump())
    return _task_response(task)

@router.post("/{task_id}/attachments", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_attachment(
    task_id: int,
    data: AttachmentCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    task = add_attachment(db, task_id, current_user.id, current_user.id, data.model_dump())
    return _task_response(task)

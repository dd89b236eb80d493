import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session

from app.crud import task as crud_task
from app.core.exceptions import SubtaskNotFound, TaskNotFound, TaskValidationError
from app.core.lifecycle import MAX_TIME_SECONDS, as_utc
from app.models.task import Task as TaskModel


@pytest.fixture
def make_task(db: Session, test_user):
    def _make(**data):
        data.setdefault("title", "Write report")
        return crud_task.create_task(db, test_user.id, data)
    return _make


def _derived(task: TaskModel) -> tuple:
    return (task.completed_at is not None, task.is_archived, task.archived_at is not None)


# --- create ---

def test_create_task_defaults(make_task):
    task = make_task()
    assert task.id is not None
    assert task.status == "todo"
    assert task.priority == "medium"
    assert task.visibility == "private"
    assert task.completed_at is None
    assert task.is_archived is False
    assert task.total_time_seconds == 0
    assert task.activity[0]["action"] == "created"

def test_create_task_requires_title(db: Session, test_user):
    with pytest.raises(TaskValidationError, match="Title is required"):
        crud_task.create_task(db, test_user.id, {"title": "   "})

def test_create_task_requires_owner(db: Session):
    with pytest.raises(TaskValidationError, match="Owner is required"):
        crud_task.create_task(db, None, {"title": "Orphan"})

def test_create_task_rejects_unknown_status(db: Session, test_user):
    with pytest.raises(TaskValidationError, match="Invalid status"):
        crud_task.create_task(db, test_user.id, {"title": "Bad", "status": "finished"})

def test_create_task_rejects_read_only_fields(db: Session, test_user):
    with pytest.raises(TaskValidationError, match="completed_at"):
        crud_task.create_task(db, test_user.id, {"title": "Sneaky", "completed_at": "2026-01-01T00:00:00Z"})

def test_create_task_as_done_sets_completed_at(make_task):
    task = make_task(status="done")
    assert task.completed_at is not None

def test_create_task_as_archived_sets_archive_state(make_task):
    task = make_task(status="archived")
    assert task.is_archived is True
    assert task.archived_at is not None

def test_create_task_normalizes_tags(make_task):
    task = make_task(tags=["  Backend", "", "API ", "backend"])
    assert task.tags == ["backend", "api"]

def test_create_task_rejects_due_before_start(db: Session, test_user):
    with pytest.raises(TaskValidationError, match="Due date cannot be before start date"):
        crud_task.create_task(db, test_user.id, {
            "title": "Backwards",
            "start_date": "2026-05-10T00:00:00Z",
            "due_date": "2026-05-01T00:00:00Z",
        })

def test_create_task_with_nested_collections(make_task):
    task = make_task(
        subtasks=[{"title": "Draft"}, {"title": "Review", "completed": True}],
        reminders=[{"remind_at": "2026-05-01T09:00:00Z"}],
        recurrence={"enabled": True, "frequency": "monthly", "by_month_day": [15, 1]},
        custom_fields={"anything": {"goes": [1, 2]}},
    )
    assert [s["title"] for s in task.subtasks] == ["Draft", "Review"]
    assert [s["order"] for s in task.subtasks] == [0, 1]
    assert task.subtasks[0]["id"] != task.subtasks[1]["id"]
    assert task.reminders[0]["channel"] == "in_app"
    assert task.recurrence["by_month_day"] == [1, 15]
    assert task.custom_fields == {"anything": {"goes": [1, 2]}}

def test_create_task_rejects_non_dict_custom_fields(db: Session, test_user):
    with pytest.raises(TaskValidationError, match="Custom fields must be a dictionary"):
        crud_task.create_task(db, test_user.id, {"title": "X", "custom_fields": ["nope"]})


# --- get / delete ---

def test_get_task_filters_by_owner(db: Session, make_task, other_user):
    task = make_task()
    assert crud_task.get_task(db, task.id).id == task.id
    with pytest.raises(TaskNotFound):
        crud_task.get_task(db, task.id, owner_id=other_user.id)

def test_get_task_not_found(db: Session):
    with pytest.raises(TaskNotFound, match="Task 9999 not found"):
        crud_task.get_task(db, 9999)

def test_delete_task(db: Session, make_task, test_user):
    task = make_task()
    crud_task.delete_task(db, task.id, test_user.id)
    assert db.query(TaskModel).filter(TaskModel.id == task.id).first() is None

def test_delete_task_of_other_owner_is_not_found(db: Session, make_task, other_user):
    task = make_task()
    with pytest.raises(TaskNotFound):
        crud_task.delete_task(db, task.id, other_user.id)
    assert db.query(TaskModel).count() == 1


# --- partial update path ---

def test_partial_update_status_scenario(db: Session, make_task, test_user):
    task = make_task()
    assert task.status == "todo" and task.completed_at is None

    task = crud_task.update_task(db, task.id, test_user.id, {"status": "done"})
    assert task.completed_at is not None
    completed_at = task.completed_at

    task = crud_task.update_task(db, task.id, test_user.id, {"status": "done"})
    assert task.completed_at == completed_at

    task = crud_task.update_task(db, task.id, test_user.id, {"status": "in_progress"})
    assert task.completed_at is None

    task = crud_task.update_task(db, task.id, test_user.id, {"status": "archived"})
    assert task.is_archived is True
    archived_at = task.archived_at
    assert archived_at is not None

    task = crud_task.update_task(db, task.id, test_user.id, {"status": "archived"})
    assert task.archived_at == archived_at

def test_partial_update_without_status_keeps_derived_fields(db: Session, make_task, test_user):
    task = make_task(status="done")
    completed_at = task.completed_at
    task = crud_task.update_task(db, task.id, test_user.id, {"title": "Renamed", "priority": "high"})
    assert task.title == "Renamed"
    assert task.priority == "high"
    assert task.completed_at == completed_at

def test_partial_update_normalizes_tags(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.update_task(db, task.id, test_user.id, {"tags": [" Ops", "", "OPS", "infra"]})
    assert task.tags == ["ops", "infra"]

def test_partial_update_rejects_bad_priority(db: Session, make_task, test_user):
    task = make_task()
    with pytest.raises(TaskValidationError, match="Invalid priority"):
        crud_task.update_task(db, task.id, test_user.id, {"priority": "critical"})

def test_partial_update_records_status_activity(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.update_task(db, task.id, test_user.id, {"status": "blocked"})
    assert task.activity[-1]["action"] == "status_changed"
    assert task.activity[-1]["details"] == {"from": "todo", "to": "blocked"}

def test_partial_update_empty_payload_is_noop(db: Session, make_task, test_user):
    task = make_task()
    assert crud_task.update_task(db, task.id, test_user.id, {}).id == task.id


# --- full save path ---

def test_full_save_runs_derivation_rules(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.replace_task(db, task.id, test_user.id, {"title": task.title, "status": "done"})
    assert task.completed_at is not None
    task = crud_task.replace_task(db, task.id, test_user.id, {"title": task.title, "status": "todo"})
    assert task.completed_at is None

def test_full_save_clears_legacy_completed_at(db: Session, make_task):
    task = make_task()
    task.completed_at = datetime.now(timezone.utc)
    crud_task.save_task(db, task)
    assert task.completed_at is None

def test_full_save_normalizes_tags_set_directly(db: Session, make_task):
    task = make_task()
    task.tags = ["  Mixed Case ", " "]
    crud_task.save_task(db, task)
    assert task.tags == ["mixed case"]

STATUS_SEQUENCES = [
    ["done", "in_progress", "archived", "archived"],
    ["archived", "done", "todo"],
    ["done", "archived", "blocked", "done"],
    ["canceled", "archived", "backlog"],
]

@pytest.mark.parametrize("sequence", STATUS_SEQUENCES)
def test_full_save_and_partial_update_reach_same_state(db: Session, make_task, test_user, sequence):
    saved = make_task(title="via save")
    patched = make_task(title="via update")
    for status in sequence:
        saved = crud_task.replace_task(db, saved.id, test_user.id, {"title": "via save", "status": status})
        patched = crud_task.update_task(db, patched.id, test_user.id, {"status": status})
        assert saved.status == patched.status == status
        assert _derived(saved) == _derived(patched)
        assert (patched.completed_at is not None) == (status == "done")

def test_archived_at_is_not_moved_by_either_path(db: Session, make_task, test_user):
    task = make_task(status="archived")
    archived_at = task.archived_at
    task = crud_task.replace_task(db, task.id, test_user.id, {"title": task.title, "status": "archived"})
    assert task.archived_at == archived_at
    task = crud_task.update_task(db, task.id, test_user.id, {"status": "archived"})
    assert task.archived_at == archived_at


# --- time logs ---

def test_time_log_with_seconds(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {"seconds": 90})
    assert task.total_time_seconds == 90
    assert len(task.time_logs) == 1
    assert task.time_logs[0]["user_id"] == test_user.id

def test_time_log_with_interval(db: Session, make_task, test_user):
    task = make_task()
    start = datetime(2026, 4, 1, 10, 0, tzinfo=timezone.utc)
    task = crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {
        "started_at": start.isoformat(),
        "ended_at": (start + timedelta(seconds=125)).isoformat(),
    })
    assert task.total_time_seconds == 125

def test_time_log_negative_duration_adds_zero(db: Session, make_task, test_user):
    task = make_task()
    start = datetime(2026, 4, 1, 10, 0, tzinfo=timezone.utc)
    task = crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {
        "started_at": start.isoformat(),
        "ended_at": (start - timedelta(minutes=5)).isoformat(),
    })
    assert task.total_time_seconds == 0
    assert len(task.time_logs) == 1

def test_open_time_log_is_recorded_with_zero_contribution(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {})
    assert task.total_time_seconds == 0
    assert task.time_logs[0]["ended_at"] is None
    assert task.time_logs[0]["started_at"] is not None

def test_time_logs_accumulate_in_insertion_order(db: Session, make_task, test_user):
    task = make_task()
    for seconds in (60, 30, 60):
        task = crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {"seconds": seconds, "note": str(seconds)})
    assert task.total_time_seconds == 150
    assert [log["note"] for log in task.time_logs] == ["60", "30", "60"]
    assert task.activity[-1]["action"] == "time_logged"

def test_time_log_rejects_non_numeric_seconds(db: Session, make_task, test_user):
    task = make_task()
    with pytest.raises(TaskValidationError, match="Seconds must be a number"):
        crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {"seconds": "90"})

@pytest.mark.parametrize("seconds", [1e20, float("inf"), float("nan"), MAX_TIME_SECONDS + 1])
def test_time_log_rejects_out_of_range_seconds(db: Session, make_task, test_user, seconds):
    task = make_task()
    with pytest.raises(TaskValidationError) as exc:
        crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {"seconds": seconds})
    assert exc.value.error == "invalid_seconds"

    # сессия осталась рабочей, запись не добавилась
    task = crud_task.get_task(db, task.id, test_user.id)
    assert task.total_time_seconds == 0
    assert task.time_logs == []

def test_time_log_total_cannot_pass_maximum(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {"seconds": MAX_TIME_SECONDS})
    assert task.total_time_seconds == MAX_TIME_SECONDS
    with pytest.raises(TaskValidationError, match="Total tracked time exceeds"):
        crud_task.add_time_log(db, task.id, test_user.id, test_user.id, {"seconds": 1})
    assert crud_task.get_task(db, task.id).total_time_seconds == MAX_TIME_SECONDS


# --- subtasks / comments / attachments ---

def test_add_and_complete_subtask(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.add_subtask(db, task.id, test_user.id, {"title": "Step one"})
    task = crud_task.add_subtask(db, task.id, test_user.id, {"title": "Step two"})
    subtask_id = task.subtasks[0]["id"]
    task = crud_task.update_subtask(db, task.id, test_user.id, subtask_id, {"completed": True})
    assert task.subtasks[0]["completed"] is True
    assert task.subtasks[1]["completed"] is False
    assert task.subtasks[1]["order"] == 1

def test_update_missing_subtask(db: Session, make_task, test_user):
    task = make_task()
    with pytest.raises(SubtaskNotFound):
        crud_task.update_subtask(db, task.id, test_user.id, "nope", {"completed": True})

def test_add_comment_and_attachment(db: Session, make_task, test_user):
    task = make_task()
    task = crud_task.add_comment(db, task.id, test_user.id, test_user.id, {"body": " Looks good "})
    task = crud_task.add_attachment(db, task.id, test_user.id, test_user.id, {"url": "https://x.test/a.pdf", "size": 10})
    assert task.comments[0]["body"] == "Looks good"
    assert task.attachments[0]["uploaded_by"] == test_user.id
    assert [a["action"] for a in task.activity][-2:] == ["comment_added", "attachment_added"]

def test_add_comment_requires_body(db: Session, make_task, test_user):
    task = make_task()
    with pytest.raises(TaskValidationError, match="Comment body is required"):
        crud_task.add_comment(db, task.id, test_user.id, test_user.id, {"body": "  "})


# --- list / filters / sort ---

@pytest.fixture
def task_set(make_task):
    base = datetime(2026, 6, 1, tzinfo=timezone.utc)
    return [
        make_task(title="late low", due_date=(base + timedelta(days=5)).isoformat(), priority="low", tags=["ops"]),
        make_task(title="early high", due_date=(base + timedelta(days=1)).isoformat(), priority="high"),
        make_task(title="early urgent", due_date=(base + timedelta(days=1)).isoformat(), priority="urgent", tags=["ops"]),
        make_task(title="no due", priority="urgent", status="done"),
    ]

def test_list_sort_order(db: Session, test_user, task_set):
    titles = [t.title for t in crud_task.get_all_tasks(db, test_user.id)]
    assert titles == ["early urgent", "early high", "late low", "no due"]

def test_list_filters(db: Session, test_user, task_set):
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"status": "done"})] == ["no due"]
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"priority": "low"})] == ["late low"]
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"tag": "OPS"})] == ["early urgent", "late low"]
    before = crud_task.get_all_tasks(db, test_user.id, {"due_before": "2026-06-03T00:00:00Z"})
    assert {t.title for t in before} == {"early urgent", "early high"}
    after = crud_task.get_all_tasks(db, test_user.id, {"due_after": "2026-06-03T00:00:00Z"})
    assert [t.title for t in after] == ["late low"]

def test_tag_filter_matches_non_ascii_tags(db: Session, make_task, test_user):
    make_task(title="cafe", tags=["Café"])
    make_task(title="plain", tags=["cafe"])
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"tag": "café"})] == ["cafe"]
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"tag": "CAFÉ"})] == ["cafe"]

@pytest.mark.parametrize("tag, expected", [
    ("a_c", ["underscore"]),
    ("a%c", ["percent"]),
    ("a", []),
])
def test_tag_filter_treats_wildcards_literally(db: Session, make_task, test_user, tag, expected):
    make_task(title="plain", tags=["abc"])
    make_task(title="underscore", tags=["a_c"])
    make_task(title="percent", tags=["a%c"])
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"tag": tag})] == expected

def test_tag_filter_with_quotes_and_backslashes(db: Session, make_task, test_user):
    make_task(title="quoted", tags=['say "hi"'])
    make_task(title="path", tags=["c:\\tmp"])
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"tag": 'say "hi"'})] == ["quoted"]
    assert [t.title for t in crud_task.get_all_tasks(db, test_user.id, {"tag": "c:\\tmp"})] == ["path"]

def test_list_only_returns_own_tasks(db: Session, other_user, task_set):
    assert crud_task.get_all_tasks(db, other_user.id) == []

def test_list_rejects_bad_date_filter(db: Session, test_user):
    with pytest.raises(TaskValidationError, match="Invalid due_before format"):
        crud_task.get_all_tasks(db, test_user.id, {"due_before": "tomorrow"})

def test_due_dates_are_stored_in_utc(make_task):
    task = make_task(due_date="2026-06-01T12:00:00+02:00")
    assert as_utc(task.due_date) == datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)

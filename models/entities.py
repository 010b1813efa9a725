"""Records held in the live application state."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Union

from sqlmodel import Field, SQLModel


Timestamp = Union[datetime, str, None]


class Project(SQLModel):
    id: str
    name: str
    description: Optional[str] = None
    phase: str = "Planning"         # Planning / In Progress / On Hold / Completed / Ongoing
    priority: str = "Medium"        # High / Medium / Low
    timeline_type: str = "No Timeline"
    archived: bool = False
    created_at: Timestamp = None
    updated_at: Timestamp = None


class Task(SQLModel):
    id: str
    project_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    phase: str = "Planning"
    priority: str = "Medium"
    due_date: Optional[str] = None
    completed: bool = False
    created_at: Timestamp = None
    updated_at: Timestamp = None


class Note(SQLModel):
    id: str
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    created_at: Timestamp = None
    updated_at: Timestamp = None


class Resource(SQLModel):
    id: str
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    type: str = "URL"               # URL / File / Image
    url: Optional[str] = None
    file_path: Optional[str] = None
    created_at: Timestamp = None


class Reminder(SQLModel):
    id: str
    linked_entity_type: str = "Task"
    linked_entity_id: Optional[str] = None
    reminder_date: Optional[str] = None
    message: Optional[str] = None


__all__ = ["Note", "Project", "Reminder", "Resource", "Task"]

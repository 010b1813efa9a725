"""Mutation shapes carried by queued operations.

Every ``(entity type, kind)`` pair has exactly one payload class, so a queued
operation can always be routed without inspecting the payload's contents.
Create payloads describe a new record, update payloads carry the record id and
only the fields that change, delete payloads carry just the id.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Type, Union

from sqlmodel import SQLModel

from models.operation import EntityType, OperationKind


class MutationPayload(SQLModel):
    def to_data(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class DeletePayload(MutationPayload):
    id: str


class UpdatePayload(MutationPayload):
    id: str

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly set by the caller, without the id."""

        return self.model_dump(mode="json", exclude_unset=True, exclude={"id"})


# ----- projects -----
class ProjectCreate(MutationPayload):
    name: str
    description: Optional[str] = None
    phase: str = "Planning"
    priority: str = "Medium"
    timeline_type: str = "No Timeline"
    archived: bool = False


class ProjectUpdate(UpdatePayload):
    name: Optional[str] = None
    description: Optional[str] = None
    phase: Optional[str] = None
    priority: Optional[str] = None
    timeline_type: Optional[str] = None
    archived: Optional[bool] = None


class ProjectDelete(DeletePayload):
    pass


# ----- tasks -----
class TaskCreate(MutationPayload):
    name: str
    project_id: Optional[str] = None
    description: Optional[str] = None
    phase: str = "Planning"
    priority: str = "Medium"
    due_date: Optional[str] = None
    completed: bool = False


class TaskUpdate(UpdatePayload):
    name: Optional[str] = None
    project_id: Optional[str] = None
    description: Optional[str] = None
    phase: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = None
    completed: Optional[bool] = None


class TaskDelete(DeletePayload):
    pass


# ----- notes -----
class NoteCreate(MutationPayload):
    content: str
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    tags: List[str] = []


class NoteUpdate(UpdatePayload):
    content: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    tags: Optional[List[str]] = None


class NoteDelete(DeletePayload):
    pass


# ----- resources -----
class ResourceCreate(MutationPayload):
    type: str = "URL"
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None


class ResourceUpdate(UpdatePayload):
    type: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None


class ResourceDelete(DeletePayload):
    pass


# ----- reminders -----
class ReminderCreate(MutationPayload):
    linked_entity_type: str
    linked_entity_id: str
    reminder_date: str
    message: Optional[str] = None


class ReminderUpdate(UpdatePayload):
    linked_entity_type: Optional[str] = None
    linked_entity_id: Optional[str] = None
    reminder_date: Optional[str] = None
    message: Optional[str] = None


class ReminderDelete(DeletePayload):
    pass


PAYLOAD_TYPES: Dict[tuple, Type[MutationPayload]] = {
    (EntityType.PROJECT, OperationKind.CREATE): ProjectCreate,
    (EntityType.PROJECT, OperationKind.UPDATE): ProjectUpdate,
    (EntityType.PROJECT, OperationKind.DELETE): ProjectDelete,
    (EntityType.TASK, OperationKind.CREATE): TaskCreate,
    (EntityType.TASK, OperationKind.UPDATE): TaskUpdate,
    (EntityType.TASK, OperationKind.DELETE): TaskDelete,
    (EntityType.NOTE, OperationKind.CREATE): NoteCreate,
    (EntityType.NOTE, OperationKind.UPDATE): NoteUpdate,
    (EntityType.NOTE, OperationKind.DELETE): NoteDelete,
    (EntityType.RESOURCE, OperationKind.CREATE): ResourceCreate,
    (EntityType.RESOURCE, OperationKind.UPDATE): ResourceUpdate,
    (EntityType.RESOURCE, OperationKind.DELETE): ResourceDelete,
    (EntityType.REMINDER, OperationKind.CREATE): ReminderCreate,
    (EntityType.REMINDER, OperationKind.UPDATE): ReminderUpdate,
    (EntityType.REMINDER, OperationKind.DELETE): ReminderDelete,
}


def payload_class(entity_type: EntityType, kind: OperationKind) -> Type[MutationPayload]:
    try:
        return PAYLOAD_TYPES[(EntityType(entity_type), OperationKind(kind))]
    except KeyError:
        raise ValueError(f"Unsupported mutation: {kind} {entity_type}") from None


def parse_payload(
    entity_type: EntityType,
    kind: OperationKind,
    data: Union[MutationPayload, Mapping[str, Any]],
) -> MutationPayload:
    """Validate ``data`` into the payload class of ``(entity_type, kind)``.

    Raises ``ValueError`` when the data does not match (pydantic's
    ``ValidationError`` is a ``ValueError``).
    """

    cls = payload_class(entity_type, kind)
    if isinstance(data, cls):
        return data
    if isinstance(data, MutationPayload):
        raise ValueError(
            f"{type(data).__name__} is not a valid payload for {OperationKind(kind).value} "
            f"{EntityType(entity_type).value}"
        )
    if not isinstance(data, Mapping):
        raise ValueError(f"Payload must be a mapping, got {type(data).__name__}")
    return cls.model_validate(dict(data))


__all__ = [
    "DeletePayload",
    "MutationPayload",
    "NoteCreate",
    "NoteDelete",
    "NoteUpdate",
    "PAYLOAD_TYPES",
    "ProjectCreate",
    "ProjectDelete",
    "ProjectUpdate",
    "ReminderCreate",
    "ReminderDelete",
    "ReminderUpdate",
    "ResourceCreate",
    "ResourceDelete",
    "ResourceUpdate",
    "TaskCreate",
    "TaskDelete",
    "TaskUpdate",
    "UpdatePayload",
    "parse_payload",
    "payload_class",
]

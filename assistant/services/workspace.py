"""Personal workspace services: tasks, contacts and notes.

These are the collaborators behind the assistant's tools. The in-memory
implementations stand in for the hosted datastore.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar, Literal, Protocol

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

cuid = cuid_wrapper()

TaskStatus = Literal["pending", "in_progress", "completed", "cancelled"]
Priority = Literal["low", "medium", "high"]
RelationshipStatus = Literal["friend", "family", "colleague", "acquaintance", "other"]


def _now() -> datetime:
    return datetime.now(UTC)


class Task(BaseModel):
    """A to-do item."""

    id: str = Field(default_factory=lambda: f"task_{cuid()}")
    title: str
    description: str | None = None
    status: TaskStatus = "pending"
    due_date: str | None = None
    priority: Priority = "medium"
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Contact(BaseModel):
    """A person in the user's contact list."""

    id: str = Field(default_factory=lambda: f"contact_{cuid()}")
    first_name: str
    last_name: str
    nickname: str | None = None
    email: str | None = None
    phone: str | None = None
    birthday: str | None = None
    occupation: str | None = None
    company: str | None = None
    location: str | None = None
    linkedin: str | None = None
    twitter: str | None = None
    instagram: str | None = None
    relationship_status: RelationshipStatus | None = None
    met_at: str | None = None
    met_through: str | None = None
    bio: str | None = None
    interests: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    # Fields searched by free-text contact lookup
    SEARCH_FIELDS: ClassVar[tuple[str, ...]] = (
        "first_name",
        "last_name",
        "nickname",
        "company",
        "occupation",
        "location",
        "email",
        "bio",
    )

    def matches(self, term: str) -> bool:
        """Case-insensitive match of ``term`` against the searchable fields."""
        needle = term.lower().strip()
        full_name = f"{self.first_name} {self.last_name}".lower()
        if needle in full_name:
            return True
        return any(needle in (getattr(self, name) or "").lower() for name in self.SEARCH_FIELDS)


class Note(BaseModel):
    """A free-form note. High-priority active notes are shown to the model as context."""

    id: str = Field(default_factory=lambda: f"note_{cuid()}")
    title: str
    content: str
    priority: Priority = "medium"
    status: Literal["active", "archived"] = "active"
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class NoteService(Protocol):
    """Interface for note storage."""

    async def get_high_priority_notes(self) -> list[Note]:
        """Active high-priority notes, most recently updated first."""
        ...


class InMemoryTaskService:
    """Task storage kept in process memory."""

    def __init__(self):
        self.tasks: dict[str, Task] = {}

    async def create_task(self, **fields: Any) -> Task:
        task = Task(**{key: value for key, value in fields.items() if value is not None})
        self.tasks[task.id] = task
        return task

    async def update_task(self, task_id: str, **fields: Any) -> Task | None:
        """Apply the non-empty ``fields`` to a task. Returns None if the task doesn't exist."""
        task = self.tasks.get(task_id)
        if task is None:
            return None

        updates = {key: value for key, value in fields.items() if value is not None}
        updated = task.model_copy(update={**updates, "updated_at": _now()})
        self.tasks[task_id] = updated
        return updated

    async def get_tasks(self, task_id: str | None = None, status: TaskStatus | None = None) -> list[Task]:
        if task_id:
            task = self.tasks.get(task_id)
            return [task] if task else []
        return [task for task in self.tasks.values() if status is None or task.status == status]


class InMemoryContactService:
    """Contact storage kept in process memory."""

    def __init__(self):
        self.contacts: dict[str, Contact] = {}

    async def create_contact(self, **fields: Any) -> Contact:
        contact = Contact(**{key: value for key, value in fields.items() if value is not None})
        self.contacts[contact.id] = contact
        return contact

    async def update_contact(self, contact_id: str, **fields: Any) -> Contact | None:
        contact = self.contacts.get(contact_id)
        if contact is None:
            return None

        updates = {key: value for key, value in fields.items() if value is not None}
        updated = contact.model_copy(update={**updates, "updated_at": _now()})
        self.contacts[contact_id] = updated
        return updated

    async def get_contacts(
        self,
        contact_id: str | None = None,
        search_term: str | None = None,
        relationship_status: RelationshipStatus | None = None,
    ) -> list[Contact]:
        if contact_id:
            contact = self.contacts.get(contact_id)
            return [contact] if contact else []

        results = list(self.contacts.values())
        if search_term:
            results = [contact for contact in results if contact.matches(search_term)]
        if relationship_status:
            results = [contact for contact in results if contact.relationship_status == relationship_status]
        return results


class InMemoryNoteService:
    """Note storage kept in process memory."""

    def __init__(self, notes: list[Note] | None = None):
        self.notes: dict[str, Note] = {note.id: note for note in notes or []}

    async def create_note(self, title: str, content: str, priority: Priority = "medium") -> Note:
        note = Note(title=title, content=content, priority=priority)
        self.notes[note.id] = note
        return note

    async def get_notes(self, priority: Priority | None = None) -> list[Note]:
        notes = [note for note in self.notes.values() if note.status == "active"]
        if priority:
            notes = [note for note in notes if note.priority == priority]
        return sorted(notes, key=lambda note: note.updated_at, reverse=True)

    async def get_high_priority_notes(self) -> list[Note]:
        return await self.get_notes(priority="high")


@dataclass
class Workspace:
    """The set of services the assistant's tools act on."""

    tasks: InMemoryTaskService = field(default_factory=InMemoryTaskService)
    contacts: InMemoryContactService = field(default_factory=InMemoryContactService)
    notes: InMemoryNoteService = field(default_factory=InMemoryNoteService)


workspace = Workspace()

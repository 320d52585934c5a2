"""Note tools."""

from typing import Any

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from assistant.services.workspace import InMemoryNoteService, Priority


class CreateNoteInput(BaseModel):
    """Input schema for creating a note."""

    title: str = Field(..., min_length=1, max_length=200, description="Title of the note")
    content: str = Field(..., description="Body of the note")
    priority: Priority = Field(
        "medium",
        description="Priority of the note. High-priority notes are remembered in every conversation.",
    )


class GetNotesInput(BaseModel):
    """Input schema for listing notes."""

    priority: Priority | None = Field(None, description="Optional: Only return notes with this priority")


def create_create_note_tool(note_service: InMemoryNoteService):
    @tool("create_note", description="Save a note for the user", args_schema=CreateNoteInput)
    async def create_note_handler(title: str, content: str, priority: Priority = "medium") -> dict[str, Any]:
        note = await note_service.create_note(title=title, content=content, priority=priority)
        return {"note": note.model_dump(mode="json")}

    return create_note_handler


def create_get_notes_tool(note_service: InMemoryNoteService):
    @tool("get_notes", description="List the user's active notes, newest first", args_schema=GetNotesInput)
    async def get_notes_handler(priority: Priority | None = None) -> dict[str, Any]:
        notes = await note_service.get_notes(priority=priority)
        return {"notes": [note.model_dump(mode="json") for note in notes], "count": len(notes)}

    return get_notes_handler

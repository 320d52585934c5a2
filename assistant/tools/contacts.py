"""Contact tools."""

from typing import Any

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from assistant.services.workspace import InMemoryContactService, RelationshipStatus
from assistant.utils.errors import ToolExecutionError


class ContactFields(BaseModel):
    """Optional contact details shared by create and edit."""

    nickname: str | None = Field(None, description="Nickname of the contact")
    email: str | None = Field(None, description="Email address of the contact")
    phone: str | None = Field(None, description="Phone number of the contact")
    birthday: str | None = Field(
        None, pattern=r"^\d{4}-\d{2}-\d{2}$", description="Birthday of the contact in YYYY-MM-DD format"
    )
    occupation: str | None = Field(None, description="Occupation or job title of the contact")
    company: str | None = Field(None, description="Company or organization where the contact works")
    location: str | None = Field(None, description="Location or address of the contact")
    linkedin: str | None = Field(None, description="LinkedIn profile URL of the contact")
    twitter: str | None = Field(None, description="Twitter handle or profile URL of the contact")
    instagram: str | None = Field(None, description="Instagram handle or profile URL of the contact")
    relationship_status: RelationshipStatus | None = Field(None, description="Type of relationship with the contact")
    met_at: str | None = Field(None, description="Where the user met the contact")
    met_through: str | None = Field(None, description="Who introduced the user to the contact")
    bio: str | None = Field(None, description="Brief biography or description of the contact")
    interests: list[str] | None = Field(None, description="Interests or hobbies of the contact")
    tags: list[str] | None = Field(None, description="Tags to categorize the contact")
    notes: str | None = Field(None, description="Additional notes about the contact")


class CreateContactInput(ContactFields):
    """Input schema for creating a contact."""

    first_name: str = Field(..., min_length=1, description="First name of the contact")
    last_name: str = Field(..., min_length=1, description="Last name of the contact")


class EditContactInput(ContactFields):
    """Input schema for editing a contact."""

    contact_id: str = Field(..., min_length=1, description="ID of the contact to edit")
    first_name: str | None = Field(None, description="New first name of the contact")
    last_name: str | None = Field(None, description="New last name of the contact")


class GetContactsInput(BaseModel):
    """Input schema for searching contacts."""

    contact_id: str | None = Field(None, description="Optional: ID of a specific contact to retrieve")
    search_term: str | None = Field(
        None,
        description=(
            "Optional: Search term to find contacts. Can be a name, company, occupation, location, "
            "or any other identifying information, e.g. 'Dave', 'ABC Inc', 'engineer'."
        ),
    )
    relationship_status: RelationshipStatus | None = Field(
        None,
        description=(
            "Optional: Only use when explicitly filtering for a relationship type, "
            "e.g. 'Show me all my friends', but NOT for 'Who is Dave to me?'"
        ),
    )


def create_create_contact_tool(contact_service: InMemoryContactService):
    @tool(
        "create_contact",
        description="Create a new contact in the user's contact list",
        args_schema=CreateContactInput,
    )
    async def create_contact_handler(first_name: str, last_name: str, **details: Any) -> dict[str, Any]:
        contact = await contact_service.create_contact(first_name=first_name, last_name=last_name, **details)
        return {"contact": contact.model_dump(mode="json")}

    return create_contact_handler


def create_edit_contact_tool(contact_service: InMemoryContactService):
    @tool(
        "edit_contact",
        description="Update an existing contact's information. Only the fields provided are changed.",
        args_schema=EditContactInput,
    )
    async def edit_contact_handler(contact_id: str, **changes: Any) -> dict[str, Any]:
        contact = await contact_service.update_contact(contact_id, **changes)
        if contact is None:
            raise ToolExecutionError(f"Contact {contact_id} not found", "edit_contact")
        return {"contact": contact.model_dump(mode="json")}

    return edit_contact_handler


def create_get_contacts_tool(contact_service: InMemoryContactService):
    @tool(
        "get_contacts",
        description=(
            "Search and retrieve contacts from the user's contact list. The search looks across names, "
            "nicknames, companies, occupations, locations, emails, and bios."
        ),
        args_schema=GetContactsInput,
    )
    async def get_contacts_handler(
        contact_id: str | None = None,
        search_term: str | None = None,
        relationship_status: RelationshipStatus | None = None,
    ) -> dict[str, Any]:
        contacts = await contact_service.get_contacts(
            contact_id=contact_id,
            search_term=search_term,
            relationship_status=relationship_status,
        )
        return {"contacts": [contact.model_dump(mode="json") for contact in contacts], "count": len(contacts)}

    return get_contacts_handler

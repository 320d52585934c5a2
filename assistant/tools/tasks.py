"""Task tools: create, edit and look up tasks."""

from typing import Any

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from assistant.services.workspace import InMemoryTaskService, Priority, TaskStatus
from assistant.utils.errors import ToolExecutionError


class CreateTaskInput(BaseModel):
    """Input schema for creating a task."""

    title: str = Field(..., min_length=1, max_length=200, description="Title of the task")
    description: str | None = Field(None, description="Description of the task")
    status: TaskStatus | None = Field(None, description="Initial status of the task")
    due_date: str | None = Field(
        None, pattern=r"^\d{4}-\d{2}-\d{2}$", description="Due date in YYYY-MM-DD format"
    )
    priority: Priority | None = Field(None, description="Priority of the task")
    tags: list[str] | None = Field(None, description="Tags to categorize the task")


class EditTaskInput(BaseModel):
    """Input schema for editing a task."""

    task_id: str = Field(..., min_length=1, description="ID of the task to edit")
    title: str | None = Field(None, description="New title of the task")
    description: str | None = Field(None, description="New description of the task")
    status: TaskStatus | None = Field(None, description="New status of the task")


class GetTasksInput(BaseModel):
    """Input schema for retrieving tasks."""

    task_id: str | None = Field(None, description="Optional: ID of a specific task to retrieve")
    status: TaskStatus | None = Field(None, description="Optional: Filter tasks by status")


def create_create_task_tool(task_service: InMemoryTaskService):
    @tool(
        "create_task",
        description=(
            "Create a task in the user's task list. Only the title is required; "
            "due dates use YYYY-MM-DD format."
        ),
        args_schema=CreateTaskInput,
    )
    async def create_task_handler(
        title: str,
        description: str | None = None,
        status: TaskStatus | None = None,
        due_date: str | None = None,
        priority: Priority | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        task = await task_service.create_task(
            title=title,
            description=description,
            status=status,
            due_date=due_date,
            priority=priority,
            tags=tags,
        )
        return {"task": task.model_dump(mode="json")}

    return create_task_handler


def create_edit_task_tool(task_service: InMemoryTaskService):
    @tool(
        "edit_task",
        description=(
            "Edit an existing task. Use get_tasks first if you don't know the task ID. "
            "Only the fields provided are changed."
        ),
        args_schema=EditTaskInput,
    )
    async def edit_task_handler(
        task_id: str,
        title: str | None = None,
        description: str | None = None,
        status: TaskStatus | None = None,
    ) -> dict[str, Any]:
        task = await task_service.update_task(task_id, title=title, description=description, status=status)
        if task is None:
            raise ToolExecutionError(f"Task {task_id} not found", "edit_task")
        return {"task": task.model_dump(mode="json")}

    return edit_task_handler


def create_get_tasks_tool(task_service: InMemoryTaskService):
    @tool(
        "get_tasks",
        description=(
            "Retrieve tasks from the user's task list. Can filter by status or get a specific task by ID."
        ),
        args_schema=GetTasksInput,
    )
    async def get_tasks_handler(task_id: str | None = None, status: TaskStatus | None = None) -> dict[str, Any]:
        tasks = await task_service.get_tasks(task_id=task_id, status=status)
        return {"tasks": [task.model_dump(mode="json") for task in tasks], "count": len(tasks)}

    return get_tasks_handler

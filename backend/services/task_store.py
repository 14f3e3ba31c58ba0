"""Task store client backed by the Supabase todos table."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import create_client, Client, ClientOptions

from models.task import Task
from config import SUPABASE_URL, SUPABASE_KEY, TODOS_TABLE, TASK_STORE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# PostgreSQL "invalid_text_representation", raised for a malformed uuid
INVALID_TEXT_REPRESENTATION = "22P02"

# SQLSTATE classes: 22 data exception, 23 integrity constraint violation
VALIDATION_CLASSES = ("22", "23")
# Connection, transaction rollback, insufficient resources, operator intervention
TRANSIENT_CLASSES = ("08", "40", "53", "57")


class TaskStoreError(Exception):
    """The task store could not be reached or rejected the request."""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class TaskNotFoundError(Exception):
    """The task does not exist or does not belong to the user."""

    def __init__(self, todo_id: str):
        self.todo_id = todo_id
        super().__init__(f"Todo {todo_id} not found or does not belong to the user")


class TaskValidationError(ValueError):
    """A required field is missing or malformed."""


class TaskStoreClient:
    """Create, read, update, delete and search tasks, always scoped by owner."""

    def __init__(
        self,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = TODOS_TABLE,
        timeout: int = TASK_STORE_TIMEOUT_SECONDS
    ):
        """
        Initialize the task store with a Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the todos table
            timeout: PostgREST request timeout in seconds

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.table_name = table_name
        self.client: Client = create_client(
            supabase_url,
            supabase_key,
            options=ClientOptions(postgrest_client_timeout=timeout)
        )

        logger.info(f"Initialized TaskStoreClient with table: {table_name}")

    def list_tasks(self, user_id: str) -> List[Task]:
        """
        Fetch every task owned by a user, earliest deadline first.

        Args:
            user_id: Owner of the tasks

        Returns:
            List of Task objects (possibly empty)
        """
        result = self._execute(
            f"list tasks for user {user_id}",
            lambda: self._table()
            .select("*")
            .eq("user_id", user_id)
            .order("deadline", desc=False)
            .execute()
        )
        tasks = [Task.from_record(row) for row in (result.data or [])]
        logger.debug(f"Fetched {len(tasks)} tasks for user {user_id}")
        return tasks

    def create_task(self, user_id: str, fields: Dict[str, Any]) -> Task:
        """
        Insert a new task.

        Args:
            user_id: Owner of the new task
            fields: title (required), description, priority, deadline (already
                normalized by the caller)

        Returns:
            The created Task

        Raises:
            TaskValidationError: If the title is missing
        """
        title = (fields.get("title") or "").strip()
        if not title:
            raise TaskValidationError("Title is required")

        now = _utc_now_iso()
        record = {
            "id": str(uuid.uuid4()),
            "title": title,
            "description": fields.get("description") or "",
            "is_completed": False,
            "priority": fields.get("priority"),
            "deadline": fields.get("deadline"),
            "user_id": user_id,
            "created_at": now,
            "updated_at": now,
        }

        result = self._execute(
            f"create task for user {user_id}",
            lambda: self._table().insert(record).execute()
        )
        row = result.data[0] if result.data else record
        logger.info(f"Created task {row['id']} for user {user_id}")
        return Task.from_record(row)

    def update_task(self, user_id: str, todo_id: str, fields: Dict[str, Any]) -> Task:
        """
        Apply the given fields to one of the user's tasks.

        Raises:
            TaskNotFoundError: If the task does not exist for this user
        """
        self._get_owned(user_id, todo_id)

        changes = dict(fields)
        changes["updated_at"] = _utc_now_iso()

        result = self._execute(
            f"update task {todo_id}",
            lambda: self._table()
            .update(changes)
            .eq("id", todo_id)
            .eq("user_id", user_id)
            .execute()
        )
        if not result.data:
            raise TaskNotFoundError(todo_id)

        logger.info(f"Updated task {todo_id} for user {user_id}: {sorted(fields)}")
        return Task.from_record(result.data[0])

    def delete_task(self, user_id: str, todo_id: str) -> Task:
        """
        Delete one of the user's tasks.

        Returns:
            The task as it was before deletion

        Raises:
            TaskNotFoundError: If the task does not exist for this user
        """
        existing = self._get_owned(user_id, todo_id)

        self._execute(
            f"delete task {todo_id}",
            lambda: self._table()
            .delete()
            .eq("id", todo_id)
            .eq("user_id", user_id)
            .execute()
        )
        logger.info(f"Deleted task {todo_id} for user {user_id}")
        return existing

    def search_tasks(self, user_id: str, query: str) -> List[Task]:
        """Case-insensitive substring match on title or description."""
        needle = (query or "").lower()
        return [
            task for task in self.list_tasks(user_id)
            if needle in task.title.lower() or needle in (task.description or "").lower()
        ]

    def _get_owned(self, user_id: str, todo_id: str) -> Task:
        try:
            result = self._execute(
                f"fetch task {todo_id}",
                lambda: self._table()
                .select("*")
                .eq("id", todo_id)
                .eq("user_id", user_id)
                .execute()
            )
        except TaskStoreError as e:
            if isinstance(e.__cause__, PostgrestAPIError) and e.__cause__.code == INVALID_TEXT_REPRESENTATION:
                raise TaskNotFoundError(todo_id) from e
            raise

        if not result.data:
            raise TaskNotFoundError(todo_id)
        return Task.from_record(result.data[0])

    def _table(self):
        return self.client.table(self.table_name)

    def _execute(self, description: str, query):
        try:
            return query()
        except PostgrestAPIError as e:
            code = str(e.code or "")
            logger.error(f"Task store rejected request ({description}): {code} {e.message}")
            if code != INVALID_TEXT_REPRESENTATION and code[:2] in VALIDATION_CLASSES:
                raise TaskValidationError(e.message or f"Invalid value ({code})") from e
            retryable = not code or code[:2] in TRANSIENT_CLASSES
            raise TaskStoreError(f"Failed to {description}: {code} {e.message}", retryable=retryable) from e
        except httpx.HTTPError as e:
            logger.error(f"Task store unreachable ({description}): {e}")
            raise TaskStoreError(f"Failed to {description}: {e}") from e


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

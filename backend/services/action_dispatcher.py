"""Execution of model-requested task operations."""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from models.observation import (
    Observation,
    SUCCESS,
    VALIDATION_ERROR,
    NOT_FOUND,
    AMBIGUOUS_REFERENCE,
    UNKNOWN_ACTION,
)
from models.protocol import ActionRequest
from models.task import Task, to_utc_iso
from services.event_logger import EventLogger
from services.retry import call_with_retry
from services.task_store import TaskStoreClient, TaskStoreError, TaskNotFoundError, TaskValidationError
from config import (
    DISPLAY_TIMEZONE,
    DEFAULT_PRIORITY,
    PRIORITY_MIN,
    PRIORITY_MAX,
    MAX_RETRIES,
    RETRY_INITIAL_DELAY,
)

logger = logging.getLogger(__name__)

# The requesting user always comes from the caller, never from the model
FOREIGN_IDENTITY_KEYS = {"userId", "user_id", "owner_id"}

UPDATABLE_FIELDS = ("title", "description", "is_completed", "priority", "deadline")

TRUE_STRINGS = {"true", "yes", "1", "done", "completed", "complete"}
FALSE_STRINGS = {"false", "no", "0", "pending", "not completed", "incomplete"}


def normalize_priority(value: Any) -> Optional[int]:
    """Return the priority as an int inside the valid band, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    # 7.0 is accepted, 7.5 and nan are not
    if not number.is_integer():
        return None
    priority = int(number)
    if PRIORITY_MIN <= priority <= PRIORITY_MAX:
        return priority
    return None


def normalize_deadline(value: Any, tz: ZoneInfo) -> str:
    """
    Convert a deadline to canonical UTC.

    Values with an explicit offset are converted; naive values are read in
    the display timezone first.

    Raises:
        ValueError: If the value is not an ISO 8601 date or date-time
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("Deadline is empty")
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return to_utc_iso(parsed)


def coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return None


class ActionDispatcher:
    """
    Executes one of the five task operations for a user.

    Operations that target a single task but arrive without a todoId never
    guess: they return an ambiguous_reference observation listing the user's
    tasks so the model can retry with an explicit id.
    """

    def __init__(
        self,
        task_store: TaskStoreClient,
        event_logger: Optional[EventLogger] = None,
        timezone_name: str = DISPLAY_TIMEZONE,
        clock: Optional[Callable[[], datetime]] = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_INITIAL_DELAY,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.task_store = task_store
        self.events = event_logger or EventLogger(log_file_path=None)
        self.tz = ZoneInfo(timezone_name)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

        self._handlers: Dict[str, Callable[[str, Dict[str, Any]], Observation]] = {
            "getAllTodos": self._get_all_todos,
            "createTodo": self._create_todo,
            "updateTodo": self._update_todo,
            "deleteTodo": self._delete_todo,
            "searchTodos": self._search_todos,
        }

    @property
    def actions(self) -> List[str]:
        return list(self._handlers)

    def execute(self, action: ActionRequest, user_id: str) -> Observation:
        """
        Execute an action on behalf of a user.

        Args:
            action: Operation requested by the model
            user_id: Requesting user; the only owner the action may touch

        Returns:
            Observation describing the result

        Raises:
            TaskStoreError: If the task store keeps failing after retries
        """
        params = {k: v for k, v in action.params.items() if k not in FOREIGN_IDENTITY_KEYS}
        handler = self._handlers.get(action.name)

        if handler is None:
            logger.error(f"Unknown action requested: {action.name}")
            observation = Observation(
                action=action.name,
                status=UNKNOWN_ACTION,
                message=f"Unknown action '{action.name}'. Use one of: {', '.join(self.actions)}"
            )
        else:
            logger.info(f"Executing action {action.name} for user {user_id}")
            observation = handler(user_id, params)

        self.events.emit(
            "action_executed",
            user_id=user_id,
            action=action.name,
            status=observation.status
        )
        return observation

    def _get_all_todos(self, user_id: str, params: Dict[str, Any]) -> Observation:
        tasks = self._store(f"getAllTodos for {user_id}", lambda: self.task_store.list_tasks(user_id))
        logger.info(f"Found {len(tasks)} todos for user {user_id}")
        return Observation(
            action="getAllTodos",
            status=SUCCESS,
            payload={"count": len(tasks), "todos": [t.to_dict() for t in tasks]},
            message=None if tasks else "The user has no tasks"
        )

    def _create_todo(self, user_id: str, params: Dict[str, Any]) -> Observation:
        title = str(params.get("title") or "").strip()
        if not title:
            return Observation("createTodo", VALIDATION_ERROR, message="Title is required")

        priority = normalize_priority(params.get("priority"))
        if priority is None:
            if params.get("priority") is not None:
                logger.info(f"Priority {params.get('priority')!r} outside {PRIORITY_MIN}-{PRIORITY_MAX}, using default")
            priority = DEFAULT_PRIORITY

        deadline = self._default_deadline()
        raw_deadline = params.get("deadline")
        if raw_deadline not in (None, ""):
            try:
                deadline = normalize_deadline(raw_deadline, self.tz)
            except ValueError:
                logger.warning(f"Unparsable deadline {raw_deadline!r}, defaulting to one day from now")

        fields = {
            "title": title,
            "description": str(params.get("description") or ""),
            "priority": priority,
            "deadline": deadline,
        }

        try:
            task = self._store(
                f"createTodo for {user_id}",
                lambda: self.task_store.create_task(user_id, fields)
            )
        except TaskValidationError as e:
            return Observation("createTodo", VALIDATION_ERROR, message=str(e))

        logger.info(f"Created todo: {task.title} with ID: {task.id}")
        return Observation("createTodo", SUCCESS, payload={"todo": task.to_dict()})

    def _update_todo(self, user_id: str, params: Dict[str, Any]) -> Observation:
        todo_id = self._todo_id(params)
        if not todo_id:
            return self._disambiguate("updateTodo", user_id)

        fields: Dict[str, Any] = {}

        if "title" in params:
            title = str(params["title"] or "").strip()
            if not title:
                return Observation("updateTodo", VALIDATION_ERROR, message="Title cannot be empty")
            fields["title"] = title

        if "description" in params:
            fields["description"] = str(params["description"] or "")

        if "is_completed" in params:
            completed = coerce_bool(params["is_completed"])
            if completed is None:
                return Observation(
                    "updateTodo", VALIDATION_ERROR,
                    message=f"is_completed must be true or false, got {params['is_completed']!r}"
                )
            fields["is_completed"] = completed

        if "priority" in params:
            priority = normalize_priority(params["priority"])
            if priority is None:
                logger.info(f"Ignoring out-of-band priority {params['priority']!r} for todo {todo_id}")
            else:
                fields["priority"] = priority

        if params.get("deadline") not in (None, ""):
            try:
                fields["deadline"] = normalize_deadline(params["deadline"], self.tz)
            except ValueError:
                return Observation(
                    "updateTodo", VALIDATION_ERROR,
                    message=f"Invalid deadline {params['deadline']!r}; use ISO 8601, e.g. 2026-01-31T17:00:00+06:00"
                )

        if not fields:
            return Observation(
                "updateTodo", VALIDATION_ERROR,
                message=f"Nothing to update; provide at least one of: {', '.join(UPDATABLE_FIELDS)}"
            )

        try:
            task = self._store(
                f"updateTodo {todo_id}",
                lambda: self.task_store.update_task(user_id, todo_id, fields)
            )
        except TaskNotFoundError as e:
            return Observation("updateTodo", NOT_FOUND, message=str(e))
        except TaskValidationError as e:
            return Observation("updateTodo", VALIDATION_ERROR, message=str(e))

        logger.info(f"Updated todo: {todo_id} - {task.title}")
        return Observation("updateTodo", SUCCESS, payload={"todo": task.to_dict(), "updated": sorted(fields)})

    def _delete_todo(self, user_id: str, params: Dict[str, Any]) -> Observation:
        todo_id = self._todo_id(params)
        if not todo_id:
            return self._disambiguate("deleteTodo", user_id)

        try:
            task = self._store(
                f"deleteTodo {todo_id}",
                lambda: self.task_store.delete_task(user_id, todo_id)
            )
        except TaskNotFoundError as e:
            return Observation("deleteTodo", NOT_FOUND, message=str(e))

        logger.info(f"Deleted todo: {todo_id}")
        return Observation("deleteTodo", SUCCESS, payload={"deleted": task.to_dict()})

    def _search_todos(self, user_id: str, params: Dict[str, Any]) -> Observation:
        query = str(params.get("query") or "").strip()
        if not query:
            return Observation("searchTodos", VALIDATION_ERROR, message="Search query is required")

        tasks = self._store(
            f"searchTodos for {user_id}",
            lambda: self.task_store.search_tasks(user_id, query)
        )
        logger.info(f"Search found {len(tasks)} todos matching query: {query}")
        return Observation(
            action="searchTodos",
            status=SUCCESS,
            payload={"query": query, "count": len(tasks), "todos": [t.to_dict() for t in tasks]},
            message=None if tasks else f"No tasks match '{query}'"
        )

    def _disambiguate(self, action_name: str, user_id: str) -> Observation:
        tasks: List[Task] = self._store(
            f"list candidates for {action_name}",
            lambda: self.task_store.list_tasks(user_id)
        )
        candidates = [{"id": t.id, "title": t.title} for t in tasks]
        logger.info(f"{action_name} without todoId; returning {len(candidates)} candidates")

        if candidates:
            message = (
                "No todoId provided. Choose the id of the intended task from the "
                f"candidates and call {action_name} again with that todoId."
            )
        else:
            message = "No todoId provided and the user has no tasks."

        return Observation(
            action=action_name,
            status=AMBIGUOUS_REFERENCE,
            payload={"candidates": candidates},
            message=message
        )

    def _store(self, description: str, operation):
        return call_with_retry(
            operation,
            description,
            retry_on=(TaskStoreError,),
            should_retry=lambda e: e.retryable,
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
            sleep=self._sleep
        )

    def _default_deadline(self) -> str:
        return to_utc_iso(self._clock() + timedelta(days=1))

    @staticmethod
    def _todo_id(params: Dict[str, Any]) -> str:
        for key in ("todoId", "todo_id", "id"):
            value = params.get(key)
            if value not in (None, ""):
                return str(value).strip()
        return ""

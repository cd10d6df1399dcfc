"""
Remote-first task store with transparent local fallback.

Every call tries the hosted store first and drops to the local cache when it
is unavailable. There is no sticky "offline" flag: the next call probes the
remote again. An update or delete of a task the cache never held raises
StoreUnavailable instead of silently doing nothing. Rejected writes are not
retried locally; they propagate so the shell can tell the user.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .schema import Task, Category
from .store import LocalTaskCache, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FallbackTaskStore:
    """Routes task operations to the remote store, or the local cache when it is down."""

    def __init__(self, primary, fallback: LocalTaskCache):
        """
        Args:
            primary: RemoteTaskStore, or None when no backend is configured
            fallback: local cache mirroring the same operations
        """
        self._primary = primary
        self._fallback = fallback
        self.last_source: str = "local" if primary is None else "remote"

    @property
    def remote_enabled(self) -> bool:
        return self._primary is not None

    def _call(
        self,
        op: str,
        remote: Optional[Callable[[], T]],
        local: Callable[[], T],
        require_local: bool = False,
    ) -> T:
        if remote is None:
            self.last_source = "local"
            return local()
        try:
            result = remote()
            self.last_source = "remote"
            return result
        except StoreUnavailable as e:
            logger.warning(f"Remote {op} unavailable, using local cache: {e}")
            error = e
        self.last_source = "local"
        result = local()
        if require_local and not result:
            # The cache never saw this task: the change cannot land anywhere
            raise StoreUnavailable(f"{op} failed and the task is not cached locally: {error}") from error
        return result

    def list_tasks(self) -> List[Task]:
        p = self._primary
        return self._call(
            "list_tasks",
            p.list_tasks if p else None,
            self._fallback.list_tasks,
        )

    def create_task(self, fields: Dict[str, Any]) -> Task:
        p = self._primary
        return self._call(
            "create_task",
            (lambda: p.create_task(fields)) if p else None,
            lambda: self._fallback.create_task(fields),
        )

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        p = self._primary
        return self._call(
            "update_task",
            (lambda: p.update_task(task_id, fields)) if p else None,
            lambda: self._fallback.update_task(task_id, fields),
            require_local=True,
        )

    def delete_task(self, task_id: str) -> bool:
        p = self._primary

        def local() -> bool:
            # Behind a backend, only tasks the cache holds can be deleted offline
            if p is not None and self._fallback.get_task(task_id) is None:
                return False
            return self._fallback.delete_task(task_id)

        return self._call(
            "delete_task",
            (lambda: p.delete_task(task_id)) if p else None,
            local,
            require_local=True,
        )

    def list_categories(self) -> List[Category]:
        p = self._primary
        return self._call(
            "list_categories",
            p.list_categories if p else None,
            self._fallback.list_categories,
        )

"""
Hosted backend clients (PostgREST-style REST tables).

Transport failures, timeouts, 5xx responses and missing tables raise
StoreUnavailable so callers can fall back to the local cache. A 4xx on a
write raises MutationRejected: the backend is up but said no.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from .schema import Task, Category, utc_now
from .store import StoreUnavailable, MutationRejected

logger = logging.getLogger(__name__)

# Values shipped in the setup template; a backend still using them is not configured
PLACEHOLDER_URL = "https://your-project-id.supabase.co"
PLACEHOLDER_KEY = "your-actual-anon-key-from-supabase"

DEFAULT_TIMEOUT = 10.0


def is_configured(base_url: Optional[str], anon_key: Optional[str]) -> bool:
    """True when both backend settings are present and not template placeholders."""
    return bool(
        base_url
        and anon_key
        and base_url != PLACEHOLDER_URL
        and anon_key != PLACEHOLDER_KEY
    )


def _error_message(resp: requests.Response) -> str:
    """Pull the most useful message out of a PostgREST error body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        parts = [body.get("message") or body.get("msg") or body.get("error_description") or body.get("error")]
        if body.get("details"):
            parts.append(str(body["details"]))
        if body.get("hint"):
            parts.append(f"hint: {body['hint']}")
        text = " ".join(str(p) for p in parts if p)
        if text:
            return text
    return f"HTTP {resp.status_code}"


class RestClient:
    """Thin requests wrapper that maps HTTP outcomes onto store errors."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.token_provider = token_provider

    def headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        write: bool = False,
    ) -> Any:
        """
        Send one request and decode the JSON body.

        Returns:
            Decoded JSON, or None for an empty body.

        Raises:
            StoreUnavailable: transport error, timeout, 5xx, or unknown table
            MutationRejected: 4xx on a write
        """
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self.headers(headers),
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise StoreUnavailable(f"{method} {path} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise StoreUnavailable(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 500:
            raise StoreUnavailable(f"{method} {path}: backend error {resp.status_code}")
        if resp.status_code == 404:
            # PostgREST answers 404 for a table that doesn't exist: misconfigured backend
            raise StoreUnavailable(f"{method} {path}: not found ({_error_message(resp)})")
        if resp.status_code >= 400:
            message = _error_message(resp)
            if write:
                logger.error(f"{method} {path} rejected ({resp.status_code}): {message}")
                raise MutationRejected(message, status_code=resp.status_code)
            raise StoreUnavailable(f"{method} {path}: {resp.status_code} {message}")

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreUnavailable(f"{method} {path}: invalid JSON response") from e


class RemoteTaskStore:
    """Task and category tables on the hosted backend."""

    def __init__(
        self,
        client: RestClient,
        tasks_table: str = "tasks",
        categories_table: str = "categories",
    ):
        self.client = client
        self.tasks_path = f"/rest/v1/{tasks_table}"
        self.categories_path = f"/rest/v1/{categories_table}"

    def list_tasks(self) -> List[Task]:
        rows = self.client.request(
            "GET",
            self.tasks_path,
            params={"select": "*", "order": "created_at.desc"},
        )
        return [Task.from_dict(r) for r in rows or []]

    def create_task(self, fields: Dict[str, Any]) -> Task:
        now = utc_now().isoformat()
        rows = self.client.request(
            "POST",
            self.tasks_path,
            json=[{**fields, "created_at": now, "updated_at": now}],
            headers={"Prefer": "return=representation"},
            write=True,
        )
        if not rows:
            raise MutationRejected("Backend accepted the task but returned no record")
        return Task.from_dict(rows[0])

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        logger.debug(f"Updating task {task_id}: {fields}")
        rows = self.client.request(
            "PATCH",
            self.tasks_path,
            params={"id": f"eq.{task_id}"},
            json={**fields, "updated_at": utc_now().isoformat()},
            headers={"Prefer": "return=representation"},
            write=True,
        )
        if not rows:
            return None
        return Task.from_dict(rows[0])

    def delete_task(self, task_id: str) -> bool:
        self.client.request(
            "DELETE",
            self.tasks_path,
            params={"id": f"eq.{task_id}"},
            write=True,
        )
        return True

    def list_categories(self) -> List[Category]:
        rows = self.client.request(
            "GET",
            self.categories_path,
            params={"select": "*", "order": "name.asc"},
        )
        return [Category.from_dict(r) for r in rows or []]

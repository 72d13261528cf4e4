# FILE: scribe/actions/remote_backend.py
"""Remote backend client: HTTP interface to the hosted database/functions API.

Provides:
- SQL execution against a linked database project
- Function deploy (create or update) and delete, keyed by function name

No retries: callers record a failure and move on to the next action.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .config import REMOTE_API_TOKEN, REMOTE_API_URL, REMOTE_TIMEOUT
from .errors import RemoteBackendError

logger = logging.getLogger(__name__)


class RemoteBackendClient:
    """HTTP client for the remote SQL/function-hosting backend.

    Usage:
        client = RemoteBackendClient()
        client.execute_sql("proj_ref", "create table notes (id serial primary key);")
        client.deploy_function("proj_ref", "hello", "Deno.serve(() => new Response('hi'))")
        client.delete_function("proj_ref", "hello")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = REMOTE_TIMEOUT,
    ):
        self.base_url = (base_url or REMOTE_API_URL).rstrip("/")
        self.token = token if token is not None else REMOTE_API_TOKEN
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an HTTP request and return the parsed JSON body (None if empty).

        Raises:
            RemoteBackendError: On connection or HTTP errors
        """
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        data = None
        if json_body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(json_body).encode("utf-8")

        req = Request(url, data=data, headers=headers, method=method)
        logger.debug("[remote_backend] HTTP %s %s", method, url)

        try:
            with urlopen(req, timeout=self.timeout) as resp:
                body = resp.read().decode("utf-8")
        except HTTPError as e:
            body = ""
            try:
                body = e.read().decode("utf-8")
            except OSError:
                pass
            raise RemoteBackendError(f"HTTP {e.code} from {path}: {body[:500]}", status=e.code)
        except URLError as e:
            raise RemoteBackendError(f"Connection failed to {url}: {e.reason}")

        if not body.strip():
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            return body

    # -------------------------------------------------------------------------
    # API Methods
    # -------------------------------------------------------------------------

    def execute_sql(self, project_id: str, query: str) -> Any:
        """Run a SQL statement on the project's database and return the result rows."""
        logger.info("[remote_backend] Executing SQL on %s (%d chars)", project_id, len(query))
        return self._request(
            "POST",
            f"/projects/{quote(project_id, safe='')}/database/query",
            json_body={"query": query},
        )

    def deploy_function(self, project_id: str, function_name: str, content: str) -> Any:
        """Update the function if it exists, otherwise create it."""
        logger.info("[remote_backend] Deploying function %s to %s", function_name, project_id)
        slug = quote(function_name, safe="")
        body = {"slug": function_name, "name": function_name, "body": content, "verify_jwt": False}
        try:
            return self._request("PATCH", f"/projects/{quote(project_id, safe='')}/functions/{slug}", json_body=body)
        except RemoteBackendError as e:
            if e.status != 404:
                raise
        return self._request("POST", f"/projects/{quote(project_id, safe='')}/functions", json_body=body)

    def delete_function(self, project_id: str, function_name: str) -> Any:
        logger.info("[remote_backend] Deleting function %s from %s", function_name, project_id)
        return self._request(
            "DELETE",
            f"/projects/{quote(project_id, safe='')}/functions/{quote(function_name, safe='')}",
        )


_client: Optional[RemoteBackendClient] = None


def get_remote_backend_client() -> RemoteBackendClient:
    """Process-wide default client built from configuration."""
    global _client
    if _client is None:
        _client = RemoteBackendClient()
    return _client

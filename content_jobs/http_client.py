"""HTTP client for content jobs service."""

import asyncio
from typing import Any, Dict, List, Optional
from uuid import UUID

import aiohttp

from content_jobs.errors import RemoteHttpError


class ContentJobsHttpClient:
    """HTTP client for calling content jobs service."""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 5.0,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL of the content jobs service (e.g., "https://content-jobs.internal")
            auth_token: Optional auth token for X-Content-Jobs-Token header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["X-Content-Jobs-Token"] = self.auth_token
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.request(
                    method, url, json=json, params=params, headers=self._headers()
                ) as resp:
                    response_body = await resp.text()

                    if resp.status == 404:
                        raise RemoteHttpError(
                            status_code=404,
                            message="Job not found",
                            response_body=response_body,
                        )

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to {action}: {response_body}",
                            response_body=response_body,
                        )

                    return await resp.json()

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e
            except asyncio.TimeoutError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: request timed out after {self.timeout.total}s",
                ) from e

    async def create_job(
        self,
        topic: str,
        *,
        options: Optional[Dict[str, Any]] = None,
        site_id: Optional[str] = None,
        allow_duplicate: bool = False,
    ) -> Dict[str, Any]:
        """
        Create a job via HTTP API.

        A near-duplicate of a recent topic fails with HTTP 409 unless
        ``allow_duplicate`` is set.

        Returns:
            Created job data as dictionary

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        request_body: Dict[str, Any] = {"topic": topic}
        if options:
            request_body["options"] = options
        if site_id:
            request_body["site_id"] = site_id
        if allow_duplicate:
            request_body["allow_duplicate"] = True

        return await self._request("POST", "/jobs", "create job", json=request_body)

    async def get_job(self, job_id: UUID) -> Dict[str, Any]:
        """
        Get job details by ID.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        return await self._request("GET", f"/jobs/{job_id}", "get job")

    async def list_jobs(
        self,
        *,
        status: Optional[str] = None,
        created_after: Optional[str] = None,
        created_before: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """
        List jobs with optional filters.

        Args:
            status: Only jobs in this status
            created_after: ISO8601 lower bound on created_at
            created_before: ISO8601 upper bound on created_at
            limit: Maximum number of jobs

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        params: Dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        if created_after:
            params["created_after"] = created_after
        if created_before:
            params["created_before"] = created_before

        return await self._request("GET", "/jobs", "list jobs", params=params)

    async def get_stats(self) -> Dict[str, Any]:
        """Get job counts per status."""
        return await self._request("GET", "/jobs/stats", "get stats")

    async def requeue_job(self, job_id: UUID) -> Dict[str, Any]:
        """
        Return a failed job to pending.

        Raises:
            RemoteHttpError: If the HTTP request fails, e.g. 409 when the job
                cannot be requeued
        """
        return await self._request("POST", f"/jobs/{job_id}/requeue", "requeue job")

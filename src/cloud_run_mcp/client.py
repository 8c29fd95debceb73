"""API client for the Google Cloud REST endpoints the tools use."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import requests
from google.auth.credentials import Credentials
from google.auth.transport.requests import Request

from cloud_run_mcp.auth import load_credentials
from cloud_run_mcp.types import LogPage

RESOURCE_MANAGER_URL = "https://cloudresourcemanager.googleapis.com"
BILLING_URL = "https://cloudbilling.googleapis.com/v1"
RUN_URL = "https://run.googleapis.com/v2"
LOGGING_URL = "https://logging.googleapis.com/v2"

LOG_PAGE_SIZE = 100


def format_log_entry(entry: dict[str, Any]) -> str:
    """Render a Cloud Logging entry as a single line."""
    timestamp = entry.get("timestamp", "")
    severity = entry.get("severity", "DEFAULT")

    if "textPayload" in entry:
        message = entry["textPayload"]
    elif "jsonPayload" in entry:
        payload = entry["jsonPayload"]
        message = payload.get("message") or json.dumps(payload)
    elif "httpRequest" in entry:
        req = entry["httpRequest"]
        message = f"{req.get('requestMethod', '')} {req.get('status', '')} {req.get('requestUrl', '')}".strip()
    else:
        message = ""

    return f"[{timestamp}] [{severity}] {message}"


def service_log_filter(region: str, service: str) -> str:
    return (
        'resource.type="cloud_run_revision" '
        f'AND resource.labels.service_name="{service}" '
        f'AND resource.labels.location="{region}"'
    )


@dataclass
class Client:
    """Client for Resource Manager, Cloud Billing, Cloud Run and Cloud Logging.

    Credentials are Application Default Credentials, loaded on first use and
    refreshed whenever the access token has expired.
    """

    credentials: Credentials | None = field(default=None, repr=False)
    timeout: int = 60

    def _get_headers(self) -> dict[str, str]:
        """Generate headers with authentication."""
        if self.credentials is None:
            self.credentials, _ = load_credentials()
        elif not self.credentials.valid:
            self.credentials.refresh(Request())

        return {
            "Authorization": f"Bearer {self.credentials.token}",
            "Content-Type": "application/json",
        }

    def _get(self, url: str, params: dict[str, Any] | None = None) -> requests.Response:
        return requests.get(url, params=params, headers=self._get_headers(), timeout=self.timeout)

    # ==========================================================================
    # Projects and billing
    # ==========================================================================

    def list_projects(self) -> list[dict[str, Any]]:
        """List all active projects the credentials can see."""
        projects: list[dict[str, Any]] = []
        params: dict[str, Any] = {"filter": "lifecycleState:ACTIVE"}

        while True:
            response = self._get(f"{RESOURCE_MANAGER_URL}/v1/projects", params=params)
            response.raise_for_status()
            data = response.json()
            projects.extend(data.get("projects", []))
            if not data.get("nextPageToken"):
                return projects
            params["pageToken"] = data["nextPageToken"]

    def create_project(self, project_id: str) -> dict[str, Any]:
        """Request a new project; returns the long-running operation."""
        response = requests.post(
            f"{RESOURCE_MANAGER_URL}/v3/projects",
            json={"projectId": project_id, "displayName": project_id},
            headers=self._get_headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def get_project_operation(self, name: str) -> dict[str, Any]:
        response = self._get(f"{RESOURCE_MANAGER_URL}/v3/{name}")
        response.raise_for_status()
        return response.json()

    def list_billing_accounts(self) -> list[dict[str, Any]]:
        response = self._get(f"{BILLING_URL}/billingAccounts")
        response.raise_for_status()
        return response.json().get("billingAccounts", [])

    def set_project_billing(self, project_id: str, billing_account_name: str) -> dict[str, Any]:
        """Link a project to a billing account (``billingAccounts/XXXX``)."""
        response = requests.put(
            f"{BILLING_URL}/projects/{project_id}/billingInfo",
            json={"billingAccountName": billing_account_name},
            headers=self._get_headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    # ==========================================================================
    # Cloud Run services
    # ==========================================================================

    def list_services(self, project: str, region: str) -> list[dict[str, Any]]:
        """List Cloud Run services in a project and region."""
        services: list[dict[str, Any]] = []
        params: dict[str, Any] = {}

        while True:
            response = self._get(f"{RUN_URL}/projects/{project}/locations/{region}/services", params=params)
            response.raise_for_status()
            data = response.json()
            services.extend(data.get("services", []))
            if not data.get("nextPageToken"):
                return services
            params["pageToken"] = data["nextPageToken"]

    def get_service(self, project: str, region: str, service: str) -> dict[str, Any] | None:
        """Get a Cloud Run service, or None if it does not exist."""
        response = self._get(f"{RUN_URL}/projects/{project}/locations/{region}/services/{service}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    # ==========================================================================
    # Logs
    # ==========================================================================

    def get_service_logs(
        self,
        project: str,
        region: str,
        service: str,
        request_options: dict[str, Any] | None = None,
    ) -> LogPage:
        """Fetch one page of a service's logs, newest first.

        Args:
            project: Project ID
            region: Region of the service
            service: Name of the service
            request_options: Options returned by the previous page, if any

        Returns:
            LogPage whose ``request_options`` is None on the last page
        """
        body: dict[str, Any] = {
            "resourceNames": [f"projects/{project}"],
            "filter": service_log_filter(region, service),
            "orderBy": "timestamp desc",
            "pageSize": LOG_PAGE_SIZE,
        }
        if request_options:
            body.update(request_options)

        response = requests.post(
            f"{LOGGING_URL}/entries:list",
            json=body,
            headers=self._get_headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        entries = data.get("entries", [])
        logs = "\n".join(format_log_entry(entry) for entry in entries) or None
        next_page_token = data.get("nextPageToken")

        return LogPage(
            logs=logs,
            request_options={"pageToken": next_page_token} if next_page_token else None,
        )


def get_client() -> Client:
    """Get a client using Application Default Credentials."""
    return Client()

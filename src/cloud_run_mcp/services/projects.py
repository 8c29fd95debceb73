"""Project-related services.

These services list projects and create new ones with billing attached.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Any

from loguru import logger as log

from cloud_run_mcp.client import Client, get_client


class OperationTimeoutError(Exception):
    """Raised when a long-running Google Cloud operation does not finish in time."""

    def __init__(self, operation_name: str, timeout: float):
        self.operation_name = operation_name
        self.timeout = timeout
        super().__init__(f"Operation '{operation_name}' did not complete within {timeout:g} seconds")


class ProjectCreationError(Exception):
    """Raised when project creation finishes with an error."""


@dataclass
class ProjectSummary:
    """Summary information for a project (used in list)."""

    id: str
    name: str | None = None

    @classmethod
    def from_response(cls, project: dict[str, Any]) -> ProjectSummary:
        """Create from API response."""
        return cls(id=project["projectId"], name=project.get("name"))


@dataclass
class CreateProjectResult:
    """Result of creating a project."""

    project_id: str
    billing_message: str


def generate_project_id() -> str:
    """Generate a project ID (6-30 lowercase letters, digits or hyphens)."""
    return f"mcp-cloud-run-{secrets.token_hex(4)}"


def list_projects(client: Client | None = None) -> list[ProjectSummary]:
    """List the projects visible to the current credentials."""
    client = client or get_client()
    return [ProjectSummary.from_response(p) for p in client.list_projects()]


def wait_for_operation(
    client: Client,
    operation: dict[str, Any],
    poll_interval: float = 2.0,
    timeout: float = 600.0,
) -> dict[str, Any]:
    """Poll a Resource Manager operation until it is done.

    Raises:
        OperationTimeoutError: If the operation is still running after ``timeout``
    """
    name = operation.get("name", "")
    deadline = time.monotonic() + timeout

    while not operation.get("done"):
        if time.monotonic() >= deadline:
            raise OperationTimeoutError(name, timeout)
        log.info(f"Waiting for operation '{name}' to complete...")
        time.sleep(poll_interval)
        operation = client.get_project_operation(name)

    return operation


def attach_billing(project_id: str, client: Client) -> str:
    """Attach the first open billing account to a project.

    Returns:
        A human-readable description of what happened
    """
    accounts = [a for a in client.list_billing_accounts() if a.get("open")]
    if not accounts:
        return f"No open billing account found; project '{project_id}' was created without billing."

    account = accounts[0]
    client.set_project_billing(project_id, account["name"])
    display = account.get("displayName") or account["name"]
    return f"Project '{project_id}' is linked to billing account '{display}'."


def create_project(
    project_id: str | None = None,
    client: Client | None = None,
    poll_interval: float = 2.0,
    timeout: float = 600.0,
) -> CreateProjectResult:
    """Create a project and attach it to the first open billing account.

    Args:
        project_id: Desired project ID; generated when omitted
        client: Optional client instance
        poll_interval: Seconds between operation polls
        timeout: Seconds to wait for project creation

    Returns:
        CreateProjectResult with the project ID and billing outcome

    Raises:
        ProjectCreationError: If the create operation reports an error
        OperationTimeoutError: If the create operation does not finish
    """
    client = client or get_client()
    project_id = project_id or generate_project_id()

    log.info(f"Creating project '{project_id}'...")
    operation = client.create_project(project_id)
    operation = wait_for_operation(client, operation, poll_interval=poll_interval, timeout=timeout)
    if "error" in operation:
        raise ProjectCreationError(operation["error"].get("message", "unknown error"))

    billing_message = attach_billing(project_id, client)
    log.info(billing_message)

    return CreateProjectResult(project_id=project_id, billing_message=billing_message)

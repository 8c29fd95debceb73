"""Boundary between MCP tool calls and the service layer.

Every tool handler returns plain text. Failures are captured as a
``Failure`` and rendered into a sentence naming the attempted operation,
so no exception ever reaches the protocol transport.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar, Union

from loguru import logger as log

from cloud_run_mcp import services
from cloud_run_mcp.client import Client, get_client
from cloud_run_mcp.config import Settings
from cloud_run_mcp.services.logs import LogAggregator, client_page_fetcher
from cloud_run_mcp.services.proxy import ProxyManager

CREDENTIALS_UNAVAILABLE_MESSAGE = "GCP credentials are not available. Please configure your environment."
DEFAULT_PROXY_PORT = 8080
SANDBOX_URL_MISSING = "Error: CODE_SANDBOX_URL environment variable is not set."

F = TypeVar("F", bound=Callable[..., Awaitable[str]])


class ValidationError(ValueError):
    """Raised when tool arguments are missing or malformed."""


@dataclass(frozen=True)
class Ok:
    text: str


@dataclass(frozen=True)
class Failure:
    """A failed tool call and the operation it was attempting."""

    operation: str
    message: str


ToolResult = Union[Ok, Failure]


def render(result: ToolResult) -> str:
    """Render a tool result as the text returned to the client."""
    if isinstance(result, Ok):
        return result.text
    return f"Error {result.operation}: {result.message}"


def gcp_tool(credentials_available: bool, fn: F | None = None) -> Any:
    """Disable a tool that needs Google Cloud access when no credentials exist.

    The returned responder keeps ``fn``'s signature but never calls it.
    Without ``fn``, returns a decorator.
    """
    if fn is None:
        return functools.partial(gcp_tool, credentials_available)
    if credentials_available:
        return fn

    @functools.wraps(fn)
    async def unavailable(*args: Any, **kwargs: Any) -> str:
        return CREDENTIALS_UNAVAILABLE_MESSAGE

    return unavailable  # type: ignore[return-value]


# ==============================================================================
# Argument validation
# ==============================================================================


def require_string(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value


def require_files(files: Any) -> list[str]:
    """Validate a non-empty list of file paths."""
    if not isinstance(files, list):
        raise ValidationError("Files must be specified")
    if not files:
        raise ValidationError("No files specified for deployment")
    for path in files:
        require_string(path, "File paths must be non-empty strings")
    return files


def require_file_contents(files: Any) -> list[dict[str, str]]:
    """Validate a non-empty list of ``{filename, content}`` objects."""
    if not isinstance(files, list):
        raise ValidationError("Files must be specified")
    if not files:
        raise ValidationError("No files specified for deployment")
    for file in files:
        if not isinstance(file, dict) or not isinstance(file.get("filename"), str) or not file["filename"].strip():
            raise ValidationError("Each file must have a filename")
        if not file.get("content"):
            raise ValidationError(f"File {file['filename']} must have content")
    return files


def require_port(port: Any) -> int:
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ValidationError("Port must be an integer between 1 and 65535.")
    return port


MISSING_PROJECT = "Project must be specified, please prompt the user for a valid existing Google Cloud project ID."


class ToolGateway:
    """Tool handlers shared by the local and remote MCP servers.

    Arguments left as None fall back to the configured defaults.
    """

    def __init__(
        self,
        settings: Settings,
        proxy: ProxyManager | None = None,
        client: Client | None = None,
        logs: LogAggregator | None = None,
    ) -> None:
        self.settings = settings
        self.client = client or get_client()
        self.proxy = proxy or ProxyManager(stop_timeout=settings.proxy_stop_timeout)
        self.logs = logs or LogAggregator(client_page_fetcher(self.client))

    def _resolve(
        self,
        project: str | None,
        region: str | None,
        service: str | None = None,
    ) -> tuple[str | None, str, str]:
        return (
            project or self.settings.google_cloud_project,
            region or self.settings.google_cloud_region,
            service or self.settings.default_service_name,
        )

    async def _dispatch(self, operation: str, handler: Callable[[], Awaitable[str]]) -> str:
        try:
            result: ToolResult = Ok(await handler())
        except ValidationError as e:
            log.warning(f"Rejected arguments while {operation}: {e}")
            result = Failure(operation, str(e))
        except Exception as e:
            log.opt(exception=e).error(f"Error {operation}: {e}")
            result = Failure(operation, str(e) or type(e).__name__)
        return render(result)

    # ==========================================================================
    # Projects
    # ==========================================================================

    async def list_projects(self) -> str:
        async def handler() -> str:
            projects = await asyncio.to_thread(services.list_projects, self.client)
            return "Available GCP Projects:\n" + "\n".join(f"- {p.id}" for p in projects)

        return await self._dispatch("listing GCP projects", handler)

    async def create_project(self, project_id: str | None = None) -> str:
        async def handler() -> str:
            if project_id is not None:
                require_string(project_id, "If provided, Project ID must be a non-empty string.")
            result = await asyncio.to_thread(
                services.create_project,
                project_id,
                self.client,
                self.settings.operation_poll_interval,
                self.settings.operation_timeout,
            )
            return (
                f'Successfully created GCP project with ID "{result.project_id}". '
                "You can now use this project ID for deployments.\n"
                f"{result.billing_message}"
            )

        return await self._dispatch("creating GCP project or attaching billing", handler)

    # ==========================================================================
    # Services
    # ==========================================================================

    async def list_services(self, project: str | None = None, region: str | None = None) -> str:
        project, region, _ = self._resolve(project, region)

        async def handler() -> str:
            require_string(project, "Project ID must be provided and be a non-empty string.")
            found = await asyncio.to_thread(services.list_services, project, region, self.client)
            listing = "\n".join(f"- {s.name} (URL: {s.uri})" for s in found)
            return f"Services in project {project} (location {region}):\n{listing}"

        return await self._dispatch(f"listing services for project {project} (region {region})", handler)

    async def get_service(
        self,
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
    ) -> str:
        project, region, service = self._resolve(project, region, service)

        async def handler() -> str:
            require_string(project, "Project ID must be provided.")
            require_string(service, "Service name must be provided.")
            details = await asyncio.to_thread(services.get_service, project, region, service, self.client)
            if details is None:
                return f"Service {service} not found in project {project} (region {region})."
            return (
                f"Name: {service}\nRegion: {region}\nProject: {project}\n"
                f"URL: {details.uri}\nLast deployed by: {details.last_modifier}"
            )

        return await self._dispatch(f"getting service {service} in project {project} (region {region})", handler)

    async def get_service_log(
        self,
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
    ) -> str:
        project, region, service = self._resolve(project, region, service)

        async def handler() -> str:
            require_string(project, "Project ID must be provided.")
            require_string(service, "Service name must be provided.")
            return await self.logs.fetch_all(project, region, service)

        return await self._dispatch(
            f"getting Logs for service {service} in project {project} (region {region})", handler
        )

    # ==========================================================================
    # Deployments
    # ==========================================================================

    def _deployed(self, result: services.DeployResult, source: str = "") -> str:
        return (
            f"Cloud Run service {result.service} deployed{source} in project {result.project}\n"
            f"Cloud Console: {result.console_url}\n"
            f"Service URL: {result.uri}"
        )

    async def deploy_local_files(
        self,
        files: list[str] | None,
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
    ) -> str:
        project, region, service = self._resolve(project, region, service)

        async def handler() -> str:
            require_string(project, MISSING_PROJECT)
            paths = require_files(files)
            result = await asyncio.to_thread(
                services.deploy_source, project, region, service, paths, self.settings.skip_iam_check, self.client
            )
            return self._deployed(result)

        return await self._dispatch("deploying to Cloud Run", handler)

    async def deploy_local_folder(
        self,
        folder_path: str | None,
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
    ) -> str:
        project, region, service = self._resolve(project, region, service)

        async def handler() -> str:
            require_string(project, MISSING_PROJECT)
            folder = require_string(folder_path, "Folder path must be specified and be a non-empty string.")
            result = await asyncio.to_thread(
                services.deploy_source, project, region, service, [folder], self.settings.skip_iam_check, self.client
            )
            return self._deployed(result, f" from folder {folder}")

        return await self._dispatch("deploying folder to Cloud Run", handler)

    async def deploy_file_contents(
        self,
        files: list[dict[str, str]] | None,
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
    ) -> str:
        project, region, service = self._resolve(project, region, service)

        async def handler() -> str:
            require_string(project, MISSING_PROJECT)
            contents = require_file_contents(files)
            result = await asyncio.to_thread(
                services.deploy_file_contents,
                project,
                region,
                service,
                contents,
                self.settings.skip_iam_check,
                self.client,
            )
            return self._deployed(result)

        return await self._dispatch("deploying to Cloud Run", handler)

    async def deploy_container_image(
        self,
        image_url: str | None,
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
    ) -> str:
        project, region, service = self._resolve(project, region, service)

        async def handler() -> str:
            require_string(project, MISSING_PROJECT)
            image = require_string(image_url, "Container image URL must be specified and be a non-empty string.")
            result = await asyncio.to_thread(
                services.deploy_image, project, region, service, image, self.settings.skip_iam_check, self.client
            )
            return self._deployed(result)

        return await self._dispatch("deploying to Cloud Run", handler)

    # ==========================================================================
    # Sandbox
    # ==========================================================================

    async def run_python_code(self, code: str | None) -> str:
        sandbox_url = self.settings.code_sandbox_url
        if not sandbox_url:
            return SANDBOX_URL_MISSING

        async def handler() -> str:
            source = require_string(code, "Code must be provided.")
            return await asyncio.to_thread(services.run_code_in_sandbox, source, sandbox_url)

        return await self._dispatch("running code in sandbox", handler)

    # ==========================================================================
    # Proxy
    # ==========================================================================

    async def start_proxy(
        self,
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
        port: int = DEFAULT_PROXY_PORT,
    ) -> str:
        project, region, service = self._resolve(project, region, service)

        async def handler() -> str:
            require_string(project, "Project ID must be provided.")
            require_string(service, "Service name must be provided.")
            return await self.proxy.start(project, region, service, require_port(port))

        return await self._dispatch(f"starting proxy for service {service} on port {port}", handler)

    async def stop_proxy(self) -> str:
        return await self._dispatch("stopping proxy", self.proxy.stop)

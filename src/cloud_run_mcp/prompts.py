"""Prompts offered to MCP clients."""

from typing import Annotated

from fastmcp import FastMCP
from pydantic import Field

DEFAULT_DEPLOY_NAME = "a name for the application based on the current working directory."
DEFAULT_LOGS_SERVICE = "named for the current working directory"


def deploy_prompt_text(name: str | None = None) -> str:
    return (
        "Use the deploy_local_folder tool to deploy the current folder. "
        f"The service name should be {name or DEFAULT_DEPLOY_NAME}"
    )


def logs_prompt_text(service: str | None = None) -> str:
    return f"Use get_service_log to get logs for the service {service or DEFAULT_LOGS_SERVICE}"


def register_prompts(mcp: FastMCP) -> None:
    """Register the ``deploy`` and ``logs`` prompts."""

    @mcp.prompt("deploy")
    def deploy(
        name: Annotated[
            str | None,
            Field(description="Name of the Cloud Run service to deploy to. Defaults to the name of the current directory"),
        ] = None,
    ) -> str:
        """Deploys the current working directory to Cloud Run."""
        return deploy_prompt_text(name)

    @mcp.prompt("logs")
    def logs(
        service: Annotated[
            str | None,
            Field(description="Name of the Cloud Run service. Defaults to the name of the current directory."),
        ] = None,
    ) -> str:
        """Gets the logs for a Cloud Run service."""
        return logs_prompt_text(service)

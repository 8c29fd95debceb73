"""Service layer for the Cloud Run MCP server.

This module provides the operations used by both the MCP tools and the CLI.

The services are designed to:
1. Be independent of the MCP protocol (no text envelopes, no FastMCP)
2. Return structured data (dataclasses)
3. Raise exceptions for errors (callers handle display)
4. Be easily testable

Architecture:
    MCP Tool    → ToolGateway → Service → Client → Google Cloud API
    CLI Command → Service → Client → Google Cloud API
"""

# Project operations
from cloud_run_mcp.services.projects import (
    list_projects,
    create_project,
    ProjectSummary,
    CreateProjectResult,
    OperationTimeoutError,
    ProjectCreationError,
)

# Cloud Run operations
from cloud_run_mcp.services.run import (
    list_services,
    get_service,
    deploy_source,
    deploy_file_contents,
    deploy_image,
    ServiceSummary,
    DeployResult,
    DeploymentError,
)

# Logs operations
from cloud_run_mcp.services.logs import (
    get_logs,
    LogAggregator,
    PageFetchError,
)

# Proxy operations
from cloud_run_mcp.services.proxy import (
    ProxyManager,
    ProxySession,
    ProxyState,
    AlreadySessionActiveError,
    MissingDependencyError,
    ProxyStartFailedError,
)

# Sandbox operations
from cloud_run_mcp.services.sandbox import run_code_in_sandbox, SandboxError

__all__ = [
    # Project operations
    "list_projects",
    "create_project",
    "ProjectSummary",
    "CreateProjectResult",
    "OperationTimeoutError",
    "ProjectCreationError",
    # Cloud Run operations
    "list_services",
    "get_service",
    "deploy_source",
    "deploy_file_contents",
    "deploy_image",
    "ServiceSummary",
    "DeployResult",
    "DeploymentError",
    # Logs operations
    "get_logs",
    "LogAggregator",
    "PageFetchError",
    # Proxy operations
    "ProxyManager",
    "ProxySession",
    "ProxyState",
    "AlreadySessionActiveError",
    "MissingDependencyError",
    "ProxyStartFailedError",
    # Sandbox operations
    "run_code_in_sandbox",
    "SandboxError",
]

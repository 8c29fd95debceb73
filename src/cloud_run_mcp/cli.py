"""Cloud Run MCP command line.

This is the main entry point: it starts the MCP server and offers a few
helpers for configuring defaults and checking credentials.
"""

from __future__ import annotations

import asyncio
import sys

import click
from loguru import logger as log

from cloud_run_mcp import __version__
from cloud_run_mcp.config import load_settings
from cloud_run_mcp.types import OutputMode
from cloud_run_mcp.ui import CloudRunUI, spinner


def configure_logging(debug: bool) -> None:
    """Send logs to stderr; stdout carries the MCP stdio protocol."""
    log.remove()
    log.add(sys.stderr, level="DEBUG" if debug else "INFO")


# ==============================================================================
# Main CLI Group
# ==============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="cloud-run-mcp")
@click.option(
    "--debug",
    is_flag=True,
    envvar="CLOUD_RUN_MCP_DEBUG",
    help="Enable debug output",
)
@click.option(
    "--output",
    type=click.Choice(["normal", "json"]),
    default="normal",
    envvar="CLOUD_RUN_MCP_OUTPUT_MODE",
    help="Output format",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, output: str) -> None:
    """Cloud Run MCP - deploy and inspect Cloud Run services from AI assistants."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["output_mode"] = OutputMode(output)

    configure_logging(debug)


@cli.command("mcp")
@click.option(
    "--transport",
    "-t",
    type=click.Choice(["stdio", "http"]),
    default="stdio",
    help="Transport to use for MCP",
)
@click.option("--host", "-h", default="0.0.0.0", help="Host for HTTP transport")
@click.option("--port", "-p", default=3000, type=int, help="Port for HTTP transport")
@click.option(
    "--skip-iam-check",
    is_flag=True,
    help="Do not make deployed services publicly invokable",
)
def mcp_command(transport: str, host: str, port: int, skip_iam_check: bool) -> None:
    """Start an MCP server for AI assistants.

    Over HTTP the server runs in remote mode: tools are bound to the
    configured project and local-only tools are not offered.
    """
    from cloud_run_mcp.auth import ensure_gcp_credentials
    from cloud_run_mcp.mcp import create_server

    settings = load_settings()
    if skip_iam_check:
        settings.skip_iam_check = True

    credentials_available = ensure_gcp_credentials()
    try:
        server = create_server(settings, credentials_available, remote=transport == "http")
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    if transport == "stdio":
        server.run()
    else:
        server.run(transport=transport, host=host, port=port)


@cli.command("logs")
@click.option("--project", help="Google Cloud project ID (defaults to GOOGLE_CLOUD_PROJECT)")
@click.option("--region", help="Region of the service (defaults to GOOGLE_CLOUD_REGION)")
@click.option("--service", help="Name of the Cloud Run service (defaults to DEFAULT_SERVICE_NAME)")
@click.pass_context
def logs_command(ctx: click.Context, project: str | None, region: str | None, service: str | None) -> None:
    """Show logs for a Cloud Run service."""
    from cloud_run_mcp.services.logs import get_logs

    output_mode = ctx.obj.get("output_mode", OutputMode.NORMAL)
    ui = CloudRunUI(output_mode)
    settings = load_settings()

    project = project or settings.google_cloud_project
    region = region or settings.google_cloud_region
    service = service or settings.default_service_name

    ui.header("Logs")

    if not project:
        if output_mode == OutputMode.JSON:
            ui.print_json({"ok": False, "messages": ["Could not determine project"]})
        else:
            ui.error("Could not determine project")
            ui.info("Use --project or set GOOGLE_CLOUD_PROJECT")
        ctx.exit(1)

    try:
        with spinner(f"Fetching logs for '{service}'...", output_mode):
            logs = asyncio.run(get_logs(project, region, service))
    except Exception as e:
        if output_mode == OutputMode.JSON:
            ui.print_json({"ok": False, "messages": [f"Failed to fetch logs: {e}"]})
        else:
            ui.error(f"Failed to fetch logs: {e}")
        ctx.exit(1)

    if output_mode == OutputMode.JSON:
        ui.print_json({"ok": True, "project": project, "service": service, "logs": logs.splitlines()})
        return

    if not logs:
        ui.info("No logs available")
        return

    ui.step(f"Service: {service} ({project}, {region})")
    click.echo()
    click.echo(logs)


@cli.command("configure")
@click.option("--project", help="Default Google Cloud project ID")
@click.option("--region", help="Default region")
@click.option("--service", help="Default Cloud Run service name")
@click.option("--code-sandbox-url", help="URL of the code sandbox used by run_python_code")
@click.pass_context
def configure_command(
    ctx: click.Context,
    project: str | None,
    region: str | None,
    service: str | None,
    code_sandbox_url: str | None,
) -> None:
    """Save default project, region and service name."""
    ui = CloudRunUI(ctx.obj.get("output_mode", OutputMode.NORMAL))
    settings = load_settings()

    if project:
        settings.google_cloud_project = project
    if region:
        settings.google_cloud_region = region
    if service:
        settings.default_service_name = service
    if code_sandbox_url:
        settings.code_sandbox_url = code_sandbox_url

    path = settings.save_to_file()

    if ui.is_human:
        ui.header("Configure")
        ui.success(f"Saved configuration to {path}")
    else:
        ui.print_json({"ok": True, "path": str(path)})


@cli.command("check-auth")
@click.pass_context
def check_auth_command(ctx: click.Context) -> None:
    """Check that Google Cloud Application Default Credentials are usable."""
    from cloud_run_mcp.auth import ensure_gcp_credentials

    ui = CloudRunUI(ctx.obj.get("output_mode", OutputMode.NORMAL))
    ui.header("Credentials")

    available = ensure_gcp_credentials()
    if not ui.is_human:
        ui.print_json({"ok": available})
    elif available:
        ui.success("Application Default Credentials found.")
    else:
        ui.error("Google Cloud Application Default Credentials are not set up.")
        ui.info("Run: gcloud auth application-default login")

    if not available:
        ctx.exit(1)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()

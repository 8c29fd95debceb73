"""Cloud Run service operations.

Listing and inspecting services goes through the Cloud Run Admin API.
Deployments are delegated to ``gcloud run deploy``, which builds source
deployments with Cloud Build.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from loguru import logger as log

from cloud_run_mcp.client import Client, get_client


class DeploymentError(Exception):
    """Raised when ``gcloud run deploy`` fails."""

    def __init__(self, service: str, returncode: int, output: str):
        self.service = service
        self.returncode = returncode
        self.output = output
        detail = output.strip().splitlines()[-1] if output.strip() else f"exit code {returncode}"
        super().__init__(f"Deployment of service '{service}' failed: {detail}")


@dataclass
class ServiceSummary:
    """Summary information for a Cloud Run service."""

    name: str
    uri: str | None
    last_modifier: str | None = None

    @classmethod
    def from_response(cls, service: dict[str, Any]) -> ServiceSummary:
        """Create from API response (``projects/p/locations/r/services/name``)."""
        return cls(
            name=service["name"].split("/")[-1],
            uri=service.get("uri"),
            last_modifier=service.get("lastModifier"),
        )


@dataclass
class DeployResult:
    """Result of a deployment."""

    project: str
    region: str
    service: str
    uri: str | None

    @property
    def console_url(self) -> str:
        return f"https://console.cloud.google.com/run/detail/{self.region}/{self.service}?project={self.project}"


def list_services(project: str, region: str, client: Client | None = None) -> list[ServiceSummary]:
    """List Cloud Run services in a project and region."""
    client = client or get_client()
    return [ServiceSummary.from_response(s) for s in client.list_services(project, region)]


def get_service(project: str, region: str, service: str, client: Client | None = None) -> ServiceSummary | None:
    """Get a Cloud Run service, or None if it does not exist."""
    client = client or get_client()
    data = client.get_service(project, region, service)
    return ServiceSummary.from_response(data) if data is not None else None


def deploy_command(
    project: str,
    region: str,
    service: str,
    *,
    source: Path | None = None,
    image: str | None = None,
    skip_iam_check: bool = False,
) -> list[str]:
    """Build the ``gcloud run deploy`` invocation for a source folder or an image."""
    cmd = [
        "gcloud",
        "run",
        "deploy",
        service,
        f"--project={project}",
        f"--region={region}",
        "--quiet",
    ]
    if image is not None:
        cmd.append(f"--image={image}")
    else:
        cmd.append(f"--source={source}")
    if not skip_iam_check:
        cmd.append("--allow-unauthenticated")
    return cmd


def _run_deploy(cmd: list[str], project: str, region: str, service: str, client: Client | None) -> DeployResult:
    log.info(f"Deploying service '{service}' to project '{project}' ({region})...")
    result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        log.error(f"gcloud run deploy failed for '{service}': {result.stderr.strip()}")
        raise DeploymentError(service, result.returncode, result.stderr)

    log.info(f"Service '{service}' deployed")
    deployed = get_service(project, region, service, client=client)
    return DeployResult(project=project, region=region, service=service, uri=deployed.uri if deployed else None)


def stage_local_files(files: Sequence[str], staging_dir: Path) -> None:
    """Copy local files and folders into a staging folder, keeping their names."""
    for entry in files:
        path = Path(entry)
        if not path.exists():
            raise FileNotFoundError(f"File or folder not found: {entry}")
        if path.is_dir():
            shutil.copytree(path, staging_dir / path.name, dirs_exist_ok=True)
        else:
            shutil.copy2(path, staging_dir / path.name)


def write_file_contents(files: Sequence[dict[str, str]], staging_dir: Path) -> None:
    """Write ``{filename, content}`` objects into a staging folder."""
    for file in files:
        relative = PurePosixPath(file["filename"])
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"File name must be a relative path inside the project: {file['filename']}")
        target = staging_dir.joinpath(*relative.parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(file["content"])


def deploy_source(
    project: str,
    region: str,
    service: str,
    files: Sequence[str],
    skip_iam_check: bool = False,
    client: Client | None = None,
) -> DeployResult:
    """Deploy local files or a folder to Cloud Run.

    A single folder is deployed as-is; anything else is staged into a
    temporary folder first.

    Raises:
        DeploymentError: If ``gcloud run deploy`` fails
        FileNotFoundError: If one of the files does not exist
    """
    if len(files) == 1 and Path(files[0]).is_dir():
        cmd = deploy_command(project, region, service, source=Path(files[0]), skip_iam_check=skip_iam_check)
        return _run_deploy(cmd, project, region, service, client)

    with tempfile.TemporaryDirectory(prefix="cloud-run-mcp-") as tmp:
        staging_dir = Path(tmp)
        stage_local_files(files, staging_dir)
        cmd = deploy_command(project, region, service, source=staging_dir, skip_iam_check=skip_iam_check)
        return _run_deploy(cmd, project, region, service, client)


def deploy_file_contents(
    project: str,
    region: str,
    service: str,
    files: Sequence[dict[str, str]],
    skip_iam_check: bool = False,
    client: Client | None = None,
) -> DeployResult:
    """Deploy files given as in-memory contents to Cloud Run."""
    with tempfile.TemporaryDirectory(prefix="cloud-run-mcp-") as tmp:
        staging_dir = Path(tmp)
        write_file_contents(files, staging_dir)
        cmd = deploy_command(project, region, service, source=staging_dir, skip_iam_check=skip_iam_check)
        return _run_deploy(cmd, project, region, service, client)


def deploy_image(
    project: str,
    region: str,
    service: str,
    image_url: str,
    skip_iam_check: bool = False,
    client: Client | None = None,
) -> DeployResult:
    """Deploy a container image to Cloud Run."""
    cmd = deploy_command(project, region, service, image=image_url, skip_iam_check=skip_iam_check)
    return _run_deploy(cmd, project, region, service, client)

from pathlib import Path
from typing import Annotated

from fastmcp import FastMCP
from loguru import logger as log
from pydantic import Field

from cloud_run_mcp.config import Settings
from cloud_run_mcp.gateway import DEFAULT_PROXY_PORT, ToolGateway, gcp_tool
from cloud_run_mcp.prompts import register_prompts

ProjectArg = Annotated[str | None, Field(description="Google Cloud project ID containing the service")]
DeployProjectArg = Annotated[
    str | None,
    Field(
        description="Google Cloud project ID. Do not select it yourself, make sure the user provides "
        "or confirms the project ID."
    ),
]
RegionArg = Annotated[str | None, Field(description="Region where the service is located")]
ServiceArg = Annotated[str | None, Field(description="Name of the Cloud Run service")]


def _load_instructions() -> str:
    """Load MCP instructions from the instructions file."""
    instructions_path = Path(__file__).parent / "mcp_instructions.md"
    return instructions_path.read_text()


def create_server(
    settings: Settings,
    credentials_available: bool,
    remote: bool = False,
    gateway: ToolGateway | None = None,
) -> FastMCP:
    """Build the MCP server with its tools and prompts.

    The server owns a single ``ToolGateway`` and therefore a single proxy
    manager; every tool call shares them.

    Raises:
        ValueError: If ``remote`` is set and no project is configured
    """
    mcp = FastMCP("Cloud Run MCP", instructions=_load_instructions())
    gateway = gateway or ToolGateway(settings)

    if remote:
        _register_remote_tools(mcp, gateway, settings, credentials_available)
    else:
        _register_local_tools(mcp, gateway, credentials_available)
    register_prompts(mcp)

    log.info(f"Registered {'remote' if remote else 'local'} tools (credentials available: {credentials_available})")
    return mcp


def _register_local_tools(mcp: FastMCP, gateway: ToolGateway, credentials_available: bool) -> None:
    @mcp.tool("list_projects")
    @gcp_tool(credentials_available)
    async def list_projects() -> str:
        """Lists available GCP projects."""
        return await gateway.list_projects()

    @mcp.tool("create_project")
    @gcp_tool(credentials_available)
    async def create_project(
        project_id: Annotated[
            str | None,
            Field(description="Optional. The desired ID for the new GCP project. If not provided, an ID will be auto-generated."),
        ] = None,
    ) -> str:
        """Creates a new GCP project and attempts to attach it to the first available billing account.

        A project ID can be optionally specified; otherwise it will be automatically generated.
        """
        return await gateway.create_project(project_id)

    @mcp.tool("list_services")
    @gcp_tool(credentials_available)
    async def list_services(project: ProjectArg = None, region: RegionArg = None) -> str:
        """Lists Cloud Run services in a given project and region."""
        return await gateway.list_services(project, region)

    @mcp.tool("get_service")
    @gcp_tool(credentials_available)
    async def get_service(project: ProjectArg = None, region: RegionArg = None, service: ServiceArg = None) -> str:
        """Gets details for a specific Cloud Run service."""
        return await gateway.get_service(project, region, service)

    @mcp.tool("get_service_log")
    @gcp_tool(credentials_available)
    async def get_service_log(project: ProjectArg = None, region: RegionArg = None, service: ServiceArg = None) -> str:
        """Gets Logs and Error Messages for a specific Cloud Run service."""
        return await gateway.get_service_log(project, region, service)

    @mcp.tool("deploy_local_files")
    @gcp_tool(credentials_available)
    async def deploy_local_files(
        files: Annotated[
            list[str],
            Field(
                description="Array of absolute file paths to deploy "
                '(e.g. ["/home/user/project/src/index.js", "/home/user/project/package.json"])'
            ),
        ],
        project: DeployProjectArg = None,
        region: RegionArg = None,
        service: ServiceArg = None,
    ) -> str:
        """Deploy local files to Cloud Run.

        Takes an array of absolute file paths from the local filesystem that will be deployed.
        Use this tool if the files exist on the user local filesystem.
        """
        return await gateway.deploy_local_files(files, project, region, service)

    @mcp.tool("deploy_local_folder")
    @gcp_tool(credentials_available)
    async def deploy_local_folder(
        folder_path: Annotated[
            str, Field(description='Absolute path to the folder to deploy (e.g. "/home/user/project/src")')
        ],
        project: DeployProjectArg = None,
        region: RegionArg = None,
        service: ServiceArg = None,
    ) -> str:
        """Deploy a local folder to Cloud Run.

        Takes an absolute folder path from the local filesystem that will be deployed.
        Use this tool if the entire folder content needs to be deployed.
        """
        return await gateway.deploy_local_folder(folder_path, project, region, service)

    _register_file_contents_tool(mcp, gateway, credentials_available, fixed_project=None)
    _register_container_image_tool(mcp, gateway, credentials_available, fixed_project=None)

    @mcp.tool("run_python_code")
    async def run_python_code(code: Annotated[str, Field(description="The Python code to execute.")]) -> str:
        """Runs Python code in a sandboxed environment and returns the output."""
        return await gateway.run_python_code(code)

    @mcp.tool("start_proxy")
    @gcp_tool(credentials_available)
    async def start_proxy(
        project: ProjectArg = None,
        region: RegionArg = None,
        service: ServiceArg = None,
        port: Annotated[int, Field(description="Local port the proxy listens on")] = DEFAULT_PROXY_PORT,
    ) -> str:
        """Starts a local proxy to a Cloud Run service.

        Requests to http://localhost:<port> are forwarded to the service with the
        caller's credentials. Only one proxy can run at a time.
        """
        return await gateway.start_proxy(project, region, service, port)

    @mcp.tool("stop_proxy")
    @gcp_tool(credentials_available)
    async def stop_proxy() -> str:
        """Stops the running local proxy, if any."""
        return await gateway.stop_proxy()


def _register_remote_tools(
    mcp: FastMCP,
    gateway: ToolGateway,
    settings: Settings,
    credentials_available: bool,
) -> None:
    project = settings.google_cloud_project
    if not project:
        raise ValueError(
            "Cannot register remote tools: GCP project ID could not be determined. "
            "Please ensure GOOGLE_CLOUD_PROJECT environment variable is set."
        )

    @mcp.tool("list_services", description=f"Lists Cloud Run services in GCP project {project} and a given region.")
    @gcp_tool(credentials_available)
    async def list_services(region: RegionArg = None) -> str:
        return await gateway.list_services(project, region)

    @mcp.tool("get_service", description=f"Gets details for a specific Cloud Run service in GCP project {project}.")
    @gcp_tool(credentials_available)
    async def get_service(region: RegionArg = None, service: ServiceArg = None) -> str:
        return await gateway.get_service(project, region, service)

    @mcp.tool(
        "get_service_log",
        description=f"Gets Logs and Error Messages for a specific Cloud Run service in GCP project {project}.",
    )
    @gcp_tool(credentials_available)
    async def get_service_log(region: RegionArg = None, service: ServiceArg = None) -> str:
        return await gateway.get_service_log(project, region, service)

    _register_file_contents_tool(mcp, gateway, credentials_available, fixed_project=project)
    _register_container_image_tool(mcp, gateway, credentials_available, fixed_project=project)


def _register_file_contents_tool(
    mcp: FastMCP,
    gateway: ToolGateway,
    credentials_available: bool,
    fixed_project: str | None,
) -> None:
    files_arg = Annotated[
        list[dict[str, str]],
        Field(
            description="Array of file objects containing filename and content, e.g. "
            '[{"filename": "src/index.js", "content": "..."}]'
        ),
    ]

    if fixed_project is None:

        @mcp.tool("deploy_file_contents")
        @gcp_tool(credentials_available)
        async def deploy_file_contents(
            files: files_arg,
            project: Annotated[
                str | None,
                Field(
                    description="Google Cloud project ID. If provided, make sure the user confirms the "
                    "project ID they want to deploy to."
                ),
            ] = None,
            region: RegionArg = None,
            service: ServiceArg = None,
        ) -> str:
            """Deploy files to Cloud Run by providing their contents directly.

            Takes an array of file objects containing filename and content.
            Use this tool if the files only exist in the current chat context.
            """
            return await gateway.deploy_file_contents(files, project, region, service)

    else:

        @mcp.tool(
            "deploy_file_contents",
            description=f"Deploy files to Cloud Run by providing their contents directly to the GCP project {fixed_project}.",
        )
        @gcp_tool(credentials_available)
        async def deploy_file_contents_remote(
            files: files_arg,
            region: RegionArg = None,
            service: ServiceArg = None,
        ) -> str:
            log.info(f"New deploy request (remote): project={fixed_project} region={region} service={service}")
            return await gateway.deploy_file_contents(files, fixed_project, region, service)


def _register_container_image_tool(
    mcp: FastMCP,
    gateway: ToolGateway,
    credentials_available: bool,
    fixed_project: str | None,
) -> None:
    image_arg = Annotated[
        str, Field(description='The URL of the container image to deploy (e.g. "gcr.io/cloudrun/hello")')
    ]

    if fixed_project is None:

        @mcp.tool("deploy_container_image")
        @gcp_tool(credentials_available)
        async def deploy_container_image(
            image_url: image_arg,
            project: DeployProjectArg = None,
            region: RegionArg = None,
            service: ServiceArg = None,
        ) -> str:
            """Deploys a container image to Cloud Run.

            Use this tool if the user provides a container image URL.
            """
            return await gateway.deploy_container_image(image_url, project, region, service)

    else:

        @mcp.tool(
            "deploy_container_image",
            description=f"Deploys a container image to Cloud Run in the GCP project {fixed_project}. "
            "Use this tool if the user provides a container image URL.",
        )
        @gcp_tool(credentials_available)
        async def deploy_container_image_remote(
            image_url: image_arg,
            region: RegionArg = None,
            service: ServiceArg = None,
        ) -> str:
            return await gateway.deploy_container_image(image_url, fixed_project, region, service)

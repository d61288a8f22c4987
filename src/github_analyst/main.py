from logging import Logger
from typing import Literal

import click
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.utilities.logging import get_logger

from github_analyst.clients.github import GitHubAnalystClient
from github_analyst.servers.analyst import AnalystServer

logger: Logger = get_logger(name=__name__)

mcp: FastMCP[None] = FastMCP[None](name="GitHub Analyst")

mcp.add_middleware(middleware=LoggingMiddleware(include_payloads=True, logger=logger))

analyst_server: AnalystServer = AnalystServer(github_client=GitHubAnalystClient(), logger=logger)
_ = analyst_server.register_tools(fastmcp=mcp)


@click.command()
@click.option(
    "--mcp-transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    help="The transport to run the MCP server on",
)
def run_mcp(mcp_transport: Literal["stdio", "streamable-http"]):
    mcp.run(transport=mcp_transport)


if __name__ == "__main__":
    run_mcp()

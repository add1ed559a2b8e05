"""MCP server exposing page-cloner tools."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

from mcp.server.fastmcp import FastMCP

from .cloner import clone_page
from .config import CloneConfig
from .jobs import JobManager

logger = logging.getLogger("page_cloner.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="page-cloner")
jobs = JobManager(CloneConfig(output_root=Path("output").resolve()))


@mcp.tool()
async def clone(
    url: str,
    headless: bool = True,
) -> Dict[str, object]:
    """Clone a web page into a local folder and return the run summary."""

    config = CloneConfig(output_root=jobs.config.output_root, headless=headless)
    result = await clone_page(url, config)
    return result.to_dict()


@mcp.tool()
async def start_clone(
    url: str,
) -> str:
    """Start cloning a page in the background and return its job id."""

    return jobs.start(url).id


@mcp.tool()
async def clone_status(
    job_id: str,
    since: int = 0,
) -> Dict[str, object]:
    """Report a job's status plus the events recorded after offset ``since``."""

    summary = jobs.get(job_id).summary()
    summary["events"] = [event.to_dict() for event in jobs.events(job_id, since)]
    return summary


@mcp.tool()
async def cancel_clone(
    job_id: str,
) -> bool:
    """Cancel a running clone job; returns False if it already finished."""

    return jobs.cancel(job_id)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()

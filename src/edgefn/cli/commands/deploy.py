"""edgefn deploy command."""

import asyncio
import logging
from typing import List, Optional

import typer
from rich.console import Console

from ...config import DeployConfig
from ...core.exceptions import EdgeFnError
from ...functions.deploy import DeploymentOrchestrator, DeploySummary

console = Console()


async def _deploy(
    config: DeployConfig,
    slugs: Optional[List[str]],
    import_map: Optional[str],
    no_verify_jwt: Optional[bool],
    timeout: Optional[float],
) -> DeploySummary:
    orchestrator = DeploymentOrchestrator(config)
    coro = orchestrator.deploy(slugs, import_map, no_verify_jwt)
    if timeout is None:
        return await coro
    return await asyncio.wait_for(coro, timeout)


def deploy_command(
    slugs: Optional[List[str]],
    project_ref: Optional[str],
    import_map: Optional[str],
    no_verify_jwt: Optional[bool],
    use_docker: bool,
    debug: bool,
    timeout: Optional[float],
):
    if debug:
        logging.getLogger("edgefn").setLevel(logging.DEBUG)

    config = DeployConfig.from_env(
        project_ref=project_ref,
        bundler="docker" if use_docker else "native",
        debug=debug or None,
    )
    if not config.project_ref:
        console.print(
            "[red]Error:[/red] Project ref is required. "
            "Pass [bold]--project-ref[/bold] or set EDGEFN_PROJECT_REF"
        )
        raise typer.Exit(1)

    try:
        summary = asyncio.run(
            _deploy(config, slugs or None, import_map, no_verify_jwt, timeout)
        )
    except asyncio.TimeoutError:
        console.print(f"[red]Error:[/red] Deploy timed out after {timeout}s")
        raise typer.Exit(1)
    except EdgeFnError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    for slug in summary.skipped:
        console.print(f"[yellow]Skipped[/yellow] {slug} (disabled)")
    if not summary.deployed:
        console.print(f"No Functions were deployed on project [cyan]{summary.project_ref}[/cyan]")
        return
    console.print(summary.message())
    console.print(
        f"You can inspect your deployment in the Dashboard: {summary.functions_url}"
    )

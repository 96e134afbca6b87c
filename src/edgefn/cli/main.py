"""Main CLI entry point for edgefn."""

from importlib import metadata
from typing import List, Optional

import typer


def get_version() -> str:
    """Get the package version from metadata."""
    try:
        return metadata.version("edgefn")
    except metadata.PackageNotFoundError:
        return "unknown"


# command: edgefn
app = typer.Typer(
    name="edgefn",
    help="Bundle and deploy Edge Functions",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool):
    if value:
        typer.echo(f"edgefn {get_version()}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True
    ),
):
    """Bundle and deploy Edge Functions."""


# command: edgefn deploy
@app.command("deploy")
def deploy_cmd(
    slugs: Optional[List[str]] = typer.Argument(
        None, help="Functions to deploy (defaults to every function found)"
    ),
    project_ref: Optional[str] = typer.Option(
        None, "--project-ref", help="Project ref of the remote project"
    ),
    import_map: Optional[str] = typer.Option(
        None, "--import-map", help="Path to import map file"
    ),
    no_verify_jwt: Optional[bool] = typer.Option(
        None,
        "--no-verify-jwt/--verify-jwt",
        help="Disable or enable JWT verification for the Function",
        show_default=False,
    ),
    use_docker: bool = typer.Option(
        True, "--use-docker/--use-native", help="Bundle inside a container"
    ),
    debug: bool = typer.Option(False, "--debug", help="Verbose bundler output"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Abort the whole deploy after this many seconds"
    ),
):
    """Deploy Functions to the remote project."""
    from .commands.deploy import deploy_command

    return deploy_command(
        slugs, project_ref, import_map, no_verify_jwt, use_docker, debug, timeout
    )


if __name__ == "__main__":
    app()

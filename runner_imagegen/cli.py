"""Thin CLI wrapper for runner_imagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
import os
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console

from runner_imagegen import __version__
from runner_imagegen.components.schema import RecipeFileSchema
from runner_imagegen.config import get_settings, print_settings_json
from runner_imagegen.errors import ConfigurationError
from runner_imagegen.types import Architecture, AssetKind, Os, StagedAsset

app = typer.Typer(
    name="runner-imagegen",
    help="Runner Image Generator - assemble, version and signal image builds",
    no_args_is_help=True,
)
console = Console()


class PreviewStager:
    """Asset stager that uploads nothing and returns placeholder URLs."""

    def stage(self, path: str, name: str, principal: str | None) -> StagedAsset:
        kind = AssetKind.ZIP if Path(path).is_dir() else AssetKind.FILE
        key = name.replace(" ", "-").lower()
        return StagedAsset(url=f"s3://preview-assets/{key}", kind=kind)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"runner-imagegen version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Runner Image Generator - assemble, version and signal image builds."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print(f"  Database URL:        {settings.db_url}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Signal timeout:      {settings.signal_timeout}s")
        console.print(f"  Log excerpt limit:   {settings.log_excerpt_limit} bytes")


def _load_recipe(path: Path) -> RecipeFileSchema:
    from runner_imagegen.components.io import load_recipe_file

    try:
        return load_recipe_file(path)
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        console.print(f"[red]Validation error:[/red] {e}")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from None


@app.command()
def render(
    recipe_file: Annotated[
        Path,
        typer.Argument(help="Recipe file (.yaml, .yml or .json)"),
    ],
    os_name: Annotated[
        Os | None,
        typer.Option("--os", help="Override the target OS"),
    ] = None,
    arch: Annotated[
        Architecture | None,
        typer.Option("--arch", help="Override the target architecture"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Render the build commands and Dockerfile of a recipe.

    Assets are not uploaded; they are shown with placeholder URLs.
    """
    from runner_imagegen.builds.assembler import (
        DEFAULT_DOCKERFILE_TEMPLATE,
        assemble_build_script,
    )
    from runner_imagegen.builds.buildspec import check_platform, default_base_image

    recipe = _load_recipe(recipe_file)
    options = recipe.options
    target_os = os_name or options.os
    target_arch = arch or options.architecture

    try:
        check_platform(target_os)
        script = assemble_build_script(
            recipe.to_components(recipe_file.parent),
            target_os,
            target_arch,
            base_image=options.base_image or default_base_image(target_os),
            stager=PreviewStager(),
            template=recipe.template or DEFAULT_DOCKERFILE_TEMPLATE,
            environment=options.environment,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error ({e.code}):[/red] {e}")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print_json(
            data={"commands": list(script.commands), "dockerfile": script.dockerfile}
        )
        return

    console.print("[bold]Dockerfile:[/bold]")
    console.print(script.dockerfile, markup=False, highlight=False)
    console.print("[bold]Build commands:[/bold]")
    for command in script.commands:
        console.print(command, markup=False, highlight=False)


@app.command()
def version(
    recipe_file: Annotated[
        Path,
        typer.Argument(help="Recipe file (.yaml, .yml or .json)"),
    ],
    name: Annotated[
        str,
        typer.Option("--name", "-n", help="Recipe name"),
    ] = "runner-image",
) -> None:
    """Print the content-addressed version of a recipe."""
    from runner_imagegen.builds.assembler import DEFAULT_DOCKERFILE_TEMPLATE
    from runner_imagegen.builds.versioning import (
        compute_recipe_version,
        create_recipe_inputs,
    )

    recipe = _load_recipe(recipe_file)
    try:
        inputs = create_recipe_inputs(
            name=name,
            os=recipe.options.os,
            arch=recipe.options.architecture,
            components=recipe.to_components(recipe_file.parent),
            template=recipe.template or DEFAULT_DOCKERFILE_TEMPLATE,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error ({e.code}):[/red] {e}")
        raise typer.Exit(code=1) from None

    recipe_version = compute_recipe_version(inputs)
    console.print(recipe_version.version)


@app.command()
def signal(
    exit_code: Annotated[
        int,
        typer.Option("--exit-code", help="Exit code of the build phase"),
    ],
    log_path: Annotated[
        Path,
        typer.Option("--log", help="Path to the build log"),
    ],
    physical_resource_id: Annotated[
        str | None,
        typer.Option(
            "--physical-resource-id",
            help="Physical resource id (default: $REPO_ARN)",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the signal payload as JSON"),
    ] = False,
) -> None:
    """Send the completion signal of a build.

    Correlation ids and the response URL are read from the environment
    (STACK_ID, REQUEST_ID, LOGICAL_RESOURCE_ID, RESPONSE_URL). The command
    succeeds whatever the build status is; the status travels in the signal.
    """
    from runner_imagegen.builds.signal import (
        ENV_REPO_ARN,
        CompletionSignaler,
        CorrelationIds,
    )
    from runner_imagegen.types import UNSPECIFIED

    settings = get_settings()
    signaler = CompletionSignaler(
        correlation=CorrelationIds.from_env(os.environ),
        physical_resource_id=physical_resource_id
        or os.environ.get(ENV_REPO_ARN, UNSPECIFIED),
        limit=settings.log_excerpt_limit,
        timeout=settings.signal_timeout,
    )
    outcome = signaler.complete(exit_code, log_path)

    if json_output:
        console.print_json(data=outcome.signal.to_payload())
    else:
        console.print(
            f"Status: {outcome.signal.status.value} "
            f"(delivered: {'yes' if outcome.delivered else 'no'})"
        )


invocations_app = typer.Typer(help="Inspect recorded build invocations")
app.add_typer(invocations_app, name="invocations")


@invocations_app.command("list")
def invocations_list(
    builder: Annotated[
        str | None,
        typer.Option("--builder", "-b", help="Filter by builder name"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of invocations"),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List recorded build invocations, newest first."""
    from runner_imagegen.builds.service import list_invocations
    from runner_imagegen.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        invocations = list_invocations(session, builder_name=builder, limit=limit)

        if json_output:
            data = [
                {
                    "id": inv.id,
                    "builder_name": inv.builder_name,
                    "build_id": inv.build_id,
                    "recipe_version": inv.recipe_version,
                    "source": inv.source,
                    "status": inv.status,
                    "signal_delivered": inv.signal_delivered,
                }
                for inv in invocations
            ]
            console.print_json(data=data)
            return

        if not invocations:
            console.print("No invocations found.")
            return

        for inv in invocations:
            console.print(
                f"{inv.id:>5}  {inv.builder_name}  {inv.recipe_version}  "
                f"{inv.source}  {inv.status}"
            )


if __name__ == "__main__":
    app()

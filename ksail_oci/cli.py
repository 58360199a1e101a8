"""Thin CLI wrapper for ksail_oci.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ksail_oci import __version__
from ksail_oci.config import get_settings, print_settings_json
from ksail_oci.errors import KsailOciError, error_to_dict
from ksail_oci.types import BuildRequest

app = typer.Typer(
    name="ksail-oci",
    help="KSail OCI - package Kubernetes manifests as OCI artifacts",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ksail-oci version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


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
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override the configured log level"),
    ] = None,
) -> None:
    """KSail OCI - package Kubernetes manifests as OCI artifacts."""
    try:
        settings = get_settings()
    except ValidationError as e:
        _fail(e, False, "Invalid configuration")
    configure_logging((log_level or settings.log_level).upper())


def _fail(error: Exception, json_output: bool, prefix: str) -> NoReturn:
    if json_output:
        typer.echo(json.dumps({"error": error_to_dict(error)}, indent=2))
    else:
        console.print(f"[red]{prefix}: {escape(str(error))}[/red]")
    raise typer.Exit(code=1)


def _compose_request(
    source_path: str | None,
    registry: str | None,
    version: str | None,
    repository: str | None,
    name: str | None,
    request_file: Path | None,
) -> BuildRequest:
    """Merge a request file (if any) with flags; flags win."""
    from ksail_oci.builds.io import load_build_request

    request = load_build_request(request_file) if request_file else BuildRequest()
    overrides = {
        "source_path": source_path,
        "registry_endpoint": registry,
        "version": version,
        "repository": repository,
        "name": name,
    }
    return request.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )


SourceArg = Annotated[
    str | None,
    typer.Argument(help="Directory containing manifest files"),
]
RegistryOpt = Annotated[
    str | None,
    typer.Option("--registry", "-r", help="Registry endpoint (host[:port])"),
]
VersionOpt = Annotated[
    str | None,
    typer.Option("--version", "-v", help="Semantic version or 'latest'"),
]
RepositoryOpt = Annotated[
    str | None,
    typer.Option("--repository", help="Repository path (default: source dir name)"),
]
NameOpt = Annotated[
    str | None,
    typer.Option("--name", "-n", help="Artifact name (default: repository name)"),
]
FileOpt = Annotated[
    Path | None,
    typer.Option("--file", "-f", help="Build request file (YAML or JSON)"),
]
JsonOpt = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


@app.command()
def config(json_output: JsonOpt = False) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Registry:[/bold]")
        console.print(f"  Insecure registry:   {settings.insecure_registry}")
        username = settings.registry_username or "(none)"
        password = "(set)" if settings.registry_password else "(none)"
        console.print(f"  Username:            {username}")
        console.print(f"  Password:            {password}")
        console.print(f"  User agent:          {settings.user_agent}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Push timeout (s):    {settings.push_timeout}")


@app.command()
def validate(
    source_path: SourceArg = None,
    registry: RegistryOpt = None,
    version: VersionOpt = None,
    repository: RepositoryOpt = None,
    name: NameOpt = None,
    request_file: FileOpt = None,
    json_output: JsonOpt = False,
) -> None:
    """Validate a build request and list the manifests it would package.

    Nothing is pushed.
    """
    from ksail_oci.builds.collector import (
        NoManifestFilesError,
        collect_manifest_files,
    )
    from ksail_oci.builds.validation import validate_build_request
    from ksail_oci.registry.publisher import format_reference

    try:
        request = _compose_request(
            source_path, registry, version, repository, name, request_file
        )
        validated = validate_build_request(request)
        files = collect_manifest_files(validated.source_path)
        if not files:
            raise NoManifestFilesError(validated.source_path)
    except (KsailOciError, ValidationError, ValueError, OSError, yaml.YAMLError) as e:
        _fail(e, json_output, "Validation failed")

    reference = format_reference(validated)
    if json_output:
        output = {
            "name": validated.name,
            "sourcePath": validated.source_path,
            "registryEndpoint": validated.registry_endpoint,
            "repository": validated.repository,
            "version": validated.version,
            "reference": reference,
            "files": files,
        }
        typer.echo(json.dumps(output, indent=2))
    else:
        console.print(f"[green]✓ Valid build request for {reference}[/green]")
        console.print(f"  Name:       {validated.name}")
        console.print(f"  Source:     {escape(validated.source_path)}")
        console.print(f"  Manifests:  {len(files)}")
        for path in files:
            console.print(f"    {escape(path)}")


@app.command()
def push(
    source_path: SourceArg = None,
    registry: RegistryOpt = None,
    version: VersionOpt = None,
    repository: RepositoryOpt = None,
    name: NameOpt = None,
    request_file: FileOpt = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Push timeout in seconds"),
    ] = None,
    json_output: JsonOpt = False,
) -> None:
    """Package a manifest directory and push it to a registry."""
    from ksail_oci.builds.service import WorkloadArtifactBuilder

    settings = get_settings()
    builder = WorkloadArtifactBuilder(settings=settings)

    try:
        request = _compose_request(
            source_path, registry, version, repository, name, request_file
        )
        result = builder.build(
            request,
            timeout=timeout if timeout is not None else settings.push_timeout,
        )
    except (KsailOciError, ValidationError, ValueError, OSError, yaml.YAMLError) as e:
        _fail(e, json_output, "Push failed")

    artifact = result.artifact
    if json_output:
        output = {
            **artifact.model_dump(mode="json", by_alias=True),
            "reference": result.reference,
            "digest": result.digest,
        }
        typer.echo(json.dumps(output, indent=2))
    else:
        console.print(f"[green]✓ Pushed {result.reference}[/green]")
        console.print(f"  Name:       {artifact.name}")
        console.print(f"  Repository: {artifact.repository}")
        console.print(f"  Tag:        {artifact.tag}")
        console.print(f"  Digest:     {result.digest}")
        console.print(f"  Created:    {artifact.created_at.isoformat()}")


if __name__ == "__main__":
    app()

# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT
"""
CLI interface for tarsmith.

This module provides a command-line interface to create container build archives from an image
configuration file. It exposes three subcommands:

- `build`: stages the assembly, writes the Dockerfile and creates the build archive.
- `dockerfile`: prints the Dockerfile of an image, generated or interpolated.
- `scaffold`: generates a starter Python script that creates an archive through the library API,
  so the user can customize it further.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import black
import click
import isort

from tarsmith.assembly.manager import AssemblyManager, resolve_dockerfile
from tarsmith.config import DEFAULT_ASSEMBLY_NAME, ImageConfiguration, load_image_config
from tarsmith.dockerfile import DEFAULT_BASE_IMAGE, generate_dockerfile, validate_port
from tarsmith.dockerfile.interpolate import interpolate_dockerfile
from tarsmith.errors import TarsmithError
from tarsmith.sysutils import mkdir_for_path

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

# Make "-h" behave like "--help"
CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


def _load(config: str) -> ImageConfiguration:
    try:
        return load_image_config(config)
    except TarsmithError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(
    package_name="tarsmith",
    prog_name="tarsmith",
    message="%(prog)s %(version)s",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug diagnostics")
def cli(verbose: bool) -> None:
    """tarsmith: stage assemblies and pack them into container build archives."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


@cli.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict", is_flag=True, help="Fail on file set sources that do not exist")
def build(config: str, strict: bool) -> None:
    """
    Create the build archive of the image described by CONFIG.

    The archive path is printed on success.
    """
    image = _load(config)
    try:
        archive = AssemblyManager(strict=strict).create_archive(
            image.name, image.context, image.build
        )
    except TarsmithError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(str(archive))


@cli.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output",
    type=click.Path(),
    help="Write the Dockerfile to file (stdout if omitted)",
)
def dockerfile(config: str, output: Optional[str]) -> None:
    """
    Print the Dockerfile of the image described by CONFIG.

    A user Dockerfile is printed after interpolation; otherwise the Dockerfile is generated from
    the build configuration.
    """
    image = _load(config)
    build_config = image.build
    try:
        if build_config.is_dockerfile_mode:
            path = resolve_dockerfile(build_config, image.context)
            content = interpolate_dockerfile(
                path, image.context.project.properties, build_config.filter
            )
        else:
            assembly = AssemblyManager.generator_assembly(build_config, image.context)
            content = generate_dockerfile(build_config, assembly)
    except (TarsmithError, OSError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc

    if output:
        mkdir_for_path(output)
        Path(output).write_text(content)
        click.echo(f"Dockerfile written to {output}")
    else:
        click.echo(content, nl=False)


@cli.command()
@click.option(
    "--image",
    default="tarsmith/app:latest",
    help="Image name (defaults to 'tarsmith/app:latest')",
)
@click.option(
    "--from",
    "from_image",
    default=DEFAULT_BASE_IMAGE,
    help=f"Base image (defaults to '{DEFAULT_BASE_IMAGE}')",
)
@click.option("--port", "ports", multiple=True, help="Port to expose, may be repeated")
@click.option("--output", type=click.Path(), help="Write scaffold to file (stdout if omitted)")
def scaffold(
    image: str,
    from_image: str,
    ports: Tuple[str, ...],
    output: Optional[str],
) -> None:
    """
    Generate a starter tarsmith script instead of building.

    The generated script describes the project, its assembly and the image build in Python,
    then creates the build archive. It can be saved to a file (via --output) or printed to stdout.
    """
    try:
        checked_ports = [validate_port(p) for p in ports]
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    lines: List[str] = [
        "#!/usr/bin/env python3",
        '"""',
        f"Create the build archive of {image} using tarsmith.",
        "",
        "Steps:",
        "1) Describe the project and the assembly.",
        "2) Describe the image build.",
        "3) Stage the assembly, generate the Dockerfile and write the archive.",
        '"""',
        "",
        "from pathlib import Path",
        "",
        "from tarsmith.assembly.manager import AssemblyManager",
        "from tarsmith.config import AssemblyConfiguration, BuildConfiguration, BuildContext",
        "from tarsmith.config import FileSet, ProjectDescriptor",
        "",
        f'IMAGE = "{image}"',
        f'BASE_IMAGE = "{from_image}"',
        f"PORTS = {checked_ports!r}",
        "",
        "def main() -> None:",
        '    """Create the build archive and print its path."""',
        "    project = ProjectDescriptor(base_dir=Path(__file__).resolve().parent)",
        "    assembly = AssemblyConfiguration(",
        f'        name="{DEFAULT_ASSEMBLY_NAME}",',
        '        file_sets=[FileSet(directory="target", includes=["app.jar"])],',
        "    )",
        "    build = BuildConfiguration(",
        "        from_image=BASE_IMAGE,",
        "        ports=PORTS,",
        "        assembly=assembly,",
        "    )",
        "",
        "    manager = AssemblyManager()",
        "    archive = manager.create_archive(IMAGE, BuildContext(project=project), build)",
        "    print(archive)",
        "",
        'if __name__ == "__main__":',
        "    main()",
    ]

    content: str = "\n".join(lines) + "\n"

    content = isort.code(content, config=isort.Config(profile="black", line_length=100))
    content = black.format_str(
        content,
        mode=black.Mode(line_length=100, target_versions={black.TargetVersion.PY310}),
    )

    if output:
        mkdir_for_path(output)
        Path(output).write_text(content)
        click.echo(f"Scaffold written to {output}")
    else:
        click.echo(content)


def main() -> None:
    """Entry point for the tarsmith CLI when installed as a script."""
    cli()


if __name__ == "__main__":
    main()

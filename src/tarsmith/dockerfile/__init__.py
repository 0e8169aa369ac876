# Copyright (C) 2024 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
This module provides the Dockerfile generator: a builder collecting Dockerfile instructions, the
function rendering them, and `generate_dockerfile`, which turns a `BuildConfiguration` and its
assembly into Dockerfile text.

It also verifies user supplied Dockerfiles: `verify_assembly_reference` checks that such a file
copies the staged assembly into the image.
"""

import json
import logging
import re
from typing import List

from tarsmith.config import (
    Arguments,
    AssemblyConfiguration,
    BuildConfiguration,
    HealthCheckConfiguration,
)
from tarsmith.dockerfile.cmds import (
    ArgumentsDockerBuildCommand,
    CopyDockerBuildCommand,
    DockerBuildCommand,
    HealthCheckDockerBuildCommand,
    StrDockerBuildCommand,
)
from tarsmith.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_IMAGE = "busybox:latest"
DOCKERFILE_NAME = "Dockerfile"
ASSEMBLY_TMP_DIR = "/tmp/build"

_PORT_PATTERN = re.compile(r"\d+(/(tcp|udp))?")
_NEEDS_QUOTES = re.compile(r"[\s\"'\\]")


def render_dockerfile_content(commands: List[DockerBuildCommand]) -> str:
    """
    Generates the content of a Dockerfile from a list of Dockerfile instructions.

    Parameters:
        commands (List[DockerBuildCommand]): The instructions to be included in the Dockerfile.

    Returns:
        str: The generated Dockerfile content as a string.
    """
    joined_lines = "\n".join(c.get_str_for_dockerfile() for c in commands)
    file_content = joined_lines.strip() + "\n"
    return file_content


def quote_value(value: str) -> str:
    """
    Quotes a LABEL or ENV value when it is empty or holds whitespace, quotes or backslashes.
    """
    if value and not _NEEDS_QUOTES.search(value):
        return value
    return json.dumps(value, ensure_ascii=False)


def validate_port(port: str) -> str:
    """
    Checks that a port is given as ``<number>[/tcp|/udp]``.

    Raises:
        ValueError: If the port has another form.
    """
    port = str(port).strip()
    if not _PORT_PATTERN.fullmatch(port):
        raise ValueError(f"Invalid port mapping '{port}', expected <number>[/tcp|/udp]")
    return port


class DockerfileBuilder:
    """
    Collects Dockerfile instructions.

    Instructions are emitted in the order the methods are called; `generate_dockerfile` calls them
    in the order required for the generated Dockerfiles.
    """

    def __init__(self) -> None:
        self._build_commands: List[DockerBuildCommand] = []

    def from_image(self, tag: str) -> None:
        """
        Sets the base image for the Dockerfile.

        Parameters:
            tag (str): The image reference to use as the base.
        """
        self._build_commands.append(StrDockerBuildCommand(f"FROM {tag}"))

    def maintainer(self, maintainer: str) -> None:
        self._build_commands.append(StrDockerBuildCommand(f"MAINTAINER {maintainer}"))

    def workdir(self, path: str) -> None:
        """
        Sets the working directory for subsequent instructions in the Dockerfile.

        Parameters:
            path (str): The path to set as the working directory.
        """
        self._build_commands.append(StrDockerBuildCommand(f"WORKDIR {path}"))

    def env(self, name: str, value: str) -> None:
        """
        Sets an environment variable in the Dockerfile.

        Parameters:
            name (str): The name of the environment variable.
            value (str): The value of the environment variable, quoted when needed.
        """
        self._build_commands.append(StrDockerBuildCommand(f"ENV {name}={quote_value(value)}"))

    def label(self, name: str, value: str) -> None:
        self._build_commands.append(StrDockerBuildCommand(f"LABEL {name}={quote_value(value)}"))

    def expose(self, ports: List[str]) -> None:
        """
        Adds an EXPOSE instruction listing all the given ports.

        Raises:
            ValueError: If a port is not of the form ``<number>[/tcp|/udp]``.
        """
        checked = [validate_port(p) for p in ports]
        self._build_commands.append(StrDockerBuildCommand(f"EXPOSE {' '.join(checked)}"))

    def run(self, command: str) -> None:
        """
        Adds a RUN instruction to the Dockerfile.

        Parameters:
            command (str): The shell command to run in the build stage.
        """
        self._build_commands.append(StrDockerBuildCommand(f"RUN {command}"))

    def run_multiple(self, commands: List[str]) -> None:
        """
        Adds multiple commands to be run in a single RUN instruction in the Dockerfile.

        Parameters:
            commands (List[str]): The commands to run, chained with ``&&``.
        """
        self.run(command=" && ".join(commands))

    def copy(
        self,
        source: str,
        destination: str,
        chown: str | None = None,
    ) -> None:
        """
        Adds a COPY instruction.

        Parameters:
            source (str): Path inside the build archive.
            destination (str): Path inside the image.
            chown (str, optional): Ownership of the copied files.
        """
        self._build_commands.append(
            CopyDockerBuildCommand(sources=[source], destination=destination, chown=chown)
        )

    def volume(self, volumes: List[str]) -> None:
        self._build_commands.append(StrDockerBuildCommand(f"VOLUME {json.dumps(volumes)}"))

    def user(self, name: str) -> None:
        """
        Sets the USER for subsequent instructions in the Dockerfile.

        Parameters:
            name (str): The user name or UID.
        """
        self._build_commands.append(StrDockerBuildCommand(f"USER {name}"))

    def healthcheck(self, healthcheck: HealthCheckConfiguration) -> None:
        self._build_commands.append(HealthCheckDockerBuildCommand(healthcheck))

    def entrypoint(self, arguments: Arguments) -> None:
        """
        Sets the ENTRYPOINT for the container, in shell form or exec form.
        """
        self._build_commands.append(ArgumentsDockerBuildCommand("ENTRYPOINT", arguments))

    def cmd(self, arguments: Arguments) -> None:
        """
        Sets the default CMD for the container, in shell form or exec form.
        """
        self._build_commands.append(ArgumentsDockerBuildCommand("CMD", arguments))

    def content(self) -> str:
        return render_dockerfile_content(commands=self._build_commands)


def _copy_assembly(builder: DockerfileBuilder, assembly: AssemblyConfiguration) -> None:
    target_dir = assembly.target_dir
    if not target_dir.startswith("/"):
        raise ConfigurationError(f"Assembly target directory must be absolute: '{target_dir}'")

    user_parts = assembly.user.split(":")
    if len(user_parts) > 2:
        # user:group:run-user, files are copied as root then handed over
        owner, group, run_user = user_parts[0], user_parts[1], user_parts[2]
        staging_target = ASSEMBLY_TMP_DIR + target_dir.rstrip("/")
        builder.user("root")
        builder.copy(assembly.name, staging_target)
        builder.run_multiple(
            [
                f"chown -R {owner}:{group} {ASSEMBLY_TMP_DIR}",
                f"cp -rp {ASSEMBLY_TMP_DIR}/* /",
                f"rm -rf {ASSEMBLY_TMP_DIR}",
            ]
        )
        builder.user(run_user)
    elif assembly.user != "root":
        builder.copy(assembly.name, target_dir, chown=assembly.user)
    else:
        builder.copy(assembly.name, target_dir)


def _exports_target_dir(build: BuildConfiguration, assembly: AssemblyConfiguration) -> bool:
    if assembly.target_dir == "/":
        return False
    if assembly.export_target_dir is not None:
        return assembly.export_target_dir
    return build.from_image is None


def generate_dockerfile(
    build: BuildConfiguration,
    assembly: AssemblyConfiguration | None = None,
) -> str:
    """
    Generates the Dockerfile of an image from its build configuration.

    The instructions are emitted in a fixed order: FROM, MAINTAINER, WORKDIR, ENV, LABEL, EXPOSE,
    RUN, COPY of the assembly, VOLUME, USER, HEALTHCHECK, ENTRYPOINT and CMD. Mappings are emitted
    in their insertion order, so the same configuration always yields the same text.

    Parameters:
        build (BuildConfiguration): The build configuration.
        assembly (AssemblyConfiguration, optional): The assembly to copy into the image. Without
                                                   assembly no COPY is emitted and the target
                                                   directory is never exported as a volume.

    Returns:
        str: The Dockerfile content.

    Raises:
        ConfigurationError: If the assembly target directory is not absolute, or a command is
                            empty.
        ValueError: If a port is invalid.
    """
    builder = DockerfileBuilder()
    builder.from_image(build.from_image or DEFAULT_BASE_IMAGE)
    if build.maintainer:
        builder.maintainer(build.maintainer)
    if build.workdir:
        builder.workdir(build.workdir)
    for name, value in build.env.items():
        builder.env(name, value)
    for name, value in build.labels.items():
        builder.label(name, value)
    if build.ports:
        builder.expose(build.ports)

    if build.optimise and build.run_cmds:
        builder.run_multiple(build.run_cmds)
    else:
        for command in build.run_cmds:
            builder.run(command)

    volumes = list(build.volumes)
    if assembly is not None:
        _copy_assembly(builder, assembly)
        if _exports_target_dir(build, assembly) and assembly.target_dir not in volumes:
            volumes.insert(0, assembly.target_dir)
    if volumes:
        builder.volume(volumes)

    if build.user:
        builder.user(build.user)
    if build.healthcheck is not None:
        builder.healthcheck(build.healthcheck)
    if build.entrypoint is not None:
        builder.entrypoint(build.entrypoint)
    if build.cmd is not None:
        builder.cmd(build.cmd)
    return builder.content()


def _references_assembly(parts: List[str], assembly_name: str) -> bool:
    return any(not token.startswith("--") and assembly_name in token for token in parts[1:])


def verify_assembly_reference(
    dockerfile_content: str,
    assembly: AssemblyConfiguration,
    dockerfile_name: str = DOCKERFILE_NAME,
) -> bool:
    """
    Checks that a user Dockerfile copies the assembly into the image.

    Every ADD and COPY instruction is scanned, skipping comments and flags such as ``--chown``,
    for a token containing the assembly name. A Dockerfile without such a reference is valid, so
    only a warning is logged.

    Parameters:
        dockerfile_content (str): The Dockerfile text.
        assembly (AssemblyConfiguration): The assembly expected to be referenced.
        dockerfile_name (str): Name used in the warning.

    Returns:
        bool: True when the assembly is referenced.
    """
    for line in dockerfile_content.splitlines():
        parts = line.strip().split()
        if not parts or parts[0].startswith("#"):
            continue
        if parts[0].upper() in ("ADD", "COPY") and _references_assembly(parts, assembly.name):
            return True

    logger.warning(
        "Dockerfile %s does not contain an ADD or COPY directive to include assembly '%s'. "
        "Ignoring assembly.",
        dockerfile_name,
        assembly.name,
    )
    return False


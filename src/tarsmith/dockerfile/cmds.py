# Copyright (C) 2024 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
This module defines classes that represent individual Dockerfile instructions.
These classes abstract the creation of the instruction strings emitted by the Dockerfile
generator: plain single-line instructions, COPY of the staged assembly, and the instructions
taking a command in shell form or in exec form (ENTRYPOINT, CMD, HEALTHCHECK).
"""

import json
from pathlib import PurePosixPath
from typing import List, Tuple

from tarsmith.config import Arguments, HealthCheckConfiguration, HealthCheckMode
from tarsmith.errors import ConfigurationError


class DockerBuildCommand:
    """
    Base class of the Dockerfile instructions.
    Subclasses render themselves as one Dockerfile line through `get_str_for_dockerfile`.
    """

    def get_str_for_dockerfile(self) -> str:
        """
        Returns the Dockerfile line of this instruction.

        Raises:
            NotImplementedError: In the base class.
        """
        raise NotImplementedError


class StrDockerBuildCommand(DockerBuildCommand):
    """
    An instruction given as its literal Dockerfile text, such as ``FROM busybox`` or
    ``EXPOSE 8080``.
    """

    def __init__(self, line: str) -> None:
        """
        Parameters:
            line (str): The Dockerfile line, emitted as is.
        """
        super().__init__()
        self._line = line

    def get_str_for_dockerfile(self) -> str:
        return self._line


class CopyDockerBuildCommand(DockerBuildCommand):
    """
    A COPY instruction from the build archive into the image.

    Sources are relative paths inside the build archive, always rendered with forward slashes.
    With several sources the destination is a directory.
    """

    def __init__(
        self,
        sources: List[str],
        destination: str,
        chown: str | None = None,
        chmod: str | None = None,
    ) -> None:
        """
        Parameters:
            sources: Paths relative to the root of the build archive, e.g. the assembly name.
            destination: Target path inside the image.
            chown: Owner of the copied files, rendered as ``--chown=``.
            chmod: Mode of the copied files, rendered as ``--chmod=``.

        Raises:
            ValueError: If no source is given.
        """
        super().__init__()
        if not sources:
            raise ValueError("COPY needs at least one source")

        self._sources: Tuple[str, ...] = tuple(str(PurePosixPath(s)) for s in sources)
        self._destination = destination
        self._flags = [
            f"--{name}={value}"
            for name, value in (("chown", chown), ("chmod", chmod))
            if value is not None
        ]

    def get_str_for_dockerfile(self) -> str:
        parts = ["COPY", *self._flags, *self._sources, self._destination]
        return " ".join(parts)


def format_arguments(arguments: Arguments) -> str:
    """
    Renders a command in shell form (as is) or in exec form (as a JSON array).

    Raises:
        ConfigurationError: If the arguments hold neither a shell command nor exec arguments.
    """
    if arguments.shell is not None and arguments.shell.strip():
        return arguments.shell
    if arguments.exec_args:
        return json.dumps(arguments.exec_args)
    raise ConfigurationError("A command needs either a shell form or exec arguments")


class ArgumentsDockerBuildCommand(DockerBuildCommand):
    """
    Represents an instruction taking a command, such as ENTRYPOINT or CMD.
    """

    def __init__(self, keyword: str, arguments: Arguments) -> None:
        super().__init__()
        self._keyword = keyword
        self._arguments = arguments

    def get_str_for_dockerfile(self) -> str:
        return f"{self._keyword} {format_arguments(self._arguments)}"


class HealthCheckDockerBuildCommand(DockerBuildCommand):
    """
    Represents a HEALTHCHECK instruction.

    With mode ``none`` the instruction disables any health check inherited from the base image.
    Otherwise the optional timing options are emitted in a fixed order before the command.
    """

    def __init__(self, healthcheck: HealthCheckConfiguration) -> None:
        super().__init__()
        self._healthcheck = healthcheck

    def get_str_for_dockerfile(self) -> str:
        healthcheck = self._healthcheck
        if healthcheck.mode is HealthCheckMode.NONE:
            return "HEALTHCHECK NONE"
        if healthcheck.cmd is None:
            raise ConfigurationError("HEALTHCHECK with mode 'cmd' requires a command")

        options = [
            ("interval", healthcheck.interval),
            ("timeout", healthcheck.timeout),
            ("start-period", healthcheck.start_period),
            ("retries", healthcheck.retries),
        ]
        flags = "".join(f"--{name}={value} " for name, value in options if value is not None)
        return f"HEALTHCHECK {flags}CMD {format_arguments(healthcheck.cmd)}"

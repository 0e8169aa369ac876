# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Per-image working directories.

Every image gets its own directory tree below the project output root::

    <output root>/docker/<image name with ':' replaced by '/'>/
        build/   staged assembly and Dockerfile
        work/    scratch directory
        tmp/     archives handed to the build daemon

The layout is a pure function of the inputs, so building the same image twice reuses the same
directories.
"""

from dataclasses import dataclass
from pathlib import Path

from tarsmith.errors import DirectoryCreationError
from tarsmith.sysutils import PathType, resolve_path

DOCKER_DIRNAME = "docker"


def sanitize_image_name(image_name: str) -> str:
    """
    Turns an image name into a relative path, replacing the tag separator with a slash.

    Parameters:
        image_name (str): The image name, e.g. ``acme/app:1.0``.

    Returns:
        str: The path segment, e.g. ``acme/app/1.0``.
    """
    return image_name.replace(":", "/")


@dataclass(frozen=True)
class BuildDirectories:
    """
    The build, work and temporary directories of one image.

    Attributes:
        build_dir: Receives the staged assembly and the Dockerfile; archived as a whole.
        work_dir: Scratch directory.
        tmp_dir: Receives the produced archives.
    """

    build_dir: Path
    work_dir: Path
    tmp_dir: Path

    @classmethod
    def resolve(
        cls,
        image_name: str,
        project_output_root: PathType,
        project_base_dir: PathType,
    ) -> "BuildDirectories":
        """
        Computes the directories of an image without touching the filesystem.

        Parameters:
            image_name (str): Name of the image being built.
            project_output_root (PathType): Output root; resolved against `project_base_dir` when
                                            relative.
            project_base_dir (PathType): The project base directory.

        Returns:
            BuildDirectories: The directories of the image.
        """
        root = resolve_path(project_base_dir, project_output_root)
        image_dir = root / DOCKER_DIRNAME / sanitize_image_name(image_name)
        return cls(
            build_dir=image_dir / "build",
            work_dir=image_dir / "work",
            tmp_dir=image_dir / "tmp",
        )

    def ensure_created(self) -> "BuildDirectories":
        """
        Creates the three directories if they do not exist yet.

        Returns:
            BuildDirectories: self, to allow chaining after `resolve`.

        Raises:
            DirectoryCreationError: If a directory cannot be created.
        """
        for directory in (self.build_dir, self.work_dir, self.tmp_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise DirectoryCreationError(f"Cannot create directory {directory}: {exc}") from exc
        return self

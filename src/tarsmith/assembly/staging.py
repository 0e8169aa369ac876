# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Staging of assembly files into the build directory.

The `StagingAssembler` materializes the file sets and single files of an
`AssemblyConfiguration` below ``<build dir>/<assembly name>/``. The resulting tree mirrors what will
be copied into the image, and is archived as a whole afterwards.

Include patterns are resolved as *literal* paths: wildcard characters are trimmed and the
remainder is looked up relative to the file set directory. ``**/*.jar`` therefore does not match
every jar of the directory. A file set entry whose source does not exist is skipped.

Within one staging run a destination is never copied twice: when two entries map to the same
destination, the first copy is kept (the permission recorded last still wins). A new run
overwrites the files left by a previous build.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, List, Set

from tarsmith.assembly.dirs import BuildDirectories
from tarsmith.config import AssemblyConfiguration, FileSet, ProjectDescriptor, SingleFile
from tarsmith.sysutils import PathType, resolve_path, to_posix_path

logger = logging.getLogger(__name__)

PATH_TO_SELF = "."
WILDCARD_CHARACTERS = "*?"


@dataclass(frozen=True)
class StagedEntry:
    """A file or directory copied into the staging tree."""

    source: Path
    destination: Path
    permission: str | None = None


def is_self_path(path: str | None) -> bool:
    return path is not None and path.strip() in ("", PATH_TO_SELF)


def literal_include(include: str) -> str:
    """
    Converts an include pattern into the literal relative path it designates.

    Wildcard characters are removed, separators normalized and leading or trailing slashes
    stripped. A pattern that designates the directory itself yields ``"."``.

    Parameters:
        include (str): The include pattern, e.g. ``"app.jar"`` or ``"lib/*"``.

    Returns:
        str: The literal path, e.g. ``"app.jar"`` or ``"lib"``.
    """
    trimmed = to_posix_path(include.translate({ord(c): None for c in WILDCARD_CHARACTERS}))
    trimmed = trimmed.strip().strip("/")
    if not trimmed:
        return PATH_TO_SELF
    return str(PurePosixPath(trimmed))


def destination_parent(assembly_dir: Path, output_directory: str | None) -> Path:
    """
    Returns the directory receiving the files of an entry: the assembly directory, or its
    `output_directory` sub-directory unless that is ``None`` or ``"."``.
    """
    if output_directory is None or is_self_path(output_directory):
        return assembly_dir
    return assembly_dir / to_posix_path(output_directory).strip("/")


def collect_excludes(assembly: AssemblyConfiguration | None) -> List[str]:
    """
    Collects the exclude lists of every file set, in configuration order.

    The names are matched against the base name of archive entries, not against their path.
    """
    if assembly is None:
        return []
    excludes: List[str] = []
    for file_set in assembly.all_file_sets():
        for exclude in file_set.excludes:
            if exclude not in excludes:
                excludes.append(exclude)
    return excludes


class StagingAssembler:
    """
    Copies the configured assembly files into the staging tree of one build.

    An instance covers one archive build: it remembers the destinations it already wrote, and
    exposes every materialized entry through `entries` once `stage` returns.
    """

    def __init__(self, strict: bool = False) -> None:
        """
        Parameters:
            strict (bool): Raise `FileNotFoundError` instead of skipping a missing file set source.
        """
        self._strict = strict
        self._staged: Set[Path] = set()
        self.entries: List[StagedEntry] = []

    def stage(
        self,
        project: ProjectDescriptor,
        assembly: AssemblyConfiguration,
        build_dirs: BuildDirectories,
    ) -> Dict[Path, str | None]:
        """
        Materializes the assembly below ``<build dir>/<assembly name>``.

        Parameters:
            project (ProjectDescriptor): Project whose base directory resolves relative sources.
            assembly (AssemblyConfiguration): The assembly to stage.
            build_dirs (BuildDirectories): The directories of the image being built.

        Returns:
            Dict[Path, str | None]: Staged path to configured permission string. ``None`` means
            the default permission policy applies.

        Raises:
            FileNotFoundError: If a single file source is missing (or any source, when strict).
            OSError: If a copy fails.
        """
        assembly_dir = build_dirs.build_dir / assembly.name
        assembly_dir.mkdir(parents=True, exist_ok=True)

        permissions: Dict[Path, str | None] = {}
        for file_set in assembly.all_file_sets():
            permissions.update(self._stage_file_set(project.base_dir, assembly_dir, file_set))
        for single_file in assembly.all_files():
            permissions.update(self._stage_single_file(project.base_dir, assembly_dir, single_file))
        return permissions

    def _stage_file_set(
        self,
        base_dir: PathType,
        assembly_dir: Path,
        file_set: FileSet,
    ) -> Dict[Path, str | None]:
        source_dir = resolve_path(base_dir, file_set.directory)
        parent = destination_parent(assembly_dir, file_set.output_directory)

        permissions: Dict[Path, str | None] = {}
        for include in file_set.includes or [PATH_TO_SELF]:
            literal = literal_include(include)
            parent.mkdir(parents=True, exist_ok=True)

            if literal != PATH_TO_SELF:
                targets = [source_dir / literal]
            elif is_self_path(file_set.output_directory) and source_dir.is_dir():
                # "." as output directory: the directory content, not the directory itself
                targets = sorted(source_dir.iterdir())
            else:
                targets = [source_dir]

            for source in targets:
                if not source.exists():
                    if self._strict:
                        raise FileNotFoundError(f"File set source does not exist: {source}")
                    logger.debug("Skipping missing file set source %s", source)
                    continue
                self._copy(
                    source,
                    parent / source.name,
                    file_set.file_mode,
                    file_set.directory_mode,
                    permissions,
                )
        return permissions

    def _stage_single_file(
        self,
        base_dir: PathType,
        assembly_dir: Path,
        single_file: SingleFile,
    ) -> Dict[Path, str | None]:
        source = resolve_path(base_dir, single_file.source)
        if not source.exists():
            raise FileNotFoundError(f"Assembly file does not exist: {source}")

        parent = destination_parent(assembly_dir, single_file.output_directory)
        parent.mkdir(parents=True, exist_ok=True)
        destination = parent / (single_file.dest_name or source.name)

        permissions: Dict[Path, str | None] = {}
        self._copy(source, destination, single_file.file_mode, None, permissions)
        return permissions

    def _copy(
        self,
        source: Path,
        destination: Path,
        file_mode: str | None,
        directory_mode: str | None,
        permissions: Dict[Path, str | None],
    ) -> None:
        if source.is_dir():
            destination.mkdir(parents=True, exist_ok=True)
            self._record(source, destination, directory_mode, permissions)
            for child in sorted(source.iterdir()):
                self._copy(child, destination / child.name, file_mode, directory_mode, permissions)
            return

        if destination in self._staged:
            logger.debug("%s already staged in this build, keeping the first copy", destination)
        else:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
        self._record(source, destination, file_mode, permissions)

    def _record(
        self,
        source: Path,
        destination: Path,
        permission: str | None,
        permissions: Dict[Path, str | None],
    ) -> None:
        if destination not in self._staged:
            self._staged.add(destination)
            self.entries.append(StagedEntry(source, destination, permission))
        permissions[destination] = permission


@dataclass
class AssemblyFileEntry:
    """
    A host file and its copy in the staging tree, with the source modification time last seen.
    """

    source: Path
    destination: Path
    last_modified: float = 0.0

    def __post_init__(self) -> None:
        if not self.last_modified and self.source.exists():
            self.last_modified = self.source.stat().st_mtime

    def is_updated(self) -> bool:
        """
        Tells whether the source changed since the last check, and records the new time if so.
        """
        if not self.source.exists():
            return False
        modified = self.source.stat().st_mtime
        if modified > self.last_modified:
            self.last_modified = modified
            return True
        return False


@dataclass
class AssemblyFiles:
    """
    The files of an assembly watched for changes, relative to the build directory they are
    staged into.
    """

    assembly_directory: Path
    entries: List[AssemblyFileEntry] = field(default_factory=list)

    def add_entry(self, source: PathType, destination: PathType) -> None:
        self.entries.append(AssemblyFileEntry(Path(source), Path(destination)))

    def is_updated(self) -> bool:
        """Tells whether any source changed; every entry records its new modification time."""
        return any([entry.is_updated() for entry in self.entries])

    def get_updated_entries(self) -> List[AssemblyFileEntry]:
        return [entry for entry in self.entries if entry.is_updated()]

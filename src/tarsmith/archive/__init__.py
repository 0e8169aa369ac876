# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Build archive writer.

A `TarArchiver` accumulates three kinds of adjustments contributed by the customizer chain (see
`tarsmith.archive.customizers`):

- extra files to include, under a destination name relative to the archived directory;
- permission overrides, as octal strings keyed by absolute path;
- file names to exclude, matched against the base name of each entry.

`TarArchiver.create_archive` then lists the input directory, materializes the extra files,
drops the excluded names and streams a tar file, optionally compressed with gzip or bzip2, to
``<tmp dir>/docker-build.<ext>``.

Archives are reproducible: entries are written in sorted path order, owned by uid/gid 0, with
integer modification times, and gzip headers carry no timestamp.
"""

import bz2
import gzip
import logging
import os
import shutil
import tarfile
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List

from tarsmith.assembly.dirs import BuildDirectories
from tarsmith.assembly.permissions import normalize_mode, parse_mode
from tarsmith.config import Compression
from tarsmith.errors import ConfigurationError
from tarsmith.sysutils import PathType, list_files_recursively, relative_posix_path, to_posix_path

logger = logging.getLogger(__name__)

ARCHIVE_BASENAME = "docker-build"


def archive_file_name(compression: Compression) -> str:
    return f"{ARCHIVE_BASENAME}.{compression.file_suffix}"


@dataclass(frozen=True)
class TarEntryPlan:
    """
    One entry of the archive, resolved before any byte is written.

    Attributes:
        source: Absolute path of the file (or directory) on disk.
        arcname: POSIX path of the entry inside the archive.
        mode: Permission bits stored for the entry.
        size: Size in bytes, 0 for directories.
    """

    source: Path
    arcname: str
    mode: int
    size: int


def _absolute(path: PathType) -> Path:
    return Path(os.path.abspath(path))


@dataclass
class TarArchiver:
    """
    Accumulates includes, permission overrides and excludes, then writes the build archive.

    The mutators return the archiver itself so that customizers can be written as one-liners.
    Applying the same adjustment twice leaves the archiver in the same state.
    """

    includes: Dict[Path, str] = field(default_factory=dict)
    permissions: Dict[Path, str | None] = field(default_factory=dict)
    excludes: List[str] = field(default_factory=list)

    def include_file(self, source: PathType, destination: str) -> "TarArchiver":
        """
        Includes `source` in the archive as `destination`, relative to the archived directory.
        """
        self.includes[_absolute(source)] = to_posix_path(destination).strip("/")
        return self

    def set_file_permissions(self, path: PathType, permission: str | None) -> "TarArchiver":
        """
        Overrides the mode stored for `path`. ``None`` or a blank string restores the default.
        """
        self.permissions[_absolute(path)] = permission
        return self

    def exclude_file(self, name: str) -> "TarArchiver":
        if name not in self.excludes:
            self.excludes.append(name)
        return self

    def resolve_mode(self, path: Path, st_mode: int) -> int:
        """
        Returns the mode stored for an entry without permission override.
        """
        return normalize_mode(st_mode, normalize=False, name=str(path))

    def _entry_mode(self, path: Path, st_mode: int) -> int:
        permission = self.permissions.get(path)
        if permission is not None and permission.strip():
            try:
                return parse_mode(permission) & 0o7777
            except ValueError as exc:
                raise ConfigurationError(f"Invalid permission '{permission}' for {path}") from exc
        return self.resolve_mode(path, st_mode)

    def _materialize_includes(self, input_dir: Path, files: List[Path]) -> None:
        for source, destination in self.includes.items():
            target = input_dir / destination
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                logger.debug("%s already present, not copying %s", target, source)
                continue
            shutil.copy2(source, target)
            files.append(target)

    def plan(self, input_dir: PathType, include_directories: bool = False) -> List[TarEntryPlan]:
        """
        Resolves the entries of the archive of `input_dir`.

        The extra files are copied into `input_dir` first, unless their destination already exists.
        Files whose base name is excluded are dropped.

        Parameters:
            input_dir (PathType): The directory to archive.
            include_directories (bool): Whether directories get their own entries.

        Returns:
            List[TarEntryPlan]: The entries, sorted by archive path.

        Raises:
            OSError: If an extra file cannot be copied.
        """
        root = _absolute(input_dir)
        files = list_files_recursively(root, include_directories=include_directories)
        self._materialize_includes(root, files)

        entries: Dict[str, TarEntryPlan] = {}
        for path in files:
            if path.name in self.excludes:
                continue
            stat = path.stat()
            arcname = relative_posix_path(root, path)
            entries[arcname] = TarEntryPlan(
                source=path,
                arcname=arcname,
                mode=self._entry_mode(path, stat.st_mode),
                size=0 if path.is_dir() else stat.st_size,
            )
        return [entries[name] for name in sorted(entries)]

    def create_archive(
        self,
        input_dir: PathType,
        build_dirs: BuildDirectories,
        compression: Compression = Compression.NONE,
    ) -> Path:
        """
        Writes the archive of `input_dir` to ``<tmp dir>/docker-build.<ext>``.

        Parameters:
            input_dir (PathType): The directory to archive, usually the build directory.
            build_dirs (BuildDirectories): The directories of the image being built.
            compression (Compression): The compression wrapping the tar stream.

        Returns:
            Path: The archive file.

        Raises:
            OSError: If a file cannot be copied, read or written. A partially written archive
                     is removed.
        """
        output = build_dirs.tmp_dir / archive_file_name(compression)
        return self.write(output, self.plan(input_dir), compression)

    def write(self, output: Path, entries: List[TarEntryPlan], compression: Compression) -> Path:
        """
        Streams the planned entries to `output`, removing the file again if writing fails.
        """
        output.parent.mkdir(parents=True, exist_ok=True)
        try:
            with ExitStack() as stack:
                raw = stack.enter_context(open(output, "wb"))
                stream = _compressed_stream(stack, raw, compression)
                tar = stack.enter_context(
                    tarfile.open(fileobj=stream, mode="w", format=tarfile.PAX_FORMAT)
                )
                for entry in entries:
                    _add_entry(tar, entry)
        except (OSError, tarfile.TarError):
            output.unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d entries to %s", len(entries), output)
        return output


class NormalizingTarArchiver(TarArchiver):
    """
    A `TarArchiver` normalizing the mode of every entry without explicit permission override.
    """

    def resolve_mode(self, path: Path, st_mode: int) -> int:
        return normalize_mode(st_mode, normalize=True, name=str(path))


def _compressed_stream(stack: ExitStack, raw: BinaryIO, compression: Compression) -> BinaryIO:
    if compression is Compression.GZIP:
        return stack.enter_context(gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0))
    if compression is Compression.BZIP2:
        return stack.enter_context(bz2.BZ2File(raw, mode="wb"))
    return raw


def _add_entry(tar: tarfile.TarFile, entry: TarEntryPlan) -> None:
    tarinfo = tar.gettarinfo(str(entry.source), arcname=entry.arcname)
    tarinfo.mode = entry.mode
    tarinfo.uid = 0
    tarinfo.gid = 0
    tarinfo.uname = ""
    tarinfo.gname = ""
    tarinfo.mtime = int(tarinfo.mtime)
    if tarinfo.isreg():
        with open(entry.source, "rb") as fileobj:
            tar.addfile(tarinfo, fileobj)
    else:
        tar.addfile(tarinfo)


def create_tarball_of_directory(
    output: PathType,
    input_dir: PathType,
    compression: Compression = Compression.NONE,
) -> Path:
    """
    Archives a whole directory, directories included, to `output`.

    Parameters:
        output (PathType): The archive file to write.
        input_dir (PathType): The directory to archive.
        compression (Compression): The compression wrapping the tar stream.

    Returns:
        Path: The archive file.
    """
    archiver = TarArchiver()
    entries = archiver.plan(input_dir, include_directories=True)
    return archiver.write(Path(output), entries, compression)

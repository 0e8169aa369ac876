# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
This module provides the `AssemblyManager`, which turns an image configuration into the archive
sent to a container build daemon.

One call to `AssemblyManager.create_archive` runs the whole pipeline:

1. resolve and create the per-image build directories;
2. stage the assembly files into the build directory;
3. generate the Dockerfile, or verify and interpolate the user's Dockerfile;
4. register the archiver customizers (Dockerfile, caller customizer, final artifact, excludes
   and permissions, in that order);
5. write ``<tmp dir>/docker-build.<ext>``.

Filesystem failures anywhere in steps 2 to 5 surface as a single `ArchiveError`.
"""

import dataclasses
import logging
import tarfile
from pathlib import Path
from typing import List, Mapping

from tarsmith.archive import TarArchiver, create_tarball_of_directory
from tarsmith.archive.customizers import (
    ArchiverCustomizer,
    apply_customizers,
    exclude_and_set_permissions,
    include_file,
    include_final_artifact,
    normalize_permissions,
)
from tarsmith.assembly.dirs import BuildDirectories
from tarsmith.assembly.staging import (
    AssemblyFileEntry,
    AssemblyFiles,
    StagingAssembler,
    collect_excludes,
    destination_parent,
)
from tarsmith.config import (
    AssemblyConfiguration,
    AssemblyLayer,
    BuildConfiguration,
    BuildContext,
    Compression,
    FileSet,
)
from tarsmith.dockerfile import DOCKERFILE_NAME, generate_dockerfile, verify_assembly_reference
from tarsmith.dockerfile.interpolate import extract_base_images, interpolate_dockerfile
from tarsmith.errors import ArchiveError, ConfigurationError
from tarsmith.sysutils import clean_directory, copy_path, relative_posix_path, resolve_path

logger = logging.getLogger(__name__)

CHANGED_FILES_DIRNAME = "changed-files"
CHANGED_FILES_ARCHIVE = "changed-files.tar"
CONTEXT_DIRECTORY_MODE = "0775"


def resolve_build_directories(image_name: str, context: BuildContext) -> BuildDirectories:
    """
    Resolves the directories of an image and creates them.

    Raises:
        DirectoryCreationError: If a directory cannot be created.
    """
    return BuildDirectories.resolve(
        image_name,
        context.output_directory,
        context.project.base_dir,
    ).ensure_created()


def resolve_dockerfile(build: BuildConfiguration, context: BuildContext) -> Path:
    """
    Returns the absolute path of the user Dockerfile.

    A relative path is resolved against the configured context directory, or against the source
    directory when no context directory is configured; both are relative to the project base
    directory.
    """
    base_dir = context.project.base_dir
    if build.context_dir is not None:
        root = resolve_path(base_dir, build.context_dir)
    else:
        root = resolve_path(base_dir, context.source_directory)
    return resolve_path(root, build.docker_file)


def resolve_context_directory(build: BuildConfiguration, context: BuildContext) -> Path:
    if build.context_dir is not None:
        return resolve_path(context.project.base_dir, build.context_dir)
    return resolve_dockerfile(build, context).parent


def dockerfile_mode_assembly(
    build: BuildConfiguration,
    context: BuildContext,
) -> AssemblyConfiguration:
    """
    Returns the assembly of an image built from a user Dockerfile: the configured assembly (or the
    default one) with the whole Dockerfile context staged first.
    """
    assembly = build.assembly or AssemblyConfiguration()
    context_set = FileSet(
        directory=resolve_context_directory(build, context),
        output_directory=".",
        directory_mode=CONTEXT_DIRECTORY_MODE,
    )
    return dataclasses.replace(
        assembly,
        layers=[AssemblyLayer(id="context", file_sets=[context_set])] + list(assembly.layers),
    )


class AssemblyManager:
    """
    Creates the build archives of images.

    The manager holds no state between calls; one instance can serve any number of images.
    """

    def __init__(self, strict: bool = False) -> None:
        """
        Parameters:
            strict (bool): Fail instead of skipping file set sources that do not exist.
        """
        self._strict = strict

    def create_archive(
        self,
        image_name: str,
        context: BuildContext,
        build: BuildConfiguration,
        final_customizer: ArchiverCustomizer | None = None,
    ) -> Path:
        """
        Creates the build archive of an image.

        Parameters:
            image_name (str): Name of the image, e.g. ``acme/app:1.0``.
            context (BuildContext): The project and its output directories.
            build (BuildConfiguration): How the image is built.
            final_customizer (ArchiverCustomizer, optional): Applied after the Dockerfile
                                                             customizer and before the final
                                                             artifact, excludes and permissions.

        Returns:
            Path: The archive, ``<tmp dir>/docker-build.<ext>``.

        Raises:
            DirectoryCreationError: If the build directories cannot be created.
            ConfigurationError: If the configuration is invalid.
            ArchiveError: If any file cannot be staged, read or written.
        """
        build_dirs = resolve_build_directories(image_name, context)
        dockerfile_name = DOCKERFILE_NAME
        try:
            if build.is_dockerfile_mode:
                dockerfile_name = Path(build.docker_file).name
                assembly = dockerfile_mode_assembly(build, context)
            else:
                assembly = build.assembly or AssemblyConfiguration()

            permissions = StagingAssembler(strict=self._strict).stage(
                context.project, assembly, build_dirs
            )

            customizers: List[ArchiverCustomizer | None] = []
            if assembly.permissions.normalizes:
                customizers.append(normalize_permissions)
            if build.is_dockerfile_mode:
                customizers.append(self._prepare_user_dockerfile(build, context, build_dirs))
            else:
                customizers.append(self._write_generated_dockerfile(build, context, build_dirs))
            customizers.append(final_customizer)
            if not assembly.exclude_final_output_artifact:
                customizers.append(include_final_artifact(context.project.artifact, assembly.name))
            customizers.append(exclude_and_set_permissions(collect_excludes(assembly), permissions))

            archiver = apply_customizers(TarArchiver(), customizers)
            archive = archiver.create_archive(build_dirs.build_dir, build_dirs, build.compression)
        except (OSError, tarfile.TarError) as exc:
            raise ArchiveError(
                f"Cannot create {dockerfile_name} in {build_dirs.build_dir}: {exc}"
            ) from exc
        except ValueError as exc:
            raise ConfigurationError(
                f"Cannot create {dockerfile_name} in {build_dirs.build_dir}: {exc}"
            ) from exc

        logger.info("Created build archive %s for %s", archive, image_name)
        return archive

    def _write_generated_dockerfile(
        self,
        build: BuildConfiguration,
        context: BuildContext,
        build_dirs: BuildDirectories,
    ) -> ArchiverCustomizer:
        assembly = self.generator_assembly(build, context)
        dockerfile = build_dirs.build_dir / DOCKERFILE_NAME
        dockerfile.write_text(generate_dockerfile(build, assembly), encoding="utf-8")
        return include_file(dockerfile, DOCKERFILE_NAME)

    def _prepare_user_dockerfile(
        self,
        build: BuildConfiguration,
        context: BuildContext,
        build_dirs: BuildDirectories,
    ) -> ArchiverCustomizer | None:
        dockerfile = resolve_dockerfile(build, context)
        if not dockerfile.is_file():
            raise FileNotFoundError(
                f'Configured Dockerfile "{build.docker_file}" (resolved to "{dockerfile}") '
                "doesn't exist"
            )

        properties = context.project.properties
        self.verify_given_dockerfile(dockerfile, build, properties)
        logger.debug(
            "Base images of %s: %s",
            dockerfile,
            ", ".join(extract_base_images(dockerfile, properties, build.filter)),
        )
        target = build_dirs.build_dir / dockerfile.name
        target.write_text(
            interpolate_dockerfile(dockerfile, properties, build.filter), encoding="utf-8"
        )

        assembly = build.assembly
        if assembly is not None and assembly.mode.is_archive:
            return include_file(target, dockerfile.name)
        return None

    @staticmethod
    def generator_assembly(
        build: BuildConfiguration,
        context: BuildContext,
    ) -> AssemblyConfiguration | None:
        """
        Returns the assembly the generated Dockerfile copies into the image, if any.

        Without configured assembly, the default one is used when the project has a final artifact
        to include.
        """
        if build.assembly is not None:
            return build.assembly
        artifact = context.project.artifact
        if artifact is not None and artifact.is_file():
            return AssemblyConfiguration()
        return None

    def verify_given_dockerfile(
        self,
        dockerfile: Path,
        build: BuildConfiguration,
        properties: Mapping[str, str],
    ) -> bool:
        """
        Checks that a user Dockerfile references the configured assembly, logging a warning
        otherwise.

        Returns:
            bool: False when an assembly is configured but not referenced.
        """
        if build.assembly is None:
            return True
        content = interpolate_dockerfile(dockerfile, properties, build.filter)
        return verify_assembly_reference(content, build.assembly, str(dockerfile))

    def get_assembly_files(
        self,
        image_name: str,
        build: BuildConfiguration,
        context: BuildContext,
    ) -> AssemblyFiles:
        """
        Lists the files to watch for an incremental rebuild: every single file of the assembly
        and the staged final artifact.
        """
        build_dirs = resolve_build_directories(image_name, context)
        assembly = build.assembly or AssemblyConfiguration()
        assembly_dir = build_dirs.build_dir / assembly.name
        base_dir = context.project.base_dir

        files = AssemblyFiles(build_dirs.build_dir)
        for single_file in assembly.all_files():
            source = resolve_path(base_dir, single_file.source)
            parent = destination_parent(assembly_dir, single_file.output_directory)
            files.add_entry(source, parent / (single_file.dest_name or source.name))

        artifact = context.project.artifact
        if artifact is not None:
            staged_artifact = assembly_dir / artifact.name
            if staged_artifact.exists():
                files.add_entry(artifact, staged_artifact)
        return files

    def create_changed_files_archive(
        self,
        entries: List[AssemblyFileEntry],
        assembly_directory: Path,
        image_name: str,
        context: BuildContext,
    ) -> Path:
        """
        Creates the uncompressed ``changed-files.tar`` holding only the given entries.

        Each entry is copied below ``<tmp dir>/changed-files``, at the path of its destination
        relative to `assembly_directory`.

        Raises:
            ArchiveError: If a file cannot be copied or the archive cannot be written.
        """
        build_dirs = resolve_build_directories(image_name, context)
        archive = build_dirs.tmp_dir / CHANGED_FILES_ARCHIVE
        try:
            archive_dir = build_dirs.tmp_dir / CHANGED_FILES_DIRNAME
            if archive_dir.exists():
                clean_directory(archive_dir)
            else:
                archive_dir.mkdir()
            for entry in entries:
                target = archive_dir / relative_posix_path(assembly_directory, entry.destination)
                copy_path(entry.source, target)
            return create_tarball_of_directory(archive, archive_dir, Compression.NONE)
        except (OSError, ValueError, tarfile.TarError) as exc:
            raise ArchiveError(f"Error while creating {archive}: {exc}") from exc

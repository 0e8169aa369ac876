# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Archiver customizers.

A customizer is a plain callable taking the archiver being configured and returning the archiver
later customizers should work on: usually the same object, but a customizer may hand back a
different one (see `normalize_permissions`). The chain is folded left with `apply_customizers`,
strictly in registration order, so that customizers registered last have the final word on
exclusions and permissions.

Every customizer of this module can be applied twice to the same archiver without effect.
"""

from functools import reduce
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from tarsmith.archive import NormalizingTarArchiver, TarArchiver
from tarsmith.sysutils import PathType

ArchiverCustomizer = Callable[[TarArchiver], TarArchiver]


def apply_customizers(
    archiver: TarArchiver,
    customizers: Iterable[Optional[ArchiverCustomizer]],
) -> TarArchiver:
    """
    Folds the customizers over `archiver`, skipping ``None`` entries.

    Parameters:
        archiver (TarArchiver): The initial archiver.
        customizers (Iterable[ArchiverCustomizer]): The customizers, in application order.

    Returns:
        TarArchiver: The archiver returned by the last customizer.
    """
    return reduce(
        lambda current, customizer: customizer(current),
        (c for c in customizers if c is not None),
        archiver,
    )


def include_file(source: PathType, destination: str) -> ArchiverCustomizer:
    """
    Returns a customizer including `source` in the archive under `destination`.
    """

    def customize(archiver: TarArchiver) -> TarArchiver:
        return archiver.include_file(source, destination)

    return customize


def include_final_artifact(
    artifact: PathType | None,
    assembly_name: str,
) -> ArchiverCustomizer:
    """
    Returns a customizer including the project's final artifact as
    ``<assembly name>/<artifact file name>``. A missing artifact is not an error.
    """

    def customize(archiver: TarArchiver) -> TarArchiver:
        if artifact is not None and Path(artifact).is_file():
            archiver.include_file(artifact, f"{assembly_name}/{Path(artifact).name}")
        return archiver

    return customize


def exclude_and_set_permissions(
    excludes: List[str],
    permissions: Dict[Path, str | None],
) -> ArchiverCustomizer:
    """
    Returns a customizer applying the excluded names and the permission map of the staged files.

    Only configured permissions are applied: a staged file without mode keeps any override set
    by an earlier customizer.
    """

    def customize(archiver: TarArchiver) -> TarArchiver:
        for name in excludes:
            archiver.exclude_file(name)
        for path, permission in permissions.items():
            if permission is not None and permission.strip():
                archiver.set_file_permissions(path, permission)
        return archiver

    return customize


def normalize_permissions(archiver: TarArchiver) -> TarArchiver:
    """
    Swaps the archiver for a `NormalizingTarArchiver` carrying over its accumulated state.
    """
    if isinstance(archiver, NormalizingTarArchiver):
        return archiver
    return NormalizingTarArchiver(
        includes=archiver.includes,
        permissions=archiver.permissions,
        excludes=archiver.excludes,
    )

# Copyright (C) 2024 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
This module provides filesystem-level utilities for the tarsmith package.
It includes functions for creating and cleaning directories, copying files and directory trees,
listing directory contents in a stable order, and normalizing path separators so that paths
computed on any operating system can be used as tar entry names.
"""

import os
import shutil
from pathlib import Path, PurePosixPath
from typing import List

PathType = str | Path


def mkdir(path: PathType) -> None:
    """
    Creates a directory at the specified path if it does not already exist.

    Parameters:
        path (PathType): The path where the directory should be created.
    """
    if not os.path.exists(path):
        os.makedirs(path)


def mkdir_for_path(path: PathType) -> None:
    """
    Ensures that the parent directory for a given path exists, creating it if necessary.

    Parameters:
        path (PathType): The path for which the parent directory needs verification or creation.

    Raises:
        ValueError: If the parent path exists and is not a directory.
    """
    path = Path(path)
    if path.is_dir():
        return

    parent_path = path.parent
    if parent_path.is_dir():
        return
    if parent_path.is_file():
        raise ValueError(f'Error, parent path is not a directory: "{parent_path}"')

    mkdir(path=parent_path)


def to_posix_path(path: PathType) -> str:
    """
    Returns the given path with every platform separator replaced by a forward slash.

    Both the native separator and a backslash are converted, so that a Windows style relative
    path such as ``maven\\lib\\app.jar`` becomes ``maven/lib/app.jar`` on every platform.

    Parameters:
        path (PathType): The path to normalize.

    Returns:
        str: The POSIX style path.
    """
    text = str(path)
    if os.sep != "/":
        text = text.replace(os.sep, "/")
    return text.replace("\\", "/")


def relative_posix_path(base: PathType, path: PathType) -> str:
    """
    Computes the path of `path` relative to `base`, using forward slashes.

    Parameters:
        base (PathType): The directory to compute the relative path from.
        path (PathType): The path to express relative to `base`.

    Returns:
        str: The relative POSIX path.

    Raises:
        ValueError: If `path` is not located under `base`.
    """
    relative = Path(os.path.abspath(path)).relative_to(os.path.abspath(base))
    return str(PurePosixPath(*relative.parts))


def resolve_path(base_dir: PathType, path: PathType) -> Path:
    """
    Resolves `path` against `base_dir` unless it is already absolute, then normalizes it.
    """
    path = Path(path)
    if not path.is_absolute():
        path = Path(base_dir) / path
    return Path(os.path.normpath(os.path.abspath(path)))


def list_files_recursively(directory: PathType, include_directories: bool = False) -> List[Path]:
    """
    Lists all regular files below a directory, in a stable (sorted) order.

    Parameters:
        directory (PathType): The directory to walk.
        include_directories (bool): Whether sub-directories are listed as well.

    Returns:
        List[Path]: The absolute paths found, sorted by their path relative to `directory`.
    """
    root = Path(os.path.abspath(directory))
    result: List[Path] = []
    for current_dir, dir_names, file_names in os.walk(root):
        dir_names.sort()
        current = Path(current_dir)
        if include_directories:
            result.extend(current / d for d in dir_names)
        result.extend(current / f for f in sorted(file_names))
    return sorted(result, key=lambda p: relative_posix_path(root, p))


def clean_directory(directory: PathType) -> None:
    """
    Removes every entry of a directory while keeping the directory itself.
    """
    for entry in Path(directory).iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def copy_path(source: PathType, destination: PathType) -> None:
    """
    Copies a file or a whole directory tree to `destination`, overwriting existing files.

    Parameters:
        source (PathType): The file or directory to copy.
        destination (PathType): The target path (not the target's parent directory).

    Raises:
        FileNotFoundError: If the source does not exist.
    """
    source = Path(source)
    destination = Path(destination)
    if source.is_dir():
        shutil.copytree(source, destination, dirs_exist_ok=True)
    elif source.exists():
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
    else:
        raise FileNotFoundError(f"Source path does not exist: {source}")

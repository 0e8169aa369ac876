# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Configuration model for tarsmith.

This module defines the dataclasses describing *what* goes into an image build archive:

- `AssemblyConfiguration` with its `FileSet`, `SingleFile` and `AssemblyLayer` entries, describing
  which host files are staged and where they land inside the image.
- `BuildConfiguration`, describing how the Dockerfile is obtained (generated from the
  configuration, or supplied by the user) and how the archive is compressed.
- `ProjectDescriptor` and `BuildContext`, describing the project the image is built from.

The configuration objects are treated as read-only inputs for the duration of one archive build.
They can be created programmatically or loaded from a YAML file with `load_image_config`.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from tarsmith.errors import ConfigurationError
from tarsmith.sysutils import PathType, resolve_path

DEFAULT_ASSEMBLY_NAME = "maven"
DEFAULT_FILTER = "${*}"
DEFAULT_SOURCE_DIRECTORY = "src/main/docker"


class Compression(Enum):
    """Compression applied to the build archive."""

    NONE = "none"
    GZIP = "gzip"
    BZIP2 = "bzip2"

    @property
    def file_suffix(self) -> str:
        """The archive file extension, without the leading dot."""
        return {
            Compression.NONE: "tar",
            Compression.GZIP: "tar.gz",
            Compression.BZIP2: "tar.bz2",
        }[self]


class PermissionMode(Enum):
    """How the permissions of the staged files are carried into the archive."""

    AUTO = "auto"
    EXEC = "exec"
    KEEP = "keep"
    IGNORE = "ignore"

    @property
    def normalizes(self) -> bool:
        """Whether file modes are rewritten by the permission normalizer."""
        return self in (PermissionMode.EXEC, PermissionMode.IGNORE)


class AssemblyMode(Enum):
    """How the assembly is handed over to the image build."""

    DIR = "dir"
    TAR = "tar"
    TGZ = "tgz"
    ZIP = "zip"

    @property
    def is_archive(self) -> bool:
        return self is not AssemblyMode.DIR


class HealthCheckMode(Enum):
    CMD = "cmd"
    NONE = "none"


@dataclass
class FileSet:
    """
    A directory of host files to stage into the assembly.

    Attributes:
        directory: Source directory, absolute or relative to the project base directory.
        includes: Paths, relative to `directory`, to stage. Wildcard characters are trimmed and
            the remainder is used as a literal path; an empty list stages the whole directory.
        excludes: File names left out of the final archive.
        output_directory: Sub-directory of the assembly directory receiving the files. `.` means
            the assembly directory itself.
        file_mode: Octal permission string applied to staged files, e.g. ``"0644"``.
        directory_mode: Octal permission string applied to staged directories.
    """

    directory: PathType
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    output_directory: str | None = None
    file_mode: str | None = None
    directory_mode: str | None = None


@dataclass
class SingleFile:
    """A single host file staged under an explicit destination name."""

    source: PathType
    dest_name: str | None = None
    output_directory: str | None = None
    file_mode: str | None = None


@dataclass
class AssemblyLayer:
    """An ordered group of file sets and files."""

    id: str | None = None
    file_sets: List[FileSet] = field(default_factory=list)
    files: List[SingleFile] = field(default_factory=list)


@dataclass
class AssemblyConfiguration:
    """
    Describes the assembly: the set of files staged into the image.

    Attributes:
        name: Name of the staging sub-directory in the build directory (default ``maven``).
        target_dir: Absolute directory inside the image receiving the assembly
            (default ``/<name>``).
        user: Owner of the copied files, in the form ``user[:group[:run-user]]``.
        permissions: Whether file modes are kept or normalized.
        mode: Whether the assembly is passed as a plain directory or as an archive.
        export_target_dir: Whether the target directory is exported as a volume. When unset, it is
            exported only for images without a base image.
        exclude_final_output_artifact: Skip the project's final artifact.
        file_sets: File sets of the implicit last layer.
        files: Single files of the implicit last layer.
        layers: Additional layers, staged before the implicit last layer.
    """

    name: str = DEFAULT_ASSEMBLY_NAME
    target_dir: str | None = None
    user: str = "root"
    permissions: PermissionMode = PermissionMode.KEEP
    mode: AssemblyMode = AssemblyMode.DIR
    export_target_dir: bool | None = None
    exclude_final_output_artifact: bool = False
    file_sets: List[FileSet] = field(default_factory=list)
    files: List[SingleFile] = field(default_factory=list)
    layers: List[AssemblyLayer] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            self.name = DEFAULT_ASSEMBLY_NAME
        if not self.target_dir or not self.target_dir.strip():
            self.target_dir = f"/{self.name}"
        if not self.user or not self.user.strip():
            self.user = "root"

    def all_layers(self) -> List[AssemblyLayer]:
        """Returns the configured layers followed by the implicit layer, if not empty."""
        layers = list(self.layers)
        if self.file_sets or self.files:
            layers.append(AssemblyLayer(file_sets=self.file_sets, files=self.files))
        return layers

    def all_file_sets(self) -> List[FileSet]:
        return [fs for layer in self.all_layers() for fs in layer.file_sets]

    def all_files(self) -> List[SingleFile]:
        return [f for layer in self.all_layers() for f in layer.files]

    @property
    def has_content(self) -> bool:
        return bool(self.all_file_sets() or self.all_files())


@dataclass
class Arguments:
    """
    A command for ENTRYPOINT, CMD or HEALTHCHECK, in shell form or in exec form.
    """

    shell: str | None = None
    exec_args: List[str] | None = None

    @classmethod
    def of(cls, value: "str | List[str] | Arguments") -> "Arguments":
        """Builds arguments from a shell string or an exec list."""
        if isinstance(value, Arguments):
            return value
        if isinstance(value, str):
            return cls(shell=value)
        return cls(exec_args=[str(v) for v in value])


@dataclass
class HealthCheckConfiguration:
    mode: HealthCheckMode = HealthCheckMode.CMD
    cmd: Arguments | None = None
    interval: str | None = None
    timeout: str | None = None
    start_period: str | None = None
    retries: int | None = None


@dataclass
class BuildConfiguration:
    """
    Describes how the image build archive is produced.

    When `docker_file` is set, the user's Dockerfile is verified, interpolated and used as is; all
    the Dockerfile instruction fields (`from_image`, `env`, `ports`, ...) are then ignored.
    Otherwise a Dockerfile is generated from those fields.
    """

    from_image: str | None = None
    docker_file: PathType | None = None
    context_dir: PathType | None = None
    filter: str = DEFAULT_FILTER
    maintainer: str | None = None
    workdir: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    ports: List[str] = field(default_factory=list)
    volumes: List[str] = field(default_factory=list)
    run_cmds: List[str] = field(default_factory=list)
    user: str | None = None
    entrypoint: Arguments | None = None
    cmd: Arguments | None = None
    healthcheck: HealthCheckConfiguration | None = None
    compression: Compression = Compression.NONE
    optimise: bool = False
    assembly: AssemblyConfiguration | None = None

    @property
    def is_dockerfile_mode(self) -> bool:
        return self.docker_file is not None and str(self.docker_file).strip() != ""


@dataclass
class ProjectDescriptor:
    """
    The project an image is built from.

    Attributes:
        base_dir: Project base directory; relative paths of the configuration resolve against it.
        build_dir: Project build output directory (default ``<base_dir>/target``).
        artifact: The packaged application, included in the assembly when it exists.
        properties: Build-time properties used to interpolate user Dockerfiles.
    """

    base_dir: Path
    build_dir: Path | None = None
    artifact: Path | None = None
    properties: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir)
        if self.build_dir is None:
            self.build_dir = self.base_dir / "target"
        self.build_dir = resolve_path(self.base_dir, self.build_dir)
        if self.artifact is not None:
            self.artifact = resolve_path(self.base_dir, self.artifact)


@dataclass
class BuildContext:
    """
    Project level inputs shared by all the images of a project.

    Attributes:
        project: The project descriptor.
        output_directory: Root of the per-image build directories (default: the project build
            directory). Relative values resolve against the project base directory.
        source_directory: Directory used to resolve relative Dockerfile paths.
    """

    project: ProjectDescriptor
    output_directory: PathType | None = None
    source_directory: PathType = DEFAULT_SOURCE_DIRECTORY

    def __post_init__(self) -> None:
        if self.output_directory is None:
            self.output_directory = self.project.build_dir


@dataclass
class ImageConfiguration:
    name: str
    build: BuildConfiguration
    context: BuildContext


def _check_keys(data: Mapping[str, Any], allowed: List[str], where: str) -> None:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{where} must be a mapping, got {type(data).__name__}")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ConfigurationError(f"Unknown keys in {where}: {', '.join(unknown)}")


def _field_names(cls: type) -> List[str]:
    return [f.name for f in fields(cls)]


def _enum(enum_cls: type, value: Any, where: str) -> Any:
    try:
        return enum_cls(str(value).lower())
    except ValueError as exc:
        choices = ", ".join(e.value for e in enum_cls)
        raise ConfigurationError(f"Invalid {where} '{value}', expected one of: {choices}") from exc


def _list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"{where} must be a list, got {type(value).__name__}")
    return value


def _mode(value: Any, where: str) -> str | None:
    """
    Returns a permission as an octal string. YAML reads an unquoted ``0755`` as the integer 493,
    which is converted back to ``"0755"``.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value:04o}"
    raise ConfigurationError(f"{where} must be an octal string, got {type(value).__name__}")


def _parse_file_set(data: Mapping[str, Any], where: str) -> FileSet:
    _check_keys(data, _field_names(FileSet), where)
    if "directory" not in data:
        raise ConfigurationError(f"{where}: 'directory' is required")
    values = dict(data)
    for key in ("includes", "excludes"):
        values[key] = [str(v) for v in _list(values.get(key), f"{where}.{key}")]
    for key in ("file_mode", "directory_mode"):
        values[key] = _mode(values.get(key), f"{where}.{key}")
    return FileSet(**values)


def _parse_single_file(data: Mapping[str, Any], where: str) -> SingleFile:
    _check_keys(data, _field_names(SingleFile), where)
    if "source" not in data:
        raise ConfigurationError(f"{where}: 'source' is required")
    values = dict(data)
    values["file_mode"] = _mode(values.get("file_mode"), f"{where}.file_mode")
    return SingleFile(**values)


def _parse_layer(data: Mapping[str, Any], where: str) -> AssemblyLayer:
    _check_keys(data, _field_names(AssemblyLayer), where)
    return AssemblyLayer(
        id=data.get("id"),
        file_sets=[
            _parse_file_set(fs, f"{where}.file_sets[{i}]")
            for i, fs in enumerate(_list(data.get("file_sets"), f"{where}.file_sets"))
        ],
        files=[
            _parse_single_file(f, f"{where}.files[{i}]")
            for i, f in enumerate(_list(data.get("files"), f"{where}.files"))
        ],
    )


def parse_assembly_config(data: Mapping[str, Any]) -> AssemblyConfiguration:
    """
    Builds an `AssemblyConfiguration` from its mapping representation.

    Raises:
        ConfigurationError: If the mapping holds unknown keys or invalid values.
    """
    where = "build.assembly"
    _check_keys(data, _field_names(AssemblyConfiguration), where)
    values = dict(data)
    layer = _parse_layer(
        {"file_sets": values.pop("file_sets", None), "files": values.pop("files", None)}, where
    )
    layers = [
        _parse_layer(layer_data, f"{where}.layers[{i}]")
        for i, layer_data in enumerate(_list(values.pop("layers", None), f"{where}.layers"))
    ]
    if "permissions" in values:
        values["permissions"] = _enum(PermissionMode, values["permissions"], f"{where}.permissions")
    if "mode" in values:
        values["mode"] = _enum(AssemblyMode, values["mode"], f"{where}.mode")
    return AssemblyConfiguration(
        file_sets=layer.file_sets,
        files=layer.files,
        layers=layers,
        **values,
    )


def _parse_healthcheck(data: Mapping[str, Any]) -> HealthCheckConfiguration:
    _check_keys(data, _field_names(HealthCheckConfiguration), "build.healthcheck")
    values = dict(data)
    if "mode" in values:
        values["mode"] = _enum(HealthCheckMode, values["mode"], "build.healthcheck.mode")
    if values.get("cmd") is not None:
        values["cmd"] = Arguments.of(values["cmd"])
    return HealthCheckConfiguration(**values)


def parse_build_config(data: Mapping[str, Any]) -> BuildConfiguration:
    """
    Builds a `BuildConfiguration` from its mapping representation.

    The base image may be given as ``from`` or ``from_image``; ``entrypoint`` and ``cmd`` accept a
    shell string or an exec list.

    Raises:
        ConfigurationError: If the mapping holds unknown keys or invalid values.
    """
    values = dict(data or {})
    if "from" in values:
        values["from_image"] = values.pop("from")
    _check_keys(values, _field_names(BuildConfiguration), "build")

    if values.get("assembly") is not None:
        values["assembly"] = parse_assembly_config(values["assembly"])
    if values.get("healthcheck") is not None:
        values["healthcheck"] = _parse_healthcheck(values["healthcheck"])
    for key in ("entrypoint", "cmd"):
        if values.get(key) is not None:
            values[key] = Arguments.of(values[key])
    if "compression" in values:
        values["compression"] = _enum(Compression, values["compression"], "build.compression")
    for key in ("env", "labels"):
        if key in values:
            values[key] = {str(k): str(v) for k, v in (values[key] or {}).items()}
    for key in ("ports", "volumes", "run_cmds"):
        if key in values:
            values[key] = [str(v) for v in _list(values[key], f"build.{key}")]
    return BuildConfiguration(**values)


def load_image_config(path: PathType) -> ImageConfiguration:
    """
    Loads an image configuration from a YAML file.

    The file has the following top-level keys:

    - ``name`` (required): the image name, e.g. ``acme/app:1.0``.
    - ``project``: ``base_dir``, ``build_dir``, ``artifact`` and ``properties``. The base directory
      defaults to the directory holding the configuration file.
    - ``output_directory`` and ``source_directory``: see `BuildContext`.
    - ``build``: see `parse_build_config`.

    Parameters:
        path (PathType): The YAML file to read.

    Returns:
        ImageConfiguration: The parsed configuration.

    Raises:
        ConfigurationError: If the file is not valid YAML or describes an invalid configuration.
    """
    config_path = Path(path).resolve()
    try:
        payload = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse {config_path}: {exc}") from exc

    _check_keys(
        payload,
        ["name", "project", "output_directory", "source_directory", "build"],
        str(config_path),
    )
    name = payload.get("name")
    if not name or not str(name).strip():
        raise ConfigurationError(f"{config_path}: 'name' is required")

    project_data = payload.get("project") or {}
    _check_keys(project_data, _field_names(ProjectDescriptor), "project")
    base_dir = resolve_path(config_path.parent, project_data.get("base_dir", "."))
    project = ProjectDescriptor(
        base_dir=base_dir,
        build_dir=project_data.get("build_dir"),
        artifact=project_data.get("artifact"),
        properties={str(k): str(v) for k, v in (project_data.get("properties") or {}).items()},
    )

    context = BuildContext(
        project=project,
        output_directory=payload.get("output_directory"),
        source_directory=payload.get("source_directory", DEFAULT_SOURCE_DIRECTORY),
    )
    try:
        build = parse_build_config(payload.get("build") or {})
    except TypeError as exc:
        raise ConfigurationError(f"{config_path}: {exc}") from exc
    return ImageConfiguration(name=str(name), build=build, context=context)

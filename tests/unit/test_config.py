# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT
"""Unit tests for the configuration model and the YAML loader."""

import tarfile
from pathlib import Path

import pytest

from tarsmith.assembly.manager import AssemblyManager
from tarsmith.config import (
    Arguments,
    AssemblyConfiguration,
    AssemblyLayer,
    AssemblyMode,
    BuildConfiguration,
    BuildContext,
    Compression,
    FileSet,
    HealthCheckMode,
    PermissionMode,
    ProjectDescriptor,
    SingleFile,
    load_image_config,
    parse_assembly_config,
    parse_build_config,
)
from tarsmith.errors import ConfigurationError


def _write_config(tmp_path: Path, text: str) -> Path:
    config = tmp_path / "image.yaml"
    config.write_text(text)
    return config


def test_assembly_defaults() -> None:
    assembly = AssemblyConfiguration(name=" ", target_dir="", user="")
    assert assembly.name == "maven"
    assert assembly.target_dir == "/maven"
    assert assembly.user == "root"
    assert assembly.permissions is PermissionMode.KEEP
    assert not assembly.has_content


def test_assembly_target_dir_follows_name() -> None:
    assert AssemblyConfiguration(name="app").target_dir == "/app"
    assert AssemblyConfiguration(name="app", target_dir="/opt").target_dir == "/opt"


def test_assembly_layers_come_before_implicit_layer() -> None:
    first = FileSet(directory="first")
    last = FileSet(directory="last")
    assembly = AssemblyConfiguration(
        file_sets=[last],
        files=[SingleFile(source="f.txt")],
        layers=[AssemblyLayer(id="base", file_sets=[first])],
    )
    assert [layer.id for layer in assembly.all_layers()] == ["base", None]
    assert assembly.all_file_sets() == [first, last]
    assert [f.source for f in assembly.all_files()] == ["f.txt"]
    assert assembly.has_content


def test_enum_properties() -> None:
    assert Compression.NONE.file_suffix == "tar"
    assert Compression.GZIP.file_suffix == "tar.gz"
    assert Compression.BZIP2.file_suffix == "tar.bz2"
    assert PermissionMode.EXEC.normalizes
    assert PermissionMode.IGNORE.normalizes
    assert not PermissionMode.KEEP.normalizes
    assert not PermissionMode.AUTO.normalizes
    assert AssemblyMode.TGZ.is_archive
    assert not AssemblyMode.DIR.is_archive


def test_arguments_of() -> None:
    assert Arguments.of("java -jar app.jar") == Arguments(shell="java -jar app.jar")
    assert Arguments.of(["java", 1]) == Arguments(exec_args=["java", "1"])
    existing = Arguments(shell="true")
    assert Arguments.of(existing) is existing


def test_dockerfile_mode() -> None:
    assert BuildConfiguration(docker_file="Dockerfile").is_dockerfile_mode
    assert not BuildConfiguration(docker_file="  ").is_dockerfile_mode
    assert not BuildConfiguration().is_dockerfile_mode


def test_project_and_context_defaults(tmp_path: Path) -> None:
    project = ProjectDescriptor(base_dir=tmp_path, artifact=Path("target/app.jar"))
    assert project.build_dir == tmp_path / "target"
    assert project.artifact == tmp_path / "target" / "app.jar"

    context = BuildContext(project=project)
    assert context.output_directory == tmp_path / "target"
    assert context.source_directory == "src/main/docker"


def test_parse_build_config() -> None:
    build = parse_build_config(
        {
            "from": "busybox",
            "ports": [8080, "53/udp"],
            "env": {"A": 1},
            "compression": "GZIP",
            "entrypoint": ["java", "-jar", "/maven/app.jar"],
            "cmd": "--help",
            "healthcheck": {"mode": "none"},
        }
    )
    assert build.from_image == "busybox"
    assert build.ports == ["8080", "53/udp"]
    assert build.env == {"A": "1"}
    assert build.compression is Compression.GZIP
    assert build.entrypoint == Arguments(exec_args=["java", "-jar", "/maven/app.jar"])
    assert build.cmd == Arguments(shell="--help")
    assert build.healthcheck.mode is HealthCheckMode.NONE


def test_parse_assembly_config() -> None:
    assembly = parse_assembly_config(
        {
            "name": "app",
            "permissions": "exec",
            "mode": "tgz",
            "file_sets": [{"directory": "src", "includes": ["app.jar"]}],
            "files": [{"source": "README", "dest_name": "README.txt"}],
            "layers": [{"id": "deps", "file_sets": [{"directory": "lib"}]}],
        }
    )
    assert assembly.name == "app"
    assert assembly.permissions is PermissionMode.EXEC
    assert assembly.mode is AssemblyMode.TGZ
    assert [fs.directory for fs in assembly.all_file_sets()] == ["lib", "src"]
    assert assembly.files[0].dest_name == "README.txt"


@pytest.mark.parametrize(
    "data, message",
    [
        ({"bogus": 1}, "Unknown keys in build: bogus"),
        ({"compression": "xz"}, "Invalid build.compression 'xz'"),
        ({"assembly": {"file_sets": [{"includes": ["a"]}]}}, "'directory' is required"),
        ({"assembly": {"files": [{"dest_name": "a"}]}}, "'source' is required"),
        ({"assembly": {"permissions": "strict"}}, "Invalid build.assembly.permissions"),
        ({"assembly": ["not", "a", "mapping"]}, "must be a mapping"),
    ],
)
def test_parse_build_config_errors(data: dict, message: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        parse_build_config(data)
    assert message in str(excinfo.value)


def test_load_image_config(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path,
        """
name: acme/app:1.0
project:
  artifact: target/app.jar
  properties:
    version: 1.0
build:
  from: busybox
  ports: [8080]
  assembly:
    name: app
    file_sets:
      - directory: src
        includes: [app.jar]
""",
    )
    image = load_image_config(config)

    assert image.name == "acme/app:1.0"
    assert image.context.project.base_dir == tmp_path.resolve()
    assert image.context.project.artifact == tmp_path.resolve() / "target" / "app.jar"
    assert image.context.project.properties == {"version": "1.0"}
    assert image.build.from_image == "busybox"
    assert image.build.assembly.name == "app"
    assert image.build.assembly.file_sets[0].includes == ["app.jar"]


def test_load_image_config_requires_name(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "build:\n  from: busybox\n")
    with pytest.raises(ConfigurationError, match="'name' is required"):
        load_image_config(config)


def test_load_image_config_invalid_yaml(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "name: [unterminated\n")
    with pytest.raises(ConfigurationError, match="Cannot parse"):
        load_image_config(config)


def test_load_image_config_unknown_top_level_key(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "name: app\nimages: []\n")
    with pytest.raises(ConfigurationError, match="images"):
        load_image_config(config)


def test_load_image_config_unquoted_octal_modes(tmp_path: Path) -> None:
    """YAML reads an unquoted 0755 as an integer; it is turned back into an octal string."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.jar").write_text("jar")
    (tmp_path / "README").write_text("readme")
    config = _write_config(
        tmp_path,
        """
name: app
build:
  assembly:
    file_sets:
      - directory: src
        includes: [app.jar]
        file_mode: 0755
        directory_mode: 0775
    files:
      - source: README
        file_mode: "0600"
""",
    )
    image = load_image_config(config)

    file_set = image.build.assembly.file_sets[0]
    assert file_set.file_mode == "0755"
    assert file_set.directory_mode == "0775"
    assert image.build.assembly.files[0].file_mode == "0600"

    archive = AssemblyManager().create_archive(image.name, image.context, image.build)
    with tarfile.open(archive) as tar:
        assert tar.getmember("maven/app.jar").mode == 0o755
        assert tar.getmember("maven/README").mode == 0o600


@pytest.mark.parametrize(
    "data, message",
    [
        (
            {"assembly": {"file_sets": [{"directory": "src", "includes": "app.jar"}]}},
            "build.assembly.file_sets[0].includes must be a list, got str",
        ),
        (
            {"assembly": {"file_sets": [{"directory": "src", "excludes": "a.log"}]}},
            "build.assembly.file_sets[0].excludes must be a list",
        ),
        ({"assembly": {"file_sets": {"directory": "src"}}}, "build.assembly.file_sets must be"),
        ({"assembly": {"files": "README"}}, "build.assembly.files must be a list"),
        ({"assembly": {"layers": {"id": "x"}}}, "build.assembly.layers must be a list"),
        ({"ports": 8080}, "build.ports must be a list, got int"),
        ({"volumes": "/data"}, "build.volumes must be a list"),
        (
            {"assembly": {"file_sets": [{"directory": "src", "file_mode": True}]}},
            "file_mode must be an octal string, got bool",
        ),
        (
            {"assembly": {"files": [{"source": "a", "file_mode": 7.5}]}},
            "file_mode must be an octal string, got float",
        ),
    ],
)
def test_parse_build_config_type_errors(data: dict, message: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        parse_build_config(data)
    assert message in str(excinfo.value)

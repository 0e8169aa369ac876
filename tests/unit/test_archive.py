# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT
"""Unit tests for the build archive writer.

Archives are read back with `tarfile` to check entry names, ownership and modes.
"""

import tarfile
from pathlib import Path
from typing import Dict

import pytest

import tarsmith.archive
from tarsmith.archive import (
    NormalizingTarArchiver,
    TarArchiver,
    archive_file_name,
    create_tarball_of_directory,
)
from tarsmith.assembly.dirs import BuildDirectories
from tarsmith.config import Compression
from tarsmith.errors import ConfigurationError


def _touch(path: Path, content: str = "", mode: int = 0o644) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(mode)
    return path


def _members(archive: Path) -> Dict[str, tarfile.TarInfo]:
    with tarfile.open(archive) as tar:
        return {member.name: member for member in tar.getmembers()}


@pytest.fixture
def build_dirs(tmp_path: Path) -> BuildDirectories:
    dirs = BuildDirectories.resolve("app", "target", tmp_path).ensure_created()
    _touch(dirs.build_dir / "Dockerfile", "FROM busybox\nCOPY maven /maven\n")
    _touch(dirs.build_dir / "maven" / "app.jar", "jar")
    _touch(dirs.build_dir / "maven" / "bin" / "run.sh", "#!/bin/sh\n", mode=0o750)
    return dirs


def test_archive_file_name() -> None:
    assert archive_file_name(Compression.NONE) == "docker-build.tar"
    assert archive_file_name(Compression.GZIP) == "docker-build.tar.gz"
    assert archive_file_name(Compression.BZIP2) == "docker-build.tar.bz2"


def test_create_archive(build_dirs: BuildDirectories) -> None:
    archive = TarArchiver().create_archive(build_dirs.build_dir, build_dirs)

    assert archive == build_dirs.tmp_dir / "docker-build.tar"
    with tarfile.open(archive) as tar:
        assert tar.getnames() == ["Dockerfile", "maven/app.jar", "maven/bin/run.sh"]
        dockerfile = tar.extractfile("Dockerfile")
        assert dockerfile is not None
        assert dockerfile.read() == b"FROM busybox\nCOPY maven /maven\n"

    for member in _members(archive).values():
        assert member.uid == 0
        assert member.gid == 0
        assert member.uname == ""
        assert member.gname == ""


def test_modes_are_kept_by_default(build_dirs: BuildDirectories) -> None:
    members = _members(TarArchiver().create_archive(build_dirs.build_dir, build_dirs))

    assert members["maven/app.jar"].mode == 0o644
    assert members["maven/bin/run.sh"].mode == 0o750


def test_normalizing_archiver(build_dirs: BuildDirectories) -> None:
    archiver = NormalizingTarArchiver()
    archiver.set_file_permissions(build_dirs.build_dir / "maven" / "app.jar", "0600")

    members = _members(archiver.create_archive(build_dirs.build_dir, build_dirs))

    assert members["maven/app.jar"].mode == 0o600
    assert members["maven/bin/run.sh"].mode == 0o755
    assert members["Dockerfile"].mode == 0o755


def test_blank_permission_restores_default(build_dirs: BuildDirectories) -> None:
    archiver = TarArchiver().set_file_permissions(build_dirs.build_dir / "maven" / "app.jar", " ")

    members = _members(archiver.create_archive(build_dirs.build_dir, build_dirs))
    assert members["maven/app.jar"].mode == 0o644


def test_invalid_permission(build_dirs: BuildDirectories) -> None:
    archiver = TarArchiver().set_file_permissions(build_dirs.build_dir / "Dockerfile", "rwx")

    with pytest.raises(ConfigurationError, match="Invalid permission 'rwx'"):
        archiver.create_archive(build_dirs.build_dir, build_dirs)


def test_excludes_match_base_names(build_dirs: BuildDirectories) -> None:
    archiver = TarArchiver().exclude_file("run.sh").exclude_file("run.sh")

    names = list(_members(archiver.create_archive(build_dirs.build_dir, build_dirs)))

    assert names == ["Dockerfile", "maven/app.jar"]
    assert archiver.excludes == ["run.sh"]


def test_include_file(tmp_path: Path, build_dirs: BuildDirectories) -> None:
    extra = _touch(tmp_path / "extra.txt", "extra")
    archiver = TarArchiver().include_file(extra, "/extra/extra.txt")
    archiver.include_file(extra, "extra/extra.txt")

    archive = archiver.create_archive(build_dirs.build_dir, build_dirs)

    assert archiver.includes == {extra: "extra/extra.txt"}
    assert "extra/extra.txt" in _members(archive)
    assert (build_dirs.build_dir / "extra" / "extra.txt").read_text() == "extra"


def test_include_does_not_overwrite_existing_file(
    tmp_path: Path, build_dirs: BuildDirectories
) -> None:
    other = _touch(tmp_path / "Dockerfile", "FROM scratch\n")
    archiver = TarArchiver().include_file(other, "Dockerfile")

    archiver.create_archive(build_dirs.build_dir, build_dirs)

    assert (build_dirs.build_dir / "Dockerfile").read_text().startswith("FROM busybox")


@pytest.mark.parametrize(
    "compression, magic",
    [(Compression.GZIP, b"\x1f\x8b"), (Compression.BZIP2, b"BZh")],
)
def test_compression(build_dirs: BuildDirectories, compression: Compression, magic: bytes) -> None:
    archive = TarArchiver().create_archive(build_dirs.build_dir, build_dirs, compression)

    assert archive.name == archive_file_name(compression)
    assert archive.read_bytes().startswith(magic)
    assert list(_members(archive)) == ["Dockerfile", "maven/app.jar", "maven/bin/run.sh"]


@pytest.mark.parametrize("compression", list(Compression))
def test_archives_are_reproducible(build_dirs: BuildDirectories, compression: Compression) -> None:
    first = TarArchiver().create_archive(build_dirs.build_dir, build_dirs, compression)
    first_bytes = first.read_bytes()
    second = TarArchiver().create_archive(build_dirs.build_dir, build_dirs, compression)

    assert second.read_bytes() == first_bytes


@pytest.mark.slow
def test_many_entries_are_sorted(tmp_path: Path) -> None:
    dirs = BuildDirectories.resolve("big", "target", tmp_path).ensure_created()
    for i in range(500):
        _touch(dirs.build_dir / f"d{i % 7}" / f"f{i:03}.txt", str(i))

    names = list(_members(TarArchiver().create_archive(dirs.build_dir, dirs)))

    assert len(names) == 500
    assert names == sorted(names)


def test_write_failure_removes_partial_archive(
    build_dirs: BuildDirectories, monkeypatch: pytest.MonkeyPatch
) -> None:
    def failing_add_entry(tar, entry):
        raise OSError("No space left on device")

    monkeypatch.setattr(tarsmith.archive, "_add_entry", failing_add_entry)

    with pytest.raises(OSError, match="No space left"):
        TarArchiver().create_archive(build_dirs.build_dir, build_dirs)
    assert not (build_dirs.tmp_dir / "docker-build.tar").exists()


def test_tarball_of_directory_keeps_directories(tmp_path: Path) -> None:
    source = tmp_path / "changed"
    _touch(source / "maven" / "app.properties", "a=1")
    (source / "empty").mkdir()

    archive = create_tarball_of_directory(tmp_path / "changed.tar", source)

    members = _members(archive)
    assert list(members) == ["empty", "maven", "maven/app.properties"]
    assert members["empty"].isdir()

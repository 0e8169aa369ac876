# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT
"""Unit tests for property interpolation in user Dockerfiles."""

from pathlib import Path

import pytest

from tarsmith.dockerfile.interpolate import (
    extract_args,
    extract_base_images,
    extract_delimiters,
    extract_lines,
    interpolate,
    interpolate_dockerfile,
)

PROPERTIES = {"base": "busybox", "tag": "1.36", "image": "${base}:${tag}"}


@pytest.mark.parametrize(
    "filter, expected",
    [
        (None, ("${", "}")),
        ("${*}", ("${", "}")),
        ("@", ("@", "@")),
        ("#{*}", ("#{", "}")),
        ("false", None),
        ("None", None),
    ],
)
def test_extract_delimiters(filter, expected) -> None:
    assert extract_delimiters(filter) == expected


def test_interpolate() -> None:
    assert interpolate("FROM ${base}:${tag}", PROPERTIES) == "FROM busybox:1.36"


def test_interpolate_recursive_values() -> None:
    assert interpolate("FROM ${image}", PROPERTIES) == "FROM busybox:1.36"


def test_interpolate_leaves_unknown_and_broken_expressions() -> None:
    assert interpolate("ENV A=${missing}", PROPERTIES) == "ENV A=${missing}"
    assert interpolate("ENV A=${base", PROPERTIES) == "ENV A=${base"
    assert interpolate("RUN echo $base", PROPERTIES) == "RUN echo $base"


def test_interpolate_custom_filter() -> None:
    assert interpolate("FROM @base@ # ${base}", PROPERTIES, "@") == "FROM busybox # ${base}"


def test_interpolate_disabled() -> None:
    assert interpolate("FROM ${base}", PROPERTIES, "false") == "FROM ${base}"


def test_interpolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TARSMITH_TEST_USER", "jboss")
    assert interpolate("USER ${env.TARSMITH_TEST_USER}", {}) == "USER jboss"


def test_interpolate_cycle() -> None:
    with pytest.raises(ValueError, match="cycle"):
        interpolate("${a}", {"a": "${b}", "b": "x${a}"})


def test_interpolate_dockerfile_terminates_lines(tmp_path: Path) -> None:
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_text("FROM ${base}\nCOPY maven /maven")

    assert interpolate_dockerfile(dockerfile, PROPERTIES) == "FROM busybox\nCOPY maven /maven\n"


def test_extract_lines(tmp_path: Path) -> None:
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_text("from ${base}\nRUN true\nFROM scratch\n")

    assert extract_lines(dockerfile, "FROM", PROPERTIES) == [
        ["from", "busybox"],
        ["FROM", "scratch"],
    ]


def test_extract_args(tmp_path: Path) -> None:
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_text('ARG VERSION="3.18"\nARG BASE\nARG\n')

    assert extract_args(dockerfile, {}) == {"VERSION": "3.18"}
    assert extract_args(dockerfile, {}, build_args={"BASE": "debian"}) == {
        "VERSION": "3.18",
        "BASE": "debian",
    }


def test_extract_base_images(tmp_path: Path) -> None:
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_text(
        "ARG VERSION=3.18\n"
        "ARG BASE\n"
        "FROM alpine:${VERSION} AS builder\n"
        "FROM builder\n"
        "FROM ${base}:latest AS runtime\n"
        "FROM $BASE\n"
        "FROM alpine:3.18\n"
    )

    images = extract_base_images(dockerfile, PROPERTIES, build_args={"BASE": "debian:12"})

    assert images == ["alpine:3.18", "busybox:latest", "debian:12"]

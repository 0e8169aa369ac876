# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT
"""Unit tests for the archive entry permission policy."""

import pytest

from tarsmith.assembly.permissions import normalize_mode, parse_mode


@pytest.mark.parametrize(
    "mode, expected",
    [
        (0o100644, 0o755),
        (0o100600, 0o711),
        (0o104777, 0o755),
        (0o040775, 0o755),
        (0o100000, 0o111),
    ],
)
def test_normalize_mode(mode: int, expected: int) -> None:
    """Write bits for group/other and special bits are dropped, execute bits are added."""
    assert normalize_mode(mode) == expected


def test_normalize_mode_is_stable() -> None:
    once = normalize_mode(0o100664)
    assert normalize_mode(once) == once


def test_normalize_mode_disabled_keeps_permission_bits() -> None:
    assert normalize_mode(0o100640, normalize=False) == 0o640
    assert normalize_mode(0o104755, normalize=False) == 0o4755


def test_parse_mode() -> None:
    assert parse_mode("0755") == 0o755
    assert parse_mode(" 0o644 ") == 0o644
    assert parse_mode("040755") == 0o40755


def test_parse_mode_rejects_non_octal() -> None:
    with pytest.raises(ValueError):
        parse_mode("0789")


def test_normalize_mode_over_all_permissions() -> None:
    """Every permission normalizes to a stable, group/other read-only, executable mode."""
    for mode in range(0o1000):
        normalized = normalize_mode(mode)
        assert normalize_mode(normalized) == normalized
        assert normalized & 0o022 == 0
        if mode & 0o444:
            assert normalized & 0o111 != 0

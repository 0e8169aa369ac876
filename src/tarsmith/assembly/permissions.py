# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Unix permission handling for archive entries.

Container runtimes expect the content of a build archive to be at least ``rwxr-xr-x``-compatible
and free of special bits. `normalize_mode` enforces that policy: world and group write bits,
set-uid, set-gid and sticky bits are removed, and the execute bit is set for every principal.
"""

import logging

logger = logging.getLogger(__name__)

NORMALIZE_MASK = 0o755
EXECUTE_BITS = 0o111


def normalize_mode(mode: int, normalize: bool = True, name: str | None = None) -> int:
    """
    Computes the permission bits stored in the archive for an entry.

    Parameters:
        mode (int): The raw Unix mode of the entry. File type bits are ignored.
        normalize (bool): Whether the normalization policy applies. When False the permission
                          bits are returned unchanged.
        name (str, optional): Entry name used in the diagnostic emitted when the mode changes.

    Returns:
        int: The permission bits, within 0o7777.
    """
    permission_bits = mode & 0o7777
    if not normalize:
        return permission_bits

    normalized = (permission_bits & NORMALIZE_MASK) | EXECUTE_BITS
    if normalized != permission_bits:
        logger.debug(
            "Normalized mode of %s from %04o to %04o", name or "entry", permission_bits, normalized
        )
    return normalized


def parse_mode(permission: str) -> int:
    """
    Parses an octal permission string such as ``"0755"`` or ``"040755"``.

    Raises:
        ValueError: If the string is not a valid octal number.
    """
    text = permission.strip()
    if text.lower().startswith("0o"):
        text = text[2:]
    return int(text, 8)

# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""Exceptions raised by tarsmith."""


class TarsmithError(Exception):
    """Base exception for all tarsmith errors."""


class ConfigurationError(TarsmithError):
    """Raised when an image, build or assembly configuration is invalid."""


class DirectoryCreationError(TarsmithError, OSError):
    """Raised when one of the per-image build directories cannot be created."""


class ArchiveError(TarsmithError):
    """
    Raised when the build archive cannot be created.

    This is the only error the archive pipeline lets escape; the underlying cause is always
    available as ``__cause__``.
    """

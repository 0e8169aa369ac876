# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT
"""
 Pytest configuration for tarsmith tests.

Registers custom markers:
- slow: builds large staging trees
"""

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers so --strict-markers doesn’t error."""
    config.addinivalue_line("markers", "slow: builds large staging trees")

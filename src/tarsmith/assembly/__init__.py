# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Assembly handling: per-image build directories (`dirs`), permission policy (`permissions`),
staging of the assembly files (`staging`) and the archive pipeline (`manager`).
"""

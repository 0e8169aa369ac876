# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
tarsmith assembles container build contexts: it stages the files of an assembly, writes or
verifies a Dockerfile, and packs everything into a tar archive ready for a container build daemon.
"""

# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Base configuration shared by all config models.
"""

from pydantic import ConfigDict

# Standard ConfigDict for all config models
FROZEN_CONFIG = ConfigDict(extra='allow', populate_by_name=True, frozen=True)

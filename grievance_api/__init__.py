# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Community grievance resolution service.
"""

__version__ = "1.0.0"

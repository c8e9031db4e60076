# SPDX-License-Identifier: Apache-2.0

"""
HTTP routes for the grievance service.
"""

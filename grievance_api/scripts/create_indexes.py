#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create the MongoDB indexes the case store relies on.

The unique (caseId, voterId) index on grievance_votes is what makes
duplicate votes fail, so run this before serving traffic:

    python -m grievance_api.scripts.create_indexes
"""

import sys
import logging

from ..services.mongodb import get_mongodb_service, close_mongodb_connection

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main() -> int:
    """Create grievance store indexes; returns the process exit code."""
    mongodb_service = get_mongodb_service()

    try:
        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            return 1

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")
        mongodb_service.create_indexes()
        logger.info("Grievance store indexes are in place")
        return 0

    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")
        return 1

    finally:
        close_mongodb_connection()


if __name__ == "__main__":
    sys.exit(main())

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Persistence, notification channels and the workflow engine.
"""

from .case_store import CaseStore, Directory, InMemoryCaseStore, InMemoryDirectory, PaginationResult
from .mongodb import MongoDBService, MongoCaseStore, MongoDirectory, get_mongodb_service, close_mongodb_connection
from .amqp import AMQPService, AMQPConfig, PublishResult, create_amqp_service
from .notifier import CaseNotifier, NullNotifier
from .workflow import GrievanceWorkflowEngine, AvailableActions, create_workflow_engine

__all__ = [
    "CaseStore",
    "Directory",
    "InMemoryCaseStore",
    "InMemoryDirectory",
    "PaginationResult",
    "MongoDBService",
    "MongoCaseStore",
    "MongoDirectory",
    "get_mongodb_service",
    "close_mongodb_connection",
    "AMQPService",
    "AMQPConfig",
    "PublishResult",
    "create_amqp_service",
    "CaseNotifier",
    "NullNotifier",
    "GrievanceWorkflowEngine",
    "AvailableActions",
    "create_workflow_engine"
]

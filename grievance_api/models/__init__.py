# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the grievance service.
"""

# Base models
from .base import BaseEntity, generate_object_id, utc_now

# Enumerations
from .enums import (
    CaseStatus,
    CaseCategory,
    CasePriority,
    NoteType,
    VoteChoice,
    CaseRole,
    CaseEventKind,
    CaseView
)

# Core entities
from .entities import (
    Case,
    ResolutionLogEntry,
    Vote,
    CallerContext,
    CaseEvent,
    SYSTEM_AUTHOR_ID,
    CERTIFIED_MEDIATOR
)

# Request models
from .requests import (
    FileCaseRequest,
    AssignMediatorRequest,
    AdvanceStatusRequest,
    RecordVoteRequest,
    AppendNoteRequest,
    CaseListParams
)

__all__ = [
    # Base models
    "BaseEntity",
    "generate_object_id",
    "utc_now",
    
    # Enumerations
    "CaseStatus",
    "CaseCategory",
    "CasePriority",
    "NoteType",
    "VoteChoice",
    "CaseRole",
    "CaseEventKind",
    "CaseView",
    
    # Core entities
    "Case",
    "ResolutionLogEntry",
    "Vote",
    "CallerContext",
    "CaseEvent",
    "SYSTEM_AUTHOR_ID",
    "CERTIFIED_MEDIATOR",
    
    # Request models
    "FileCaseRequest",
    "AssignMediatorRequest",
    "AdvanceStatusRequest",
    "RecordVoteRequest",
    "AppendNoteRequest",
    "CaseListParams"
]

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the grievance resolution service.
"""

from enum import Enum


class CaseStatus(str, Enum):
    """Grievance case workflow status enumeration."""
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    MEDIATION = "mediation"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self in (CaseStatus.RESOLVED, CaseStatus.DISMISSED)


class CaseCategory(str, Enum):
    """Dispute classification (informational only)."""
    LAND_DISPUTE = "land_dispute"
    CROP_DAMAGE = "crop_damage"
    CONTRACT_BREACH = "contract_breach"
    PRICE_DISPUTE = "price_dispute"
    THEFT = "theft"
    LABOR = "labor"
    ENVIRONMENTAL = "environmental"
    GENERAL = "general"


class CasePriority(str, Enum):
    """Case priority levels (informational only)."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NoteType(str, Enum):
    """Resolution log entry types."""
    NOTE = "note"
    RESPONSE = "response"
    MEDIATION = "mediation"
    PROPOSAL = "proposal"
    DECISION = "decision"
    ESCALATION = "escalation"


class VoteChoice(str, Enum):
    """Community sentiment options."""
    SUPPORT_REPORTER = "support_reporter"
    NEUTRAL = "neutral"
    SUPPORT_RESPONDENT = "support_respondent"


class CaseRole(str, Enum):
    """Relationship of a caller to a specific case."""
    REPORTER = "reporter"
    RESPONDENT = "respondent"
    MEDIATOR = "mediator"
    ADMINISTRATOR = "administrator"
    UNINVOLVED = "uninvolved"


class CaseEventKind(str, Enum):
    """Change event kinds pushed to the notification channel."""
    CASE_FILED = "case_filed"
    MEDIATOR_ASSIGNED = "mediator_assigned"
    STATUS_CHANGED = "status_changed"
    VOTE_RECORDED = "vote_recorded"
    NOTE_ADDED = "note_added"


class CaseView(str, Enum):
    """Case list perspectives relative to the caller."""
    ALL = "all"
    MINE = "mine"
    AGAINST_ME = "against_me"
    MEDIATING = "mediating"

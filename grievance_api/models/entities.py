# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the grievance resolution service.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator
from .base import BaseEntity, utc_now
from .enums import (
    CaseStatus,
    CaseCategory,
    CasePriority,
    NoteType,
    VoteChoice,
    CaseEventKind
)


SYSTEM_AUTHOR_ID = "system"
CERTIFIED_MEDIATOR = "certified_mediator"


class Case(BaseEntity):
    """Grievance case record."""
    
    title: str = Field(..., min_length=1, max_length=200, description="Case title")
    description: str = Field(..., min_length=1, max_length=5000, description="Case description")
    category: CaseCategory = Field(default=CaseCategory.GENERAL, description="Dispute category")
    priority: CasePriority = Field(default=CasePriority.MEDIUM, description="Case priority")
    reporter_id: str = Field(..., description="User who filed the case")
    respondent_user_id: Optional[str] = Field(None, description="Named respondent user")
    respondent_group_id: Optional[str] = Field(None, description="Named respondent group")
    mediator_id: Optional[str] = Field(None, description="Assigned mediator")
    status: CaseStatus = Field(default=CaseStatus.OPEN, description="Workflow status")
    resolution_text: Optional[str] = Field(None, description="Resolution summary")
    location: Optional[str] = Field(None, max_length=300, description="Where the dispute occurred")
    evidence_refs: List[str] = Field(default_factory=list, description="Opaque evidence references")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
    resolved_at: Optional[datetime] = Field(None, description="Resolution timestamp")
    version: int = Field(default=1, ge=1, description="Optimistic concurrency counter")
    
    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        """Validate case title."""
        if not v.strip():
            raise ValueError('Case title cannot be empty')
        return v.strip()
    
    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        """Validate case description."""
        if not v.strip():
            raise ValueError('Case description cannot be empty')
        return v.strip()
    
    @model_validator(mode='after')
    def validate_case_invariants(self):
        """Validate respondent exclusivity and resolution fields."""
        if self.respondent_user_id and self.respondent_group_id:
            raise ValueError('A case cannot name both a respondent user and a respondent group')
        
        resolved = self.status == CaseStatus.RESOLVED
        if resolved != (self.resolution_text is not None):
            raise ValueError('resolution_text must be set exactly when status is resolved')
        
        if resolved != (self.resolved_at is not None):
            raise ValueError('resolved_at must be set exactly when status is resolved')
        
        return self
    
    @property
    def is_terminal(self) -> bool:
        """Check if case has reached a terminal state."""
        return self.status.is_terminal
    
    @property
    def has_respondent(self) -> bool:
        return bool(self.respondent_user_id or self.respondent_group_id)


class ResolutionLogEntry(BaseEntity):
    """Append-only resolution log entry."""
    
    case_id: str = Field(..., description="Case this entry belongs to")
    author_id: str = Field(..., description="Entry author, 'system' for engine entries")
    note_type: NoteType = Field(..., description="Entry type")
    content: str = Field(..., min_length=1, max_length=5000, description="Entry text")
    evidence_refs: List[str] = Field(default_factory=list, description="Opaque evidence references")
    is_system: bool = Field(default=False, description="Whether the engine wrote this entry")
    actor_id: Optional[str] = Field(None, description="Caller who triggered a system entry")
    
    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        """Validate entry content."""
        if not v.strip():
            raise ValueError('Log entry content cannot be empty')
        return v.strip()


class Vote(BaseEntity):
    """Community sentiment vote on a case."""
    
    case_id: str = Field(..., description="Case voted on")
    voter_id: str = Field(..., description="Voting user")
    choice: VoteChoice = Field(..., description="Vote choice")


class CallerContext(BaseModel):
    """Authenticated caller identity supplied by the identity provider."""
    
    user_id: str = Field(..., description="Authenticated user ID")
    is_admin: bool = Field(default=False, description="Holds the administrator credential")
    credentials: List[str] = Field(default_factory=list, description="Credential claims")
    name: Optional[str] = Field(None, description="User display name")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    
    def has_credential(self, credential: str) -> bool:
        """Check if caller holds a credential claim."""
        return credential in self.credentials
    
    @property
    def is_certified_mediator(self) -> bool:
        return self.has_credential(CERTIFIED_MEDIATOR)


class CaseEvent(BaseModel):
    """Change event emitted after a successful mutation."""
    
    case_id: str
    event_kind: CaseEventKind
    status: CaseStatus
    actor_id: str
    occurred_at: datetime = Field(default_factory=utc_now)

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.

Cross-field rules (respondent exclusivity, resolution text) are enforced by
the workflow engine so that direct callers get the same typed errors as
HTTP clients.
"""

from typing import List, Optional
from pydantic import BaseModel, Field
from .enums import CaseCategory, CasePriority, CaseStatus, CaseView, NoteType, VoteChoice


class FileCaseRequest(BaseModel):
    """Request model for filing a grievance case."""
    
    title: str = Field(..., max_length=200, description="Brief summary of the issue")
    description: str = Field(..., max_length=5000, description="Full description")
    category: CaseCategory = Field(default=CaseCategory.GENERAL, description="Dispute category")
    priority: CasePriority = Field(default=CasePriority.MEDIUM, description="Case priority")
    respondent_user_id: Optional[str] = Field(None, description="Respondent user ID")
    respondent_group_id: Optional[str] = Field(None, description="Respondent group ID")
    location: Optional[str] = Field(None, max_length=300, description="Where the dispute occurred")
    evidence_refs: List[str] = Field(default_factory=list, description="Evidence references")


class AssignMediatorRequest(BaseModel):
    """Request model for assigning or reassigning a mediator."""
    
    mediator_id: str = Field(..., min_length=1, description="User to assign as mediator")
    expected_version: Optional[int] = Field(None, ge=1, description="Case version the caller read")


class AdvanceStatusRequest(BaseModel):
    """Request model for a status transition."""
    
    status: CaseStatus = Field(..., description="Requested next status")
    expected_version: Optional[int] = Field(None, ge=1, description="Case version the caller read")
    resolution_text: Optional[str] = Field(None, max_length=5000, description="Required when resolving")


class RecordVoteRequest(BaseModel):
    """Request model for a community vote."""
    
    choice: VoteChoice = Field(..., description="Vote choice")


class AppendNoteRequest(BaseModel):
    """Request model for a resolution log entry."""
    
    note_type: NoteType = Field(default=NoteType.NOTE, description="Entry type")
    content: str = Field(..., max_length=5000, description="Entry text")
    evidence_refs: List[str] = Field(default_factory=list, description="Evidence references")


class CasePath(BaseModel):
    """Path parameters of case-scoped endpoints."""

    case_id: str = Field(..., description="Case ID")


class CaseListParams(BaseModel):
    """Query parameters for case listing."""
    
    status: Optional[CaseStatus] = Field(None, description="Filter by status")
    view: CaseView = Field(default=CaseView.ALL, description="Perspective relative to caller")
    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")

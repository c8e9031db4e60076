# SPDX-License-Identifier: Apache-2.0

"""
Typed failures raised by the grievance workflow.

Every error carries the HTTP status code and problem type the API layer
renders, following the application's custom exception hierarchy.
"""

from typing import Optional


class GrievanceError(Exception):
    """Base class for grievance workflow errors."""
    
    retryable = False
    
    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class InvalidArgument(GrievanceError):
    """Malformed input, e.g. both respondent fields set or blank resolution text."""
    
    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, 400, "invalid-argument")
        self.validation_errors = validation_errors or []


class Forbidden(GrievanceError):
    """Caller role not permitted for the requested action."""
    
    def __init__(self, message: str):
        super().__init__(message, 403, "forbidden")


class NotFound(GrievanceError):
    """Unknown case id."""
    
    def __init__(self, message: str):
        super().__init__(message, 404, "not-found")


class InvalidTransition(GrievanceError):
    """Status pair not in the allowed transition table."""
    
    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            f"Invalid status transition from {current_status} to {requested_status}",
            409,
            "invalid-transition"
        )
        self.current_status = current_status
        self.requested_status = requested_status


class InvalidState(GrievanceError):
    """Attempted mutation on a terminal case."""
    
    def __init__(self, message: str):
        super().__init__(message, 409, "invalid-state")


class AlreadyVoted(GrievanceError):
    """Duplicate vote for the same case and voter."""
    
    def __init__(self, case_id: str, voter_id: str):
        super().__init__(f"User {voter_id} has already voted on case {case_id}", 409, "already-voted")
        self.case_id = case_id
        self.voter_id = voter_id


class Conflict(GrievanceError):
    """Optimistic concurrency version mismatch; re-read and retry."""
    
    retryable = True
    
    def __init__(self, case_id: str, expected_version: int, current_version: Optional[int] = None):
        detail = f"Case {case_id} was modified concurrently (expected version {expected_version}"
        if current_version is not None:
            detail += f", current version {current_version}"
        super().__init__(detail + ")", 409, "version-conflict")
        self.case_id = case_id
        self.expected_version = expected_version
        self.current_version = current_version


class StoreUnavailable(GrievanceError):
    """Persistence store outage, distinct from domain errors."""
    
    def __init__(self, message: str):
        super().__init__(message, 503, "store-unavailable")

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with RFC 7807 problem responses.
Maps grievance workflow errors, request validation failures and HTTP errors
onto problem documents.
"""

import os
from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from pydantic import ValidationError
from typing import Any, Dict, List, Optional
from opentelemetry import trace
import logging

from ..domain.errors import GrievanceError, InvalidArgument

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://api.grievances.example/problems"

TITLES = {
    "invalid-argument": "Invalid Argument",
    "forbidden": "Forbidden",
    "not-found": "Not Found",
    "invalid-transition": "Invalid Transition",
    "invalid-state": "Invalid State",
    "already-voted": "Already Voted",
    "version-conflict": "Version Conflict",
    "store-unavailable": "Store Unavailable",
    "validation-error": "Validation Error",
}


def build_problem(
    error_type: str,
    status: int,
    detail: str,
    title: Optional[str] = None,
    errors: Optional[List[Any]] = None
) -> Dict[str, Any]:
    """Build an RFC 7807 problem document."""
    problem = {
        "type": f"{PROBLEM_BASE_URL}/{error_type}",
        "title": title or TITLES.get(error_type, error_type.replace("-", " ").title()),
        "status": status,
        "detail": detail,
        "instance": request.path,
        "_links": {
            "help": {"href": f"/docs/errors#{error_type}"}
        }
    }
    if errors:
        problem["errors"] = errors
    return problem


def _validation_errors(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in item.get("loc", ())),
            "message": item.get("msg"),
            "type": item.get("type")
        }
        for item in error.errors()
    ]


def register_error_handlers(app: Flask) -> None:
    """
    Register problem-document handlers on a Flask application.

    Args:
        app: Flask application
    """

    @app.errorhandler(GrievanceError)
    def handle_grievance_error(error: GrievanceError):
        with tracer.start_as_current_span("error_handler.grievance_error") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "error.retryable": error.retryable,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if error.status_code >= 500 else logger.warning
            log(
                f"Grievance error: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "detail": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            errors = error.validation_errors if isinstance(error, InvalidArgument) else None
            problem = build_problem(error.error_type, error.status_code, error.message, errors=errors)
            if error.retryable:
                problem["retryable"] = True

            return jsonify(problem), error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        errors = _validation_errors(error)
        logger.warning(
            "Request validation failed",
            extra={"path": request.path, "method": request.method, "errors": errors}
        )
        return jsonify(build_problem("validation-error", 400, "Request validation failed", errors=errors)), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        error_type = (error.name or "http-error").lower().replace(" ", "-")
        return jsonify(build_problem(error_type, error.code, error.description or error.name, title=error.name)), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_class": error.__class__.__name__,
                    "path": request.path,
                    "method": request.method
                },
                exc_info=True
            )

            # Don't expose internal error details in production
            detail = "An unexpected error occurred"
            if os.getenv('ENVIRONMENT', 'development') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            return jsonify(build_problem("internal-server-error", 500, detail)), 500

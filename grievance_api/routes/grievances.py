# SPDX-License-Identifier: Apache-2.0

"""
Grievance case endpoints.

Thin HTTP layer over the workflow engine: parse and validate the request,
call one engine operation, render the result as HAL. Workflow errors are
rendered by the registered error handlers.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from typing import Any, Dict

from ..domain.errors import InvalidArgument
from ..domain.grievances import (
    build_case_hal_response,
    build_case_collection_hal_response,
    build_log_collection_response,
    build_vote_collection_response
)
from ..models.entities import CallerContext
from ..models.requests import (
    FileCaseRequest,
    AssignMediatorRequest,
    AdvanceStatusRequest,
    RecordVoteRequest,
    AppendNoteRequest,
    CaseListParams,
    CasePath
)
from ..middleware.auth import require_caller

grievances_tag = Tag(name="Grievances", description="Grievance case workflow")
grievances_bp = APIBlueprint(
    'grievances',
    __name__,
    url_prefix='/api/grievances',
    abp_tags=[grievances_tag]
)


def _engine():
    return current_app.workflow_engine


def _base_url() -> str:
    return current_app.config['BASE_URL']


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidArgument("Request body must be a JSON object")
    return data


def _case_response(case, caller: CallerContext) -> Dict[str, Any]:
    engine = _engine()
    actions = engine.available_actions(case, caller)
    return build_case_hal_response(
        case,
        actions.role,
        _base_url(),
        tally=engine.compute_tally(case.id),
        can_vote=actions.can_vote,
        can_assign_mediator=actions.can_assign_mediator
    )


@grievances_bp.post('')
@require_caller
def file_grievance(caller: CallerContext):
    """File a new grievance case."""
    file_request = FileCaseRequest.model_validate(_json_body())
    case = _engine().file_case(caller, file_request)
    return jsonify(_case_response(case, caller)), 201


@grievances_bp.get('')
@require_caller
def list_grievances(caller: CallerContext):
    """List grievance cases with status and view filters."""
    params = CaseListParams.model_validate({
        "status": request.args.get('status') or None,
        "view": request.args.get('view') or 'all',
        "page": request.args.get('page', 1),
        "page_size": request.args.get('size', 20)
    })

    result = _engine().list_cases(
        caller,
        status=params.status,
        view=params.view,
        page=params.page,
        page_size=params.page_size
    )

    return jsonify(build_case_collection_hal_response(
        result.items,
        caller,
        _base_url(),
        page=result.page,
        page_size=result.page_size,
        total_count=result.total
    )), 200


@grievances_bp.get('/<case_id>')
@require_caller
def get_grievance(caller: CallerContext, path: CasePath):
    """Get case detail with tally and the caller's affordance links."""
    case = _engine().get_case(path.case_id)
    return jsonify(_case_response(case, caller)), 200


@grievances_bp.post('/<case_id>/mediator')
@require_caller
def assign_mediator(caller: CallerContext, path: CasePath):
    """Assign or reassign the case mediator."""
    case_id = path.case_id
    assign_request = AssignMediatorRequest.model_validate(_json_body())
    case = _engine().assign_mediator(
        case_id,
        assign_request.mediator_id,
        caller,
        expected_version=assign_request.expected_version
    )
    return jsonify(_case_response(case, caller)), 200


@grievances_bp.post('/<case_id>/status')
@require_caller
def advance_status(caller: CallerContext, path: CasePath):
    """Move the case to a new status."""
    case_id = path.case_id
    status_request = AdvanceStatusRequest.model_validate(_json_body())
    case = _engine().advance_status(
        case_id,
        caller,
        status_request.status,
        expected_version=status_request.expected_version,
        resolution_text=status_request.resolution_text
    )
    return jsonify(_case_response(case, caller)), 200


@grievances_bp.get('/<case_id>/notes')
@require_caller
def list_notes(caller: CallerContext, path: CasePath):
    """Resolution log, oldest first."""
    case_id = path.case_id
    entries = _engine().list_log_entries(case_id)
    return jsonify(build_log_collection_response(case_id, entries, _base_url())), 200


@grievances_bp.post('/<case_id>/notes')
@require_caller
def append_note(caller: CallerContext, path: CasePath):
    """Append a resolution log entry."""
    case_id = path.case_id
    note_request = AppendNoteRequest.model_validate(_json_body())
    entry = _engine().append_note(
        case_id,
        caller,
        note_request.note_type,
        note_request.content,
        note_request.evidence_refs
    )

    response = entry.to_json()
    response["_links"] = {
        "collection": {"href": f"{_base_url()}/api/grievances/{case_id}/notes"},
        "case": {"href": f"{_base_url()}/api/grievances/{case_id}"}
    }
    return jsonify(response), 201


@grievances_bp.get('/<case_id>/votes')
@require_caller
def list_votes(caller: CallerContext, path: CasePath):
    case_id = path.case_id
    votes = _engine().list_votes(case_id)
    return jsonify(build_vote_collection_response(case_id, votes, _base_url())), 200


@grievances_bp.post('/<case_id>/votes')
@require_caller
def record_vote(caller: CallerContext, path: CasePath):
    """Record the caller's community vote."""
    case_id = path.case_id
    vote_request = RecordVoteRequest.model_validate(_json_body())
    vote = _engine().record_vote(case_id, caller, vote_request.choice)

    response = vote.to_json()
    response["_links"] = {
        "tally": {"href": f"{_base_url()}/api/grievances/{case_id}/tally"},
        "case": {"href": f"{_base_url()}/api/grievances/{case_id}"}
    }
    return jsonify(response), 201


@grievances_bp.get('/<case_id>/tally')
@require_caller
def get_tally(caller: CallerContext, path: CasePath):
    case_id = path.case_id
    tally = _engine().compute_tally(case_id)

    response = tally.to_dict()
    response["_links"] = {
        "self": {"href": f"{_base_url()}/api/grievances/{case_id}/tally"},
        "case": {"href": f"{_base_url()}/api/grievances/{case_id}"}
    }
    return jsonify(response), 200


@grievances_bp.get('/<case_id>/eligible-mediators')
@require_caller
def get_eligible_mediators(caller: CallerContext, path: CasePath):
    """Certified mediators without a conflict of interest on the case."""
    case_id = path.case_id
    mediators = _engine().compute_eligible_mediators(case_id)
    return jsonify({
        "case_id": case_id,
        "mediators": mediators,
        "total": len(mediators),
        "_links": {
            "self": {"href": f"{_base_url()}/api/grievances/{case_id}/eligible-mediators"},
            "assign": {
                "href": f"{_base_url()}/api/grievances/{case_id}/mediator",
                "method": "POST",
                "type": "application/json"
            },
            "case": {"href": f"{_base_url()}/api/grievances/{case_id}"}
        }
    }), 200

# SPDX-License-Identifier: Apache-2.0

"""
Mediator eligibility rules.

A mediator must have no direct stake in either side of a dispute. The
exclusion set is computed from the case, the respondent group's current
membership and the users who already voted on the case. Callers fetch
membership and votes fresh per request.
"""

from typing import Iterable, List, Optional, Set
from dataclasses import dataclass

from ..models.entities import Case


@dataclass
class EligibilityResult:
    """Result of a single mediator eligibility check."""
    eligible: bool
    reason: Optional[str] = None


def compute_exclusion_set(
    case: Case,
    respondent_group_members: Iterable[str] = (),
    voter_ids: Iterable[str] = ()
) -> Set[str]:
    """
    Collect the user IDs that may not mediate a case.

    Args:
        case: Case being mediated
        respondent_group_members: Current members of the respondent group
        voter_ids: Users holding a vote on the case

    Returns:
        Set of excluded user IDs
    """
    excluded = {case.reporter_id}

    if case.respondent_user_id:
        excluded.add(case.respondent_user_id)

    if case.respondent_group_id:
        excluded.update(respondent_group_members)

    excluded.update(voter_ids)

    return excluded


def filter_eligible_mediators(
    case: Case,
    candidates: Iterable[str],
    respondent_group_members: Iterable[str] = (),
    voter_ids: Iterable[str] = ()
) -> List[str]:
    """
    Reduce a certified mediator pool to conflict-free candidates.

    Args:
        case: Case being mediated
        candidates: User IDs holding the certified mediator credential
        respondent_group_members: Current members of the respondent group
        voter_ids: Users holding a vote on the case

    Returns:
        Eligible user IDs in candidate order, without duplicates
    """
    excluded = compute_exclusion_set(case, respondent_group_members, voter_ids)
    eligible: List[str] = []
    seen: Set[str] = set()

    for candidate_id in candidates:
        if candidate_id in excluded or candidate_id in seen:
            continue
        seen.add(candidate_id)
        eligible.append(candidate_id)

    return eligible


def check_mediator_eligibility(
    case: Case,
    candidate_id: str,
    respondent_group_members: Iterable[str] = (),
    voter_ids: Iterable[str] = ()
) -> EligibilityResult:
    """
    Check one candidate against the case's conflict-of-interest rules.

    Args:
        case: Case being mediated
        candidate_id: Proposed mediator
        respondent_group_members: Current members of the respondent group
        voter_ids: Users holding a vote on the case

    Returns:
        EligibilityResult with the exclusion reason if any
    """
    if candidate_id == case.reporter_id:
        return EligibilityResult(eligible=False, reason="The reporter cannot mediate their own case")

    if case.respondent_user_id and candidate_id == case.respondent_user_id:
        return EligibilityResult(eligible=False, reason="The respondent cannot mediate the case")

    if case.respondent_group_id and candidate_id in set(respondent_group_members):
        return EligibilityResult(
            eligible=False,
            reason=f"Members of respondent group {case.respondent_group_id} cannot mediate the case"
        )

    if candidate_id in set(voter_ids):
        return EligibilityResult(eligible=False, reason="A user who voted on the case cannot mediate it")

    return EligibilityResult(eligible=True)

# SPDX-License-Identifier: Apache-2.0

"""
Community vote rules and tallying.

Votes are an immutable sentiment record: one per voter per case, never
changed or retracted. Tallies are recomputed from the stored votes on demand.
"""

from typing import Dict, Iterable, Optional
from dataclasses import dataclass, field

from ..models.entities import Case, Vote
from ..models.enums import VoteChoice


@dataclass
class VoteEligibility:
    """Result of a vote eligibility check."""
    allowed: bool
    reason: Optional[str] = None


@dataclass
class VoteTally:
    """Vote counts for a case."""
    case_id: str
    counts: Dict[str, int] = field(default_factory=dict)
    total: int = 0
    
    def count(self, choice: VoteChoice) -> int:
        return self.counts.get(VoteChoice(choice).value, 0)
    
    def to_dict(self) -> Dict[str, object]:
        return {
            "case_id": self.case_id,
            "counts": dict(self.counts),
            "total": self.total
        }


def check_vote_eligibility(
    case: Case,
    voter_id: str,
    respondent_group_members: Iterable[str] = ()
) -> VoteEligibility:
    """
    Check whether a user may vote on a case.

    Parties to the dispute and the assigned mediator never vote, whatever the
    case status.

    Args:
        case: Case being voted on
        voter_id: Voting user
        respondent_group_members: Current members of the respondent group

    Returns:
        VoteEligibility with the refusal reason if any
    """
    if voter_id == case.reporter_id:
        return VoteEligibility(allowed=False, reason="The reporter cannot vote on their own case")

    if case.respondent_user_id and voter_id == case.respondent_user_id:
        return VoteEligibility(allowed=False, reason="The respondent cannot vote on the case")

    if case.respondent_group_id and voter_id in set(respondent_group_members):
        return VoteEligibility(allowed=False, reason="Members of the respondent group cannot vote on the case")

    if case.mediator_id and voter_id == case.mediator_id:
        return VoteEligibility(allowed=False, reason="The mediator cannot vote on the case")

    return VoteEligibility(allowed=True)


def tally_votes(case_id: str, votes: Iterable[Vote]) -> VoteTally:
    """
    Count votes per choice.

    Args:
        case_id: Case the votes belong to
        votes: Stored votes for the case

    Returns:
        VoteTally with every choice present
    """
    counts = {choice.value: 0 for choice in VoteChoice}

    for vote in votes:
        if vote.case_id != case_id:
            continue
        counts[VoteChoice(vote.choice).value] += 1

    return VoteTally(case_id=case_id, counts=counts, total=sum(counts.values()))

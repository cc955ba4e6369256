from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from plantrust.domain.consensus import ConsensusAggregator
from plantrust.domain.errors import (
    DuplicateSubmissionError,
    DuplicateVoteError,
    NotFoundError,
    ValidationError,
)
from plantrust.domain.model import (
    AcceptanceStatus,
    ConfidenceLevel,
    DataSource,
    VerificationType,
    VoteDirection,
)
from tests.helpers.clock import NOW
from tests.helpers.records import NPI, PLAN_ID, make_location, make_plan, seed_directory

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from plantrust.adapters.sqlalchemy.unit_of_work import (
        SqlAlchemyImportUnitOfWork,
        SqlAlchemyTrustUnitOfWork,
    )
    from plantrust.domain.model import ProviderPlanAcceptance
    from tests.helpers.clock import FixedClock

    TrustFactory = Callable[[], SqlAlchemyTrustUnitOfWork]


@pytest.fixture
def aggregator(trust_uow: TrustFactory, clock: FixedClock) -> ConsensusAggregator:
    seed_directory(trust_uow)
    return ConsensusAggregator(trust_uow, clock=clock)


def _submit(
    aggregator: ConsensusAggregator,
    clock: FixedClock,
    ip: str,
    *,
    accepts: bool = True,
    plan_id: str = PLAN_ID,
) -> UUID:
    result = aggregator.submit(NPI, plan_id, accepts=accepts, source_ip=ip)
    clock.advance(timedelta(hours=1))
    return result.verification.id


def _stored_acceptance(
    trust_uow: TrustFactory, plan_id: str = PLAN_ID
) -> ProviderPlanAcceptance:
    with trust_uow() as uow:
        acceptance = uow.repositories.acceptances.find(NPI, plan_id)
        assert acceptance is not None
        return acceptance


def test_first_submission_creates_scored_acceptance(
    aggregator: ConsensusAggregator, trust_uow: TrustFactory
) -> None:
    result = aggregator.submit(
        NPI, PLAN_ID, accepts=True, source_ip="203.0.113.1", notes="Called the front desk"
    )

    acceptance = result.acceptance
    assert acceptance.acceptance_status is AcceptanceStatus.ACCEPTED
    assert acceptance.verification_count == 1
    assert acceptance.data_source is DataSource.CROWDSOURCE
    assert acceptance.last_verified_at == NOW
    assert acceptance.expires_at == NOW + timedelta(days=180)
    assert result.confidence.score == 65
    assert result.confidence.level is ConfidenceLevel.MEDIUM
    assert acceptance.confidence_score == 65
    assert result.verification.previous_value is None
    assert result.verification.new_value == {"acceptance_status": "accepted"}
    assert result.verification.acceptance_id == acceptance.id
    assert result.verification.expires_at == NOW + timedelta(days=180)

    stored = _stored_acceptance(trust_uow)
    assert stored.confidence_score == 65
    assert stored.confidence_factors == result.confidence.factors


def test_three_agreeing_submissions_reach_consensus(
    aggregator: ConsensusAggregator, clock: FixedClock, trust_uow: TrustFactory
) -> None:
    _submit(aggregator, clock, "203.0.113.1")
    _submit(aggregator, clock, "203.0.113.2")
    result = aggregator.submit(NPI, PLAN_ID, accepts=True, source_ip="203.0.113.3")

    assert result.acceptance.verification_count == 3
    assert result.confidence.score == 80
    assert result.confidence.level is ConfidenceLevel.HIGH
    assert result.verification.previous_value == {
        "acceptance_status": "accepted",
        "confidence_score": 70,
        "verification_count": 2,
    }
    assert _stored_acceptance(trust_uow).verification_count == 3


def test_majority_decides_status(aggregator: ConsensusAggregator, clock: FixedClock) -> None:
    _submit(aggregator, clock, "203.0.113.1", accepts=True)
    _submit(aggregator, clock, "203.0.113.2", accepts=False)
    result = aggregator.submit(NPI, PLAN_ID, accepts=False, source_ip="203.0.113.3")

    assert result.acceptance.acceptance_status is AcceptanceStatus.NOT_ACCEPTED


def test_tied_submissions_follow_newest(
    aggregator: ConsensusAggregator, clock: FixedClock
) -> None:
    _submit(aggregator, clock, "203.0.113.1", accepts=True)
    result = aggregator.submit(NPI, PLAN_ID, accepts=False, source_ip="203.0.113.2")

    assert result.acceptance.acceptance_status is AcceptanceStatus.NOT_ACCEPTED


def test_expired_submissions_do_not_count_towards_consensus(
    aggregator: ConsensusAggregator, clock: FixedClock
) -> None:
    _submit(aggregator, clock, "203.0.113.1", accepts=True)
    _submit(aggregator, clock, "203.0.113.2", accepts=True)
    clock.advance(timedelta(days=181))

    result = aggregator.submit(NPI, PLAN_ID, accepts=False, source_ip="203.0.113.3")

    assert result.acceptance.acceptance_status is AcceptanceStatus.NOT_ACCEPTED
    assert result.acceptance.expires_at == clock.now + timedelta(days=180)


def test_submission_on_expired_acceptance_restarts_count(
    aggregator: ConsensusAggregator, clock: FixedClock, trust_uow: TrustFactory
) -> None:
    _submit(aggregator, clock, "203.0.113.1")
    _submit(aggregator, clock, "203.0.113.2")
    clock.advance(timedelta(days=200))

    result = aggregator.submit(NPI, PLAN_ID, accepts=True, source_ip="203.0.113.3")

    assert result.acceptance.verification_count == 1
    assert result.confidence.score == 65
    assert result.confidence.level is ConfidenceLevel.MEDIUM
    assert _stored_acceptance(trust_uow).verification_count == 1


def test_recalculation_ignores_count_of_expired_acceptance(
    aggregator: ConsensusAggregator, clock: FixedClock, trust_uow: TrustFactory
) -> None:
    _submit(aggregator, clock, "203.0.113.1")
    _submit(aggregator, clock, "203.0.113.2")
    _submit(aggregator, clock, "203.0.113.3")
    clock.advance(timedelta(days=200))

    stats = aggregator.recalculate_scores()

    assert stats.updated == 1
    stored = _stored_acceptance(trust_uow)
    assert stored.confidence_factors is not None
    assert stored.confidence_factors.verification_score == 0


def test_repeat_submission_from_same_ip_is_rejected(
    aggregator: ConsensusAggregator, clock: FixedClock, trust_uow: TrustFactory
) -> None:
    _submit(aggregator, clock, "203.0.113.1")

    with pytest.raises(DuplicateSubmissionError):
        aggregator.submit(NPI, PLAN_ID, accepts=False, source_ip="203.0.113.1")

    stored = _stored_acceptance(trust_uow)
    assert stored.verification_count == 1
    assert stored.acceptance_status is AcceptanceStatus.ACCEPTED
    assert len(aggregator.recent_verifications()) == 1


def test_repeat_submission_allowed_after_window(
    aggregator: ConsensusAggregator, clock: FixedClock
) -> None:
    _submit(aggregator, clock, "203.0.113.1")
    clock.advance(timedelta(days=31))

    result = aggregator.submit(NPI, PLAN_ID, accepts=True, source_ip="203.0.113.1")

    assert result.acceptance.verification_count == 2


def test_repeat_submission_from_same_account_is_rejected(
    aggregator: ConsensusAggregator,
) -> None:
    aggregator.submit(NPI, PLAN_ID, accepts=True, submitted_by="user@example.com")

    with pytest.raises(DuplicateSubmissionError):
        aggregator.submit(
            NPI, PLAN_ID, accepts=True, source_ip="198.51.100.7", submitted_by="user@example.com"
        )


def test_anonymous_submissions_skip_duplicate_check(aggregator: ConsensusAggregator) -> None:
    aggregator.submit(NPI, PLAN_ID, accepts=True)
    result = aggregator.submit(NPI, PLAN_ID, accepts=True)

    assert result.acceptance.verification_count == 2


def test_unknown_provider_or_plan_is_rejected(aggregator: ConsensusAggregator) -> None:
    with pytest.raises(NotFoundError, match="Provider"):
        aggregator.submit("0000000000", PLAN_ID, accepts=True, source_ip="203.0.113.1")
    with pytest.raises(NotFoundError, match="Plan"):
        aggregator.submit(NPI, "missing-plan", accepts=True, source_ip="203.0.113.1")


def test_location_submission_reuses_general_acceptance(
    aggregator: ConsensusAggregator,
    clock: FixedClock,
    import_uow: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    location = make_location(city="Springfield")
    with import_uow() as uow:
        uow.repositories.locations.add(location)
        uow.commit()
    first = aggregator.submit(NPI, PLAN_ID, accepts=True, source_ip="203.0.113.1")
    clock.advance(timedelta(hours=1))

    second = aggregator.submit(
        NPI, PLAN_ID, accepts=True, source_ip="203.0.113.2", location_id=location.id
    )

    assert second.acceptance.id == first.acceptance.id
    assert second.acceptance.verification_count == 2


def test_location_submission_creates_located_acceptance(
    aggregator: ConsensusAggregator,
    import_uow: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    location = make_location()
    with import_uow() as uow:
        uow.repositories.locations.add(location)
        uow.commit()

    result = aggregator.submit(
        NPI, PLAN_ID, accepts=True, source_ip="203.0.113.1", location_id=location.id
    )

    assert result.acceptance.location_id == location.id


def test_vote_updates_tallies_and_agreement(
    aggregator: ConsensusAggregator, clock: FixedClock
) -> None:
    verification_id = _submit(aggregator, clock, "203.0.113.1")

    result = aggregator.vote(verification_id, VoteDirection.UP, source_ip="198.51.100.1")

    assert result.changed is False
    assert result.verification.upvotes == 1
    assert result.verification.downvotes == 0
    assert result.acceptance is not None
    assert result.acceptance.confidence_factors is not None
    assert result.acceptance.confidence_factors.agreement_score == 20


def test_duplicate_vote_is_rejected(aggregator: ConsensusAggregator, clock: FixedClock) -> None:
    verification_id = _submit(aggregator, clock, "203.0.113.1")
    aggregator.vote(verification_id, VoteDirection.UP, source_ip="198.51.100.1")

    with pytest.raises(DuplicateVoteError):
        aggregator.vote(verification_id, VoteDirection.UP, source_ip="198.51.100.1")

    pair = aggregator.verifications_for_pair(NPI, PLAN_ID)
    assert pair is not None
    assert pair.upvotes == 1


def test_changing_vote_moves_tally_without_touching_count(
    aggregator: ConsensusAggregator, clock: FixedClock
) -> None:
    verification_id = _submit(aggregator, clock, "203.0.113.1")
    aggregator.vote(verification_id, VoteDirection.UP, source_ip="198.51.100.1")

    result = aggregator.vote(verification_id, VoteDirection.DOWN, source_ip="198.51.100.1")

    assert result.changed is True
    assert result.verification.upvotes == 0
    assert result.verification.downvotes == 1
    assert result.acceptance is not None
    assert result.acceptance.verification_count == 1
    assert result.acceptance.confidence_factors is not None
    assert result.acceptance.confidence_factors.agreement_score == 0


def test_vote_requires_ip_and_known_verification(
    aggregator: ConsensusAggregator, clock: FixedClock
) -> None:
    verification_id = _submit(aggregator, clock, "203.0.113.1")

    with pytest.raises(ValidationError):
        aggregator.vote(verification_id, VoteDirection.UP, source_ip="")

    result = aggregator.submit(NPI, PLAN_ID, accepts=True, source_ip="203.0.113.2")
    with pytest.raises(NotFoundError):
        aggregator.vote(result.acceptance.id, VoteDirection.UP, source_ip="198.51.100.1")


def test_recent_verifications_hide_expired_and_private_fields(
    aggregator: ConsensusAggregator, clock: FixedClock
) -> None:
    _submit(aggregator, clock, "203.0.113.1")
    clock.advance(timedelta(days=181))
    _submit(aggregator, clock, "203.0.113.2", accepts=False)

    live = aggregator.recent_verifications()
    everything = aggregator.recent_verifications(include_expired=True)

    assert len(live) == 1
    assert live[0].new_value == {"acceptance_status": "not_accepted"}
    assert len(everything) == 2
    assert everything[0].created_at > everything[1].created_at
    assert not hasattr(live[0], "source_ip")
    with pytest.raises(ValidationError):
        aggregator.recent_verifications(0)


def test_recent_verifications_filter_by_plan(
    aggregator: ConsensusAggregator, clock: FixedClock, trust_uow: TrustFactory
) -> None:
    with trust_uow() as uow:
        uow.repositories.plans.add(make_plan("H9999-002", name="Gold Plus"))
        uow.commit()
    _submit(aggregator, clock, "203.0.113.1")
    _submit(aggregator, clock, "203.0.113.1", plan_id="H9999-002")

    rows = aggregator.recent_verifications(plan_id="H9999-002")

    assert [row.plan_id for row in rows] == ["H9999-002"]


def test_verifications_for_pair(aggregator: ConsensusAggregator, clock: FixedClock) -> None:
    verification_id = _submit(aggregator, clock, "203.0.113.1")
    _submit(aggregator, clock, "203.0.113.2")
    aggregator.vote(verification_id, VoteDirection.DOWN, source_ip="198.51.100.1")

    pair = aggregator.verifications_for_pair(NPI, PLAN_ID)

    assert pair is not None
    assert pair.acceptance is not None
    assert pair.acceptance.verification_count == 2
    assert pair.is_acceptance_expired is False
    assert len(pair.verifications) == 2
    assert (pair.upvotes, pair.downvotes) == (0, 1)
    assert aggregator.verifications_for_pair("0000000000", PLAN_ID) is None


def test_stats(aggregator: ConsensusAggregator, clock: FixedClock) -> None:
    _submit(aggregator, clock, "203.0.113.1")
    clock.advance(timedelta(days=2))
    _submit(aggregator, clock, "203.0.113.2")

    stats = aggregator.get_stats()

    assert stats.total == 2
    assert stats.approved == 0
    assert stats.pending == 2
    assert stats.by_type == {VerificationType.PLAN_ACCEPTANCE: 2}
    assert stats.recent_count == 1


def test_recalculation_applies_recency_decay(
    aggregator: ConsensusAggregator, clock: FixedClock, trust_uow: TrustFactory
) -> None:
    first = aggregator.submit(NPI, PLAN_ID, accepts=True, source_ip="203.0.113.1")
    clock.advance(timedelta(days=100))

    dry = aggregator.recalculate_scores(dry_run=True)
    assert (dry.processed, dry.updated, dry.unchanged, dry.errors) == (1, 1, 0, 0)
    assert _stored_acceptance(trust_uow).confidence_score == first.confidence.score

    stats = aggregator.recalculate_scores()
    assert (stats.processed, stats.updated, stats.unchanged) == (1, 1, 0)
    stored = _stored_acceptance(trust_uow)
    assert stored.confidence_score < first.confidence.score
    assert stored.confidence_factors is not None
    assert stored.confidence_factors.recency_score == 5

    again = aggregator.recalculate_scores()
    assert (again.updated, again.unchanged) == (0, 1)


def test_recalculation_pages_and_respects_limit(
    aggregator: ConsensusAggregator, clock: FixedClock, trust_uow: TrustFactory
) -> None:
    plan_ids = ["P-1", "P-2", "P-3"]
    with trust_uow() as uow:
        for plan_id in plan_ids:
            uow.repositories.plans.add(make_plan(plan_id))
        uow.commit()
    for plan_id in plan_ids:
        _submit(aggregator, clock, "203.0.113.1", plan_id=plan_id)

    paged = aggregator.recalculate_scores(batch_size=1)
    limited = aggregator.recalculate_scores(limit=2, batch_size=5)

    assert paged.processed == 3
    assert paged.errors == 0
    assert limited.processed == 2

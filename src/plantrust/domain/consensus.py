"""Crowdsourced submissions, votes and the consensus they feed into confidence."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any

from plantrust.config import DEFAULT_TRUST_CONFIG
from plantrust.domain.clock import utcnow
from plantrust.domain.errors import (
    DuplicateSubmissionError,
    DuplicateVoteError,
    NotFoundError,
    TrustError,
    ValidationError,
)
from plantrust.domain.lifecycle import TTLLifecycleManager
from plantrust.domain.model import (
    AcceptanceStatus,
    DataSource,
    ProviderPlanAcceptance,
    VerificationLog,
    VerificationType,
    VoteDirection,
    VoteLog,
)
from plantrust.domain.ports.unit_of_work import TrustUnitOfWork
from plantrust.domain.scoring import ConfidenceInput, ConfidenceScorer

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from plantrust.config import TrustConfig
    from plantrust.domain.clock import Clock
    from plantrust.domain.lifecycle import NotExpiredFilter
    from plantrust.domain.model import PublicVerification, VerificationStats
    from plantrust.domain.ports.persistence import VerificationRepository
    from plantrust.domain.ports.unit_of_work import TrustRepositories
    from plantrust.domain.scoring import ConfidenceResult

UnitOfWorkFactory = Callable[[], TrustUnitOfWork]

MAX_RECENT_LIMIT = 100

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    verification: PublicVerification
    acceptance: ProviderPlanAcceptance
    confidence: ConfidenceResult


@dataclass(frozen=True, slots=True)
class VoteResult:
    verification: PublicVerification
    direction: VoteDirection
    changed: bool
    acceptance: ProviderPlanAcceptance | None = None


@dataclass(frozen=True, slots=True)
class PairVerifications:
    acceptance: ProviderPlanAcceptance | None
    is_acceptance_expired: bool
    verifications: list[PublicVerification]
    upvotes: int
    downvotes: int


@dataclass(slots=True)
class DecayRecalculationStats:
    dry_run: bool
    processed: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: int = 0


class VerificationSubmissionGuard:
    """One submission per identity per pair and window, one vote per identity per item."""

    def __init__(self, config: TrustConfig = DEFAULT_TRUST_CONFIG) -> None:
        self._config = config

    def check_submission(
        self,
        verifications: VerificationRepository,
        provider_npi: str,
        plan_id: str,
        *,
        source_ip: str | None,
        submitted_by: str | None,
        live: NotExpiredFilter,
    ) -> None:
        if not source_ip and not submitted_by:
            return
        since = live.now - self._config.sybil_window
        if verifications.has_recent_submission(
            provider_npi,
            plan_id,
            since=since,
            source_ip=source_ip or None,
            submitted_by=submitted_by or None,
            live=live,
        ):
            raise DuplicateSubmissionError(
                f"Provider {provider_npi} / plan {plan_id} was already verified from this "
                "identity within the last "
                f"{self._config.sybil_window.days} days"
            )

    def check_vote(self, existing: VoteLog | None, direction: VoteDirection) -> None:
        if existing is not None and existing.direction is direction:
            raise DuplicateVoteError(f"Already voted {direction.value} on this verification")


def majority_status(verifications: list[VerificationLog]) -> AcceptanceStatus | None:
    """Most submitted status among ``verifications`` (newest first); ties favour the newest."""

    statuses = [v.submitted_status for v in verifications if v.submitted_status is not None]
    if not statuses:
        return None
    counts = Counter(statuses)
    top = max(counts.values())
    return next(status for status in statuses if counts[status] == top)


def _vote_totals(verifications: list[VerificationLog]) -> tuple[int, int]:
    return (
        sum(v.upvotes for v in verifications),
        sum(v.downvotes for v in verifications),
    )


class ConsensusAggregator:
    """Entry point for submissions, votes and the consensus read side.

    Every mutating call runs in one unit of work: the audit row, the acceptance
    upsert, counter updates and the rescore commit together or not at all.
    """

    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        *,
        config: TrustConfig = DEFAULT_TRUST_CONFIG,
        scorer: ConfidenceScorer | None = None,
        lifecycle: TTLLifecycleManager | None = None,
        guard: VerificationSubmissionGuard | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._uow_factory = unit_of_work_factory
        self._config = config
        self._scorer = scorer or ConfidenceScorer(config)
        self._lifecycle = lifecycle or TTLLifecycleManager(
            unit_of_work_factory, config=config, clock=clock
        )
        self._guard = guard or VerificationSubmissionGuard(config)
        self._clock = clock

    def submit(
        self,
        provider_npi: str,
        plan_id: str,
        *,
        accepts: bool,
        source_ip: str | None = None,
        submitted_by: str | None = None,
        location_id: UUID | None = None,
        user_agent: str | None = None,
        notes: str | None = None,
        evidence_url: str | None = None,
        verification_source: DataSource = DataSource.CROWDSOURCE,
    ) -> SubmissionResult:
        now = self._clock()
        live = self._lifecycle.not_expired_filter(now)
        expires_at = self._lifecycle.get_expiration_date(now)
        submitted = AcceptanceStatus.ACCEPTED if accepts else AcceptanceStatus.NOT_ACCEPTED

        with self._uow_factory() as uow:
            repos = uow.repositories
            self._require_pair(repos, provider_npi, plan_id)
            self._guard.check_submission(
                repos.verifications,
                provider_npi,
                plan_id,
                source_ip=source_ip,
                submitted_by=submitted_by,
                live=live,
            )

            acceptance = self._find_acceptance(repos, provider_npi, plan_id, location_id)
            previous_value = _snapshot(acceptance)
            if acceptance is None:
                acceptance = ProviderPlanAcceptance(
                    provider_npi=provider_npi,
                    plan_id=plan_id,
                    location_id=location_id,
                    acceptance_status=submitted,
                    verification_count=1,
                    last_verified_at=now,
                    data_source=DataSource.CROWDSOURCE,
                    created_at=now,
                    updated_at=now,
                )
                repos.acceptances.add(acceptance)
            else:
                repos.acceptances.record_verification(
                    acceptance, at=now, restart=acceptance.is_expired(now)
                )

            verification = VerificationLog(
                provider_npi=provider_npi,
                plan_id=plan_id,
                acceptance_id=acceptance.id,
                verification_type=VerificationType.PLAN_ACCEPTANCE,
                verification_source=verification_source,
                previous_value=previous_value,
                new_value={"acceptance_status": submitted.value},
                notes=notes,
                evidence_url=evidence_url,
                source_ip=source_ip,
                user_agent=user_agent,
                submitted_by=submitted_by,
                created_at=now,
                expires_at=expires_at,
            )
            repos.verifications.add(verification)

            pair = repos.verifications.list_for_pair(provider_npi, plan_id, live=live)
            acceptance.acceptance_status = majority_status(pair) or submitted
            acceptance.expires_at = expires_at
            confidence = self._rescore(repos, acceptance, pair, now)
            uow.commit()

        log.info(
            "Recorded verification %s for %s/%s: status=%s, score=%s, count=%s",
            verification.id,
            provider_npi,
            plan_id,
            acceptance.acceptance_status,
            acceptance.confidence_score,
            acceptance.verification_count,
        )
        return SubmissionResult(
            verification=verification.public_view(),
            acceptance=acceptance,
            confidence=confidence,
        )

    def vote(
        self, verification_id: UUID, direction: VoteDirection, *, source_ip: str
    ) -> VoteResult:
        now = self._clock()
        with self._uow_factory() as uow:
            repos = uow.repositories
            if not source_ip:
                raise ValidationError("source_ip is required to vote")
            verification = repos.verifications.get(verification_id)
            if verification is None:
                raise NotFoundError(f"Verification {verification_id} not found")

            existing = repos.votes.get(verification_id, source_ip)
            self._guard.check_vote(existing, direction)
            if existing is not None:
                repos.verifications.move_vote(
                    verification, from_direction=existing.direction, to_direction=direction
                )
                repos.votes.change_direction(existing, direction)
            else:
                repos.votes.add(
                    VoteLog(
                        verification_id=verification_id,
                        source_ip=source_ip,
                        direction=direction,
                        created_at=now,
                    )
                )
                repos.verifications.increment_vote(verification, direction)

            acceptance = None
            if verification.acceptance_id is not None:
                acceptance = repos.acceptances.get(verification.acceptance_id)
            if acceptance is not None:
                live = self._lifecycle.not_expired_filter(now)
                pair = repos.verifications.list_for_pair(
                    acceptance.provider_npi, acceptance.plan_id, live=live
                )
                self._rescore(repos, acceptance, pair, now)
            uow.commit()

        log.debug(
            "Vote %s on %s from %s (changed=%s)",
            direction,
            verification_id,
            source_ip,
            existing is not None,
        )
        return VoteResult(
            verification=verification.public_view(),
            direction=direction,
            changed=existing is not None,
            acceptance=acceptance,
        )

    def get_stats(self, now: datetime | None = None) -> VerificationStats:
        moment = now or self._clock()
        with self._uow_factory() as uow:
            return uow.repositories.verifications.stats(
                recent_since=moment - self._config.recent_window
            )

    def recent_verifications(
        self,
        limit: int = 20,
        *,
        provider_npi: str | None = None,
        plan_id: str | None = None,
        include_expired: bool = False,
    ) -> list[PublicVerification]:
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        live = None if include_expired else self._lifecycle.not_expired_filter()
        with self._uow_factory() as uow:
            rows = uow.repositories.verifications.list_recent(
                min(limit, MAX_RECENT_LIMIT),
                provider_npi=provider_npi,
                plan_id=plan_id,
                live=live,
            )
            return [row.public_view() for row in rows]

    def verifications_for_pair(
        self, provider_npi: str, plan_id: str, *, include_expired: bool = False
    ) -> PairVerifications | None:
        now = self._clock()
        live = self._lifecycle.not_expired_filter(now)
        with self._uow_factory() as uow:
            repos = uow.repositories
            if not repos.providers.exists(provider_npi) or not repos.plans.exists(plan_id):
                return None
            acceptance = repos.acceptances.find(provider_npi, plan_id)
            rows = repos.verifications.list_for_pair(
                provider_npi, plan_id, live=None if include_expired else live
            )
            upvotes, downvotes = _vote_totals(rows)
            return PairVerifications(
                acceptance=acceptance,
                is_acceptance_expired=acceptance is not None and acceptance.is_expired(now),
                verifications=[row.public_view() for row in rows],
                upvotes=upvotes,
                downvotes=downvotes,
            )

    def recalculate_scores(
        self,
        *,
        dry_run: bool = False,
        limit: int | None = None,
        batch_size: int | None = None,
    ) -> DecayRecalculationStats:
        """Re-run scoring so recency decay shows up without a new submission.

        Pages through verified acceptances by id, committing one transaction per
        page. A record that fails to score is counted and skipped.
        """

        size = batch_size if batch_size is not None else self._config.recalculation_batch_size
        if size < 1:
            raise ValidationError("batch_size must be at least 1")
        stats = DecayRecalculationStats(dry_run=dry_run)
        now = self._clock()
        live = self._lifecycle.not_expired_filter(now)
        after_id: UUID | None = None

        while limit is None or stats.processed < limit:
            page_size = size if limit is None else min(size, limit - stats.processed)
            with self._uow_factory() as uow:
                repos = uow.repositories
                page = repos.acceptances.list_verified_after(after_id, page_size)
                for acceptance in page:
                    stats.processed += 1
                    try:
                        changed = self._recalculate_one(repos, acceptance, live, dry_run=dry_run)
                    except (TrustError, ValueError):
                        stats.errors += 1
                        log.exception("Failed to recalculate confidence for %s", acceptance.id)
                        continue
                    if changed:
                        stats.updated += 1
                    else:
                        stats.unchanged += 1
                if not dry_run:
                    uow.commit()
            if not page:
                break
            after_id = page[-1].id
            log.debug("Recalculated %s acceptances so far", stats.processed)
            if len(page) < page_size:
                break

        log.info(
            "Confidence recalculation%s: processed=%s, updated=%s, unchanged=%s, errors=%s",
            " (dry run)" if dry_run else "",
            stats.processed,
            stats.updated,
            stats.unchanged,
            stats.errors,
        )
        return stats

    def _recalculate_one(
        self,
        repos: TrustRepositories,
        acceptance: ProviderPlanAcceptance,
        live: NotExpiredFilter,
        *,
        dry_run: bool,
    ) -> bool:
        pair = repos.verifications.list_for_pair(
            acceptance.provider_npi, acceptance.plan_id, live=live
        )
        result = self._score(repos, acceptance, pair, live.now)
        if (
            result.score == acceptance.confidence_score
            and result.factors == acceptance.confidence_factors
        ):
            return False
        if not dry_run:
            acceptance.apply_confidence(result.score, result.factors, at=live.now)
        return True

    def _rescore(
        self,
        repos: TrustRepositories,
        acceptance: ProviderPlanAcceptance,
        pair: list[VerificationLog],
        now: datetime,
    ) -> ConfidenceResult:
        result = self._score(repos, acceptance, pair, now)
        acceptance.apply_confidence(result.score, result.factors, at=now)
        return result

    def _score(
        self,
        repos: TrustRepositories,
        acceptance: ProviderPlanAcceptance,
        pair: list[VerificationLog],
        now: datetime,
    ) -> ConfidenceResult:
        upvotes, downvotes = _vote_totals(pair)
        # An expired acceptance's stored count only reflects expired evidence.
        count = len(pair) if acceptance.is_expired(now) else acceptance.verification_count
        return self._scorer.score(
            ConfidenceInput(
                data_source=acceptance.data_source,
                last_verified_at=acceptance.last_verified_at,
                verification_count=count,
                upvotes=upvotes,
                downvotes=downvotes,
                specialty=repos.providers.specialty(acceptance.provider_npi),
            ),
            now=now,
        )

    @staticmethod
    def _require_pair(repos: TrustRepositories, provider_npi: str, plan_id: str) -> None:
        if not repos.providers.exists(provider_npi):
            raise NotFoundError(f"Provider {provider_npi} not found")
        if not repos.plans.exists(plan_id):
            raise NotFoundError(f"Plan {plan_id} not found")

    @staticmethod
    def _find_acceptance(
        repos: TrustRepositories, provider_npi: str, plan_id: str, location_id: UUID | None
    ) -> ProviderPlanAcceptance | None:
        if location_id is not None:
            located = repos.acceptances.find(provider_npi, plan_id, location_id)
            if located is not None:
                return located
        return repos.acceptances.find(provider_npi, plan_id)


def _snapshot(acceptance: ProviderPlanAcceptance | None) -> dict[str, Any] | None:
    if acceptance is None:
        return None
    return {
        "acceptance_status": acceptance.acceptance_status.value,
        "confidence_score": acceptance.confidence_score,
        "verification_count": acceptance.verification_count,
    }


__all__ = [
    "ConsensusAggregator",
    "DecayRecalculationStats",
    "PairVerifications",
    "SubmissionResult",
    "VerificationSubmissionGuard",
    "VoteResult",
    "majority_status",
]

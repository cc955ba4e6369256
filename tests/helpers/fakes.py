"""In-memory stand-ins for the retention side of the trust repositories."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, cast

from plantrust.domain.ports.unit_of_work import TrustRepositories

if TYPE_CHECKING:
    from datetime import datetime, timedelta
    from types import TracebackType


@dataclass
class ExpiringRow:
    created_at: datetime
    expires_at: datetime | None = None
    last_verified_at: datetime | None = None


@dataclass
class FakeExpiringRepository:
    table_name: str
    rows: list[ExpiringRow] = field(default_factory=list[ExpiringRow])
    delete_calls: list[int] = field(default_factory=list[int])
    uses_last_verified: bool = False

    def count(self) -> int:
        return len(self.rows)

    def count_with_expiration(self) -> int:
        return sum(1 for row in self.rows if row.expires_at is not None)

    def count_expired(self, now: datetime) -> int:
        return sum(1 for row in self.rows if row.expires_at is not None and row.expires_at <= now)

    def count_expiring_between(self, start: datetime, end: datetime) -> int:
        return sum(
            1
            for row in self.rows
            if row.expires_at is not None and start < row.expires_at <= end
        )

    def delete_expired_batch(self, now: datetime, limit: int) -> int:
        self.delete_calls.append(limit)
        doomed = [row for row in self.rows if row.expires_at is not None and row.expires_at <= now]
        doomed = doomed[:limit]
        for row in doomed:
            self.rows.remove(row)
        return len(doomed)

    def count_missing_expiration(self) -> int:
        return sum(1 for row in self.rows if row.expires_at is None)

    def backfill_expirations(self, ttl: timedelta) -> int:
        updated = 0
        for row in self.rows:
            if row.expires_at is not None:
                continue
            anchor = row.created_at
            if self.uses_last_verified and row.last_verified_at is not None:
                anchor = row.last_verified_at
            row.expires_at = anchor + ttl
            updated += 1
        return updated


class FakeTrustUnitOfWork:
    """Shares one set of fake repositories across every unit of work it hands out."""

    def __init__(
        self,
        verifications: FakeExpiringRepository,
        acceptances: FakeExpiringRepository,
    ) -> None:
        self._repositories = TrustRepositories(
            providers=cast(Any, None),
            plans=cast(Any, None),
            acceptances=cast(Any, acceptances),
            verifications=cast(Any, verifications),
            votes=cast(Any, None),
        )
        self.commits = 0
        self.entered = 0

    @property
    def repositories(self) -> TrustRepositories:
        return self._repositories

    def __call__(self) -> FakeTrustUnitOfWork:
        return self

    def __enter__(self) -> FakeTrustUnitOfWork:
        self.entered += 1
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        return False

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        pass

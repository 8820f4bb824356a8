"""Session-quota accounting for single and shared packages.

A package is shared when it has more than one participant row. One booking
on a shared package consumes a session from every participant at once; on a
single package it consumes only from the owner. The shared/single
classification is computed once per operation in ``load`` and carried in
``LedgerState`` so every step of the operation agrees on it.

``consume`` and ``restore`` only issue statements on the caller's session;
committing them together with the booking row is the caller's job.
"""
import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.domains.bookings.exceptions import NotFoundError, QuotaExhaustedError
from studiobook.domains.packages.models import Package, UserPackage
from studiobook.domains.packages.repository import PackageRepository

logger = structlog.get_logger(__name__)


@dataclass
class LedgerState:
    """A package and its participant rows, read inside one transaction."""

    package: Package
    rows: list[UserPackage]
    is_shared: bool

    def row_for(self, user_id: uuid.UUID) -> UserPackage | None:
        return next((row for row in self.rows if row.user_id == user_id), None)

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return self.row_for(user_id) is not None

    @property
    def participant_ids(self) -> list[uuid.UUID]:
        return [row.user_id for row in self.rows]


@dataclass
class PackageBalance:
    package_id: uuid.UUID
    name: str
    total_sessions: int
    used_sessions: int
    remaining_sessions: int
    duration_minutes: int
    is_active: bool
    is_shared: bool
    participant_count: int


class PackageLedger:
    """Atomic increment/decrement of used sessions per participant."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = PackageRepository(db)

    async def load(self, package_id: uuid.UUID, for_update: bool = False) -> LedgerState:
        """Read a package with its participant rows.

        Raises:
            NotFoundError: If the package does not exist or has no participants
        """
        package = await self.repo.get_package(package_id)
        if package is None:
            raise NotFoundError("Package not found")
        rows = await self.repo.find_participant_rows(package_id, for_update=for_update)
        if not rows:
            raise NotFoundError("Package has no participants")
        return LedgerState(package=package, rows=rows, is_shared=len(rows) > 1)

    @staticmethod
    def remaining(state: LedgerState, user_id: uuid.UUID) -> int:
        row = state.row_for(user_id)
        if row is None:
            raise NotFoundError("Package not found for this user")
        return state.package.total_sessions - row.used_sessions

    def audience(self, state: LedgerState, user_id: uuid.UUID) -> list[UserPackage]:
        """Rows a booking by ``user_id`` is accounted against."""
        if state.is_shared:
            return list(state.rows)
        row = state.row_for(user_id)
        if row is None:
            raise NotFoundError("Package not found for this user")
        return [row]

    def ensure_available(self, state: LedgerState, user_id: uuid.UUID) -> None:
        """Check that every row in the accounting audience has a session left.

        Raises:
            QuotaExhaustedError: If any required participant is exhausted
            NotFoundError: If ``user_id`` does not participate in the package
        """
        for row in self.audience(state, user_id):
            if state.package.total_sessions - row.used_sessions <= 0:
                if state.is_shared:
                    raise QuotaExhaustedError(
                        "One or more athletes of this package have no sessions left"
                    )
                raise QuotaExhaustedError("No sessions left on this package")

    async def consume(self, state: LedgerState, user_id: uuid.UUID) -> None:
        """Use one session: from every participant if shared, else from ``user_id``."""
        self.ensure_available(state, user_id)
        target = None if state.is_shared else user_id
        updated = await self.repo.increment_used(state.package.id, target)
        expected = len(state.rows) if state.is_shared else 1
        if updated != expected:
            # A row was exhausted or removed since load; refuse a partial update.
            raise QuotaExhaustedError("Package sessions changed during booking")
        logger.info(
            "ledger_consumed",
            package_id=str(state.package.id),
            user_id=str(user_id),
            shared=state.is_shared,
            rows=updated,
        )

    async def restore(self, state: LedgerState, user_id: uuid.UUID) -> None:
        """Give back one session: exact inverse of ``consume``."""
        if not state.is_shared and not state.has_participant(user_id):
            logger.warning(
                "ledger_restore_no_participant",
                package_id=str(state.package.id),
                user_id=str(user_id),
            )
            return
        expected = len(self.audience(state, user_id))
        target = None if state.is_shared else user_id
        updated = await self.repo.decrement_used(state.package.id, target)
        if updated != expected:
            logger.warning(
                "ledger_restore_skipped_rows",
                package_id=str(state.package.id),
                expected=expected,
                updated=updated,
            )
        logger.info(
            "ledger_restored",
            package_id=str(state.package.id),
            user_id=str(user_id),
            shared=state.is_shared,
            rows=updated,
        )

    async def summary(self, user_id: uuid.UUID) -> list[PackageBalance]:
        """Balances of every package ``user_id`` participates in."""
        balances = []
        for row in await self.repo.find_user_rows(user_id):
            package = row.package
            participant_count = await self.repo.count_participants(package.id)
            balances.append(
                PackageBalance(
                    package_id=package.id,
                    name=package.name,
                    total_sessions=package.total_sessions,
                    used_sessions=row.used_sessions,
                    remaining_sessions=package.total_sessions - row.used_sessions,
                    duration_minutes=package.duration_minutes,
                    is_active=package.is_active,
                    is_shared=participant_count > 1,
                    participant_count=participant_count,
                )
            )
        return balances

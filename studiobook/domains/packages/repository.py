"""Relational access to packages and their participant ledger rows."""
import uuid

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.domains.packages.models import Package, UserPackage


class PackageRepository:
    """Queries and counter mutations for packages.

    Counter mutations are single UPDATE statements so they take part in the
    caller's transaction and never read-modify-write in Python.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_package(self, package_id: uuid.UUID) -> Package | None:
        result = await self.db.execute(
            select(Package).where(Package.id == package_id)
        )
        return result.scalar_one_or_none()

    async def find_participant_rows(
        self,
        package_id: uuid.UUID,
        for_update: bool = False,
    ) -> list[UserPackage]:
        """Get every participant row of a package, ordered by creation.

        Args:
            package_id: The package's UUID
            for_update: Lock the rows until the transaction ends

        Returns:
            List of ledger rows (empty if the package has no participants)
        """
        query = (
            select(UserPackage)
            .where(UserPackage.package_id == package_id)
            .order_by(UserPackage.created_at, UserPackage.id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_participants(self, package_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(UserPackage.id)).where(UserPackage.package_id == package_id)
        )
        return result.scalar_one()

    async def find_user_rows(self, user_id: uuid.UUID) -> list[UserPackage]:
        result = await self.db.execute(
            select(UserPackage)
            .where(UserPackage.user_id == user_id)
            .order_by(UserPackage.created_at)
        )
        return list(result.scalars().all())

    async def increment_used(
        self,
        package_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> int:
        """Add one used session to every row of the package, or to one user's row.

        Rows already at the package total are left untouched.

        Returns:
            Number of rows updated
        """
        total = select(Package.total_sessions).where(Package.id == package_id).scalar_subquery()
        filters = [UserPackage.package_id == package_id, UserPackage.used_sessions < total]
        if user_id is not None:
            filters.append(UserPackage.user_id == user_id)
        result = await self.db.execute(
            update(UserPackage)
            .where(and_(*filters))
            .values(used_sessions=UserPackage.used_sessions + 1)
        )
        return result.rowcount

    async def decrement_used(
        self,
        package_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> int:
        """Give back one session to every row of the package, or to one user's row.

        Rows already at zero are left untouched.

        Returns:
            Number of rows updated
        """
        filters = [
            UserPackage.package_id == package_id,
            UserPackage.used_sessions > 0,
        ]
        if user_id is not None:
            filters.append(UserPackage.user_id == user_id)
        result = await self.db.execute(
            update(UserPackage)
            .where(and_(*filters))
            .values(used_sessions=UserPackage.used_sessions - 1)
        )
        return result.rowcount

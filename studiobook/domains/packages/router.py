"""Package endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.config.database import get_db
from studiobook.domains.auth.dependencies import CurrentCaller

from .ledger import PackageLedger
from .schemas import PackageBalanceResponse

router = APIRouter()


@router.get("", response_model=list[PackageBalanceResponse])
async def list_my_packages(
    caller: CurrentCaller,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[PackageBalanceResponse]:
    """List the caller's packages with used and remaining sessions."""
    balances = await PackageLedger(db).summary(caller.user_id)
    return [PackageBalanceResponse.model_validate(b) for b in balances]

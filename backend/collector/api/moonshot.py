from fastapi import APIRouter, Depends

from collector.services.balance import BalanceService, get_balance_service

router = APIRouter(prefix="/api/moonshot", tags=["moonshot"])


@router.get("/balance")
async def get_balance(service: BalanceService = Depends(get_balance_service)):
    """Current Moonshot account balance (not recorded in the history)."""
    return await service.fetch_balance()


@router.get("/spend")
async def get_spend_analysis(service: BalanceService = Depends(get_balance_service)):
    """
    Fetch the balance, append it to the history and return spend analysis.
    Windowed periods are omitted until a sample old enough exists.
    """
    return await service.refresh()

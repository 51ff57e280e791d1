"""Settlement gateway REST API — deposit, withdraw, wallet balance."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from src.container import get_settlement_service
from src.cs_common.errors import ValidationError
from src.cs_gateway.application.schemas import SettlementRequest
from src.cs_gateway.application.service import SettlementService

router = APIRouter(tags=["settlement"])


@router.post("/deposit")
async def deposit(
    body: SettlementRequest,
    service: Annotated[SettlementService, Depends(get_settlement_service)],
) -> dict[str, Any]:
    result = await service.deposit(body)
    return result.to_wire()


@router.post("/withdraw")
async def withdraw(
    body: SettlementRequest,
    service: Annotated[SettlementService, Depends(get_settlement_service)],
) -> dict[str, Any]:
    result = await service.withdraw(body)
    return result.to_wire()


@router.get("/wallet-balance")
async def wallet_balance(
    service: Annotated[SettlementService, Depends(get_settlement_service)],
    user: str | None = Query(None, description="Provider login or username"),
) -> dict[str, Any]:
    if not user:
        raise ValidationError("user query param required")
    result = await service.wallet_balance(user)
    return result.model_dump()

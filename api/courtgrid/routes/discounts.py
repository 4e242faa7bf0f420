"""Discount code routes.

Applying a code is a preview: nothing is redeemed until the booking is paid.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtgrid.core.clock import Clock, get_clock
from courtgrid.core.database import get_db
from courtgrid.schemas import DiscountApplyOut, DiscountApplyRequest, DiscountOut
from courtgrid.services import discounts
from courtgrid.services.pricing import money

router = APIRouter(prefix="/discounts", tags=["discounts"])


@router.post("/apply", response_model=DiscountApplyOut)
async def apply_discount(
    body: DiscountApplyRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    evaluation = await discounts.evaluate_code(db, body.code, body.amount, clock)
    return DiscountApplyOut(
        valid=evaluation.valid,
        code=evaluation.code,
        discount_amount=evaluation.discount_amount,
        final_amount=money(body.amount - evaluation.discount_amount),
        reason=evaluation.reason,
        message=evaluation.message,
        description=evaluation.description,
    )


@router.get("", response_model=list[DiscountOut])
async def list_discounts(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)):
    return await discounts.list_active(db, clock)

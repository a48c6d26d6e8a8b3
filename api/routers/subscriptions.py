from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

import subscriptions
from models import CurrentUser, PaymentDetails
from routers.auth import require_user

router = APIRouter(prefix="/subscriptions")


class PurchaseRequest(BaseModel):
    card_number: str = Field(pattern=r"^\d{12,19}$")
    card_holder: str = Field(min_length=2, max_length=100)
    expiry: str = Field(pattern=r"^(0[1-9]|1[0-2])/\d{2}$")
    cvc: str = Field(pattern=r"^\d{3,4}$")


@router.post("", status_code=201)
def purchase(req: PurchaseRequest, user: CurrentUser = Depends(require_user)):
    details = PaymentDetails(req.card_number, req.card_holder.strip(), req.expiry, req.cvc)
    return subscriptions.purchase(user.id, details)


@router.get("")
def my_subscriptions(user: CurrentUser = Depends(require_user)):
    return {
        "active": subscriptions.active_subscription(user.id),
        "history": subscriptions.list_subscriptions(user.id),
        "price": subscriptions.subscription_price(),
    }

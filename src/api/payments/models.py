from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

OrderIdInput = Optional[Union[int, str]]


class OrderPaymentSchema(BaseModel):
    """Payment-related view of an order row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: Optional[str] = None
    total_amount: Decimal
    currency: Optional[str] = None
    order_status: Optional[str] = None
    payment_status: str
    payment_method: Optional[str] = None
    payment_provider: Optional[str] = None
    payment_session_id: Optional[str] = None
    payment_success_indicator: Optional[str] = None
    payment_transaction_id: Optional[str] = None


class LegacySessionRequest(BaseModel):
    """Admin dashboard session request. Accepts several order id spellings."""

    orderId: OrderIdInput = None
    orders_id: OrderIdInput = None
    order_id: OrderIdInput = None
    amount: Optional[Decimal] = Field(None, description="Overrides the order total")
    currency: Optional[str] = Field(None, description="Overrides the order currency")

    @property
    def resolved_order_id(self) -> OrderIdInput:
        for value in (self.orderId, self.orders_id, self.order_id):
            if value not in (None, ""):
                return value
        return None


class MobileSessionRequest(BaseModel):
    orderId: OrderIdInput = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class CheckoutSessionRequest(BaseModel):
    orderId: OrderIdInput = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class PaymentSessionResult(BaseModel):
    """Outcome of a session creation, before it is shaped for a client."""

    order_id: int
    session_id: str
    success_indicator: Optional[str] = None
    amount: Decimal
    currency: str
    payment_url: str
    checkout_url: str
    checkout_script: str
    return_url: str
    cancel_url: str
    attempts: List[str] = Field(default_factory=list)


class ReconciliationResult(BaseModel):
    order_id: int
    payment_status: str
    source: str
    matched: Optional[bool] = Field(
        None, description="Indicator comparison outcome, None on the callback path"
    )
    transitioned: bool = Field(
        ..., description="Whether this call changed payment_status"
    )


class PaymentStatusResponse(BaseModel):
    success: bool
    orderId: int
    paymentStatus: str
    transactionId: Optional[str] = None
    resultIndicator: Optional[str] = None

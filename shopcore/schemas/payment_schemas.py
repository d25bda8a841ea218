from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, EmailStr, Field


CHARGE_SUCCESS = "charge.success"


class InitializePaymentRequest(BaseModel):
    email: Optional[EmailStr] = None


class VerifyPaymentRequest(BaseModel):
    reference: str


class PaymentInit(BaseModel):
    authorization_url: str
    access_code: Optional[str] = None
    reference: str
    amount: float             # major units, what the buyer agreed to pay


class PaymentVerification(BaseModel):
    reference: str
    status: bool                          # gateway call succeeded
    transaction_status: Optional[str]     # "success" | "failed" | "abandoned" | ...
    amount: Optional[int] = None          # minor units
    metadata: Dict[str, Any] = Field(default_factory=dict)
    customer_email: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status and self.transaction_status == "success"

    @property
    def failed(self) -> bool:
        return self.status and self.transaction_status == "failed"


# -------- WEBHOOK PAYLOADS --------

class ChargeData(BaseModel):
    reference: str
    amount: Optional[int] = None
    status: Optional[str] = None


class ChargeSuccessEvent(BaseModel):
    event: Literal["charge.success"]
    data: ChargeData


class UnknownWebhookEvent(BaseModel):
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


WebhookEvent = Union[ChargeSuccessEvent, UnknownWebhookEvent]

from pydantic import BaseModel, Field

from src.cs_flow.application.schemas import DispatchResponse
from src.cs_payment.domain.models import PaymentNotice


class PaymentVerifiedRequest(BaseModel):
    external_order_id: str = Field(..., min_length=1, max_length=128)
    external_payment_id: str = Field(..., min_length=1, max_length=128)
    verified_amount: int = Field(..., gt=0, description="Captured amount in minor units")
    signature: str = Field(..., min_length=1, max_length=256)

    def to_notice(self) -> PaymentNotice:
        return PaymentNotice(
            external_order_id=self.external_order_id,
            external_payment_id=self.external_payment_id,
            verified_amount=self.verified_amount,
            signature=self.signature,
        )


class PaymentAcceptedResponse(BaseModel):
    external_payment_id: str
    collaboration_id: str
    settlement_id: str | None
    result: DispatchResponse

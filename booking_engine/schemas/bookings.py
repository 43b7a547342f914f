from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateBookingDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    customerID: int
    equipmentID: int
    startDate: datetime
    endDate: datetime
    type: Literal["DELIVERY", "PICKUP", "delivery", "pickup"] = "DELIVERY"
    deliveryAddress: Optional[str] = None
    deliveryCity: Optional[str] = None
    deliveryProvince: Optional[str] = None
    deliveryPostalCode: Optional[str] = Field(default=None, max_length=10)
    specialInstructions: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str


class CancelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reason: str
    cancellationFee: Decimal = Decimal("0")


class PaymentEventDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bookingID: int
    outcome: Literal["succeeded", "failed"]
    amount: Decimal
    reference: Optional[str] = None


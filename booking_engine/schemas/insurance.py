from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class InsuranceRecordDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    documentType: Literal["COI", "BINDER", "POLICY", "ENDORSEMENT"] = "COI"
    insuranceCompany: Optional[str] = None
    policyNumber: Optional[str] = None
    generalLiabilityLimit: Optional[Decimal] = None
    equipmentLimit: Optional[Decimal] = None
    deductible: Optional[Decimal] = None
    effectiveDate: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    additionalInsuredIncluded: bool = False
    lossPayeeIncluded: bool = False
    waiverOfSubrogationIncluded: bool = False


class InsuranceReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Literal["UNDER_REVIEW", "APPROVED", "REJECTED"]
    reviewedBy: str
    reviewNotes: Optional[str] = None

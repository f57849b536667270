from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid

from services.economic_data import DEFAULT_COUNTRY, MIN_AGE, MAX_AGE

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class HoldingType(str, Enum):
    CASH = "cash"
    LOW_INTEREST_SAVINGS = "low-interest-savings"
    NO_YIELD = "no-yield"

class WebhookOutcome(str, Enum):
    """Terminal states of a single webhook delivery."""
    GRANTED = "GRANTED"
    IGNORED = "IGNORED"
    REJECTED = "REJECTED"
    INVALID = "INVALID"
    STORE_FAILED = "STORE_FAILED"
    OVERSIZED = "OVERSIZED"
    MISCONFIGURED = "MISCONFIGURED"

class EmailTemplateAlias(str, Enum):
    ACCESS_GRANTED = "access-granted"

class SeriesSource(str, Enum):
    DATABASE = "database"
    STATIC = "static"

# ============================================================================
# INFLATION / CALCULATOR MODELS
# ============================================================================

class InflationDataPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    rate: float  # percentage, 17.6 means 17.6%

class MacroDataRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    country: str
    year: int
    inflation_rate: float
    interest_rate: Optional[float] = None
    m2_growth: Optional[float] = None
    source: str

class PurchasingPowerPoint(BaseModel):
    year: int
    nominal: int
    real: int

class PersonalInflationImpact(BaseModel):
    initial_amount: float
    final_nominal_value: int
    final_real_value: int
    purchasing_power_loss: int
    purchasing_power_loss_percentage: float
    data_points: List[PurchasingPowerPoint]

class RetirementProjectionPoint(BaseModel):
    year: int
    age: int
    nominal: int
    real: int

class RetirementProjection(BaseModel):
    years_to_retirement: int
    retirement_age: int
    nominal_at_retirement: int
    real_at_retirement: int
    purchasing_power_change: int
    change_percent: float
    is_purchasing_power_declining: bool
    yearly_breakdown: List[RetirementProjectionPoint]

# ============================================================================
# ENTITLEMENT MODELS
# ============================================================================

class AccessGrant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    identity: str
    valid_until: datetime
    source_reference: Optional[str] = None
    customer_reference: Optional[str] = None
    # Transaction references already applied to this row; replayed deliveries are no-ops
    applied_references: List[str] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        valid_until = self.valid_until
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=timezone.utc)
        return valid_until > now

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    recipient: str
    template_alias: EmailTemplateAlias
    subject: str
    status: str = "queued"
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

# ============================================================================
# REQUEST MODELS
# ============================================================================

class PurchasingPowerRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: float = Field(gt=0, allow_inf_nan=False)
    start_year: int
    end_year: int
    annual_yield_percent: float = Field(default=0.0, ge=0, le=100, allow_inf_nan=False)
    # When set, the holding type's yield overrides annual_yield_percent
    holding_type: Optional[HoldingType] = None
    country: str = DEFAULT_COUNTRY

class DoNothingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_age: int = Field(ge=MIN_AGE, le=MAX_AGE)
    current_savings: float = Field(ge=0, allow_inf_nan=False)
    monthly_contribution: float = Field(ge=0, allow_inf_nan=False)
    # None => historical average from the macro data store
    projected_inflation: Optional[float] = Field(default=None, ge=-50, le=100, allow_inf_nan=False)
    country: str = DEFAULT_COUNTRY

class CheckoutRequest(BaseModel):
    email: str

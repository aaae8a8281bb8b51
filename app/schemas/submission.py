from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class LeadCategory(str, Enum):
    AGENT = "AGENT"
    BUYER = "BUYER"
    MORTGAGE = "MORTGAGE"


class LeadSubmission(BaseModel):
    """
    Raw lead form payload.

    Accepts the camelCase keys the website forms post (``firstName``,
    ``propertyAddress``, ``homePrice`` ...) as well as snake_case names.
    Every field is optional; blank strings are coerced to ``None`` here so
    nothing downstream has to tell "missing" from "empty".
    """

    # --- Contact ---
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    message: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    source: Optional[str] = None

    # --- Agent-specific ---
    brokerage_name: Optional[str] = Field(default=None, alias="brokerageName")
    years_experience: Optional[str] = Field(default=None, alias="yearsExperience")
    current_lead_source: Optional[str] = Field(default=None, alias="currentLeadSource")
    monthly_lead_budget: Optional[str] = Field(default=None, alias="monthlyLeadBudget")
    interested_package: Optional[str] = Field(default=None, alias="interestedPackage")
    selected_plan: Optional[str] = Field(default=None, alias="selectedPlan")

    # --- Buyer-specific ---
    property_address: Optional[str] = Field(default=None, alias="propertyAddress")
    property_price: Optional[str] = Field(default=None, alias="propertyPrice")
    property_id: Optional[str] = Field(default=None, alias="propertyId")
    budget: Optional[str] = None
    timeline: Optional[str] = None
    preapproved: Optional[str] = None
    property_beds: Optional[str] = Field(default=None, alias="propertyBeds")
    property_baths: Optional[str] = Field(default=None, alias="propertyBaths")
    property_sqft: Optional[str] = Field(default=None, alias="propertySqft")

    # --- Mortgage-specific ---
    home_price: Optional[str] = Field(default=None, alias="homePrice")
    down_payment: Optional[str] = Field(default=None, alias="downPayment")
    interest_rate: Optional[str] = Field(default=None, alias="interestRate")
    loan_term: Optional[str] = Field(default=None, alias="loanTerm")
    monthly_payment: Optional[str] = Field(default=None, alias="monthlyPayment")

    # --- Engagement hints from the page ---
    engagement_seconds: Optional[float] = Field(default=None, alias="engagementSeconds")
    lead_source_channel: Optional[str] = Field(default=None, alias="leadSourceChannel")

    model_config = {"populate_by_name": True}

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator(
        "years_experience", "monthly_lead_budget", "property_price", "property_id",
        "budget", "preapproved", "property_beds", "property_baths", "property_sqft",
        "home_price", "down_payment", "interest_rate", "loan_term", "monthly_payment",
        mode="before",
    )
    @classmethod
    def _numbers_as_text(cls, value: Any) -> Any:
        # forms send these as strings, JSON clients sometimes as numbers
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class MortgageLeadRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=10)
    home_price: str = Field(alias="homePrice")
    down_payment: str = Field(alias="downPayment")
    interest_rate: str = Field(alias="interestRate")
    loan_term: str = Field(alias="loanTerm")
    monthly_payment: str = Field(alias="monthlyPayment")

    model_config = {"populate_by_name": True}

    def to_submission(self) -> LeadSubmission:
        first_name, _, last_name = self.name.strip().partition(" ")
        return LeadSubmission(
            first_name=first_name or self.name,
            last_name=last_name.strip(),
            email=self.email,
            phone=self.phone,
            home_price=self.home_price,
            down_payment=self.down_payment,
            interest_rate=self.interest_rate,
            loan_term=self.loan_term,
            monthly_payment=self.monthly_payment,
            source="centralfloridahomes.com - Mortgage Calculator",
        )

"""
API request/response schemas for billing, lead search and packages.
"""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    planType: str = ""


class CheckoutResponse(BaseModel):
    url: str


class SubscriptionDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan_type: str
    status: str
    leads_per_month: int
    current_month_leads: int
    max_storage_packages: int
    used_storage_packages: int
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class SubscriptionResponse(BaseModel):
    subscription: Optional[SubscriptionDetail] = None
    can_generate: bool
    can_save_package: bool
    credits_remaining: Optional[int] = None  # None = unlimited
    storage_remaining: int


class LeadSearchRequest(BaseModel):
    query: str = ""
    industry: Optional[str] = None
    location: Optional[str] = None
    companySize: Optional[str] = None
    leadCount: int = 10


class GeneratedLead(BaseModel):
    company_name: str
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    score: int = 75


class LeadSearchResponse(BaseModel):
    leads: list[GeneratedLead]
    note: Optional[str] = None
    credits_remaining: Optional[int] = None


class LeadRecord(GeneratedLead):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    package_id: Optional[uuid.UUID] = None
    status: str
    created_at: datetime


class PackageCreate(BaseModel):
    package_name: Optional[str] = None
    search_query: str = ""
    leads: list[GeneratedLead] = Field(default_factory=list)


class PackageSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    package_name: str
    search_query: Optional[str] = None
    lead_count: int
    created_at: datetime


class SearchHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    query: str
    results_count: int
    created_at: datetime


class DashboardStats(BaseModel):
    total_leads: int = 0
    total_packages: int = 0
    searches_this_month: int = 0
    avg_leads_per_package: int = 0

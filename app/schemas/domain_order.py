from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


# Quote shown before checkout
class DomainQuote(BaseModel):
    domain: str
    tld: str
    years: int
    currency: str
    registrar_price_usd: Decimal
    domain_price: int      # minor units
    management_fee: int    # minor units
    total_price: int       # minor units

    class Config:
        from_attributes = True


# Properties to receive via API on creation
class DomainOrderCreate(BaseModel):
    domain: str = Field(..., min_length=3, max_length=253)
    currency: str = "USD"
    years: Optional[int] = Field(default=None, ge=1, le=10)
    persona_id: Optional[int] = None


class PersonaBind(BaseModel):
    persona_id: int


class DomainOrderInDBBase(BaseModel):
    id: int
    account_id: str
    domain: str
    tld: str
    years: int
    domain_price: int
    management_fee: int
    total_price: int
    currency: str
    status: str
    dns_status: str
    ssl_status: str
    registrar: Optional[str] = None
    registrar_order_id: Optional[str] = None
    registration_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    nameservers: Optional[List[str]] = None
    target_host: Optional[str] = None
    persona_id: Optional[int] = None
    is_published: bool = False
    published_at: Optional[datetime] = None
    last_error_message: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Additional properties to return via API
class DomainOrder(DomainOrderInDBBase):
    pass


class DnsStatusRead(BaseModel):
    domain: str
    dns_status: str
    nameservers: Optional[List[str]] = None
    target_host: Optional[str] = None
    last_dns_check: Optional[datetime] = None
    dns_error_message: Optional[str] = None

    class Config:
        from_attributes = True


class SslStatusRead(BaseModel):
    domain: str
    ssl_status: str
    last_ssl_check: Optional[datetime] = None
    ssl_error_message: Optional[str] = None

    class Config:
        from_attributes = True


class PublishedDomainRead(BaseModel):
    persona_id: int
    domain: str
    published: bool = True


class WebhookReceipt(BaseModel):
    received: bool = True
    duplicate: bool = False

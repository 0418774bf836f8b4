"""
Domain Order Model

One row per purchased domain. Tracks the provisioning lifecycle (registrar
purchase → DNS zone → SSL) and the persona binding / publish flag used by the
domain router.
"""
import enum

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text, func,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_COMPLETED = "payment_completed"
    REGISTERING = "registering"
    REGISTERED = "registered"
    DNS_CONFIGURING = "dns_configuring"
    DNS_ACTIVE = "dns_active"
    READY = "ready"
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"
    FAILED = "failed"


class DnsStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIGURING = "configuring"
    PROPAGATING = "propagating"
    ACTIVE = "active"
    ERROR = "error"


class SslStatus(str, enum.Enum):
    PENDING = "pending"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    ERROR = "error"


class DomainOrder(Base):
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)

    # Domain
    domain = Column(String(255), unique=True, nullable=False, index=True)  # canonical lower-case
    tld = Column(String(32), nullable=False)                               # e.g. ".xyz"
    years = Column(Integer, nullable=False, default=1)

    # Pricing (minor units of `currency`)
    domain_price = Column(Integer, nullable=False)
    management_fee = Column(Integer, nullable=False, default=0)
    total_price = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    quoted_registrar_price = Column(Numeric(10, 2), nullable=True)   # registrar USD price at quote time
    purchase_price_snapshot = Column(Numeric(10, 2), nullable=True)  # registrar USD price at purchase time
    stripe_payment_intent_id = Column(String(255), nullable=True)

    # Lifecycle
    status = Column(String(32), nullable=False, default=OrderStatus.PENDING_PAYMENT.value, index=True)
    dns_status = Column(String(32), nullable=False, default=DnsStatus.PENDING.value)
    ssl_status = Column(String(32), nullable=False, default=SslStatus.PENDING.value)

    # Registrar
    registrar = Column(String(64), nullable=False, default="namecom")
    registrar_order_id = Column(String(255), nullable=True)  # registrar order id; null until purchased or when not on record
    registration_date = Column(DateTime(timezone=True), nullable=True)
    expiration_date = Column(DateTime(timezone=True), nullable=True)

    # DNS / SSL
    dns_zone_id = Column(String(64), nullable=True)
    nameservers = Column(JSON, nullable=True)  # ordered list
    target_host = Column(String(255), nullable=True)
    last_dns_check = Column(DateTime(timezone=True), nullable=True)
    last_ssl_check = Column(DateTime(timezone=True), nullable=True)

    # Errors
    last_error_message = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    dns_error_message = Column(Text, nullable=True)
    ssl_error_message = Column(Text, nullable=True)

    # Binding / publishing
    persona_id = Column(Integer, ForeignKey("persona.id"), nullable=True, index=True)
    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime(timezone=True), nullable=True)

    # Cross-process processing claim (see DomainOrderStore.claim_processing)
    processing_owner = Column(String(64), nullable=True)
    processing_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    persona = relationship("Persona")

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def __repr__(self) -> str:
        return f"<DomainOrder id={self.id} domain={self.domain} status={self.status}>"

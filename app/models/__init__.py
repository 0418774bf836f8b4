from app.db.base_class import Base
from app.models.persona import Persona
from app.models.domain_order import DomainOrder, OrderStatus, DnsStatus, SslStatus
from app.models.payment_event import PaymentEvent

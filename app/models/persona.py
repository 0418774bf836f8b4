"""
Persona (external collaborator)

Personas are owned and customised elsewhere; this table only carries what the
publishing flow needs: identity and owning account.
"""
from sqlalchemy import Column, DateTime, Integer, String, func

from app.db.base_class import Base


class Persona(Base):
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

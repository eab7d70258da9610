"""
User Directory Model — Minimal actor directory used to resolve display names.
Identity management itself lives outside the ledger; rows here are read-only
from the ledger's point of view.
"""
from sqlalchemy import Column, String

from audit_ledger.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    first_name = Column(String(100), default="")
    last_name = Column(String(100), default="")
    email = Column(String(255))

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

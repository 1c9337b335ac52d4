"""
Vendors SQLAlchemy model.
"""

from sqlalchemy import BigInteger, Boolean, Column, DateTime, String, func, true

from src.db.postgres_bootstrap import Base


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=True, unique=True, index=True)  # linked auth user
    vendor_name = Column(String(255), nullable=True)
    is_vendor = Column(Boolean, nullable=False, server_default=true())
    vendor_active = Column(Boolean, nullable=False, server_default=true())
    vendor_status = Column(String(32), nullable=True)
    demoted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<Vendor(id={self.id}, user_id={self.user_id}, vendor_name={self.vendor_name})>"

"""
Vendor profiles SQLAlchemy model.

Keyed by the auth user id, so a minimal row can be created for any owner key.
"""

from sqlalchemy import Boolean, Column, DateTime, String, Text, func

from src.db.postgres_bootstrap import Base


class VendorProfile(Base):
    __tablename__ = "vendor_profiles"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    vendor_name = Column(String(255), nullable=True)
    photo_url = Column(Text, nullable=True)
    banner_url = Column(Text, nullable=True)
    is_vendor = Column(Boolean, nullable=True)
    demoted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<VendorProfile(id={self.id}, vendor_name={self.vendor_name})>"

"""
Vendor products SQLAlchemy model.

The vendor-supplied relation. Rows reference their vendor through the free
text ``vendor`` handle (``vendor_id`` is text here, when present at all).
"""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, false, func, text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.sql.schema import CheckConstraint

from src.db.postgres_bootstrap import Base


class VendorProduct(Base):
    __tablename__ = "vendor_product"

    id = Column(String, primary_key=True, server_default=text("gen_random_uuid()::text"))
    name = Column(String(255), nullable=False, index=True)
    price = Column(Float, CheckConstraint("price >= 0.0"), nullable=False, server_default=text("0"))
    original_price = Column(Float, nullable=True)
    sale_percent = Column(Float, nullable=True)
    sale = Column(String(32), nullable=True)
    rating = Column(Float, nullable=True)
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, server_default=text("0"))
    vendor = Column(String, ForeignKey("vendor_profiles.id", ondelete="CASCADE"), nullable=True, index=True)
    vendor_id = Column(String, nullable=True, index=True)

    image = Column(Text, nullable=True)
    thumbnails = Column(ARRAY(Text), nullable=True)
    payment_methods = Column(ARRAY(String), nullable=True)

    category = Column(String(255), nullable=True, index=True)
    title = Column(String(255), nullable=True)
    highlight = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    specifications = Column(Text, nullable=True)
    shipping_info = Column(Text, nullable=True)
    return_info = Column(Text, nullable=True)
    faqs = Column(JSONB, nullable=True)
    variants = Column(JSONB, nullable=True)
    hot = Column(Boolean, nullable=False, server_default=false())
    new = Column(Boolean, nullable=False, server_default=false())
    lowstock = Column(Boolean, nullable=False, server_default=false())

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<VendorProduct(id={self.id}, name={self.name}, price={self.price}, vendor={self.vendor})>"

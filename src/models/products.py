"""
Products SQLAlchemy model.

The admin-curated relation. Rows reference their vendor through a strict
numeric ``vendor_id``; some legacy columns are camelCase.
"""

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, false, func, text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.sql.schema import CheckConstraint

from src.db.postgres_bootstrap import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    price = Column(Float, CheckConstraint("price >= 0.0"), nullable=False, server_default=text("0"))
    original_price = Column(Float, nullable=True)
    sale_percent = Column(Float, CheckConstraint("sale_percent >= 0.0 AND sale_percent <= 100.0"), nullable=True)
    sale = Column(String(32), nullable=True)
    rating = Column(Float, nullable=False, server_default=text("0"))
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, server_default=text("0"))
    vendor_id = Column(BigInteger, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)

    image = Column(Text, nullable=True)
    thumbnails = Column(ARRAY(Text), nullable=True)
    payment_methods = Column(ARRAY(String), nullable=True)

    category = Column(String(255), nullable=True, index=True)
    description = Column(Text, nullable=True)
    specifications = Column(Text, nullable=True)
    shippingInfo = Column(Text, nullable=True)  # legacy camelCase column
    returnInfo = Column(Text, nullable=True)  # legacy camelCase column
    faqs = Column(JSONB, nullable=True)
    hot = Column(Boolean, nullable=False, server_default=false())
    new = Column(Boolean, nullable=False, server_default=false())
    lowstock = Column(Boolean, nullable=False, server_default=false())
    admin = Column(Boolean, nullable=False, server_default=false())

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<Product(id={self.id}, name={self.name}, price={self.price}, vendor_id={self.vendor_id})>"

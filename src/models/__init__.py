"""
Init file for the SQLAlchemy models.
"""

from .products import Product
from .vendor_products import VendorProduct
from .vendor_profiles import VendorProfile
from .vendors import Vendor

__all__ = [
    "Product",
    "Vendor",
    "VendorProduct",
    "VendorProfile",
]

"""Electronic store backend.

Catalog, cart, orders and payments behind JWT bearer authentication,
with product images served from App_Data/Images.
"""

__version__ = "1.0.0"

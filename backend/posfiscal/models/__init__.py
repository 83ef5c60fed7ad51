from .tenancy import Organization
from .inventory import Product
from .customers import Customer
from .sales import Sale, SaleLine
from .fbr import FbrConfig, FbrQueueItem

__all__ = [
    'Organization',
    'Product',
    'Customer',
    'Sale', 'SaleLine',
    'FbrConfig', 'FbrQueueItem',
]

from .auth import User, SessionToken, ROLE_ADMIN, ROLE_ACCOUNTANT, ROLES
from .orders import Order, SalesSummary, ProductSummary, UploadedFile

__all__ = [
    'User', 'SessionToken', 'ROLE_ADMIN', 'ROLE_ACCOUNTANT', 'ROLES',
    'Order', 'SalesSummary', 'ProductSummary', 'UploadedFile',
]

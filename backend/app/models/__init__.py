from app.models.user import User, ROLES
from app.models.category import Category
from app.models.listing import Listing, CATEGORIES, CONDITIONS, PRICING_TYPES, STATUSES
from app.models.offer import Offer, OFFER_STATUSES
from app.models.transaction import Transaction, TRANSACTION_STATUSES, calculate_commission, calculate_net_amount
from app.models.review import Review
from app.models.admin_audit_log import AdminAuditLog, ADMIN_ACTIONS, AUDIT_TARGET_TYPES
from app.models.auth_tokens import VerificationToken, PasswordResetToken

__all__ = [
    "User",
    "ROLES",
    "Category",
    "Listing",
    "CATEGORIES",
    "CONDITIONS",
    "PRICING_TYPES",
    "STATUSES",
    "Offer",
    "OFFER_STATUSES",
    "Transaction",
    "TRANSACTION_STATUSES",
    "calculate_commission",
    "calculate_net_amount",
    "Review",
    "AdminAuditLog",
    "ADMIN_ACTIONS",
    "AUDIT_TARGET_TYPES",
    "VerificationToken",
    "PasswordResetToken",
]

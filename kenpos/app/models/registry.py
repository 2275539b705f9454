"""Import every model module so ``Base.metadata`` is complete.

Used by alembic's env and by the test fixtures before ``create_all``.
"""

from kenpos.app.core.database import Base
from kenpos.app.models.audit import AuditLog
from kenpos.app.models.customer import Customer
from kenpos.app.models.inventory import PricingType, Product, ProductKind
from kenpos.app.models.outbox import CartLine, OutboxEntry, OutboxStatus
from kenpos.app.models.pos import (
    DiscountType,
    PaymentMethod,
    Sale,
    SaleLine,
    SalePayment,
    Shift,
    ShiftStatus,
)
from kenpos.app.models.user import RoleEnum, User

__all__ = [
    "AuditLog",
    "Base",
    "CartLine",
    "Customer",
    "DiscountType",
    "OutboxEntry",
    "OutboxStatus",
    "PaymentMethod",
    "PricingType",
    "Product",
    "ProductKind",
    "RoleEnum",
    "Sale",
    "SaleLine",
    "SalePayment",
    "Shift",
    "ShiftStatus",
    "User",
]

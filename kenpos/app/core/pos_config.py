"""Business rules handed to the engine.

Services take a ``PosConfig`` argument rather than reading ``settings``
so rules can be swapped per call (tests, settings screen reloads).
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from kenpos.app.core.config import Settings, settings
from kenpos.app.models.inventory import PricingType
from kenpos.app.models.pos import DiscountType


class LoyaltyRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    points_per_unit: Decimal = Field(default=Decimal("100"), gt=0)
    redemption_rate: Decimal = Field(default=Decimal("0.5"), gt=0)
    min_redeemable_points: int = Field(default=100, ge=0)
    max_redemption_percentage: Decimal = Field(default=Decimal("30"), ge=0, le=100)


class DiscountRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    type: DiscountType = DiscountType.PERCENTAGE
    max_value: Decimal = Field(default=Decimal("20"), ge=0)


class PosConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    vat_enabled: bool = True
    vat_rate_percent: Decimal = Field(default=Decimal("16"), ge=0)
    default_pricing_type: PricingType = PricingType.INCLUSIVE
    discount: DiscountRules = DiscountRules()
    loyalty: LoyaltyRules = LoyaltyRules()
    walk_in_customer_id: str = "cust001"
    invoice_prefix: str = "INV-"

    @property
    def vat_rate(self) -> Decimal:
        """VAT as a fraction; zero when VAT is switched off."""
        if not self.vat_enabled:
            return Decimal("0")
        return self.vat_rate_percent / Decimal("100")

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> PosConfig:
        s = source or settings
        return cls(
            vat_enabled=s.VAT_ENABLED,
            vat_rate_percent=s.VAT_RATE,
            default_pricing_type=PricingType(s.DEFAULT_PRICING_TYPE),
            discount=DiscountRules(
                enabled=s.DISCOUNT_ENABLED,
                type=DiscountType(s.DISCOUNT_TYPE),
                max_value=s.DISCOUNT_MAX_VALUE,
            ),
            loyalty=LoyaltyRules(
                enabled=s.LOYALTY_ENABLED,
                points_per_unit=s.LOYALTY_POINTS_PER_UNIT,
                redemption_rate=s.LOYALTY_REDEMPTION_RATE,
                min_redeemable_points=s.LOYALTY_MIN_REDEEMABLE_POINTS,
                max_redemption_percentage=s.LOYALTY_MAX_REDEMPTION_PERCENTAGE,
            ),
            walk_in_customer_id=s.WALK_IN_CUSTOMER_ID,
            invoice_prefix=s.INVOICE_PREFIX,
        )

"""
Create demo discounts for testing and demos.

This script creates the discounts used by the storefront demo:
- SAVE20: 20% off, capped at $25, minimum purchase $50
- WELCOME5: $5 off, limited to 100 uses
- Automatic 10% off products 123 and 456
"""

import sys
from pathlib import Path

# Add parent directory to path so we can import from repositories
sys.path.insert(0, str(Path(__file__).parent.parent))

from decimal import Decimal

from domain.discount import DiscountKind
from repositories.discount_repository import create_discount, get_discount_by_code, list_active_discounts


DEMO_DISCOUNTS = [
    {
        "kind": DiscountKind.PERCENTAGE,
        "value": Decimal("20"),
        "code": "SAVE20",
        "name": "Save 20%",
        "min_purchase_amount": Decimal("50"),
        "max_discount_amount": Decimal("25"),
        "priority": 10,
    },
    {
        "kind": DiscountKind.FIXED_AMOUNT,
        "value": Decimal("5"),
        "code": "WELCOME5",
        "name": "Welcome $5",
        "usage_limit": 100,
    },
    {
        "kind": DiscountKind.PERCENTAGE,
        "value": Decimal("10"),
        "name": "Featured products",
        "scope_product_ids": ["123", "456"],
        "priority": 1,
    },
]


def create_demo_discounts():
    """Create the demo discounts, skipping ones that already exist."""

    existing_names = {rule.name for rule in list_active_discounts()}

    for fields in DEMO_DISCOUNTS:
        code = fields.get("code")
        if (code and get_discount_by_code(code)) or (not code and fields["name"] in existing_names):
            print(f"Demo discount already exists: {code or fields['name']}")
            continue

        try:
            rule = create_discount(**fields)
        except (ValueError, RuntimeError) as e:
            print(f"[ERROR] Failed to create {code or fields['name']}")
            print(f"  Error: {e}")
            continue

        print(f"[SUCCESS] Demo discount created: {rule.code or rule.name}")
        print(f"  Discount ID: {rule.discount_id}")
        print(f"  Type: {rule.kind.value}, value: {rule.value}")


if __name__ == "__main__":
    create_demo_discounts()

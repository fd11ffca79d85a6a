"""
Transaction Categories

DESIGN DECISION: Categories are a plain enumerated mapping from the
stored name to display metadata. The icon is a key the presentation
layer resolves, so there is no lookup logic beyond a dict access.

Transactions store the category NAME as free text; names outside the
catalogue are allowed (validation warns) and fall back to "Other".
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from finance_ledger.models.ledger import TransactionType


class CategoryInfo(BaseModel):
    """Display metadata for one category."""
    model_config = ConfigDict(frozen=True)

    name: str
    display_label: str
    icon_key: str
    kind: TransactionType


INCOME_CATEGORIES: dict[str, CategoryInfo] = {
    info.name: info
    for info in (
        CategoryInfo(name="Salary", display_label="Salary", icon_key="wallet", kind=TransactionType.INCOME),
        CategoryInfo(name="Share Trading", display_label="Share Trading", icon_key="trending-up", kind=TransactionType.INCOME),
        CategoryInfo(name="HPK Bank", display_label="HPK Bank", icon_key="landmark", kind=TransactionType.INCOME),
        CategoryInfo(name="Other Source", display_label="Other Source", icon_key="plus-circle", kind=TransactionType.INCOME),
        CategoryInfo(name="Freelance", display_label="Freelance", icon_key="briefcase", kind=TransactionType.INCOME),
    )
}

EXPENSE_CATEGORIES: dict[str, CategoryInfo] = {
    info.name: info
    for info in (
        CategoryInfo(name="Fuel", display_label="Fuel", icon_key="fuel", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Medical", display_label="Medical", icon_key="activity", kind=TransactionType.EXPENSE),
        CategoryInfo(name="EMI", display_label="EMI", icon_key="credit-card", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Rent", display_label="Rent", icon_key="home", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Dining", display_label="Dining", icon_key="utensils", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Shopping", display_label="Shopping", icon_key="shopping-bag", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Travel", display_label="Travel", icon_key="plane", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Donation", display_label="Donation", icon_key="gift", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Home Needs", display_label="Home Needs", icon_key="package", kind=TransactionType.EXPENSE),
        CategoryInfo(name="Other", display_label="Other", icon_key="more-horizontal", kind=TransactionType.EXPENSE),
    )
}

FALLBACK_CATEGORY = EXPENSE_CATEGORIES["Other"]


def categories_for(kind: TransactionType) -> list[CategoryInfo]:
    """Categories offered for a transaction type, in catalogue order."""
    if kind == TransactionType.INCOME:
        return list(INCOME_CATEGORIES.values())
    return list(EXPENSE_CATEGORIES.values())


def get_category_info(name: Optional[str]) -> CategoryInfo:
    """Metadata for a category name, falling back to "Other"."""
    if not name:
        return FALLBACK_CATEGORY
    return INCOME_CATEGORIES.get(name) or EXPENSE_CATEGORIES.get(name) or FALLBACK_CATEGORY


def is_known_category(name: str, kind: TransactionType) -> bool:
    if kind == TransactionType.INCOME:
        return name in INCOME_CATEGORIES
    return name in EXPENSE_CATEGORIES

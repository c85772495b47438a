"""Category resolver: free-form category tokens <-> structured categories.

A category token is one of the reserved keywords ("income", "everything_else",
"ignore", "uncategorized"), "fund:<fundId>", or a bare bill id. The resolver is
total: anything that is not a keyword or a fund reference is a bill id, and
dangling bill ids simply never match a bill at read time.
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union


BILL = "bill"
INCOME = "income"
EVERYTHING_ELSE = "everything_else"
IGNORE = "ignore"
UNCATEGORIZED = "uncategorized"
FUND = "fund"

FUND_PREFIX = "fund:"


@dataclass(frozen=True)
class BillCategory:
    bill_id: str
    kind = BILL


@dataclass(frozen=True)
class IncomeCategory:
    # Month string the income counts toward; may be unset on legacy rows
    month: Optional[str] = None
    kind = INCOME


@dataclass(frozen=True)
class EverythingElse:
    kind = EVERYTHING_ELSE


@dataclass(frozen=True)
class Ignore:
    kind = IGNORE


@dataclass(frozen=True)
class Uncategorized:
    kind = UNCATEGORIZED


@dataclass(frozen=True)
class FundCategory:
    fund_id: str
    kind = FUND


Category = Union[BillCategory, IncomeCategory, EverythingElse, Ignore, Uncategorized, FundCategory]

_KEYWORDS = {
    EVERYTHING_ELSE: EverythingElse(),
    IGNORE: Ignore(),
    UNCATEGORIZED: Uncategorized(),
}


def parse_category(token: Optional[str], income_month: Optional[str] = None) -> Category:
    """Resolve a category token.

    Args:
        token: category token from a client
        income_month: month the income counts toward; only kept for "income"

    Returns:
        The structured category
    """
    token = token or ""
    if token == INCOME:
        return IncomeCategory(month=income_month)
    if token in _KEYWORDS:
        return _KEYWORDS[token]
    if token.startswith(FUND_PREFIX):
        return FundCategory(fund_id=token[len(FUND_PREFIX):])
    return BillCategory(bill_id=token)


def format_category(category: Optional[Category]) -> Optional[str]:
    """Render a structured category back to its token."""
    if category is None:
        return None
    if isinstance(category, BillCategory):
        return category.bill_id
    if isinstance(category, FundCategory):
        return f"{FUND_PREFIX}{category.fund_id}"
    return category.kind


def target_id(category: Optional[Category]) -> Optional[str]:
    """Bill id for bills, fund id for funds, None otherwise."""
    if isinstance(category, BillCategory):
        return category.bill_id
    if isinstance(category, FundCategory):
        return category.fund_id
    return None


def to_columns(category: Optional[Category]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Storage projection: (category_type, category_id, income_month).

    The income month is cleared for every kind except income.
    """
    if category is None:
        return None, None, None
    income_month = category.month if isinstance(category, IncomeCategory) else None
    return category.kind, target_id(category), income_month


def from_columns(
    kind: Optional[str],
    category_id: Optional[str] = None,
    income_month: Optional[str] = None
) -> Optional[Category]:
    """Rebuild a category from stored columns. A null kind means unassigned."""
    if kind is None:
        return None
    if kind == BILL:
        return BillCategory(bill_id=category_id or "")
    if kind == FUND:
        return FundCategory(fund_id=category_id or "")
    if kind == INCOME:
        return IncomeCategory(month=income_month)
    return _KEYWORDS[kind]


def display_token(kind: Optional[str], category_id: Optional[str]) -> Optional[str]:
    """Token for a stored row, as returned to API clients."""
    return format_category(from_columns(kind, category_id))

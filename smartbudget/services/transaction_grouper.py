"""
Transaction grouping: pure functions, no DB.

Two expense transactions land in the same group when they share category and
subcategory and their descriptions are similar. Amount is deliberately not a
grouping key: utility bills and card payments vary from one cycle to the next.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal

from smartbudget.services.records import TransactionRecord

# Share of (longer side's) significant words that must overlap
WORD_OVERLAP_THRESHOLD = 0.5
# Words this short ("-", "of", "to") never count toward overlap
_MIN_WORD_LENGTH = 3


def normalize_description(text: str | None) -> str:
    """Lowercase, trim, collapse internal whitespace."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.lower().strip())


def is_description_similar(desc1: str | None, desc2: str | None) -> bool:
    """
    Exact match, containment either way (catches suffixes such as
    "municipal tax - city hall"), or enough significant-word overlap.
    """
    a = normalize_description(desc1)
    b = normalize_description(desc2)
    if not a or not b:
        return False

    if a == b:
        return True

    if a in b or b in a:
        return True

    words1 = [w for w in a.split(" ") if len(w) >= _MIN_WORD_LENGTH]
    words2 = [w for w in b.split(" ") if len(w) >= _MIN_WORD_LENGTH]
    if not words1 or not words2:
        return False

    common = [w for w in words1 if w in words2]
    return len(common) / max(len(words1), len(words2)) >= WORD_OVERLAP_THRESHOLD


@dataclass
class TransactionGroup:
    common_description: str
    category_id: str | None
    sub_category_id: str | None
    transactions: list[TransactionRecord] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None

    def add(self, txn: TransactionRecord) -> None:
        amount = abs(Decimal(txn.amount))
        self.transactions.append(txn)
        self.total_amount += amount
        self.min_amount = amount if self.min_amount is None else min(self.min_amount, amount)
        self.max_amount = amount if self.max_amount is None else max(self.max_amount, amount)

    @property
    def average_amount(self) -> Decimal:
        if not self.transactions:
            return Decimal("0")
        return self.total_amount / len(self.transactions)

    def accepts(self, txn: TransactionRecord) -> bool:
        return (
            self.category_id == txn.category_id
            and self.sub_category_id == txn.sub_category_id
            and is_description_similar(txn.description, self.common_description)
        )


def group_similar_transactions(transactions: list[TransactionRecord]) -> list[TransactionGroup]:
    """
    Partition transactions into similarity groups, first-match wins.

    The group keeps the description of its first member. Groups with fewer
    than two members are dropped. Empty input returns an empty list.
    """
    groups: list[TransactionGroup] = []

    for txn in transactions or []:
        match = next((g for g in groups if g.accepts(txn)), None)
        if match is None:
            match = TransactionGroup(
                common_description=normalize_description(txn.description),
                category_id=txn.category_id,
                sub_category_id=txn.sub_category_id,
            )
            groups.append(match)
        match.add(txn)

    return [g for g in groups if len(g.transactions) >= 2]

"""
Text extraction for Interac e-Transfer deposit notifications.

Everything tied to the bank's email wording lives here, so a format change
only touches this module.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from storefront.core.config import settings
from storefront.core.exceptions import AmountUnparseable, NoReferenceFound

# Character class of the deposit matcher; unlike the generator it also admits Q
REFERENCE_BODY = "[A-HJ-NP-Z2-9]{6}"


@dataclass
class ParsedTransfer:
    reference: str
    amount: Decimal


def reference_pattern(prefix: Optional[str] = None) -> re.Pattern:
    prefix = settings.reference_prefix if prefix is None else prefix
    return re.compile(rf"\b{re.escape(prefix)}{REFERENCE_BODY}\b")


def extract_reference(body: str, prefix: Optional[str] = None) -> str:
    match = reference_pattern(prefix).search(body or "")
    if not match:
        raise NoReferenceFound()
    return match.group(0)


def extract_amount(body: str, pattern: Optional[str] = None) -> Decimal:
    """Deposited amount, e.g. ``Funds Deposited!\\n$1,020.00`` -> Decimal('1020.00')"""
    match = re.search(pattern or settings.transfer_amount_pattern, body or "")
    if not match:
        raise AmountUnparseable()
    try:
        return Decimal(match.group(1).replace(",", ""))
    except (InvalidOperation, IndexError) as e:
        raise AmountUnparseable() from e


def parse_notification(body: str) -> ParsedTransfer:
    return ParsedTransfer(reference=extract_reference(body), amount=extract_amount(body))

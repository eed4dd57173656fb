"""PII detection: SSN, email, phone and Luhn-checked credit card numbers"""

import re
from typing import List

from .models import PiiMatch


PII_SSN = 'ssn'
PII_EMAIL = 'email'
PII_PHONE = 'phone'
PII_CREDIT_CARD = 'credit_card'

SSN_REGEX = re.compile(r'\b\d{3}-?\d{2}-?\d{4}\b', re.ASCII)
EMAIL_REGEX = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', re.ASCII)
# Over-matches long digit runs
PHONE_REGEX = re.compile(r'\b(?:\+?\d{1,3}[-. ]?)?(?:\(?\d{2,4}\)?[-. ]?)?\d{3}[-. ]?\d{4}\b', re.ASCII)
CREDIT_CARD_CANDIDATE_REGEX = re.compile(r'\b(?:\d[ -]*?){13,19}\b', re.ASCII)

_PATTERN_TABLE = (
    (PII_SSN, SSN_REGEX),
    (PII_EMAIL, EMAIL_REGEX),
    (PII_PHONE, PHONE_REGEX),
)


def luhn_check(value: str) -> bool:
    """True when the 13-19 digits in value carry a valid Luhn checksum"""
    digits = re.sub(r'[^0-9]', '', value)
    if len(digits) < 13 or len(digits) > 19:
        return False

    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def detect_pii(text: str) -> List[PiiMatch]:
    matches: List[PiiMatch] = []
    if not text:
        return matches

    for pii_type, regex in _PATTERN_TABLE:
        matches.extend(PiiMatch(type=pii_type, value=m.group(0)) for m in regex.finditer(text))

    for m in CREDIT_CARD_CANDIDATE_REGEX.finditer(text):
        candidate = m.group(0)
        if candidate and luhn_check(candidate):
            matches.append(PiiMatch(type=PII_CREDIT_CARD, value=candidate))

    return matches


def contains_pii(text: str) -> bool:
    return len(detect_pii(text)) > 0


def summarize_pii(matches: List[PiiMatch]) -> str:
    """Name the PII categories found, without echoing the values"""
    kinds = sorted({match.type for match in matches})
    return ', '.join(kinds)

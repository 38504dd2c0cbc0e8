"""Ticket and letter number generation.

Letter numbers look like ``001/TE-UNILA/SKP/X/2026/A1B2C3``: a monthly
sequence, the institution, a category code, the Roman month, the year and a
random suffix. The sequence is derived from a count and is not serialized
across concurrent approvals; the random suffix, checked against the store
before use, is what keeps numbers unique.
"""

from __future__ import annotations

import re
import secrets
import string
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Protocol

from .models import TicketCategory, TicketSummary

INSTITUTION = "TE-UNILA"
SUFFIX_LENGTH = 6
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

CATEGORY_CODES: dict[str, str] = {
    TicketCategory.SURAT_KETERANGAN.value: "SKP",
    TicketCategory.SURAT_REKOMENDASI.value: "SRK",
    TicketCategory.IJIN.value: "IJN",
}
FALLBACK_CATEGORY_CODE = "LNY"
CATEGORY_NAMES: dict[str, str] = {
    "SKP": "Surat Keterangan",
    "SRK": "Surat Rekomendasi",
    "IJN": "Ijin",
    "LNY": "Lainnya",
}
UNKNOWN_CATEGORY_NAME = "Tidak diketahui"
ROMAN_MONTHS = ("I", "II", "III", "IV", "V", "VI", "VII", "VIII", "IX", "X", "XI", "XII")

LETTER_NUMBER_PATTERN = re.compile(r"\d{3}/TE-UNILA/(SKP|SRK|IJN|LNY)/[IVX]+/\d{4}/[A-Z0-9]{6}")
# Four digits at minimum; a day past 9999 tickets widens the sequence.
TICKET_NUMBER_PATTERN = re.compile(r"TKT-\d{8}-\d{4,}")

REASON_VALID = "valid"
REASON_INVALID_FORMAT = "invalid format"
REASON_NOT_FOUND = "not found"


def random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def category_code(category: TicketCategory | str) -> str:
    value = category.value if isinstance(category, TicketCategory) else str(category)
    return CATEGORY_CODES.get(value, FALLBACK_CATEGORY_CODE)


def roman_month(month: int) -> str:
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {month}")
    return ROMAN_MONTHS[month - 1]


def ticket_day_key(day: date) -> str:
    return f"{day:%Y%m%d}"


def ticket_number_prefix(day: date) -> str:
    return f"TKT-{ticket_day_key(day)}-"


def format_ticket_number(day: date, sequence: int) -> str:
    return f"{ticket_number_prefix(day)}{sequence:04d}"


@dataclass(frozen=True, slots=True)
class LetterNumberInfo:
    sequential_number: str
    institution: str
    category_code: str
    category_name: str
    month: str
    year: str
    unique_code: str

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class LetterVerification:
    code: str
    valid: bool
    reason: str
    ticket: TicketSummary | None = None
    info: LetterNumberInfo | None = None


class LetterNumberStore(Protocol):
    """Datastore view needed while issuing a letter number."""

    async def count_letter_numbers_in_month(self, year: int, month: int) -> int:
        ...

    async def letter_number_exists(self, letter_number: str) -> bool:
        ...


class LetterNumberLookup(Protocol):
    async def find_by_letter_number(self, letter_number: str) -> TicketSummary | None:
        ...


class LetterNumberGenerator:
    """Compose, verify and parse letter numbers."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        suffix_factory: Callable[[], str] | None = None,
    ) -> None:
        self._clock = clock or _utcnow
        self._suffix_factory = suffix_factory or random_suffix

    async def generate(
        self,
        category: TicketCategory | str,
        store: LetterNumberStore,
        *,
        at: datetime | None = None,
    ) -> str:
        moment = at or self._clock()
        issued = await store.count_letter_numbers_in_month(moment.year, moment.month)
        prefix = "/".join(
            (
                f"{issued + 1:03d}",
                INSTITUTION,
                category_code(category),
                roman_month(moment.month),
                f"{moment.year:04d}",
            )
        )
        # Only the suffix is redrawn on collision.
        while True:
            candidate = f"{prefix}/{self._suffix_factory()}"
            if not await store.letter_number_exists(candidate):
                return candidate

    @staticmethod
    def is_well_formed(code: str) -> bool:
        return LETTER_NUMBER_PATTERN.fullmatch(code) is not None

    @staticmethod
    def parse(code: str) -> LetterNumberInfo | None:
        parts = code.split("/")
        if len(parts) != 6:
            return None
        sequential_number, institution, code_part, month, year, unique_code = parts
        return LetterNumberInfo(
            sequential_number=sequential_number,
            institution=institution,
            category_code=code_part,
            category_name=CATEGORY_NAMES.get(code_part, UNKNOWN_CATEGORY_NAME),
            month=month,
            year=year,
            unique_code=unique_code,
        )

    async def verify(self, code: str, lookup: LetterNumberLookup) -> LetterVerification:
        """Check the format, then look the number up; malformed input never hits the store."""

        if not self.is_well_formed(code):
            return LetterVerification(code=code, valid=False, reason=REASON_INVALID_FORMAT)
        summary = await lookup.find_by_letter_number(code)
        if summary is None:
            return LetterVerification(code=code, valid=False, reason=REASON_NOT_FOUND)
        return LetterVerification(
            code=code,
            valid=True,
            reason=REASON_VALID,
            ticket=summary,
            info=self.parse(code),
        )

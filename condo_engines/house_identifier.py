"""
condo_engines.house_identifier -- Which house does a deposit belong to?

Responsibility:
    Derive the house number a deposit pays for from two independent
    signals: the cents of the amount (residents add their house number as
    cents, e.g. 1500.15 for house 15) and the free-text concept of the
    bank line ("pago casa 15 mantenimiento").  The signals are reported
    side by side with an outcome; they are never merged silently.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import condo_kernel/domain and condo_kernel/logging_config.

Invariants enforced:
    - Cents rule: one fractional digit d means house d*10; two digits are
      read literally; trailing zeros are stripped first and only the first
      two remaining digits count.  Zero and values outside the configured
      bounds yield no house.
    - Concept patterns are tried most-specific first; the first match
      inside the bounds wins.
    - A concept match below the minimum confidence is recorded but does
      not count as a signal.
    - Differing signals produce CONFLICT, never a pick.

Failure modes:
    - None.  Unparseable input yields the NONE outcome.

Audit relevance:
    ``HouseIdentification.to_metadata()`` is stored with every reconciled
    deposit so an operator can see both signals and the pattern that
    matched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from condo_engines.tracer import traced_engine
from condo_kernel.domain.houses import HouseNumberBounds
from condo_kernel.logging_config import get_logger

logger = get_logger("engines.house_identifier")


class ConceptConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    ConceptConfidence.LOW: 1,
    ConceptConfidence.MEDIUM: 2,
    ConceptConfidence.HIGH: 3,
}


class IdentificationOutcome(str, Enum):
    """How the two house signals relate."""

    NONE = "none"
    CENTS_ONLY = "cents_only"
    CONCEPT_ONLY = "concept_only"
    AGREE = "agree"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class ConceptPattern:
    name: str
    regex: re.Pattern[str]
    confidence: ConceptConfidence


CONCEPT_HOUSE_PATTERNS: tuple[ConceptPattern, ...] = (
    ConceptPattern("casa_numero", re.compile(r"casa\s*[#-]?\s*(\d{1,2})"), ConceptConfidence.HIGH),
    ConceptPattern("casa_numero_espacio", re.compile(r"casa\s+(\d{1,2})"), ConceptConfidence.HIGH),
    ConceptPattern("c_abbreviation", re.compile(r"\bc\s*-?(\d{1,2})(?:\b|[^0-9])"), ConceptConfidence.HIGH),
    ConceptPattern("c_single_digit", re.compile(r"\bc([0-9])"), ConceptConfidence.HIGH),
    ConceptPattern("cs_abbreviation", re.compile(r"\bcs\s*-?(\d{1,2})"), ConceptConfidence.MEDIUM),
    ConceptPattern("apto_numero", re.compile(r"apto\s*[#.-]?\s*(\d{1,2})"), ConceptConfidence.HIGH),
    ConceptPattern("apt_numero", re.compile(r"apt\s*[#.-]?\s*(\d{1,2})"), ConceptConfidence.HIGH),
    ConceptPattern("apart_numero", re.compile(r"apart\s*[#.-]?\s*(\d{1,2})"), ConceptConfidence.HIGH),
    ConceptPattern("lote_numero", re.compile(r"lote\s*[#.-]?\s*(\d{1,2})"), ConceptConfidence.MEDIUM),
    ConceptPattern("manzana_numero", re.compile(r"manzana\s*[#.-]?\s*(\d{1,2})"), ConceptConfidence.MEDIUM),
    ConceptPattern("propiedad_numero", re.compile(r"propiedad\s*[#.-]?\s*(\d{1,2})"), ConceptConfidence.MEDIUM),
    ConceptPattern("leading_number", re.compile(r"^(\d{1,2})(?:\s|$)"), ConceptConfidence.LOW),
)

SPANISH_MONTHS: tuple[str, ...] = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

_EXPLICIT_MONTH = re.compile(r"\bm[eé]s\s*-?\s*(\d{1,2})(?!\d)")
_NUMERIC_MONTH = re.compile(r"(?<!\d)(\d{1,2})(?!\d)")

# Keyword -> description, checked in this order.
PAYMENT_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("mantenimiento", "Pago de mantenimiento"),
    ("agua", "Pago de agua"),
    ("luz", "Pago de luz/energía"),
    ("cuota", "Cuota de pago"),
    ("administración", "Cuota administrativa"),
    ("renta", "Pago de renta"),
    ("arriendo", "Pago de arriendo"),
    ("servicios", "Servicios"),
    ("expensas", "Expensas"),
    ("condominio", "Cuota de condominio"),
    ("piscina", "Acceso/cuota de piscina"),
    ("estacionamiento", "Estacionamiento"),
    ("parqueadero", "Parqueadero"),
    ("basura", "Recolección de basura"),
    ("reserva", "Fondo de reserva"),
    ("fondo", "Fondo de reserva"),
    ("seguro", "Seguro"),
    ("impuesto", "Impuesto/predial"),
)


# =============================================================================
# Cents signal
# =============================================================================


def fraction_digits(amount: Decimal) -> str:
    """
    Significant fractional digits of ``amount``, at most two.

    >>> fraction_digits(Decimal("1500.150000000"))
    '15'
    >>> fraction_digits(Decimal("800.00"))
    ''
    """
    text = format(abs(amount), "f")
    if "." not in text:
        return ""
    return text.split(".", 1)[1].rstrip("0")[:2]


def house_from_fraction_digits(digits: str, bounds: HouseNumberBounds) -> int | None:
    """
    House number encoded by fractional digits.

    One digit d encodes d*10; two digits are literal.  Returns None for
    empty input, zero, non-digits, or a number outside ``bounds``.
    """
    if not digits or not digits.isdigit() or len(digits) > 2:
        return None
    number = int(digits) * 10 if len(digits) == 1 else int(digits)
    if number == 0 or not bounds.contains(number):
        return None
    return number


def house_from_cents(amount: Decimal, bounds: HouseNumberBounds) -> int | None:
    return house_from_fraction_digits(fraction_digits(amount), bounds)


# =============================================================================
# Concept signal
# =============================================================================


@dataclass(frozen=True)
class MonthMention:
    number: int
    name: str
    numeric: bool


@dataclass(frozen=True)
class ConceptExtraction:
    """A house number found in concept text, plus enrichment."""

    house_number: int
    confidence: ConceptConfidence
    pattern_name: str
    matched_text: str
    month: MonthMention | None = None
    payment_type: str | None = None


def _find_month(text: str) -> MonthMention | None:
    for index, name in enumerate(SPANISH_MONTHS, start=1):
        if name in text:
            return MonthMention(number=index, name=name, numeric=False)
    # "mes 3" wins over a bare number such as the house in "casa 15 mes 3"
    explicit = _EXPLICIT_MONTH.search(text)
    candidates = [explicit] if explicit else []
    candidates.extend(_NUMERIC_MONTH.finditer(text))
    for match in candidates:
        number = int(match.group(1))
        if 1 <= number <= 12:
            return MonthMention(number=number, name=SPANISH_MONTHS[number - 1], numeric=True)
    return None


def _find_payment_type(text: str) -> str | None:
    for keyword, _description in PAYMENT_KEYWORDS:
        if keyword in text:
            return keyword
    return None


def extract_concept_house(
    concept: str | None,
    bounds: HouseNumberBounds,
) -> ConceptExtraction | None:
    """First pattern match whose number lies inside ``bounds``."""
    if not concept or not concept.strip():
        return None

    text = concept.strip().lower()
    for pattern in CONCEPT_HOUSE_PATTERNS:
        for match in pattern.regex.finditer(text):
            number = int(match.group(1))
            if number > 0 and bounds.contains(number):
                return ConceptExtraction(
                    house_number=number,
                    confidence=pattern.confidence,
                    pattern_name=pattern.name,
                    matched_text=match.group(0).strip(),
                    month=_find_month(text),
                    payment_type=_find_payment_type(text),
                )
    return None


# =============================================================================
# Combined identification
# =============================================================================


@dataclass(frozen=True)
class HouseIdentification:
    """
    Both house signals for one deposit.

    Contract:
        ``hint`` is the agreed or single available house number; it is
        None for NONE and CONFLICT.
    """

    cents_house: int | None
    concept_house: int | None
    outcome: IdentificationOutcome
    concept: ConceptExtraction | None = None

    @property
    def hint(self) -> int | None:
        match self.outcome:
            case IdentificationOutcome.CENTS_ONLY | IdentificationOutcome.AGREE:
                return self.cents_house
            case IdentificationOutcome.CONCEPT_ONLY:
                return self.concept_house
            case IdentificationOutcome.NONE | IdentificationOutcome.CONFLICT:
                return None

    @property
    def is_conflict(self) -> bool:
        return self.outcome is IdentificationOutcome.CONFLICT

    def to_metadata(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "house_outcome": self.outcome.value,
            "house_hint": self.hint,
            "cents_house_number": self.cents_house,
            "concept_house_number": self.concept_house,
        }
        if self.concept is not None:
            data["concept_match"] = {
                "house_number": self.concept.house_number,
                "confidence": self.concept.confidence.value,
                "pattern": self.concept.pattern_name,
                "matched_text": self.concept.matched_text,
            }
            if self.concept.month is not None:
                data["concept_month"] = {
                    "number": self.concept.month.number,
                    "name": self.concept.month.name,
                    "numeric": self.concept.month.numeric,
                }
            if self.concept.payment_type is not None:
                data["payment_type"] = self.concept.payment_type
        return data


def classify_signals(cents_house: int | None, concept_house: int | None) -> IdentificationOutcome:
    if cents_house is None and concept_house is None:
        return IdentificationOutcome.NONE
    if concept_house is None:
        return IdentificationOutcome.CENTS_ONLY
    if cents_house is None:
        return IdentificationOutcome.CONCEPT_ONLY
    if cents_house == concept_house:
        return IdentificationOutcome.AGREE
    return IdentificationOutcome.CONFLICT


class HouseIdentifier:
    """
    Combines the cents and concept signals.

    Contract:
        Pure; identical (amount, concept) always yields the same
        identification.

    Non-goals:
        - No AI or fuzzy text analysis; regex patterns only.
    """

    def __init__(
        self,
        bounds: HouseNumberBounds | None = None,
        min_concept_confidence: ConceptConfidence = ConceptConfidence.MEDIUM,
    ):
        self.bounds = bounds or HouseNumberBounds()
        self.min_concept_confidence = min_concept_confidence

    @traced_engine("house_identifier", "1.0", fingerprint_fields=("amount", "concept"))
    def identify(self, amount: Decimal, concept: str | None) -> HouseIdentification:
        cents_house = house_from_cents(amount, self.bounds)
        extraction = extract_concept_house(concept, self.bounds)

        concept_house = None
        if extraction is not None and extraction.confidence.rank >= self.min_concept_confidence.rank:
            concept_house = extraction.house_number

        outcome = classify_signals(cents_house, concept_house)
        if outcome is IdentificationOutcome.CONFLICT:
            logger.info(
                "house_signals_conflict",
                extra={"cents_house_number": cents_house, "concept_house_number": concept_house},
            )
        return HouseIdentification(
            cents_house=cents_house,
            concept_house=concept_house,
            outcome=outcome,
            concept=extraction,
        )

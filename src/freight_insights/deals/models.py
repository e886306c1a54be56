"""Deal record and the fixed vocabularies the analyses key on.

Stages, risk levels and priorities are closed enumerations.  Unknown stage
strings map to ``Stage.OTHER`` which carries the default 0.1 close
probability instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class Stage(str, Enum):
    """Pipeline phase of a deal."""

    PROSPECT = "prospect"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str | None) -> Stage:
        """Map a raw stage string to a known stage, or ``OTHER``."""
        for stage in cls:
            if stage is not cls.OTHER and stage.value == raw:
                return stage
        return cls.OTHER

    @property
    def probability(self) -> float:
        return STAGE_PROBABILITIES[self]

    @property
    def is_closed(self) -> bool:
        return self in (Stage.CLOSED_WON, Stage.CLOSED_LOST)


# Typical funnel close rates per stage.
STAGE_PROBABILITIES: dict[Stage, float] = {
    Stage.PROSPECT: 0.05,
    Stage.QUALIFIED: 0.15,
    Stage.PROPOSAL: 0.30,
    Stage.NEGOTIATION: 0.60,
    Stage.CLOSED_WON: 1.0,
    Stage.CLOSED_LOST: 0.0,
    Stage.OTHER: 0.1,
}

PIPELINE_STAGES = [s.value for s in Stage if s is not Stage.OTHER]

TRANSPORTATION_MODES = ["trucking", "rail", "ocean", "air"]


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]


_PRIORITY_RANKS = {
    Priority.URGENT: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


# ---------------------------------------------------------------------------
# Deal size buckets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DealSizeCategory:
    """A named deal value range, inclusive on both ends."""
    category: str
    min_value: float
    max_value: float

    def contains(self, value: float) -> bool:
        return self.min_value <= value <= self.max_value


DEAL_SIZE_CATEGORIES: tuple[DealSizeCategory, ...] = (
    DealSizeCategory("Small", 0, 10_000),
    DealSizeCategory("Medium", 10_001, 50_000),
    DealSizeCategory("Large", 50_001, 200_000),
    DealSizeCategory("Enterprise", 200_001, float("inf")),
)


def get_deal_size_category(name: str | None) -> DealSizeCategory | None:
    """Look up a size bucket by name; unknown names give None."""
    for cat in DEAL_SIZE_CATEGORIES:
        if cat.category == name:
            return cat
    return None


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def parse_datetime(val: str | datetime) -> datetime:
    """Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Values without an offset are taken as UTC; others are converted to
    UTC.  Malformed strings raise ``ValueError``.
    """
    if isinstance(val, datetime):
        dt = val
    else:
        text = str(val).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Deal
# ---------------------------------------------------------------------------


@dataclass
class Deal:
    """A sales opportunity as supplied by the deal source.

    ``stage`` keeps the raw string so unknown values survive into output;
    use :attr:`pipeline_stage` for the enumerated form.
    """
    deal_id: str
    company_name: str
    transportation_mode: str
    stage: str
    value: float
    expected_close_date: str
    updated_date: str
    sales_rep: str
    created_date: str = ""
    contact_name: str = ""
    probability: float = 0.0
    origin_city: str = ""
    destination_city: str = ""
    cargo_type: str = ""
    id: int | None = None

    @property
    def pipeline_stage(self) -> Stage:
        return Stage.parse(self.stage)

    @property
    def expected_close_at(self) -> datetime:
        return parse_datetime(self.expected_close_date)

    @property
    def updated_at(self) -> datetime:
        return parse_datetime(self.updated_date)

"""Deal export → ``Deal`` records.

Reads a CSV or JSON export of the deals table with pandas and converts
each row into a :class:`~freight_insights.deals.models.Deal`.  Analyses
receive the fully materialised list; nothing is cached here.
"""
from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from freight_insights.deals.models import Deal

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "deal_id",
    "company_name",
    "transportation_mode",
    "stage",
    "value",
    "expected_close_date",
    "updated_date",
    "sales_rep",
)

_TEXT_FIELDS = (
    "deal_id", "company_name", "contact_name", "transportation_mode", "stage",
    "created_date", "updated_date", "expected_close_date", "sales_rep",
    "origin_city", "destination_city", "cargo_type",
)


class DealLoadError(ValueError):
    """Raised when a deal export cannot be turned into deals."""


def _clean(val):
    """Map pandas missing markers to None."""
    if val is None:
        return None
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        pass
    return val


def deal_from_record(record: dict) -> Deal:
    """Build a Deal from a single row dict.

    Raises:
        DealLoadError: if a required field is missing or ``value`` is
            not numeric.
    """
    row = {k: _clean(v) for k, v in record.items()}
    missing = [f for f in REQUIRED_FIELDS if row.get(f) in (None, "")]
    if missing:
        raise DealLoadError(
            f"Deal {row.get('deal_id', '?')} is missing required fields: {', '.join(missing)}"
        )

    try:
        value = float(row["value"])
        probability = float(row.get("probability") or 0)
    except (TypeError, ValueError) as exc:
        raise DealLoadError(f"Deal {row['deal_id']} has a non-numeric value") from exc

    kwargs = {f: str(row[f]) for f in _TEXT_FIELDS if row.get(f) is not None}
    raw_id = row.get("id")
    return Deal(
        **kwargs,
        value=value,
        probability=probability,
        id=int(raw_id) if raw_id is not None else None,
    )


def deals_from_records(records: list[dict]) -> list[Deal]:
    return [deal_from_record(r) for r in records]


def load_deals(path: str | Path) -> list[Deal]:
    """Load every deal from a ``.csv`` or ``.json`` export.

    JSON files hold a list of deal objects and are read without dtype
    inference, so IDs and dates stay the strings found in the file.

    Raises:
        DealLoadError: for unsupported file types or malformed rows.
        FileNotFoundError: if *path* does not exist.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path, dtype={f: str for f in _TEXT_FIELDS})
    elif suffix == ".json":
        df = pd.read_json(path, orient="records", dtype=False, convert_dates=False)
    else:
        raise DealLoadError(f"Unsupported deal export format: {path.suffix or path.name}")

    if df.empty:
        logger.info("Deal export %s is empty", path)
        return []

    deals = deals_from_records(df.to_dict(orient="records"))
    logger.info("Loaded %d deals from %s", len(deals), path)
    return deals

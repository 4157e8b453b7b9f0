"""Storage helpers for spreadsheet header mappings."""
from __future__ import annotations

from pathlib import Path
import json
from typing import Any

from ggr_monitor.infrastructure.parsing.utils import normalize_label
from ggr_monitor.logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_PATH = Path(__file__).resolve().parents[2] / "header_mapping_override.json"

MAPPED_FIELDS = frozenset(
    {
        "operator_name",
        "operator_id",
        "period",
        "game_type",
        "bet_count",
        "stake",
        "payout",
        "cancelled",
        "open_tickets",
        "opening_balance",
        "closing_balance",
    }
)

DEFAULT_HEADER_MAPPING: dict[str, str] = {
    "operator": "operator_name",
    "operators": "operator_name",
    "operator name": "operator_name",
    "operator id": "operator_id",
    "licence number": "operator_id",
    "license number": "operator_id",
    "month": "period",
    "period": "period",
    "reporting period": "period",
    "date": "period",
    "month year": "period",
    "game type": "game_type",
    "product": "game_type",
    "game": "game_type",
    "bet count": "bet_count",
    "number of bets": "bet_count",
    "total bet count": "bet_count",
    "bets": "bet_count",
    "stake": "stake",
    "stake / take": "stake",
    "take": "stake",
    "total stake": "stake",
    "revenue stake": "stake",
    "turnover": "stake",
    "payout": "payout",
    "winnings": "payout",
    "total winnings": "payout",
    "payout payments": "payout",
    "cancelled": "cancelled",
    "cancelled bets": "cancelled",
    "open tickets": "open_tickets",
    "opening balance": "opening_balance",
    "closing balance": "closing_balance",
}


def _normalize_mapping(raw: dict[str, Any] | None) -> dict[str, str]:
    normalized: dict[str, str] = {}
    if not isinstance(raw, dict):
        return normalized
    for key, value in raw.items():
        if key is None or value is None:
            continue
        label = normalize_label(key)
        field_name = str(value).strip().lower()
        if not label or field_name not in MAPPED_FIELDS:
            continue
        normalized[label] = field_name
    return normalized


def _with_defaults(override: dict[str, str]) -> dict[str, str]:
    """Built-in labels overlaid with ``override``; the override wins on a clash."""
    return {**_normalize_mapping(DEFAULT_HEADER_MAPPING), **override}


def _read_override(path: Path) -> dict[str, str]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        logger.warning("header_mapping_override_unreadable", path=str(path))
        return {}
    return _normalize_mapping(raw)


def load_mapping(path: Path | None = None) -> dict[str, str]:
    return _with_defaults(_read_override(path or DEFAULT_PATH))


def save_mapping(mapping: dict[str, str], path: Path | None = None) -> dict[str, str]:
    """Persist only the operator-supplied labels and return the effective table."""
    override = _normalize_mapping(mapping)
    (path or DEFAULT_PATH).write_text(
        json.dumps(override, ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    return _with_defaults(override)

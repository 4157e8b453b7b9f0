"""Central configuration for the gaming revenue monitor."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Context, Decimal

from ggr_monitor.domain.calculator import DEFAULT_LEVY_RATES, LevyRates
from ggr_monitor.domain.quality import DEFAULT_BALANCE_TOLERANCE
from ggr_monitor.domain.reconciliation import DEFAULT_EMS_TOLERANCE_PCT
from ggr_monitor.infrastructure.storage.mapping_store import load_mapping

MAX_FILE_BYTES = 15 * 1024 * 1024
MAX_ROWS = 100_000
PREVIEW_ROWS = 30


@dataclass(slots=True, frozen=True)
class Settings:
    decimal_context: Context
    balance_tolerance: Decimal
    max_file_bytes: int
    max_rows: int
    preview_rows: int
    default_levy_rates: LevyRates
    header_mapping: dict[str, str]
    batch_workers: int
    ems_tolerance_pct: Decimal
    regulator_levy_rates: dict[str, LevyRates] = field(default_factory=dict)

    def levy_rates_for(self, regulator_id: str | None) -> LevyRates:
        if regulator_id is None:
            return self.default_levy_rates
        return self.regulator_levy_rates.get(regulator_id, self.default_levy_rates)


SETTINGS = Settings(
    decimal_context=Context(prec=28),
    balance_tolerance=DEFAULT_BALANCE_TOLERANCE,
    max_file_bytes=MAX_FILE_BYTES,
    max_rows=MAX_ROWS,
    preview_rows=PREVIEW_ROWS,
    default_levy_rates=DEFAULT_LEVY_RATES,
    header_mapping=load_mapping(),
    batch_workers=4,
    ems_tolerance_pct=DEFAULT_EMS_TOLERANCE_PCT,
)

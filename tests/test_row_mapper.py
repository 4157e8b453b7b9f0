from decimal import Decimal

from ggr_monitor.domain.models import EMPTY, NumberCell, RawGrid, ReportingPeriod, TextCell
from ggr_monitor.infrastructure.parsing.row_mapper import RowMapper
from ggr_monitor.infrastructure.storage.mapping_store import DEFAULT_HEADER_MAPPING


def make_grid(*rows: list[object]) -> RawGrid:
    def to_cell(value: object):
        if value is None:
            return EMPTY
        if isinstance(value, (int, float)):
            return NumberCell(float(value))
        return TextCell(str(value))

    return RawGrid(rows=tuple(tuple(to_cell(v) for v in row) for row in rows))


def mapper() -> RowMapper:
    return RowMapper(DEFAULT_HEADER_MAPPING)


def test_blank_operator_row_is_skipped():
    grid = make_grid(["Operator", "Stake", "Payout"], ["Acme", "1000", "600"], ["", "", ""])

    result = mapper().map(grid)

    assert len(result.valid_rows) == 1
    assert result.invalid_rows == ()
    row = result.valid_rows[0]
    assert row.operator_name == "Acme"
    assert row.stake == Decimal("1000")
    assert row.payout == Decimal("600")
    assert row.row_index == 1


def test_headers_match_case_and_whitespace_insensitively():
    grid = make_grid(
        ["  OPERATOR ", "Reporting   Period", "Total Stake", "WINNINGS", "Number of Bets", "Game"],
        ["Acme", "2024-03", 2500, 1000, 120, "Slots"],
    )

    row = mapper().map(grid).valid_rows[0]

    assert row.period == ReportingPeriod(2024, 3)
    assert row.stake == Decimal("2500")
    assert row.payout == Decimal("1000")
    assert row.bet_count == 120
    assert row.game_type == "Slots"


def test_currency_and_separators_are_tolerated():
    grid = make_grid(
        ["Operator", "Stake", "Payout", "Cancelled"],
        ["Acme", "MWK 1,250,000.50", "(1,000)", "-"],
        ["Beta", "$2 500", "K300", "12 USD"],
        ["Gamma", "MK 1,000", "MK1,000", "mwk 1,000"],
    )

    acme, beta, gamma = mapper().map(grid).valid_rows

    assert acme.stake == Decimal("1250000.50")
    assert acme.payout == Decimal("-1000")
    assert acme.cancelled == Decimal("0")
    assert beta.stake == Decimal("2500")
    assert beta.payout == Decimal("300")
    assert beta.cancelled == Decimal("12")
    assert gamma.stake == gamma.payout == gamma.cancelled == Decimal("1000")


def test_unparseable_required_number_marks_row_invalid():
    grid = make_grid(
        ["Operator", "Stake", "Payout"],
        ["Acme", "lots", "600"],
        ["Beta", "900", "100"],
    )

    result = mapper().map(grid)

    assert [row.operator_name for row in result.valid_rows] == ["Beta"]
    assert len(result.invalid_rows) == 1
    invalid = result.invalid_rows[0]
    assert invalid.row_index == 1
    assert invalid.operator_name == "Acme"
    assert "stake" in invalid.reason


def test_unparseable_period_marks_row_invalid():
    grid = make_grid(["Operator", "Month", "Stake", "Payout"], ["Acme", "sometime", "1", "1"])

    result = mapper().map(grid)

    assert result.valid_rows == ()
    assert "period" in result.invalid_rows[0].reason


def test_missing_required_column_invalidates_every_row():
    grid = make_grid(["Operator", "Stake"], ["Acme", "100"], ["Beta", "200"])

    result = mapper().map(grid)

    assert result.valid_rows == ()
    assert len(result.invalid_rows) == 2
    assert all("payout" in invalid.reason for invalid in result.invalid_rows)


def test_without_operator_column_only_blank_rows_are_skipped():
    grid = make_grid(["Stake", "Payout"], ["100", "40"], [None, None], ["50", "10"])

    result = mapper().map(grid)

    assert [row.stake for row in result.valid_rows] == [Decimal("100"), Decimal("50")]


def test_blank_numeric_cells_read_as_zero_and_balances_stay_unset():
    grid = make_grid(["Operator", "Stake", "Payout", "Opening Balance"], ["Acme", "100", None, None])

    row = mapper().map(grid).valid_rows[0]

    assert row.payout == Decimal("0")
    assert row.opening_balance is None
    assert row.closing_balance is None


def test_period_formats():
    grid = make_grid(
        ["Operator", "Period", "Stake", "Payout"],
        ["A", "03/2024", "1", "1"],
        ["B", "March 2024", "1", "1"],
        ["C", "2024-03-01T00:00:00", "1", "1"],
        ["D", "Mar-2024", "1", "1"],
    )

    result = mapper().map(grid)

    assert {row.period for row in result.valid_rows} == {ReportingPeriod(2024, 3)}


def test_two_digit_years_read_as_this_century():
    grid = make_grid(
        ["Operator", "Period", "Stake", "Payout"],
        ["A", "Jan-24", "1", "1"],
        ["B", "Jan 24", "1", "1"],
        ["C", "01/24", "1", "1"],
    )

    result = mapper().map(grid)

    assert result.invalid_rows == ()
    assert [row.period for row in result.valid_rows] == [ReportingPeriod(2024, 1)] * 3


def test_implausible_year_marks_row_invalid():
    grid = make_grid(
        ["Operator", "Period", "Stake", "Payout"],
        ["A", "0001-01", "1", "1"],
        ["B", "March 1850", "1", "1"],
        ["C", "2024-03", "1", "1"],
    )

    result = mapper().map(grid)

    assert [row.operator_name for row in result.valid_rows] == ["C"]
    assert [invalid.operator_name for invalid in result.invalid_rows] == ["A", "B"]
    assert all("period" in invalid.reason for invalid in result.invalid_rows)


def test_mapping_is_idempotent():
    grid = make_grid(
        ["Operator", "Stake", "Payout"],
        ["Acme", "1000", "600"],
        ["Beta", "oops", "1"],
    )
    row_mapper = mapper()

    assert row_mapper.map(grid) == row_mapper.map(grid)


def test_empty_grid():
    result = mapper().map(RawGrid())

    assert result.valid_rows == ()
    assert result.invalid_rows == ()

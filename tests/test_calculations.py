"""Tests for exposure, strike grid, aggregation and summaries."""
from datetime import datetime

import pytest

from core.errors import InvalidPriceError
from services.calculations import (
    ExposureRecord,
    aggregate_strikes,
    build_strike_grid,
    calculate_exposure,
    calculate_exposures,
    latest_trade_time,
    round_half_up,
    summarize,
)
from services.contract_parser import OptionContract, OptionType, parse_contract


def contract(strike, option_type=OptionType.CALL, gamma=0.05, open_interest=1000.0, volume=500.0, **kw):
    return OptionContract(
        option=f"SPXW240119{option_type.value if option_type else 'X'}{(strike or 0) * 1000:08d}",
        type=option_type,
        strike=strike,
        gamma=gamma,
        open_interest=open_interest,
        volume=volume,
        **kw,
    )


# ============================================================================
# Exposure
# ============================================================================

class TestCalculateExposure:

    def test_call_exposure(self):
        """0.05 * 1000 * (100 * 100^2 * 0.01) = 500,000."""
        record = calculate_exposure(contract(100), 100.0)

        assert record.gamma_exposure == pytest.approx(500_000)
        assert record.vega_exposure == pytest.approx(250_000)

    def test_put_exposure_is_negative(self):
        record = calculate_exposure(contract(100, OptionType.PUT), 100.0)

        assert record.gamma_exposure == pytest.approx(-500_000)
        assert record.vega_exposure == pytest.approx(-250_000)

    def test_missing_gamma_gives_zero(self):
        record = calculate_exposure(contract(100, gamma=None), 100.0)
        assert record.gamma_exposure == 0
        assert record.vega_exposure == 0

    def test_missing_open_interest_only_zeroes_gex(self):
        record = calculate_exposure(contract(100, open_interest=None), 100.0)
        assert record.gamma_exposure == 0
        assert record.vega_exposure == pytest.approx(250_000)

    def test_missing_volume_only_zeroes_vex(self):
        record = calculate_exposure(contract(100, volume=None), 100.0)
        assert record.vega_exposure == 0
        assert record.gamma_exposure == pytest.approx(500_000)

    def test_record_keeps_contract(self):
        c = contract(100)
        record = calculate_exposure(c, 100.0)
        assert record.contract is c
        assert record.strike == 100
        assert record.type is OptionType.CALL


# ============================================================================
# Strike grid
# ============================================================================

class TestStrikeGrid:

    def test_grid_for_price_100(self):
        grid = build_strike_grid(100.0)

        assert len(grid) == 41
        assert grid.strikes[0] == 0
        assert grid.strikes[-1] == 200

    @pytest.mark.parametrize("price", [0.4, 7.0, 99.9, 4783.27])
    def test_strikes_are_increasing_multiples_of_five(self, price):
        grid = build_strike_grid(price)

        assert grid.strikes[0] == 0
        assert all(s % 5 == 0 for s in grid.strikes)
        assert all(b - a == 5 for a, b in zip(grid.strikes, grid.strikes[1:]))
        assert sorted(grid.index.values()) == list(range(len(grid)))
        assert all(grid.strikes[i] == s for s, i in grid.index.items())

    def test_upper_bound_rounds_half_up(self):
        # 2 * 6.25 / 5 = 2.5 -> 3 -> 15
        assert build_strike_grid(6.25).strikes == (0, 5, 10, 15)

    def test_same_price_same_grid(self):
        assert build_strike_grid(4783.27) == build_strike_grid(4783.27)

    @pytest.mark.parametrize("price", [0, -10.0, None])
    def test_invalid_price_raises(self, price):
        with pytest.raises(InvalidPriceError):
            build_strike_grid(price)

    def test_nearest_index_picks_closest(self):
        grid = build_strike_grid(100.0)
        assert grid.strikes[grid.nearest_index(7)] == 5

    def test_nearest_index_tie_goes_to_lower_strike(self):
        grid = build_strike_grid(100.0)
        assert grid.strikes[grid.nearest_index(7.5)] == 5

    def test_label(self):
        grid = build_strike_grid(100.0)
        assert grid.label(20) == "100"
        assert grid.label(41) == ""
        assert grid.label(-1) == ""


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(6.5) == 7
    assert round_half_up(4750.49) == 4750


# ============================================================================
# Aggregation
# ============================================================================

class TestAggregateStrikes:

    @pytest.fixture
    def records(self):
        return calculate_exposures([
            contract(105, OptionType.CALL, gamma=0.03, open_interest=1500),
            contract(95, OptionType.PUT, gamma=0.02, open_interest=2000),
            contract(100, OptionType.CALL, gamma=0.05, open_interest=1000),
            contract(100, OptionType.PUT, gamma=0.04, open_interest=500),
            contract(90, OptionType.CALL, gamma=0.09, open_interest=9000),    # below window
            contract(110, OptionType.PUT, gamma=0.09, open_interest=9000),    # above window
        ], 100.0)

    def test_end_to_end_single_call(self):
        records = calculate_exposures([contract(100)], 100.0)
        data = aggregate_strikes(records, "gex", "net", 100.0)

        assert data.series["net"].to_dict() == {100: pytest.approx(0.0005)}

    def test_window_excludes_outside_strikes(self, records):
        for mode in ("net", "split"):
            data = aggregate_strikes(records, "gex", mode, 100.0)
            for series in data.series.values():
                assert 90 not in series.index
                assert 110 not in series.index

    def test_window_keeps_strikes_near_edges(self):
        records = calculate_exposures([contract(91), contract(93), contract(107), contract(109)], 100.0)
        data = aggregate_strikes(records, "gex", "net", 100.0)
        assert list(data.series["net"].index) == [93, 107]

    def test_net_sums_signed_values(self, records):
        net = aggregate_strikes(records, "gex", "net", 100.0).series["net"]
        # 0.05*1000*1e4 - 0.04*500*1e4 = 300,000
        assert net[100] == pytest.approx(0.0003)
        assert net[95] == pytest.approx(-0.0004)
        assert net[105] == pytest.approx(0.00045)

    def test_output_is_ascending_by_strike(self, records):
        net = aggregate_strikes(records, "gex", "net", 100.0).series["net"]
        assert list(net.index) == [95, 100, 105]

    def test_split_puts_negative_calls_positive(self, records):
        data = aggregate_strikes(records, "gex", "split", 100.0)

        assert data.names == ["calls", "puts"]
        assert list(data.series["calls"].index) == [100, 105]
        assert list(data.series["puts"].index) == [95, 100]
        assert (data.series["calls"] > 0).all()
        assert (data.series["puts"] < 0).all()
        assert data.series["puts"][100] == pytest.approx(-0.0002)

    def test_net_equals_calls_minus_put_magnitudes(self, records):
        net = aggregate_strikes(records, "vex", "net", 100.0)
        split = aggregate_strikes(records, "vex", "split", 100.0)
        grid = build_strike_grid(100.0)

        calls = split.aligned("calls", grid)
        puts = split.aligned("puts", grid)
        expected = calls - puts.abs()
        assert net.aligned("net", grid).tolist() == pytest.approx(expected.tolist())

    def test_unparseable_contracts_are_skipped(self):
        records = [
            calculate_exposure(parse_contract({"option": "SPXW240119XBAD", "gamma": 1, "open_interest": 1}), 100.0),
            calculate_exposure(contract(100), 100.0),
        ]
        data = aggregate_strikes(records, "gex", "net", 100.0)
        assert list(data.series["net"].index) == [100]

    def test_empty_input(self):
        data = aggregate_strikes([], "gex", "split", 100.0)
        assert data.series["calls"].empty
        assert data.series["puts"].empty
        assert data.max_abs() == 0.0

    def test_aligned_fills_gaps_with_zero(self, records):
        grid = build_strike_grid(100.0)
        aligned = aggregate_strikes(records, "gex", "net", 100.0).aligned("net", grid)

        assert len(aligned) == len(grid)
        assert aligned[0] == 0
        assert aligned[100] == pytest.approx(0.0003)

    def test_max_abs(self, records):
        data = aggregate_strikes(records, "gex", "split", 100.0)
        assert data.max_abs() == pytest.approx(0.0005)

    @pytest.mark.parametrize("field_name,mode", [("dex", "net"), ("gex", "raw")])
    def test_unknown_selector_raises(self, records, field_name, mode):
        with pytest.raises(ValueError):
            aggregate_strikes(records, field_name, mode, 100.0)


# ============================================================================
# Summaries
# ============================================================================

class TestSummaries:

    @pytest.fixture
    def records(self):
        return calculate_exposures([
            contract(95, OptionType.PUT, gamma=0.02, open_interest=2000, volume=100),
            contract(100, OptionType.CALL, gamma=0.05, open_interest=1000, volume=100),
            contract(150, OptionType.CALL, gamma=0.01, open_interest=1000, volume=100),
        ], 100.0)

    def test_net_summary_splits_below_and_above(self, records):
        result = summarize(records, 100.0, "net")

        assert result["gex"]["below"] == pytest.approx(-0.0004)
        assert result["gex"]["above"] == pytest.approx(0.0005 + 0.0001)
        assert result["gex"]["total"] == pytest.approx(0.0002)
        assert set(result["vex"]) == {"total", "below", "above"}

    def test_split_summary_reports_magnitudes(self, records):
        result = summarize(records, 100.0, "split")

        assert result["gex"]["calls"] == pytest.approx(0.0006)
        assert result["gex"]["puts"] == pytest.approx(0.0004)

    def test_summary_counts_unparsed_strikes_below(self):
        records = [calculate_exposure(parse_contract({"option": "BAD", "gamma": 1, "open_interest": 1}), 100.0)]
        result = summarize(records, 100.0, "net")

        assert result["gex"]["total"] == pytest.approx(0.00001)
        assert result["gex"]["below"] == pytest.approx(0.00001)
        assert result["gex"]["above"] == 0

    def test_latest_trade_time(self):
        records = calculate_exposures([
            contract(100, last_trade_time=datetime(2024, 1, 19, 15, 59, 58)),
            contract(105, last_trade_time=datetime(2024, 1, 19, 16, 0, 0)),
            contract(110),
        ], 100.0)
        assert latest_trade_time(records) == "2024-01-19 16:00:00"

    def test_latest_trade_time_none(self):
        assert latest_trade_time([]) is None

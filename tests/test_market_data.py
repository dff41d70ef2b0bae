"""
Tests for market series loading and queries
"""

import json
import math

import pytest
from market_data import (
    MarketIndex, MarketSample, MarketDataError,
    load_series, load_markets, validate_series, valid_start_years, locate_start,
    generate_demo_series, demo_markets,
)


def write_json(path, rows):
    path.write_text(json.dumps(rows))
    return path


class TestMarketSample:

    def test_price_must_be_positive(self):
        with pytest.raises(MarketDataError):
            MarketSample('2000-06-01', 0)
        with pytest.raises(MarketDataError):
            MarketSample('2000-06-01', -5)

    @pytest.mark.parametrize('price', [float('nan'), float('inf'), 'abc', None])
    def test_price_must_be_a_finite_number(self, price):
        with pytest.raises(MarketDataError):
            MarketSample('2000-06-01', price)

    def test_numeric_strings_are_converted(self):
        sample = MarketSample('2000-06-01', '123.5')
        assert sample.price == 123.5
        assert sample.year == 2000


class TestLoading:

    def test_load_json_legacy_keys(self, tmp_path):
        path = write_json(tmp_path / 'SPY500.json', [
            {'Date_Str': '1990-06-01', 'Price': 360.0},
            {'Date_Str': '1990-12-01', 'Price': 322.2},
        ])

        series = load_series(path)

        assert series == (MarketSample('1990-06-01', 360.0), MarketSample('1990-12-01', 322.2))
        assert isinstance(series, tuple)

    def test_load_csv(self, tmp_path):
        path = tmp_path / 'NASDAQ.csv'
        path.write_text("date,price\n1995-06-01,900.5\n1995-12-01,1052.1\n")

        series = load_series(path)

        assert [s.price for s in series] == [900.5, 1052.1]

    def test_unordered_dates_rejected(self, tmp_path):
        path = write_json(tmp_path / 'x.json', [
            {'date': '2000-12-01', 'price': 1},
            {'date': '2000-06-01', 'price': 2},
        ])
        with pytest.raises(MarketDataError, match='ascending'):
            load_series(path)

    def test_duplicate_dates_rejected(self):
        with pytest.raises(MarketDataError):
            validate_series([MarketSample('2000-06-01', 1), MarketSample('2000-06-01', 2)])

    def test_empty_series_rejected(self, tmp_path):
        with pytest.raises(MarketDataError, match='empty'):
            load_series(write_json(tmp_path / 'x.json', []))

    def test_missing_fields_rejected(self, tmp_path):
        with pytest.raises(MarketDataError):
            load_series(write_json(tmp_path / 'x.json', [{'date': '2000-06-01'}]))

    def test_malformed_json_rejected(self, tmp_path):
        path = tmp_path / 'x.json'
        path.write_text("{not json")
        with pytest.raises(MarketDataError):
            load_series(path)

    def test_non_list_json_rejected(self, tmp_path):
        with pytest.raises(MarketDataError):
            load_series(write_json(tmp_path / 'x.json', {'date': '2000-06-01', 'price': 1}))

    def test_missing_file(self, tmp_path):
        with pytest.raises(MarketDataError, match='not found'):
            load_series(tmp_path / 'nope.json')

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / 'prices.txt'
        path.write_text("2000-06-01 100")
        with pytest.raises(MarketDataError, match='unsupported'):
            load_series(path)

    def test_load_markets_skips_missing_indices(self, tmp_path):
        write_json(tmp_path / 'SPY500.json', [{'date': '2000-06-01', 'price': 1400}])

        markets = load_markets(tmp_path)

        assert list(markets) == [MarketIndex.SPY500]

    def test_load_markets_reads_both_formats(self, tmp_path):
        write_json(tmp_path / 'SPY500.json', [{'date': '2000-06-01', 'price': 1400}])
        (tmp_path / 'NASDAQ.csv').write_text("Date_Str,Price\n2000-06-01,3400\n")

        markets = load_markets(tmp_path)

        assert markets[MarketIndex.NASDAQ][0].price == 3400

    def test_load_markets_with_no_files(self, tmp_path):
        with pytest.raises(MarketDataError):
            load_markets(tmp_path)


class TestQueries:

    SERIES = (
        MarketSample('2019-06-01', 100),
        MarketSample('2019-12-01', 110),
        MarketSample('2020-06-01', 120),
        MarketSample('2020-12-01', 130),
        MarketSample('2021-06-01', 140),
    )

    def test_valid_start_years_stop_at_2020(self):
        assert valid_start_years(self.SERIES) == [2019, 2020]
        assert valid_start_years(self.SERIES, latest=2030) == [2019, 2020, 2021]

    def test_locate_start_on_june_first(self):
        assert locate_start(self.SERIES, 2020) == 2
        assert locate_start(self.SERIES, 2010) == 0

    def test_locate_start_uses_first_sample_after_june(self):
        series = (MarketSample('2000-03-01', 1), MarketSample('2000-07-03', 2))
        assert locate_start(series, 2000) == 1

    def test_locate_start_beyond_series(self):
        assert locate_start(self.SERIES, 2022) is None


class TestDemoSeries:

    def test_shape(self):
        series = generate_demo_series(1980, 1989, seed=1)

        assert len(series) == 20
        assert series[0].date == '1980-06-01'
        assert series[-1].date == '1989-12-01'
        assert all(s.price > 0 and math.isfinite(s.price) for s in series)

    def test_same_seed_same_series(self):
        assert generate_demo_series(seed=5) == generate_demo_series(seed=5)

    def test_different_seeds_differ(self):
        assert generate_demo_series(seed=5) != generate_demo_series(seed=6)

    def test_bad_year_range(self):
        with pytest.raises(MarketDataError):
            generate_demo_series(2000, 1990)

    def test_demo_markets_cover_every_index(self):
        markets = demo_markets(seed=3)
        assert set(markets) == set(MarketIndex)
        assert markets[MarketIndex.SPY500] != markets[MarketIndex.NASDAQ]

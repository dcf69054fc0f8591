"""Tests for PriceSeries and TimeSeriesStore"""

import pandas as pd
import pytest

from quant_analytics.data import PricePoint, PriceSeries, TimeSeriesStore
from quant_analytics.errors import InvalidInputError


def bar(day, close, volume=1000.0):
    return PricePoint(pd.Timestamp('2024-01-01') + pd.Timedelta(days=day), close, close + 1, close - 1, close, volume)


class TestPriceSeriesOrdering:
    """Timestamps must be strictly increasing"""

    def test_append_in_order(self):
        series = PriceSeries('SPY', [bar(0, 100), bar(1, 101)])
        series.append(bar(2, 102))
        assert len(series) == 3
        assert series.last.close == 102

    def test_out_of_order_rejected(self):
        series = PriceSeries('SPY', [bar(0, 100), bar(5, 101)])
        with pytest.raises(InvalidInputError):
            series.append(bar(3, 99))

    def test_duplicate_timestamp_rejected(self):
        with pytest.raises(InvalidInputError):
            PriceSeries('SPY', [bar(0, 100), bar(0, 101)])

    def test_invalid_input_is_value_error(self):
        with pytest.raises(ValueError):
            PriceSeries('SPY', [bar(1, 100), bar(0, 101)])


class TestPriceSeriesAccess:
    """Column accessors and slicing"""

    def test_columns(self):
        series = PriceSeries('SPY', [bar(0, 100, 10), bar(1, 110, 20)])
        assert list(series.closes()) == [100, 110]
        assert list(series.highs()) == [101, 111]
        assert list(series.volumes()) == [10, 20]

    def test_closes_are_copies(self):
        series = PriceSeries('SPY', [bar(0, 100), bar(1, 110)])
        closes = series.closes()
        closes[0] = -1
        assert series.closes()[0] == 100

    def test_returns(self):
        series = PriceSeries('SPY', [bar(0, 100), bar(1, 110), bar(2, 99)])
        assert series.returns() == pytest.approx([0.1, -0.1])

    def test_returns_of_single_bar_is_empty(self):
        assert len(PriceSeries('SPY', [bar(0, 100)]).returns()) == 0

    def test_slice_returns_series(self):
        series = PriceSeries('SPY', [bar(i, 100 + i) for i in range(10)])
        tail = series.tail(3)
        assert isinstance(tail, PriceSeries)
        assert tail.symbol == 'SPY'
        assert list(tail.closes()) == [107, 108, 109]
        assert len(series.head(4)) == 4
        assert len(series.tail(0)) == 0

    def test_from_closes(self):
        series = PriceSeries.from_closes('X', [1, 2, 3], volumes=[5, 6, 7])
        assert len(series) == 3
        assert list(series.volumes()) == [5, 6, 7]

    def test_from_closes_length_mismatch(self):
        with pytest.raises(InvalidInputError):
            PriceSeries.from_closes('X', [1, 2, 3], volumes=[5, 6])


class TestDataFrameConversion:
    """pandas interop"""

    def test_yfinance_columns_sorted_and_deduplicated(self):
        index = pd.DatetimeIndex(['2024-01-03', '2024-01-02', '2024-01-03'])
        df = pd.DataFrame({
            'Open': [1.0, 2.0, 3.0],
            'High': [1.0, 2.0, 3.0],
            'Low': [1.0, 2.0, 3.0],
            'Close': [1.0, 2.0, 3.0],
            'Volume': [10, 20, 30],
        }, index=index)
        series = PriceSeries.from_dataframe('SPY', df)
        assert list(series.closes()) == [2.0, 3.0]
        assert list(series.volumes()) == [20, 30]

    def test_missing_close_rejected(self):
        df = pd.DataFrame({'open': [1.0]}, index=pd.DatetimeIndex(['2024-01-01']))
        with pytest.raises(InvalidInputError):
            PriceSeries.from_dataframe('SPY', df)

    def test_to_dataframe(self):
        series = PriceSeries('SPY', [bar(0, 100), bar(1, 101)])
        df = series.to_dataframe()
        assert list(df.columns) == PriceSeries.COLUMNS
        assert df.index.name == 'timestamp'
        rebuilt = PriceSeries.from_dataframe('SPY', df)
        assert list(rebuilt.closes()) == [100, 101]


class TestTimeSeriesStore:
    """Bounded per-symbol buffers"""

    def test_max_length(self):
        store = TimeSeriesStore(max_length=3)
        for i in range(5):
            store.append('SPY', bar(i, 100 + i))
        series = store.series('SPY')
        assert len(series) == 3
        assert list(series.closes()) == [102, 103, 104]

    def test_order_enforced(self):
        store = TimeSeriesStore()
        store.append('SPY', bar(2, 100))
        with pytest.raises(InvalidInputError):
            store.append('SPY', bar(1, 100))

    def test_symbols_and_clear(self):
        store = TimeSeriesStore()
        store.load(PriceSeries('SPY', [bar(0, 1)]))
        store.load(PriceSeries('QQQ', [bar(0, 1)]))
        assert set(store.symbols()) == {'SPY', 'QQQ'}
        store.clear('SPY')
        assert 'SPY' not in store
        assert len(store) == 1

    def test_invalid_capacity(self):
        with pytest.raises(InvalidInputError):
            TimeSeriesStore(max_length=0)

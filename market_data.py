"""
Market Series Provider - LazyInvestor

Loads, validates and queries the historical price series the game is played on.
A series is an immutable tuple of MarketSample ordered by date. The engine only
ever reads it.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union
import csv
import json
import logging
import math
import random

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

DATA_DIR = Path("data/markets")

# Later start years leave too few half-year turns to be worth playing.
LATEST_START_YEAR = 2020

START_MONTH_DAY = "06-01"

DEMO_START_YEAR = 1980
DEMO_END_YEAR = 2024
DEMO_START_PRICE = 100.0
DEMO_DRIFT = 0.04          # mean half-year log return
DEMO_VOLATILITY = 0.12     # half-year log return std dev

SUPPORTED_SUFFIXES = ('.json', '.csv')


class MarketDataError(Exception):
    """Raised when a market series is missing, malformed or violates its invariants."""
    pass


class MarketIndex(Enum):
    """Tradable indices. The value doubles as the data file stem."""
    SPY500 = 'SPY500'    # primary index
    NASDAQ = 'NASDAQ'    # secondary index

    @property
    def label(self) -> str:
        return {'SPY500': 'S&P 500', 'NASDAQ': 'NASDAQ'}[self.value]


@dataclass(frozen=True)
class MarketSample:
    """One (date, price) observation. Price is strictly positive."""

    date: str
    price: float

    def __post_init__(self):
        try:
            price = float(self.price)
        except (TypeError, ValueError):
            raise MarketDataError(f"Price for {self.date} is not a number: {self.price!r}")
        if not math.isfinite(price) or price <= 0:
            raise MarketDataError(f"Price for {self.date} must be positive, got {self.price!r}")
        object.__setattr__(self, 'price', price)

    @property
    def year(self) -> int:
        return int(self.date.split('-')[0])


Series = Tuple[MarketSample, ...]


# =============================================================================
# LOADING
# =============================================================================

def _sample_from_row(row: Dict[str, object], source: Path, line: int) -> MarketSample:
    """Accept both the legacy Date_Str/Price keys and plain date/price keys."""
    date = row.get('Date_Str', row.get('date'))
    price = row.get('Price', row.get('price'))
    if date is None or price is None:
        raise MarketDataError(f"{source}: record {line} needs a date and a price")
    return MarketSample(date=str(date).strip(), price=price)


def validate_series(samples: Sequence[MarketSample], source: Union[str, Path] = '<memory>') -> Series:
    """Check ordering and emptiness; return the series as an immutable tuple."""
    if not samples:
        raise MarketDataError(f"{source}: market series is empty")

    for previous, current in zip(samples, samples[1:]):
        if current.date <= previous.date:
            raise MarketDataError(
                f"{source}: dates must be strictly ascending "
                f"({previous.date} followed by {current.date})"
            )

    return tuple(samples)


def load_series(path: Union[str, Path]) -> Series:
    """Load one series from a JSON or CSV file."""
    path = Path(path)
    if not path.exists():
        raise MarketDataError(f"Market data file not found: {path}")

    try:
        if path.suffix == '.json':
            with open(path, 'r') as f:
                rows = json.load(f)
            if not isinstance(rows, list):
                raise MarketDataError(f"{path}: expected a list of samples")
        elif path.suffix == '.csv':
            with open(path, 'r', newline='') as f:
                rows = list(csv.DictReader(f))
        else:
            raise MarketDataError(f"{path}: unsupported format (use .json or .csv)")
    except (OSError, ValueError) as e:
        raise MarketDataError(f"{path}: could not read market data: {e}") from e

    samples = [_sample_from_row(row, path, i + 1) for i, row in enumerate(rows)]
    series = validate_series(samples, path)

    logger.info(f"Loaded {len(series)} samples from {path} ({series[0].date} to {series[-1].date})")
    return series


def load_markets(data_dir: Union[str, Path] = DATA_DIR) -> Dict[MarketIndex, Series]:
    """Load every index that has a data file in data_dir. Missing indices are skipped."""
    data_dir = Path(data_dir)
    markets: Dict[MarketIndex, Series] = {}

    for index in MarketIndex:
        for suffix in SUPPORTED_SUFFIXES:
            candidate = data_dir / f"{index.value}{suffix}"
            if candidate.exists():
                markets[index] = load_series(candidate)
                break

    if not markets:
        raise MarketDataError(f"No market data files found in {data_dir}")

    return markets


# =============================================================================
# QUERIES
# =============================================================================

def valid_start_years(series: Sequence[MarketSample],
                      latest: int = LATEST_START_YEAR) -> List[int]:
    """Distinct sample years a game may start in, ascending."""
    return sorted({s.year for s in series if s.year <= latest})


def start_date_for(year: int) -> str:
    return f"{year}-{START_MONTH_DAY}"


def locate_start(series: Sequence[MarketSample], year: int) -> Optional[int]:
    """Index of the first sample dated on or after June 1st of year, or None."""
    start_date = start_date_for(year)
    for i, sample in enumerate(series):
        if sample.date >= start_date:
            return i
    return None


# =============================================================================
# DEMO DATA
# =============================================================================

def generate_demo_series(
    start_year: int = DEMO_START_YEAR,
    end_year: int = DEMO_END_YEAR,
    seed: int = 42,
    start_price: float = DEMO_START_PRICE,
    drift: float = DEMO_DRIFT,
    volatility: float = DEMO_VOLATILITY,
) -> Series:
    """
    Deterministic synthetic index for demos and tests.

    Half-year samples on June 1st and December 1st, following a seeded
    geometric random walk so every price stays positive.
    """
    if end_year < start_year:
        raise MarketDataError(f"end_year {end_year} is before start_year {start_year}")

    rng = random.Random(seed)
    price = start_price
    samples = []

    for year in range(start_year, end_year + 1):
        for month_day in ('06-01', '12-01'):
            samples.append(MarketSample(date=f"{year}-{month_day}", price=round(price, 2)))
            price *= math.exp(rng.gauss(drift, volatility))

    logger.debug(f"Generated demo series: {len(samples)} samples, seed={seed}")
    return validate_series(samples, f"demo(seed={seed})")


def demo_markets(seed: int = 42) -> Dict[MarketIndex, Series]:
    """One demo series per index; NASDAQ runs hotter and swings harder."""
    return {
        MarketIndex.SPY500: generate_demo_series(seed=seed),
        MarketIndex.NASDAQ: generate_demo_series(
            seed=seed + 1, drift=DEMO_DRIFT * 1.5, volatility=DEMO_VOLATILITY * 1.6
        ),
    }

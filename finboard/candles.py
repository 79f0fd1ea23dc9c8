"""
Candle normalizer: reconciles the two provider time-series layouts into one
ascending sequence of OHLC samples.

Parallel arrays (Finnhub /stock/candle)::

    {"t": [1700000000, ...], "o": [...], "h": [...], "l": [...], "c": [...], "v": [...]}

Nested time series (Alpha Vantage TIME_SERIES_*)::

    {"Meta Data": {...}, "Time Series (Daily)": {"2024-01-02": {"1. open": "10", ...}}}
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

logger = logging.getLogger(__name__)

MAX_CANDLES = 100
TIME_SERIES_MARKER = "time series"

_OPEN_KEYS = ("1. open", "open")
_HIGH_KEYS = ("2. high", "high")
_LOW_KEYS = ("3. low", "low")
_CLOSE_KEYS = ("4. close", "close")
_VOLUME_KEYS = ("5. volume", "volume")


class OHLCSample(BaseModel):
    timestamp: int  # epoch milliseconds
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _at(values: Any, index: int) -> Optional[float]:
    if not isinstance(values, list) or index >= len(values):
        return None
    return _to_float(values[index])


def _parse_timestamp(text: str) -> Optional[int]:
    """
    Parse an ISO date or datetime into epoch milliseconds.

    Naive stamps are read as UTC. Alpha Vantage intraday series are really in
    the exchange time zone named by Meta Data ("US/Eastern"), so intraday
    candles are shifted by that offset; daily and longer series are unaffected.
    """
    try:
        moment = datetime.fromisoformat(text.strip())
    except (AttributeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _finalize(samples: List[OHLCSample]) -> List[OHLCSample]:
    ordered = sorted(samples, key=lambda s: s.timestamp)
    return ordered[-MAX_CANDLES:]


# ── Parallel arrays ──────────────────────────────────────

def _is_parallel_arrays(doc: Dict[str, Any]) -> bool:
    return isinstance(doc.get("t"), list) and isinstance(doc.get("c"), list)


def _from_parallel_arrays(doc: Dict[str, Any]) -> List[OHLCSample]:
    samples = []
    for i, ts in enumerate(doc["t"]):
        seconds = _to_float(ts)
        close = _at(doc["c"], i)
        if seconds is None or close is None:
            continue
        # open/high/low fall back to the close price when missing
        open_ = _at(doc.get("o"), i)
        high = _at(doc.get("h"), i)
        low = _at(doc.get("l"), i)
        samples.append(OHLCSample(
            timestamp=int(seconds * 1000),
            open=close if open_ is None else open_,
            high=close if high is None else high,
            low=close if low is None else low,
            close=close,
            volume=_at(doc.get("v"), i),
        ))
    return samples


# ── Nested time series ───────────────────────────────────

def _find_series_key(doc: Dict[str, Any]) -> Optional[str]:
    keys = [k for k in doc if TIME_SERIES_MARKER in k.lower()]
    if len(keys) != 1:
        return None
    return keys[0]


def _lookup(period: Dict[str, Any], keys: Sequence[str], default: Optional[float] = 0.0) -> Optional[float]:
    for key in keys:
        value = _to_float(period.get(key))
        if value is not None:
            return value
    return default


def _from_time_series(series: Dict[str, Any]) -> List[OHLCSample]:
    samples = []
    for stamp, period in series.items():
        timestamp = _parse_timestamp(stamp)
        if timestamp is None or not isinstance(period, dict):
            logger.debug(f"Skipping unparseable time series entry: {stamp!r}")
            continue
        samples.append(OHLCSample(
            timestamp=timestamp,
            open=_lookup(period, _OPEN_KEYS),
            high=_lookup(period, _HIGH_KEYS),
            low=_lookup(period, _LOW_KEYS),
            close=_lookup(period, _CLOSE_KEYS),
            volume=_lookup(period, _VOLUME_KEYS, default=None),
        ))
    # provider lists newest first
    samples.reverse()
    return samples


# ── Entry point ──────────────────────────────────────────

def extract_candles(doc: Any) -> List[OHLCSample]:
    """
    Normalize `doc` into at most MAX_CANDLES samples, oldest first.

    Unrecognized or malformed documents yield an empty list.
    """
    if not isinstance(doc, dict):
        return []

    if _is_parallel_arrays(doc):
        return _finalize(_from_parallel_arrays(doc))

    series_key = _find_series_key(doc)
    if series_key is not None and isinstance(doc[series_key], dict):
        return _finalize(_from_time_series(doc[series_key]))

    return []

"""Newest-first price containers.

Every series handed to the engine is ordered newest element first:
``series[0]`` is the latest session, ``series[1]`` the one before it.
The containers here make that ordering part of the type so a chronological
list (the way market-data DataFrames arrive) can't slip through unnoticed.

Readings that are missing, non-numeric, zero or negative are kept as ``None``
placeholders. They still count toward the series length but are skipped by
every average.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import pandas as pd


class SeriesOrderError(ValueError):
    """Dated input that cannot be put in newest-first order."""


def to_price(value: Any) -> Decimal | None:
    """Coerce a raw reading to a positive Decimal, ``None`` when absent or invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def _lower_columns(df: pd.DataFrame) -> dict[str, Any]:
    return {str(c).lower(): c for c in df.columns}


def _chronological_frame(df: pd.DataFrame) -> pd.DataFrame:
    if df.index.has_duplicates:
        raise SeriesOrderError("DataFrame index has duplicate dates")
    if df.index.is_monotonic_increasing:
        return df
    return df.sort_index()


class _NewestFirst(Sequence):
    """Immutable newest-first sequence. Subclasses define ``_coerce``."""

    __slots__ = ("_items",)

    def __init__(self, values: Iterable[Any] = (), *, newest_first: bool):
        items = tuple(self._coerce(v) for v in values)
        self._items = items if newest_first else items[::-1]

    @staticmethod
    @abstractmethod
    def _coerce(value: Any) -> Any:
        """Turn one raw input element into a stored item."""

    @classmethod
    def _wrap(cls, items: tuple):
        obj = cls.__new__(cls)
        obj._items = items
        return obj

    @classmethod
    def newest_first(cls, values: Iterable[Any]):
        return cls(values, newest_first=True)

    @classmethod
    def chronological(cls, values: Iterable[Any]):
        """Build from oldest-first input (the order charts and DataFrames use)."""
        return cls(values, newest_first=False)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return self._wrap(self._items[index])
        return self._items[index]

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._items))

    def __repr__(self) -> str:
        preview = ", ".join(str(v) for v in self._items[:5])
        more = ", ..." if len(self._items) > 5 else ""
        return f"{type(self).__name__}[newest first]({preview}{more})"

    @property
    def latest(self):
        return self._items[0] if self._items else None

    def shifted(self, sessions: int = 1):
        """The same series as it looked ``sessions`` trading days ago."""
        return self._wrap(self._items[sessions:])


class PriceSeries(_NewestFirst):
    """Closing prices, newest first."""

    __slots__ = ()

    @staticmethod
    def _coerce(value: Any) -> Decimal | None:
        return to_price(value)

    @classmethod
    def from_dated(cls, pairs: Iterable[tuple[Any, Any]]) -> PriceSeries:
        """Build from ``(date, price)`` pairs given in any order."""
        rows = list(pairs)
        dates = [d for d, _ in rows]
        if len(set(dates)) != len(dates):
            raise SeriesOrderError("duplicate trade dates in price history")
        rows.sort(key=lambda r: r[0], reverse=True)
        return cls((p for _, p in rows), newest_first=True)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, column: str = "close") -> PriceSeries:
        """Build from an OHLCV DataFrame indexed chronologically."""
        columns = _lower_columns(df)
        if column.lower() not in columns:
            raise KeyError(f"column '{column}' not found in DataFrame")
        frame = _chronological_frame(df)
        return cls(frame[columns[column.lower()]].tolist(), newest_first=False)

    @property
    def valid_count(self) -> int:
        return sum(1 for v in self._items if v is not None)

    def window(self, period: int) -> list[Decimal]:
        """Valid readings among the newest ``period`` entries."""
        return [v for v in self._items[:period] if v is not None]


@dataclass(frozen=True)
class OhlcvBar:
    open: Decimal | None
    high: Decimal | None
    low: Decimal | None
    close: Decimal | None
    volume: Decimal | None

    def __post_init__(self):
        for f in fields(self):
            object.__setattr__(self, f.name, to_price(getattr(self, f.name)))

    @property
    def is_valid(self) -> bool:
        """High, low, close and volume all present (open is not used by MFI)."""
        return None not in (self.high, self.low, self.close, self.volume)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> OhlcvBar:
        lowered = {str(k).lower(): v for k, v in row.items()}
        return cls(
            open=lowered.get("open"),
            high=lowered.get("high"),
            low=lowered.get("low"),
            close=lowered.get("close"),
            volume=lowered.get("volume"),
        )


class OhlcvSeries(_NewestFirst):
    """Daily OHLCV bars, newest first."""

    __slots__ = ()

    @staticmethod
    def _coerce(value: Any) -> OhlcvBar:
        # missing session: kept as an invalid bar so MFI skips its pairs
        if value is None:
            return OhlcvBar(None, None, None, None, None)
        if isinstance(value, OhlcvBar):
            return value
        if isinstance(value, Mapping):
            return OhlcvBar.from_mapping(value)
        raise TypeError(f"cannot build an OHLCV bar from {type(value).__name__}")

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> OhlcvSeries:
        columns = _lower_columns(df)
        missing = [c for c in ("high", "low", "close", "volume") if c not in columns]
        if missing:
            raise KeyError(f"DataFrame is missing columns: {', '.join(missing)}")
        frame = _chronological_frame(df)
        rows = (
            {name: row.get(original) for name, original in columns.items()}
            for row in frame.to_dict("records")
        )
        return cls(rows, newest_first=False)

    def closes(self) -> PriceSeries:
        return PriceSeries((bar.close for bar in self._items), newest_first=True)

"""Engine service - runs the indicator engine over provider-supplied history."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Protocol

from quantdesk.analysis.diagnosis import DiagnosisComposer
from quantdesk.analysis.technical import calculate_snapshot, empty_snapshot, require_ohlcv, require_series
from quantdesk.config.settings import Settings, settings as default_settings
from quantdesk.models.schemas import DiagnosisResult, FundamentalSnapshot, IndicatorSnapshot, SupplyDemandInput
from quantdesk.models.series import OhlcvSeries, PriceSeries
from quantdesk.services.cache import TTLCache
from quantdesk.services.source_state import DataSourceState

logger = logging.getLogger(__name__)


class PriceHistoryProvider(Protocol):
    def close_prices(self, code: str) -> PriceSeries: ...

    def ohlcv(self, code: str) -> OhlcvSeries: ...


class EngineService:
    """Caches snapshots per instrument and fans work out across a thread pool."""

    def __init__(self, provider: PriceHistoryProvider, settings: Settings | None = None):
        self.provider = provider
        self.settings = settings or default_settings
        self.cache = TTLCache(self.settings.snapshot_cache_ttl_seconds)
        self.ohlcv_source = DataSourceState("ohlcv")
        self.composer = DiagnosisComposer(
            (self.settings.weight_financial, self.settings.weight_supply, self.settings.weight_technical)
        )

    def _fetch_ohlcv(self, code: str) -> OhlcvSeries | None:
        if not self.ohlcv_source.should_attempt():
            return None
        try:
            bars = self.provider.ohlcv(code)
        except Exception as e:
            logger.warning(f"OHLCV fetch failed for {code}: {e}")
            self.ohlcv_source.record(False)
            return None
        bars = require_ohlcv(bars)
        self.ohlcv_source.record(True)
        return bars

    def _load_snapshot(self, code: str) -> IndicatorSnapshot:
        series = require_series(self.provider.close_prices(code))
        return calculate_snapshot(series, self._fetch_ohlcv(code))

    def snapshot(self, code: str) -> IndicatorSnapshot:
        return self.cache.get_or_load(code, lambda: self._load_snapshot(code))

    def _safe_snapshot(self, code: str) -> IndicatorSnapshot:
        try:
            return self.snapshot(code)
        except TypeError:
            raise
        except Exception as e:
            logger.warning(f"Snapshot failed for {code}: {e}")
            return empty_snapshot(0)

    def snapshots(self, codes: Iterable[str]) -> list[IndicatorSnapshot]:
        """Snapshots in the order of ``codes``; a failed instrument gets an empty snapshot."""
        codes = list(codes)
        logger.info(f"Calculating snapshots for {len(codes)} instruments")
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
            return list(pool.map(self._safe_snapshot, codes))

    def diagnose(
        self,
        code: str,
        fundamentals: FundamentalSnapshot | None,
        supply_demand: SupplyDemandInput | None = None,
    ) -> DiagnosisResult:
        series = require_series(self.provider.close_prices(code))
        return self.composer.diagnose(code, fundamentals, supply_demand, series, self._fetch_ohlcv(code))

"""Pydantic schemas for engine inputs and output records."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

FROZEN = {"frozen": True}


# --- Enums ---

class RsiZone(str, Enum):
    OVERBOUGHT = "OVERBOUGHT"
    OVERSOLD = "OVERSOLD"
    NEUTRAL = "NEUTRAL"

    @property
    def label(self) -> str:
        return _ZONE_LABELS[self.value]


class MfiZone(str, Enum):
    OVERBOUGHT = "OVERBOUGHT"
    OVERSOLD = "OVERSOLD"
    NEUTRAL = "NEUTRAL"

    @property
    def label(self) -> str:
        return _ZONE_LABELS[self.value]


_ZONE_LABELS = {"OVERBOUGHT": "과열", "OVERSOLD": "침체", "NEUTRAL": "중립"}


class TechnicalSignal(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    NEUTRAL = "NEUTRAL"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"

    @property
    def label(self) -> str:
        return {
            "STRONG_BUY": "강력 매수",
            "BUY": "매수",
            "NEUTRAL": "중립",
            "SELL": "매도",
            "STRONG_SELL": "강력 매도",
        }[self.value]


class VerdictLevel(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    NEUTRAL = "NEUTRAL"
    CAUTION = "CAUTION"
    AVOID = "AVOID"

    @property
    def label(self) -> str:
        return _VERDICTS[self.value][0]

    @property
    def description(self) -> str:
        return _VERDICTS[self.value][1]

    @property
    def rank(self) -> int:
        """5 for STRONG_BUY down to 1 for AVOID."""
        return _VERDICTS[self.value][2]


_VERDICTS = {
    "STRONG_BUY": ("매수 적기", "종합 분석 결과 매수하기 좋은 시점입니다.", 5),
    "BUY": ("매수 고려", "긍정적 요소가 많으나 일부 주의 필요합니다.", 4),
    "NEUTRAL": ("관망 권고", "현재 시점에서는 관망이 좋겠습니다.", 3),
    "CAUTION": ("주의 요망", "부정적 신호가 감지되었습니다.", 2),
    "AVOID": ("매수 비추천", "현재 시점에서 매수를 권하지 않습니다.", 1),
}


class TurnaroundType(str, Enum):
    LOSS_TO_PROFIT = "LOSS_TO_PROFIT"
    PROFIT_GROWTH = "PROFIT_GROWTH"


# --- Indicators ---

class BollingerBands(BaseModel):
    model_config = FROZEN

    upper_band: Decimal
    middle_band: Decimal
    lower_band: Decimal
    band_width: Decimal = Field(ge=0)
    is_squeeze: bool = False
    is_breakout: bool = False


class MoneyFlow(BaseModel):
    model_config = FROZEN

    mfi_score: Decimal = Field(ge=0, le=100)
    mfi_zone: MfiZone


class IndicatorSnapshot(BaseModel):
    model_config = FROZEN

    data_count: int = 0
    has_enough_data_for_120ma: bool = False

    ma5: Optional[Decimal] = None
    ma20: Optional[Decimal] = None
    ma60: Optional[Decimal] = None
    ma120: Optional[Decimal] = None

    disparity5: Optional[Decimal] = None
    disparity20: Optional[Decimal] = None
    disparity60: Optional[Decimal] = None

    rsi14: Optional[Decimal] = None
    rsi_zone: Optional[RsiZone] = None

    is_above_ma5: Optional[bool] = None
    is_above_ma20: Optional[bool] = None
    is_above_ma60: Optional[bool] = None
    is_golden_cross: Optional[bool] = None
    is_dead_cross: Optional[bool] = None
    is_arranged_up: Optional[bool] = None
    is_arranged_down: Optional[bool] = None

    bollinger: Optional[BollingerBands] = None
    money_flow: Optional[MoneyFlow] = None

    buy_signal_strength: Optional[int] = Field(default=None, ge=0, le=100)
    overall_signal: TechnicalSignal = TechnicalSignal.NEUTRAL
    signal_description: str = ""


# --- Fundamentals & screening ---

class FundamentalSnapshot(BaseModel):
    model_config = FROZEN

    stock_code: str
    stock_name: str = ""
    market: str = ""
    sector: str = ""
    report_date: Optional[date] = None
    current_price: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None  # 억원
    per: Optional[Decimal] = None
    pbr: Optional[Decimal] = None
    roe: Optional[Decimal] = None
    operating_margin: Optional[Decimal] = None
    net_margin: Optional[Decimal] = None
    eps: Optional[Decimal] = None
    eps_growth: Optional[Decimal] = None
    peg: Optional[Decimal] = None
    debt_ratio: Optional[Decimal] = None
    operating_profit: Optional[Decimal] = None  # 억원
    net_income: Optional[Decimal] = None  # 억원


class RankedResult(BaseModel):
    model_config = FROZEN

    stock_code: str
    stock_name: str = ""
    market: str = ""
    operating_margin: Optional[Decimal] = None
    roe: Optional[Decimal] = None
    per: Optional[Decimal] = None
    operating_margin_rank: int = Field(ge=1)
    roe_rank: int = Field(ge=1)
    per_rank: int = Field(ge=1)
    magic_formula_score: int
    magic_formula_rank: int = Field(ge=1)


class PegResult(BaseModel):
    model_config = FROZEN

    stock_code: str
    stock_name: str = ""
    per: Decimal
    eps_growth: Decimal
    peg: Decimal


class TurnaroundResult(BaseModel):
    model_config = FROZEN

    stock_code: str
    stock_name: str = ""
    turnaround_type: TurnaroundType
    previous_net_income: Decimal
    current_net_income: Decimal
    net_income_change_rate: Decimal


# --- Short squeeze ---

class ShortBalanceRecord(BaseModel):
    """One trading day of short-selling / loan-balance data."""

    model_config = FROZEN

    trade_date: date
    close_price: Optional[Decimal] = None
    loan_balance_quantity: Optional[Decimal] = None


class SqueezeInputs(BaseModel):
    model_config = FROZEN

    loan_balance_current: Decimal
    loan_balance_avg20: Decimal
    loan_balance_change_5d: Optional[Decimal] = None  # %, negative = covering
    foreign_net_buy_3d: Decimal = Decimal("0")  # 억원
    is_trend_reversal: bool = False
    is_price_rising: bool = False
    price_change_5d: Optional[Decimal] = None
    ma20: Optional[Decimal] = None


class SqueezeScore(BaseModel):
    model_config = FROZEN

    stock_code: str
    stock_name: str = ""
    overheat_score: int = Field(ge=0, le=30)
    covering_score: int = Field(ge=0, le=30)
    foreign_buy_score: int = Field(ge=0, le=20)
    trend_reversal_score: int = Field(ge=0, le=20)
    squeeze_score: int = Field(ge=0, le=100)
    squeeze_level: str
    signal_description: str = ""
    inputs: SqueezeInputs
    technical: Optional[IndicatorSnapshot] = None


# --- Diagnosis ---

class InvestorTrade(BaseModel):
    """One investor-flow row as stored by the collector (amounts in 억원)."""

    model_config = FROZEN

    trade_date: date
    investor_type: str  # FOREIGN, INSTITUTION, ...
    trade_type: str = "BUY"  # BUY rows add, anything else subtracts
    net_buy_amount: Optional[Decimal] = None


class SupplyDemandInput(BaseModel):
    model_config = FROZEN

    foreign_net_5d: Decimal = Decimal("0")
    foreign_buy_days: int = Field(default=0, ge=0)
    institution_net_5d: Decimal = Decimal("0")
    institution_buy_days: int = Field(default=0, ge=0)


class FinancialHealth(BaseModel):
    model_config = FROZEN

    operating_profit: Optional[Decimal] = None
    net_income: Optional[Decimal] = None
    profit_gap: Optional[Decimal] = None
    profit_gap_ratio: Optional[Decimal] = None
    has_one_time_gain_warning: bool = False
    one_time_gain_reason: Optional[str] = None
    operating_margin: Optional[Decimal] = None
    net_margin: Optional[Decimal] = None
    roe: Optional[Decimal] = None
    debt_ratio: Optional[Decimal] = None
    score: int = Field(ge=0, le=100)
    assessment: str


class SupplyDemand(BaseModel):
    model_config = FROZEN

    foreign_net_5d: Decimal
    foreign_buy_days: int
    is_foreign_buying: bool
    institution_net_5d: Decimal
    institution_buy_days: int
    is_institution_buying: bool
    is_both_buying: bool
    is_both_selling: bool
    score: int = Field(ge=0, le=100)
    assessment: str


class TechnicalAnalysis(BaseModel):
    model_config = FROZEN

    indicators: Optional[IndicatorSnapshot] = None
    is_rsi_oversold: bool = False
    is_rsi_overbought: bool = False
    signal_description: str = ""
    score: int = Field(ge=0, le=100)
    assessment: str


class DiagnosisResult(BaseModel):
    model_config = FROZEN

    stock_code: str
    stock_name: str = ""
    market: str = ""
    current_price: Optional[Decimal] = None
    financial_health: Optional[FinancialHealth] = None
    supply_demand: Optional[SupplyDemand] = None
    technical_analysis: Optional[TechnicalAnalysis] = None
    overall_score: int = Field(ge=0, le=100)
    verdict_level: VerdictLevel
    verdict: str
    verdict_description: str = ""
    warnings: list[str] = Field(default_factory=list)
    positives: list[str] = Field(default_factory=list)

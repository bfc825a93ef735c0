from typing import List, Optional
from datetime import datetime

from fintrack.schemas.base import CamelModel

class BitcoinHoldings(CamelModel):
    current_price_inr: float
    coins_held: float
    allocation_percent: float
    realised_gain_percent: float
    last_updated: datetime
    last_checked_integrity: datetime

class PricePoint(CamelModel):
    date: str
    price: float
    change_percent: Optional[float] = None

class IntegrityMetric(CamelModel):
    label: str
    value: float
    unit: str
    change: float

class RiskSignal(CamelModel):
    name: str
    score: int
    recommendation: str

class HedgeStrategy(CamelModel):
    id: str
    label: str
    description: str
    estimated_cost: float
    effectiveness: float

class CustodyItem(CamelModel):
    id: str
    label: str
    completed: bool

class Wallet(CamelModel):
    id: str
    name: str
    type: str
    custodian: str
    address: str
    balance_btc: float
    share_of_holdings: Optional[float] = None

class BitcoinAnalytics(CamelModel):
    holding_value_inr: float
    period_return: float
    annualised_volatility: float
    average_risk_score: float
    custody_completion: float
    wallet_coverage: float
    best_hedge_id: Optional[str] = None

class BitcoinDashboardResponse(CamelModel):
    holdings: BitcoinHoldings
    price_history: List[PricePoint]
    integrity_metrics: List[IntegrityMetric]
    risk_signals: List[RiskSignal]
    hedge_strategies: List[HedgeStrategy]
    custody_checklist: List[CustodyItem]
    wallets: List[Wallet]
    analytics: BitcoinAnalytics

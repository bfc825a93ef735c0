from datetime import datetime

import numpy as np
import pandas as pd

from fintrack.schemas.bitcoin import BitcoinDashboardResponse

HOLDINGS = {
    "current_price_inr": 5390000,
    "coins_held": 0.82,
    "allocation_percent": 0.18,
    "realised_gain_percent": 0.264,
    "last_updated": datetime.fromisoformat("2025-10-02T08:30:00+05:30"),
    "last_checked_integrity": datetime.fromisoformat("2025-10-02T07:30:00+05:30"),
}

PRICE_HISTORY = [
    {"date": "Apr", "price": 4820000},
    {"date": "May", "price": 4965000},
    {"date": "Jun", "price": 5128000},
    {"date": "Jul", "price": 5215000},
    {"date": "Aug", "price": 5332000},
    {"date": "Sep", "price": 5487000},
    {"date": "Oct", "price": 5390000},
]

INTEGRITY_METRICS = [
    {"label": "Hash Rate", "value": 88, "unit": "EH/s", "change": 4},
    {"label": "Node Health", "value": 92, "unit": "Score", "change": 2},
    {"label": "Liquidity", "value": 76, "unit": "Index", "change": -3},
    {"label": "Volatility", "value": 63, "unit": "Index", "change": -5},
]

RISK_SIGNALS = [
    {"name": "On-chain activity", "score": 82, "recommendation": "Maintain"},
    {"name": "Exchange reserves", "score": 69, "recommendation": "Monitor"},
    {"name": "Derivatives", "score": 58, "recommendation": "Reduce"},
    {"name": "Macro sentiment", "score": 74, "recommendation": "Maintain"},
]

HEDGE_STRATEGIES = [
    {
        "id": "options-spread",
        "label": "Deploy Collar Hedge",
        "description": "Buy 3-month protective puts and sell covered calls to lock downside beyond ₹48L.",
        "estimated_cost": 185000,
        "effectiveness": 0.72,
    },
    {
        "id": "rebalance",
        "label": "Rebalance Allocation",
        "description": "Trim BTC allocation from 18% to 15% and redirect surplus to short-term debt funds.",
        "estimated_cost": 0,
        "effectiveness": 0.54,
    },
    {
        "id": "futures",
        "label": "Short CME Futures",
        "description": "Short 1 micro future contract to hedge 0.1 BTC for the next expiry cycle.",
        "estimated_cost": 40000,
        "effectiveness": 0.61,
    },
]

CUSTODY_CHECKLIST = [
    {"id": "hardware-wallet", "label": "Hardware wallet firmware updated", "completed": False},
    {"id": "multi-sig", "label": "Multi-sig recovery keys verified", "completed": True},
    {"id": "disaster-plan", "label": "Disaster recovery plan tested this quarter", "completed": False},
]

WALLETS = [
    {
        "id": "wallet-cold",
        "name": "Cold Storage Vault",
        "type": "Hardware",
        "custodian": "Ledger Nano X",
        "address": "bc1q8n72hxs0coldvault0examplelx8f4",
        "balance_btc": 0.52,
    },
    {
        "id": "wallet-lightning",
        "name": "Lightning Ops",
        "type": "Lightning",
        "custodian": "Phoenix",
        "address": "lnbc1p0lightningnodeexampleap3",
        "balance_btc": 0.11,
    },
]


class BitcoinDashboard:
    """Read-only view over a fixed demo portfolio. Nothing here touches the ledger."""

    @staticmethod
    def price_frame() -> pd.DataFrame:
        df = pd.DataFrame(PRICE_HISTORY)
        df['change_percent'] = df['price'].pct_change()
        return df

    @staticmethod
    def annualised_volatility(prices: pd.Series) -> float:
        returns = prices.pct_change().dropna()
        if len(returns) < 2:
            return 0.0
        return float(returns.std() * np.sqrt(12))

    @staticmethod
    def best_hedge(strategies: list) -> str | None:
        if not strategies:
            return None
        df = pd.DataFrame(strategies)
        # Free strategies are scored as if they cost one rupee
        df['score'] = df['effectiveness'] / df['estimated_cost'].clip(lower=1)
        return str(df.loc[df['score'].idxmax(), 'id'])

    @staticmethod
    def build() -> BitcoinDashboardResponse:
        prices = BitcoinDashboard.price_frame()
        coins = HOLDINGS["coins_held"]

        wallets = pd.DataFrame(WALLETS)
        wallets['share_of_holdings'] = (wallets['balance_btc'] / coins).round(4) if coins else 0.0

        custody = pd.Series([item["completed"] for item in CUSTODY_CHECKLIST], dtype=bool)
        risk = pd.Series([signal["score"] for signal in RISK_SIGNALS], dtype=float)

        first, last = prices['price'].iloc[0], prices['price'].iloc[-1]
        history = [
            {
                "date": row.date,
                "price": float(row.price),
                "change_percent": None if pd.isna(row.change_percent) else round(float(row.change_percent), 4),
            }
            for row in prices.itertuples()
        ]

        return BitcoinDashboardResponse(
            holdings=HOLDINGS,
            price_history=history,
            integrity_metrics=INTEGRITY_METRICS,
            risk_signals=RISK_SIGNALS,
            hedge_strategies=HEDGE_STRATEGIES,
            custody_checklist=CUSTODY_CHECKLIST,
            wallets=wallets.to_dict(orient='records'),
            analytics={
                "holding_value_inr": round(HOLDINGS["current_price_inr"] * coins, 2),
                "period_return": round(float(last / first - 1), 4),
                "annualised_volatility": round(BitcoinDashboard.annualised_volatility(prices['price']), 4),
                "average_risk_score": round(float(risk.mean()), 2) if len(risk) else 0.0,
                "custody_completion": round(float(custody.mean()), 4) if len(custody) else 0.0,
                "wallet_coverage": round(float(wallets['balance_btc'].sum() / coins), 4) if coins else 0.0,
                "best_hedge_id": BitcoinDashboard.best_hedge(HEDGE_STRATEGIES),
            },
        )

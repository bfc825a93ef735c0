from pydantic import ConfigDict
from typing import List, Optional
from datetime import date

from fintrack.schemas.base import CamelModel

class SummaryResponse(CamelModel):
    total_income: float
    total_expenses: float
    net_cashflow: float
    savings_rate: float
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "totalIncome": 1000.0,
            "totalExpenses": 0.0,
            "netCashflow": 1000.0,
            "savingsRate": 1.0
        }
    })

class CategoryBreakdownItem(CamelModel):
    category_id: int
    category: str
    icon: Optional[str] = None
    color: Optional[str] = None
    total: float
    percent_of_expense_total: float

class MonthlyStatsResponse(CamelModel):
    labels: List[str]
    incomes: List[float]
    expenses: List[float]
    avg_monthly_expense: float

from pydantic import BaseModel, ConfigDict
from typing import List, Literal, Optional
from datetime import datetime


class BalanceResponse(BaseModel):
    current_balance: float
    monthly_income: float
    monthly_expenses: float
    monthly_net: float

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "current_balance": 1247.5,
            "monthly_income": 2000.0,
            "monthly_expenses": 752.5,
            "monthly_net": 1247.5
        }
    })


class CategorySpending(BaseModel):
    category_name: str
    category_color: Optional[str] = None
    category_icon: Optional[str] = None
    total_spent: float
    budget: float
    percentage: float


class MonthlyReport(BaseModel):
    month: str
    total_income: float
    total_expenses: float
    net_income: float
    transaction_count: int
    top_categories: List[CategorySpending]


class ActivityLogItem(BaseModel):
    id: str
    type: Literal["transaction_income", "transaction_expense", "bill_paid", "goal_created"]
    title: str
    description: str
    amount: Optional[float] = None
    timestamp: datetime
    icon: str
    color: str


class ActivityFeedResponse(BaseModel):
    items: List[ActivityLogItem]
    relative_times: List[str]


class CacheStats(BaseModel):
    total_queries: int
    stale_queries: int
    active_queries: int
    error_queries: int
    loading_queries: int

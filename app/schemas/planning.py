from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional, Literal
from datetime import datetime


class BillBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: Literal["payable", "receivable"]
    amount: float = Field(..., gt=0)
    due_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    status: Literal["pending", "paid"] = "pending"


class BillCreate(BillBase):
    pass


class BillUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    type: Optional[Literal["payable", "receivable"]] = None
    amount: Optional[float] = Field(None, gt=0)
    due_date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    status: Optional[Literal["pending", "paid"]] = None


class BillResponse(BillBase):
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillsSummary(BaseModel):
    pending_bills: int
    total_pending_amount: float
    overdue_bills: int
    due_today_bills: int


class GoalContribution(BaseModel):
    id: str
    amount: float
    notes: Optional[str] = None
    created_at: datetime


class GoalContributionCreate(BaseModel):
    amount: float = Field(..., gt=0)
    notes: Optional[str] = None


class GoalBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    target_amount: float = Field(..., gt=0)
    target_date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    status: Literal["active", "completed"] = "active"


class GoalCreate(GoalBase):
    pass


class GoalUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    target_amount: Optional[float] = Field(None, gt=0)
    target_date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    status: Optional[Literal["active", "completed"]] = None


class GoalResponse(GoalBase):
    id: str
    user_id: str
    current_amount: float
    contributions: List[GoalContribution] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GoalsSummary(BaseModel):
    total_goals: int
    active_goals: int
    completed_goals: int
    total_target_amount: float
    total_current_amount: float
    overall_progress: float

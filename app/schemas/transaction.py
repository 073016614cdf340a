from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Literal
from datetime import datetime


class TransactionBase(BaseModel):
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    type: Literal["income", "expense"]
    category_id: Optional[str] = None
    payment_method: str = "pix"
    status: Literal["pending", "completed", "cancelled"] = "completed"
    transaction_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1)
    amount: Optional[float] = Field(None, ge=0)
    type: Optional[Literal["income", "expense"]] = None
    category_id: Optional[str] = None
    payment_method: Optional[str] = None
    status: Optional[Literal["pending", "completed", "cancelled"]] = None
    transaction_date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")


class TransactionResponse(TransactionBase):
    id: str
    user_id: str
    created_at: datetime
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    category_icon: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1)
    type: Literal["income", "expense"]
    icon: str = "Tag"
    color: str = "#6366f1"
    budget: float = Field(0.0, ge=0)


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    type: Optional[Literal["income", "expense"]] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    budget: Optional[float] = Field(None, ge=0)


class CategoryResponse(CategoryBase):
    id: str
    user_id: str

    model_config = ConfigDict(from_attributes=True)

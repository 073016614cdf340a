from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime


class CandidateCategory(BaseModel):
    id: str
    name: str
    type: Literal["income", "expense"]
    icon: str = "Tag"


class HistoryItem(BaseModel):
    description: str
    category_id: str
    category_name: str
    type: str
    amount: float = 0.0


class CategorizationContext(BaseModel):
    description: str
    amount: float
    type: Literal["income", "expense"] = "expense"
    available_categories: List[CandidateCategory]
    user_id: str
    history: List[HistoryItem] = []


class CategorizationResult(BaseModel):
    category_id: str
    category_name: str
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str
    type: Literal["income", "expense"]
    source: str = "unknown"

    @property
    def confidence_level(self) -> str:
        return confidence_level(self.confidence)


def confidence_level(confidence: float) -> str:
    # Display only; low confidence suggestions are still applied
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.6:
        return "medium"
    return "low"


class CategoryInfo(BaseModel):
    category_id: str
    category_name: str
    confidence: float
    confidence_level: str
    reasoning: str


class PipelineResult(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    category_info: Optional[CategoryInfo] = None


class RecategorizeResult(BaseModel):
    success: bool
    category_name: Optional[str] = None
    error: Optional[str] = None


class ProcessMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)


class FeedbackRequest(BaseModel):
    transaction_id: str
    correct_category_id: str
    was_correct: bool
    notes: Optional[str] = None


class ExtractedTransaction(BaseModel):
    description: str
    amount: float = Field(..., gt=0)
    type: Literal["income", "expense"]
    transaction_date: str


class FeedbackResponse(BaseModel):
    id: str
    transaction_id: str
    suggested_category_id: Optional[str] = None
    correct_category_id: str
    was_correct: bool
    applied: bool


class ChatMessage(BaseModel):
    id: str
    text: str
    sender: Literal["user", "bot"]
    timestamp: datetime
    type: Literal["text", "transaction", "balance", "report"] = "text"
    confidence: Optional[float] = None

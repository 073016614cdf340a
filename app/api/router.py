from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.api.deps import get_current_user
from app.core.cache import ALL_BUCKETS
from app.core.database import get_db
from app.core.security import get_token
from app.schemas.ai import (
    ChatMessage, FeedbackRequest, FeedbackResponse, PipelineResult, ProcessMessageRequest, RecategorizeResult,
)
from app.schemas.analytics import ActivityFeedResponse, BalanceResponse, CacheStats, MonthlyReport
from app.schemas.planning import (
    BillCreate, BillResponse, BillsSummary, BillUpdate,
    GoalContribution, GoalContributionCreate, GoalCreate, GoalResponse, GoalsSummary, GoalUpdate,
)
from app.schemas.transaction import (
    CategoryCreate, CategoryResponse, CategoryUpdate,
    TransactionCreate, TransactionResponse, TransactionUpdate,
)
from app.schemas.user import CurrentUser, LogoutResponse
from app.services.activity import ActivityLogService
from app.services.ai_processing import ai_processor
from app.services.auth import auth_watchers, session_teardown
from app.services.balance import BalanceService, MonthlyReportService
from app.services.bills import BillService
from app.services.categories import CategoryService
from app.services.conversation import chat_history
from app.services.goals import GoalContributionService, GoalService
from app.services.sync import data_sync
from app.services.transactions import TransactionService

api_router = APIRouter()


# --- Transactions ---

@api_router.get("/transactions", response_model=List[TransactionResponse], tags=["Transactions"])
async def list_transactions(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await TransactionService.list_transactions(db, user)


@api_router.post("/transactions", response_model=TransactionResponse, status_code=201, tags=["Transactions"])
async def add_transaction(
        trx: TransactionCreate, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await TransactionService.create_transaction(db, user, trx)


@api_router.get("/transactions/{transaction_id}", response_model=TransactionResponse, tags=["Transactions"])
async def get_transaction(
        transaction_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await TransactionService.get_transaction(db, user, transaction_id)


@api_router.patch("/transactions/{transaction_id}", response_model=TransactionResponse, tags=["Transactions"])
async def update_transaction(
        transaction_id: str,
        update: TransactionUpdate,
        db: AsyncSession = Depends(get_db),
        user: CurrentUser = Depends(get_current_user),
):
    return await TransactionService.update_transaction(db, user, transaction_id, update)


@api_router.delete("/transactions/{transaction_id}", status_code=204, tags=["Transactions"])
async def delete_transaction(
        transaction_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    await TransactionService.delete_transaction(db, user, transaction_id)


# --- Categories ---

@api_router.get("/categories", response_model=List[CategoryResponse], tags=["Categories"])
async def list_categories(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await CategoryService.list_categories(db, user)


@api_router.post("/categories", response_model=CategoryResponse, status_code=201, tags=["Categories"])
async def add_category(
        category: CategoryCreate, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await CategoryService.create_category(db, user, category)


@api_router.post("/categories/defaults", response_model=List[CategoryResponse], tags=["Categories"])
async def add_default_categories(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await CategoryService.create_default_categories(db, user)


@api_router.patch("/categories/{category_id}", response_model=CategoryResponse, tags=["Categories"])
async def update_category(
        category_id: str,
        update: CategoryUpdate,
        db: AsyncSession = Depends(get_db),
        user: CurrentUser = Depends(get_current_user),
):
    return await CategoryService.update_category(db, user, category_id, update)


@api_router.delete("/categories/{category_id}", status_code=204, tags=["Categories"])
async def delete_category(
        category_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    await CategoryService.delete_category(db, user, category_id)


# --- Bills ---

@api_router.get("/bills", response_model=List[BillResponse], tags=["Bills"])
async def list_bills(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await BillService.list_bills(db, user)


@api_router.get("/bills/summary", response_model=BillsSummary, tags=["Bills"])
async def bills_summary(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await BillService.get_summary(db, user)


@api_router.post("/bills", response_model=BillResponse, status_code=201, tags=["Bills"])
async def add_bill(bill: BillCreate, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await BillService.create_bill(db, user, bill)


@api_router.patch("/bills/{bill_id}", response_model=BillResponse, tags=["Bills"])
async def update_bill(
        bill_id: str, update: BillUpdate, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await BillService.update_bill(db, user, bill_id, update)


@api_router.post("/bills/{bill_id}/pay", response_model=BillResponse, tags=["Bills"])
async def pay_bill(bill_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await BillService.mark_as_paid(db, user, bill_id)


@api_router.delete("/bills/{bill_id}", status_code=204, tags=["Bills"])
async def delete_bill(bill_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    await BillService.delete_bill(db, user, bill_id)


# --- Goals ---

@api_router.get("/goals", response_model=List[GoalResponse], tags=["Goals"])
async def list_goals(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await GoalService.list_goals(db, user)


@api_router.get("/goals/summary", response_model=GoalsSummary, tags=["Goals"])
async def goals_summary(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await GoalService.get_summary(db, user)


@api_router.post("/goals", response_model=GoalResponse, status_code=201, tags=["Goals"])
async def add_goal(goal: GoalCreate, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await GoalService.create_goal(db, user, goal)


@api_router.patch("/goals/{goal_id}", response_model=GoalResponse, tags=["Goals"])
async def update_goal(
        goal_id: str, update: GoalUpdate, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await GoalService.update_goal(db, user, goal_id, update)


@api_router.delete("/goals/{goal_id}", status_code=204, tags=["Goals"])
async def delete_goal(goal_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    await GoalService.delete_goal(db, user, goal_id)


@api_router.get("/goals/{goal_id}/contributions", response_model=List[GoalContribution], tags=["Goals"])
async def list_contributions(
        goal_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await GoalContributionService.list_contributions(db, user, goal_id)


@api_router.post(
    "/goals/{goal_id}/contributions", response_model=GoalContribution, status_code=201, tags=["Goals"]
)
async def add_contribution(
        goal_id: str,
        contribution: GoalContributionCreate,
        db: AsyncSession = Depends(get_db),
        user: CurrentUser = Depends(get_current_user),
):
    return await GoalContributionService.add_contribution(db, user, goal_id, contribution)


@api_router.delete("/goals/{goal_id}/contributions/{contribution_id}", status_code=204, tags=["Goals"])
async def delete_contribution(
        goal_id: str,
        contribution_id: str,
        db: AsyncSession = Depends(get_db),
        user: CurrentUser = Depends(get_current_user),
):
    await GoalContributionService.delete_contribution(db, user, goal_id, contribution_id)


# --- Analytics ---

@api_router.get("/balance", response_model=BalanceResponse, tags=["Analytics"])
async def get_balance(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await BalanceService.get_balance(db, user)


@api_router.get("/reports/monthly", response_model=MonthlyReport, tags=["Analytics"])
async def get_monthly_report(
        month: str | None = Query(None, pattern=r"^\d{4}-\d{2}$"),
        db: AsyncSession = Depends(get_db),
        user: CurrentUser = Depends(get_current_user),
):
    return await MonthlyReportService.get_monthly_report(db, user, month)


@api_router.get("/activity", response_model=ActivityFeedResponse, tags=["Analytics"])
async def get_activity(db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return await ActivityLogService.get_feed(db, user)


# --- AI ---

@api_router.post("/ai/process-message", response_model=PipelineResult, tags=["AI"])
async def process_message(
        req: ProcessMessageRequest, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await ai_processor.process_message(db, user, req.message)


@api_router.post("/ai/categorize/{transaction_id}", response_model=RecategorizeResult, tags=["AI"])
async def categorize_transaction(
        transaction_id: str, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await ai_processor.categorize_existing(db, user, transaction_id)


@api_router.post("/ai/feedback", response_model=FeedbackResponse, tags=["AI"])
async def categorization_feedback(
        req: FeedbackRequest, db: AsyncSession = Depends(get_db), user: CurrentUser = Depends(get_current_user)
):
    return await ai_processor.record_feedback(db, user, req)


@api_router.get("/ai/chat-history", response_model=List[ChatMessage], tags=["AI"])
async def read_chat_history(user: CurrentUser = Depends(get_current_user)):
    return chat_history.messages(user.id)


# --- Sync ---

@api_router.post("/sync/all", tags=["Sync"])
async def sync_all(user: CurrentUser = Depends(get_current_user)):
    await data_sync.sync_all_data(user.id)
    return {"status": "synced", "scope": "all"}


@api_router.post("/sync/financial", tags=["Sync"])
async def sync_financial(user: CurrentUser = Depends(get_current_user)):
    await data_sync.sync_financial_data(user.id)
    return {"status": "synced", "scope": "financial"}


@api_router.post("/sync/{bucket}", tags=["Sync"])
async def force_refresh(bucket: str, user: CurrentUser = Depends(get_current_user)):
    if bucket not in ALL_BUCKETS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown cache bucket: {bucket}")
    await data_sync.force_refresh(user.id, bucket)
    return {"status": "invalidated", "scope": bucket}


@api_router.get("/sync/stats", response_model=CacheStats, tags=["Sync"])
async def sync_stats(user: CurrentUser = Depends(get_current_user)):
    return data_sync.get_cache_stats(user.id)


@api_router.delete("/sync/cache", tags=["Sync"])
async def clear_cache(user: CurrentUser = Depends(get_current_user)):
    return {"removed": data_sync.clear_all_cache(user.id)}


# --- Auth ---

@api_router.get("/auth/me", response_model=CurrentUser, tags=["Auth"])
async def read_me(user: CurrentUser = Depends(get_current_user)):
    return user


@api_router.post("/auth/logout", response_model=LogoutResponse, tags=["Auth"])
async def logout(
        user: CurrentUser = Depends(get_current_user),
        token: str | None = Depends(get_token),
        client_id: str | None = Header(None, alias="X-Client-Id"),
):
    steps = await session_teardown.logout(user.id, token)
    if client_id:
        auth_watchers.forget(client_id)
    return LogoutResponse(success=all(steps.values()), steps=steps)

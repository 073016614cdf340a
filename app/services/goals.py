import logging

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import GOALS, query_cache
from app.core.database import new_id, utcnow
from app.core.exceptions import ConcurrencyError, NotFoundError
from app.models.planning import Goal
from app.schemas.planning import (
    GoalCreate, GoalUpdate, GoalResponse, GoalsSummary, GoalContribution, GoalContributionCreate,
)
from app.schemas.user import CurrentUser
from app.services.base import require_user, store_errors
from app.services.sync import invalidate_with_dependents

logger = logging.getLogger(__name__)

MAX_CONTRIBUTION_ATTEMPTS = 3


def calculate_goals_summary(goals: list[GoalResponse]) -> GoalsSummary:
    total_target = sum(g.target_amount for g in goals)
    total_current = sum(g.current_amount for g in goals)
    progress = (total_current / total_target * 100) if total_target > 0 else 0.0
    return GoalsSummary(
        total_goals=len(goals),
        active_goals=sum(1 for g in goals if g.status == "active"),
        completed_goals=sum(1 for g in goals if g.status == "completed"),
        total_target_amount=round(total_target, 2),
        total_current_amount=round(total_current, 2),
        overall_progress=round(min(progress, 100.0), 2),
    )


class GoalService:
    @staticmethod
    async def _load_goals(db: AsyncSession, user_id: str) -> list[GoalResponse]:
        query = (
            select(Goal)
            .where(Goal.user_id == user_id)
            .order_by(Goal.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [GoalResponse.model_validate(g) for g in result.scalars().all()]

    @staticmethod
    async def list_goals(db: AsyncSession, user: CurrentUser | None) -> list[GoalResponse]:
        user = require_user(user)
        return await query_cache.fetch(GOALS, user.id, GoalService._load_goals, db=db)

    @staticmethod
    async def get_row(db: AsyncSession, user_id: str, goal_id: str) -> Goal:
        query = (
            select(Goal)
            .where(and_(Goal.id == goal_id, Goal.user_id == user_id))
            .execution_options(populate_existing=True)
        )
        goal = (await db.execute(query)).scalar_one_or_none()
        if goal is None:
            raise NotFoundError("Meta não encontrada")
        return goal

    @staticmethod
    async def create_goal(db: AsyncSession, user: CurrentUser | None, data: GoalCreate) -> GoalResponse:
        user = require_user(user)
        db_obj = Goal(**data.model_dump(), user_id=user.id, current_amount=0.0, contributions=[], version=1)

        async with store_errors(db, "Erro ao salvar meta"):
            db.add(db_obj)
            await db.commit()
            await db.refresh(db_obj)

        await invalidate_with_dependents(GOALS, user.id)
        return GoalResponse.model_validate(db_obj)

    @staticmethod
    async def update_goal(db: AsyncSession, user: CurrentUser | None, goal_id: str, data: GoalUpdate) -> GoalResponse:
        user = require_user(user)
        goal = await GoalService.get_row(db, user.id, goal_id)

        async with store_errors(db, "Erro ao atualizar meta"):
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(goal, key, value)
            await db.commit()
            await db.refresh(goal)

        await invalidate_with_dependents(GOALS, user.id)
        return GoalResponse.model_validate(goal)

    @staticmethod
    async def delete_goal(db: AsyncSession, user: CurrentUser | None, goal_id: str) -> None:
        user = require_user(user)
        goal = await GoalService.get_row(db, user.id, goal_id)

        async with store_errors(db, "Erro ao excluir meta"):
            await db.delete(goal)
            await db.commit()

        await invalidate_with_dependents(GOALS, user.id)

    @staticmethod
    async def get_summary(db: AsyncSession, user: CurrentUser | None) -> GoalsSummary:
        goals = await GoalService.list_goals(db, user)
        return calculate_goals_summary(goals)


class GoalContributionService:
    """Contributions live inside the goal row; every write is a versioned compare-and-swap."""

    @staticmethod
    async def list_contributions(db: AsyncSession, user: CurrentUser | None, goal_id: str) -> list[GoalContribution]:
        user = require_user(user)
        goal = await GoalService.get_row(db, user.id, goal_id)
        contributions = [GoalContribution.model_validate(c) for c in goal.contributions or []]
        return sorted(contributions, key=lambda c: c.created_at, reverse=True)

    @staticmethod
    async def _swap(db: AsyncSession, goal: Goal, contributions: list[dict], current_amount: float) -> bool:
        result = await db.execute(
            update(Goal)
            .where(and_(Goal.id == goal.id, Goal.version == goal.version))
            .values(
                contributions=contributions,
                current_amount=current_amount,
                version=goal.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount == 1

    @staticmethod
    async def add_contribution(
            db: AsyncSession, user: CurrentUser | None, goal_id: str, data: GoalContributionCreate
    ) -> GoalContribution:
        user = require_user(user)
        contribution = {
            "id": new_id(),
            "amount": data.amount,
            "notes": data.notes,
            "created_at": utcnow().isoformat(),
        }

        for attempt in range(MAX_CONTRIBUTION_ATTEMPTS):
            goal = await GoalService.get_row(db, user.id, goal_id)
            contributions = [contribution] + list(goal.contributions or [])
            current_amount = (goal.current_amount or 0.0) + data.amount

            async with store_errors(db, "Erro ao adicionar contribuição"):
                swapped = await GoalContributionService._swap(db, goal, contributions, current_amount)
            if swapped:
                await invalidate_with_dependents(GOALS, user.id)
                return GoalContribution.model_validate(contribution)
            logger.info("Goal %s changed concurrently, retrying contribution (attempt %d)", goal_id, attempt + 1)

        raise ConcurrencyError("Meta alterada por outra operação. Tente novamente.")

    @staticmethod
    async def delete_contribution(db: AsyncSession, user: CurrentUser | None, goal_id: str, contribution_id: str) -> None:
        user = require_user(user)

        for attempt in range(MAX_CONTRIBUTION_ATTEMPTS):
            goal = await GoalService.get_row(db, user.id, goal_id)
            contributions = list(goal.contributions or [])
            deleted = next((c for c in contributions if c["id"] == contribution_id), None)
            if deleted is None:
                raise NotFoundError("Contribuição não encontrada")

            remaining = [c for c in contributions if c["id"] != contribution_id]
            current_amount = max(0.0, (goal.current_amount or 0.0) - deleted["amount"])

            async with store_errors(db, "Erro ao excluir contribuição"):
                swapped = await GoalContributionService._swap(db, goal, remaining, current_amount)
            if swapped:
                await invalidate_with_dependents(GOALS, user.id)
                return
            logger.info("Goal %s changed concurrently, retrying deletion (attempt %d)", goal_id, attempt + 1)

        raise ConcurrencyError("Meta alterada por outra operação. Tente novamente.")

import logging

from app.core.exceptions import ExternalServiceError
from app.ml.components.gateway import AIGateway
from app.ml.components.history_model import HistoryCategoryModel
from app.ml.components.keywords import (
    KEYWORD_CONFIDENCE, NAME_MATCH_CONFIDENCE,
    candidates_for_type, find_category_by_name, match_by_keywords, match_by_name,
)
from app.schemas.ai import CategorizationContext, CategorizationResult, CandidateCategory

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5


def _result(category: CandidateCategory, confidence: float, reasoning: str, source: str) -> CategorizationResult:
    return CategorizationResult(
        category_id=category.id,
        category_name=category.name,
        confidence=min(max(confidence, 0.0), 1.0),
        reasoning=reasoning,
        type=category.type,
        source=source,
    )


class CategorizationEngine:
    """Picks a category for a transaction: AI gateway, then local strategies from most to least specific."""

    def __init__(self, gateway: AIGateway | None = None, history_model: HistoryCategoryModel | None = None):
        self.gateway = gateway or AIGateway()
        self.history_model = history_model or HistoryCategoryModel()

    async def _from_gateway(
            self, context: CategorizationContext, candidates: list[CandidateCategory]
    ) -> CategorizationResult | None:
        if not self.gateway.configured:
            return None
        try:
            answer = await self.gateway.suggest(context, candidates)
        except ExternalServiceError as e:
            logger.warning("AI gateway unavailable, using local categorization: %s", e)
            return None

        category = find_category_by_name(candidates, str(answer.get("categoryName") or ""))
        if category is None:
            logger.info("AI gateway suggested unknown category '%s'", answer.get("categoryName"))
            return None
        try:
            confidence = float(answer.get("confidence") or 0.8)
        except (TypeError, ValueError):
            confidence = 0.8
        return _result(category, confidence, answer.get("reasoning") or "Categorização automática", "gateway")

    def categorize_locally(
            self, context: CategorizationContext, candidates: list[CandidateCategory]
    ) -> CategorizationResult:
        by_name = match_by_name(context.description, candidates)
        if by_name is not None:
            return _result(
                by_name, NAME_MATCH_CONFIDENCE,
                f'A descrição menciona a categoria "{by_name.name}"', "name",
            )

        learned = self.history_model.predict(context.description, context.history, candidates)
        if learned is not None:
            category, probability = learned
            return _result(category, probability, "Padrão aprendido com o seu histórico de transações", "history")

        by_keyword = match_by_keywords(context.description, candidates)
        if by_keyword is not None:
            category, fragment = by_keyword
            return _result(category, KEYWORD_CONFIDENCE, f"Identificada por palavra-chave: {fragment}", "keywords")

        return _result(candidates[0], FALLBACK_CONFIDENCE, "Categoria padrão - sistema de backup", "fallback")

    async def categorize(self, context: CategorizationContext) -> CategorizationResult:
        if not context.available_categories:
            raise ValueError("Nenhuma categoria disponível para categorização")

        candidates = candidates_for_type(context.available_categories, context.type)
        result = await self._from_gateway(context, candidates)
        if result is None:
            result = self.categorize_locally(context, candidates)

        logger.info(
            "Categorized '%s' as %s (%.0f%%, %s)",
            context.description, result.category_name, result.confidence * 100, result.source,
        )
        return result


ml_engine = CategorizationEngine()

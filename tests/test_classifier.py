import pytest

from app.core.exceptions import ExternalServiceError
from app.ml.components.gateway import AIGateway
from app.ml.components.keywords import candidates_for_type, match_by_name, normalize
from app.ml.engine import CategorizationEngine
from app.schemas.ai import CandidateCategory, CategorizationContext, HistoryItem, confidence_level


class FakeGateway:
    configured = True

    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.calls = 0

    async def suggest(self, context, categories):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.answer


def cat(id_, name, type_="expense"):
    return CandidateCategory(id=id_, name=name, type=type_)


def context(description, categories, type_="expense", history=None):
    return CategorizationContext(
        description=description, amount=50, type=type_, available_categories=categories,
        user_id="u1", history=history or [],
    )


OFFLINE = AIGateway(base_url="", api_key="")

CATEGORIES = [
    cat("c-out", "Outros"),
    cat("c-food", "Alimentação"),
    cat("c-car", "Transporte"),
    cat("c-sal", "Salário", "income"),
]


def test_normalize_strips_accents():
    assert normalize("  Alimentação ") == "alimentacao"


def test_candidates_fall_back_to_all_categories():
    assert [c.id for c in candidates_for_type(CATEGORIES, "income")] == ["c-sal"]
    only_expenses = CATEGORIES[:3]
    assert candidates_for_type(only_expenses, "income") == only_expenses


def test_name_match_needs_whole_word():
    categories = [cat("a", "Casa"), cat("b", "Casamento")]
    assert match_by_name("presente de casamento", categories).id == "b"
    assert match_by_name("casas bahia", categories) is None


async def test_gateway_answer_is_used_when_category_exists():
    gateway = FakeGateway({"categoryName": "alimentação", "confidence": 0.93, "reasoning": "Supermercado"})
    engine = CategorizationEngine(gateway=gateway)

    result = await engine.categorize(context("Compra no Extra", CATEGORIES))

    assert result.category_id == "c-food"
    assert result.confidence == 0.93
    assert result.source == "gateway"
    assert result.reasoning == "Supermercado"


async def test_unknown_gateway_category_falls_through():
    gateway = FakeGateway({"categoryName": "Pets", "confidence": 0.99})
    engine = CategorizationEngine(gateway=gateway)

    result = await engine.categorize(context("Almoço Alimentação", CATEGORIES))

    assert gateway.calls == 1
    assert result.category_id == "c-food"
    assert result.source == "name"
    assert result.confidence == 0.9


async def test_gateway_failure_uses_keywords():
    engine = CategorizationEngine(gateway=FakeGateway(error=ExternalServiceError("timeout")))

    result = await engine.categorize(context("Uber para o trabalho", CATEGORIES))

    assert result.category_id == "c-car"
    assert result.source == "keywords"
    assert result.confidence == 0.75


async def test_history_model_learns_user_habits():
    categories = [cat("c-del", "Delivery"), cat("c-auto", "Carro"), cat("c-out", "Outros")]
    history = [
        HistoryItem(description=f"ifood pedido {n}", category_id="c-del", category_name="Delivery", type="expense")
        for n in range(3)
    ] + [
        HistoryItem(description=f"posto shell {n}", category_id="c-auto", category_name="Carro", type="expense")
        for n in range(3)
    ]
    engine = CategorizationEngine(gateway=OFFLINE)

    result = await engine.categorize(context("pedido ifood", categories, history=history))

    assert result.category_id == "c-del"
    assert result.source == "history"
    assert 0.5 <= result.confidence <= 1


async def test_small_history_is_ignored():
    history = [HistoryItem(description="ifood", category_id="c-food", category_name="Alimentação", type="expense")]
    engine = CategorizationEngine(gateway=OFFLINE)

    result = await engine.categorize(context("posto shell", CATEGORIES, history=history))

    assert result.source == "keywords"
    assert result.category_id == "c-car"


async def test_fallback_to_first_candidate_of_the_type():
    engine = CategorizationEngine(gateway=OFFLINE)

    result = await engine.categorize(context("qualquer coisa", CATEGORIES))

    assert result.category_id == "c-out"
    assert result.confidence == 0.5
    assert result.source == "fallback"
    assert result.confidence_level == "low"


async def test_no_categories_is_an_error():
    with pytest.raises(ValueError):
        await CategorizationEngine(gateway=OFFLINE).categorize(context("x", []))


@pytest.mark.parametrize("confidence, level", [(0.95, "high"), (0.8, "high"), (0.7, "medium"), (0.6, "medium"), (0.59, "low")])
def test_confidence_levels(confidence, level):
    assert confidence_level(confidence) == level

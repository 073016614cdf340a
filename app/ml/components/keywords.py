import re
import unicodedata

from app.schemas.ai import CandidateCategory

NAME_MATCH_CONFIDENCE = 0.9
KEYWORD_CONFIDENCE = 0.75

# Category name fragment -> words that point at it in a Brazilian description
KEYWORD_MAP = {
    "alimentacao": [
        "mercado", "supermercado", "extra", "pao de acucar", "carrefour", "atacadao", "acougue", "padaria",
        "restaurante", "lanchonete", "ifood", "uber eats", "pizza", "hamburguer", "almoco", "jantar", "lanche",
    ],
    "transporte": [
        "uber", "taxi", "99", "onibus", "metro", "combustivel", "gasolina", "etanol", "posto", "shell",
        "petrobras", "estacionamento", "pedagio",
    ],
    "saude": [
        "farmacia", "drogaria", "medico", "hospital", "consulta", "exame", "laboratorio", "remedio",
        "medicamento", "dentista",
    ],
    "entretenimento": ["cinema", "teatro", "netflix", "spotify", "amazon prime", "disney", "jogo", "steam", "show"],
    "casa": ["casa", "moveis", "decoracao", "limpeza", "condominio", "iptu", "aluguel", "casas bahia", "luz", "agua"],
    "educacao": ["curso", "faculdade", "universidade", "livro", "escola", "material escolar", "estacio", "uninove"],
    "telefone": ["tim", "vivo", "claro", "oi", "internet", "telefone", "celular"],
    "salario": ["salario", "pagamento", "empresa", "trabalho", "honorarios", "comissao"],
    "freelance": ["freelance", "freela", "projeto", "servico", "consultoria"],
    "vendas": ["venda", "vendi", "vendeu", "mercado livre", "olx", "produto"],
}


def normalize(text: str) -> str:
    """Lowercase, accent-free text for matching."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower().strip()


def contains_word(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


def candidates_for_type(categories: list[CandidateCategory], trx_type: str) -> list[CandidateCategory]:
    typed = [c for c in categories if c.type == trx_type]
    return typed or list(categories)


def find_category_by_name(categories: list[CandidateCategory], name: str) -> CandidateCategory | None:
    wanted = normalize(name)
    return next((c for c in categories if normalize(c.name) == wanted), None)


def match_by_name(description: str, categories: list[CandidateCategory]) -> CandidateCategory | None:
    """A category whose own name appears in the description; longest name wins."""
    text = normalize(description)
    hits = [c for c in categories if normalize(c.name) and contains_word(text, normalize(c.name))]
    if not hits:
        return None
    return max(hits, key=lambda c: len(c.name))


def match_by_keywords(description: str, categories: list[CandidateCategory]) -> tuple[CandidateCategory, str] | None:
    text = normalize(description)
    for fragment, keywords in KEYWORD_MAP.items():
        if not any(contains_word(text, k) for k in keywords):
            continue
        category = next((c for c in categories if fragment in normalize(c.name)), None)
        if category is not None:
            return category, fragment
    return None

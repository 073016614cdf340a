import re
from datetime import date

from app.core.exceptions import ExtractionError
from app.schemas.ai import ExtractedTransaction

# "R$ 1.234,56", "1.500", "50,90", "50.5", "2 mil", "3k"
AMOUNT_RE = re.compile(
    r"(?:r\$\s*)?(\d{1,3}(?:\.\d{3})+(?:,\d{1,2})?|\d+(?:[.,]\d{1,2})?)(\s*(?:mil|k)\b)?(\s*reais?\b)?",
    re.IGNORECASE,
)

INCOME_WORDS = (
    "recebi", "ganhei", "salário", "salario", "vendi", "venda", "receita", "entrada", "rendimento",
    "reembolso", "freela", "freelance",
)
# First-person spending verbs win over income words ("paguei o salário da diarista")
EXPENSE_VERBS = ("gastei", "paguei", "comprei", "transferi")

FILLER_WORDS = {
    "gastei", "paguei", "comprei", "recebi", "ganhei", "vendi", "transferi", "gasto", "compra",
    "de", "do", "da", "dos", "das", "no", "na", "nos", "nas", "em", "com", "um", "uma", "o", "a", "os", "as",
    "pra", "para", "por", "reais", "real", "r$", "hoje", "ontem",
}

DEFAULT_DESCRIPTION = "Transação via WhatsApp"


def parse_amount(raw: str) -> float:
    if "," in raw:
        return float(raw.replace(".", "").replace(",", "."))
    if re.fullmatch(r"\d{1,3}(?:\.\d{3})+", raw):
        return float(raw.replace(".", ""))
    return float(raw)


def is_money(match: re.Match) -> bool:
    return match.group(0).lower().startswith("r$") or bool(match.group(3))


class TransactionExtractor:
    """Turns free Portuguese text ("Gastei 50 reais no mercado") into a transaction draft."""

    def infer_type(self, text: str) -> str:
        words = set(re.findall(r"[\wçãõáéíóúâêô]+", text.lower()))
        if words & set(INCOME_WORDS) and not words & set(EXPENSE_VERBS):
            return "income"
        return "expense"

    def find_amount(self, text: str) -> tuple[float, re.Match] | None:
        """The first amount marked as money ("R$ 80", "80 reais"), else the first positive number."""
        found = []
        for match in AMOUNT_RE.finditer(text):
            amount = parse_amount(match.group(1))
            if match.group(2):
                amount *= 1000
            if amount > 0:
                found.append((amount, match))
        if not found:
            return None
        marked = [f for f in found if is_money(f[1])]
        return (marked or found)[0]

    def build_description(self, text: str, amount_match: re.Match) -> str:
        remaining = text[:amount_match.start()] + " " + text[amount_match.end():]
        words = [w for w in re.split(r"\s+", remaining.strip(" .,!?;:")) if w]

        # Trim filler from both ends, keep inner words ("Pão de Açúcar")
        while words and words[0].lower().strip(".,!?;:") in FILLER_WORDS:
            words.pop(0)
        while words and words[-1].lower().strip(".,!?;:") in FILLER_WORDS:
            words.pop()

        description = " ".join(words).strip(" .,!?;:")
        if not description:
            return DEFAULT_DESCRIPTION
        return description[0].upper() + description[1:]

    def extract(self, text: str, today: date | None = None) -> ExtractedTransaction:
        found = self.find_amount(text or "")
        if found is None:
            raise ExtractionError()
        amount, match = found
        return ExtractedTransaction(
            description=self.build_description(text, match),
            amount=round(amount, 2),
            type=self.infer_type(text),
            transaction_date=(today or date.today()).isoformat(),
        )

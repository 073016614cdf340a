import json
import logging

import httpx

from app.config import settings
from app.core.exceptions import ExternalServiceError
from app.schemas.ai import CategorizationContext, CandidateCategory

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Você é um assistente especializado em categorização de transações financeiras brasileiras. "
    "Analise com precisão e retorne sempre um JSON válido."
)


def build_prompt(context: CategorizationContext, categories: list[CandidateCategory]) -> str:
    categories_text = ", ".join(f'"{c.name}" ({c.icon})' for c in categories)
    history_text = "\n".join(f'"{h.description}" → {h.category_name}' for h in context.history[:8])
    type_text = "receita" if context.type == "income" else "despesa"

    return f"""
TAREFA: Categorize esta transação financeira brasileira.

TRANSAÇÃO:
- Descrição: "{context.description}"
- Valor: R$ {context.amount:.2f}
- Tipo: {type_text}

CATEGORIAS DISPONÍVEIS:
{categories_text}

HISTÓRICO DO USUÁRIO (últimas transações):
{history_text}

INSTRUÇÕES:
1. Analise a descrição considerando o contexto brasileiro
2. Use o histórico do usuário para entender padrões
3. Escolha a categoria mais adequada da lista
4. Considere variações de nome (ex: "Extra" = supermercado)

RESPOSTA (JSON obrigatório):
{{
  "categoryName": "nome_exato_da_categoria",
  "confidence": 0.95,
  "reasoning": "Explicação da escolha em português"
}}
"""


class AIGateway:
    """OpenAI-compatible chat completions endpoint answering in JSON."""

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            model: str | None = None,
            timeout: float | None = None,
    ):
        self.base_url = base_url if base_url is not None else settings.AI_GATEWAY_URL
        self.api_key = api_key if api_key is not None else settings.AI_GATEWAY_KEY
        self.model = model or settings.AI_MODEL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def complete_json(self, prompt: str) -> dict:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.1,
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url.rstrip('/')}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
                content = response.json()["choices"][0]["message"]["content"]
            return json.loads(content)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Falha no gateway de IA: {e}") from e

    async def suggest(self, context: CategorizationContext, categories: list[CandidateCategory]) -> dict:
        return await self.complete_json(build_prompt(context, categories))

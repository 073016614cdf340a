import logging

import numpy as np
import pandas as pd
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import make_pipeline

from app.ml.components.keywords import normalize
from app.schemas.ai import CandidateCategory, HistoryItem

logger = logging.getLogger(__name__)

MIN_SAMPLES = 5
MIN_CLASSES = 2
MIN_PROBABILITY = 0.5


class HistoryCategoryModel:
    """Learns a user's own description -> category habits from their categorized history."""

    def __init__(self, min_samples: int = MIN_SAMPLES, min_probability: float = MIN_PROBABILITY):
        self.min_samples = min_samples
        self.min_probability = min_probability

    def build_frame(self, history: list[HistoryItem], categories: list[CandidateCategory]) -> pd.DataFrame:
        if not history:
            return pd.DataFrame()
        allowed = {c.id for c in categories}
        df = pd.DataFrame([h.model_dump() for h in history])
        df = df[df["category_id"].isin(allowed)].copy()
        df["text"] = df["description"].map(normalize)
        return df[df["text"].str.len() > 0].reset_index(drop=True)

    def is_trainable(self, df: pd.DataFrame) -> bool:
        return len(df) >= self.min_samples and df["category_id"].nunique() >= MIN_CLASSES

    def predict(
            self, description: str, history: list[HistoryItem], categories: list[CandidateCategory]
    ) -> tuple[CandidateCategory, float] | None:
        df = self.build_frame(history, categories)
        if df.empty or not self.is_trainable(df):
            return None

        model = make_pipeline(
            TfidfVectorizer(analyzer="char_wb", ngram_range=(2, 4)),
            LogisticRegression(max_iter=1000),
        )
        model.fit(df["text"], df["category_id"])

        probabilities = model.predict_proba([normalize(description)])[0]
        best = int(np.argmax(probabilities))
        probability = float(probabilities[best])
        if probability < self.min_probability:
            logger.debug("History model unsure (%.2f) for '%s'", probability, description)
            return None

        category_id = model.classes_[best]
        category = next((c for c in categories if c.id == category_id), None)
        if category is None:
            return None
        return category, probability

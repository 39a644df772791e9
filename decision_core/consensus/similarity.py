import json
from abc import ABC, abstractmethod
from typing import Any

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity


def normalize(value: Any) -> str:
    """Lower-cased JSON serialization used for all payload comparisons."""
    return json.dumps(value, sort_keys=True, default=str).lower()


class SimilarityEstimator(ABC):
    """How much an alternative provider's result agrees with the primary's."""

    @abstractmethod
    def similarity(self, a: Any, b: Any) -> float:
        """Return a score in [0, 1]; 1.0 when both payloads are identical."""
        pass


class LexicalSimilarity(SimilarityEstimator):
    """
    Coarse character-overlap heuristic.

    Counts the characters of the first serialization that also occur
    anywhere in the second, divided by the longer length. Cheap and
    deterministic, but blind to meaning: "approve" vs "reprove" scores high.
    Swap in TfidfSimilarity or a semantic estimator when that matters.
    """

    # Score when a payload can't be serialized
    UNSERIALIZABLE_SCORE = 0.5

    def similarity(self, a: Any, b: Any) -> float:
        try:
            str1 = normalize(a)
            str2 = normalize(b)
        except (TypeError, ValueError):
            return self.UNSERIALIZABLE_SCORE

        if str1 == str2:
            return 1.0

        present = set(str2)
        common = sum(1 for char in str1 if char in present)
        return common / max(len(str1), len(str2))


class TfidfSimilarity(SimilarityEstimator):
    """
    Character n-gram TF-IDF cosine similarity.

    Stronger than LexicalSimilarity for free-text results (word order and
    local spelling count) while staying model-free. Character n-grams keep
    short payloads like "yes"/"no" from producing an empty vocabulary.
    """

    def __init__(self, ngram_range: tuple[int, int] = (2, 4)):
        self.ngram_range = ngram_range

    def similarity(self, a: Any, b: Any) -> float:
        str1 = normalize(a)
        str2 = normalize(b)
        if str1 == str2:
            return 1.0

        vectorizer = TfidfVectorizer(analyzer="char_wb", ngram_range=self.ngram_range)
        try:
            matrix = vectorizer.fit_transform([str1, str2])
        except ValueError:
            # Empty vocabulary: nothing to compare
            return 0.0

        score = float(cosine_similarity(matrix[0], matrix[1])[0][0])
        return min(1.0, max(0.0, score))

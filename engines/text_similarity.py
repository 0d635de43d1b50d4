#!/usr/bin/env python3
"""
Text Similarity Engine for risk causes
Combines character-level Levenshtein similarity with token-level Jaccard overlap
to suggest existing causes while a user types a new one and to flag likely
duplicates. Also hosts the helpers used to migrate legacy free-text causes.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Set

from engines.enums import RiskCategory

_NON_WORD = re.compile(r"[^\w\s]")
_LEGACY_SEPARATORS = re.compile(r"[;,\n]")


def normalize_text(text: Optional[str]) -> str:
    """Trim, casefold, strip accents and collapse whitespace"""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(without_marks.split())


def levenshtein_distance(first: str, second: str) -> int:
    """Edit distance with unit cost insertions, deletions and substitutions"""
    if first == second:
        return 0
    if not first:
        return len(second)
    if not second:
        return len(first)

    previous = list(range(len(second) + 1))
    for i, char_a in enumerate(first, start=1):
        current = [i]
        for j, char_b in enumerate(second, start=1):
            substitution = previous[j - 1] + (0 if char_a == char_b else 1)
            current.append(min(previous[j] + 1, current[j - 1] + 1, substitution))
        previous = current
    return previous[-1]


def tokenize(text: str) -> List[str]:
    """Word tokens longer than two characters"""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [token for token in cleaned.split() if len(token) > 2]


def jaccard_similarity(tokens_a: Iterable[str], tokens_b: Iterable[str]) -> float:
    set_a: Set[str] = set(tokens_a)
    set_b: Set[str] = set(tokens_b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def levenshtein_similarity(first: str, second: str) -> float:
    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(first, second) / longest


@dataclass
class SimilarCause:
    """Candidate cause paired with its similarity to the input text"""
    description: str
    similarity: float
    candidate: Any = None

    @property
    def category(self) -> Optional[str]:
        category = getattr(self.candidate, "category", None)
        if category is None:
            categories = getattr(self.candidate, "categories", None)
            if categories:
                return categories[0]
        return category


def _candidate_text(candidate: Any) -> str:
    if isinstance(candidate, str):
        return candidate
    return getattr(candidate, "description", "") or ""


class TextSimilarityEngine:
    """
    Scores free-text causes against each other.
    Jaccard carries more weight than Levenshtein because it tolerates word
    reordering, which dominates differences between longer causes.
    """

    LEVENSHTEIN_WEIGHT = 0.4
    JACCARD_WEIGHT = 0.6

    def __init__(self, suggest_threshold: float = 0.7, duplicate_threshold: float = 0.85,
                 max_suggestions: int = 5):
        self.suggest_threshold = suggest_threshold
        self.duplicate_threshold = duplicate_threshold
        self.max_suggestions = max_suggestions

    def similarity(self, text_a: Optional[str], text_b: Optional[str]) -> float:
        """Combined similarity in [0, 1]; empty input on either side scores 0"""
        if not text_a or not text_b:
            return 0.0
        if text_a == text_b:
            return 1.0

        norm_a = normalize_text(text_a)
        norm_b = normalize_text(text_b)
        if norm_a == norm_b:
            return 1.0

        lev = levenshtein_similarity(norm_a, norm_b)
        jac = jaccard_similarity(tokenize(norm_a), tokenize(norm_b))
        return self.LEVENSHTEIN_WEIGHT * lev + self.JACCARD_WEIGHT * jac

    def find_similar_causes(self, text: str, candidates: Sequence[Any],
                            threshold: Optional[float] = None) -> List[SimilarCause]:
        """Top matches at or above the threshold, most similar first"""
        if not text or not text.strip():
            return []

        cutoff = self.suggest_threshold if threshold is None else threshold
        matches = []
        for candidate in candidates:
            description = _candidate_text(candidate)
            score = self.similarity(text, description)
            if score >= cutoff:
                matches.append(SimilarCause(description=description, similarity=score,
                                            candidate=candidate))

        matches.sort(key=lambda match: match.similarity, reverse=True)
        return matches[:self.max_suggestions]

    def is_duplicate_cause(self, text: str, candidates: Sequence[Any],
                           threshold: Optional[float] = None) -> bool:
        cutoff = self.duplicate_threshold if threshold is None else threshold
        return any(self.similarity(text, _candidate_text(candidate)) >= cutoff
                   for candidate in candidates)


def similarity(text_a: Optional[str], text_b: Optional[str]) -> float:
    """Module-level shortcut using the default weights"""
    return TextSimilarityEngine().similarity(text_a, text_b)


def split_legacy_causes(causes_text: Optional[str]) -> List[str]:
    """Split a legacy free-text causes field into individual, de-duplicated causes"""
    if not causes_text:
        return []

    seen = set()
    causes = []
    for part in _LEGACY_SEPARATORS.split(causes_text):
        cause = part.strip()
        if cause and cause not in seen:
            seen.add(cause)
            causes.append(cause)
    return causes


def merge_cause_texts(causes: Iterable[Optional[str]]) -> str:
    """Join causes back into the legacy free-text representation"""
    merged = []
    for cause in causes:
        if cause and cause not in merged:
            merged.append(cause)
    return "; ".join(merged)


# Keywords are stored accent-free; matching runs on normalize_text output
CATEGORY_KEYWORDS = {
    RiskCategory.TECHNOLOGY: ['sistema', 'software', 'hardware', 'rede', 'servidor',
                              'aplicacao', 'database', 'integracao', 'api'],
    RiskCategory.HUMAN_RESOURCES: ['funcionario', 'equipe', 'treinamento', 'capacitacao',
                                   'rotatividade', 'ausencia', 'competencia'],
    RiskCategory.FINANCIAL: ['orcamento', 'custo', 'receita', 'lucro', 'investimento',
                             'fluxo de caixa', 'inadimplencia'],
    RiskCategory.OPERATIONAL: ['processo', 'operacao', 'producao', 'qualidade', 'fornecedor',
                               'estoque', 'logistica'],
    RiskCategory.COMPLIANCE: ['regulamentacao', 'auditoria', 'conformidade', 'legal', 'norma',
                              'politica'],
    RiskCategory.STRATEGIC: ['mercado', 'concorrencia', 'estrategia', 'planejamento',
                             'objetivo', 'meta'],
    RiskCategory.REGULATORY: ['regulacao', 'orgao regulador', 'fiscalizacao', 'multa',
                              'sancao', 'licenca'],
}


def suggest_category(cause_text: Optional[str]) -> Optional[RiskCategory]:
    """First category whose keywords appear in the cause, in declaration order"""
    text = normalize_text(cause_text)
    if not text:
        return None

    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return category
    return None

"""Flavor scoring heuristics.

Scores how relevant a Flavor is to the current context:
- Keyword overlap between the vocabulary and the Flavor name/description/bet
- Artifact boost rules from the category vocabulary
- A small boost when a learning mentions the Flavor by name

Scores are always clamped to [0, 1].
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
import logging

from orchestrator.models import Flavor, OrchestratorContext
from orchestrator.vocabulary import StageVocabulary

logger = logging.getLogger(__name__)

# Score used when a category has no vocabulary
NEUTRAL_SCORE = 0.5
LEARNING_BOOST = 0.1


def clamp(score: float) -> float:
    """Clamp a score to [0, 1]."""
    return max(0.0, min(1.0, score))


def bet_text(context: OrchestratorContext) -> str:
    """Lowercased free text of the bet (title, description and string tags)."""
    bet = context.bet
    if not bet:
        return ""
    parts: List[str] = []
    if isinstance(bet.get("title"), str):
        parts.append(bet["title"])
    if isinstance(bet.get("description"), str):
        parts.append(bet["description"])
    tags = bet.get("tags")
    if isinstance(tags, (list, tuple)):
        parts.extend(tag for tag in tags if isinstance(tag, str))
    return " ".join(parts).lower()


def count_keyword_hits(
    flavor: Flavor,
    context: OrchestratorContext,
    keywords: Sequence[str],
) -> int:
    """Count keywords found in the Flavor name, its description or the bet."""
    text = bet_text(context)
    name = flavor.name.lower()
    description = (flavor.description or "").lower()

    hits = 0
    for keyword in keywords:
        kw = keyword.lower()
        if kw in name or kw in description or kw in text:
            hits += 1
    return hits


def keyword_score(
    flavor: Flavor,
    context: OrchestratorContext,
    keywords: Sequence[str],
) -> float:
    """Fraction of keywords that hit; neutral 0.5 when there are no keywords."""
    if not keywords:
        return NEUTRAL_SCORE
    return min(1.0, count_keyword_hits(flavor, context, keywords) / len(keywords))


def learning_boost(flavor: Flavor, context: OrchestratorContext) -> float:
    """Boost a Flavor that any learning mentions by name."""
    name = flavor.name.lower()
    if any(name in learning.lower() for learning in context.learnings):
        return LEARNING_BOOST
    return 0.0


@dataclass(frozen=True)
class MatchReport:
    """How well one candidate Flavor matched the context."""
    flavor_name: str
    score: float
    keyword_hits: int
    learning_boost: float
    reasoning: str


class FlavorScorer:
    """Category-specific scoring hook used by the flavor selector.

    Subclasses override score_flavor_for_context(); reports are derived
    from it.
    """

    keywords: Sequence[str] = ()

    def score_flavor_for_context(self, flavor: Flavor, context: OrchestratorContext) -> float:
        raise NotImplementedError

    def report(self, flavor: Flavor, context: OrchestratorContext) -> MatchReport:
        """Score a Flavor and explain the score."""
        score = clamp(self.score_flavor_for_context(flavor, context))
        hits = count_keyword_hits(flavor, context, self.keywords)
        boost = learning_boost(flavor, context)
        return MatchReport(
            flavor_name=flavor.name,
            score=score,
            keyword_hits=hits,
            learning_boost=boost,
            reasoning=(
                f"Score {score:.2f}: {hits} keyword hit(s), "
                f"learning boost {boost:.2f}."
            ),
        )


class FunctionScorer(FlavorScorer):
    """Adapts a plain ``(flavor, context) -> float`` function."""

    def __init__(self, func: Callable[[Flavor, OrchestratorContext], float]):
        self._func = func

    def score_flavor_for_context(self, flavor: Flavor, context: OrchestratorContext) -> float:
        return clamp(self._func(flavor, context))


class VocabularyScorer(FlavorScorer):
    """Scores Flavors with a category vocabulary.

    Without a vocabulary every Flavor gets the neutral score, plus the
    learning boost.
    """

    def __init__(self, vocabulary: Optional[StageVocabulary] = None):
        self.vocabulary = vocabulary
        self.keywords = list(vocabulary.keywords) if vocabulary else []

    def score_flavor_for_context(self, flavor: Flavor, context: OrchestratorContext) -> float:
        boost = learning_boost(flavor, context)
        if self.vocabulary is None:
            return clamp(NEUTRAL_SCORE + boost)

        base = keyword_score(flavor, context, self.keywords)
        artifact_boost = sum(
            rule.magnitude
            for rule in self.vocabulary.boost_rules
            if rule.applies_to(context.available_artifacts)
        )
        score = clamp(base + artifact_boost + boost)
        logger.debug(
            f"Scored {flavor.name}: base={base:.2f} artifacts=+{artifact_boost:.2f} "
            f"learnings=+{boost:.2f} -> {score:.2f}"
        )
        return score

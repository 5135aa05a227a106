"""Per-category vocabularies driving flavor scoring and synthesis choice.

A vocabulary is a JSON document per stage category. Built-in documents
ship in ``orchestrator/vocabularies``; a custom directory may override
any of them. Loaded vocabularies are cached by a VocabularyCache owned
by whoever builds orchestrators.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import json
import logging
import threading

from pydantic import BaseModel, Field, ValidationError, model_validator

from orchestrator.models import StageCategory, SynthesisApproach

logger = logging.getLogger(__name__)

BUILTIN_VOCABULARY_DIR = Path(__file__).parent / "vocabularies"

DEFAULT_SYNTHESIS_ALTERNATIVES = [
    SynthesisApproach.MERGE_ALL,
    SynthesisApproach.FIRST_WINS,
    SynthesisApproach.CASCADE,
]


class BoostRule(BaseModel):
    """Score boost applied when an available artifact matches a pattern.

    ``artifact_pattern`` is a substring of an artifact name; ``"*"`` matches
    as soon as any artifact is available.
    """
    artifact_pattern: str = Field(..., min_length=1)
    magnitude: float = Field(..., ge=0.0, le=1.0)

    def applies_to(self, available_artifacts: Tuple[str, ...]) -> bool:
        if self.artifact_pattern == "*":
            return len(available_artifacts) > 0
        return any(self.artifact_pattern in artifact for artifact in available_artifacts)


class StageVocabulary(BaseModel):
    """Keywords, boost rules and synthesis preferences for one category."""
    category: StageCategory
    keywords: List[str] = Field(..., min_length=1)
    boost_rules: List[BoostRule] = Field(default_factory=list)
    synthesis_preference: SynthesisApproach = SynthesisApproach.MERGE_ALL
    synthesis_alternatives: List[SynthesisApproach] = Field(
        default_factory=lambda: list(DEFAULT_SYNTHESIS_ALTERNATIVES)
    )
    reasoning_template: Optional[str] = None

    @model_validator(mode="after")
    def _check_keywords(self) -> "StageVocabulary":
        if any(not keyword.strip() for keyword in self.keywords):
            raise ValueError("Vocabulary keywords must be non-empty")
        return self


def resolve_vocabulary_path(
    category: StageCategory,
    custom_dir: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Find the vocabulary file for a category: custom dir first, then built-ins."""
    filename = f"{StageCategory(category).value}.json"
    if custom_dir:
        custom_path = Path(custom_dir) / filename
        if custom_path.exists():
            return custom_path
    builtin_path = BUILTIN_VOCABULARY_DIR / filename
    if builtin_path.exists():
        return builtin_path
    return None


def load_vocabulary(
    category: StageCategory,
    custom_dir: Optional[Union[str, Path]] = None,
) -> Optional[StageVocabulary]:
    """Load and validate the vocabulary for a category.

    Returns None (neutral scoring) when no file exists or it is invalid.
    """
    path = resolve_vocabulary_path(category, custom_dir)
    if path is None:
        logger.warning(
            f'No vocabulary file found for category "{StageCategory(category).value}". '
            f"Using default scoring."
        )
        return None

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return StageVocabulary(**raw)
    except (OSError, ValueError, ValidationError) as e:
        logger.warning(
            f'Failed to load vocabulary for "{StageCategory(category).value}" from {path}: {e}'
        )
        return None


class VocabularyCache:
    """Memoizes loaded vocabularies keyed by (category, custom dir)."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], Optional[StageVocabulary]] = {}
        self._lock = threading.Lock()

    def get(
        self,
        category: StageCategory,
        custom_dir: Optional[Union[str, Path]] = None,
    ) -> Optional[StageVocabulary]:
        key = (StageCategory(category).value, str(custom_dir or ""))
        with self._lock:
            if key in self._entries:
                return self._entries[key]
        vocabulary = load_vocabulary(category, custom_dir)
        with self._lock:
            self._entries.setdefault(key, vocabulary)
            return self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

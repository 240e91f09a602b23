"""Multiple-choice option sets for test questions."""
import random

from vocab_tutor.config import settings
from vocab_tutor.models import VocabularyWord


def generate_options(
    correct_answer: str,
    pool: list[str],
    count: int = settings.OPTIONS_PER_QUESTION,
    rng=None,
) -> list[str]:
    """Return the correct answer plus up to ``count - 1`` distractors, shuffled.

    Distractors are drawn without replacement from ``pool``. Duplicate
    translations and ones equal to the correct answer are dropped first, so
    the correct answer always appears exactly once. A small pool simply
    yields fewer options.
    """
    rng = rng or random
    candidates = list(dict.fromkeys(p for p in pool if p != correct_answer))
    distractors = rng.sample(candidates, min(count - 1, len(candidates)))
    options = [correct_answer, *distractors]
    rng.shuffle(options)
    return options


def build_test_options(words: list[VocabularyWord], rng=None) -> dict[int, list[str]]:
    """Fresh option sets for every word of a test attempt, keyed by word id."""
    return {
        word.id: generate_options(
            word.english,
            [other.english for other in words if other.id != word.id],
            rng=rng,
        )
        for word in words
    }

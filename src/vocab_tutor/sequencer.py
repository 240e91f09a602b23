"""Word ordering and cursor positions, kept separately for each mode."""
import random

from vocab_tutor.models import Mode, VocabularyWord


class SessionSequencer:
    """Tracks where the learner is in the word list for every mode.

    Learn and Practice walk the list in stored order. Test walks a random
    permutation that stays fixed until a retake. Navigation saturates at
    both ends of the list.
    """

    def __init__(self, words: list[VocabularyWord], rng=None):
        self._ordered = sorted(words, key=lambda w: (w.order, w.id))
        self._test_order: list[VocabularyWord] | None = None
        self._cursors = {mode: 0 for mode in Mode}
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._ordered)

    @property
    def has_test_attempt(self) -> bool:
        return self._test_order is not None

    def words(self, mode: Mode) -> list[VocabularyWord]:
        if mode is Mode.TEST:
            return list(self._test_order or [])
        return list(self._ordered)

    def position(self, mode: Mode) -> int:
        return self._cursors[mode]

    def current(self, mode: Mode) -> VocabularyWord | None:
        words = self.words(mode)
        if not words:
            return None
        return words[self._cursors[mode]]

    def next(self, mode: Mode) -> bool:
        if self._cursors[mode] >= len(self.words(mode)) - 1:
            return False
        self._cursors[mode] += 1
        return True

    def previous(self, mode: Mode) -> bool:
        if self._cursors[mode] <= 0:
            return False
        self._cursors[mode] -= 1
        return True

    def move_to(self, mode: Mode, index: int) -> None:
        if not 0 <= index < len(self.words(mode)):
            raise IndexError(f"position {index} out of range for {mode.value}")
        self._cursors[mode] = index

    def index_of(self, mode: Mode, word_id: int) -> int:
        for index, word in enumerate(self.words(mode)):
            if word.id == word_id:
                return index
        raise ValueError(f"word {word_id} is not part of this session")

    def start_test(self, retake: bool = False) -> list[VocabularyWord]:
        """Begin a test attempt, or resume the current one unless ``retake``."""
        if not self.has_test_attempt or retake:
            order = list(self._ordered)
            self._rng.shuffle(order)
            self._test_order = order
            self._cursors[Mode.TEST] = 0
        return list(self._test_order)

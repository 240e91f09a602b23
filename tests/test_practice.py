"""Tests for the Learn / Practice / Test state machine."""
import logging
import random

import pytest

from conftest import FailingStore, MemoryStore, make_words
from vocab_tutor.models import Mode, UserProgress
from vocab_tutor.practice import PracticeStateMachine, PracticeSummary, State, TestScore


class FakeAudio:
    def __init__(self):
        self.stops = 0

    def stop(self):
        self.stops += 1


def make_machine(store, scheduler, count=3, **kwargs):
    kwargs.setdefault("rng", random.Random(0))
    return PracticeStateMachine("u1", make_words(count), store, scheduler=scheduler, **kwargs)


def answer_current(machine, correct=True):
    word = machine.words[machine.position]
    question = machine.current_question
    if correct:
        option = word.english
    else:
        option = next(o for o in question.options if o != word.english)
    return machine.select_answer(option)


# -- learn -------------------------------------------------------------------


def test_starts_in_learn_and_marks_first_word_seen(store, scheduler):
    machine = make_machine(store, scheduler)
    assert machine.mode is Mode.LEARN
    assert machine.state is State.LEARN
    assert machine.current_word.id == 1
    assert store.writes == [(1, True, 0, 0)]
    assert machine.progress_for(1).seen


def test_learn_navigation_marks_each_word_once(store, scheduler):
    machine = make_machine(store, scheduler)
    assert machine.next()
    assert machine.next()
    assert machine.next() is False
    machine.previous()
    assert [w[0] for w in store.writes] == [1, 2, 3]
    assert all(w[2] == 0 and w[3] == 0 for w in store.writes)


def test_learn_previous_at_start_is_noop(store, scheduler):
    machine = make_machine(store, scheduler)
    assert machine.previous() is False
    assert machine.position == 0


def test_already_seen_word_is_not_rewritten(scheduler):
    store = MemoryStore({("u1", 1): UserProgress(id=1, user_id="u1", word_id=1, seen=True)})
    make_machine(store, scheduler)
    assert store.writes == []


# -- practice ----------------------------------------------------------------


def test_practice_flow_shows_summary_when_complete(store, scheduler):
    machine = make_machine(store, scheduler)
    machine.switch_mode(Mode.PRACTICE)
    assert machine.state is State.PRACTICE_CARD
    assert machine.answer_practice(True)
    assert machine.current_word.id == 2
    machine.answer_practice(False)
    assert machine.state is State.PRACTICE_CARD
    machine.answer_practice(True)
    assert machine.state is State.PRACTICE_SUMMARY

    summary = machine.practice_summary()
    assert [w.id for w in summary.correct] == [1, 3]
    assert [w.id for w in summary.incorrect] == [2]
    assert summary.unpracticed == []
    assert summary.accuracy == 66.7


def test_practice_answers_are_persisted(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    machine.answer_practice(True)
    machine.answer_practice(False)
    assert store.rows[("u1", 1)].correct_count == 1
    assert store.rows[("u1", 2)].incorrect_count == 1
    assert store.rows[("u1", 3)].seen


def test_flip_only_on_card(store, scheduler):
    machine = make_machine(store, scheduler)
    assert machine.flip() is False
    machine.switch_mode(Mode.PRACTICE)
    assert machine.flip()
    assert machine.is_flipped
    machine.answer_practice(True)
    assert machine.is_flipped is False


def test_history_preclassifies_words(scheduler):
    """Stored counters decide the starting verdict: ties count as correct."""
    store = MemoryStore({
        ("u1", 1): UserProgress(id=1, user_id="u1", word_id=1, seen=True, correct_count=2, incorrect_count=1),
        ("u1", 2): UserProgress(id=2, user_id="u1", word_id=2, seen=True, correct_count=1, incorrect_count=1),
        ("u1", 3): UserProgress(id=3, user_id="u1", word_id=3, seen=True, incorrect_count=3),
    })
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    assert machine.state is State.PRACTICE_SUMMARY
    assert machine.practice_outcome(1) is True
    assert machine.practice_outcome(2) is True
    assert machine.practice_outcome(3) is False


def test_seen_only_history_is_unpracticed(scheduler):
    store = MemoryStore({("u1", 1): UserProgress(id=1, user_id="u1", word_id=1, seen=True)})
    machine = make_machine(store, scheduler)
    assert machine.practice_outcome(1) is None


def test_initial_progress_skips_store_read(scheduler):
    store = MemoryStore({("u1", 1): UserProgress(id=1, user_id="u1", word_id=1, correct_count=5)})
    machine = make_machine(store, scheduler, initial_progress={})
    assert machine.practice_outcome(1) is None


def test_manual_summary_lists_unpracticed(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    machine.answer_practice(False)
    assert machine.show_summary()
    summary = machine.practice_summary()
    assert [w.id for w in summary.incorrect] == [1]
    assert [w.id for w in summary.unpracticed] == [2, 3]
    assert summary.accuracy == 0.0
    assert machine.next() is False


def test_summary_accuracy_with_nothing_answered():
    assert PracticeSummary(correct=[], incorrect=[], unpracticed=make_words(2)).accuracy == 0.0


def test_resume_practice_returns_to_card(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    machine.answer_practice(True)
    machine.show_summary()
    assert machine.resume_practice()
    assert machine.state is State.PRACTICE_CARD
    assert machine.current_word.id == 2


def test_jump_from_summary_clears_outcome(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    for verdict in (True, False, True):
        machine.answer_practice(verdict)
    assert machine.state is State.PRACTICE_SUMMARY

    machine.jump_to_word(2)
    assert machine.state is State.PRACTICE_CARD
    assert machine.current_word.id == 2
    assert machine.practice_outcome(2) is None
    assert not machine.practice_complete

    machine.answer_practice(True)
    assert machine.state is State.PRACTICE_SUMMARY
    assert machine.practice_summary().accuracy == 100.0


def test_answering_last_card_moves_to_first_unpracticed(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    machine.jump_to_word(3)
    machine.answer_practice(True)
    assert machine.state is State.PRACTICE_CARD
    assert machine.current_word.id == 1
    machine.answer_practice(False)
    assert machine.current_word.id == 2


def test_answer_skips_words_with_history(scheduler):
    store = MemoryStore({
        ("u1", 2): UserProgress(id=1, user_id="u1", word_id=2, seen=True, correct_count=1),
    })
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    machine.answer_practice(True)
    assert machine.current_word.id == 3


def test_jump_to_unknown_word(store, scheduler):
    machine = make_machine(store, scheduler)
    with pytest.raises(ValueError):
        machine.jump_to_word(99)


def test_reset_practice_keeps_stored_counters(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    for verdict in (True, True, True):
        machine.answer_practice(verdict)
    machine.reset_practice()
    assert machine.state is State.PRACTICE_CARD
    assert machine.position == 0
    assert machine.practice_summary().unpracticed == machine.words
    assert store.rows[("u1", 1)].correct_count == 1


def test_learn_and_practice_cursors_are_independent(store, scheduler):
    machine = make_machine(store, scheduler)
    machine.next()
    machine.next()
    machine.switch_mode(Mode.PRACTICE)
    assert machine.position == 0
    machine.switch_mode(Mode.LEARN)
    assert machine.position == 2


# -- test --------------------------------------------------------------------


def test_entering_test_builds_questions(store, scheduler):
    machine = make_machine(store, scheduler, count=6, mode=Mode.TEST)
    assert machine.state is State.TEST_QUESTION
    pairs = machine.test_questions()
    assert len(pairs) == 6
    for word, question in pairs:
        assert question.options.count(word.english) == 1
        assert len(question.options) == 4
        assert not question.answered
    assert store.writes == []


def test_test_navigation_does_not_mark_seen(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    machine.next()
    machine.previous()
    assert store.writes == []


def test_select_answer_records_and_arms_timer(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    word = machine.current_word
    assert answer_current(machine, correct=True) is True
    assert machine.current_question.selected_answer == word.english
    assert machine.auto_advance_pending
    assert scheduler.live[0].delay == 3.0
    assert store.writes == [(word.id, True, 1, 0)]


def test_incorrect_answer(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    word = machine.current_word
    assert answer_current(machine, correct=False) is False
    assert machine.current_question.is_correct is False
    assert store.rows[("u1", word.id)].incorrect_count == 1


def test_answers_are_final(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    word = machine.current_word
    answer_current(machine, correct=False)
    assert machine.select_answer(word.english) is None
    assert machine.current_question.is_correct is False
    assert len(store.writes) == 1


def test_unknown_option_rejected(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    with pytest.raises(ValueError):
        machine.select_answer("not an option")
    assert not machine.current_question.answered


def test_auto_advance_moves_to_next_question(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    answer_current(machine)
    scheduler.fire_all()
    assert machine.position == 1
    assert machine.state is State.TEST_QUESTION
    assert not machine.auto_advance_pending


def test_manual_navigation_cancels_auto_advance(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    answer_current(machine)
    assert machine.next()
    assert scheduler.live == []
    assert not machine.auto_advance_pending
    scheduler.fire_all()
    assert machine.position == 1


def test_stale_callback_after_navigation_is_ignored(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    answer_current(machine)
    handle = scheduler.handles[0]
    machine.next()
    handle.callback()
    assert machine.position == 1
    assert machine.state is State.TEST_QUESTION


def test_last_question_submits(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    for _ in range(3):
        answer_current(machine)
        scheduler.fire_all()
    assert machine.state is State.TEST_SUBMITTED
    score = machine.test_score()
    assert score == TestScore(correct=3, answered=3, total=3)
    assert score.percentage == 100


def test_last_question_submits_with_gaps(store, scheduler):
    """Answering the final question ends the attempt even if earlier ones were skipped."""
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    machine.next()
    machine.next()
    answer_current(machine, correct=False)
    scheduler.fire_all()
    assert machine.state is State.TEST_SUBMITTED
    score = machine.test_score()
    assert score.answered == 1
    assert score.total == 3
    assert score.percentage == 0


def test_auto_advance_wraps_to_earlier_unanswered(store, scheduler):
    machine = make_machine(store, scheduler, count=4, mode=Mode.TEST)
    for _ in range(3):
        machine.next()
    answer_current(machine)
    machine.previous()
    answer_current(machine)
    scheduler.fire_all()
    assert machine.state is State.TEST_QUESTION
    assert machine.position == 0


def test_view_results_requires_all_answered(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    assert machine.view_results() is False
    for _ in range(3):
        answer_current(machine)
        machine.next()
    assert machine.all_answered
    assert machine.view_results()
    assert machine.state is State.TEST_SUBMITTED
    assert scheduler.live == []


def test_submitted_attempt_ignores_input(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    for _ in range(3):
        answer_current(machine)
        scheduler.fire_all()
    assert machine.next() is False
    assert machine.select_answer("en1") is None


def test_score_rounds_percentage():
    assert TestScore(correct=2, answered=3, total=3).percentage == 67
    assert TestScore(correct=0, answered=0, total=0).percentage == 0
    assert TestScore(correct=1, answered=2, total=5).percentage == 50


def test_retake_starts_fresh_attempt(store, scheduler):
    machine = make_machine(store, scheduler, count=6, mode=Mode.TEST)
    for _ in range(6):
        answer_current(machine)
        scheduler.fire_all()
    assert machine.state is State.TEST_SUBMITTED

    assert machine.retake()
    assert machine.state is State.TEST_QUESTION
    assert machine.position == 0
    assert machine.test_score() == TestScore(correct=0, answered=0, total=6)
    # stored counters keep every answer of the first attempt
    assert sum(row.correct_count for row in store.rows.values()) == 6


def test_retake_drops_pending_advance(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    answer_current(machine)
    handle = scheduler.handles[0]
    machine.retake()
    handle.callback()
    assert machine.position == 0
    assert machine.state is State.TEST_QUESTION


def test_mode_switch_cancels_timer_and_resumes_attempt(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    order = [w.id for w in machine.words]
    answer_current(machine)
    assert machine.switch_mode(Mode.LEARN)
    assert scheduler.live == []
    assert machine.state is State.LEARN

    machine.switch_mode(Mode.TEST)
    assert machine.state is State.TEST_QUESTION
    assert [w.id for w in machine.words] == order
    assert machine.test_score().answered == 1


def test_reentering_after_submission_starts_new_attempt(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    for _ in range(3):
        answer_current(machine)
        scheduler.fire_all()
    machine.switch_mode(Mode.LEARN)
    machine.switch_mode(Mode.TEST)
    assert machine.state is State.TEST_QUESTION
    assert machine.test_score().answered == 0


def test_same_mode_switch_is_noop(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    answer_current(machine)
    assert machine.switch_mode(Mode.TEST) is False
    assert machine.auto_advance_pending


def test_wait_for_advance(store, scheduler):
    machine = make_machine(store, scheduler, mode=Mode.TEST)
    assert machine.wait_for_advance(timeout=0)
    answer_current(machine)
    assert machine.wait_for_advance(timeout=0) is False
    scheduler.fire_all()
    assert machine.wait_for_advance(timeout=0)


def test_empty_lesson(store, scheduler):
    machine = PracticeStateMachine("u1", [], store, scheduler=scheduler, mode=Mode.TEST)
    assert machine.current_question is None
    assert machine.select_answer("x") is None
    assert not machine.all_answered
    machine.switch_mode(Mode.PRACTICE)
    assert machine.answer_practice(True) is False


# -- persistence failures and side effects ---------------------------------------


def test_failed_write_keeps_local_state(scheduler, caplog):
    store = FailingStore()
    caplog.set_level(logging.ERROR, logger="vocab_tutor")
    machine = make_machine(store, scheduler, mode=Mode.PRACTICE)
    machine.answer_practice(True)
    assert machine.practice_outcome(1) is True
    assert machine.progress_for(1).correct_count == 1
    assert machine.current_word.id == 2
    assert "Failed to update progress" in caplog.text


def test_failed_write_in_test_still_advances(scheduler):
    machine = make_machine(FailingStore(), scheduler, mode=Mode.TEST)
    assert answer_current(machine) is True
    scheduler.fire_all()
    assert machine.position == 1


def test_audio_stopped_on_navigation_and_switch(store, scheduler):
    audio = FakeAudio()
    machine = make_machine(store, scheduler, audio=audio)
    machine.next()
    assert audio.stops == 1
    machine.switch_mode(Mode.PRACTICE)
    assert audio.stops == 2


def test_close_releases_timer(store, scheduler):
    audio = FakeAudio()
    machine = make_machine(store, scheduler, mode=Mode.TEST, audio=audio)
    answer_current(machine)
    machine.close()
    assert scheduler.live == []
    assert audio.stops >= 1
    assert machine.next() is False
    assert machine.switch_mode(Mode.LEARN) is False
    machine.close()


def test_context_manager_closes(store, scheduler):
    with make_machine(store, scheduler, mode=Mode.TEST) as machine:
        answer_current(machine)
    assert scheduler.live == []
    assert machine.select_answer("en1") is None

from __future__ import annotations

import dataclasses

import pytest

from denteval.rubric import (
    PENALTY_INVALID_SUBMISSION,
    PENALTY_NO_STEP_PREPARATION,
    PENALTY_NONE,
    critical_criterion,
    get_criteria,
    get_criterion,
    max_total,
    render_rubric_instructions,
    scored_criteria,
)


def test_criteria_are_ordered_by_unique_ids() -> None:
    ids = [criterion.id for criterion in get_criteria()]

    assert ids == list(range(1, 11))


@pytest.mark.parametrize("criterion", scored_criteria(), ids=lambda c: str(c.id))
def test_scoring_options_never_exceed_max_points(criterion) -> None:
    assert criterion.scoring_options
    assert all(points <= criterion.max_points for points in criterion.scoring_options)
    assert criterion.max_points in criterion.scoring_options
    assert 0 in criterion.scoring_options


def test_critical_criterion_uses_penalty_codes() -> None:
    critical = critical_criterion()

    assert critical.id == 10
    assert critical.max_points == 0
    assert set(critical.scoring_options) == {PENALTY_NONE, PENALTY_NO_STEP_PREPARATION, PENALTY_INVALID_SUBMISSION}


def test_max_total_is_one_hundred() -> None:
    assert max_total() == 100


def test_get_criteria_is_deterministic_and_read_only() -> None:
    first = get_criteria()
    second = get_criteria()

    assert first == second
    with pytest.raises(dataclasses.FrozenInstanceError):
        first[0].max_points = 50  # type: ignore[misc]
    with pytest.raises(TypeError):
        first[0].scoring_options[12] = "changed"  # type: ignore[index]


def test_get_criterion_unknown_id_raises() -> None:
    assert get_criterion(7).name == "Aksiyal Duvar Hizası"
    with pytest.raises(KeyError):
        get_criterion(11)


def test_rendered_instructions_follow_the_catalog() -> None:
    text = render_rubric_instructions()

    for criterion in get_criteria():
        assert f'[name: "{criterion.name}"]' in text
        for label in criterion.scoring_options.values():
            assert label in text
    assert "(Max 12)" in text
    assert "(-100)" in text

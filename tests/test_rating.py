"""Tests for the rating rules and id allocation."""

import re

import pytest

from toiletmap.core.model import ToiletRecord
from toiletmap.core.rating import (
    VoteState,
    allocate_next_id,
    apply_vote,
    compute_rating,
    utc_now,
)

NOW = "2024-06-01T08:00:00.000Z"


def make_record(likes=0, dislikes=0, rating=0.0) -> ToiletRecord:
    return ToiletRecord(
        id="1",
        name="Test",
        address="Somewhere 1",
        latitude=1.0,
        longitude=2.0,
        is_free=True,
        rating=rating,
        likes=likes,
        dislikes=dislikes,
        images=["https://example.test/a.jpg"],
        created_at="2024-01-01T00:00:00.000Z",
        updated_at="2024-01-01T00:00:00.000Z",
    )


@pytest.mark.parametrize(
    "likes, dislikes, expected",
    [
        (3, 1, 4.0),
        (0, 0, 0.0),
        (1, 0, 5.0),
        (0, 1, 1.0),
        (1, 2, 2.3),
        (2, 1, 3.7),
        (1, 1, 3.0),
    ],
)
def test_compute_rating(likes, dislikes, expected):
    """Test the weighted average and its rounding."""
    assert compute_rating(likes, dislikes) == expected


def test_first_like():
    """Test a first vote from a fresh record."""
    updated = apply_vote(make_record(), "like", None, now=NOW)

    assert updated.likes == 1
    assert updated.dislikes == 0
    assert updated.total_ratings == 1
    assert updated.rating == 5.0
    assert updated.updated_at == NOW


def test_first_dislike():
    """Test a first dislike."""
    updated = apply_vote(make_record(likes=1, rating=5.0), "dislike", None, now=NOW)

    assert updated.likes == 1
    assert updated.dislikes == 1
    assert updated.total_ratings == 2
    assert updated.rating == 3.0


def test_switch_like_to_dislike():
    """Test that a switch moves one unit and keeps the vote total."""
    record = make_record(likes=1, rating=5.0)
    updated = apply_vote(record, "dislike", "like", now=NOW)

    assert updated.likes == 0
    assert updated.dislikes == 1
    assert updated.total_ratings == 1
    assert updated.rating == 1.0


def test_switch_floors_at_zero():
    """Test that the previous counter never goes negative."""
    updated = apply_vote(make_record(), "like", "dislike", now=NOW)

    assert updated.dislikes == 0
    assert updated.likes == 1


def test_repeat_vote_is_noop():
    """Test that voting the same way again changes nothing."""
    record = make_record(likes=1, rating=5.0)
    updated = apply_vote(record, "like", "like", now=NOW)

    assert updated is record
    assert updated.likes == 1
    assert updated.updated_at == "2024-01-01T00:00:00.000Z"


def test_apply_vote_does_not_mutate_input():
    """Test that the input record is left alone."""
    record = make_record()
    updated = apply_vote(record, "like", None, now=NOW)

    assert record.likes == 0
    assert record.updated_at != NOW
    assert updated.images == record.images
    assert updated.images is not record.images


def test_apply_vote_rejects_unknown_vote():
    """Test invalid vote kinds."""
    with pytest.raises(ValueError):
        apply_vote(make_record(), "love", None)  # type: ignore[arg-type]


def test_apply_vote_default_timestamp():
    """Test that updatedAt defaults to the current time."""
    updated = apply_vote(make_record(), "like")
    assert updated.updated_at != "2024-01-01T00:00:00.000Z"


@pytest.mark.parametrize(
    "existing, expected",
    [
        ({1, 2, 3}, 4),
        ({1, 3}, 2),
        (set(), 1),
        ({2, 3}, 1),
        ({1, 2, 4, 5}, 3),
        ({0, -4, 1}, 2),
        ([1, 1, 2], 3),
    ],
)
def test_allocate_next_id(existing, expected):
    """Test gap-filling id allocation."""
    assert allocate_next_id(existing) == expected


def test_utc_now_format():
    """Test the timestamp format matches the browser's toISOString()."""
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", utc_now())


def test_vote_state():
    """Test per-session vote memory."""
    votes = VoteState()
    assert votes.prior("1") is None

    votes.record("1", "like")
    assert votes.prior("1") == "like"
    assert "1" in votes
    assert len(votes) == 1

    votes.record("1", "dislike")
    assert votes.prior("1") == "dislike"

    votes.forget("1")
    assert votes.prior("1") is None
    votes.forget("1")

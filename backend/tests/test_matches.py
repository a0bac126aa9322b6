import asyncio
import dataclasses

import pytest

from conftest import add_player, identity_of
from padelclub.exceptions import (
    ConflictError,
    DataIntegrityError,
    MatchNotFound,
    MustJoinFirst,
    NotAnOpponent,
    PlayerNotFound,
    ValidationError,
)
from padelclub.fields import MATCHES, PAIRS, PLAYERS, SET_SCORES
from padelclub.models import Match, MatchStatus, Pair, Player, SetScore
from padelclub.services.identity import TelegramIdentity
from padelclub.services.matches import (
    confirm_match,
    dispute_match,
    reject_match,
    report_match,
)
from padelclub.store import InMemoryStore, Record

THREE_SETS = [{"p1": 6, "p2": 4}, {"p1": 4, "p2": 6}, {"p1": 7, "p2": 5}]


class YieldingStore(InMemoryStore):
    """In-memory store that gives up the event loop on every read."""

    async def get(self, table, record_id):
        await asyncio.sleep(0)
        return await super().get(table, record_id)

    async def list(self, table, **kwargs):
        await asyncio.sleep(0)
        return await super().list(table, **kwargs)


async def _players(store):
    p1 = await add_player(store, "P1", 101)
    p2 = await add_player(store, "P2", 102)
    o1 = await add_player(store, "O1", 201)
    o2 = await add_player(store, "O2", 202)
    return p1, p2, o1, o2


async def _report(store, settings, players, sets=THREE_SETS, **kwargs):
    p1, p2, o1, o2 = players
    return await report_match(
        store, identity_of(p1), p2.id, o1.id, o2.id, sets, settings=settings, **kwargs
    )


async def _player(store, player_id) -> Player:
    return Player.from_record(await store.get(PLAYERS, player_id))


async def _match(store, match_id) -> Match:
    return Match.from_record(await store.get(MATCHES, match_id))


# -----------------------------------------------------------------------------
# Report
# -----------------------------------------------------------------------------


@pytest.mark.anyio
async def test_report_creates_pending_match_with_sets_and_pairs(memory_store, settings):
    players = await _players(memory_store)

    result = await _report(memory_store, settings, players, date="2024-05-01", time="18:30")

    assert result.status is MatchStatus.PENDING_CONFIRMATION
    assert result.score == "6-4 4-6 7-5"
    assert result.winner == "pair1"
    assert len(result.pairs_created) == 2

    match = await _match(memory_store, result.match_id)
    assert match.status is MatchStatus.PENDING_CONFIRMATION
    assert match.initiated_by == players[0].id
    assert match.pair1 == result.pair1_id
    assert match.pair2 == result.pair2_id
    assert match.date == "2024-05-01"
    assert match.time == "18:30"

    set_scores = sorted(
        (SetScore.from_record(r) for r in await memory_store.list(SET_SCORES)),
        key=lambda s: s.set_no,
    )
    assert [(s.set_no, s.p1, s.p2) for s in set_scores] == [(1, 6, 4), (2, 4, 6), (3, 7, 5)]
    assert [s.winner_pair for s in set_scores] == [
        result.pair1_id,
        result.pair2_id,
        result.pair1_id,
    ]
    assert all(s.match == result.match_id for s in set_scores)

    for record in await memory_store.list(PAIRS):
        assert Pair.from_record(record).rating == 1000

    # Reporting alone never touches ratings.
    for player in players:
        assert (await _player(memory_store, player.id)).rating == 1000


@pytest.mark.anyio
async def test_report_defaults_date_to_today(memory_store, settings, monkeypatch):
    import datetime as dt

    from padelclub import time_utils

    monkeypatch.setattr(time_utils, "utc_today", lambda: dt.date(2024, 2, 29))
    players = await _players(memory_store)

    result = await _report(memory_store, settings, players)

    match = await _match(memory_store, result.match_id)
    assert match.date == "2024-02-29"
    assert match.time == ""


@pytest.mark.anyio
async def test_report_reuses_existing_pairs(memory_store, settings):
    players = await _players(memory_store)

    first = await _report(memory_store, settings, players)
    second = await _report(memory_store, settings, players)

    assert second.pairs_created == []
    assert (second.pair1_id, second.pair2_id) == (first.pair1_id, first.pair2_id)
    assert len(await memory_store.list(PAIRS)) == 2


@pytest.mark.anyio
async def test_split_sets_without_third_fail(memory_store, settings):
    players = await _players(memory_store)

    with pytest.raises(ValidationError) as exc:
        await _report(memory_store, settings, players, sets=[{"p1": 6, "p2": 0}, {"p1": 0, "p2": 6}])

    assert exc.value.code == "third_set_required"
    assert await memory_store.list(MATCHES) == []


@pytest.mark.anyio
async def test_decided_match_rejects_third_set(memory_store, settings):
    players = await _players(memory_store)
    sets = [{"p1": 6, "p2": 0}, {"p1": 6, "p2": 1}, {"p1": 6, "p2": 2}]

    with pytest.raises(ValidationError) as exc:
        await _report(memory_store, settings, players, sets=sets)

    assert exc.value.code == "match_already_decided"


@pytest.mark.anyio
async def test_report_requires_joined_reporter(memory_store, settings):
    p1, p2, o1, o2 = await _players(memory_store)
    stranger = TelegramIdentity(user_id=999, first_name="Nobody")

    with pytest.raises(MustJoinFirst):
        await report_match(
            memory_store, stranger, p2.id, o1.id, o2.id, THREE_SETS, settings=settings
        )


@pytest.mark.anyio
async def test_report_unknown_player(memory_store, settings):
    p1, p2, o1, _ = await _players(memory_store)

    with pytest.raises(PlayerNotFound):
        await report_match(
            memory_store, identity_of(p1), p2.id, o1.id, "recNope", THREE_SETS, settings=settings
        )
    assert await memory_store.list(PAIRS) == []


@pytest.mark.anyio
async def test_report_rejects_overlapping_sides(memory_store, settings):
    p1, p2, o1, _ = await _players(memory_store)

    with pytest.raises(ValidationError) as exc:
        await report_match(
            memory_store, identity_of(p1), p2.id, o1.id, p2.id, THREE_SETS, settings=settings
        )
    assert exc.value.code == "shared_player_across_sides"


@pytest.mark.anyio
async def test_report_rejects_bad_time(memory_store, settings):
    players = await _players(memory_store)

    with pytest.raises(ValidationError) as exc:
        await _report(memory_store, settings, players, time="25:00")
    assert exc.value.code == "invalid_time"


# -----------------------------------------------------------------------------
# Confirm
# -----------------------------------------------------------------------------


@pytest.mark.anyio
async def test_confirm_applies_ratings_once(memory_store, settings):
    players = await _players(memory_store)
    p1, p2, o1, o2 = players
    reported = await _report(memory_store, settings, players)

    result = await confirm_match(memory_store, identity_of(o1), reported.match_id, settings=settings)

    assert result.status is MatchStatus.CONFIRMED
    assert result.confirmed_by == [o1.id]
    assert result.rating_delta_pair == 16
    assert result.rating_delta_player == 16

    for player in (p1, p2):
        stored = await _player(memory_store, player.id)
        assert (stored.rating, stored.games_played, stored.wins, stored.losses) == (1016, 1, 1, 0)
    for player in (o1, o2):
        stored = await _player(memory_store, player.id)
        assert (stored.rating, stored.games_played, stored.wins, stored.losses) == (984, 1, 0, 1)

    pair1 = Pair.from_record(await memory_store.get(PAIRS, reported.pair1_id))
    pair2 = Pair.from_record(await memory_store.get(PAIRS, reported.pair2_id))
    assert (pair1.rating, pair1.wins, pair1.losses) == (1016, 1, 0)
    assert (pair2.rating, pair2.wins, pair2.losses) == (984, 0, 1)

    again = await confirm_match(memory_store, identity_of(o2), reported.match_id, settings=settings)

    assert again.status is MatchStatus.CONFIRMED
    assert again.rating_delta_pair is None
    assert (await _player(memory_store, p1.id)).rating == 1016
    assert (await _player(memory_store, p1.id)).games_played == 1


@pytest.mark.anyio
async def test_loss_for_reporting_side(memory_store, settings):
    players = await _players(memory_store)
    p1, _, o1, _ = players
    sets = [{"p1": 3, "p2": 6}, {"p1": 6, "p2": 7}]
    reported = await _report(memory_store, settings, players, sets=sets)

    result = await confirm_match(memory_store, identity_of(o1), reported.match_id, settings=settings)

    assert result.rating_delta_pair == -16
    assert (await _player(memory_store, p1.id)).rating == 984
    assert (await _player(memory_store, o1.id)).rating == 1016


@pytest.mark.anyio
async def test_concurrent_confirms_apply_ratings_once(settings):
    store = YieldingStore()
    players = await _players(store)
    p1, _, o1, o2 = players
    reported = await _report(store, settings, players)

    results = await asyncio.gather(
        confirm_match(store, identity_of(o1), reported.match_id, settings=settings),
        confirm_match(store, identity_of(o2), reported.match_id, settings=settings),
    )

    assert all(r.status is MatchStatus.CONFIRMED for r in results)
    assert [r.rating_delta_pair for r in results].count(16) == 1
    stored = await _player(store, p1.id)
    assert (stored.rating, stored.games_played) == (1016, 1)


@pytest.mark.anyio
async def test_both_policy_waits_for_second_opponent(memory_store, settings):
    both = dataclasses.replace(settings, confirmation_policy="both")
    players = await _players(memory_store)
    p1, _, o1, o2 = players
    reported = await _report(memory_store, both, players)

    first = await confirm_match(memory_store, identity_of(o1), reported.match_id, settings=both)

    assert first.status is MatchStatus.PENDING_CONFIRMATION
    assert first.confirmed_by == [o1.id]
    assert (await _player(memory_store, p1.id)).rating == 1000

    repeat = await confirm_match(memory_store, identity_of(o1), reported.match_id, settings=both)
    assert repeat.status is MatchStatus.PENDING_CONFIRMATION
    assert repeat.confirmed_by == [o1.id]

    second = await confirm_match(memory_store, identity_of(o2), reported.match_id, settings=both)

    assert second.status is MatchStatus.CONFIRMED
    assert second.confirmed_by == [o1.id, o2.id]
    assert (await _player(memory_store, p1.id)).rating == 1016


@pytest.mark.anyio
async def test_outsider_cannot_confirm(memory_store, settings):
    players = await _players(memory_store)
    reported = await _report(memory_store, settings, players)
    outsider = await add_player(memory_store, "X", 303)

    with pytest.raises(NotAnOpponent) as exc:
        await confirm_match(memory_store, identity_of(outsider), reported.match_id, settings=settings)

    assert exc.value.status_code == 403
    assert (await _match(memory_store, reported.match_id)).status is MatchStatus.PENDING_CONFIRMATION


@pytest.mark.anyio
async def test_reporter_side_cannot_confirm(memory_store, settings):
    players = await _players(memory_store)
    reported = await _report(memory_store, settings, players)

    with pytest.raises(NotAnOpponent):
        await confirm_match(memory_store, identity_of(players[1]), reported.match_id, settings=settings)


@pytest.mark.anyio
async def test_confirm_unknown_match(memory_store, settings):
    p1, *_ = await _players(memory_store)

    with pytest.raises(MatchNotFound):
        await confirm_match(memory_store, identity_of(p1), "recMissing", settings=settings)

    with pytest.raises(ValidationError):
        await confirm_match(memory_store, identity_of(p1), "", settings=settings)


@pytest.mark.anyio
async def test_confirm_after_reject_conflicts(memory_store, settings):
    players = await _players(memory_store)
    _, _, o1, o2 = players
    reported = await _report(memory_store, settings, players)
    await reject_match(memory_store, identity_of(o1), reported.match_id, "wrong score")

    with pytest.raises(ConflictError) as exc:
        await confirm_match(memory_store, identity_of(o2), reported.match_id, settings=settings)

    assert exc.value.code == "match_already_terminal_opposite_outcome"
    assert exc.value.status_code == 409


@pytest.mark.anyio
async def test_incomplete_match_data_keeps_ratings(memory_store, settings):
    players = await _players(memory_store)
    p1, _, o1, _ = players
    reported = await _report(memory_store, settings, players)
    # Drop every stored set score so the confirmed match cannot be rated.
    memory_store._tables[SET_SCORES].clear()

    with pytest.raises(DataIntegrityError) as exc:
        await confirm_match(memory_store, identity_of(o1), reported.match_id, settings=settings)

    assert exc.value.code == "incomplete_match_data"
    assert (await _match(memory_store, reported.match_id)).status is MatchStatus.CONFIRMED
    assert (await _player(memory_store, p1.id)).rating == 1000


@pytest.mark.anyio
async def test_opponent_roles_follow_reporter(memory_store, settings):
    """A match stored with the reporter in pair 2 is confirmed by pair 1."""

    players = await _players(memory_store)
    p1, p2, o1, o2 = players
    reported = await _report(memory_store, settings, players)
    await memory_store.update(
        MATCHES,
        [
            Record(
                id=reported.match_id,
                fields={"pair1": [reported.pair2_id], "pair2": [reported.pair1_id]},
            )
        ],
    )

    with pytest.raises(NotAnOpponent):
        await confirm_match(memory_store, identity_of(p2), reported.match_id, settings=settings)

    result = await confirm_match(memory_store, identity_of(o1), reported.match_id, settings=settings)
    assert result.status is MatchStatus.CONFIRMED
    # Set winners are stored per pair, so the reporting side still wins.
    assert (await _player(memory_store, p1.id)).rating == 1016
    assert (await _player(memory_store, o2.id)).rating == 984


# -----------------------------------------------------------------------------
# Reject / dispute
# -----------------------------------------------------------------------------


@pytest.mark.anyio
async def test_reject_records_reason_without_rating_change(memory_store, settings):
    players = await _players(memory_store)
    p1, _, o1, _ = players
    reported = await _report(memory_store, settings, players)

    result = await reject_match(memory_store, identity_of(o1), reported.match_id, "  never played  ")

    assert result.status is MatchStatus.REJECTED
    match = await _match(memory_store, reported.match_id)
    assert match.status is MatchStatus.REJECTED
    assert match.dispute_reason == "never played"
    assert (await _player(memory_store, p1.id)).rating == 1000

    again = await reject_match(memory_store, identity_of(o1), reported.match_id)
    assert again.status is MatchStatus.REJECTED


@pytest.mark.anyio
async def test_dispute_then_reject_conflicts(memory_store, settings):
    players = await _players(memory_store)
    _, _, o1, o2 = players
    reported = await _report(memory_store, settings, players)

    result = await dispute_match(memory_store, identity_of(o2), reported.match_id, "7-5 not 7-6")
    assert result.status is MatchStatus.DISPUTED

    with pytest.raises(ConflictError):
        await reject_match(memory_store, identity_of(o1), reported.match_id)


@pytest.mark.anyio
async def test_confirmed_match_cannot_be_disputed(memory_store, settings):
    players = await _players(memory_store)
    _, _, o1, o2 = players
    reported = await _report(memory_store, settings, players)
    await confirm_match(memory_store, identity_of(o1), reported.match_id, settings=settings)

    with pytest.raises(ConflictError) as exc:
        await dispute_match(memory_store, identity_of(o2), reported.match_id, "oops")
    assert exc.value.code == "match_already_confirmed"


@pytest.mark.anyio
async def test_only_opponents_reject(memory_store, settings):
    players = await _players(memory_store)
    reported = await _report(memory_store, settings, players)

    with pytest.raises(NotAnOpponent):
        await reject_match(memory_store, identity_of(players[0]), reported.match_id)
    assert (await _match(memory_store, reported.match_id)).status is MatchStatus.PENDING_CONFIRMATION


@pytest.mark.anyio
async def test_outsider_cannot_close_already_closed_match(memory_store, settings):
    players = await _players(memory_store)
    outsider = await add_player(memory_store, "X", 303)
    rejected = await _report(memory_store, settings, players)
    disputed = await _report(memory_store, settings, players)
    await reject_match(memory_store, identity_of(players[2]), rejected.match_id, "no")
    await dispute_match(memory_store, identity_of(players[3]), disputed.match_id, "score")

    with pytest.raises(NotAnOpponent):
        await reject_match(memory_store, identity_of(outsider), rejected.match_id)
    with pytest.raises(NotAnOpponent):
        await dispute_match(memory_store, identity_of(outsider), disputed.match_id)
    with pytest.raises(NotAnOpponent):
        await reject_match(memory_store, identity_of(players[1]), rejected.match_id)

    assert (await _match(memory_store, rejected.match_id)).dispute_reason == "no"
    assert (await _match(memory_store, disputed.match_id)).dispute_reason == "score"

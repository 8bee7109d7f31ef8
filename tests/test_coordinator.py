from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from partyskip.core import VoteCoordinator
from partyskip.core.errors import AlreadyVoted, InvalidInput, NoActiveTrack, UpstreamTransient
from tests.conftest import PARTY_ID, make_snapshot


def poll(coordinator, playback, track_id, **kwargs):
    playback.snapshot = make_snapshot(track_id, **kwargs)
    return coordinator.poll_once()


def downvote(coordinator, count, start=0):
    return [coordinator.cast_vote(f"device-{i}", "down") for i in range(start, start + count)]


class TestTransitions:
    """Poll-driven projection and archival"""

    def test_first_poll_projects_track_without_history(self, coordinator, playback, store):
        song = poll(coordinator, playback, "track-a")

        assert song["spotify_track_id"] == "track-a"
        assert song["track_name"] == "Song A"
        assert (song["upvotes"], song["downvotes"]) == (0, 0)
        assert store.list_history(PARTY_ID) == []

    def test_same_track_is_a_no_op(self, coordinator, playback):
        poll(coordinator, playback, "track-a")
        coordinator.cast_vote("device-1", "up")

        assert poll(coordinator, playback, "track-a") is None
        assert coordinator.current_song()["upvotes"] == 1

    def test_nothing_playing_is_not_a_transition(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        playback.snapshot = None

        assert coordinator.poll_once() is None
        assert coordinator.detector.last_track_id == "track-a"
        assert coordinator.current_song()["spotify_track_id"] == "track-a"
        assert store.list_history(PARTY_ID) == []

    def test_natural_transition_archives_previous_track(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        poll(coordinator, playback, "track-b")

        history = store.list_history(PARTY_ID)
        assert len(history) == 1
        assert history[0]["spotify_track_id"] == "track-a"
        assert history[0]["downvotes"] == 0
        assert history[0]["skipped"] is False

        current = coordinator.current_song()
        assert current["spotify_track_id"] == "track-b"
        assert (current["upvotes"], current["downvotes"]) == (0, 0)

    def test_natural_transition_keeps_final_tallies_and_clears_votes(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 3)
        coordinator.cast_vote("device-up", "up")

        poll(coordinator, playback, "track-b")

        history = store.list_history(PARTY_ID)
        assert history[0]["downvotes"] == 3
        assert history[0]["skipped"] is False
        assert store.count_votes(PARTY_ID, "track-a") == 0

    def test_device_can_vote_again_on_next_track(self, coordinator, playback):
        poll(coordinator, playback, "track-a")
        coordinator.cast_vote("device-1", "down")
        poll(coordinator, playback, "track-b")

        result = coordinator.cast_vote("device-1", "down")
        assert result.downvotes == 1

    def test_store_failure_rewinds_detector_so_next_poll_retries(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")

        failure = OperationalError("UPDATE current_song", {}, Exception("database is locked"))
        with patch.object(store, "project_track", side_effect=failure):
            with pytest.raises(UpstreamTransient):
                poll(coordinator, playback, "track-b")
        assert coordinator.detector.last_track_id == "track-a"

        poll(coordinator, playback, "track-b")
        assert coordinator.current_song()["spotify_track_id"] == "track-b"
        assert len(store.list_history(PARTY_ID)) == 1

    def test_poll_failure_propagates_as_transient(self, coordinator, playback):
        playback.fail_poll = True
        with pytest.raises(UpstreamTransient):
            coordinator.poll_once()


class TestRestart:
    """A new process picks up the stored projection"""

    def test_same_track_after_restart_keeps_votes(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 2)

        restarted = VoteCoordinator(PARTY_ID, store, playback, downvote_threshold=5)
        assert poll(restarted, playback, "track-a")["downvotes"] == 2

        with pytest.raises(AlreadyVoted):
            restarted.cast_vote("device-0", "down")

    def test_different_track_after_restart_replaces_stale_row(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 2)

        restarted = VoteCoordinator(PARTY_ID, store, playback, downvote_threshold=5)
        song = poll(restarted, playback, "track-b")

        assert song["spotify_track_id"] == "track-b"
        assert store.list_history(PARTY_ID) == []
        assert store.count_votes(PARTY_ID, "track-a") == 0


class TestVoting:
    """Vote ledger rules"""

    def test_vote_without_active_track(self, coordinator):
        with pytest.raises(NoActiveTrack):
            coordinator.cast_vote("device-1", "down")

    @pytest.mark.parametrize("device_id, direction", [
        (None, "down"),
        ("", "up"),
        ("device-1", "sideways"),
        ("device-1", None),
        ("device-1", "DOWN"),
        (42, "up"),
    ])
    def test_invalid_votes_are_rejected_without_mutation(self, coordinator, playback, store, device_id, direction):
        poll(coordinator, playback, "track-a")

        with pytest.raises(InvalidInput):
            coordinator.cast_vote(device_id, direction)

        current = coordinator.current_song()
        assert (current["upvotes"], current["downvotes"]) == (0, 0)
        assert store.count_votes(PARTY_ID, "track-a") == 0

    def test_missing_party_is_invalid(self, store, playback):
        coordinator = VoteCoordinator("", store, playback)
        with pytest.raises(InvalidInput):
            coordinator.cast_vote("device-1", "up")

    def test_up_then_down_from_same_device_conflicts(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")

        coordinator.cast_vote("device-1", "up")
        with pytest.raises(AlreadyVoted):
            coordinator.cast_vote("device-1", "down")

        current = coordinator.current_song()
        assert (current["upvotes"], current["downvotes"]) == (1, 0)
        assert store.count_votes(PARTY_ID, "track-a") == 1

    def test_vote_result_counts_down_to_skip(self, coordinator, playback):
        poll(coordinator, playback, "track-a")

        result = coordinator.cast_vote("device-1", "down")
        assert result.to_dict() == {
            "upvotes": 0,
            "downvotes": 1,
            "remaining_to_skip": 4,
            "skipped": False,
        }

    def test_upvotes_never_trigger_a_skip(self, coordinator, playback):
        poll(coordinator, playback, "track-a")

        for i in range(10):
            result = coordinator.cast_vote(f"device-{i}", "up")

        assert result.upvotes == 10
        assert result.skipped is False
        assert playback.skip_calls == 0


class TestSkipping:
    """Threshold-driven skips"""

    def test_fifth_downvote_skips(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")

        results = downvote(coordinator, 4)
        assert results[-1].to_dict() == {"upvotes": 0, "downvotes": 4, "remaining_to_skip": 1, "skipped": False}

        fifth = coordinator.cast_vote("device-4", "down")
        assert fifth.to_dict() == {"upvotes": 0, "downvotes": 5, "remaining_to_skip": 0, "skipped": True}

        assert playback.skip_calls == 1
        assert store.count_votes(PARTY_ID, "track-a") == 0

        history = store.list_history(PARTY_ID)
        assert len(history) == 1
        assert history[0]["skipped"] is True
        assert history[0]["downvotes"] == 5

        current = coordinator.current_song()
        assert current["spotify_track_id"] == "track-a"
        assert (current["upvotes"], current["downvotes"]) == (0, 0)

    def test_threshold_is_configurable(self, store, playback):
        coordinator = VoteCoordinator(PARTY_ID, store, playback, downvote_threshold=2)
        poll(coordinator, playback, "track-a")

        coordinator.cast_vote("device-1", "down")
        result = coordinator.cast_vote("device-2", "down")

        assert result.skipped is True
        assert playback.skip_calls == 1

    def test_threshold_must_be_positive(self, store, playback):
        with pytest.raises(ValueError):
            VoteCoordinator(PARTY_ID, store, playback, downvote_threshold=0)

    def test_fresh_vote_after_skip_reset_succeeds(self, coordinator, playback):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 5)

        result = coordinator.cast_vote("device-new", "down")
        assert result.downvotes == 1

        # Earlier voters were cleared with the ledger too
        assert coordinator.cast_vote("device-0", "down").downvotes == 2

    def test_failed_skip_command_still_archives_and_resets(self, coordinator, playback, store):
        playback.fail_skip = True
        poll(coordinator, playback, "track-a")

        result = downvote(coordinator, 5)[-1]

        assert result.skipped is True
        assert playback.skip_calls == 1
        assert len(store.list_history(PARTY_ID)) == 1
        assert store.count_votes(PARTY_ID, "track-a") == 0
        assert coordinator.current_song()["downvotes"] == 0

    def test_skip_then_natural_transition_archives_once(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 5)

        poll(coordinator, playback, "track-b")

        history = store.list_history(PARTY_ID)
        assert len(history) == 1
        assert history[0]["spotify_track_id"] == "track-a"
        assert history[0]["skipped"] is True
        assert coordinator.current_song()["spotify_track_id"] == "track-b"

    def test_second_skip_of_same_play_is_ignored(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 4)
        song = coordinator.current_song()
        song["downvotes"] = 5

        assert coordinator.skip_track(song) is True
        assert coordinator.skip_track(song) is False
        assert playback.skip_calls == 1
        assert len(store.list_history(PARTY_ID)) == 1

    def test_natural_path_losing_the_race_writes_nothing(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 4)
        stale = coordinator.current_song()

        coordinator.cast_vote("device-4", "down")

        assert coordinator.end_track(stale, skipped=False) is False
        history = store.list_history(PARTY_ID)
        assert len(history) == 1
        assert history[0]["skipped"] is True

    def test_repeated_skip_after_failed_command_is_archived_again(self, coordinator, playback, store):
        playback.fail_skip = True
        poll(coordinator, playback, "track-a")

        downvote(coordinator, 5)
        downvote(coordinator, 5, start=10)

        assert playback.skip_calls == 2
        assert [entry["skipped"] for entry in store.list_history(PARTY_ID)] == [True, True]

    @pytest.mark.parametrize("error", [TimeoutError("read timed out"), RuntimeError("no device")])
    def test_unexpected_skip_error_still_archives_and_resets(self, coordinator, playback, store, error):
        playback.skip_error = error
        poll(coordinator, playback, "track-a")

        result = downvote(coordinator, 5)[-1]

        assert result.skipped is True
        history = store.list_history(PARTY_ID)
        assert [(entry["skipped"], entry["downvotes"]) for entry in history] == [(True, 5)]
        assert store.count_votes(PARTY_ID, "track-a") == 0
        assert coordinator.current_song()["downvotes"] == 0
        assert coordinator.cast_vote("device-0", "down").downvotes == 1

    def test_rejected_skip_still_archives_and_resets(self, coordinator, playback, store):
        playback.skip_result = False
        poll(coordinator, playback, "track-a")

        result = downvote(coordinator, 5)[-1]

        assert result.skipped is True
        assert playback.skip_calls == 1
        assert len(store.list_history(PARTY_ID)) == 1
        assert store.count_votes(PARTY_ID, "track-a") == 0


class TestNaturalEndRaces:
    """The poll ends a play while votes are still arriving"""

    def test_threshold_vote_after_natural_end_does_not_skip(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 4)
        outcomes = []
        project_track = store.project_track

        def vote_then_project(party_id, snapshot):
            try:
                outcomes.append(coordinator.cast_vote("device-4", "down"))
            except NoActiveTrack as e:
                outcomes.append(e)
            return project_track(party_id, snapshot)

        with patch.object(store, "project_track", side_effect=vote_then_project):
            poll(coordinator, playback, "track-b")

        assert isinstance(outcomes[0], NoActiveTrack)
        assert playback.skip_calls == 0
        history = store.list_history(PARTY_ID)
        assert [(entry["spotify_track_id"], entry["skipped"], entry["downvotes"]) for entry in history] == [
            ("track-a", False, 4)
        ]
        current = coordinator.current_song()
        assert current["spotify_track_id"] == "track-b"
        assert (current["upvotes"], current["downvotes"]) == (0, 0)
        assert coordinator.cast_vote("device-4", "down").downvotes == 1

    def test_skip_losing_to_natural_end_sends_nothing(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 4)
        stale = coordinator.current_song()
        stale["downvotes"] = 5

        poll(coordinator, playback, "track-b")

        assert coordinator.skip_track(stale) is False
        assert playback.skip_calls == 0
        history = store.list_history(PARTY_ID)
        assert len(history) == 1
        assert history[0]["skipped"] is False
        assert coordinator.current_song()["spotify_track_id"] == "track-b"

    def test_natural_end_is_claimed_once(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        play_id = coordinator.current_song()["play_id"]

        assert store.finish_play(PARTY_ID, play_id)["spotify_track_id"] == "track-a"
        assert store.finish_play(PARTY_ID, play_id) is None
        assert len(store.list_history(PARTY_ID)) == 1

    def test_restart_after_unfinished_projection_replaces_row(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        store.finish_play(PARTY_ID, coordinator.current_song()["play_id"])

        restarted = VoteCoordinator(PARTY_ID, store, playback, downvote_threshold=5)
        song = poll(restarted, playback, "track-a")

        assert song["play_id"] is not None
        assert restarted.cast_vote("device-1", "down").downvotes == 1


class TestNotifications:
    """Events pushed to real-time clients"""

    def test_events_for_vote_skip_and_transition(self, coordinator, playback, events):
        poll(coordinator, playback, "track-a")
        downvote(coordinator, 5)
        poll(coordinator, playback, "track-b")

        names = [name for name, _ in events]
        assert names[0] == "track_changed"
        assert names.count("vote_updated") == 5
        assert "track_skipped" in names
        assert names[-1] == "track_changed"
        assert events[-1][1]["spotify_track_id"] == "track-b"

    def test_broken_notifier_does_not_fail_the_vote(self, store, playback):
        def explode(event, payload):
            raise RuntimeError("socket closed")

        coordinator = VoteCoordinator(PARTY_ID, store, playback, notifier=explode)
        poll(coordinator, playback, "track-a")

        assert coordinator.cast_vote("device-1", "up").upvotes == 1


class TestAttribution:
    """Who queued the playing track"""

    def test_queued_track_is_attributed_when_it_starts(self, coordinator, playback, store):
        poll(coordinator, playback, "track-a")
        coordinator.queue_track("device-1", "track-b", "Sam")

        assert playback.queued == ["track-b"]
        song = poll(coordinator, playback, "track-b")
        assert song["added_by"] == "Sam"

        poll(coordinator, playback, "track-c")
        assert store.list_history(PARTY_ID)[-1]["added_by"] == "Sam"

    def test_latest_request_wins(self, coordinator, playback):
        coordinator.queue_track("device-1", "track-b", "Sam")
        coordinator.queue_track("device-2", "track-b", "Alex")

        assert poll(coordinator, playback, "track-b")["added_by"] == "Alex"

    def test_unqueued_track_has_no_attribution(self, coordinator, playback):
        assert poll(coordinator, playback, "track-a")["added_by"] is None

    def test_queue_request_requires_all_fields(self, coordinator, playback):
        with pytest.raises(InvalidInput):
            coordinator.queue_track("device-1", "track-b", None)
        assert playback.queued == []

    def test_queue_failure_records_nothing(self, coordinator, playback, store):
        playback.fail_queue = True
        with pytest.raises(UpstreamTransient):
            coordinator.queue_track("device-1", "track-b", "Sam")
        assert store.lookup_attribution(PARTY_ID, "track-b") is None

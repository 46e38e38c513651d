import json
import tempfile
import unittest
from unittest.mock import MagicMock

from playlist_feature_ranker.cache import JsonFileCache
from playlist_feature_ranker.errors import FeatureDataError, InvalidRequest, NotFound, TransportError
from playlist_feature_ranker.models import Combinator, Playlist, Song, Track
from playlist_feature_ranker.pipeline import RankingRequest, run_ranking
from playlist_feature_ranker.spotify_service import Pacer, SpotifyService

_PAIRS = {"track1": (0.2, 0.8), "track2": (0.9, 0.9), "track3": (0.5, 0.5)}


def _fake_service() -> MagicMock:
    service = MagicMock()
    playlist = Playlist(id="pl1", name="Chill")
    tracklist = {
        tid: Track(id=tid, name=tid.title(), artists=["Artist"], uri=f"spotify:track:{tid}")
        for tid in _PAIRS
    }
    songs = [
        Song(id=tid, name=tid.title(), artists=["Artist"], features={"energy": e, "valence": v})
        for tid, (e, v) in _PAIRS.items()
    ]
    service.resolve_playlist_by_name.return_value = playlist
    service.get_all_playlist_tracks.return_value = tracklist
    service.get_tracklist_features.return_value = songs
    service.create_playlist.return_value = Playlist(id="new1", name="Chill by energy+valence (average)")
    return service


class RankingRequestTests(unittest.TestCase):
    def test_unknown_feature_rejected(self) -> None:
        with self.assertRaises(InvalidRequest):
            RankingRequest(playlist_name="Chill", features=["energy", "popularity"], combinator=Combinator.AVERAGE).validate()

    def test_combinator_required_for_several_features(self) -> None:
        with self.assertRaises(InvalidRequest):
            RankingRequest(playlist_name="Chill", features=["energy", "valence"]).validate()

    def test_combinator_name_is_parsed(self) -> None:
        request = RankingRequest(playlist_name="Chill", features=["energy", "valence"], combinator="multiply")
        request.validate()
        self.assertIs(request.combinator, Combinator.MULTIPLY)

    def test_unknown_combinator_rejected(self) -> None:
        with self.assertRaises(InvalidRequest):
            RankingRequest(playlist_name="Chill", features=["energy", "valence"], combinator="max").validate()

    def test_empty_features_rejected(self) -> None:
        with self.assertRaises(InvalidRequest):
            RankingRequest(playlist_name="Chill", features=[]).validate()

    def test_new_playlist_name(self) -> None:
        single = RankingRequest(playlist_name="Chill", features=["energy"], combinator=Combinator.AVERAGE)
        combo = RankingRequest(playlist_name="Chill", features=["energy", "valence"], combinator=Combinator.AVERAGE)
        self.assertEqual(single.new_playlist_name(), "Chill by energy")
        self.assertEqual(combo.new_playlist_name(), "Chill by energy+valence (average)")


class RunRankingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.cache = JsonFileCache(self._tmpdir.name)

    def test_end_to_end_average(self) -> None:
        service = _fake_service()
        request = RankingRequest(playlist_name="Chill", features=["energy", "valence"], combinator=Combinator.AVERAGE)

        result = run_ranking(service, self.cache, request)

        self.assertEqual(result.track_ids, ["track2", "track1", "track3"])
        self.assertEqual(result.report_key, "playlist-Chill/energy+valence-average.json")
        report = json.loads(self.cache.path_for(result.report_key).read_text(encoding="utf-8"))
        self.assertEqual([r["score"] for r in report], [0.9, 0.5, 0.5])
        self.assertIsNone(result.created_playlist)
        service.create_playlist.assert_not_called()
        service.add_tracks_to_playlist.assert_not_called()

    def test_creates_playlist_with_ranked_uris(self) -> None:
        service = _fake_service()
        request = RankingRequest(
            playlist_name="Chill",
            features=["energy", "valence"],
            combinator=Combinator.AVERAGE,
            create_playlist=True,
        )

        result = run_ranking(service, self.cache, request)

        service.create_playlist.assert_called_once_with("Chill by energy+valence (average)")
        service.add_tracks_to_playlist.assert_called_once_with(
            "new1",
            ["spotify:track:track2", "spotify:track:track1", "spotify:track:track3"],
        )
        self.assertEqual(result.created_playlist.id, "new1")

    def test_invalid_request_fails_before_remote_calls(self) -> None:
        service = _fake_service()
        with self.assertRaises(InvalidRequest):
            run_ranking(service, self.cache, RankingRequest(playlist_name="Chill", features=["loud"]))
        service.resolve_playlist_by_name.assert_not_called()

    def test_unresolvable_playlist_aborts(self) -> None:
        service = _fake_service()
        service.resolve_playlist_by_name.side_effect = NotFound("missing")
        with self.assertRaises(NotFound):
            run_ranking(service, self.cache, RankingRequest(playlist_name="Nope", features=["energy"]))
        service.get_all_playlist_tracks.assert_not_called()

    def test_tracks_without_features_abort(self) -> None:
        service = _fake_service()
        service.get_tracklist_features.return_value = service.get_tracklist_features.return_value[:2]
        with self.assertRaises(FeatureDataError):
            run_ranking(service, self.cache, RankingRequest(playlist_name="Chill", features=["energy"]))

    def test_write_back_failure_propagates(self) -> None:
        service = _fake_service()
        service.add_tracks_to_playlist.side_effect = TransportError("boom")
        request = RankingRequest(playlist_name="Chill", features=["energy"], create_playlist=True)
        with self.assertRaises(TransportError):
            run_ranking(service, self.cache, request)


class RunRankingWithServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.cache = JsonFileCache(self._tmpdir.name)
        self.client = MagicMock()
        self.client.user_playlists.return_value = {
            "items": [{"id": "pl1", "name": "Chill", "owner": {"id": "user1"}}],
            "next": None,
        }
        self.client.playlist_items.return_value = {
            "items": [
                {"track": {"id": tid, "name": tid.title(), "uri": f"spotify:track:{tid}", "artists": [{"name": "Artist"}]}}
                for tid in _PAIRS
            ],
            "next": None,
        }
        self.client.audio_features.side_effect = lambda ids: [
            {"id": tid, "energy": _PAIRS[tid][0], "valence": _PAIRS[tid][1]} for tid in ids
        ]
        self.client.user_playlist_create.return_value = {"id": "new1", "name": "Chill by energy+valence (average)"}
        self.service = SpotifyService(self.client, self.cache, "user1", pacer=Pacer(0.0))

    def test_creates_and_fills_playlist(self) -> None:
        request = RankingRequest(
            playlist_name="Chill",
            features=["energy", "valence"],
            combinator=Combinator.AVERAGE,
            create_playlist=True,
        )

        result = run_ranking(self.service, self.cache, request)

        self.assertEqual(result.track_ids, ["track2", "track1", "track3"])
        self.assertEqual(result.created_playlist.id, "new1")
        self.client.user_playlist_create.assert_called_once_with(
            "user1",
            "Chill by energy+valence (average)",
            public=True,
            collaborative=False,
            description="Generated Automatically",
        )
        self.client.playlist_add_items.assert_called_once_with(
            "new1",
            ["spotify:track:track2", "spotify:track:track1", "spotify:track:track3"],
        )

    def test_stale_feature_cache_only_ranks_current_tracks(self) -> None:
        self.cache.store("playlist-Chill/tracks.json", {
            "track1": {"id": "track1", "name": "Track1", "artists": ["Artist"], "uri": "spotify:track:track1"},
        })
        self.cache.store("playlist-Chill/features.json", [
            {"id": "track1", "name": "Track1", "artists": ["Artist"], "energy": 0.2},
            {"id": "gone", "name": "Gone", "artists": ["Artist"], "energy": 0.9},
        ])
        request = RankingRequest(playlist_name="Chill", features=["energy"], create_playlist=True)

        result = run_ranking(self.service, self.cache, request)

        self.assertEqual(result.track_ids, ["track1"])
        self.client.playlist_items.assert_not_called()
        self.client.audio_features.assert_not_called()
        self.client.playlist_add_items.assert_called_once_with("new1", ["spotify:track:track1"])


if __name__ == "__main__":
    unittest.main()

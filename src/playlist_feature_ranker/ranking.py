from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Sequence

from playlist_feature_ranker.cache import JsonFileCache, report_key
from playlist_feature_ranker.errors import FeatureDataError, InvalidRequest
from playlist_feature_ranker.models import (
    CombinedFeatureEntry,
    Combinator,
    RankedEntry,
    SingleFeatureEntry,
    Song,
    Tracklist,
    is_comparable_feature,
)

logger = logging.getLogger(__name__)

SCORE_PLACES = 4
# Wide enough to quantize any finite double to a few decimal places.
_ROUNDING_CONTEXT = Context(prec=400)


def round_half_away(value: float, places: int = SCORE_PLACES) -> float:
    """Round to ``places`` decimals, halves away from zero.

    Goes through the shortest decimal repr of ``value`` so that 0.00005 rounds
    to 0.0001 rather than being pulled down by its binary representation.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP, context=_ROUNDING_CONTEXT))


def combine(combinator: Combinator, values: Sequence[float]) -> float:
    if not values:
        raise InvalidRequest("At least one feature value is required to compute a score")

    match combinator:
        case Combinator.AVERAGE:
            total = math.fsum(values) / len(values)
        case Combinator.MULTIPLY:
            total = math.prod(values)
        case _:
            raise InvalidRequest(f"Unknown scoring function {combinator!r}")
    if not math.isfinite(total):
        raise FeatureDataError(f"{combinator.value} score is not finite: {total}")
    return round_half_away(total)


def parse_combinator(value: Combinator | str) -> Combinator:
    try:
        return Combinator(value)
    except ValueError:
        raise InvalidRequest(f"Unknown scoring function {value!r}") from None


def _check_feature(feature: str) -> None:
    if not is_comparable_feature(feature):
        raise InvalidRequest(f"Invalid feature {feature!r}")


def _feature_value(song: Song, feature: str) -> float:
    value = song.feature(feature)
    if value is None:
        raise FeatureDataError(f"Track {song.id} has no {feature} value")
    value = float(value)
    if not math.isfinite(value):
        raise FeatureDataError(f"Track {song.id} has a non-finite {feature} value: {value}")
    return value


def _sorted_desc(entries: list[RankedEntry]) -> list[RankedEntry]:
    # sorted() is stable under reverse=True, so ties keep their input order.
    return sorted(entries, key=lambda e: e.sort_key, reverse=True)


def songs_for_tracklist(tracklist: Tracklist, songs: Sequence[Song]) -> list[Song]:
    """Return the songs of ``tracklist`` in song order, one per track.

    Every track must have a song. Songs for tracks no longer in the tracklist
    (a stale feature cache) are dropped.
    """
    known = {s.id for s in songs}
    missing = [tid for tid in tracklist if tid not in known]
    if missing:
        raise FeatureDataError(f"{len(missing)} tracks have no audio features, e.g. {missing[0]}")

    selected: list[Song] = []
    seen: set[str] = set()
    for song in songs:
        if song.id in tracklist and song.id not in seen:
            seen.add(song.id)
            selected.append(song)
    if len(selected) < len(songs):
        logger.warning("Ignoring %d feature records for tracks not in the tracklist", len(songs) - len(selected))
    return selected


def rank_by_single_feature(songs: Sequence[Song], feature: str) -> list[SingleFeatureEntry]:
    _check_feature(feature)
    entries = [
        SingleFeatureEntry(
            id=s.id,
            name=s.name,
            artists=list(s.artists),
            feature=feature,
            value=_feature_value(s, feature),
        )
        for s in songs
    ]
    return _sorted_desc(entries)


def rank_by_feature_combination(
    songs: Sequence[Song],
    features: Sequence[str],
    combinator: Combinator,
) -> list[CombinedFeatureEntry]:
    if not features:
        raise InvalidRequest("At least one feature is required")
    for feature in features:
        _check_feature(feature)
    combinator = parse_combinator(combinator)

    entries = []
    for s in songs:
        values = {f: _feature_value(s, f) for f in features}
        entries.append(
            CombinedFeatureEntry(
                id=s.id,
                name=s.name,
                artists=list(s.artists),
                values=values,
                combinator=combinator,
                score=combine(combinator, [values[f] for f in features]),
            )
        )
    return _sorted_desc(entries)


def write_report(
    cache: JsonFileCache,
    playlist_name: str,
    features: Sequence[str],
    entries: Sequence[RankedEntry],
    combinator: Combinator | None = None,
) -> str:
    key = report_key(playlist_name, features, combinator.value if combinator else None)
    path = cache.store(key, [e.to_report() for e in entries], pretty=True)
    logger.info("Wrote ranking to %s", path)
    return key


def rank(
    songs: Sequence[Song],
    features: Sequence[str],
    combinator: Combinator | str | None = None,
    *,
    cache: JsonFileCache | None = None,
    playlist_name: str | None = None,
) -> list[str]:
    """Rank ``songs`` by ``features`` and return track ids, best first.

    One feature ranks by that feature's raw value and ignores ``combinator``.
    Several features need a combinator to fold them into one score. When both
    ``cache`` and ``playlist_name`` are given, the full ranking is written as a
    report next to the playlist's cached data.
    """
    if not features:
        raise InvalidRequest("At least one feature is required")

    if len(features) == 1:
        entries: list[RankedEntry] = rank_by_single_feature(songs, features[0])
        used = None
    else:
        if combinator is None:
            raise InvalidRequest("A scoring function is required when ranking by more than one feature")
        used = parse_combinator(combinator)
        entries = rank_by_feature_combination(songs, features, used)

    if cache is not None and playlist_name is not None:
        write_report(cache, playlist_name, features, entries, used)
    return [e.id for e in entries]

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

FEATURES: tuple[str, ...] = (
    "acousticness",
    "danceability",
    "duration_ms",
    "energy",
    "instrumentalness",
    "liveness",
    "loudness",
    "speechiness",
    "tempo",
    "valence",
)


def is_comparable_feature(name: str) -> bool:
    return name in FEATURES


class Combinator(str, Enum):
    AVERAGE = "average"
    MULTIPLY = "multiply"


@dataclass(frozen=True, slots=True)
class Track:
    id: str
    name: str
    artists: list[str]
    uri: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "artists": list(self.artists), "uri": self.uri}

    @classmethod
    def from_dict(cls, data: dict) -> Track:
        return cls(
            id=data["id"],
            name=data["name"],
            artists=list(data.get("artists", [])),
            uri=data["uri"],
        )


Tracklist = dict[str, Track]


@dataclass(frozen=True, slots=True)
class Song:
    """Audio features of one track joined with the track's name and artists."""

    id: str
    name: str
    artists: list[str]
    features: dict[str, float]
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    def feature(self, name: str) -> float | None:
        return self.features.get(name)

    def to_dict(self) -> dict:
        data = dict(self.raw)
        data.update(self.features)
        data.update({"id": self.id, "name": self.name, "artists": list(self.artists)})
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Song:
        features = {name: data[name] for name in FEATURES if data.get(name) is not None}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            artists=list(data.get("artists", [])),
            features=features,
            raw=dict(data),
        )


@dataclass(frozen=True, slots=True)
class Playlist:
    id: str
    name: str
    owner_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Playlist:
        owner = data.get("owner") or {}
        return cls(id=data["id"], name=data["name"], owner_id=owner.get("id"))


@dataclass(frozen=True, slots=True)
class SingleFeatureEntry:
    id: str
    name: str
    artists: list[str]
    feature: str
    value: float

    @property
    def sort_key(self) -> float:
        return self.value

    def to_report(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "artists": list(self.artists),
            self.feature: self.value,
        }


@dataclass(frozen=True, slots=True)
class CombinedFeatureEntry:
    id: str
    name: str
    artists: list[str]
    values: dict[str, float]
    combinator: Combinator
    score: float

    @property
    def sort_key(self) -> float:
        return self.score

    def to_report(self) -> dict:
        report = {
            "id": self.id,
            "name": self.name,
            "artists": list(self.artists),
            "score": self.score,
            "scoringFunc": self.combinator.value,
        }
        report.update(self.values)
        return report


RankedEntry = SingleFeatureEntry | CombinedFeatureEntry

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping


class InvalidInput(ValueError):
    """Malformed participant, couple or draw data supplied by the caller."""


@dataclass(frozen=True)
class Participant:
    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class ExclusionPair:
    """
    Two participants who must not draw each other, in either direction.
    Order of a and b carries no meaning.
    """
    a: str
    b: str

    def __post_init__(self):
        if self.a == self.b:
            raise InvalidInput("A couple needs two different participants.")

    @property
    def key(self) -> frozenset[str]:
        return frozenset((self.a, self.b))

    def to_dict(self) -> dict[str, str]:
        return {"person1Id": self.a, "person2Id": self.b}


@dataclass(frozen=True)
class DrawRecord:
    id: str
    code: str
    organizer_name: str
    draw_name: str
    participants: tuple[Participant, ...]
    exclusions: tuple[ExclusionPair, ...]
    assignment: Mapping[str, str] = field(hash=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        # own read-only copies so the record cannot change after creation
        object.__setattr__(self, "participants", tuple(self.participants))
        object.__setattr__(self, "exclusions", tuple(self.exclusions))
        object.__setattr__(self, "assignment", MappingProxyType(dict(self.assignment)))

    def participant(self, participant_id: str) -> Participant | None:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "organizerName": self.organizer_name,
            "drawName": self.draw_name,
            "participants": [p.to_dict() for p in self.participants],
            "couples": [e.to_dict() for e in self.exclusions],
            "assignments": dict(self.assignment),
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "DrawRecord":
        """Build a record from its JSON payload. Raises InvalidInput on any shape problem."""
        if not isinstance(data, dict):
            raise InvalidInput("Draw payload must be an object.")
        try:
            participants = tuple(
                Participant(id=_text(p["id"]), name=_text(p["name"]))
                for p in _items(data["participants"])
            )
            exclusions = tuple(
                ExclusionPair(a=_text(c["person1Id"]), b=_text(c["person2Id"]))
                for c in _items(data["couples"])
            )
            assignments = data["assignments"]
            if not isinstance(assignments, dict):
                raise InvalidInput("Assignments must be an object.")
            created_at = datetime.fromisoformat(_text(data["createdAt"]))
            return cls(
                id=_text(data["id"]),
                code=_text(data["code"]),
                organizer_name=_text(data["organizerName"]),
                draw_name=_text(data["drawName"]),
                participants=participants,
                exclusions=exclusions,
                assignment={_text(g): _text(r) for g, r in assignments.items()},
                created_at=created_at,
            )
        except InvalidInput:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput("Malformed draw payload.") from e


def _text(value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidInput("Expected a string.")
    return value


def _items(value: Any) -> list[dict]:
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise InvalidInput("Expected a list of objects.")
    return value

from __future__ import annotations

import logging
import random
import secrets
import string
from dataclasses import replace
from typing import Iterable, Sequence

from sqlalchemy.exc import IntegrityError

from ..draw import DrawRecord, ExclusionPair, InvalidInput, Participant
from ..extensions import db
from ..models import StoredDraw
from ..security import encode_draw
from .assignments import MAX_ATTEMPTS, AssignmentError, ConstraintInfeasible, generate_assignment, verify_assignment


log = logging.getLogger(__name__)

CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_RETRIES = 5


def generate_draw_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def new_participant_id() -> str:
    return secrets.token_urlsafe(12)


def build_roster(names: Iterable[str]) -> list[Participant]:
    """Fresh participants for the given names. Blank entries are skipped; duplicate names are rejected."""
    roster: list[Participant] = []
    seen: set[str] = set()
    for raw in names:
        if not isinstance(raw, str):
            raise InvalidInput("Participant names must be text.")
        name = raw.strip()
        if not name:
            continue
        if name.lower() in seen:
            raise InvalidInput(f"{name} is listed twice.")
        seen.add(name.lower())
        roster.append(Participant(id=new_participant_id(), name=name))
    return roster


def build_couples(pairs: Iterable[Sequence[str]], roster: Sequence[Participant]) -> list[ExclusionPair]:
    """Name pairs -> ExclusionPairs over roster ids. Repeats in either order collapse to one."""
    by_name = {p.name.lower(): p for p in roster}
    couples: list[ExclusionPair] = []
    seen: set[frozenset[str]] = set()
    for pair in pairs:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2 or not all(isinstance(n, str) for n in pair):
            raise InvalidInput("A couple needs exactly two names.")
        first, second = (by_name.get(n.strip().lower()) for n in pair)
        if first is None or second is None:
            raise InvalidInput(f"Unknown participant in couple: {' + '.join(pair)}")
        couple = ExclusionPair(first.id, second.id)
        if couple.key not in seen:
            seen.add(couple.key)
            couples.append(couple)
    return couples


def create_draw(
    organizer_name: str,
    draw_name: str,
    participants: Sequence[Participant],
    exclusions: Iterable[ExclusionPair] = (),
    *,
    rng: random.Random | None = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> DrawRecord:
    """
    Run the draw and wrap the result in a new DrawRecord.

    Raises InvalidInput for blank names or malformed roster/couples and
    ConstraintInfeasible when no assignment was found.
    """
    organizer_name = (organizer_name or "").strip()
    draw_name = (draw_name or "").strip()
    if not organizer_name:
        raise InvalidInput("Organizer name is required.")
    if not draw_name:
        raise InvalidInput("Draw name is required.")
    if any(not p.name.strip() for p in participants):
        raise InvalidInput("Participant names cannot be blank.")

    participants = tuple(participants)
    exclusions = tuple(exclusions)

    assignment = generate_assignment(participants, exclusions, rng=rng, max_attempts=max_attempts)
    if assignment is None:
        raise ConstraintInfeasible()

    issues = verify_assignment(assignment, participants, exclusions)
    if issues:
        raise AssignmentError("; ".join(issues))

    return DrawRecord(
        id=secrets.token_urlsafe(12),
        code=generate_draw_code(),
        organizer_name=organizer_name,
        draw_name=draw_name,
        participants=participants,
        exclusions=exclusions,
        assignment=assignment,
    )


def find_participant(record: DrawRecord, name: str) -> Participant | None:
    """Case-insensitive name lookup; first match wins."""
    wanted = (name or "").strip().lower()
    if not wanted:
        return None
    for p in record.participants:
        if p.name.strip().lower() == wanted:
            return p
    return None


def get_assignment(record: DrawRecord, participant_id: str) -> tuple[Participant, Participant] | None:
    """Returns (giver, receiver) for participant_id, or None if unknown."""
    receiver_id = record.assignment.get(participant_id)
    if not receiver_id:
        return None
    giver = record.participant(participant_id)
    receiver = record.participant(receiver_id)
    if not giver or not receiver:
        return None
    return giver, receiver


# ---------------------------------------------------------------------------
# Draw store: code -> token. Optional; a token alone is enough to reveal.
# ---------------------------------------------------------------------------


def save_draw(record: DrawRecord, token: str) -> StoredDraw:
    stored = StoredDraw(code=record.code, draw_id=record.id, token=token, created_at=record.created_at)
    db.session.add(stored)
    db.session.commit()
    log.info("Stored draw %s", record.code)
    return stored


def get_draw_token(code: str) -> str | None:
    code = (code or "").strip().upper()
    if not code:
        return None
    stored = db.session.get(StoredDraw, code)
    return stored.token if stored else None


def publish_draw(record: DrawRecord, passphrase: str) -> tuple[DrawRecord, str]:
    """
    Encode and store `record`, drawing a fresh code when its code is taken.
    Returns the record as stored (its code may differ) and its token.
    """
    for _ in range(CODE_RETRIES):
        token = encode_draw(record, passphrase)
        try:
            save_draw(record, token)
        except IntegrityError:
            db.session.rollback()
            log.info("Draw code %s already taken, drawing another", record.code)
            record = replace(record, code=generate_draw_code())
            continue
        return record, token
    raise AssignmentError("Could not find a free draw code. Please try again.")

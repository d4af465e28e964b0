from __future__ import annotations

import logging
import random
from typing import Iterable, Sequence, Union

from ..draw import ExclusionPair, InvalidInput, Participant


log = logging.getLogger(__name__)

MAX_ATTEMPTS = 100
# Pushes allowed in one attempt before it is abandoned and reshuffled.
STEP_BUDGET = 1_000
MIN_PARTICIPANTS = 3


class AssignmentError(RuntimeError):
    pass


class ConstraintInfeasible(AssignmentError):
    def __init__(self, message: str = "No valid draw satisfies these couples. Try reducing constraints."):
        super().__init__(message)


ParticipantLike = Union[Participant, str]
ExclusionLike = Union[ExclusionPair, Sequence[str]]


def _participant_ids(participants: Sequence[ParticipantLike]) -> list[str]:
    ids = [p.id if isinstance(p, Participant) else p for p in participants]
    if len(ids) < MIN_PARTICIPANTS:
        raise InvalidInput(f"Need at least {MIN_PARTICIPANTS} participants.")
    if len(set(ids)) != len(ids):
        raise InvalidInput("Participant ids must be unique.")
    return ids


def _exclusion_keys(exclusions: Iterable[ExclusionLike], ids: Sequence[str]) -> set[frozenset[str]]:
    known = set(ids)
    keys: set[frozenset[str]] = set()
    for e in exclusions:
        pair = e if isinstance(e, ExclusionPair) else ExclusionPair(*e)
        if pair.a not in known or pair.b not in known:
            raise InvalidInput("A couple references an unknown participant.")
        keys.add(pair.key)
    return keys


def _is_valid(giver: str, receiver: str, excluded: set[frozenset[str]]) -> bool:
    return giver != receiver and frozenset((giver, receiver)) not in excluded


class _Search:
    """
    One backtracking attempt over a fixed giver order.

    `chosen[i]` is the receiver tentatively given to `givers[i]`; choices are
    pushed and popped in giver order so the pool of available receivers is
    always exactly the ids not in `chosen`.
    """

    def __init__(
        self,
        givers: list[str],
        roster: list[str],
        excluded: set[frozenset[str]],
        rng: random.Random,
        budget: int,
    ):
        self.givers = givers
        self.roster = roster
        self.excluded = excluded
        self.rng = rng
        self.chosen: list[str] = []
        self.available = set(roster)
        self.budget = budget
        self.steps = 0

    def allowed(self, giver: str, receiver: str) -> bool:
        return _is_valid(giver, receiver, self.excluded)

    def push(self, receiver: str) -> None:
        self.steps += 1
        self.chosen.append(receiver)
        self.available.remove(receiver)

    def pop(self) -> None:
        self.available.add(self.chosen.pop())

    def candidates(self, giver: str) -> list[str]:
        # roster order first so a seeded rng gives reproducible draws
        options = [r for r in self.roster if r in self.available and self.allowed(giver, r)]
        self.rng.shuffle(options)
        return options

    def run(self) -> dict[str, str] | None:
        pending = [self.candidates(self.givers[0])]
        while pending:
            options = pending[-1]
            if not options:
                pending.pop()
                if self.chosen:
                    self.pop()
                continue

            if self.steps >= self.budget:
                return None
            self.push(options.pop())
            if len(self.chosen) == len(self.givers):
                return dict(zip(self.givers, self.chosen))
            pending.append(self.candidates(self.givers[len(self.chosen)]))
        return None


def generate_assignment(
    participants: Sequence[ParticipantLike],
    exclusions: Iterable[ExclusionLike] = (),
    rng: random.Random | None = None,
    max_attempts: int = MAX_ATTEMPTS,
    step_budget: int = STEP_BUDGET,
) -> dict[str, str] | None:
    """
    Draw a giver -> receiver mapping: a permutation of the participant ids
    with no fixed point and no excluded couple in either direction.

    Returns None when no assignment was found within `max_attempts`
    reshuffled searches, each limited to `step_budget` tentative choices
    (never fewer than two per participant). Raises InvalidInput for
    malformed input.
    """
    ids = _participant_ids(participants)
    excluded = _exclusion_keys(exclusions, ids)
    rng = rng or random.SystemRandom()

    if any(not any(_is_valid(g, r, excluded) for r in ids) for g in ids):
        log.info("Draw infeasible: a participant has no allowed receiver")
        return None

    budget = max(step_budget, 2 * len(ids))
    for attempt in range(1, max_attempts + 1):
        givers = ids[:]
        rng.shuffle(givers)
        found = _Search(givers, ids, excluded, rng, budget).run()
        if found:
            log.debug("Draw found on attempt %d for %d participants", attempt, len(ids))
            return {gid: found[gid] for gid in ids}

    log.info("Draw infeasible after %d attempts for %d participants", max_attempts, len(ids))
    return None


def verify_assignment(
    assignment: dict[str, str],
    participants: Sequence[ParticipantLike],
    exclusions: Iterable[ExclusionLike] = (),
) -> list[str]:
    """Returns the list of problems with `assignment`; empty means valid."""
    ids = [p.id if isinstance(p, Participant) else p for p in participants]
    participant_set = set(ids)
    giver_set = set(assignment.keys())
    recipients = list(assignment.values())
    recipient_set = set(recipients)

    issues = []

    missing_givers = participant_set - giver_set
    if missing_givers:
        issues.append(f"Missing givers: {sorted(missing_givers)}")

    extra_givers = giver_set - participant_set
    if extra_givers:
        issues.append(f"Unknown givers: {sorted(extra_givers)}")

    missing_recipients = participant_set - recipient_set
    if missing_recipients:
        issues.append(f"Missing recipients: {sorted(missing_recipients)}")

    if len(recipients) != len(recipient_set):
        issues.append("Duplicate recipients detected")

    self_assigned = sorted(g for g, r in assignment.items() if g == r)
    if self_assigned:
        issues.append(f"Self assignments: {self_assigned}")

    excluded = {
        (e if isinstance(e, ExclusionPair) else ExclusionPair(*e)).key for e in exclusions
    }
    violations = sorted(
        (g, r) for g, r in assignment.items() if frozenset((g, r)) in excluded
    )
    if violations:
        issues.append(f"Excluded pairs drawn: {violations}")

    return issues

import math
from typing import Set, Tuple


def quorum(roster_size: int) -> int:
    """Votes needed out of the live roster; a solo room never blocks."""
    return max(1, math.ceil(roster_size / 2))


class VoteCoordinator:
    """Pause and skip vote sets of one room.

    Pause is soft: reaching quorum only raises ``pause_pending``, which the
    room honours at the next phase boundary. Skip is hard: the caller cuts the
    armed timer as soon as ``add_skip`` reports quorum. The required count is
    recomputed from the roster size passed on every call, never cached.
    """

    def __init__(self):
        self.pause_votes: Set[str] = set()
        self.skip_votes: Set[str] = set()
        self.pause_pending = False

    def toggle_pause(self, player_id: str, roster_size: int) -> Tuple[int, int, bool]:
        """Returns (votes_count, votes_needed, pause_pending)."""
        if player_id in self.pause_votes:
            self.pause_votes.discard(player_id)
        else:
            self.pause_votes.add(player_id)
        needed = quorum(roster_size)
        self.pause_pending = len(self.pause_votes) >= needed
        return len(self.pause_votes), needed, self.pause_pending

    def add_skip(self, player_id: str, roster_size: int) -> Tuple[int, int, bool]:
        """Returns (votes_count, votes_needed, reached)."""
        self.skip_votes.add(player_id)
        needed = quorum(roster_size)
        return len(self.skip_votes), needed, len(self.skip_votes) >= needed

    def skip_status(self, roster_size: int) -> Tuple[int, int, bool]:
        """Same as ``add_skip`` without casting a vote."""
        needed = quorum(roster_size)
        return len(self.skip_votes), needed, bool(self.skip_votes) and len(self.skip_votes) >= needed

    def discard(self, player_id: str) -> None:
        self.pause_votes.discard(player_id)
        self.skip_votes.discard(player_id)

    def refresh(self, roster_size: int) -> None:
        """Re-evaluate the pending pause after the roster shrank."""
        self.pause_pending = bool(self.pause_votes) and len(self.pause_votes) >= quorum(roster_size)

    def clear(self) -> None:
        self.pause_votes.clear()
        self.skip_votes.clear()
        self.pause_pending = False

    def tally(self, kind: str, roster_size: int) -> dict:
        votes = self.pause_votes if kind == 'pause' else self.skip_votes
        payload = {'type': kind, 'count': len(votes), 'required': quorum(roster_size)}
        if kind == 'pause':
            payload['is_pending'] = self.pause_pending
        return payload

"""Watched-anime pools for "watched only" games.

Lists are imported onto accounts by an external tool; this module only
reads them back and merges them for a roster.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from songquiz.models import User

logger = logging.getLogger(__name__)

UNION = 'union'
INTERSECTION = 'intersection'


def merge_watched_ids(lists: Sequence[Sequence[int]], mode: str, roster_size: int) -> List[int]:
    """Combine per-account lists into one pool of anime ids.

    ``union`` merges every list. ``intersection`` keeps the ids common to all
    of them, and is empty as soon as one roster member brought no list.
    """
    if mode == INTERSECTION:
        if not lists or len(lists) < roster_size:
            return []
        common = set(lists[0])
        for ids in lists[1:]:
            common &= set(ids)
        return sorted(common)

    merged = set()
    for ids in lists:
        merged.update(ids)
    return sorted(merged)


class AccountWatchLists:
    def __init__(self, app):
        self.app = app

    def watched_ids(self, user_ids: Iterable[Optional[int]]) -> List[List[int]]:
        """One list per account that has imported one; others are skipped."""
        ids = [uid for uid in user_ids if uid is not None]
        if not ids:
            return []
        with self.app.app_context():
            users = User.query.filter(User.id.in_(ids)).all()
            lists = [u.watched_ids for u in users if u.watched_ids is not None]
        logger.info(f"[watchlists] accounts={len(ids)} with_list={len(lists)}")
        return lists

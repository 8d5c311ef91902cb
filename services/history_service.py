"""
Round history service.

Keeps a bounded, most-recent-first list of resolved round ids so the
frontend can render recent results without scanning every stored round.
Push + trim happen inside the caller's transaction.
"""
from typing import List

from sqlalchemy.orm import Session

from models import Round, RoundHistoryEntry


def push_round_history(db: Session, round_id: str, now_ms: int, limit: int) -> None:
    """
    Prepend a round id and evict everything beyond `limit` entries.

    Does not commit; the surrounding transaction (resolve_round) does.
    """
    db.add(RoundHistoryEntry(round_id=round_id, created_at=now_ms))
    db.flush()

    stale = (
        db.query(RoundHistoryEntry.id)
        .order_by(RoundHistoryEntry.id.desc())
        .offset(max(0, limit))
        .all()
    )
    if stale:
        db.query(RoundHistoryEntry).filter(
            RoundHistoryEntry.id.in_([row.id for row in stale])
        ).delete(synchronize_session=False)


def get_round_history(db: Session, limit: int = 10) -> List[Round]:
    """
    Return up to `limit` resolved rounds, newest first.

    Ids whose round record has disappeared are skipped, same as a
    dangling key in the history list.
    """
    if limit <= 0:
        return []

    entries = (
        db.query(RoundHistoryEntry)
        .order_by(RoundHistoryEntry.id.desc())
        .limit(limit)
        .all()
    )

    rounds: List[Round] = []
    for entry in entries:
        round_obj = db.query(Round).filter(Round.id == entry.round_id).first()
        if round_obj:
            rounds.append(round_obj)

    return rounds

"""
Manual-ranking conditions.

A tie at a required position of a finished block opens one
"manual_ranking_needed" notification per block. Once the block's required
positions are unique again the open notification is resolved. Delivering
the notification (mail, push, ...) is not done here.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Session, select

from app.models.tournament_notification import NOTIFICATION_MANUAL_RANKING, TournamentNotification
from app.services.promotion_eligibility import PromotionEligibility


def _open_for_block(session: Session, tournament_id: int, block_name: str) -> List[TournamentNotification]:
    rows = session.exec(
        select(TournamentNotification).where(
            TournamentNotification.tournament_id == tournament_id,
            TournamentNotification.notification_type == NOTIFICATION_MANUAL_RANKING,
            TournamentNotification.is_resolved == False,  # noqa: E712
        )
    ).all()
    return [n for n in rows if (n.payload or {}).get("block_name") == block_name]


def sync_tie_notification(
    session: Session, tournament_id: int, eligibility: PromotionEligibility
) -> Optional[TournamentNotification]:
    """Open, refresh or resolve the block's notification. Returns the open one, if any."""
    open_rows = _open_for_block(session, tournament_id, eligibility.block_name)

    if not eligibility.ties:
        now = datetime.now(timezone.utc)
        for row in open_rows:
            row.is_resolved = True
            row.resolved_at = now
            session.add(row)
        return None

    payload = {
        "block_name": eligibility.block_name,
        "tied_teams": [t.to_dict() for t in eligibility.ties],
        "required_positions": list(eligibility.required_positions),
        "requires_manual_ranking": True,
    }
    summary = "; ".join(
        f"position {t.position}: {', '.join(t.tied_team_names)}" for t in eligibility.ties
    )
    title = f"Block {eligibility.block_name}: manual ranking needed"
    message = (
        f"Block {eligibility.block_name} finished with a tie ({summary}). "
        "Set the ranking by hand to release the bracket slots."
    )

    if open_rows:
        row = open_rows[0]
        if row.payload != payload or row.message != message:
            row.payload = payload
            row.title = title
            row.message = message
            session.add(row)
        return row

    row = TournamentNotification(
        tournament_id=tournament_id,
        notification_type=NOTIFICATION_MANUAL_RANKING,
        title=title,
        message=message,
        severity="warning",
        payload=payload,
    )
    session.add(row)
    return row


def list_open_notifications(session: Session, tournament_id: int) -> List[TournamentNotification]:
    return list(
        session.exec(
            select(TournamentNotification)
            .where(
                TournamentNotification.tournament_id == tournament_id,
                TournamentNotification.is_resolved == False,  # noqa: E712
            )
            .order_by(TournamentNotification.id)
        ).all()
    )

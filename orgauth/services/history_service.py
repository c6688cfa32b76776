"""Membership history: append-only trail of assignment, role and status changes."""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgauth.core.config import settings
from orgauth.core.constants import HISTORY_ACTIONS
from orgauth.core.exceptions import ValidationError
from orgauth.models.organization import UserOrganizationHistory

logger = logging.getLogger("orgauth.history")


def page_bounds(page: int, page_size: Optional[int]):
    page = max(page, 1)
    size = page_size or settings.DEFAULT_PAGE_SIZE
    size = max(1, min(size, settings.MAX_PAGE_SIZE))
    return page, size


class HistoryService:
    """Records immutable membership history entries."""

    @staticmethod
    def record(
        db: Session,
        user_id: int,
        organization_id: int,
        action: str,
        action_by: Optional[int],
        previous_role: Optional[str] = None,
        new_role: Optional[str] = None,
        previous_status: Optional[bool] = None,
        new_status: Optional[bool] = None,
        reason: Optional[str] = None,
    ) -> Optional[UserOrganizationHistory]:
        """Write a single history record after the primary change has committed.

        A failed write is logged and rolled back; it never fails the caller,
        whose mutation is already durable. Returns None in that case.
        """
        if action not in HISTORY_ACTIONS:
            raise ValidationError(f"Unknown history action '{action}'")
        entry = UserOrganizationHistory(
            user_id=user_id,
            organization_id=organization_id,
            action=action,
            previous_role=previous_role,
            new_role=new_role,
            previous_status=previous_status,
            new_status=new_status,
            action_by=action_by,
            reason=reason,
        )
        try:
            db.add(entry)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(
                "Failed to record %s history for user %s in organization %s",
                action, user_id, organization_id, exc_info=True,
            )
            return None
        return entry

    @staticmethod
    def query(
        db: Session,
        user_id: Optional[int] = None,
        organization_id: Optional[int] = None,
        action: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ):
        """Query history with filters and pagination, newest first."""
        page, page_size = page_bounds(page, page_size)
        query = db.query(UserOrganizationHistory)

        if user_id is not None:
            query = query.filter(UserOrganizationHistory.user_id == user_id)
        if organization_id is not None:
            query = query.filter(UserOrganizationHistory.organization_id == organization_id)
        if action:
            query = query.filter(UserOrganizationHistory.action == action)

        total = query.count()
        entries = (
            query.order_by(
                UserOrganizationHistory.action_at.desc(),
                UserOrganizationHistory.id.desc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "history": entries,
            "total": total,
            "page": page,
            "page_size": page_size,
        }


history_service = HistoryService()

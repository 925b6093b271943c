from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import JSONType, UTCDateTime, utcnow


class AdminActionLog(Base):
    """
    Operator action trail.
    - Append-only (never UPDATE)
    - Stores request-id, actor, target, action, payload hash and a safe payload summary.
    """
    __tablename__ = "admin_action_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Correlation (None for maintenance commands)
    request_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    # Actor: user id for API calls, "maintenance" for CLI runs
    actor: Mapped[str] = mapped_column(String(128), nullable=False)

    # What happened, and to what
    action: Mapped[str] = mapped_column(String(96), nullable=False)  # e.g. LATE_PAYMENT_PROMOTED
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ok")

    payload_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    payload_summary_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_admin_action_target", "target_type", "target_id"),
        Index("ix_admin_action_action", "action"),
        Index("ix_admin_action_created", "created_at"),
    )

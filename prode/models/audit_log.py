from datetime import datetime, timezone

from prode import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    UPDATE_MATCH_RESULT = "UPDATE_MATCH_RESULT"
    CALCULATE_MATCH_POINTS = "CALCULATE_MATCH_POINTS"
    LOCK_MATCHES = "LOCK_MATCHES"

    id = db.Column(db.Integer, primary_key=True)

    # Null for actions triggered by the system (scheduler, cron, CLI)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    action = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(50))

    old_values = db.Column(db.JSON)
    new_values = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", backref="audit_entries")

    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_created", "created_at"),
    )

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"

    @staticmethod
    def log_action(
        action,
        entity_type,
        entity_id=None,
        user_id=None,
        old_values=None,
        new_values=None,
        session=None,
    ):
        """Add an audit entry to the current transaction"""
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
        )
        (session or db.session).add(entry)
        return entry

    @staticmethod
    def log_match_result(admin_user_id, match, old_values, session=None):
        """Convenience method for logging a result entry or correction"""
        return AuditLog.log_action(
            action=AuditLog.UPDATE_MATCH_RESULT,
            entity_type="Match",
            entity_id=match.id,
            user_id=admin_user_id,
            old_values=old_values,
            new_values={
                "homeScore": match.home_score,
                "awayScore": match.away_score,
                "status": match.status,
            },
            session=session,
        )

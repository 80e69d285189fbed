import hmac
from functools import wraps

from flask import abort, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import MultiDict

from prode import db, limiter
from prode.errors import MatchNotFoundError, PersistenceError
from prode.forms import MatchResultForm, PredictionForm
from prode.models import AuditLog, LeaderboardCache, Match, Prediction
from prode.routes.api import bp
from prode.services.leaderboard import LeaderboardRefresher, get_leaderboard_page
from prode.services.match_points import MatchPointsCalculator
from prode.utils.cache_utils import cached_route, invalidate_leaderboard_cache


def admin_required(f):
    """Require an authenticated site admin"""

    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            current_app.logger.warning(
                f"User {current_user.id} tried to access admin endpoint {request.path}"
            )
            abort(403)
        return f(*args, **kwargs)

    return decorated_function


def cron_secret_required(f):
    """Require 'Authorization: Bearer <CRON_SECRET>'"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if not secret:
            current_app.logger.error("CRON_SECRET is not configured")
            return jsonify({"error": "Cron secret not configured"}), 500

        header = request.headers.get("Authorization", "")
        if not hmac.compare_digest(header, f"Bearer {secret}"):
            current_app.logger.warning("Unauthorized call to cron endpoint")
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated_function


def json_form(form_class):
    """Build a form from a flat JSON object body"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400, description="Expected a JSON object body")

    # Stringify so IntegerField rejects 2.5, true and friends instead of truncating
    formdata = MultiDict(
        {
            key: str(value)
            for key, value in payload.items()
            if value is not None and not isinstance(value, (dict, list))
        }
    )
    return form_class(formdata=formdata, meta={"csrf": False})


def validation_error(form):
    return (
        jsonify(
            {
                "error": "Invalid input data",
                "details": [
                    {"field": field, "message": message}
                    for field, messages in form.errors.items()
                    for message in messages
                ],
            }
        ),
        400,
    )


@bp.route("/admin/matches/<int:match_id>/result", methods=["POST"])
@admin_required
@limiter.limit("30 per minute")
def match_result(match_id):
    """Enter (or correct) a final score and calculate points"""
    form = json_form(MatchResultForm)
    if not form.validate():
        return validation_error(form)

    current_app.logger.info(
        f"Admin {current_user.id} entering result for match {match_id}: "
        f"{form.homeScore.data}-{form.awayScore.data}"
    )

    calculator = MatchPointsCalculator(db.session)
    match, result = calculator.finalize_result(
        match_id,
        form.homeScore.data,
        form.awayScore.data,
        admin_user_id=current_user.id,
    )

    return jsonify(
        {
            "success": True,
            "message": "Match result saved and points calculated",
            "data": {
                "match": match.to_dict(include_predictions_count=True),
                "pointsCalculation": result.to_dict(),
            },
        }
    )


@bp.route("/admin/matches/<int:match_id>/calculate-points", methods=["POST"])
@admin_required
@limiter.limit("30 per minute")
def calculate_match_points(match_id):
    """Recalculate points for every prediction of a finished match"""
    current_app.logger.info(
        f"Admin {current_user.id} requested points calculation for match {match_id}"
    )

    result = MatchPointsCalculator(db.session).calculate_points(match_id)

    return jsonify({"message": "Points calculated successfully", "data": result.to_dict()})


@bp.route("/admin/recalculate-all", methods=["POST"])
@admin_required
@limiter.limit("5 per hour")
def recalculate_all():
    """Recalculate points for every finished match"""
    summary = MatchPointsCalculator(db.session).recalculate_all()
    return jsonify({"message": "Recalculation completed", "data": summary})


@bp.route("/admin/leaderboard/refresh", methods=["POST"])
@admin_required
def refresh_leaderboard():
    """Rebuild every leaderboard row from scored predictions"""
    try:
        count = LeaderboardRefresher(db.session).refresh_all()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Leaderboard refresh failed: {e}") from e

    invalidate_leaderboard_cache()
    return jsonify({"message": "Leaderboard refreshed", "data": {"users": count}})


@bp.route("/leaderboard")
@cached_route(timeout=300, key_prefix="leaderboard")
def leaderboard():
    """Paginated standings, plus the caller's row when it is off the page"""
    default_limit = current_app.config.get("LEADERBOARD_PAGE_SIZE", 50)
    max_limit = current_app.config.get("LEADERBOARD_MAX_PAGE_SIZE", 100)

    page = max(request.args.get("page", 1, type=int) or 1, 1)
    limit = request.args.get("limit", default_limit, type=int) or default_limit
    limit = min(max(limit, 1), max_limit)

    rows, total = get_leaderboard_page(db.session, page=page, limit=limit)

    personal = None
    if current_user.is_authenticated and not any(
        row.user_id == current_user.id for row in rows
    ):
        entry = LeaderboardCache.query.filter_by(user_id=current_user.id).first()
        personal = entry.to_dict() if entry else None

    return {
        "data": [row.to_dict() for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
        "personal": personal,
    }


@bp.route("/leaderboard/me")
@login_required
def my_leaderboard_entry():
    entry = LeaderboardCache.query.filter_by(user_id=current_user.id).first()
    return jsonify({"data": entry.to_dict() if entry else None})


@bp.route("/predictions", methods=["POST"])
@login_required
def submit_prediction():
    """Create or update the caller's prediction for an open match"""
    form = json_form(PredictionForm)
    if not form.validate():
        return validation_error(form)

    match = db.session.get(Match, form.matchId.data)
    if match is None:
        raise MatchNotFoundError(form.matchId.data)

    prediction, created = Prediction.submit(
        current_user.id, match, form.homeScore.data, form.awayScore.data
    )
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not save prediction: {e}") from e

    return (
        jsonify(
            {
                "message": "Prediction created" if created else "Prediction updated",
                "data": prediction.to_dict(),
            }
        ),
        201 if created else 200,
    )


@bp.route("/cron/lock-matches", methods=["POST"])
@cron_secret_required
def lock_matches():
    """Lock scheduled matches whose lock time has passed"""
    try:
        locked = Match.lock_due_matches()
        if locked:
            AuditLog.log_action(
                action=AuditLog.LOCK_MATCHES,
                entity_type="Match",
                new_values={"matchIds": [m.id for m in locked]},
            )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not lock matches: {e}") from e

    if locked:
        current_app.logger.info(f"Locked {len(locked)} matches")

    return jsonify(
        {
            "success": True,
            "lockedCount": len(locked),
            "matchIds": [m.id for m in locked],
        }
    )

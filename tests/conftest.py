from datetime import datetime, timedelta, timezone

import pytest

from prode import create_app
from prode import db as _db
from prode.models import Match, Phase, Prediction, Team, User


def utcnow():
    """Naive UTC now, the form datetimes are stored in"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def phases(db):
    Phase.seed_world_cup()
    db.session.commit()
    return {p.slug: p for p in Phase.query.all()}


@pytest.fixture
def teams(db):
    arg = Team(code="ARG", name="Argentina", group_letter="J")
    mex = Team(code="MEX", name="Mexico", group_letter="A")
    db.session.add_all([arg, mex])
    db.session.commit()
    return arg, mex


@pytest.fixture
def make_user(db):
    created = []

    def factory(name=None, is_admin=False, is_active=True, created_at=None):
        n = len(created) + 1
        user = User(
            name=name or f"Player {n}",
            email=f"player{n}@example.com",
            is_admin=is_admin,
            is_active=is_active,
            created_at=created_at or datetime(2026, 1, 1) + timedelta(minutes=n),
        )
        user.set_password("secret123")
        db.session.add(user)
        db.session.commit()
        created.append(user)
        return user

    return factory


@pytest.fixture
def make_match(db, phases, teams):
    def factory(
        status=Match.SCHEDULED,
        home_score=None,
        away_score=None,
        phase="grupos",
        kickoff=None,
        is_locked=False,
    ):
        kickoff = kickoff or utcnow() + timedelta(days=2)
        match = Match(
            home_team_id=teams[0].id,
            away_team_id=teams[1].id,
            phase_id=phases[phase].id,
            match_date=kickoff,
            lock_time=Match.default_lock_time(kickoff),
            status=status,
            home_score=home_score,
            away_score=away_score,
            is_locked=is_locked,
        )
        db.session.add(match)
        db.session.commit()
        return match

    return factory


@pytest.fixture
def finished_match(make_match):
    return make_match(
        status=Match.FINISHED,
        home_score=2,
        away_score=1,
        kickoff=utcnow() - timedelta(hours=3),
        is_locked=True,
    )


@pytest.fixture
def make_prediction(db):
    def factory(user, match, home, away):
        prediction = Prediction(
            user_id=user.id,
            match_id=match.id,
            predicted_home_score=home,
            predicted_away_score=away,
        )
        db.session.add(prediction)
        db.session.commit()
        return prediction

    return factory


@pytest.fixture
def login(client):
    def do_login(user):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user.id)
            sess["_fresh"] = True

    return do_login

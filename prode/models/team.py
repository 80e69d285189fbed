from prode import db


class Team(db.Model):
    """A national team taking part in the tournament"""

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(3), unique=True, nullable=False, index=True)
    flag_url = db.Column(db.String(500))
    group_letter = db.Column(db.String(1))

    home_matches = db.relationship(
        "Match",
        foreign_keys="Match.home_team_id",
        backref=db.backref("home_team", lazy="joined"),
        lazy="dynamic",
    )
    away_matches = db.relationship(
        "Match",
        foreign_keys="Match.away_team_id",
        backref=db.backref("away_team", lazy="joined"),
        lazy="dynamic",
    )

    def __repr__(self):
        return f"<Team {self.code}>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "flagUrl": self.flag_url,
        }

from decimal import Decimal

from prode import db

# World Cup 2026 stages as (slug, name); every stage scores at 1.0 by default
WORLD_CUP_PHASES = [
    ("grupos", "Fase de Grupos"),
    ("dieciseisavos", "Dieciseisavos de Final"),
    ("octavos", "Octavos de Final"),
    ("cuartos", "Cuartos de Final"),
    ("semifinales", "Semifinales"),
    ("tercer-lugar", "Tercer Puesto"),
    ("final", "Final"),
]


class Phase(db.Model):
    __tablename__ = "phases"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(50), unique=True, nullable=False, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    points_multiplier = db.Column(
        db.Numeric(5, 2), nullable=False, default=Decimal("1.00")
    )

    matches = db.relationship("Match", backref="phase", lazy="dynamic")

    __table_args__ = (
        db.CheckConstraint("points_multiplier >= 1", name="phase_multiplier_min"),
    )

    def __repr__(self):
        return f"<Phase {self.slug} x{self.points_multiplier}>"

    @property
    def multiplier(self):
        """Points multiplier as a Decimal (1 when unset)"""
        if self.points_multiplier is None:
            return Decimal("1")
        return Decimal(str(self.points_multiplier))

    @staticmethod
    def seed_world_cup():
        """Create the tournament phases that don't exist yet, returns the new ones"""
        created = []
        for order, (slug, name) in enumerate(WORLD_CUP_PHASES, start=1):
            if Phase.query.filter_by(slug=slug).first():
                continue
            phase = Phase(
                slug=slug, name=name, sort_order=order, points_multiplier=Decimal("1.00")
            )
            db.session.add(phase)
            created.append(phase)
        return created

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "sortOrder": self.sort_order,
            "pointsMultiplier": float(self.multiplier),
        }

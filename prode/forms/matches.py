from flask_wtf import FlaskForm
from wtforms import IntegerField
from wtforms.validators import InputRequired, NumberRange


class MatchResultForm(FlaskForm):
    """Final score entered by an admin (JSON keys homeScore / awayScore)"""

    homeScore = IntegerField(
        "Home score", validators=[InputRequired(), NumberRange(min=0, max=99)]
    )
    awayScore = IntegerField(
        "Away score", validators=[InputRequired(), NumberRange(min=0, max=99)]
    )

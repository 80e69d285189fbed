from flask_wtf import FlaskForm
from wtforms import IntegerField
from wtforms.validators import InputRequired, NumberRange


class PredictionForm(FlaskForm):
    matchId = IntegerField("Match", validators=[InputRequired()])
    homeScore = IntegerField(
        "Home score", validators=[InputRequired(), NumberRange(min=0, max=99)]
    )
    awayScore = IntegerField(
        "Away score", validators=[InputRequired(), NumberRange(min=0, max=99)]
    )

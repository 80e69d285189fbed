from prode import create_app, db
from prode.models import LeaderboardCache, Match, Phase, Prediction, Team, User

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Team": Team,
        "Phase": Phase,
        "Match": Match,
        "Prediction": Prediction,
        "LeaderboardCache": LeaderboardCache,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)

"""Fixture data and scoring parameters for the league simulator."""

# Manager display names for simulated leagues (one per roster)
MANAGER_NAMES: list[str] = [
    "GridironGuru",
    "EndZoneEddie",
    "BlitzKrieg",
    "PuntReturnPat",
    "FourthAndLong",
    "HailMaryHank",
    "RedZoneRita",
    "TwoMinuteDrill",
    "PlayActionPam",
    "SackMaster",
    "WaiverWireWes",
    "BenchWarmerBo",
]

# Starting lineup slots, in Sleeper's roster_positions order
LINEUP_SLOTS: list[str] = ["QB", "RB", "RB", "WR", "WR", "TE", "FLEX", "K", "DEF"]
BENCH_SIZE = 6

# FLEX slots are filled from these positions
FLEX_POSITIONS: list[str] = ["RB", "WR", "TE"]

NFL_TEAMS: list[str] = [
    "ARI", "ATL", "BAL", "BUF", "CAR", "CHI", "CIN", "CLE",
    "DAL", "DEN", "DET", "GB", "HOU", "IND", "JAX", "KC",
    "LAC", "LAR", "LV", "MIA", "MIN", "NE", "NO", "NYG",
    "NYJ", "PHI", "PIT", "SEA", "SF", "TB", "TEN", "WAS",
]

# Per-position scoring: chance that a player scores on a given poll, and the
# mean size of that scoring play in fantasy points (exponentially distributed)
POSITION_SCORING: dict[str, dict[str, float]] = {
    "QB": {"probability": 0.35, "mean": 2.4},
    "RB": {"probability": 0.25, "mean": 2.0},
    "WR": {"probability": 0.25, "mean": 2.2},
    "TE": {"probability": 0.18, "mean": 1.8},
    "K": {"probability": 0.10, "mean": 3.0},
    "DEF": {"probability": 0.08, "mean": 2.0},
}

DEFAULT_TEAM_COUNT = 10

# Depth-chart labels used in simulated player names ("KC WR Second")
DEPTH_LABELS: list[str] = ["Starter", "Second", "Third"]

# Schedule-provider (ESPN) team ids, as served by its team roster endpoint
SCHEDULE_TEAMS: dict[int, str] = {
    1: "ATL", 2: "BUF", 3: "CHI", 4: "CIN", 5: "CLE", 6: "DAL", 7: "DEN", 8: "DET",
    9: "GB", 10: "TEN", 11: "IND", 12: "KC", 13: "LV", 14: "LAR", 15: "MIA", 16: "MIN",
    17: "NE", 18: "NO", 19: "NYG", 20: "NYJ", 21: "PHI", 22: "ARI", 23: "PIT", 24: "LAC",
    25: "SF", 26: "SEA", 27: "TB", 28: "WAS", 29: "CAR", 30: "JAX", 33: "BAL", 34: "HOU",
}

"""
Constants used across the rating calculation system.
"""

# Rating calculation constants
K = 32  # K-factor applied to every rated match
INITIAL_RATING = 1200  # Baseline for players with no rated history
RATING_SCALE = 400  # Logistic scale of the expected-score curve

# Team sizes per match type
TEAM_SIZE_SINGLES = 1
TEAM_SIZE_DOUBLES = 2

# coach_engine/constants.py

# Fatigue aggregation
DEFAULT_ROLLING_WINDOW_HOURS = 48.0

# Activity duration scaling (minutes)
SHORT_ACTIVITY_MINUTES = 20
LONG_ACTIVITY_MINUTES = 90

# Session budget
WARMUP_MINUTES = 5
MINUTES_PER_EXERCISE = 3.5  # sets + rest + changeover
MIN_EXERCISE_SLOTS = 1
MAX_EXERCISE_SLOTS = 8

# Desirability scoring
BASE_SCORE = 100.0
# Penalty per fatigue rank (none, low, medium, high, severe)
FATIGUE_PENALTIES = (0.0, 5.0, 15.0, 40.0, 80.0)
PRIMARY_PENALTY_WEIGHT = 0.5
# Primary muscle at or above this rank (high) removes the exercise outright
PRIMARY_BLOCK_RANK = 3
COMPOUND_BONUS = 10.0
MUSCLE_VARIETY_BONUS = 20.0

# Swap bonuses
SWAP_DISJOINT_EQUIPMENT_BONUS = 25.0
SWAP_MECHANICS_BONUS = 10.0

# Double progression increments (kg), keyed by WorkoutGoal value
WEIGHT_INCREMENTS_KG = {
    'strength': 2.5,
    'hypertrophy': 2.5,
    'endurance': 1.25,
    'general_fitness': 2.5,
}
DEFAULT_WEIGHT_INCREMENT_KG = 2.5

# Fatigue assigned to each trained muscle when a gym session is completed
GYM_SESSION_FATIGUE_RANK = 2  # medium
# Level injected by a manual override and the level at which it is skipped
MANUAL_OVERRIDE_FATIGUE_RANK = 3  # high
MANUAL_OVERRIDE_SKIP_RANK = 2  # medium

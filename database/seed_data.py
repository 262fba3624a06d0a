import psycopg2
import sys

from create_schema import get_conn_params

# Catalogue seeded into the exercises table. Muscle and equipment names are
# the stored values of coach_engine.models.MuscleGroup / Equipment.
EXERCISES_DATA = [
    # Chest
    {"name": "Barbell Bench Press", "primary_muscle": "chest", "secondary_muscles": ["triceps", "shoulders"],
     "required_equipment": ["barbell"], "is_compound": True,
     "notes": "Retract the shoulder blades and lower the bar to mid-chest."},
    {"name": "Dumbbell Incline Press", "primary_muscle": "chest", "secondary_muscles": ["shoulders", "triceps"],
     "required_equipment": ["dumbbell"], "is_compound": True, "notes": None},
    {"name": "Push-Up", "primary_muscle": "chest", "secondary_muscles": ["triceps", "shoulders", "core"],
     "required_equipment": [], "is_compound": True, "notes": "Keep a straight line from head to heels."},
    {"name": "Cable Fly", "primary_muscle": "chest", "secondary_muscles": ["shoulders"],
     "required_equipment": ["cables"], "is_compound": False, "notes": None},
    {"name": "Machine Chest Press", "primary_muscle": "chest", "secondary_muscles": ["triceps"],
     "required_equipment": ["machine"], "is_compound": True, "notes": None},
    # Back
    {"name": "Barbell Row", "primary_muscle": "back", "secondary_muscles": ["biceps", "forearms", "core"],
     "required_equipment": ["barbell"], "is_compound": True, "notes": "Hinge to roughly 45 degrees, pull to the lower ribs."},
    {"name": "Pull-Up", "primary_muscle": "back", "secondary_muscles": ["biceps", "forearms"],
     "required_equipment": [], "is_compound": True, "notes": None},
    {"name": "Lat Pulldown", "primary_muscle": "back", "secondary_muscles": ["biceps"],
     "required_equipment": ["cables"], "is_compound": True, "notes": None},
    {"name": "Single-Arm Dumbbell Row", "primary_muscle": "back", "secondary_muscles": ["biceps"],
     "required_equipment": ["dumbbell"], "is_compound": True, "notes": None},
    {"name": "Straight-Arm Pulldown", "primary_muscle": "back", "secondary_muscles": [],
     "required_equipment": ["cables"], "is_compound": False, "notes": None},
    # Legs
    {"name": "Barbell Back Squat", "primary_muscle": "quads", "secondary_muscles": ["glutes", "hamstrings", "core"],
     "required_equipment": ["barbell"], "is_compound": True, "notes": "Break at hips and knees together; keep the chest up."},
    {"name": "Goblet Squat", "primary_muscle": "quads", "secondary_muscles": ["glutes", "core"],
     "required_equipment": ["dumbbell"], "is_compound": True, "notes": None},
    {"name": "Leg Extension", "primary_muscle": "quads", "secondary_muscles": [],
     "required_equipment": ["machine"], "is_compound": False, "notes": None},
    {"name": "Bodyweight Split Squat", "primary_muscle": "quads", "secondary_muscles": ["glutes"],
     "required_equipment": [], "is_compound": True, "notes": None},
    {"name": "Romanian Deadlift", "primary_muscle": "hamstrings", "secondary_muscles": ["glutes", "back"],
     "required_equipment": ["barbell"], "is_compound": True, "notes": "Soft knees, push the hips back, bar close to the legs."},
    {"name": "Lying Leg Curl", "primary_muscle": "hamstrings", "secondary_muscles": ["calves"],
     "required_equipment": ["machine"], "is_compound": False, "notes": None},
    {"name": "Nordic Hamstring Curl", "primary_muscle": "hamstrings", "secondary_muscles": [],
     "required_equipment": [], "is_compound": False, "notes": None},
    {"name": "Hip Thrust", "primary_muscle": "glutes", "secondary_muscles": ["hamstrings"],
     "required_equipment": ["barbell"], "is_compound": True, "notes": None},
    {"name": "Glute Bridge", "primary_muscle": "glutes", "secondary_muscles": ["hamstrings", "core"],
     "required_equipment": [], "is_compound": False, "notes": None},
    {"name": "Kettlebell Swing", "primary_muscle": "glutes", "secondary_muscles": ["hamstrings", "back", "core"],
     "required_equipment": ["kettlebell"], "is_compound": True, "notes": None},
    {"name": "Standing Calf Raise", "primary_muscle": "calves", "secondary_muscles": [],
     "required_equipment": [], "is_compound": False, "notes": None},
    # Shoulders and arms
    {"name": "Overhead Press", "primary_muscle": "shoulders", "secondary_muscles": ["triceps", "core"],
     "required_equipment": ["barbell"], "is_compound": True, "notes": None},
    {"name": "Dumbbell Lateral Raise", "primary_muscle": "shoulders", "secondary_muscles": [],
     "required_equipment": ["dumbbell"], "is_compound": False, "notes": None},
    {"name": "Band Face Pull", "primary_muscle": "shoulders", "secondary_muscles": ["back"],
     "required_equipment": ["resistance_band"], "is_compound": False, "notes": None},
    {"name": "Dumbbell Curl", "primary_muscle": "biceps", "secondary_muscles": ["forearms"],
     "required_equipment": ["dumbbell"], "is_compound": False, "notes": None},
    {"name": "Cable Curl", "primary_muscle": "biceps", "secondary_muscles": ["forearms"],
     "required_equipment": ["cables"], "is_compound": False, "notes": None},
    {"name": "Triceps Pushdown", "primary_muscle": "triceps", "secondary_muscles": [],
     "required_equipment": ["cables"], "is_compound": False, "notes": None},
    {"name": "Bench Dip", "primary_muscle": "triceps", "secondary_muscles": ["chest", "shoulders"],
     "required_equipment": [], "is_compound": True, "notes": None},
    {"name": "Farmer's Carry", "primary_muscle": "forearms", "secondary_muscles": ["core", "shoulders"],
     "required_equipment": ["dumbbell"], "is_compound": True, "notes": None},
    # Core
    {"name": "Plank", "primary_muscle": "core", "secondary_muscles": ["shoulders"],
     "required_equipment": [], "is_compound": False, "notes": None},
    {"name": "Hanging Leg Raise", "primary_muscle": "core", "secondary_muscles": ["hip_flexors", "forearms"],
     "required_equipment": [], "is_compound": False, "notes": None},
    {"name": "Cable Woodchop", "primary_muscle": "core", "secondary_muscles": ["shoulders"],
     "required_equipment": ["cables"], "is_compound": False, "notes": None},
]


def seed_exercises():
    """Connects to the PostgreSQL database and seeds the exercises table."""
    conn = None
    processed_count = 0
    conn_params, _ = get_conn_params()
    try:
        conn = psycopg2.connect(**conn_params)
        print(f"Successfully connected to database '{conn_params.get('dbname')}' on host '{conn_params.get('host')}' for seeding.")

        with conn.cursor() as cur:
            insert_query = """
                INSERT INTO exercises (
                    name, primary_muscle, secondary_muscles, required_equipment, is_compound, notes
                ) VALUES (
                    %(name)s, %(primary_muscle)s, %(secondary_muscles)s, %(required_equipment)s,
                    %(is_compound)s, %(notes)s
                ) ON CONFLICT (name) DO UPDATE SET
                    primary_muscle = EXCLUDED.primary_muscle,
                    secondary_muscles = EXCLUDED.secondary_muscles,
                    required_equipment = EXCLUDED.required_equipment,
                    is_compound = EXCLUDED.is_compound,
                    notes = EXCLUDED.notes;
            """
            for exercise in EXERCISES_DATA:
                cur.execute(insert_query, exercise)
                processed_count += cur.rowcount

        conn.commit()
        print(f"Successfully processed (inserted or updated) {processed_count} exercises in the 'exercises' table.")

    except psycopg2.OperationalError as e:
        print(f"Error connecting to the database: {e}")
        sys.exit(1)
    except psycopg2.Error as e:
        print(f"Error during database operation: {e}")
        if conn:
            conn.rollback()
        sys.exit(1)
    finally:
        if conn:
            conn.close()
            print("Database connection closed after seeding.")

if __name__ == "__main__":
    print("Attempting to seed exercise catalogue...")
    seed_exercises()
    print("Seeding script finished.")

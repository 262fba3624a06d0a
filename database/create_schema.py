import psycopg2
import os
import sys
from urllib.parse import urlparse

# Database connection details
DATABASE_URL = os.getenv("DATABASE_URL")
DB_NAME_FALLBACK = os.getenv("POSTGRES_DB", "agilecoach")
DB_USER_FALLBACK = os.getenv("POSTGRES_USER", "user")
DB_PASSWORD_FALLBACK = os.getenv("POSTGRES_PASSWORD", "password")
DB_HOST_FALLBACK = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT_FALLBACK = os.getenv("POSTGRES_PORT", "5432")


def get_conn_params():
    """Returns (params, description) from DATABASE_URL or the POSTGRES_* variables."""
    if DATABASE_URL:
        try:
            url = urlparse(DATABASE_URL)
            params = {
                'dbname': url.path[1:],
                'user': url.username,
                'password': url.password,
                'host': url.hostname,
                'port': url.port
            }
            return params, f"DATABASE_URL to host '{url.hostname}'"
        except Exception as e:
            print(f"Warning: Could not parse DATABASE_URL ('{DATABASE_URL}'): {e}. Falling back to POSTGRES_* variables.")
    params = {
        'dbname': DB_NAME_FALLBACK,
        'user': DB_USER_FALLBACK,
        'password': DB_PASSWORD_FALLBACK,
        'host': DB_HOST_FALLBACK,
        'port': DB_PORT_FALLBACK
    }
    return params, f"POSTGRES_* variables to host '{DB_HOST_FALLBACK}'"


# SQL commands to create tables and indexes
SQL_COMMANDS = """
CREATE EXTENSION IF NOT EXISTS "pgcrypto";

-- Exercise catalogue (reference data shared by every session)
CREATE TABLE IF NOT EXISTS exercises (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(255) UNIQUE NOT NULL,
    primary_muscle VARCHAR(50) NOT NULL,
    secondary_muscles TEXT[] NOT NULL DEFAULT '{}',
    required_equipment TEXT[] NOT NULL DEFAULT '{}',
    is_compound BOOLEAN NOT NULL DEFAULT FALSE,
    notes TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_exercises_primary_muscle ON exercises(primary_muscle);

-- Single-row fatigue profile settings
CREATE TABLE IF NOT EXISTS fatigue_profile (
    id SMALLINT PRIMARY KEY DEFAULT 1 CHECK (id = 1),
    rolling_window_hours NUMERIC(6, 2) NOT NULL DEFAULT 48 CHECK (rolling_window_hours > 0),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);
INSERT INTO fatigue_profile (id) VALUES (1) ON CONFLICT (id) DO NOTHING;

-- Fatigue events: append-only, deletion is the only other mutation
CREATE TABLE IF NOT EXISTS fatigue_events (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    occurred_at TIMESTAMPTZ NOT NULL,
    source_kind VARCHAR(32) NOT NULL,
    source_name VARCHAR(255) NOT NULL,
    muscle_levels JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (occurred_at, source_name)
);
CREATE INDEX IF NOT EXISTS idx_fatigue_events_occurred_at ON fatigue_events(occurred_at DESC);

-- Logged gym sessions
CREATE TABLE IF NOT EXISTS workout_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(255),
    started_at TIMESTAMPTZ NOT NULL,
    completed_at TIMESTAMPTZ,
    duration_seconds INTEGER,
    available_equipment TEXT[] NOT NULL DEFAULT '{}',
    target_duration_minutes INTEGER,
    notes TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS exercise_sets (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    session_id UUID NOT NULL REFERENCES workout_sessions(id) ON DELETE CASCADE,
    exercise_id UUID REFERENCES exercises(id) ON DELETE SET NULL,
    order_index INTEGER NOT NULL,
    weight_kg NUMERIC(6, 2) NOT NULL CHECK (weight_kg >= 0),
    reps INTEGER NOT NULL CHECK (reps >= 0),
    reps_in_reserve INTEGER,
    rpe NUMERIC(3, 1) CHECK (rpe BETWEEN 1 AND 10),
    tempo VARCHAR(16),
    is_warmup BOOLEAN NOT NULL DEFAULT FALSE,
    completed_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_exercise_sets_history
    ON exercise_sets(exercise_id, completed_at DESC) WHERE is_warmup = FALSE;
"""

def create_schema():
    conn = None
    conn_params, connection_method = get_conn_params()
    try:
        print(f"Attempting to connect using {connection_method}.")
        conn = psycopg2.connect(**conn_params)
        print(f"Successfully connected to database '{conn_params.get('dbname')}' on host '{conn_params.get('host')}'.")
        with conn.cursor() as cur:
            cur.execute(SQL_COMMANDS)
        conn.commit()
        print("Schema created successfully (or already existed).")
    except psycopg2.OperationalError as e:
        print(f"Error connecting to the database using method '{connection_method}': {e}")
        sys.exit(1)
    except psycopg2.Error as e:
        print(f"Error during database operation (using '{connection_method}'): {e}")
        if conn:
            conn.rollback()
        sys.exit(1)
    finally:
        if conn:
            conn.close()

if __name__ == "__main__":
    print("Attempting to create/update database schema...")
    create_schema()
    print("Script finished.")

from flask import Flask, jsonify
import psycopg2
import psycopg2.pool
import os
from urllib.parse import urlparse
import logging
import atexit
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException

from coach_engine.constants import DEFAULT_ROLLING_WINDOW_HOURS
from coach_engine.errors import CollaboratorError, ConfigurationError
from coach_engine.fatigue import validate_window_hours
from coach_engine.models import WorkoutGoal

app = Flask(__name__)

# Configure logging
logging.basicConfig(level=logging.INFO)
# Use app.logger directly as it's configured by Flask
logger = app.logger


# --- Engine Configuration ---
def load_engine_config():
    """
    Reads and validates the engine settings from the environment.

    Raises:
        ConfigurationError: if the rolling window or default goal is invalid.
    """
    window_hours = validate_window_hours(os.getenv("FATIGUE_WINDOW_HOURS", DEFAULT_ROLLING_WINDOW_HOURS))
    default_goal = WorkoutGoal.parse(os.getenv("DEFAULT_WORKOUT_GOAL", WorkoutGoal.HYPERTROPHY.value))
    return {
        'FATIGUE_WINDOW_HOURS': window_hours,
        'DEFAULT_WORKOUT_GOAL': default_goal,
    }

app.config.update(load_engine_config())  # Invalid settings fail at start-up


# --- Rate Limiter Configuration ---
# In-memory by default; point at Redis (a different DB number than RQ) in production
RATELIMIT_STORAGE_URL = os.getenv("RATELIMIT_STORAGE_URL", "memory://")
app.config['RATELIMIT_ENABLED'] = os.getenv("RATELIMIT_ENABLED", "true").lower() != "false"
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per day", "200 per hour"],
    storage_uri=RATELIMIT_STORAGE_URL,
    strategy="fixed-window",
)
limiter.init_app(app)


# --- Database Connection Pool Configuration ---
MIN_DB_CONNECTIONS = 1
MAX_DB_CONNECTIONS = 10
db_pool = None

def get_db_connection_params():
    """Determines database connection parameters."""
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        try:
            url = urlparse(database_url)
            return {
                'dbname': url.path[1:],
                'user': url.username,
                'password': url.password,
                'host': url.hostname,
                'port': url.port
            }
        except Exception as e:
            logger.error(f"Failed to parse DATABASE_URL: {e}. Falling back to POSTGRES_* vars.")

    return {
        'dbname': os.getenv("POSTGRES_DB"),
        'user': os.getenv("POSTGRES_USER"),
        'password': os.getenv("POSTGRES_PASSWORD"),
        'host': os.getenv("POSTGRES_HOST"),
        'port': os.getenv("POSTGRES_PORT", "5432")
    }

def init_db_pool():
    """Initializes the database connection pool."""
    global db_pool
    if db_pool is None:
        try:
            params = get_db_connection_params()
            if not all(params.values()):
                logger.error("Database connection parameters are incomplete. Pool not initialized.")
                return

            logger.info(f"Initializing database connection pool for host '{params.get('host')}' db '{params.get('dbname')}'")
            db_pool = psycopg2.pool.SimpleConnectionPool(
                MIN_DB_CONNECTIONS,
                MAX_DB_CONNECTIONS,
                **params
            )
            logger.info("Database connection pool initialized successfully.")
        except psycopg2.OperationalError as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise

init_db_pool()  # Initialize the pool when the app module is loaded

@atexit.register
def close_db_pool():
    global db_pool
    if db_pool:
        logger.info("Closing database connection pool.")
        db_pool.closeall()
        db_pool = None


# --- Database Connection Helper ---
def get_db_connection():
    """Gets a connection from the database pool."""
    if db_pool is None:
        logger.error("Database pool is not initialized. Attempting to re-initialize.")
        init_db_pool()
        if db_pool is None:
            logger.critical("Failed to re-initialize database pool. Cannot get connection.")
            raise psycopg2.OperationalError("Database pool not available.")
    try:
        return db_pool.getconn()
    except psycopg2.pool.PoolError as e:
        logger.error(f"Failed to get connection from pool: {e}")
        raise

def release_db_connection(conn):
    """Releases a connection back to the database pool."""
    if db_pool and conn:
        try:
            db_pool.putconn(conn)
        except psycopg2.pool.PoolError as e:
            logger.error(f"Error releasing connection back to pool: {e}")


# --- Error Handlers ---
@app.errorhandler(ConfigurationError)
def handle_configuration_error(e):
    logger.warning(f"Rejected invalid input: {e}")
    return jsonify(error=str(e)), 400


@app.errorhandler(CollaboratorError)
def handle_collaborator_error(e):
    logger.error(f"Upstream collaborator failed: {e}")
    return jsonify(error=str(e)), 503


@app.errorhandler(Exception)
def handle_exception(e):
    """Generic exception handler."""
    if isinstance(e, HTTPException):
        return jsonify(error=e.description), e.code
    logger.error(f"Unhandled exception: {e}", exc_info=True)
    if isinstance(e, psycopg2.pool.PoolError):
        return jsonify(error="Database pool error"), 503
    if isinstance(e, psycopg2.OperationalError):
        return jsonify(error="Database connection error"), 503
    return jsonify(error="An internal server error occurred"), 500


@app.route('/health', methods=['GET'])
@limiter.exempt
def health():
    return jsonify(status="ok", rolling_window_hours=app.config['FATIGUE_WINDOW_HOURS']), 200


# Import blueprints after pool initialization
from coach_engine.blueprints.fatigue import fatigue_bp  # noqa: E402
from coach_engine.blueprints.workouts import workouts_bp  # noqa: E402

app.register_blueprint(fatigue_bp)
app.register_blueprint(workouts_bp)

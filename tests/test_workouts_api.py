import pytest
import uuid
from datetime import datetime, timezone, timedelta

from coach_engine.blueprints import workouts as workouts_bp
from coach_engine.catalogue import InMemoryExerciseRepository
from coach_engine.errors import CatalogueUnavailableError
from coach_engine.fatigue import FatigueProfile
from coach_engine.models import Equipment, Exercise, FatigueEvent, FatigueLevel, FatigueSourceKind, MuscleGroup

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)
M = MuscleGroup

SQUAT = Exercise("Back Squat", M.QUADS, {M.GLUTES}, {Equipment.BARBELL}, True)
BENCH = Exercise("Bench Press", M.CHEST, {M.TRICEPS}, {Equipment.BARBELL}, True)
PUSH_UP = Exercise("Push-Up", M.CHEST, {M.TRICEPS}, set(), True)
CURL = Exercise("Dumbbell Curl", M.BICEPS, set(), {Equipment.DUMBBELL})
PLANK = Exercise("Plank", M.CORE)
CATALOGUE = [SQUAT, BENCH, PUSH_UP, CURL, PLANK]


class FakeConn:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self): self.commits += 1
    def rollback(self): self.rollbacks += 1


class FakeExerciseRepository(InMemoryExerciseRepository):
    """Stands in for the Postgres repository; takes the connection and ignores it."""

    def __init__(self, conn):
        super().__init__(CATALOGUE)

    def fetch_exercises(self, available_equipment=None):
        if available_equipment is None:
            return self.exercises
        return super().fetch_exercises(available_equipment)

    def get_exercise(self, exercise_id):
        return self.get(exercise_id)

    def get_exercises(self, exercise_ids):
        return {ex.id: ex for ex in self.exercises if ex.id in set(exercise_ids)}


@pytest.fixture
def db(monkeypatch):
    state = {'conn': FakeConn(), 'profile': FatigueProfile(), 'saved_events': [], 'sessions': []}

    def fake_save_events(conn, events):
        events = list(events)
        state['saved_events'].extend(events)
        return len(events)

    monkeypatch.setattr(workouts_bp, "get_db_connection", lambda: state['conn'])
    monkeypatch.setattr(workouts_bp, "release_db_connection", lambda conn: None)
    monkeypatch.setattr(workouts_bp, "load_fatigue_profile", lambda conn, window=None: state['profile'])
    monkeypatch.setattr(workouts_bp, "save_fatigue_events", fake_save_events)
    monkeypatch.setattr(workouts_bp, "save_workout_session", lambda conn, session: state['sessions'].append(session))
    monkeypatch.setattr(workouts_bp, "PostgresExerciseRepository", FakeExerciseRepository)
    return state


def generate(client, **overrides):
    body = {
        'available_minutes': 30,
        'goal': 'strength',
        'available_equipment': ['barbell', 'dumbbell'],
        'at': NOW.isoformat(),
    }
    body.update(overrides)
    return client.post("/v1/workouts/generate", json=body)


# --- Generation ---

def test_generate_returns_ranked_slots(client, db):
    resp = generate(client)
    assert resp.status_code == 200
    data = resp.get_json()
    assert data['goal'] == 'strength'
    assert data['max_slots'] == 7
    names = [s['exercise']['name'] for s in data['slots']]
    # Compounds first even when they share a primary muscle; isolation fills the rest.
    assert names == ["Back Squat", "Bench Press", "Push-Up", "Dumbbell Curl", "Plank"]
    first = data['slots'][0]
    assert first['recommended_sets'] == 5
    assert first['recommended_reps'] == {'lower': 3, 'upper': 5}
    assert first['progression_target']['strategy'] == 'first_time'
    assert first['score']['total'] == pytest.approx(130.0)
    assert data['message'] is None


def test_generate_uses_default_goal(client, db):
    resp = generate(client, goal=None)
    assert resp.status_code == 200
    assert resp.get_json()['goal'] == 'hypertrophy'


def test_generate_avoids_fatigued_primary(client, db):
    db['profile'].add_events([FatigueEvent(
        timestamp=NOW - timedelta(hours=1),
        source_kind=FatigueSourceKind.EXTERNAL_SPORT,
        source_name="Soccer",
        muscle_levels={M.QUADS: FatigueLevel.SEVERE},
    )])
    resp = generate(client)
    names = [s['exercise']['name'] for s in resp.get_json()['slots']]
    assert "Back Squat" not in names


def test_generate_empty_result_has_message(client, db):
    db['profile'].add_events([FatigueEvent(
        timestamp=NOW,
        source_kind=FatigueSourceKind.EXTERNAL_SPORT,
        source_name="Everything",
        muscle_levels={m: FatigueLevel.HIGH for m in MuscleGroup},
    )])
    resp = generate(client)
    assert resp.status_code == 200
    data = resp.get_json()
    assert data['slots'] == []
    assert data['message']


@pytest.mark.parametrize("overrides", [
    {'available_minutes': "forty"},
    {'goal': 'bulking'},
    {'available_equipment': ['trampoline']},
    {'available_equipment': None},
])
def test_generate_rejects_bad_input(client, db, overrides):
    resp = generate(client, **overrides)
    assert resp.status_code == 400


def test_generate_requires_minutes(client, db):
    resp = client.post("/v1/workouts/generate", json={'available_equipment': []})
    assert resp.status_code == 400


def test_generate_catalogue_outage_is_503(client, db, monkeypatch):
    class BrokenRepository(FakeExerciseRepository):
        def fetch_exercises(self, available_equipment=None):
            raise CatalogueUnavailableError("catalogue offline")
    monkeypatch.setattr(workouts_bp, "PostgresExerciseRepository", BrokenRepository)
    resp = generate(client)
    assert resp.status_code == 503


# --- Alternatives ---

def test_alternative_swaps_to_same_muscle(client, db):
    resp = client.post("/v1/workouts/alternative", json={
        'exercise_id': str(BENCH.id), 'goal': 'hypertrophy', 'available_equipment': ['barbell'],
    })
    assert resp.status_code == 200
    alternative = resp.get_json()['alternative']
    assert alternative['exercise']['name'] == "Push-Up"
    assert alternative['recommended_reps'] == {'lower': 8, 'upper': 12}


def test_alternative_none_available(client, db):
    resp = client.post("/v1/workouts/alternative", json={
        'exercise_id': str(CURL.id), 'goal': 'hypertrophy', 'available_equipment': ['dumbbell'],
    })
    assert resp.status_code == 200
    assert resp.get_json()['alternative'] is None


def test_alternative_unknown_exercise(client, db):
    resp = client.post("/v1/workouts/alternative", json={
        'exercise_id': str(uuid.uuid4()), 'goal': 'strength', 'available_equipment': [],
    })
    assert resp.status_code == 404


def test_alternative_bad_id(client, db):
    resp = client.post("/v1/workouts/alternative", json={
        'exercise_id': 'bench', 'goal': 'strength', 'available_equipment': [],
    })
    assert resp.status_code == 400


# --- Completion ---

def completion_body(**overrides):
    body = {
        'name': "Push Day",
        'started_at': '2024-05-02T17:00:00Z',
        'completed_at': '2024-05-02T17:45:00Z',
        'sets': [
            {'exercise_id': str(BENCH.id), 'weight': 40, 'reps': 10, 'is_warmup': True},
            {'exercise_id': str(BENCH.id), 'weight': 80, 'reps': 5, 'rpe': 8},
            {'exercise_id': str(CURL.id), 'weight': 14, 'reps': 12},
        ],
    }
    body.update(overrides)
    return body


def test_complete_stores_session_and_gym_event(client, db):
    resp = client.post("/v1/workouts/complete", json=completion_body())
    assert resp.status_code == 201
    data = resp.get_json()
    assert data['session']['name'] == "Push Day"
    assert data['session']['duration_minutes'] == 45
    assert data['session']['total_volume'] == pytest.approx(400 + 400 + 168)
    event = data['fatigue_event']
    assert event['source_kind'] == 'gym'
    assert event['source_name'] == "Push Day"
    assert event['muscle_levels'] == {'biceps': 2, 'chest': 2}
    assert len(db['sessions']) == 1
    assert len(db['saved_events']) == 1
    assert len(db['profile']) == 1
    assert db['conn'].commits == 1


def test_complete_accepts_numeric_strings_for_effort(client, db):
    body = completion_body(sets=[{'exercise_id': str(BENCH.id), 'weight': 80, 'reps': 5, 'rpe': '8.5', 'reps_in_reserve': '2'}])
    resp = client.post("/v1/workouts/complete", json=body)
    assert resp.status_code == 201
    logged = db['sessions'][0].sets[0]
    assert logged.rpe == pytest.approx(8.5)
    assert logged.reps_in_reserve == 2


def test_complete_unknown_exercise(client, db):
    body = completion_body(sets=[{'exercise_id': str(uuid.uuid4()), 'weight': 20, 'reps': 10}])
    resp = client.post("/v1/workouts/complete", json=body)
    assert resp.status_code == 400
    assert db['sessions'] == []


@pytest.mark.parametrize("sets", [
    [],
    [{'exercise_id': str(BENCH.id), 'weight': 80}],
    [{'exercise_id': str(BENCH.id), 'weight': -5, 'reps': 5}],
    [{'exercise_id': str(BENCH.id), 'weight': 80, 'reps': 5, 'rpe': 12}],
    [{'exercise_id': str(BENCH.id), 'weight': 80, 'reps': 5, 'rpe': 'hard'}],
    [{'exercise_id': str(BENCH.id), 'weight': 80, 'reps': 5, 'reps_in_reserve': 'two'}],
])
def test_complete_rejects_bad_sets(client, db, sets):
    resp = client.post("/v1/workouts/complete", json=completion_body(sets=sets))
    assert resp.status_code == 400


# --- Catalogue listing ---

def test_list_exercises_filters_by_equipment(client, db):
    resp = client.get("/v1/exercises?equipment=dumbbell")
    assert resp.status_code == 200
    assert [e['name'] for e in resp.get_json()] == ["Push-Up", "Dumbbell Curl", "Plank"]


def test_list_exercises_unfiltered(client, db):
    resp = client.get("/v1/exercises")
    assert len(resp.get_json()) == len(CATALOGUE)


def test_list_exercises_unknown_equipment(client, db):
    resp = client.get("/v1/exercises?equipment=trampoline")
    assert resp.status_code == 400

from flask import Blueprint, redirect, render_template, url_for, abort, request, current_app, send_from_directory
from contextlib import closing
import os
import time
import uuid
from typing import Any, Dict, List, Optional

from werkzeug.utils import secure_filename

from . import auth
from . import calendar
from .scoring import compute_leaderboard, score_season_prediction
from . import datastore as ds


bp = Blueprint('main', __name__)

ALLOWED_AVATAR_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}

# Simple in-process cache for the overall leaderboard
_LEADERBOARD_CACHE: Dict[str, tuple] = {}


def _cache_get_leaderboard() -> Optional[List[Dict[str, Any]]]:
    entry = _LEADERBOARD_CACHE.get("table")
    if not entry:
        return None
    exp, value = entry
    if exp < time.time():
        _LEADERBOARD_CACHE.pop("table", None)
        return None
    return value


def _cache_set_leaderboard(table: List[Dict[str, Any]]) -> None:
    ttl = int(current_app.config.get("CACHE_TTL_LEADERBOARD", 60))
    if ttl <= 0:
        return
    _LEADERBOARD_CACHE["table"] = (time.time() + ttl, table)


def cache_clear_all() -> None:
    _LEADERBOARD_CACHE.clear()


def _season() -> int:
    return int(current_app.config["SEASON_YEAR"])


def _json_slug_list(payload: Dict[str, Any], key: str = "drivers") -> List[str]:
    """Validate a JSON list of unique driver slugs or abort with 400."""
    raw = payload.get(key)
    if not isinstance(raw, list) or not all(isinstance(s, str) and s.strip() for s in raw):
        abort(400, description=f"'{key}' must be a list of driver ids")
    slugs = [s.strip() for s in raw]
    if len(set(slugs)) != len(slugs):
        abort(400, description="Each driver can only be ranked once")
    return slugs


def _error(message: str, status: int = 400):
    return {"error": message}, status


@bp.app_errorhandler(400)
def _bad_request(exc):
    if request.path.startswith("/api/"):
        return {"error": getattr(exc, "description", "Bad request")}, 400
    return exc


@bp.route('/health/db')
def health_db():
    """Database connectivity health check.

    Always returns HTTP 200 with a JSON body describing connection status.
    """
    url = os.environ.get('DATABASE_URL')
    if not url:
        return {
            'connected': False,
            'status': 'no_database_url',
            'message': 'DATABASE_URL is not set.'
        }
    try:
        import psycopg2  # type: ignore
        with closing(psycopg2.connect(url, connect_timeout=5)) as conn:
            with conn.cursor() as cur:
                cur.execute('SELECT current_user, current_database(), version()')
                user, db, ver = cur.fetchone()
            return {
                'connected': True,
                'status': 'ok',
                'user': user,
                'database': db,
                'server_version': (ver or '').split('\n')[0],
            }
    except Exception as e:  # pragma: no cover - best-effort health output
        return {
            'connected': False,
            'status': 'error',
            'error': str(e),
        }


@bp.route('/')
@bp.route('/invite')
def landing():
    return render_template('landing.html', title=f'F1 Vote {_season()}')


@bp.route('/privacy')
def privacy():
    return render_template('privacy.html', title='Privacy')


# ---------------------------------------------------------------- accounts

def _profile_options() -> Dict[str, Any]:
    teams = ds.list_teams()
    drivers = ds.list_drivers()
    return {'teams': teams, 'drivers': drivers}


@bp.route('/register', methods=['GET', 'POST'])
def register():
    if request.method == 'GET':
        return render_template('register.html', title='Register', form={}, error=None, **_profile_options())

    form = request.form
    name = (form.get('name') or '').strip()
    username = (form.get('username') or '').strip() or name
    password = form.get('password') or ''
    team_name = form.get('team') or ''
    driver_slug = form.get('favorite_driver') or ''

    error = None
    if not username or not password or not name:
        error = 'Missing required fields'
    elif ds.get_user_by_username(username):
        error = 'Username is already taken'
    if error:
        return render_template('register.html', title='Register', form=form, error=error, **_profile_options()), 400

    team = ds.get_team_by_name(team_name)
    driver = ds.get_driver(driver_slug)
    user = ds.create_user(
        username,
        auth.hash_password(password),
        name,
        team_id=team['id'] if team else None,
        favorite_driver_slug=driver['slug'] if driver else None,
    )
    auth.login_user(user)
    current_app.logger.info("register user=%s username=%s", user['id'], username)
    return redirect(url_for('main.season'))


@bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'GET':
        return render_template('login.html', title='Log in', error=None, username='')

    username = (request.form.get('username') or '').strip()
    password = request.form.get('password') or ''
    if not username or not password:
        return render_template('login.html', title='Log in', error='Missing login details', username=username), 400

    user = ds.get_user_by_username(username)
    if not user or not auth.verify_password(user.get('password_hash'), password):
        current_app.logger.info("login_failed username=%s", username)
        return render_template('login.html', title='Log in', error='Invalid username or password', username=username), 400

    auth.login_user(user)
    current_app.logger.info("login user=%s admin=%s", user['id'], bool(user.get('is_admin')))
    if user.get('is_admin'):
        return redirect(url_for('admin.dashboard'))
    return redirect(url_for('main.calendar_page'))


@bp.route('/logout', methods=['POST'])
def logout():
    auth.logout_user()
    return redirect(url_for('main.login'))


@bp.route('/profile', methods=['GET', 'POST'])
def profile():
    user = auth.current_user()
    error = None
    status = 200
    if request.method == 'POST':
        name = (request.form.get('name') or '').strip()
        if not name:
            error = 'Name is required'
            status = 400
        else:
            team = ds.get_team_by_name(request.form.get('team') or '')
            driver = ds.get_driver(request.form.get('favorite_driver') or '')
            user = ds.update_user_profile(
                user['id'],
                name,
                team['id'] if team else None,
                driver['slug'] if driver else None,
            )
            current_app.logger.info("profile_update user=%s", user['id'])
            return redirect(url_for('main.profile'))
    breadcrumbs = [('Profile', None)]
    return render_template(
        'profile.html',
        title='Profile',
        breadcrumbs=breadcrumbs,
        user=user,
        avatar=auth.avatar_url(user),
        error=error,
        **_profile_options(),
    ), status


@bp.route('/profile/avatar', methods=['POST'])
def upload_avatar():
    user = auth.current_user()
    file = request.files.get('avatar')
    if file is None or not file.filename:
        abort(400, description='No file uploaded')
    filename = secure_filename(file.filename)
    ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if ext not in ALLOWED_AVATAR_EXTENSIONS:
        abort(400, description='Unsupported image type')
    upload_dir = current_app.config['UPLOAD_DIR']
    os.makedirs(upload_dir, exist_ok=True)
    stored = f"{user['id']}_{uuid.uuid4().hex}.{ext}"
    file.save(os.path.join(upload_dir, stored))
    ds.update_user_avatar(user['id'], url_for('main.uploaded_file', filename=stored))
    previous = user.get('avatar') or ''
    if previous.startswith('/uploads/'):
        old_path = os.path.join(upload_dir, os.path.basename(previous))
        if os.path.isfile(old_path):
            os.remove(old_path)
    current_app.logger.info("avatar_upload user=%s file=%s", user['id'], stored)
    return redirect(url_for('main.profile'))


@bp.route('/uploads/<path:filename>')
def uploaded_file(filename):
    ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if ext not in ALLOWED_AVATAR_EXTENSIONS:
        abort(404)
    # send_from_directory rejects paths escaping the upload dir with 404
    return send_from_directory(current_app.config['UPLOAD_DIR'], filename, max_age=86400)


# ---------------------------------------------------------------- calendar

@bp.route('/calendar')
def calendar_page():
    user = auth.current_user()
    now = calendar.utcnow()
    races = ds.list_races()
    my_scores = {s['race_round']: s['total_points'] for s in ds.list_user_scores(user['id'])}
    rows = []
    for race in races:
        rows.append({
            **race,
            'status': calendar.race_status(race, races, now),
            'countdown': calendar.countdown(race['date'], now),
            'my_points': my_scores.get(race['round']),
        })
    breadcrumbs = [('Calendar', None)]
    return render_template(
        'calendar.html',
        title='Calendar',
        breadcrumbs=breadcrumbs,
        races=rows,
        next_round=calendar.next_round(races, now),
    )


# ---------------------------------------------------------------- season picks

def _season_payload(user: Dict[str, Any]) -> Dict[str, Any]:
    votes = ds.list_season_votes(user['id'], _season())
    picked = {v['slug'] for v in votes}
    available = [d for d in ds.list_drivers(active_season=True) if d['slug'] not in picked]
    return {'votes': votes, 'available': available, 'locked': auth.season_locked()}


@bp.route('/season')
def season():
    user = auth.current_user()
    breadcrumbs = [('Season', None)]
    return render_template('season.html', title=f'Season {_season()}', breadcrumbs=breadcrumbs, **_season_payload(user))


@bp.route('/api/season/votes', methods=['GET'])
@auth.login_required
def season_votes_get():
    data = _season_payload(auth.current_user())
    return {
        'locked': data['locked'],
        'votes': [
            {'position': v['position'], 'driver': v['slug'], 'name': v['name'], 'team': v['team_name']}
            for v in data['votes']
        ],
    }


@bp.route('/api/season/votes', methods=['POST'])
@auth.login_required
def season_vote_add():
    user = auth.current_user()
    if auth.season_locked():
        return _error('The season has started; picks are locked', 423)
    payload = request.get_json(silent=True) or {}
    slug = (payload.get('driver') or '').strip()
    driver = ds.get_driver(slug)
    if not driver or not driver.get('active_season'):
        return _error(f'Unknown driver: {slug}')
    position = ds.add_season_vote(user['id'], slug, _season())
    if position is None:
        return _error('This driver is already in your picks', 409)
    current_app.logger.info("season_vote_add user=%s driver=%s position=%s", user['id'], slug, position)
    return {'status': 'ok', 'position': position}


@bp.route('/api/season/votes/<slug>', methods=['DELETE'])
@auth.login_required
def season_vote_remove(slug):
    user = auth.current_user()
    if auth.season_locked():
        return _error('The season has started; picks are locked', 423)
    ds.remove_season_vote(user['id'], slug, _season())
    current_app.logger.info("season_vote_remove user=%s driver=%s", user['id'], slug)
    return {'status': 'ok'}


@bp.route('/api/season/votes', methods=['PUT'])
@auth.login_required
def season_vote_reorder():
    user = auth.current_user()
    if auth.season_locked():
        return _error('The season has started; picks are locked', 423)
    slugs = _json_slug_list(request.get_json(silent=True) or {})
    known = {d['slug'] for d in ds.list_drivers(active_season=True)}
    unknown = [s for s in slugs if s not in known]
    if unknown:
        return _error(f"Unknown drivers: {', '.join(unknown)}")
    ds.replace_season_votes(user['id'], _season(), slugs)
    current_app.logger.info("season_vote_reorder user=%s count=%s", user['id'], len(slugs))
    return {'status': 'ok'}


# ---------------------------------------------------------------- race ballots

def _voter_status(round_no: int) -> List[Dict[str, Any]]:
    """Every player with whether they have a ballot for ``round_no``."""
    voted = ds.race_voter_ids(round_no)
    return [
        {
            'id': p['id'],
            'name': p.get('name'),
            'avatar': auth.avatar_url(p),
            'team': p.get('team_name'),
            'has_voted': p['id'] in voted,
        }
        for p in ds.list_players()
    ]


@bp.route('/race/<int:round_no>')
def race_vote(round_no):
    user = auth.current_user()
    race = ds.get_race(round_no)
    if race is None:
        abort(404)
    now = calendar.utcnow()
    drivers = ds.list_drivers(active=True, order_by='team')
    by_slug = {d['slug']: d for d in drivers}
    ballot = [s for s in ds.get_race_ballot(user['id'], round_no) if s in by_slug]
    picked = set(ballot)
    ordered = [by_slug[s] for s in ballot] + [d for d in drivers if d['slug'] not in picked]
    breadcrumbs = [('Calendar', url_for('main.calendar_page')), (race['name'], None)]
    return render_template(
        'race.html',
        title=race['name'],
        breadcrumbs=breadcrumbs,
        race=race,
        drivers=ordered,
        has_ballot=bool(ballot),
        locked=calendar.is_race_locked(race, now),
        fp1_countdown=calendar.countdown(calendar.fp1_start(race), now),
        voters=_voter_status(round_no),
    )


@bp.route('/api/races/<int:round_no>/votes', methods=['POST'])
@auth.login_required
def race_vote_save(round_no):
    user = auth.current_user()
    if user.get('is_admin'):
        return _error('Admins cannot vote', 403)
    race = ds.get_race(round_no)
    if race is None:
        abort(404)
    if calendar.is_race_locked(race, calendar.utcnow()):
        return _error('Voting for this race is closed', 423)
    slugs = _json_slug_list(request.get_json(silent=True) or {})
    if not slugs:
        return _error('Rank at least one driver')
    known = {d['slug'] for d in ds.list_drivers(active=True)}
    unknown = [s for s in slugs if s not in known]
    if unknown:
        return _error(f"Unknown drivers: {', '.join(unknown)}")
    ds.replace_race_votes(user['id'], round_no, slugs)
    current_app.logger.info("race_vote_save user=%s round=%s count=%s", user['id'], round_no, len(slugs))
    return {'status': 'ok', 'count': len(slugs)}


@bp.route('/api/races/<int:round_no>/voters')
@auth.login_required
def race_voters(round_no):
    if auth.current_user().get('is_admin'):
        return _error('Voter status is for players only', 403)
    if ds.get_race(round_no) is None:
        abort(404)
    return {'voters': _voter_status(round_no)}


@bp.route('/race/<int:round_no>/results')
def race_results(round_no):
    user = auth.current_user()
    race = ds.get_race(round_no)
    if race is None:
        abort(404)
    drivers = {d['slug']: d for d in ds.list_drivers()}
    scores = []
    mine = None
    if race['completed']:
        for row in ds.list_race_scores(round_no):
            entry = {**row, 'avatar': auth.avatar_url({'avatar': row.get('avatar'), 'name': row.get('user_name')})}
            scores.append(entry)
            if row['user_id'] == user['id']:
                mine = entry
    breadcrumbs = [('Calendar', url_for('main.calendar_page')), (race['name'], url_for('main.race_vote', round_no=round_no)), ('Results', None)]
    return render_template(
        'race_results.html',
        title=f"{race['name']} results",
        breadcrumbs=breadcrumbs,
        race=race,
        results=[drivers.get(s, {'slug': s, 'name': s}) for s in race['results']],
        drivers=drivers,
        scores=scores,
        my_score=mine,
        voters=[] if race['completed'] else _voter_status(round_no),
    )


# ---------------------------------------------------------------- leaderboard

def _season_scores(season: int, standings: List[str]) -> Dict[int, Dict[str, Any]]:
    picks: Dict[int, List[tuple]] = {}
    for vote in ds.list_all_season_votes(season):
        if not vote.get('active_season', True):
            continue
        picks.setdefault(vote['user_id'], []).append((int(vote['position']), vote['driver_slug']))
    out = {}
    for user_id, rows in picks.items():
        rows.sort()
        out[user_id] = score_season_prediction([slug for _, slug in rows], standings)
    return out


def leaderboard_table() -> List[Dict[str, Any]]:
    """Overall standings for every player, cached briefly."""
    cached = _cache_get_leaderboard()
    if cached is not None:
        return cached
    season = _season()
    standings = ds.get_season_standings(season)
    season_scores = _season_scores(season, standings) if standings else {}
    table = compute_leaderboard(
        ds.list_players(),
        ds.list_all_race_scores(),
        season_scores=season_scores,
        vote_counts=ds.vote_counts_by_user(),
        completed_races=ds.count_completed_races(),
    )
    for row in table:
        row['avatar'] = auth.avatar_url({'avatar': row.get('avatar'), 'name': row['name']})
    _cache_set_leaderboard(table)
    return table


@bp.route('/leaderboard')
def leaderboard():
    round_param = request.args.get('round')
    race = None
    race_scores: List[Dict[str, Any]] = []
    if round_param:
        try:
            race = ds.get_race(int(round_param))
        except ValueError:
            race = None
        if race is None:
            abort(404)
        race_scores = [
            {**row, 'avatar': auth.avatar_url({'avatar': row.get('avatar'), 'name': row.get('user_name')})}
            for row in ds.list_race_scores(race['round'])
        ]
    completed = [r for r in ds.list_races() if r['completed']]
    breadcrumbs = [('Leaderboard', None)]
    return render_template(
        'leaderboard.html',
        title='Leaderboard',
        breadcrumbs=breadcrumbs,
        standings=leaderboard_table(),
        completed_races=completed,
        race=race,
        race_scores=race_scores,
    )

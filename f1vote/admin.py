"""Admin panel: grid, calendar, users and result publishing."""

from flask import Blueprint, render_template, abort, request, current_app, url_for
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from . import auth
from . import routes
from .scoring import SCORED_POSITIONS, build_race_ballots, score_race_prediction
from .seed_data import RACES as SEED_RACES
from . import datastore as ds


bp = Blueprint('admin', __name__)


def _form() -> Dict[str, Any]:
    """Accept either a JSON body or a classic form post."""
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def _parse_int(value) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _parse_date(value) -> Optional[datetime]:
    """Parse an ISO date/datetime (as sent by datetime-local inputs) as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------- pages

@bp.route('/admin')
def dashboard():
    breadcrumbs = [('Admin', None)]
    season = int(current_app.config['SEASON_YEAR'])
    return render_template(
        'admin/index.html',
        title='Admin',
        breadcrumbs=breadcrumbs,
        teams=ds.list_teams(),
        drivers=ds.list_drivers(),
        races=ds.list_races(),
        users=ds.list_users_with_vote_counts(),
        season=season,
        season_standings=ds.get_season_standings(season),
    )


@bp.route('/admin/users/<int:user_id>')
def user_detail(user_id):
    details = user_details(user_id)
    if details is None:
        abort(404)
    breadcrumbs = [('Admin', url_for('admin.dashboard')), (details['user']['name'], None)]
    return render_template('admin/user.html', title=details['user']['name'], breadcrumbs=breadcrumbs, **details)


def user_details(user_id: int) -> Optional[Dict[str, Any]]:
    user = ds.get_user(user_id)
    if user is None:
        return None
    ballots: Dict[int, List[Dict[str, Any]]] = {}
    for vote in ds.list_user_race_votes(user_id):
        ballots.setdefault(vote['race_round'], []).append(vote)
    return {
        'user': user,
        'avatar': auth.avatar_url(user),
        'season_votes': ds.list_season_votes(user_id, int(current_app.config['SEASON_YEAR'])),
        'race_ballots': [{'round': rnd, 'votes': ballots[rnd]} for rnd in sorted(ballots)],
        'scores': ds.list_user_scores(user_id),
    }


# ---------------------------------------------------------------- drivers

def _driver_fields(data: Dict[str, Any]) -> tuple:
    slug = (data.get('slug') or '').strip()
    name = (data.get('name') or '').strip()
    number = _parse_int(data.get('number'))
    team_id = _parse_int(data.get('team_id'))
    if not slug or not name or not number or not team_id:
        return None, 'Missing required fields (slug, name, number, team_id)'
    if team_id not in {t['id'] for t in ds.list_teams()}:
        return None, 'Unknown team'
    return {
        'slug': slug,
        'name': name,
        'number': number,
        'team_id': team_id,
        'country': (data.get('country') or '').strip() or None,
        'color': (data.get('color') or '').strip() or None,
    }, None


@bp.route('/api/admin/drivers')
@auth.admin_required
def drivers_list():
    return {'drivers': ds.list_drivers()}


@bp.route('/api/admin/drivers', methods=['POST'])
@auth.admin_required
def driver_add():
    driver, error = _driver_fields(_form())
    if error:
        return {'error': error}, 400
    if ds.get_driver(driver['slug']):
        return {'error': f"Driver with slug \"{driver['slug']}\" already exists"}, 409
    saved = ds.save_driver(driver)
    current_app.logger.info("driver_add slug=%s", driver['slug'])
    return {'status': 'ok', 'driver': saved}


@bp.route('/api/admin/drivers/<slug>', methods=['PUT'])
@auth.admin_required
def driver_update(slug):
    data = _form()
    data['slug'] = slug
    driver, error = _driver_fields(data)
    if error:
        return {'error': error}, 400
    if ds.get_driver(slug) is None:
        abort(404)
    saved = ds.save_driver(driver)
    current_app.logger.info("driver_update slug=%s", slug)
    return {'status': 'ok', 'driver': saved}


@bp.route('/api/admin/drivers/<slug>', methods=['DELETE'])
@auth.admin_required
def driver_delete(slug):
    if ds.get_driver(slug) is None:
        abort(404)
    ds.delete_driver(slug)
    routes.cache_clear_all()
    current_app.logger.info("driver_delete slug=%s", slug)
    return {'status': 'ok'}


@bp.route('/api/admin/drivers/<slug>/toggle', methods=['POST'])
@auth.admin_required
def driver_toggle(slug):
    """Flip ``active`` (race ballots) or ``active_season`` (season ballots)."""
    field = (_form().get('field') or 'active').strip()
    if field not in ('active', 'active_season'):
        return {'error': f'Unknown field: {field}'}, 400
    driver = ds.get_driver(slug)
    if driver is None:
        abort(404)
    value = not bool(driver.get(field))
    ds.set_driver_flag(slug, field, value)
    current_app.logger.info("driver_toggle slug=%s field=%s value=%s", slug, field, value)
    return {'status': 'ok', field: value}


# ---------------------------------------------------------------- races

def _race_fields(data: Dict[str, Any]) -> tuple:
    round_no = _parse_int(data.get('round'))
    name = (data.get('name') or '').strip()
    location = (data.get('location') or '').strip()
    date = _parse_date(data.get('date'))
    if not round_no or not name or not location or date is None:
        return None, 'Missing required fields (round, name, location, date)'
    return {
        'round': round_no,
        'name': name,
        'location': location,
        'date': date,
        'track_image': (data.get('track_image') or '').strip() or None,
        'country': (data.get('country') or '').strip() or None,
        'circuit_id': (data.get('circuit_id') or '').strip() or None,
        'is_testing': str(data.get('is_testing') or '').lower() in ('1', 'true', 'on'),
    }, None


@bp.route('/api/admin/races', methods=['POST'])
@auth.admin_required
def race_add():
    race, error = _race_fields(_form())
    if error:
        return {'error': error}, 400
    if ds.get_race(race['round']):
        return {'error': f"Round {race['round']} already exists"}, 409
    saved = ds.save_race(race)
    current_app.logger.info("race_add round=%s", race['round'])
    return {'status': 'ok', 'race': saved}


@bp.route('/api/admin/races/<int:race_id>', methods=['PUT'])
@auth.admin_required
def race_update(race_id):
    race, error = _race_fields(_form())
    if error:
        return {'error': error}, 400
    if ds.get_race_by_id(race_id) is None:
        abort(404)
    clash = ds.get_race(race['round'])
    if clash and clash['id'] != race_id:
        return {'error': f"Round {race['round']} already exists"}, 409
    race['id'] = race_id
    saved = ds.save_race(race)
    routes.cache_clear_all()
    current_app.logger.info("race_update id=%s round=%s", race_id, race['round'])
    return {'status': 'ok', 'race': saved}


@bp.route('/api/admin/races/<int:race_id>', methods=['DELETE'])
@auth.admin_required
def race_delete(race_id):
    round_no = ds.delete_race(race_id)
    if round_no is None:
        abort(404)
    routes.cache_clear_all()
    current_app.logger.info("race_delete id=%s round=%s", race_id, round_no)
    return {'status': 'ok'}


@bp.route('/api/admin/races/seed', methods=['POST'])
@auth.admin_required
def races_seed():
    for race in SEED_RACES:
        ds.upsert_race(race)
    current_app.logger.info("races_seed count=%s", len(SEED_RACES))
    return {'status': 'ok', 'count': len(SEED_RACES)}


# ---------------------------------------------------------------- results

def finish_race(round_no: int, results: List[str]) -> int:
    """Publish a race's finishing order and score every ballot.

    Players without a race ballot are scored on their season picks. Returns
    the number of users scored.
    """
    ds.set_race_results(round_no, results, completed=True)

    race_votes = ds.list_race_votes(round_no)
    voted = sorted({v['user_id'] for v in race_votes})
    fallback = ds.list_season_fallback_votes(int(current_app.config['SEASON_YEAR']), SCORED_POSITIONS, voted)
    ballots = build_race_ballots(race_votes, fallback)

    scores = []
    for user_id, (slugs, from_season) in ballots.items():
        score = score_race_prediction(slugs, results, from_season=from_season)
        scores.append({'user_id': user_id, **score})
    ds.upsert_race_scores(round_no, scores)
    routes.cache_clear_all()
    current_app.logger.info(
        "finish_race round=%s users_scored=%s from_season=%s",
        round_no,
        len(scores),
        sum(1 for s in scores if s['details']['from_season']),
    )
    return len(scores)


def reopen_race(round_no: int) -> None:
    """Undo :func:`finish_race`: drop the round's scores and results."""
    ds.delete_race_scores(round_no)
    ds.set_race_results(round_no, [], completed=False)
    routes.cache_clear_all()
    current_app.logger.info("reopen_race round=%s", round_no)


@bp.route('/api/admin/races/<int:round_no>/finish', methods=['POST'])
@auth.admin_required
def race_finish(round_no):
    if ds.get_race(round_no) is None:
        abort(404)
    results = _form().get('results')
    if not isinstance(results, list) or not results:
        return {'error': 'Provide the finishing order of the drivers'}, 400
    results = [str(s).strip() for s in results if str(s).strip()]
    if len(set(results)) != len(results):
        return {'error': 'Each driver can only finish once'}, 400
    known = {d['slug'] for d in ds.list_drivers()}
    unknown = [s for s in results if s not in known]
    if unknown:
        return {'error': f"Unknown drivers: {', '.join(unknown)}"}, 400
    users_scored = finish_race(round_no, results)
    return {'status': 'ok', 'users_scored': users_scored}


@bp.route('/api/admin/races/<int:round_no>/reopen', methods=['POST'])
@auth.admin_required
def race_reopen(round_no):
    if ds.get_race(round_no) is None:
        abort(404)
    reopen_race(round_no)
    return {'status': 'ok'}


@bp.route('/api/admin/season/<int:season>/standings', methods=['POST'])
@auth.admin_required
def season_standings_publish(season):
    results = _form().get('results')
    if not isinstance(results, list) or not results:
        return {'error': 'Provide the final championship order'}, 400
    if not all(isinstance(s, str) for s in results):
        return {'error': 'Driver slugs must be strings'}, 400
    results = [s.strip() for s in results if s.strip()]
    if not results:
        return {'error': 'Provide the final championship order'}, 400
    if len(set(results)) != len(results):
        return {'error': 'Each driver can only be ranked once'}, 400
    known = {d['slug'] for d in ds.list_drivers()}
    unknown = [s for s in results if s not in known]
    if unknown:
        return {'error': f"Unknown drivers: {', '.join(unknown)}"}, 400
    ds.set_season_standings(season, results)
    routes.cache_clear_all()
    current_app.logger.info("season_standings_publish season=%s drivers=%s", season, len(results))
    return {'status': 'ok'}


@bp.route('/api/admin/season/<int:season>/standings', methods=['DELETE'])
@auth.admin_required
def season_standings_clear(season):
    ds.set_season_standings(season, None)
    routes.cache_clear_all()
    current_app.logger.info("season_standings_clear season=%s", season)
    return {'status': 'ok'}


# ---------------------------------------------------------------- users

@bp.route('/api/admin/users')
@auth.admin_required
def users_list():
    users = []
    for u in ds.list_users_with_vote_counts():
        row = {k: v for k, v in u.items() if k != 'password_hash'}
        row['avatar'] = auth.avatar_url(u)
        users.append(row)
    return {'users': users}


@bp.route('/api/admin/users/<int:user_id>', methods=['DELETE'])
@auth.admin_required
def user_delete(user_id):
    if user_id == auth.current_user()['id']:
        return {'error': 'You cannot delete your own account'}, 400
    if not ds.delete_user(user_id):
        abort(404)
    routes.cache_clear_all()
    current_app.logger.info("user_delete id=%s", user_id)
    return {'status': 'ok'}

"""Built-in 2026 grid and calendar used by ``init_db.py`` and the admin seed."""

from datetime import datetime, timezone

TEAMS = [
    {"name": "Alpine", "color": "bg-pink-500 border-blue-600"},
    {"name": "Aston Martin", "color": "bg-emerald-700 border-lime-400"},
    {"name": "Williams", "color": "bg-blue-800 border-blue-400"},
    {"name": "Audi", "color": "bg-red-700 border-white"},
    {"name": "Cadillac", "color": "bg-slate-700 border-yellow-500"},
    {"name": "Ferrari", "color": "bg-red-600 border-yellow-400"},
    {"name": "Haas", "color": "bg-slate-100 border-red-600 text-black"},
    {"name": "McLaren", "color": "bg-orange-500 border-black"},
    {"name": "Mercedes", "color": "bg-slate-300 border-cyan-400 text-black"},
    {"name": "Racing Bulls", "color": "bg-blue-600 border-white"},
    {"name": "Red Bull Racing", "color": "bg-blue-900 border-red-600"},
]

# (slug, name, number, country, team)
_DRIVERS = [
    ("gas", "Pierre Gasly", 43, "FR", "Alpine"),
    ("col", "Franco Colapinto", 10, "AR", "Alpine"),
    ("alo", "Fernando Alonso", 14, "ES", "Aston Martin"),
    ("str", "Lance Stroll", 18, "CA", "Aston Martin"),
    ("alb", "Alexander Albon", 23, "TH", "Williams"),
    ("sai", "Carlos Sainz Jr.", 55, "ES", "Williams"),
    ("bor", "Gabriel Bortoleto", 5, "BR", "Audi"),
    ("hul", "Nico Hülkenberg", 27, "DE", "Audi"),
    ("per", "Sergio Pérez", 11, "MX", "Cadillac"),
    ("bot", "Valtteri Bottas", 77, "FI", "Cadillac"),
    ("lec", "Charles Leclerc", 16, "MC", "Ferrari"),
    ("ham", "Lewis Hamilton", 44, "GB", "Ferrari"),
    ("oco", "Esteban Ocon", 31, "FR", "Haas"),
    ("bea", "Oliver Bearman", 87, "GB", "Haas"),
    ("nor", "Lando Norris", 1, "GB", "McLaren"),
    ("pia", "Oscar Piastri", 81, "AU", "McLaren"),
    ("ant", "Kimi Antonelli", 12, "IT", "Mercedes"),
    ("rus", "George Russell", 63, "GB", "Mercedes"),
    ("law", "Liam Lawson", 30, "NZ", "Racing Bulls"),
    ("lin", "Arvid Lindblad", 41, "GB", "Racing Bulls"),
    ("ver", "Max Verstappen", 3, "NL", "Red Bull Racing"),
    ("had", "Isack Hadjar", 6, "FR", "Red Bull Racing"),
]

_TEAM_COLORS = {t["name"]: t["color"] for t in TEAMS}

DRIVERS = [
    {"slug": slug, "name": name, "number": number, "country": country, "team": team, "color": _TEAM_COLORS[team]}
    for slug, name, number, country, team in _DRIVERS
]

# (round, name, location, UTC start)
_RACES = [
    (1, "Australian Grand Prix", "Australia", "2026-03-08T05:00:00"),
    (2, "Chinese Grand Prix", "China", "2026-03-15T07:00:00"),
    (3, "Japanese Grand Prix", "Japan", "2026-03-29T06:00:00"),
    (4, "Bahrain Grand Prix", "Bahrain", "2026-04-12T15:00:00"),
    (5, "Saudi Arabian Grand Prix", "Saudi Arabia", "2026-04-19T19:00:00"),
    (6, "Miami Grand Prix", "Miami", "2026-05-03T19:30:00"),
    (7, "Canadian Grand Prix", "Canada", "2026-05-24T19:00:00"),
    (8, "Monaco Grand Prix", "Monaco", "2026-06-07T13:00:00"),
    (9, "Barcelona Grand Prix", "Barcelona-Catalunya", "2026-06-14T13:00:00"),
    (10, "Austrian Grand Prix", "Austria", "2026-06-28T13:00:00"),
    (11, "British Grand Prix", "Great Britain", "2026-07-05T14:00:00"),
    (12, "Belgian Grand Prix", "Belgium", "2026-07-19T13:00:00"),
    (13, "Hungarian Grand Prix", "Hungary", "2026-07-26T13:00:00"),
    (14, "Dutch Grand Prix", "Netherlands", "2026-08-23T13:00:00"),
    (15, "Italian Grand Prix", "Italy", "2026-09-06T13:00:00"),
    (16, "Spanish Grand Prix", "Spain", "2026-09-13T13:00:00"),
    (17, "Azerbaijan Grand Prix", "Azerbaijan", "2026-09-26T13:00:00"),
    (18, "Singapore Grand Prix", "Singapore", "2026-10-11T12:00:00"),
    (19, "United States Grand Prix", "United States", "2026-10-25T19:00:00"),
    (20, "Mexico Grand Prix", "Mexico", "2026-11-01T19:00:00"),
    (21, "Brazil Grand Prix", "Brazil", "2026-11-08T17:00:00"),
    (22, "Las Vegas Grand Prix", "Las Vegas", "2026-11-21T06:00:00"),
    (23, "Qatar Grand Prix", "Qatar", "2026-11-29T16:00:00"),
    (24, "Abu Dhabi Grand Prix", "Abu Dhabi", "2026-12-06T13:00:00"),
]

RACES = [
    {
        "round": rnd,
        "name": name,
        "location": location,
        "date": datetime.fromisoformat(start).replace(tzinfo=timezone.utc),
        "is_testing": False,
    }
    for rnd, name, location, start in _RACES
]

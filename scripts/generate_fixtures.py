#!/usr/bin/env python3
"""
Generate demo fixtures for the fake providers

Writes backend/fixtures/demo/{geocode,directions}/data.json, used when
TRAFFIC_DELAY_MODE is "demo" or "test". All fixtures are deterministic.

Usage:
    python scripts/generate_fixtures.py
"""

import json
from pathlib import Path
from typing import Dict, List, Tuple

FIXTURES_ROOT = Path(__file__).resolve().parent.parent / "backend" / "fixtures" / "demo"

PLACES: Dict[str, Tuple[float, float]] = {
    "1 ferry building, san francisco, ca": (37.7955, -122.3937),
    "oakland international airport": (37.7126, -122.2197),
    "stanford university": (37.4275, -122.1697),
}

REVERSE: Dict[Tuple[float, float], str] = {
    (37.7749, -122.4194): "1 Dr Carlton B Goodlett Pl, San Francisco, CA",
    (37.7793, -122.4193): "Civic Center Plaza, San Francisco, CA",
    (37.8044, -122.2712): "Broadway, Oakland, CA",
}

# (origin, destination, driving seconds) as reported by the live directions API
ROUTES: List[Tuple[Tuple[float, float], Tuple[float, float], int]] = [
    ((37.7749, -122.4194), (37.7955, -122.3937), 840),
    ((37.7749, -122.4194), (37.7126, -122.2197), 1500),
    ((37.7749, -122.4194), (37.4275, -122.1697), 2820),
    ((37.8044, -122.2712), (37.7955, -122.3937), 1260),
]


def coord_key(lat: float, lon: float) -> str:
    return f"{round(lat, 4)},{round(lon, 4)}"


def generate_geocode_fixtures() -> dict:
    return {
        "locations": {name: {"lat": lat, "lon": lon} for name, (lat, lon) in PLACES.items()},
        "reverse": {coord_key(lat, lon): text for (lat, lon), text in REVERSE.items()},
    }


def generate_directions_fixtures() -> dict:
    routes = [
        {
            "origin": coord_key(*origin),
            "destination": coord_key(*destination),
            "profile": "driving",
            "duration_seconds": duration,
        }
        for origin, destination, duration in ROUTES
    ]
    return {"routes": routes}


def write_fixture(name: str, data: dict) -> Path:
    path = FIXTURES_ROOT / name / "data.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
    return path


def main():
    print("Generating demo fixtures...")
    print(f"  wrote {write_fixture('geocode', generate_geocode_fixtures())}")
    print(f"  wrote {write_fixture('directions', generate_directions_fixtures())}")
    print("Done.")


if __name__ == "__main__":
    main()

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
DB_PATH = Path(os.getenv("SAFEPATH_DB_PATH", str(BASE_DIR / "safepath.db")))
LOG_LEVEL = os.getenv("SAFEPATH_LOG_LEVEL", "INFO").upper()

CRIME_RADIUS_DEG = float(os.getenv("CRIME_RADIUS_DEG", "0.01"))
HEATMAP_RADIUS_DEG = float(os.getenv("HEATMAP_RADIUS_DEG", "0.02"))
LOCATION_RADIUS_DEG = float(os.getenv("LOCATION_RADIUS_DEG", "0.005"))
HEATMAP_WINDOW_DAYS = int(os.getenv("HEATMAP_WINDOW_DAYS", "90"))
RECENT_INCIDENT_DAYS = int(os.getenv("RECENT_INCIDENT_DAYS", "7"))
LOCATION_RATINGS_LIMIT = int(os.getenv("LOCATION_RATINGS_LIMIT", "20"))

CRIME_CATEGORIES = {"theft", "assault", "robbery", "harassment", "vandalism", "burglary", "violence", "other"}
SEVERITY_LEVELS = {"low", "medium", "high", "critical"}
ROUTE_TYPES = {"walking", "driving", "cycling", "public_transport"}

DB_PATH.parent.mkdir(parents=True, exist_ok=True)

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[2]

OSRM_URL = os.getenv("SAFEPATH_OSRM_URL", "https://router.project-osrm.org")
ROUTING_PROFILE = os.getenv("SAFEPATH_ROUTING_PROFILE", "walking")
ROUTING_TIMEOUT_SECONDS = float(os.getenv("SAFEPATH_ROUTING_TIMEOUT_SECONDS", "10"))
ROUTING_MAX_RETRIES = int(os.getenv("SAFEPATH_ROUTING_MAX_RETRIES", "3"))
ROUTING_BACKOFF_SECONDS = float(os.getenv("SAFEPATH_ROUTING_BACKOFF_SECONDS", "1.0"))
WALKING_SPEED_MPS = float(os.getenv("SAFEPATH_WALKING_SPEED_MPS", "1.4"))

INCIDENT_API_URL = os.getenv("SAFEPATH_INCIDENT_API_URL", "http://127.0.0.1:8000")
QUERY_TIMEOUT_SECONDS = float(os.getenv("SAFEPATH_QUERY_TIMEOUT_SECONDS", "10"))
QUERY_WORKERS = int(os.getenv("SAFEPATH_QUERY_WORKERS", "8"))

ASSESSMENT_SAMPLE_TARGET = 10
ASSESSMENT_RADIUS_DEG = 0.002
LISTING_SAMPLE_TARGET = 5
LISTING_RADIUS_DEG = 0.01
HEATMAP_RADIUS_DEG = 0.02

NIGHT_START_HOUR = int(os.getenv("SAFEPATH_NIGHT_START_HOUR", "22"))
NIGHT_END_HOUR = int(os.getenv("SAFEPATH_NIGHT_END_HOUR", "6"))

STORE_PATH = Path(os.getenv("SAFEPATH_STORE_PATH", str(BASE_DIR / "device_store.db")))
LAST_LOCATION_KEY = "lastKnownLocation"

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import FastAPI, Form, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from safepath.heatmap import bucket_ratings, intensity_for
from safepath.models import Coordinate, IncidentRecord, Rating
from safepath.sampler import RouteRiskSampler
from safepath.sources import parse_datetime, parse_incident

from .config import (
    CRIME_CATEGORIES,
    CRIME_RADIUS_DEG,
    HEATMAP_RADIUS_DEG,
    HEATMAP_WINDOW_DAYS,
    LOCATION_RADIUS_DEG,
    LOCATION_RATINGS_LIMIT,
    LOG_LEVEL,
    RECENT_INCIDENT_DAYS,
    ROUTE_TYPES,
    SEVERITY_LEVELS,
)
from .db import days_ago_iso, get_conn, incidents_near, init_db, now_iso, ratings_near

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="SafePath Incident Service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class Waypoint(BaseModel):
    lat: float
    lng: float


class RouteSafetyRequest(BaseModel):
    waypoints: list[Waypoint]


class DbIncidentSource:
    """Incident lookups served straight from the local crimes table."""

    def query(self, center: Coordinate, radius_deg: float) -> list[IncidentRecord]:
        return [parse_incident(row) for row in incidents_near(center.lat, center.lng, radius_deg)]


@app.on_event("startup")
def startup() -> None:
    init_db()
    app.state.route_sampler = RouteRiskSampler(DbIncidentSource())
    logger.info("Incident database ready")


@app.on_event("shutdown")
def shutdown() -> None:
    app.state.route_sampler.close()


def check_coordinates(lat: float, lng: float) -> Coordinate:
    try:
        return Coordinate(lat, lng)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def check_radius(radius: float) -> float:
    if not 0.001 <= radius <= 1:
        raise HTTPException(status_code=400, detail="Radius must be between 0.001 and 1")
    return radius


def time_bucket(moment: datetime) -> tuple[str, str]:
    hour = moment.hour
    if 6 <= hour < 12:
        time_of_day = "morning"
    elif 12 <= hour < 17:
        time_of_day = "afternoon"
    elif 17 <= hour < 21:
        time_of_day = "evening"
    else:
        time_of_day = "night"
    return time_of_day, DAYS[moment.weekday()]


def incident_json(incident: IncidentRecord) -> dict:
    return {
        "id": incident.incident_id,
        "lat": incident.coordinate.lat,
        "lng": incident.coordinate.lng,
        "category": incident.category,
        "severity": incident.severity.value,
        "incident_date": incident.occurred_at.isoformat(),
        "created_at": incident.reported_at.isoformat(),
    }


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/crime-data")
def crime_data(lat: float, lng: float, radius: float = CRIME_RADIUS_DEG):
    check_coordinates(lat, lng)
    check_radius(radius)
    crimes = incidents_near(lat, lng, radius)
    return {
        "success": True,
        "data": {
            "crimes": crimes,
            "center": {"lat": lat, "lng": lng},
            "radius": radius,
            "total": len(crimes),
        },
    }


@app.post("/api/report", status_code=201)
def report_crime(
    lat: float = Form(...),
    lng: float = Form(...),
    category: str = Form(...),
    severity: str = Form("medium"),
    description: str = Form(""),
    incident_date: str = Form(""),
):
    check_coordinates(lat, lng)
    category = category.strip().lower()
    severity = severity.strip().lower()
    if category not in CRIME_CATEGORIES:
        raise HTTPException(status_code=400, detail="Invalid crime category")
    if severity not in SEVERITY_LEVELS:
        raise HTTPException(status_code=400, detail="Invalid severity level")
    try:
        occurred = parse_datetime(incident_date).isoformat() if incident_date else now_iso()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid incident date") from exc

    with get_conn() as conn:
        cur = conn.execute(
            "INSERT INTO crimes (lat,lng,category,severity,description,incident_date,created_at) VALUES (?,?,?,?,?,?,?)",
            (lat, lng, category, severity, description or None, occurred, now_iso()),
        )
        row = conn.execute("SELECT * FROM crimes WHERE id=?", (cur.lastrowid,)).fetchone()

    logger.info("Crime reported: id=%s category=%s severity=%s", row["id"], category, severity)
    return {"success": True, "message": "Crime reported successfully", "data": {"crime": dict(row)}}


@app.get("/api/stats")
def crime_stats(lat: float, lng: float, radius: float = CRIME_RADIUS_DEG):
    check_coordinates(lat, lng)
    check_radius(radius)
    crimes = incidents_near(lat, lng, radius)
    cutoff = days_ago_iso(RECENT_INCIDENT_DAYS)

    by_category: dict[str, int] = {}
    by_severity: dict[str, int] = {}
    for crime in crimes:
        by_category[crime["category"]] = by_category.get(crime["category"], 0) + 1
        by_severity[crime["severity"]] = by_severity.get(crime["severity"], 0) + 1

    return {
        "success": True,
        "data": {
            "total": len(crimes),
            "recent": sum(1 for c in crimes if c["incident_date"] >= cutoff),
            "by_category": by_category,
            "by_severity": by_severity,
        },
    }


@app.post("/api/ratings/rate-route", status_code=201)
def rate_route(
    lat: float = Form(...),
    lng: float = Form(...),
    safety_score: int = Form(...),
    comment: str = Form(""),
    route_type: str = Form("walking"),
):
    check_coordinates(lat, lng)
    if not 1 <= safety_score <= 5:
        raise HTTPException(status_code=400, detail="Safety score must be between 1 and 5")
    if route_type not in ROUTE_TYPES:
        raise HTTPException(status_code=400, detail="Invalid route type")

    time_of_day, day_of_week = time_bucket(datetime.now())
    with get_conn() as conn:
        cur = conn.execute(
            """
            INSERT INTO ratings (lat,lng,safety_score,comment,time_of_day,day_of_week,route_type,created_at)
            VALUES (?,?,?,?,?,?,?,?)
            """,
            (lat, lng, safety_score, comment or None, time_of_day, day_of_week, route_type, now_iso()),
        )
        row = conn.execute("SELECT * FROM ratings WHERE id=?", (cur.lastrowid,)).fetchone()

    return {"success": True, "message": "Route rated successfully", "data": {"rating": dict(row)}}


@app.get("/api/ratings/heatmap")
def ratings_heatmap(lat: float, lng: float, radius: float = HEATMAP_RADIUS_DEG):
    check_coordinates(lat, lng)
    check_radius(radius)
    rows = ratings_near(lat, lng, radius, since=days_ago_iso(HEATMAP_WINDOW_DAYS))
    ratings = [
        Rating(coordinate=Coordinate(r["lat"], r["lng"]), safety_score=r["safety_score"], created_at=parse_datetime(r["created_at"]))
        for r in rows
    ]
    cells = bucket_ratings(ratings)
    return {
        "success": True,
        "data": {
            "heatmapPoints": [
                {
                    "lat": cell.coordinate.lat,
                    "lng": cell.coordinate.lng,
                    "intensity": intensity_for(cell.average_safety_score),
                    "averageScore": cell.average_safety_score,
                    "ratingCount": cell.sample_count,
                }
                for cell in cells
            ],
            "center": {"lat": lat, "lng": lng},
            "radius": radius,
            "totalRatings": len(rows),
        },
    }


@app.get("/api/ratings/location")
def location_ratings(lat: float, lng: float, radius: float = LOCATION_RADIUS_DEG):
    check_coordinates(lat, lng)
    check_radius(radius)
    rows = ratings_near(lat, lng, radius, limit=LOCATION_RATINGS_LIMIT)
    average = round(sum(r["safety_score"] for r in rows) / len(rows), 1) if rows else None
    return {
        "success": True,
        "data": {
            "ratings": rows,
            "averageScore": average,
            "totalRatings": len(rows),
        },
    }


@app.post("/api/route-safety")
def route_safety(body: RouteSafetyRequest):
    if len(body.waypoints) < 2:
        raise HTTPException(status_code=400, detail="At least two waypoints are required")
    points = [check_coordinates(w.lat, w.lng) for w in body.waypoints]

    assessment = app.state.route_sampler.assess(points)
    return {
        "success": True,
        "data": {
            "safetyScore": assessment.score,
            "totalCrimes": assessment.total_incidents,
            "highRiskAreas": assessment.high_risk_sample_count,
            "sampledPoints": assessment.sampled_point_count,
            "failedSamples": assessment.failed_sample_count,
            "recommendation": assessment.recommendation,
            "analysis": assessment.analysis,
            "notes": assessment.notes,
            "crimes": [incident_json(i) for i in assessment.incidents],
        },
    }

"""
Pure filters and aggregations over record lists.

Shared by the entity store (local state) and the remote gateway (fetched
state, and client-side fallback when a search endpoint is unavailable).
"""

from typing import Any, Dict, Iterable, List, Optional

Record = Dict[str, Any]

ANALYTICS_LIST_KEYS = (
    "departmentStats",
    "activityTypes",
    "monthlyActivities",
    "topPerformers",
    "skillsAnalysis",
)


def _contains(value: Any, needle: str) -> bool:
    return isinstance(value, str) and needle in value.lower()


def filter_by_status(records: Iterable[Record], status: str) -> List[Record]:
    status = getattr(status, "value", status)
    return [r for r in records if r.get("status") == status]


def filter_by_field(records: Iterable[Record], field: str, value: Any) -> List[Record]:
    return [r for r in records if r.get(field) == value]


def search_events(events: Iterable[Record], query: str) -> List[Record]:
    """Case-insensitive substring match on title, description and tags"""
    needle = (query or "").lower()
    return [
        e for e in events
        if _contains(e.get("title"), needle)
        or _contains(e.get("description"), needle)
        or any(_contains(tag, needle) for tag in (e.get("tags") or []))
    ]


def search_activities(activities: Iterable[Record], query: str) -> List[Record]:
    """Case-insensitive substring match on title, description and type"""
    needle = (query or "").lower()
    return [
        a for a in activities
        if _contains(a.get("title"), needle)
        or _contains(a.get("description"), needle)
        or _contains(a.get("type"), needle)
    ]


def events_by_organizer(events: Iterable[Record], organizer_name: str) -> List[Record]:
    """Loose name match on organizer.name or createdBy"""
    needle = (organizer_name or "").lower()
    matches = []
    for event in events:
        organizer = event.get("organizer") or {}
        name = organizer.get("name") if isinstance(organizer, dict) else None
        if _contains(name, needle) or _contains(event.get("createdBy"), needle):
            matches.append(event)
    return matches


def events_by_faculty(events: Iterable[Record], faculty_id: str) -> List[Record]:
    """Exact match on organizer.facultyId"""
    return [
        e for e in events
        if isinstance(e.get("organizer"), dict) and e["organizer"].get("facultyId") == faculty_id
    ]


def compute_statistics(
    events: List[Record],
    activities: List[Record],
    certificates: List[Record],
    students: List[Record],
    faculty: List[Record],
) -> Dict[str, int]:
    """Dashboard counters, recomputed from scratch on every call"""

    def count(records: List[Record], status: str) -> int:
        return sum(1 for r in records if r.get("status") == status)

    return {
        "totalEvents": len(events),
        "totalActivities": len(activities),
        "totalCertificates": len(certificates),
        "totalStudents": len(students),
        "totalFaculty": len(faculty),
        "pendingActivities": count(activities, "pending"),
        "approvedActivities": count(activities, "approved"),
        "rejectedActivities": count(activities, "rejected"),
        "pendingCertificates": count(certificates, "pending"),
        "approvedCertificates": count(certificates, "approved"),
        "rejectedCertificates": count(certificates, "rejected"),
        "openEvents": count(events, "open"),
    }


def with_analytics_defaults(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Analytics payload with every list key present"""
    result: Dict[str, Any] = {key: [] for key in ANALYTICS_LIST_KEYS}
    for key, value in (data or {}).items():
        if key in ANALYTICS_LIST_KEYS and value is None:
            continue
        result[key] = value
    return result

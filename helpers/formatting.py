from typing import Any, Dict, Iterable, List, Optional, Union

Number = Union[int, float]

METRIC_DISPLAY_NAMES = {
    "page_impressions": "Impressions",
    "page_reach": "Reach",
    "page_engaged_users": "Engaged Users",
    "page_post_engagements": "Post Engagements",
    "page_clicks": "Clicks",
    "page_fans": "Followers",
}


def format_number(num: Number) -> str:
    # 1_500_000 -> "1.5M", 2_300 -> "2.3K", 999 -> "999"
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(int(num))


def metric_display_name(metric_name: str) -> str:
    return METRIC_DISPLAY_NAMES.get(metric_name, metric_name)


def total_value(points: Optional[Iterable[Dict[str, Any]]]) -> Number:
    if not points:
        return 0
    return sum(p.get("value") or 0 for p in points)


def latest_value(points: Optional[List[Dict[str, Any]]]) -> Number:
    """Value of the most recent point of a date-ascending series."""
    if not points:
        return 0
    return points[-1].get("value") or 0

from typing import Any, Dict, Iterable, Optional

from bento_cli.context import AppContext
from bento_cli.output import envelope

from .common import add_group, fetch


def pick_metric(stats: Dict[str, Any], keys: Iterable[str]) -> Optional[float]:
    """First numeric value among ``keys``; the API has renamed these over time."""
    for key in keys:
        value = stats.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
    return None


def format_number(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:,}"


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    # rates may come back as 0..1 or already as a percentage
    percent = value if value > 1 else value * 100
    return f"{percent:.1f}%"


def cmd_site(ctx: AppContext, args) -> int:
    out = ctx.output
    stats = fetch(ctx, "Fetching site stats...", ctx.client.get_site_stats)

    if out.is_json():
        out.json(envelope(stats, 1))
        return 0
    if out.is_quiet():
        return 0

    out.divider()
    out.log("Site Statistics")
    out.divider()
    out.object({
        "Total Subscribers": format_number(pick_metric(stats, ["total_subscribers", "user_count", "subscriber_count"])),
        "Active Subscribers": format_number(pick_metric(stats, ["active_subscribers", "subscriber_count", "user_count"])),
        "Unsubscribed": format_number(pick_metric(stats, ["unsubscribed_count", "unsubscriber_count"])),
    })
    out.newline()
    out.object({
        "Total Broadcasts": format_number(pick_metric(stats, ["broadcast_count", "total_broadcasts", "broadcasts_count"])),
        "Avg. Open Rate": format_percent(pick_metric(stats, ["average_open_rate", "open_rate"])),
        "Avg. Click Rate": format_percent(pick_metric(stats, ["average_click_rate", "click_rate"])),
    })
    out.divider()
    return 0


def register(sub, parents) -> None:
    group = add_group(sub, "stats", "View site statistics", parents)
    p = group.add_parser("site", parents=parents, help="Show site-wide statistics")
    p.set_defaults(handler=cmd_site)

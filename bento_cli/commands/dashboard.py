import webbrowser
from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bento_cli.context import AppContext
from bento_cli.errors import CommandError
from bento_cli.output import envelope

DEFAULT_DASHBOARD_URL = "https://app.bentonow.com/"


def build_dashboard_url(base: str, site_uuid: Optional[str] = None) -> str:
    if not site_uuid:
        return base
    parts = urlsplit(base)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "site_uuid"]
    query.append(("site_uuid", site_uuid))
    return urlunsplit(parts._replace(query=urlencode(query)))


def resolve_profile(ctx: AppContext, name: Optional[str]) -> Optional[Tuple[str, str]]:
    if name:
        profile = ctx.config.get_profile(name)
        if profile is None:
            raise CommandError(f"Profile \"{name}\" not found. Use 'bento profile list' to view configured profiles.")
        return name, profile.site_uuid
    profile = ctx.config.get_current_profile()
    if profile is None:
        return None
    return ctx.config.get_current_profile_name() or "default", profile.site_uuid


def cmd_dashboard(ctx: AppContext, args) -> int:
    out = ctx.output
    selected = resolve_profile(ctx, args.profile)
    base = ctx.environ.get("BENTO_DASHBOARD_URL") or DEFAULT_DASHBOARD_URL
    url = build_dashboard_url(base, selected[1] if selected else None)

    if not webbrowser.open(url):
        raise CommandError(f"Failed to launch browser. Open {url} manually.")

    if out.is_json():
        out.json(envelope({
            "url": url,
            "profile": selected[0] if selected else None,
            "siteUuid": selected[1] if selected else None,
        }, 1))
    elif selected:
        out.success(f'Opening Bento dashboard for "{selected[0]}" in your browser...')
    else:
        out.success("Opening the Bento dashboard login page in your browser...")
        out.info("No active profile is selected. Run 'bento auth login' to connect a site.")
    return 0


def register(sub, parents) -> None:
    p = sub.add_parser("dashboard", parents=parents, help="Open the Bento dashboard in your browser")
    p.add_argument("-p", "--profile", help="Open the dashboard for a specific profile")
    p.set_defaults(handler=cmd_dashboard)

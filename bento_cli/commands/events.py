import json

from bento_cli.context import AppContext
from bento_cli.csvparse import is_valid_email, normalize_email
from bento_cli.errors import CommandError, usage_error
from bento_cli.output import envelope

from .common import add_group


def cmd_track(ctx: AppContext, args) -> int:
    out = ctx.output
    email = args.email.strip()
    if not is_valid_email(email):
        raise usage_error(f"Invalid email: {email}")

    details = None
    if args.details:
        try:
            details = json.loads(args.details)
        except json.JSONDecodeError as ex:
            raise CommandError("Invalid JSON in --details. Ensure valid JSON format.") from ex

    out.start_spinner("Tracking event...")
    try:
        accepted = ctx.client.track(normalize_email(email), args.event, details)
    except Exception:
        out.fail_spinner()
        raise
    if not accepted:
        out.fail_spinner("Failed to track event")
        raise CommandError("Event tracking failed. Please verify the email address is valid.")
    out.stop_spinner("Event tracked")

    if out.is_json():
        out.json(envelope({"email": email, "event": args.event, "details": details}, 1))
    else:
        out.success(f'Tracked event "{args.event}" for {email}')
        if details:
            out.info(f"Details: {json.dumps(details)}")
    return 0


def register(sub, parents) -> None:
    group = add_group(sub, "events", "Track events for subscribers", parents)

    p = group.add_parser("track", parents=parents, help="Track a custom event for a subscriber")
    p.add_argument("-e", "--email", required=True, help="Subscriber email address")
    p.add_argument("--event", required=True, help="Event name (e.g. 'button_clicked', 'purchase')")
    p.add_argument("-d", "--details", metavar="JSON",
                   help='Event details as JSON (e.g. \'{"product": "widget"}\')')
    p.set_defaults(handler=cmd_track)

from typing import Any, Dict

from bento_cli.context import AppContext
from bento_cli.errors import usage_error
from bento_cli.output import envelope

from .common import add_group, attributes, fetch, format_date, integer_arg

BROADCAST_TYPES = ("plain", "html", "markdown")


def _sender(attrs: Dict[str, Any]) -> str:
    sender = attrs.get("from") or {}
    name, email = sender.get("name", ""), sender.get("email", "")
    if name and email:
        return f"{name} <{email}>"
    return name or email


def cmd_list(ctx: AppContext, args) -> int:
    broadcasts = fetch(ctx, "Fetching broadcasts...", ctx.client.get_broadcasts)
    rows = []
    for b in broadcasts:
        attrs = attributes(b)
        batch = attrs.get("batch_size_per_hour")
        rows.append({
            "name": attrs.get("name", ""),
            "subject": attrs.get("subject", ""),
            "type": attrs.get("type", ""),
            "from": _sender(attrs),
            "batchSize": f"{batch:,}" if isinstance(batch, int) else (batch or ""),
            "created": format_date(attrs.get("created_at")),
        })
    ctx.output.table(rows, columns=[("name", "NAME"), ("subject", "SUBJECT"), ("type", "TYPE"),
                                    ("from", "FROM"), ("batchSize", "BATCH/HR"), ("created", "CREATED")],
                     empty_message="No broadcasts found.")
    return 0


def cmd_create(ctx: AppContext, args) -> int:
    if args.batch_size < 1:
        raise usage_error("Batch size must be a positive number.")

    broadcast: Dict[str, Any] = {
        "name": args.name,
        "subject": args.subject,
        "content": args.content or "",
        "type": args.type,
        "from": {"name": args.from_name or "", "email": args.from_email or ""},
        "batch_size_per_hour": args.batch_size,
    }
    if args.include_tags:
        broadcast["inclusive_tags"] = args.include_tags
    if args.exclude_tags:
        broadcast["exclusive_tags"] = args.exclude_tags

    out = ctx.output
    out.start_spinner("Creating broadcast...")
    try:
        result = ctx.client.create_broadcast(broadcast)
    except Exception:
        out.fail_spinner()
        raise
    out.stop_spinner("Broadcast created")

    if out.is_json():
        out.json(envelope(result, len(result)))
    else:
        out.success(f'Created broadcast "{args.name}"')
        out.info("Edit and send this broadcast from the Bento web dashboard.")
    return 0


def register(sub, parents) -> None:
    group = add_group(sub, "broadcasts", "Manage email broadcasts", parents)

    p = group.add_parser("list", parents=parents, help="List all broadcasts")
    p.set_defaults(handler=cmd_list)

    p = group.add_parser("create", parents=parents, help="Create a new broadcast draft")
    p.add_argument("-n", "--name", required=True, help="Broadcast name (internal identifier)")
    p.add_argument("-s", "--subject", required=True, help="Email subject line")
    p.add_argument("-c", "--content", help="Email content (HTML, plain text, or markdown)")
    p.add_argument("-t", "--type", choices=BROADCAST_TYPES, default="html", help="Content type")
    p.add_argument("--from-name", help="Sender name")
    p.add_argument("--from-email", help="Sender email address")
    p.add_argument("--include-tags", help="Comma-separated tags to include")
    p.add_argument("--exclude-tags", help="Comma-separated tags to exclude")
    p.add_argument("--batch-size", type=integer_arg, default=1000, help="Emails to send per hour")
    p.set_defaults(handler=cmd_create)

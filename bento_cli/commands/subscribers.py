"""
Subscriber commands:

  bento subscribers search --email E | --uuid U [--tag T] [--field k=v ...]
  bento subscribers import FILE             (bulk, dangerous)
  bento subscribers tag --email|--file --add/--remove TAGS
  bento subscribers suppress --email|--file [--unsuppress]   (dangerous)
  bento subscribers unsubscribe --email|--file               (dangerous)
  bento subscribers subscribe --email|--file                 (dangerous)

Bulk commands take --dry-run / --limit / --sample / --confirm.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bento_cli.context import AppContext
from bento_cli.csvparse import CSVParseError, SubscriberRecord, parse_subscriber_csv
from bento_cli.errors import EXIT_FILE_IO, ApiError, CommandError, usage_error
from bento_cli.output import envelope
from bento_cli.safety import BulkOperation, SafetyOptions
from bento_cli.targets import ensure_file_exists, fail_on_csv_errors, require_targets

from .common import add_group, add_safety_flags, attributes, fetch

log = logging.getLogger(__name__)

SUBSCRIBER_COLUMNS = [("email", "EMAIL"), ("name", "NAME"), ("status", "STATUS"),
                      ("tags", "TAGS"), ("fields", "FIELDS")]
NAME_FIELDS = ("name", "full_name", "fullName", "first_name", "firstName")


# ---------- helpers ----------
def normalize_tag_list(values: Optional[Iterable[str]]) -> List[str]:
    """Flatten repeated and comma-separated tag flags, dropping blanks and duplicates."""
    tags: Dict[str, None] = {}
    for entry in values or []:
        for tag in entry.split(","):
            if tag.strip():
                tags.setdefault(tag.strip(), None)
    return list(tags)


def import_payload(record: SubscriberRecord) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"email": record.email}
    if record.name:
        payload["name"] = record.name
    payload.update(record.fields)
    if record.tags:
        payload["tags"] = ",".join(record.tags)
    if record.remove_tags:
        payload["remove_tags"] = ",".join(record.remove_tags)
    return payload


def lookup_tag_names(ctx: AppContext, tag_ids: Iterable[str]) -> Dict[str, str]:
    """Map tag ids to names; on lookup failure fall back to showing ids."""
    tag_ids = set(tag_ids)
    if not tag_ids:
        return {}
    try:
        tags = ctx.client.get_tags()
    except ApiError as ex:
        log.debug("Tag lookup failed, showing ids: %s", ex)
        return {}
    return {str(t.get("id")): attributes(t).get("name", "") for t in tags}


def parse_field_filters(values: Optional[List[str]]) -> List[Tuple[str, str]]:
    filters = []
    for entry in values or []:
        key, _, value = entry.partition("=")
        if not key.strip() or not value.strip():
            raise usage_error(f"Invalid field filter '{entry}'. Use --field key=value.")
        filters.append((key.strip(), value.strip()))
    return filters


def derive_name(fields: Dict[str, Any]) -> str:
    for key in NAME_FIELDS:
        value = fields.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def summarize_fields(fields: Dict[str, Any], shown: int = 3) -> str:
    entries = [(k, str(v).strip()) for k, v in fields.items() if v is not None and str(v).strip()]
    summary = ", ".join(f"{k}={v}" for k, v in entries[:shown])
    if len(entries) > shown:
        summary += f" +{len(entries) - shown} more"
    return summary


def subscriber_row(subscriber: Dict[str, Any], tag_names: Dict[str, str]) -> Dict[str, Any]:
    attrs = attributes(subscriber)
    fields = attrs.get("fields") or {}
    tags = [tag_names.get(str(i), str(i)) for i in attrs.get("cached_tag_ids") or [] if i]
    return {
        "email": attrs.get("email", ""),
        "uuid": attrs.get("uuid", ""),
        "name": derive_name(fields),
        "status": "unsubscribed" if attrs.get("unsubscribed_at") else "active",
        "tags": tags,
        "fields": fields,
    }


def _updated(ctx: AppContext, count: int, data: Dict[str, Any], message: str) -> None:
    if ctx.output.is_json():
        ctx.output.json(envelope({"updated": count, **data}, count))
        return
    ctx.output.success(message)


# ---------- search ----------
def cmd_search(ctx: AppContext, args) -> int:
    out = ctx.output
    filters = parse_field_filters(args.field)
    email = (args.email or "").strip() or None
    uuid = (args.uuid or "").strip() or None
    tag = (args.tag or "").strip() or None
    if not email and not uuid:
        raise usage_error("Provide --email or --uuid to look up a subscriber.")

    subscriber = fetch(ctx, "Looking up subscriber...", ctx.client.get_subscriber, email=email, uuid=uuid)
    if not subscriber:
        return _render_empty(ctx, "No subscribers found.")

    attrs = attributes(subscriber)
    tag_names = lookup_tag_names(ctx, attrs.get("cached_tag_ids") or [])

    if tag:
        names = {n.lower() for n in tag_names.values()}
        if tag.lower() not in names:
            return _render_empty(ctx, f'No subscribers found matching tag "{tag}".')

    if filters:
        fields = attrs.get("fields") or {}
        if not all(k in fields and str(fields[k]) == v for k, v in filters):
            return _render_empty(ctx, "No subscribers found matching field filters.")

    row = subscriber_row(subscriber, tag_names)
    if out.is_json():
        out.json(envelope([row], 1))
        return 0
    out.table([{
        **row,
        "tags": ", ".join(row["tags"]) or "-",
        "fields": summarize_fields(row["fields"]),
    }], columns=SUBSCRIBER_COLUMNS, empty_message="No subscribers found.")
    return 0


def _render_empty(ctx: AppContext, message: str) -> int:
    if ctx.output.is_json():
        ctx.output.json(envelope([], 0))
    else:
        ctx.output.info(message)
    return 0


# ---------- import ----------
def cmd_import(ctx: AppContext, args) -> int:
    out = ctx.output
    path = ensure_file_exists(args.file)
    options = SafetyOptions.from_args(args)
    try:
        parsed = parse_subscriber_csv(path)
    except (OSError, CSVParseError, UnicodeDecodeError) as ex:
        raise CommandError(str(ex), EXIT_FILE_IO) from ex
    fail_on_csv_errors(out, parsed.errors, path)

    def preview(_sample: List[SubscriberRecord]) -> None:
        out.info("Review the preview carefully. Use --confirm to skip prompts.")

    def execute(records: List[SubscriberRecord]) -> Dict[str, Any]:
        return ctx.client.import_subscribers([import_payload(r) for r in records])

    result = ctx.safety.protect(BulkOperation(
        name="Import Subscribers",
        items=parsed.records,
        execute=execute,
        format_item=lambda r, _i: {
            "email": r.email,
            "name": r.name or "",
            "tags": ", ".join(r.tags or []),
            "remove_tags": ", ".join(r.remove_tags or []),
        },
        preview=preview,
        is_dangerous=True,
    ), options)

    if result.executed:
        summary = result.value if isinstance(result.value, dict) else {}
        imported = summary.get("imported", result.count)
        data: Dict[str, Any] = {"imported": imported}
        if summary.get("failed"):
            data["failed"] = summary["failed"]
        if out.is_json():
            out.json(envelope(data, imported))
        else:
            out.success(f"Imported {imported} subscriber(s).")
            if data.get("failed"):
                out.warn(f"{data['failed']} subscriber(s) were rejected by the API.")
    return result.exit_code


# ---------- tag ----------
def tag_action_name(add: List[str], remove: List[str]) -> str:
    if add and remove:
        return "Add/Remove Subscriber Tags"
    if add:
        return "Add Tags to Subscribers"
    return "Remove Tags from Subscribers"


def cmd_tag(ctx: AppContext, args) -> int:
    add = normalize_tag_list(args.add)
    remove = normalize_tag_list(args.remove)
    if not add and not remove:
        raise usage_error("Specify --add and/or --remove tags.")

    targets = require_targets(args.email, args.file)
    fail_on_csv_errors(ctx.output, targets.errors, args.file or "")

    def execute(emails: List[str]) -> int:
        # one request per email per tag, strictly in order
        for email in emails:
            for tag in add:
                ctx.client.add_tag(email, tag)
            for tag in remove:
                ctx.client.remove_tag(email, tag)
        return len(emails)

    result = ctx.safety.protect(BulkOperation(
        name=tag_action_name(add, remove),
        items=targets.emails,
        execute=execute,
        format_item=lambda email, _i: {"email": email, "add": ", ".join(add), "remove": ", ".join(remove)},
    ), SafetyOptions.from_args(args))

    if result.executed:
        parts = []
        if add:
            parts.append("added " + ", ".join(f'"{t}"' for t in add))
        if remove:
            parts.append("removed " + ", ".join(f'"{t}"' for t in remove))
        _updated(ctx, result.count, {"added": add, "removed": remove},
                 f"Updated {result.count} subscriber(s) ({' & '.join(parts)}).")
    return result.exit_code


# ---------- suppress / unsubscribe / subscribe ----------
def _per_email(ctx: AppContext, args, name: str, call) -> Any:
    targets = require_targets(args.email, args.file)
    fail_on_csv_errors(ctx.output, targets.errors, args.file or "")

    def execute(emails: List[str]) -> int:
        for email in emails:
            call(email)
        return len(emails)

    return ctx.safety.protect(BulkOperation(
        name=name,
        items=targets.emails,
        execute=execute,
        format_item=lambda email, _i: {"email": email},
        is_dangerous=True,
    ), SafetyOptions.from_args(args))


def cmd_suppress(ctx: AppContext, args) -> int:
    if args.unsuppress:
        result = _per_email(ctx, args, "Unsuppress Subscribers", lambda e: ctx.client.subscribe(e))
    else:
        result = _per_email(ctx, args, "Suppress Subscribers", lambda e: ctx.client.unsubscribe(e))
    if result.executed:
        action = "unsuppress" if args.unsuppress else "suppress"
        verb = "Unsuppressed" if args.unsuppress else "Suppressed"
        _updated(ctx, result.count, {"action": action}, f"{verb} {result.count} subscriber(s).")
    return result.exit_code


def cmd_unsubscribe(ctx: AppContext, args) -> int:
    result = _per_email(ctx, args, "Unsubscribe Subscribers", lambda e: ctx.client.unsubscribe(e))
    if result.executed:
        _updated(ctx, result.count, {"action": "unsubscribe"}, f"Unsubscribed {result.count} subscriber(s).")
    return result.exit_code


def cmd_subscribe(ctx: AppContext, args) -> int:
    result = _per_email(ctx, args, "Re-subscribe Subscribers", lambda e: ctx.client.subscribe(e))
    if result.executed:
        _updated(ctx, result.count, {"action": "subscribe"}, f"Re-subscribed {result.count} subscriber(s).")
    return result.exit_code


def _add_target_flags(p, what: str) -> None:
    p.add_argument("-e", "--email", help=f"Single email to {what}")
    p.add_argument("-f", "--file", help="CSV (with an email column) or newline list of emails")


def register(sub, parents) -> None:
    group = add_group(sub, "subscribers", "Manage subscribers", parents)

    p = group.add_parser("search", parents=parents,
                         help="Look up a subscriber by email or UUID, optionally filtering by tag or field")
    p.add_argument("-e", "--email", help="Look up subscriber by email")
    p.add_argument("--uuid", help="Look up subscriber by UUID")
    p.add_argument("-t", "--tag", help="Filter: only show if subscriber has this tag")
    p.add_argument("--field", action="append", metavar="KEY=VALUE",
                   help="Filter: only show if subscriber field matches (repeatable)")
    p.set_defaults(handler=cmd_search)

    p = add_safety_flags(group.add_parser("import", parents=parents,
                                          help="Import subscribers from CSV (email column required)"))
    p.add_argument("file", help="CSV file containing subscribers")
    p.set_defaults(handler=cmd_import)

    p = add_safety_flags(group.add_parser("tag", parents=parents, help="Add or remove tags from subscribers"))
    _add_target_flags(p, "update")
    p.add_argument("--add", nargs="+", action="extend", metavar="TAG",
                   help="Tags to add (repeat or comma-separate)")
    p.add_argument("--remove", nargs="+", action="extend", metavar="TAG",
                   help="Tags to remove (repeat or comma-separate)")
    p.set_defaults(handler=cmd_tag)

    p = add_safety_flags(group.add_parser("suppress", parents=parents, help="Suppress or unsuppress subscribers"))
    _add_target_flags(p, "(un)suppress")
    p.add_argument("--unsuppress", action="store_true", help="Unsuppress instead of suppressing")
    p.set_defaults(handler=cmd_suppress)

    p = add_safety_flags(group.add_parser("unsubscribe", parents=parents, help="Unsubscribe subscribers"))
    _add_target_flags(p, "unsubscribe")
    p.set_defaults(handler=cmd_unsubscribe)

    p = add_safety_flags(group.add_parser("subscribe", parents=parents,
                                          help="Re-subscribe previously unsubscribed subscribers"))
    _add_target_flags(p, "re-subscribe")
    p.set_defaults(handler=cmd_subscribe)

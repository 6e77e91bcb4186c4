"""
Custom field commands:

  bento fields list [SEARCH]
  bento fields create KEY
"""

import re

from bento_cli.context import AppContext
from bento_cli.errors import ApiError, CommandError, ErrorKind
from bento_cli.output import envelope
from bento_cli.search import filter_by_search

from .common import add_group, attributes, fetch, format_date

FIELD_KEY_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")


def cmd_list(ctx: AppContext, args) -> int:
    out = ctx.output
    fields = fetch(ctx, "Fetching fields...", ctx.client.get_fields)
    if not fields:
        if out.is_json():
            out.json(envelope([], 0))
        else:
            out.info("No custom fields found. Create one with `bento fields create <key>`")
        return 0

    matches = filter_by_search(fields, args.search,
                               lambda f: [attributes(f).get("key", ""), attributes(f).get("name") or ""])
    if not matches:
        if out.is_json():
            out.json(envelope([], 0, total=len(fields)))
        else:
            out.info(f'No fields found matching "{args.search}"')
        return 0

    rows = []
    for f in matches:
        attrs = attributes(f)
        rows.append({
            "key": attrs.get("key", ""),
            "name": attrs.get("name") or attrs.get("key", ""),
            "id": f.get("id"),
            "createdAt": format_date(attrs.get("created_at") or attrs.get("createdAt")),
        })
    out.table(rows, columns=[("key", "KEY"), ("name", "NAME"), ("id", "ID"), ("createdAt", "CREATED")],
              total=len(fields))
    return 0


def cmd_create(ctx: AppContext, args) -> int:
    key = args.key.strip()
    if not key:
        raise CommandError("Field key cannot be empty.")
    if not FIELD_KEY_RE.match(key):
        raise CommandError("Field key must start with a letter and contain only letters, numbers, and underscores.")
    try:
        result = fetch(ctx, f'Creating field "{key}"...', ctx.client.create_field, key)
    except ApiError as ex:
        if ex.kind == ErrorKind.VALIDATION_ERROR:
            raise CommandError(f'Failed to create field "{key}": {ex}', ex.exit_code) from ex
        raise
    if ctx.output.is_json():
        ctx.output.json(envelope({"key": key, "fields": result} if result else {"key": key}, 1))
    else:
        ctx.output.success(f'Field "{key}" created')
    return 0


def register(sub, parents) -> None:
    group = add_group(sub, "fields", "Manage custom fields", parents)

    p = group.add_parser("list", parents=parents, help="List all custom fields")
    p.add_argument("search", nargs="?", help="Filter fields by key or name")
    p.set_defaults(handler=cmd_list)

    p = group.add_parser("create", parents=parents, help="Create a new custom field")
    p.add_argument("key", help="Key for the field (used in API, e.g. company_name)")
    p.set_defaults(handler=cmd_create)

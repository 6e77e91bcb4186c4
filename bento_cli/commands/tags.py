"""
Tag commands:

  bento tags list [SEARCH]
  bento tags create NAME
  bento tags delete NAME [--confirm]
"""

from bento_cli.context import AppContext
from bento_cli.errors import EXIT_OK, EXIT_REFUSED, ApiError, CommandError, ErrorKind
from bento_cli.output import envelope
from bento_cli.safety import Outcome
from bento_cli.search import filter_by_search

from .common import add_group, attributes, fetch, format_date


def cmd_list(ctx: AppContext, args) -> int:
    out = ctx.output
    tags = fetch(ctx, "Fetching tags...", ctx.client.get_tags)
    if not tags:
        if out.is_json():
            out.json(envelope([], 0))
        else:
            out.info("No tags found. Create one with `bento tags create <name>`")
        return 0

    matches = filter_by_search(tags, args.search, lambda t: attributes(t).get("name", ""))
    rows = [{
        "name": attributes(t).get("name", ""),
        "id": t.get("id"),
        "createdAt": format_date(attributes(t).get("created_at") or attributes(t).get("createdAt")),
    } for t in matches]
    out.table(rows, columns=[("name", "NAME"), ("id", "ID"), ("createdAt", "CREATED")],
              empty_message=f'No tags found matching "{args.search}"', total=len(tags))
    return 0


def cmd_create(ctx: AppContext, args) -> int:
    name = args.name.strip()
    if not name:
        raise CommandError("Tag name cannot be empty.")
    try:
        result = fetch(ctx, f'Creating tag "{name}"...', ctx.client.create_tag, name)
    except ApiError as ex:
        if ex.kind == ErrorKind.VALIDATION_ERROR:
            raise CommandError(f'Failed to process tag "{name}": {ex}', ex.exit_code) from ex
        raise
    if ctx.output.is_json():
        ctx.output.json(envelope({"name": name, "tags": result} if result else {"name": name}, 1))
    else:
        ctx.output.success(f'Tag "{name}" created')
    return 0


def cmd_delete(ctx: AppContext, args) -> int:
    name = args.name.strip()
    if not name:
        raise CommandError("Tag name cannot be empty.")

    outcome = ctx.safety.confirm_action(
        f'Delete tag "{name}"? This cannot be undone and will remove the tag from all subscribers.',
        confirm=args.confirm,
        name=f'Delete Tag "{name}"',
    )
    if outcome == Outcome.REFUSED:
        return EXIT_REFUSED
    if outcome == Outcome.CANCELLED:
        return EXIT_OK

    raise CommandError(
        "Tag deletion is not currently supported by the Bento API. "
        "Please delete tags through the Bento dashboard."
    )


def register(sub, parents) -> None:
    group = add_group(sub, "tags", "Manage tags", parents)

    p = group.add_parser("list", parents=parents, help="List all tags")
    p.add_argument("search", nargs="?", help="Filter tags by name")
    p.set_defaults(handler=cmd_list)

    p = group.add_parser("create", parents=parents, help="Create a new tag")
    p.add_argument("name", help="Name of the tag to create")
    p.set_defaults(handler=cmd_create)

    p = group.add_parser("delete", parents=parents, help="Delete a tag")
    p.add_argument("name", help="Name of the tag to delete")
    p.add_argument("--confirm", action="store_true", help="Skip confirmation prompt")
    p.set_defaults(handler=cmd_delete)

"""
Profile management commands:

  bento profile add NAME
  bento profile list
  bento profile use NAME
  bento profile remove NAME [--yes]
"""

from bento_cli.context import AppContext
from bento_cli.errors import CommandError
from bento_cli.output import envelope

from .auth import add_credential_flags, collect_credentials, validate
from .common import add_group, format_date


def cmd_add(ctx: AppContext, args) -> int:
    name = args.name
    if ctx.config.has_profile(name):
        raise CommandError(f"Profile \"{name}\" already exists. Use 'bento auth login --profile {name}' to update it.")

    creds = collect_credentials(ctx, args.publishable_key, args.secret_key, args.site_uuid,
                                f'Creating profile "{name}"')
    validate(ctx, *creds)
    ctx.config.set_profile(name, *creds)

    if ctx.output.is_json():
        ctx.output.json(envelope({"profile": name, "siteUuid": creds[2]}, 1))
    else:
        ctx.output.success(f'Profile "{name}" created')
        ctx.output.info(f"Switch to it with: bento profile use {name}")
    return 0


def cmd_list(ctx: AppContext, args) -> int:
    out = ctx.output
    current = ctx.config.get_current_profile_name()
    names = ctx.config.list_profiles()
    if not names:
        if out.is_json():
            out.json(envelope([], 0))
        else:
            out.info("No profiles configured. Run 'bento auth login' to create one.")
        return 0

    rows = []
    for name in names:
        profile = ctx.config.get_profile(name)
        rows.append({
            "current": name == current,
            "name": name,
            "siteUuid": profile.site_uuid,
            "created": format_date(profile.created_at),
        })
    if out.is_json():
        out.json(envelope(rows, len(rows)))
        return 0
    for row in rows:
        row["current"] = "✓" if row["current"] else ""
    out.table(rows, columns=[("current", ""), ("name", "NAME"), ("siteUuid", "SITE UUID"), ("created", "CREATED")])
    return 0


def cmd_use(ctx: AppContext, args) -> int:
    ctx.config.use_profile(args.name)
    ctx.reset()
    if ctx.output.is_json():
        ctx.output.json(envelope({"profile": args.name}, 1))
    else:
        ctx.output.success(f'Switched to profile "{args.name}"')
    return 0


def cmd_remove(ctx: AppContext, args) -> int:
    out = ctx.output
    name = args.name
    if not ctx.config.has_profile(name):
        raise CommandError(f'Profile "{name}" not found.')

    if not args.yes:
        if not ctx.safety.is_interactive():
            raise CommandError("Non-interactive mode requires --yes flag to confirm deletion.")
        if not ctx.safety.confirm_prompt(f'Are you sure you want to remove profile "{name}"?'):
            out.info("Aborted.")
            return 0

    was_current = ctx.config.get_current_profile_name() == name
    ctx.config.remove_profile(name)
    if was_current:
        ctx.reset()

    if out.is_json():
        out.json(envelope({"profile": name, "wasCurrentProfile": was_current}, 1))
    else:
        out.success(f'Profile "{name}" removed')
        if was_current:
            out.info("This was the active profile. Run 'bento auth login' or 'bento profile use <name>' to authenticate.")
    return 0


def register(sub, parents) -> None:
    group = add_group(sub, "profile", "Manage credential profiles", parents)

    p = group.add_parser("add", parents=parents, help="Add a new profile")
    p.add_argument("name", help="Name for the new profile")
    add_credential_flags(p)
    p.set_defaults(handler=cmd_add)

    p = group.add_parser("list", parents=parents, help="List all profiles")
    p.set_defaults(handler=cmd_list)

    p = group.add_parser("use", parents=parents, help="Switch to a profile")
    p.add_argument("name", help="Name of the profile to switch to")
    p.set_defaults(handler=cmd_use)

    p = group.add_parser("remove", parents=parents, help="Remove a profile")
    p.add_argument("name", help="Name of the profile to remove")
    p.add_argument("-y", "--yes", action="store_true", help="Skip confirmation prompt")
    p.set_defaults(handler=cmd_remove)

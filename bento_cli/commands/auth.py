"""
Authentication commands:

  bento auth login [--profile NAME] [--publishable-key K --secret-key K --site-uuid U]
  bento auth logout
  bento auth status
"""

from typing import Optional, Tuple

from rich.prompt import Prompt

from bento_cli.context import AppContext
from bento_cli.errors import CommandError
from bento_cli.output import envelope

from .common import add_group, format_date

CREDENTIALS_URL = "https://app.bentonow.com/account/teams"


def mask_key(key: str) -> str:
    if len(key) <= 4:
        return "*" * len(key)
    if len(key) <= 12:
        return key[:4] + "*" * (len(key) - 4)
    return f"{key[:8]}...{key[-4:]}"


def collect_credentials(ctx: AppContext, publishable_key: Optional[str], secret_key: Optional[str],
                        site_uuid: Optional[str], intro: str) -> Tuple[str, str, str]:
    """Credentials from flags, prompting for whatever is missing when attached to a terminal."""
    for value, label in ((publishable_key, "Publishable key"), (secret_key, "Secret key"),
                         (site_uuid, "Site UUID")):
        if value is not None and not value.strip():
            raise CommandError(f"{label} cannot be empty.")

    if not (publishable_key and secret_key and site_uuid):
        if not ctx.safety.is_interactive():
            raise CommandError(
                "Non-interactive mode requires --publishable-key, --secret-key, and --site-uuid flags."
            )
        ctx.output.info(intro)
        ctx.output.log(f"Find your credentials at: {CREDENTIALS_URL}")
        ctx.output.newline()
        if not publishable_key:
            publishable_key = Prompt.ask("Enter your Publishable Key", password=True)
        if not secret_key:
            secret_key = Prompt.ask("Enter your Secret Key", password=True)
        if not site_uuid:
            site_uuid = Prompt.ask("Enter your Site UUID")

    creds = (publishable_key.strip(), secret_key.strip(), site_uuid.strip())
    for value, label in zip(creds, ("Publishable key", "Secret key", "Site UUID")):
        if not value:
            raise CommandError(f"{label} cannot be empty.")
    return creds


def validate(ctx: AppContext, publishable_key: str, secret_key: str, site_uuid: str) -> None:
    out = ctx.output
    out.start_spinner("Validating credentials...")
    client = ctx.make_client(publishable_key, secret_key, site_uuid)
    if not client.validate_credentials():
        out.fail_spinner("Invalid credentials")
        raise CommandError("Invalid credentials. Please check your Publishable Key, Secret Key, and Site UUID.")
    out.stop_spinner("Credentials validated")


def cmd_login(ctx: AppContext, args) -> int:
    creds = collect_credentials(ctx, args.publishable_key, args.secret_key, args.site_uuid,
                                "Authenticate with your Bento API credentials.")
    validate(ctx, *creds)

    ctx.config.set_profile(args.profile, *creds)
    ctx.config.use_profile(args.profile)
    ctx.reset()

    if ctx.output.is_json():
        ctx.output.json(envelope({"profile": args.profile, "siteUuid": creds[2]}, 1))
    else:
        ctx.output.success(f'Authenticated and saved to profile "{args.profile}"')
    return 0


def cmd_logout(ctx: AppContext, args) -> int:
    out = ctx.output
    name = ctx.config.get_current_profile_name()
    if not name:
        if out.is_json():
            out.json(envelope({"loggedOut": False, "reason": "not_authenticated"}, 0))
        else:
            out.warn("No active profile to log out from.")
        return 0

    ctx.config.remove_profile(name)
    ctx.reset()
    if out.is_json():
        out.json(envelope({"loggedOut": True, "profile": name}, 1))
    else:
        out.success(f'Logged out from profile "{name}"')
    return 0


def cmd_status(ctx: AppContext, args) -> int:
    out = ctx.output
    if not ctx.is_authenticated():
        if out.is_json():
            out.json(envelope({"authenticated": False}, 0))
        else:
            out.info("Not authenticated. Run 'bento auth login' to authenticate.")
        return 0

    # BENTO_* credentials in the environment win over the stored profile
    from_env = ctx.env_profile() is not None
    profile = ctx.current_profile()
    name = None if from_env else ctx.config.get_current_profile_name()
    masked = mask_key(profile.publishable_key)
    if out.is_json():
        out.json(envelope({
            "authenticated": True,
            "source": "environment" if from_env else "profile",
            "profile": name,
            "siteUuid": profile.site_uuid,
            "publishableKey": masked,
            "createdAt": profile.created_at or None,
            "updatedAt": profile.updated_at or None,
        }, 1))
    elif from_env:
        out.object({
            "Source": "Environment (BENTO_PUBLISHABLE_KEY, BENTO_SECRET_KEY, BENTO_SITE_UUID)",
            "Site UUID": profile.site_uuid,
            "Publishable Key": masked,
        })
    else:
        out.object({
            "Profile": name,
            "Site UUID": profile.site_uuid,
            "Publishable Key": masked,
            "Created": format_date(profile.created_at, with_time=True),
            "Updated": format_date(profile.updated_at, with_time=True),
        })
    return 0


def add_credential_flags(p) -> None:
    p.add_argument("--publishable-key", help="Publishable key (for non-interactive use)")
    p.add_argument("--secret-key", help="Secret key (for non-interactive use)")
    p.add_argument("--site-uuid", help="Site UUID (for non-interactive use)")


def register(sub, parents) -> None:
    group = add_group(sub, "auth", "Authentication management", parents)

    p = group.add_parser("login", parents=parents, help="Authenticate with Bento API")
    p.add_argument("-p", "--profile", default="default", help="Profile to store credentials in")
    add_credential_flags(p)
    p.set_defaults(handler=cmd_login)

    p = group.add_parser("logout", parents=parents, help="Clear current authentication")
    p.set_defaults(handler=cmd_logout)

    p = group.add_parser("status", parents=parents, help="Show current authentication status")
    p.set_defaults(handler=cmd_status)

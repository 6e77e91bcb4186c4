import logging
import os
from typing import Callable, Mapping, Optional

from bento_cli.client import BentoClient
from bento_cli.config import ConfigManager, Profile
from bento_cli.errors import ApiError, Err, ErrorKind
from bento_cli.output import Output
from bento_cli.safety import Safety, SafetyConfig

log = logging.getLogger(__name__)

ENV_CREDENTIALS = ("BENTO_PUBLISHABLE_KEY", "BENTO_SECRET_KEY", "BENTO_SITE_UUID")


class AppContext:
    """Everything a command handler needs, built once per process.

    The API client is created lazily from the active profile on first use.
    Login, logout and profile switches call ``reset()``.
    """

    def __init__(self, output: Output, config: ConfigManager, safety: Safety,
                 client: Optional[BentoClient] = None,
                 client_factory: Callable[[Profile], BentoClient] = BentoClient.from_profile,
                 environ: Optional[Mapping[str, str]] = None):
        self.output = output
        self.config = config
        self.safety = safety
        self.environ = os.environ if environ is None else environ
        self._client = client
        self._client_factory = client_factory

    @classmethod
    def create(cls, output: Optional[Output] = None, environ: Optional[Mapping[str, str]] = None,
               **safety_kwargs) -> "AppContext":
        environ = os.environ if environ is None else environ
        output = output or Output()
        safety = Safety(output, SafetyConfig.from_env(environ), environ=environ, **safety_kwargs)
        return cls(output, ConfigManager(), safety, environ=environ)

    def env_profile(self) -> Optional[Profile]:
        values = [self.environ.get(name, "").strip() for name in ENV_CREDENTIALS]
        if all(values):
            return Profile(*values)
        return None

    def current_profile(self) -> Optional[Profile]:
        return self.env_profile() or self.config.get_current_profile()

    def is_authenticated(self) -> bool:
        return self.current_profile() is not None

    @property
    def client(self) -> BentoClient:
        if self._client is None:
            profile = self.current_profile()
            if profile is None:
                raise ApiError(Err(ErrorKind.AUTH_REQUIRED, "Not authenticated. Run 'bento auth login' first."))
            log.debug("Creating API client for site %s", profile.site_uuid)
            self._client = self._client_factory(profile)
        return self._client

    def make_client(self, publishable_key: str, secret_key: str, site_uuid: str) -> BentoClient:
        """Client for explicit credentials (used to validate before saving)."""
        return self._client_factory(Profile(publishable_key, secret_key, site_uuid))

    def reset(self) -> None:
        """Drop the cached client and profile store so the next use re-reads credentials."""
        self._client = None
        self.config = ConfigManager(self.config.path)

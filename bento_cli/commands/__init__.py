"""Command bindings, one module per resource. Each exposes ``register(sub, parents)``."""

from . import auth, broadcasts, dashboard, events, fields, profile, stats, subscribers, tags

MODULES = (auth, profile, subscribers, tags, fields, events, broadcasts, stats, dashboard)


def register_all(sub, parents) -> None:
    for module in MODULES:
        module.register(sub, parents)

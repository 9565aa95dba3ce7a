"""Commands package for isoenv CLI."""

from . import account, bedrock, budget, env, permission_set, session, user

__all__ = ["account", "bedrock", "budget", "env", "permission_set", "session", "user"]

from kpis.core.auth.tokens import AuthResolution, hash_token, resolve_bearer_user

__all__ = ["AuthResolution", "hash_token", "resolve_bearer_user"]

import os

SECRETS_DIR = "/run/secrets"


def get_secret(secret_name: str, default: str | None = None) -> str | None:
    """
    Read a docker secret (`/run/secrets/<lowercase name>`), falling back to the upper-case env var.
    """
    secrets_path = os.path.join(SECRETS_DIR, secret_name.lower())
    if os.path.exists(secrets_path):
        with open(secrets_path) as f:
            # secret files usually end with a newline
            return f.read().strip()
    return os.environ.get(secret_name.upper(), default)

"""Client names and their workspaces."""

import re
from pathlib import Path

import config
from errors import ClientNotFoundError, InvalidClientError

# kebab-case only: no path separators, quotes or whitespace can get through
CLIENT_NAME_RE = re.compile(r"[a-z0-9]+(-[a-z0-9]+)*")


def is_valid_client_name(name: str) -> bool:
    return bool(name) and CLIENT_NAME_RE.fullmatch(name) is not None


def validate_client_name(name: str) -> str:
    """Return name unchanged, or raise InvalidClientError."""
    if not isinstance(name, str) or not is_valid_client_name(name):
        raise InvalidClientError(str(name))
    return name


def client_workspace(name: str) -> Path:
    if name == config.PERSONAL_CLIENT:
        return config.PERSONAL_DIR
    return config.CLIENTS_DIR / name


def client_workspace_exists(name: str) -> bool:
    """Whether the client has a provisioned directory. The personal workspace is created on demand."""
    path = client_workspace(name)
    if name == config.PERSONAL_CLIENT:
        path.mkdir(parents=True, exist_ok=True)
        return True
    return path.is_dir()


def require_workspace(name: str):
    if not client_workspace_exists(name):
        raise ClientNotFoundError(name, client_workspace(name))

"""Client name validation and workspace lookup."""

import pytest

import config
from errors import ClientNotFoundError, InvalidClientError
from time_tracker import clients


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "CLIENTS_DIR", tmp_path / "clients")
    monkeypatch.setattr(config, "PERSONAL_DIR", tmp_path / "personal")
    (tmp_path / "clients" / "acme").mkdir(parents=True)
    return tmp_path


@pytest.mark.parametrize("name,valid", [
    ("acme", True), ("acme-corp", True), ("a1-b2", True),
    ("Acme", False), ("acme_corp", False), ("acme-", False), ("-acme", False),
    ("acme--corp", False), ("acme/../x", False), ("", False), ("acme\n", False), ("acme-corp\n", False),
])
def test_is_valid_client_name(name, valid):
    assert clients.is_valid_client_name(name) is valid


def test_validate_client_name_raises():
    with pytest.raises(InvalidClientError) as exc:
        clients.validate_client_name("ACME")
    assert exc.value.client == "ACME"


def test_existing_workspace(workspace):
    assert clients.client_workspace_exists("acme")
    clients.require_workspace("acme")


def test_missing_workspace(workspace):
    assert not clients.client_workspace_exists("beta")
    with pytest.raises(ClientNotFoundError) as exc:
        clients.require_workspace("beta")
    assert exc.value.path == workspace / "clients" / "beta"


def test_personal_workspace_created_on_demand(workspace):
    assert not (workspace / "personal").exists()
    assert clients.client_workspace_exists("personal")
    assert (workspace / "personal").is_dir()

import json
import os

from splitease import config


def _clear_secret_env(monkeypatch):
    # setenv first so monkeypatch restores whatever export_secrets writes
    for key in config.SECRET_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_data_file_prefers_environment(monkeypatch, tmp_path):
    target = str(tmp_path / "ledger.json")
    monkeypatch.setenv("SPLITEASE_DATA_FILE", target)
    assert config.data_file() == target


def test_data_file_uses_temp_file_under_pytest(monkeypatch):
    monkeypatch.delenv("SPLITEASE_DATA_FILE", raising=False)
    assert config.data_file().endswith("tmp_splitease_test.json")


def test_default_currency(monkeypatch):
    monkeypatch.delenv("SPLITEASE_DEFAULT_CURRENCY", raising=False)
    assert config.default_currency() == "USD"
    monkeypatch.setenv("SPLITEASE_DEFAULT_CURRENCY", " eur ")
    assert config.default_currency() == "EUR"


def test_export_secrets_does_not_override(monkeypatch):
    _clear_secret_env(monkeypatch)
    monkeypatch.setenv("GOOGLE_SHEET_ID", "from-env")
    exported = config.export_secrets({"GOOGLE_SHEET_ID": "from-secrets", "SPLITEASE_DEFAULT_CURRENCY": "GBP",
                                      "SPLITEASE_DATA_FILE": ""})
    assert exported == ["SPLITEASE_DEFAULT_CURRENCY"]
    assert os.environ["GOOGLE_SHEET_ID"] == "from-env"
    assert config.default_currency() == "GBP"
    assert "SPLITEASE_DATA_FILE" not in os.environ


def test_export_table_style_service_account(monkeypatch):
    _clear_secret_env(monkeypatch)
    account = {"type": "service_account", "client_email": "bot@example.iam.gserviceaccount.com"}
    exported = config.export_secrets({"gcp_service_account": account})
    assert exported == ["GOOGLE_SERVICE_ACCOUNT_JSON"]
    assert json.loads(config.google_service_account_json()) == account

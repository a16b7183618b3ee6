"""
config.py - environment-driven settings

All settings are read from environment variables at call time so tests and the
Streamlit app (app.py exports its secrets with export_secrets) can set them
before the store is created.

  SPLITEASE_DATA_FILE          path of the local JSON store
  SPLITEASE_DEFAULT_CURRENCY   currency label for a fresh user (default USD)
  GOOGLE_SHEET_ID              enables the Google Sheets backend
  GOOGLE_SERVICE_ACCOUNT_JSON  service account info (JSON text)
  GOOGLE_SERVICE_ACCOUNT_FILE  service account key file
"""

import json
import os
import sys
import tempfile

_default_data_file = os.path.join(os.path.dirname(__file__), "..", "data", "splitease_data.json")


def running_under_pytest() -> bool:
    return any("pytest" in p for p in sys.argv) or bool(os.getenv("PYTEST_CURRENT_TEST"))


def data_file() -> str:
    """
    Location of the JSON store. Under pytest a temp file is used so tests never
    touch the real data file.
    """
    explicit = (os.getenv("SPLITEASE_DATA_FILE") or "").strip()
    if explicit:
        return explicit
    if running_under_pytest():
        return os.path.join(tempfile.gettempdir(), "tmp_splitease_test.json")
    return _default_data_file


def default_currency() -> str:
    return (os.getenv("SPLITEASE_DEFAULT_CURRENCY") or "USD").strip().upper() or "USD"


def google_sheet_id() -> str:
    return (os.getenv("GOOGLE_SHEET_ID") or "").strip()


def google_service_account_json() -> str:
    return (os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON") or "").strip()


def google_service_account_file() -> str:
    return (os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE") or "").strip()


# keys copied from Streamlit secrets into the environment on startup
SECRET_KEYS = (
    "GOOGLE_SHEET_ID",
    "GOOGLE_SERVICE_ACCOUNT_JSON",
    "GOOGLE_SERVICE_ACCOUNT_FILE",
    "SPLITEASE_DATA_FILE",
    "SPLITEASE_DEFAULT_CURRENCY",
)


def export_secrets(secrets) -> list:
    """
    Copy configured secrets into os.environ without overriding variables that
    are already set. A table-style [gcp_service_account] secret is serialized
    into GOOGLE_SERVICE_ACCOUNT_JSON. Returns the names that were exported.
    """
    exported = []
    for key in SECRET_KEYS:
        if key in secrets and secrets[key] and key not in os.environ:
            os.environ[key] = str(secrets[key])
            exported.append(key)
    if "GOOGLE_SERVICE_ACCOUNT_JSON" not in os.environ and "gcp_service_account" in secrets:
        account = secrets["gcp_service_account"]
        if account:
            os.environ["GOOGLE_SERVICE_ACCOUNT_JSON"] = json.dumps(dict(account))
            exported.append("GOOGLE_SERVICE_ACCOUNT_JSON")
    return exported

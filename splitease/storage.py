"""
storage.py - ledger store (persistence)

Responsibilities:
 - keep every record collection (expenses, settlements, groups, friends) plus
   the single local user record in memory
 - persist to Google Sheets when configured, otherwise to a local JSON file
   written atomically
 - expose a small CRUD API per collection:
     list(sort_by, limit), filter(query, sort_by, limit), get(id),
     create(data), bulk_create(items), update(id, data), delete(id)
 - export / import a full JSON snapshot

Expense and Settlement records are checked for required fields on the way in
so malformed data is rejected here instead of surfacing later as a wrong balance.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
import ast
import datetime
import json
import logging
import os
import random
import shutil
import string
import tempfile
import time

from splitease import config
from splitease.errors import RecordNotFound
from splitease.models import Expense, Settlement, User

# Optional Google Sheets backend imports are lazy/optional; we try to use them
try:
    import gspread
    from google.oauth2.service_account import Credentials
except Exception:
    gspread = None
    Credentials = None

COLLECTIONS = ("expenses", "settlements", "groups", "friends")

# ensure a logger is available
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def generate_id() -> str:
    """Epoch milliseconds plus 9 random base36 characters, e.g. 1718000000000_k3j9x0a1b."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{int(time.time() * 1000)}_{suffix}"


def now_iso() -> str:
    stamp = datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _empty_state() -> Dict[str, Any]:
    state: Dict[str, Any] = {"user": None}
    for name in COLLECTIONS:
        state[name] = []
    return state


def _sort_key(value: Any) -> Tuple[int, float, str]:
    # records written by different versions may mix types or omit the field
    if value is None or value == "":
        return (0, 0.0, "")
    if isinstance(value, bool):
        return (1, float(value), "")
    if isinstance(value, (int, float)):
        return (1, float(value), "")
    return (2, 0.0, str(value))


def sort_records(items: List[Dict], sort_by: Optional[str]) -> List[Dict]:
    """Sort by a field name; a leading '-' means descending."""
    if not sort_by:
        return list(items)
    desc = sort_by.startswith("-")
    fld = sort_by.lstrip("-")
    return sorted(items, key=lambda item: _sort_key(item.get(fld)), reverse=desc)


class GoogleSheetsBackend:
    """
    Google Sheets persistence backend.

    Data layout:
      - one worksheet per collection ("expenses", "settlements", "groups", "friends")
        with a fixed header row; nested values (payers, splits, members...) are
        stored as JSON text, unknown fields go to the trailing "extra_json" column
      - worksheet "meta": key/value rows, currently only the user record
    """

    META_SHEET_NAME = "meta"
    META_HEADERS = ["key", "value"]
    HEADERS = {
        "expenses": [
            "id", "description", "amount", "currency", "date", "category", "group_id",
            "payers", "split_method", "splits", "payment_method", "receipt_url", "due_date",
            "comments", "tags", "created_date", "updated_date", "created_by",
        ],
        "settlements": [
            "id", "from_user", "to_user", "amount", "date", "note", "group_id", "currency",
            "payment_method", "created_date", "updated_date", "created_by",
        ],
        "groups": [
            "id", "name", "description", "type", "members", "default_currency", "simplify_debts",
            "created_date", "updated_date", "created_by",
        ],
        "friends": [
            "id", "user_email", "friend_email", "friend_name", "added_date",
            "created_date", "updated_date", "created_by",
        ],
    }
    EXTRA_COLUMN = "extra_json"
    JSON_FIELDS = {"payers", "splits", "comments", "tags", "members"}
    FLOAT_FIELDS = {"amount"}
    BOOL_FIELDS = {"simplify_debts"}
    SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

    def __init__(self, sheet_id: Optional[str] = None):
        self.available = False
        self.reason = ""
        self.sheet_id = (sheet_id if sheet_id is not None else config.google_sheet_id()).strip()
        self._spreadsheet = None
        self._worksheets: Dict[str, Any] = {}
        self._meta_ws = None

        if not self.sheet_id:
            self.reason = "GOOGLE_SHEET_ID is not set"
            return
        if gspread is None or Credentials is None:
            self.reason = "Google Sheets dependencies are unavailable"
            return

        try:
            creds = self._build_credentials()
            client = gspread.authorize(creds)
            self._spreadsheet = client.open_by_key(self.sheet_id)
            for name in COLLECTIONS:
                headers = self._headers(name)
                self._worksheets[name] = self._get_or_create_worksheet(name, rows=1000, cols=max(12, len(headers)))
            self._meta_ws = self._get_or_create_worksheet(self.META_SHEET_NAME, rows=200, cols=4)
            self._ensure_headers()
            self.available = True
        except Exception as exc:
            self.available = False
            self.reason = f"Google Sheets init failed ({exc.__class__.__name__})"
            logger.warning("Google Sheets backend unavailable: %s", self.reason)

    def _headers(self, collection: str) -> List[str]:
        return self.HEADERS[collection] + [self.EXTRA_COLUMN]

    def _build_credentials(self):
        service_account_json = config.google_service_account_json()
        service_account_file = config.google_service_account_file()

        if service_account_json:
            try:
                info = json.loads(service_account_json)
            except ValueError:
                # tolerate Python-dict style strings often used by mistake in env vars
                info = ast.literal_eval(service_account_json)
            if not isinstance(info, dict):
                raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON must decode to an object")
            return Credentials.from_service_account_info(info, scopes=self.SCOPES)

        if service_account_file:
            return Credentials.from_service_account_file(service_account_file, scopes=self.SCOPES)

        # Fallback to application default credentials if available.
        import google.auth
        creds, _ = google.auth.default(scopes=self.SCOPES)
        return creds

    def _get_or_create_worksheet(self, title: str, rows: int, cols: int):
        try:
            return self._spreadsheet.worksheet(title)
        except gspread.exceptions.WorksheetNotFound:
            return self._spreadsheet.add_worksheet(title=title, rows=rows, cols=cols)

    @staticmethod
    def _ensure_sheet_size(ws, min_rows: int, min_cols: int):
        new_rows = max(ws.row_count, min_rows)
        new_cols = max(ws.col_count, min_cols)
        if new_rows != ws.row_count or new_cols != ws.col_count:
            ws.resize(rows=new_rows, cols=new_cols)

    def _write_header_if_needed(self, ws, headers: List[str]):
        first = ws.row_values(1) or []
        if [x.strip() for x in first] != headers:
            self._ensure_sheet_size(ws, 2, len(headers))
            ws.update(range_name="A1", values=[headers], value_input_option="RAW")

    def _ensure_headers(self):
        # Keep headers explicit so sheets stay readable by humans.
        for name, ws in self._worksheets.items():
            self._write_header_if_needed(ws, self._headers(name))
        if self._meta_ws:
            self._write_header_if_needed(self._meta_ws, self.META_HEADERS)

    @classmethod
    def _encode_cell(cls, key: str, value: Any) -> str:
        if value is None:
            return ""
        if key in cls.JSON_FIELDS or isinstance(value, (list, dict)):
            return json.dumps(value, ensure_ascii=False)
        if isinstance(value, bool):
            return "true" if value else "false"
        if key in cls.FLOAT_FIELDS:
            return repr(float(value))
        return str(value)

    @staticmethod
    def _parse_json_or_literal(value: Any):
        if isinstance(value, (list, dict)):
            return value
        text = str(value or "").strip()
        if not text:
            return None
        for parser in (json.loads, ast.literal_eval):
            try:
                return parser(text)
            except (ValueError, SyntaxError):
                continue
        return None

    @classmethod
    def _decode_cell(cls, key: str, text: Any) -> Any:
        raw = str(text if text is not None else "").strip()
        if key in cls.JSON_FIELDS:
            parsed = cls._parse_json_or_literal(raw)
            return parsed if parsed is not None else []
        if key in cls.FLOAT_FIELDS:
            if not raw:
                return None
            try:
                return float(raw)
            except ValueError:
                return None
        if key in cls.BOOL_FIELDS:
            return raw.lower() in ("true", "1", "yes")
        return raw

    def _record_to_row(self, collection: str, record: Dict[str, Any]) -> List[str]:
        headers = self.HEADERS[collection]
        row = [self._encode_cell(h, record.get(h)) for h in headers]
        extra = {k: v for k, v in record.items() if k not in headers}
        row.append(json.dumps(extra, ensure_ascii=False) if extra else "")
        return row

    def _row_to_record(self, headers: List[str], row: List[str]) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        for idx, header in enumerate(headers):
            if not header:
                continue
            cell = row[idx] if idx < len(row) else ""
            if header == self.EXTRA_COLUMN:
                extra = self._parse_json_or_literal(cell)
                if isinstance(extra, dict):
                    record.update(extra)
                continue
            record[header] = self._decode_cell(header, cell)
        return record

    def save_state(self, data: Dict[str, Any]) -> bool:
        if not self.available:
            return False

        try:
            self._ensure_headers()
            for name, ws in self._worksheets.items():
                headers = self._headers(name)
                rows = [headers] + [self._record_to_row(name, r) for r in data.get(name, []) or []]
                self._ensure_sheet_size(ws, len(rows) + 10, len(headers))
                # Use RAW to store user content as plain values (not spreadsheet formulas).
                ws.clear()
                ws.update(range_name="A1", values=rows, value_input_option="RAW")

            meta_rows = [self.META_HEADERS]
            if data.get("user"):
                meta_rows.append(["user", json.dumps(data["user"], ensure_ascii=False)])
            self._ensure_sheet_size(self._meta_ws, len(meta_rows) + 5, len(self.META_HEADERS))
            self._meta_ws.clear()
            self._meta_ws.update(range_name="A1", values=meta_rows, value_input_option="RAW")
            return True
        except Exception:
            logger.exception("Failed to save ledger state to Google Sheets")
            return False

    def load_state(self) -> Dict[str, Any]:
        if not self.available:
            return {}

        try:
            self._ensure_headers()
            state = _empty_state()
            for name, ws in self._worksheets.items():
                values = ws.get_all_values() or []
                if not values:
                    continue
                headers = [str(h).strip().lower() for h in values[0]]
                for row in values[1:]:
                    if not any(str(c).strip() for c in row):
                        continue
                    state[name].append(self._row_to_record(headers, row))

            for row in (self._meta_ws.get_all_values() or [])[1:]:
                if len(row) > 1 and str(row[0]).strip() == "user":
                    user = self._parse_json_or_literal(row[1])
                    if isinstance(user, dict):
                        state["user"] = user
            return state
        except Exception:
            logger.exception("Failed to load ledger state from Google Sheets")
            return {}


class EntityCollection:
    """
    CRUD view over one record collection of a LedgerStore.
    Records are plain dicts; every write persists the whole store.
    """

    def __init__(self, store: "LedgerStore", name: str, validator: Optional[Callable[[Dict], Any]] = None):
        self._store = store
        self.name = name
        self._validator = validator

    def _items(self) -> List[Dict]:
        return self._store._data[self.name]

    def list(self, sort_by: Optional[str] = "-created_date", limit: Optional[int] = 1000) -> List[Dict]:
        items = sort_records(self._items(), sort_by)
        return items[:limit] if limit else items

    def filter(self, query: Dict[str, Any], sort_by: Optional[str] = None, limit: Optional[int] = None) -> List[Dict]:
        """Records whose fields equal every value in `query`."""
        items = [item for item in self._items() if all(item.get(k) == v for k, v in query.items())]
        items = sort_records(items, sort_by)
        return items[:limit] if limit else items

    def get(self, record_id: str) -> Dict:
        for item in self._items():
            if item.get("id") == record_id:
                return item
        raise RecordNotFound(self.name, record_id)

    def _stamp(self, data: Dict[str, Any]) -> Dict[str, Any]:
        stamp = now_iso()
        record = dict(data)
        record.update({
            "id": generate_id(),
            "created_date": stamp,
            "updated_date": stamp,
            "created_by": self._store.get_user().get("email", ""),
        })
        if self._validator:
            self._validator(record)
        return record

    def create(self, data: Dict[str, Any]) -> Dict:
        self._store._refresh()
        record = self._stamp(data)
        self._items().append(record)
        self._store.save()
        logger.info("Created %s record id=%s", self.name, record["id"])
        return record

    def bulk_create(self, items: List[Dict[str, Any]]) -> List[Dict]:
        self._store._refresh()
        records = [self._stamp(d) for d in items]
        self._items().extend(records)
        self._store.save()
        logger.info("Created %d %s records", len(records), self.name)
        return records

    def update(self, record_id: str, data: Dict[str, Any]) -> Dict:
        self._store._refresh()
        items = self._items()
        for i, item in enumerate(items):
            if item.get("id") == record_id:
                updated = dict(item)
                updated.update(data)
                # ids are stable
                updated["id"] = record_id
                updated["updated_date"] = now_iso()
                if self._validator:
                    self._validator(updated)
                items[i] = updated
                self._store.save()
                return updated
        logger.info("%s id=%s not found", self.name, record_id)
        raise RecordNotFound(self.name, record_id)

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False when the id does not exist."""
        self._store._refresh()
        items = self._items()
        for i, item in enumerate(items):
            if item.get("id") == record_id:
                removed = items.pop(i)
                try:
                    self._store.save()
                except Exception:
                    logger.exception("Error saving after delete")
                    # restore in-memory list if save failed
                    items.insert(i, removed)
                    raise
                logger.info("Deleted %s id=%s. Remaining=%d.", self.name, record_id, len(items))
                return True
        logger.info("%s id=%s not found", self.name, record_id)
        return False


class LedgerStore:
    """
    Persistence collaborator for the ledger. One instance is created per app
    session (or per test) and handed to the LedgerTracker.
    """

    def __init__(self, data_file: Optional[str] = None, sheets_backend: Optional[GoogleSheetsBackend] = None,
                 use_google_sheets: bool = True):
        self.data_file = data_file or config.data_file()
        self._data: Dict[str, Any] = _empty_state()
        if sheets_backend is not None:
            self._gs_backend = sheets_backend
        elif use_google_sheets:
            self._gs_backend = GoogleSheetsBackend()
        else:
            self._gs_backend = None

        self.expenses = EntityCollection(self, "expenses", validator=Expense.from_dict)
        self.settlements = EntityCollection(self, "settlements", validator=Settlement.from_dict)
        self.groups = EntityCollection(self, "groups")
        self.friends = EntityCollection(self, "friends")
        self.load()

    def uses_google_sheets(self) -> bool:
        """True when the durable Google Sheets backend is active."""
        return bool(self._gs_backend and self._gs_backend.available)

    def storage_status(self) -> Tuple[str, str]:
        """Current backend name and a short diagnostic message for the UI."""
        if self.uses_google_sheets():
            return "google_sheets", "Persistent storage active (Google Sheets)."
        reason = getattr(self._gs_backend, "reason", "") or "Google Sheets not configured"
        return "local_json", f"Using local file fallback: {reason}."

    def _refresh(self):
        # Refresh from remote before mutating to reduce stale-session overwrites.
        if self.uses_google_sheets():
            self.load()

    # -----------------------
    # user record
    # -----------------------
    def get_user(self) -> Dict[str, Any]:
        """Return the local user, creating and persisting the default one on first use."""
        if not self._data.get("user"):
            user = User(id=generate_id(), default_currency=config.default_currency())
            self._data["user"] = user.to_dict()
            self.save()
        return dict(self._data["user"])

    def update_user(self, **fields) -> Dict[str, Any]:
        user = self.get_user()
        user.update(fields)
        self._data["user"] = user
        self.save()
        return dict(user)

    # -----------------------
    # snapshot helpers
    # -----------------------
    def export_snapshot(self) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {"user": self.get_user()}
        for name in COLLECTIONS:
            snapshot[name] = [dict(r) for r in self._data[name]]
        snapshot["exported_at"] = now_iso()
        return snapshot

    def import_snapshot(self, data: Dict[str, Any]):
        """Replace the user and every collection present in `data`; others are kept."""
        if data.get("user"):
            self._data["user"] = dict(data["user"])
        for name in COLLECTIONS:
            if data.get(name) is not None:
                records = [dict(r) for r in data[name]]
                if name == "expenses":
                    for r in records:
                        Expense.from_dict(r)
                elif name == "settlements":
                    for r in records:
                        Settlement.from_dict(r)
                self._data[name] = records
        self.save()
        logger.info("Imported snapshot (%s)", ", ".join(f"{n}={len(self._data[n])}" for n in COLLECTIONS))

    def clear(self):
        """Delete every record, the user included."""
        self._data = _empty_state()
        self.save()

    # -----------------------
    # persistence
    # -----------------------
    def save(self):
        """
        Persist the whole state: Google Sheets when available, else the JSON
        file (written to a temp file, fsynced, then moved into place).
        """
        data = self._data
        try:
            if self.uses_google_sheets():
                logger.info("Saving data to Google Sheets (expenses=%d)", len(data["expenses"]))
                if self._gs_backend.save_state(data):
                    return
                logger.warning("Google Sheets save failed, falling back to local JSON")
        except Exception:
            logger.exception("Error while attempting to save to Google Sheets; falling back to local JSON")

        target = os.path.abspath(self.data_file)
        dirn = os.path.dirname(target)
        os.makedirs(dirn, exist_ok=True)
        logger.info("Saving data to %s (expenses=%d, settlements=%d)",
                    target, len(data["expenses"]), len(data["settlements"]))
        fd, tmp_path = tempfile.mkstemp(prefix="tmp_splitease_", dir=dirn, text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            shutil.move(tmp_path, target)
        except Exception:
            logger.exception("Failed to save data file")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def load(self):
        """
        Load state from Google Sheets when configured, otherwise the JSON file.
        Missing collections default to empty lists.
        """
        data = None
        try:
            if self.uses_google_sheets():
                logger.info("Loading data from Google Sheets")
                data = self._gs_backend.load_state() or None
        except Exception:
            logger.exception("Error loading from Google Sheets, falling back to local JSON")
            data = None

        if not data:
            if not os.path.exists(self.data_file):
                return
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)

        state = _empty_state()
        state["user"] = data.get("user") or None
        for name in COLLECTIONS:
            state[name] = [dict(r) for r in data.get(name, []) or []]
        self._data = state

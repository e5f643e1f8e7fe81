"""
Double en mémoire du client Supabase utilisé par les tests.

- table(...).select/insert/update/upsert/delete + filtres eq/neq/in_/is_/order/limit
- contraintes uniques déclarées par table (APIError code 23505, comme PostgREST)
- rpc: reserve/release_registration_capacity (UPDATE conditionnel sous verrou) et increment_coupon_uses
- auth: get_user / sign_up / admin.create_user
Un verrou global sérialise chaque execute(), comme le ferait la base pour une instruction.
"""
import copy
import itertools
import threading
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError

_EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)

UniqueRule = Tuple[Tuple[str, ...], Optional[Callable[[Dict[str, Any]], bool]]]

DEFAULT_UNIQUE: Dict[str, List[UniqueRule]] = {
    "registrations": [
        (("user_id", "event_id", "category_id"), lambda r: r.get("status") != "cancelled"),
    ],
    "coupon_usages": [(("coupon_id", "user_id"), None)],
    "profiles": [(("email",), lambda r: bool(r.get("email")))],
}

class FakeResponse:
    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count

class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.action = "select"
        self.payload: Any = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.order_by: List[Tuple[str, bool]] = []
        self.limit_n: Optional[int] = None

    # --- actions ---
    def select(self, columns: str = "*", count: Optional[str] = None):
        if self.action not in ("insert", "update", "upsert", "delete"):
            self.action = "select"
        return self

    def insert(self, payload: Any):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload: Dict[str, Any]):
        self.action, self.payload = "update", payload
        return self

    def upsert(self, payload: Any, **_kwargs):
        self.action, self.payload = "upsert", payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    # --- filtres ---
    def eq(self, column: str, value: Any):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def neq(self, column: str, value: Any):
        # SQL: NULL <> x n'est pas vrai
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) != value)
        return self

    def in_(self, column: str, values: List[Any]):
        allowed = list(values)
        self.filters.append(lambda r: r.get(column) in allowed)
        return self

    def is_(self, column: str, value: Any):
        if value in ("null", None):
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: r.get(column) is value)
        return self

    def order(self, column: str, desc: bool = False, **_kwargs):
        self.order_by.append((column, desc))
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    # --- exécution ---
    def _match(self, row: Dict[str, Any]) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table_name, self.action))
        with self.db.lock:
            if self.table_name in self.db.failing_tables or (self.table_name, self.action) in self.db.failing_ops:
                raise APIError({"code": "XX000", "message": f"table {self.table_name} indisponible"})
            rows = self.db.tables.setdefault(self.table_name, [])
            if self.action == "select":
                found = [r for r in rows if self._match(r)]
                for column, desc in reversed(self.order_by):
                    found.sort(key=lambda r: (r.get(column) is None, r.get(column) or 0), reverse=desc)
                if self.limit_n is not None:
                    found = found[: self.limit_n]
                return FakeResponse(copy.deepcopy(found), count=len(found))
            if self.action == "insert":
                items = self.payload if isinstance(self.payload, list) else [self.payload]
                created = [self.db._prepare(self.table_name, item) for item in items]
                for item in created:
                    self.db._check_unique(self.table_name, item, rows + [c for c in created if c is not item])
                rows.extend(created)
                return FakeResponse(copy.deepcopy(created))
            if self.action == "upsert":
                items = self.payload if isinstance(self.payload, list) else [self.payload]
                out = []
                for item in items:
                    existing = next((r for r in rows if item.get("id") and r.get("id") == item.get("id")), None)
                    if existing:
                        candidate = {**existing, **item}
                        self.db._check_unique(self.table_name, candidate, [r for r in rows if r is not existing])
                        existing.update(item)
                        out.append(copy.deepcopy(existing))
                    else:
                        new = self.db._prepare(self.table_name, item)
                        self.db._check_unique(self.table_name, new, rows)
                        rows.append(new)
                        out.append(copy.deepcopy(new))
                return FakeResponse(out)
            if self.action == "update":
                targets = [r for r in rows if self._match(r)]
                for r in targets:
                    candidate = {**r, **self.payload}
                    self.db._check_unique(self.table_name, candidate, [o for o in rows if o is not r])
                for r in targets:
                    r.update(copy.deepcopy(self.payload))
                return FakeResponse(copy.deepcopy(targets))
            if self.action == "delete":
                removed = [r for r in rows if self._match(r)]
                self.db.tables[self.table_name] = [r for r in rows if not self._match(r)]
                return FakeResponse(copy.deepcopy(removed))
        raise ValueError(f"action inconnue {self.action}")

class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db, self.name, self.params = db, name, params

    def execute(self) -> FakeResponse:
        self.db.calls.append(("rpc", self.name))
        handler = getattr(self.db, f"_rpc_{self.name}", None)
        if handler is None:
            raise APIError({"code": "PGRST202", "message": f"function {self.name} not found"})
        with self.db.lock:
            return FakeResponse(handler(**self.params))

class FakeAuthAdmin:
    def __init__(self, auth: "FakeAuth"):
        self.auth = auth

    def create_user(self, attributes: Dict[str, Any]):
        return SimpleNamespace(user=self.auth._create(attributes["email"], attributes.get("user_metadata") or {}))

class FakeAuth:
    def __init__(self):
        self.users: Dict[str, SimpleNamespace] = {}
        self.tokens: Dict[str, SimpleNamespace] = {}
        self.admin = FakeAuthAdmin(self)
        self.sign_up_calls: List[Dict[str, Any]] = []

    def _create(self, email: str, metadata: Dict[str, Any]) -> SimpleNamespace:
        user = SimpleNamespace(id=str(uuid.uuid4()), email=email, user_metadata=metadata)
        self.users[user.id] = user
        return user

    def add_token(self, token: str, *, user_id: str, email: str, full_name: str = "") -> SimpleNamespace:
        user = SimpleNamespace(id=user_id, email=email, user_metadata={"full_name": full_name})
        self.users[user_id] = user
        self.tokens[token] = user
        return user

    def get_user(self, token: str):
        user = self.tokens.get(token)
        if user is None:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=user)

    def sign_up(self, credentials: Dict[str, Any]):
        self.sign_up_calls.append(credentials)
        metadata = (credentials.get("options") or {}).get("data") or {}
        return SimpleNamespace(user=self._create(credentials["email"], metadata), session=None)

class FakeSupabase:
    def __init__(self, unique: Optional[Dict[str, List[UniqueRule]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.unique = unique if unique is not None else DEFAULT_UNIQUE
        self.lock = threading.RLock()
        self.auth = FakeAuth()
        self.calls: List[Tuple[str, str]] = []
        self.failing_tables: set = set()
        self.failing_ops: set = set()
        self._clock = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    # --- helpers ---
    def _prepare(self, table: str, item: Dict[str, Any]) -> Dict[str, Any]:
        row = copy.deepcopy(item)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", (_EPOCH + timedelta(seconds=next(self._clock))).isoformat())
        if table == "registrations":
            row.setdefault("qr_code", None)
            row.setdefault("ticket_code", None)
            row.setdefault("stripe_session_id", None)
            row.setdefault("stripe_payment_intent_id", None)
        return row

    def _check_unique(self, table: str, row: Dict[str, Any], others: List[Dict[str, Any]]) -> None:
        for columns, predicate in self.unique.get(table, []):
            if predicate and not predicate(row):
                continue
            key = tuple(row.get(c) for c in columns)
            for other in others:
                if predicate and not predicate(other):
                    continue
                if other.get("id") != row.get("id") and tuple(other.get(c) for c in columns) == key:
                    raise APIError({
                        "code": "23505",
                        "message": f"duplicate key value violates unique constraint on {table}{columns}",
                        "details": "",
                        "hint": "",
                    })

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.rows(table) if r.get("id") == row_id), None)

    def add(self, table: str, **values) -> Dict[str, Any]:
        row = self._prepare(table, values)
        self.rows(table).append(row)
        return row

    # --- RPC (mêmes règles que la migration SQL) ---
    @staticmethod
    def _fits(row: Dict[str, Any], units: int, zero_unlimited: bool) -> bool:
        limit = row.get("max_participants")
        if limit is None or (limit == 0 and zero_unlimited):
            return True
        return (row.get("current_participants") or 0) + units <= limit

    @staticmethod
    def _refusal(row: Dict[str, Any], units: int, full_code: str) -> str:
        limit = row.get("max_participants") or 0
        if units > 1 and (row.get("current_participants") or 0) < limit:
            return "INSUFFICIENT_CAPACITY_FOR_PAIR"
        return full_code

    def _rpc_reserve_registration_capacity(self, p_event_id, p_category_id, p_units, p_zero_is_unlimited=True):
        category = next(
            (r for r in self.rows("event_categories") if r["id"] == p_category_id and r.get("event_id") == p_event_id),
            None,
        )
        event = self.get("events", p_event_id)
        if category is None or not self._fits(category, p_units, p_zero_is_unlimited):
            return self._refusal(category or {}, p_units, "CATEGORY_FULL")
        if event is None or not self._fits(event, p_units, p_zero_is_unlimited):
            return self._refusal(event or {}, p_units, "EVENT_FULL")
        category["current_participants"] = (category.get("current_participants") or 0) + p_units
        event["current_participants"] = (event.get("current_participants") or 0) + p_units
        return "OK"

    def _rpc_release_registration_capacity(self, p_event_id, p_category_id, p_units):
        for row in (self.get("event_categories", p_category_id), self.get("events", p_event_id)):
            if row is not None:
                row["current_participants"] = max((row.get("current_participants") or 0) - p_units, 0)
        return None

    def _rpc_increment_coupon_uses(self, coupon_id):
        coupon = self.get("coupons", coupon_id)
        if coupon is not None:
            coupon["current_uses"] = (coupon.get("current_uses") or 0) + 1
        return None

# --- Jeux de données ---

VALID_CPF = "529.982.247-25"
PARTNER_CPF = "168.995.350-09"

def seed_event(db: FakeSupabase, **overrides) -> Dict[str, Any]:
    values = {
        "title": "Corrida da Serra",
        "slug": "corrida-serra",
        "status": "published",
        "event_type": "paid",
        "event_date": "2026-12-01",
        "location": "Petrópolis",
        "allows_pair_registration": True,
        "max_participants": None,
        "current_participants": 0,
        "registration_start": None,
        "registration_end": None,
    }
    values.update(overrides)
    return db.add("events", **values)

def seed_category(db: FakeSupabase, event: Dict[str, Any], **overrides) -> Dict[str, Any]:
    values = {
        "event_id": event["id"],
        "name": "5K",
        "price": 100.0,
        "max_participants": None,
        "current_participants": 0,
    }
    values.update(overrides)
    return db.add("event_categories", **values)

def participant(**overrides) -> Dict[str, Any]:
    values = {
        "name": "Ana Souza",
        "email": "ana@example.com",
        "cpf": VALID_CPF,
        "phone": "(21) 99876-5432",
        "shirtSize": "M",
        "shirtGender": "feminino",
    }
    values.update(overrides)
    return values

def partner(**overrides) -> Dict[str, Any]:
    values = {
        "name": "Bruno Lima",
        "email": "bruno@example.com",
        "cpf": PARTNER_CPF,
        "phone": "21998765433",
        "shirtSize": "G",
    }
    values.update(overrides)
    return values

def checkout_body(event: Dict[str, Any], category: Dict[str, Any], **overrides) -> Dict[str, Any]:
    price = float(category.get("price") or 0)
    fee = round(price * 0.1, 2)
    body = {
        "eventId": event["id"],
        "categoryId": category["id"],
        "shirtSize": "M",
        "subtotal": price,
        "serviceFee": fee,
        "total": round(price + fee, 2),
        "userName": "Ana Souza",
        "userEmail": "ana@example.com",
        "userData": participant(),
    }
    body.update(overrides)
    return body

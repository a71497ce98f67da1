"""Fill in example values for parameters, request bodies and responses.

Values declared by the source (schema ``example``, ``default``, ``enum``)
always win. Otherwise, with mock data enabled, a field-name keyword table
produces realistic values from a seeded ``random.Random``; with it disabled,
plain type placeholders are used.
"""

import base64
import math
import random
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable

import structlog

from ..extractor.base import Endpoint, Project, Schema, SchemaType

MAX_DEPTH = 6
_EPOCH = datetime(2024, 1, 1)

NAMES = {
    "en": {
        "first": ["James", "Mary", "Robert", "Linda", "Michael", "Sarah", "David", "Emma"],
        "last": ["Smith", "Johnson", "Brown", "Taylor", "Miller", "Wilson", "Moore", "Clark"],
        "city": ["Springfield", "Riverside", "Franklin", "Greenville", "Madison", "Georgetown"],
        "country": ["United States", "Canada", "United Kingdom", "Australia", "Ireland"],
        "street": ["Main St", "Oak Ave", "Maple Dr", "Cedar Ln", "Park Rd"],
    },
    "tr": {
        "first": ["Ahmet", "Ayse", "Mehmet", "Fatma", "Mustafa", "Zeynep", "Emre", "Elif"],
        "last": ["Yilmaz", "Kaya", "Demir", "Sahin", "Celik", "Aydin", "Ozturk", "Arslan"],
        "city": ["Istanbul", "Ankara", "Izmir", "Bursa", "Antalya", "Konya"],
        "country": ["Turkiye", "Almanya", "Hollanda", "Azerbaycan"],
        "street": ["Ataturk Cd", "Cumhuriyet Cd", "Istiklal Cd", "Gazi Blv"],
    },
}

WORDS = ["alpha", "bravo", "delta", "orbit", "pixel", "quartz", "harbor", "signal", "vertex", "cobalt"]
PRODUCTS = ["Ergonomic Chair", "Steel Bottle", "Wireless Mouse", "Desk Lamp", "Notebook", "Travel Mug"]
CATEGORIES = ["Books", "Electronics", "Garden", "Home", "Sports", "Toys"]
COLORS = ["red", "green", "blue", "black", "white", "orange"]
CURRENCIES = ["USD", "EUR", "GBP", "TRY", "JPY"]
COMPANIES = ["Acme Corp", "Globex", "Initech", "Umbrella Ltd", "Stark Industries"]


class ExampleResolver:
    """Assigns ``example`` on every parameter, request body and response of a project."""

    def __init__(self, enabled: bool = True, locale: str = "en", seed: int | None = None, logger=None):
        self.enabled = enabled
        self.locale = locale if locale in NAMES else "en"
        self.rng = random.Random(seed)
        self.logger = logger or structlog.get_logger(__name__)
        if locale not in NAMES:
            self.logger.debug("unknown_locale", locale=locale, fallback="en")
        self._rules = self._build_rules()

    def resolve(self, project: Project) -> Project:
        count = 0
        for endpoint in project.endpoints():
            self.resolve_endpoint(endpoint)
            count += 1
        self.logger.debug("examples_resolved", endpoints=count, mock=self.enabled)
        return project

    def resolve_endpoint(self, endpoint: Endpoint) -> None:
        for param in endpoint.parameters:
            if param.example is None:
                param.example = param.default if param.default is not None else self.example_for(param.schema_, param.name)
        body = endpoint.request_body
        if body is not None and body.example is None:
            body.example = self.example_for(body.schema_)
        for response in endpoint.responses:
            if response.schema_ is not None and response.example is None:
                response.example = self.example_for(response.schema_)

    def example_for(self, schema: Schema, field_name: str | None = None, depth: int = 0) -> Any:
        if schema.example is not None:
            return schema.example
        if schema.default is not None:
            return schema.default
        if schema.enum:
            return self.rng.choice(schema.enum) if self.enabled else schema.enum[0]

        composite = schema.all_of or schema.one_of or schema.any_of
        if composite and schema.type is None:
            if schema.all_of:
                merged: dict[str, Any] = {}
                for part in schema.all_of:
                    value = self.example_for(part, field_name, depth + 1)
                    if isinstance(value, dict):
                        merged.update(value)
                return merged
            return self.example_for(composite[0], field_name, depth + 1)

        kind = schema.type or (SchemaType.OBJECT if schema.properties else SchemaType.STRING)
        if kind == SchemaType.NULL:
            return None
        if kind == SchemaType.OBJECT:
            if depth >= MAX_DEPTH or not schema.properties:
                return {}
            return {name: self.example_for(prop, name, depth + 1) for name, prop in schema.properties.items()}
        if kind == SchemaType.ARRAY:
            if depth >= MAX_DEPTH or schema.items is None:
                return []
            count = self.rng.randint(1, 3) if self.enabled else 1
            return [self.example_for(schema.items, field_name, depth + 1) for _ in range(count)]
        if not self.enabled:
            return _placeholder(kind, schema)
        if kind == SchemaType.STRING:
            return self._string(schema, field_name)
        if kind == SchemaType.INTEGER:
            return self._integer(schema, field_name)
        if kind == SchemaType.NUMBER:
            return self._number(schema, field_name)
        if kind == SchemaType.BOOLEAN:
            value = self._by_name(field_name)
            return value if isinstance(value, bool) else self.rng.random() < 0.5
        return None

    # -- scalars ----

    def _string(self, schema: Schema, field_name: str | None) -> str:
        if schema.format:
            value = self._by_format(schema.format)
            if value is not None:
                return value
        value = self._by_name(field_name)
        if isinstance(value, str) and len(value) >= (schema.min_length or 0):
            return value if schema.max_length is None else value[: schema.max_length]
        high = schema.max_length if schema.max_length is not None else 12
        low = schema.min_length if schema.min_length is not None else min(5, high)
        high = max(high, low)
        length = self.rng.randint(low, min(high, low + 12))
        return "".join(self.rng.choice("abcdefghijklmnopqrstuvwxyz0123456789") for _ in range(length))

    def _integer(self, schema: Schema, field_name: str | None) -> int:
        value = self._by_name(field_name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(_clamp(value, schema.minimum, schema.maximum))
        high = math.floor(schema.maximum) if schema.maximum is not None else None
        low = math.ceil(schema.minimum) if schema.minimum is not None else min(1, high if high is not None else 1)
        if high is None:
            high = max(low, 1000)
        return self.rng.randint(low, max(low, high))

    def _number(self, schema: Schema, field_name: str | None) -> float:
        value = self._by_name(field_name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(_clamp(value, schema.minimum, schema.maximum))
        high = schema.maximum
        low = schema.minimum if schema.minimum is not None else min(0.0, high if high is not None else 0.0)
        if high is None:
            high = max(low, 1000.0)
        value = self.rng.uniform(low, max(low, high))
        return _clamp(round(value, 2), low, max(low, high))

    def _by_format(self, fmt: str) -> str | None:
        fmt = fmt.lower()
        if fmt == "email":
            return self._email()
        if fmt in ("uri", "url"):
            return f"https://{self.rng.choice(WORDS)}.example.com"
        if fmt == "uuid":
            return self._uuid()
        if fmt == "date":
            return self._datetime().date().isoformat()
        if fmt in ("date-time", "datetime"):
            return self._datetime().isoformat() + "Z"
        if fmt == "time":
            return self._datetime().time().isoformat()
        if fmt == "password":
            return self._token(12)
        if fmt == "byte":
            return base64.b64encode(self.rng.choice(WORDS).encode()).decode()
        if fmt == "binary":
            return "<binary>"
        if fmt == "ipv4":
            return ".".join(str(self.rng.randint(1, 254)) for _ in range(4))
        if fmt == "ipv6":
            return ":".join(f"{self.rng.randint(0, 0xFFFF):x}" for _ in range(8))
        if fmt == "hostname":
            return f"{self.rng.choice(WORDS)}.example.com"
        return None

    def _by_name(self, field_name: str | None) -> Any:
        if not field_name:
            return None
        key = re.sub(r"[_\-\s]", "", field_name).lower()
        for keywords, make in self._rules:
            if any(key == kw or key.endswith(kw) for kw in keywords):
                return make()
        return None

    # -- keyword table ----

    def _build_rules(self) -> list[tuple[tuple[str, ...], Callable[[], Any]]]:
        names = NAMES[self.locale]
        pick = self.rng.choice
        return [
            (("uuid", "guid"), self._uuid),
            (("firstname", "givenname"), lambda: pick(names["first"])),
            (("lastname", "surname", "familyname"), lambda: pick(names["last"])),
            (("username", "login", "handle"), lambda: f"{pick(names['first']).lower()}{self.rng.randint(1, 99)}"),
            (("fullname", "displayname", "name"), lambda: f"{pick(names['first'])} {pick(names['last'])}"),
            (("email", "mail"), self._email),
            (("phone", "mobile", "tel"), lambda: f"+1-555-{self.rng.randint(100, 999)}-{self.rng.randint(1000, 9999)}"),
            (("address", "street"), lambda: f"{self.rng.randint(1, 999)} {pick(names['street'])}"),
            (("city",), lambda: pick(names["city"])),
            (("country",), lambda: pick(names["country"])),
            (("zipcode", "postcode", "postalcode", "zip"), lambda: f"{self.rng.randint(10000, 99999)}"),
            (("latitude", "lat"), lambda: round(self.rng.uniform(-90, 90), 6)),
            (("longitude", "lng", "lon"), lambda: round(self.rng.uniform(-180, 180), 6)),
            (("avatar", "image", "photo", "picture"), lambda: f"https://img.example.com/{self._token(8)}.png"),
            (("url", "link", "website"), lambda: f"https://{pick(WORDS)}.example.com"),
            (("domain", "host"), lambda: f"{pick(WORDS)}.example.com"),
            (("createdat", "updatedat", "timestamp"), lambda: self._datetime().isoformat() + "Z"),
            (("birthday", "birthdate", "dob"), lambda: (_EPOCH - timedelta(days=self.rng.randint(6570, 29200))).date().isoformat()),
            (("date",), lambda: self._datetime().date().isoformat()),
            (("price", "amount", "total", "cost"), lambda: round(self.rng.uniform(1, 500), 2)),
            (("currency",), lambda: pick(CURRENCIES)),
            (("description", "desc", "summary", "comment", "note"), lambda: " ".join(self.rng.sample(WORDS, 5)).capitalize() + "."),
            (("title", "subject"), lambda: " ".join(self.rng.sample(WORDS, 3)).title()),
            (("content", "body", "text", "message"), lambda: " ".join(self.rng.sample(WORDS, 8)).capitalize() + "."),
            (("age",), lambda: self.rng.randint(18, 80)),
            (("quantity", "qty", "count"), lambda: self.rng.randint(1, 100)),
            (("rating", "score"), lambda: round(self.rng.uniform(1, 5), 1)),
            (("percentage", "percent"), lambda: self.rng.randint(0, 100)),
            (("isactive", "active", "isenabled", "enabled", "verified"), lambda: True),
            (("isdeleted", "deleted", "archived"), lambda: False),
            (("password", "secret"), lambda: self._token(12)),
            (("company", "organization"), lambda: pick(COMPANIES)),
            (("product",), lambda: pick(PRODUCTS)),
            (("category",), lambda: pick(CATEGORIES)),
            (("color", "colour"), lambda: pick(COLORS)),
            (("size",), lambda: pick(["S", "M", "L", "XL"])),
            (("ip", "ipaddress"), lambda: ".".join(str(self.rng.randint(1, 254)) for _ in range(4))),
            (("token", "apikey"), lambda: self._token(32)),
            (("id",), self._uuid),
        ]

    def _uuid(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def _email(self) -> str:
        names = NAMES[self.locale]
        return f"{self.rng.choice(names['first']).lower()}.{self.rng.choice(names['last']).lower()}@example.com"

    def _datetime(self) -> datetime:
        return _EPOCH + timedelta(seconds=self.rng.randint(0, 365 * 86400))

    def _token(self, length: int) -> str:
        alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
        return "".join(self.rng.choice(alphabet) for _ in range(length))


def _placeholder(kind: SchemaType, schema: Schema) -> Any:
    if kind == SchemaType.STRING:
        return schema.format and f"<{schema.format}>" or "string"
    if kind == SchemaType.INTEGER:
        return int(_clamp(0, schema.minimum, schema.maximum))
    if kind == SchemaType.NUMBER:
        return float(_clamp(0.0, schema.minimum, schema.maximum))
    if kind == SchemaType.BOOLEAN:
        return True
    return None


def _clamp(value: float, minimum: float | None, maximum: float | None) -> float:
    if minimum is not None and value < minimum:
        value = minimum
    if maximum is not None and value > maximum:
        value = maximum
    return value

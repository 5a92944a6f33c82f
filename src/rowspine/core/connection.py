"""Connection descriptors: one canonical value for structured settings and URLs.

A session can be opened from a ``ConnectionSettings`` value or from a URL
string; both forms parse to the same frozen value and render back to the
same canonical URL, so they are interchangeable.

Supported forms
---------------
==========================================  ============
Form                                        Backend
==========================================  ============
``sqlite:///path/to/file.db``               SQLite file
``sqlite:///:memory:`` / ``memory``          SQLite RAM
``./data/my.db`` (bare path)                SQLite file
``postgresql://user:pw@host:port/db?k=v``   PostgreSQL
``postgres://...``                          PostgreSQL
``sqlalchemy+<sa-url>[#pool_size=n]``       SQLAlchemy
==========================================  ============

Usage
-----
::

    from rowspine.core.connection import ConnectionSettings

    a = ConnectionSettings.parse("postgresql://demo:pw@db.local/booktown?sslmode=disable")
    b = ConnectionSettings(
        backend="postgresql", host="db.local", database="booktown",
        user="demo", password="pw", options={"sslmode": "disable"},
    )
    assert a == b and a.url == b.url

Credentials are percent-decoded when parsed and percent-encoded when
rendered.  ``repr()`` masks the password.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from rowspine.core.errors import InvalidConfigError

_SCHEME_ALIASES = {
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}

DEFAULT_PORTS = {"postgresql": 5432}

MEMORY = ":memory:"


@dataclass(frozen=True)
class ConnectionSettings:
    """Immutable connection descriptor.

    ``options`` is stored as a read-only mapping; pool tuning keys
    (``pool_size``, ``pool_timeout``) are consumed by the adapters, anything
    else is forwarded to the driver.
    """

    backend: str
    database: str = ""
    host: str = ""
    port: int | None = None
    user: str | None = None
    password: str | None = None
    options: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        backend = self.backend.lower()
        if backend.startswith("sqlalchemy+"):
            canonical = "sqlalchemy"
        else:
            canonical = _SCHEME_ALIASES.get(backend, backend)
        object.__setattr__(self, "backend", canonical)
        if canonical == "sqlite" and not self.database:
            object.__setattr__(self, "database", MEMORY)
        if self.port is not None and self.port == DEFAULT_PORTS.get(canonical):
            # an explicit default port is the same endpoint as no port
            object.__setattr__(self, "port", None)
        frozen = MappingProxyType({str(k): str(v) for k, v in dict(self.options).items()})
        object.__setattr__(self, "options", frozen)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectionSettings):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def _key(self) -> tuple[Any, ...]:
        return (
            self.backend,
            self.database,
            self.host,
            self.port,
            self.user,
            self.password,
            tuple(sorted(self.options.items())),
        )

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"database={self.database!r}"]
        if self.host:
            parts.append(f"host={self.host!r}")
        if self.port:
            parts.append(f"port={self.port}")
        if self.user:
            parts.append(f"user={self.user!r}")
        if self.password:
            parts.append("password='***'")
        if self.options:
            parts.append(f"options={dict(self.options)!r}")
        return f"ConnectionSettings({', '.join(parts)})"

    # ── Derived values ────────────────────────────────────────────────

    @property
    def is_memory(self) -> bool:
        return self.backend == "sqlite" and self.database == MEMORY

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def with_options(self, **options: Any) -> ConnectionSettings:
        merged = dict(self.options)
        merged.update({k: str(v) for k, v in options.items()})
        return ConnectionSettings(
            backend=self.backend,
            database=self.database,
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            options=merged,
        )

    @property
    def url(self) -> str:
        """Canonical connection string (options sorted by key)."""
        query = f"?{urlencode(sorted(self.options.items()))}" if self.options else ""

        if self.backend == "sqlite":
            return f"sqlite:///{self.database}{query}"

        if self.backend == "sqlalchemy":
            # the engine URL keeps its own query string; ours rides in the fragment
            fragment = f"#{query[1:]}" if query else ""
            return f"sqlalchemy+{self.database}{fragment}"

        auth = ""
        if self.user:
            auth = quote(self.user, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        host = self.host or "localhost"
        port = f":{self.port}" if self.port else ""
        return f"{self.backend}://{auth}{host}{port}/{self.database}{query}"

    def __str__(self) -> str:
        return self.url

    # ── Parsing ───────────────────────────────────────────────────────

    @classmethod
    def parse(cls, url: str | None) -> ConnectionSettings:
        """Parse a URL, keyword or bare SQLite path.

        Raises:
            InvalidConfigError: malformed URL or port
        """
        if url is None or url in ("", "memory", MEMORY):
            return cls(backend="sqlite", database=MEMORY)

        if url.startswith("sqlalchemy+"):
            engine_url, _, fragment = url[len("sqlalchemy+"):].partition("#")
            return cls(backend="sqlalchemy", database=engine_url, options=dict(parse_qsl(fragment)))

        if "://" not in url:
            return cls(backend="sqlite", database=url)

        scheme, rest = url.split("://", 1)
        scheme = scheme.split("+", 1)[0].lower()

        if _SCHEME_ALIASES.get(scheme) == "sqlite":
            path, _, query = rest.partition("?")
            path = path[1:] if path.startswith("/") else path
            return cls(
                backend="sqlite",
                database=unquote(path) or MEMORY,
                options=dict(parse_qsl(query)),
            )

        parts = urlsplit(f"{scheme}://{rest}")
        try:
            port = parts.port
        except ValueError as e:
            raise InvalidConfigError("url", url, f"invalid port in URL: {url!r}") from e

        return cls(
            backend=scheme,
            database=unquote(parts.path.lstrip("/")),
            host=parts.hostname or "",
            port=port,
            user=unquote(parts.username) if parts.username else None,
            password=unquote(parts.password) if parts.password else None,
            options=dict(parse_qsl(parts.query)),
        )


def resolve_settings(target: ConnectionSettings | str | None) -> ConnectionSettings:
    """Accept either descriptor form and return the settings value."""
    if isinstance(target, ConnectionSettings):
        return target
    return ConnectionSettings.parse(target)


__all__ = [
    "DEFAULT_PORTS",
    "MEMORY",
    "ConnectionSettings",
    "resolve_settings",
]

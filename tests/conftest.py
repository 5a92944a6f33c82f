"""
Shared pytest fixtures for the rowspine test suite.

Every database test runs against a fresh SQLite file seeded with a small
"booktown" schema:

    authors    3 rows
    subjects   2 rows
    books      3 rows  ("Dune", "Perl Cookbook", "Practical PostgreSQL")
    employees  empty   (pagination tests fill it)
    ledger     empty   (composite primary key)
    shipments  empty
"""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest

import rowspine
from rowspine.db.session import Session

SCHEMA = """
CREATE TABLE authors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL
);
CREATE TABLE subjects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject TEXT NOT NULL,
    location TEXT
);
CREATE TABLE books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    author_id INTEGER REFERENCES authors (id),
    subject_id INTEGER REFERENCES subjects (id)
);
CREATE TABLE employees (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    hired_on TEXT
);
CREATE TABLE ledger (
    account TEXT NOT NULL,
    entry INTEGER NOT NULL,
    amount INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (account, entry)
);
CREATE TABLE shipments (
    id INTEGER PRIMARY KEY,
    book_id INTEGER,
    shipped_on TEXT
);
"""

SEED = """
INSERT INTO authors (id, first_name, last_name) VALUES
    (1, 'Frank', 'Herbert'),
    (2, 'Tom', 'Christiansen'),
    (3, 'John', 'Worsley');
INSERT INTO subjects (id, subject, location) VALUES
    (1, 'Science Fiction', 'Main St'),
    (2, 'Computers', NULL);
INSERT INTO books (id, title, author_id, subject_id) VALUES
    (1, 'Dune', 1, 1),
    (2, 'Perl Cookbook', 2, 2),
    (3, 'Practical PostgreSQL', 3, 2);
"""

BOOK_TITLES = ["Dune", "Perl Cookbook", "Practical PostgreSQL"]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Seeded SQLite database file."""
    path = tmp_path / "booktown.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SCHEMA + SEED)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def db_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


@pytest.fixture
def session(db_url: str) -> Generator[Session, None, None]:
    sess = rowspine.open(db_url)
    yield sess
    sess.close()


@pytest.fixture
def sa_session(db_path: Path) -> Generator[Session, None, None]:
    """Same database through the SQLAlchemy adapter."""
    sess = rowspine.open(f"sqlalchemy+sqlite:///{db_path}")
    yield sess
    sess.close()


@pytest.fixture
def employees(session: Session) -> Session:
    """Fill ``employees`` with 25 rows, ids 1..25."""
    ins = session.insert_into("employees").columns("first_name", "last_name")
    for i in range(1, 26):
        ins = ins.values(f"First{i:02d}", f"Last{i:02d}")
    ins.exec()
    return session

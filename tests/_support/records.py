"""Record types shared by the test suite (the booktown sample schema)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from rowspine import column
from rowspine.db.collection import Collection


@dataclass
class Book:
    __collection__ = "books"

    id: int = column("id,omitempty", default=0)
    title: str = ""
    author_id: int | None = None
    subject_id: int | None = None


@dataclass
class Author:
    __collection__ = "authors"

    id: int = column("id,omitempty", default=0)
    first_name: str = ""
    last_name: str = ""


@dataclass
class Subject:
    __collection__ = "subjects"

    id: int = column("id,omitempty", default=0)
    subject: str = ""
    location: str | None = None


@dataclass
class BookAuthorSubject:
    """One row of books JOIN authors JOIN subjects."""

    book: Book = column(",inline")
    author: Author = column(",inline")
    subject: Subject = column(",inline")


@dataclass
class PersonName:
    first_name: str = ""
    last_name: str = ""


@dataclass
class Employee:
    __collection__ = "employees"

    id: int = column("id,omitempty", default=0)
    name: PersonName = column(",inline", default_factory=PersonName)
    hired_on: date | None = None
    nickname: str = column("-", default="")


@dataclass
class LedgerEntry:
    __collection__ = "ledger"

    account: str
    entry: int
    amount: int = 0


@dataclass
class AuditedBook:
    __collection__ = "books"

    id: int = column("id,omitempty", default=0)
    title: str = ""
    events: list = column("-", default_factory=list)

    def before_insert(self, session):
        self.title = self.title.strip()
        self.events.append("before_insert")

    def after_insert(self, session):
        self.events.append("after_insert")

    def before_update(self, session):
        self.events.append("before_update")

    def after_update(self, session):
        self.events.append("after_update")

    def before_delete(self, session):
        self.events.append("before_delete")

    def after_delete(self, session):
        self.events.append("after_delete")


@dataclass
class Untracked:
    id: int = 0


class BooksStore(Collection):
    """``books`` with a few domain lookups."""

    def get_book_by_title(self, title: str) -> StoredBook:
        return self.find({"title": title}).one(StoredBook)

    def by_author(self, author_id: int) -> list[StoredBook]:
        return self.find({"author_id": author_id}).order_by("id").all(StoredBook)


@dataclass
class StoredBook:
    """A book reached only through its store (no ``__collection__``)."""

    id: int = column("id,omitempty", default=0)
    title: str = ""
    author_id: int | None = None
    subject_id: int | None = None

    @classmethod
    def store(cls, session) -> BooksStore:
        return BooksStore(session, "books")


@dataclass
class MisStored:
    id: int = 0

    @classmethod
    def store(cls, session):
        return "books"

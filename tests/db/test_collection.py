"""Tests for ``rowspine.db.collection``."""

from __future__ import annotations

import pytest

import rowspine
from rowspine.core.errors import IntegrityError, NotFoundError, QueryError
from rowspine.db.collection import Collection
from tests._support.records import Author, Book, LedgerEntry


class TestIdentity:
    def test_equality(self, session):
        assert session.collection("books") == session.collection("books")
        assert session.collection("books") != session.collection("authors")
        assert len({session.collection("books"), session.collection("books")}) == 1

    def test_handles_differ(self, session, db_url):
        with rowspine.open(db_url) as other:
            assert session.collection("books") != other.collection("books")

    def test_repr(self, session):
        assert repr(session.collection("books")) == "Collection('books')"
        assert isinstance(session.collection("books"), Collection)


class TestMetadata:
    def test_exists(self, session):
        assert session.collection("books").exists()
        assert not session.collection("bookz").exists()

    def test_collections(self, session):
        assert session.collections() == ["authors", "books", "employees", "ledger", "shipments", "subjects"]

    def test_primary_keys(self, session):
        assert session.collection("books").primary_keys() == ["id"]
        assert session.collection("ledger").primary_keys() == ["account", "entry"]

    def test_primary_keys_are_cached(self, session):
        session.collection("books").primary_keys()
        assert session._pk_cache["books"] == ["id"]


class TestFind:
    def test_by_primary_key(self, session):
        assert session.collection("books").find(2).one(Book).title == "Perl Cookbook"

    def test_composite_key(self, session):
        ledger = session.collection("ledger")
        ledger.insert(LedgerEntry(account="acme", entry=1, amount=10))
        ledger.insert(LedgerEntry(account="acme", entry=2, amount=20))
        assert ledger.find(("acme", 2)).one(LedgerEntry).amount == 20

    def test_key_length_mismatch(self, session):
        with pytest.raises(QueryError, match="got 1 value"):
            session.collection("ledger").find(7)

    def test_table_without_primary_key(self, session):
        session.exec("CREATE TABLE notes (body TEXT)")
        with pytest.raises(QueryError, match="no primary key"):
            session.collection("notes").find(1)

    def test_missing_row(self, session):
        with pytest.raises(NotFoundError):
            session.collection("shipments").find(1).one()

    def test_no_conditions(self, session):
        assert session.collection("books").find().count() == 3

    def test_string_is_raw_sql(self, session):
        assert session.collection("subjects").find("location IS NULL").one()["subject"] == "Computers"

    def test_count(self, session):
        assert session.collection("authors").count() == 3


class TestWrites:
    def test_insert_record(self, session):
        book = Book(title="Children of Dune", author_id=1, subject_id=1)
        result = session.collection("books").insert(book)
        assert result.rows_affected == 1
        assert result.id == 4
        # insert() leaves the record alone
        assert book.id == 0

    def test_insert_mapping(self, session):
        result = session.collection("authors").insert({"first_name": "Ursula", "last_name": "Le Guin"})
        assert session.collection("authors").find(result.id).one(Author).last_name == "Le Guin"

    def test_insert_violates_constraint(self, session):
        with pytest.raises(IntegrityError) as exc:
            session.collection("books").insert({"id": 1, "title": "Duplicate"})
        assert exc.value.context.operation == "insert"
        assert exc.value.context.target == "books"

    def test_insert_returning(self, session):
        author = Author(first_name="Ursula", last_name="Le Guin")
        stored = session.collection("authors").insert_returning(author)
        assert stored is author
        assert author.id == 4

    def test_insert_returning_mapping(self, session):
        row = {"account": "acme", "entry": 1}
        session.collection("ledger").insert_returning(row)
        assert row == {"account": "acme", "entry": 1, "amount": 0}

    def test_truncate(self, session):
        session.exec("INSERT INTO shipments (id, book_id) VALUES (1, 1), (2, 3)")
        assert session.collection("shipments").truncate().rows_affected == 2
        assert session.collection("shipments").count() == 0

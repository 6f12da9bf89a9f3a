"""Shared fixtures: a seeded SQLite database of the language-learning domain."""

from datetime import datetime
from pathlib import Path

import pytest

from lexis_back.domain import ENTITIES, VocabLevel, build_fetch_spec_registry
from lexis_back.runtime.repository import DatabaseManager, RepositoryFactory
from lexis_back.specs.context import AnonymousUser, CurrentUser, FetchContext
from lexis_back.specs.fetch_spec import FetchSpecRegistry

ALICE = CurrentUser(id=1, username="alice", profile_id=1)
BOB = CurrentUser(id=2, username="bob", profile_id=2)


def seed(db: DatabaseManager) -> None:
    """
    Two learners, three languages' worth of content.

    Texts:
        1  standalone, public,  by alice
        2  standalone, private, by bob
        3  collection 1 (public),  order 1, public,  by alice
        4  collection 1 (public),  order 2, private, by alice
        5  collection 2 (private), order 1, public,  by bob
        6  collection 2 (private), order 2, private, by bob
    """
    day = datetime(2024, 3, 1, 12, 0, 0)

    db.insert("Language", {"id": 1, "code": "en", "name": "English", "levelThresholds": {"beginner": 0}})
    db.insert("Language", {"id": 2, "code": "fr", "name": "French", "isRtl": False})

    db.insert("User", {"id": 1, "username": "alice", "email": "alice@example.com", "isEmailConfirmed": True})
    db.insert(
        "User",
        {"id": 2, "username": "bob", "email": "bob@example.com", "pendingEmail": "bob@new.example.com"},
    )
    db.insert("Profile", {"id": 1, "userId": 1, "bio": "Learning French"})
    db.insert("Profile", {"id": 2, "userId": 2, "bio": "", "isPublic": False})
    db.insert(
        "MapLearnerLanguage", {"learnerId": 1, "languageId": 1, "startedLearningOn": day, "lastOpened": day}
    )
    db.insert(
        "MapLearnerLanguage",
        {"learnerId": 1, "languageId": 2, "startedLearningOn": day, "lastOpened": datetime(2024, 3, 5, 9, 30, 0)},
    )

    db.insert(
        "Collection",
        {"id": 1, "title": "Public course", "isPublic": True, "languageId": 1, "addedById": 1, "addedOn": day},
    )
    db.insert(
        "Collection",
        {"id": 2, "title": "Private notes", "isPublic": False, "languageId": 1, "addedById": 2, "addedOn": day},
    )

    texts = [
        (1, "Standalone public", None, None, True, 1),
        (2, "Standalone private", None, None, False, 2),
        (3, "Course one", 1, 1, True, 1),
        (4, "Course two", 1, 2, False, 1),
        (5, "Notes one", 2, 1, True, 2),
        (6, "Notes two", 2, 2, False, 2),
    ]
    for text_id, title, collection_id, order, is_public, added_by in texts:
        db.insert(
            "Text",
            {
                "id": text_id,
                "title": title,
                "content": f"{title} content",
                "collectionId": collection_id,
                "orderInCollection": order,
                "isPublic": is_public,
                "languageId": 1,
                "addedById": added_by,
                "addedOn": day,
            },
        )

    for vocab_id, text in [(1, "hello"), (2, "world"), (3, "cat")]:
        db.insert("Vocab", {"id": vocab_id, "text": text, "languageId": 1})
    for text_id, vocab_id in [(1, 1), (1, 2), (1, 3), (3, 1)]:
        db.insert("MapTextVocab", {"textId": text_id, "vocabId": vocab_id})
    db.insert("MapLearnerVocab", {"vocabId": 1, "learnerId": 1, "level": int(VocabLevel.LEVEL_3)})
    db.insert("MapLearnerVocab", {"vocabId": 2, "learnerId": 1, "level": int(VocabLevel.KNOWN)})
    db.insert("MapLearnerVocab", {"vocabId": 3, "learnerId": 2, "level": int(VocabLevel.IGNORED)})

    db.insert("Meaning", {"id": 1, "text": "bonjour", "vocabId": 1, "languageId": 2, "addedById": 1})
    db.insert("Meaning", {"id": 2, "text": "salut", "vocabId": 1, "languageId": 2, "addedById": 2})
    db.insert("MapLearnerMeaning", {"meaningId": 2, "learnerId": 1})

    db.insert("TextBookmark", {"textId": 1, "bookmarkerId": 1})
    db.insert("TextBookmark", {"textId": 3, "bookmarkerId": 1})
    db.insert("TextBookmark", {"textId": 5, "bookmarkerId": 2})
    db.insert("CollectionBookmark", {"collectionId": 1, "bookmarkerId": 1})

    db.insert("TextHistoryEntry", {"textId": 1, "pastViewerId": 1, "timeViewed": day})
    db.insert("TextHistoryEntry", {"textId": 1, "pastViewerId": 1, "timeViewed": day})
    db.insert("TextHistoryEntry", {"textId": 1, "pastViewerId": 2, "timeViewed": day})
    db.insert("TextHistoryEntry", {"textId": 3, "pastViewerId": 2, "timeViewed": day})

    db.insert(
        "Dictionary",
        {
            "id": 1,
            "languageId": 1,
            "name": "Wiktionary",
            "lookupLink": "https://en.wiktionary.org/wiki/<query>",
            "dictionaryLink": "https://en.wiktionary.org",
        },
    )


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "lexis.db"


@pytest.fixture
def db(temp_db_path: Path) -> DatabaseManager:
    """Database with the full schema and seed data."""
    manager = DatabaseManager(temp_db_path)
    manager.create_all_tables(ENTITIES)
    seed(manager)
    return manager


@pytest.fixture
def factory(db: DatabaseManager) -> RepositoryFactory:
    return RepositoryFactory(db, ENTITIES)


@pytest.fixture
def registry() -> FetchSpecRegistry:
    return build_fetch_spec_registry()


@pytest.fixture
def alice_context(db: DatabaseManager) -> FetchContext:
    return FetchContext(user=ALICE, db=db)


@pytest.fixture
def bob_context(db: DatabaseManager) -> FetchContext:
    return FetchContext(user=BOB, db=db)


@pytest.fixture
def anonymous_context(db: DatabaseManager) -> FetchContext:
    return FetchContext(user=AnonymousUser(), db=db)

"""
Persistence schema of the language-learning domain.

Column names are camelCase and match record keys. Foreign key columns are
declared as ``ref`` fields named ``<relation>Id``.
"""

from __future__ import annotations

from lexis_back.domain.enums import VocabLevel
from lexis_back.specs.entity import (
    EntitySpec,
    FieldSpec,
    FormulaSpec,
    RelationKind,
    RelationSpec,
    ScalarType,
    ref,
    scalar,
)

STR = scalar(ScalarType.STR)
TEXT = scalar(ScalarType.TEXT)
INT = scalar(ScalarType.INT)
BOOL = scalar(ScalarType.BOOL)
DECIMAL = scalar(ScalarType.DECIMAL)
DATETIME = scalar(ScalarType.DATETIME)
JSON = scalar(ScalarType.JSON)


def _to_one(name: str, to_entity: str) -> RelationSpec:
    return RelationSpec(
        name=name, to_entity=to_entity, kind=RelationKind.MANY_TO_ONE, foreign_key=f"{name}Id"
    )


def _many(name: str, to_entity: str, foreign_key: str, order_by: list[str] | None = None) -> RelationSpec:
    return RelationSpec(
        name=name,
        to_entity=to_entity,
        kind=RelationKind.ONE_TO_MANY,
        foreign_key=foreign_key,
        order_by=order_by or [],
    )


def _through(name: str, to_entity: str, through: str, source_key: str, target_key: str) -> RelationSpec:
    return RelationSpec(
        name=name,
        to_entity=to_entity,
        kind=RelationKind.MANY_TO_MANY,
        through=through,
        through_source_key=source_key,
        through_target_key=target_key,
    )


LANGUAGE = EntitySpec(
    name="Language",
    fields=[
        FieldSpec(name="code", type=STR, required=True, unique=True),
        FieldSpec(name="name", type=STR, required=True),
        FieldSpec(name="greeting", type=STR, default=""),
        FieldSpec(name="secondSpeakersCount", type=INT, default=0),
        FieldSpec(name="flag", type=STR),
        FieldSpec(name="flagCircular", type=STR),
        FieldSpec(name="flagEmoji", type=STR),
        FieldSpec(name="color", type=STR, default=""),
        FieldSpec(name="isRtl", type=BOOL, default=False),
        FieldSpec(name="isAbjad", type=BOOL, default=False),
        FieldSpec(name="isSupported", type=BOOL, default=False),
        FieldSpec(name="levelThresholds", type=JSON),
    ],
    formulas=[
        FormulaSpec(
            name="learnersCount",
            sql='(SELECT COUNT(ml."learnerId") FROM "MapLearnerLanguage" ml WHERE ml."languageId" = {alias}."id")',
        ),
    ],
)

USER = EntitySpec(
    name="User",
    fields=[
        FieldSpec(name="username", type=STR, required=True, unique=True),
        FieldSpec(name="email", type=STR, required=True, unique=True),
        FieldSpec(name="isEmailConfirmed", type=BOOL, default=False),
        FieldSpec(name="isBanned", type=BOOL, default=False),
        FieldSpec(name="pendingEmail", type=STR),
        FieldSpec(name="accountCreatedAt", type=DATETIME),
    ],
    relations=[
        RelationSpec(
            name="profile",
            to_entity="Profile",
            kind=RelationKind.ONE_TO_ONE,
            foreign_key="userId",
            fk_on_target=True,
        ),
    ],
    formulas=[
        FormulaSpec(
            name="isPendingEmailChange",
            sql='({alias}."pendingEmail" IS NOT NULL)',
            type=BOOL,
        ),
    ],
)

PROFILE = EntitySpec(
    name="Profile",
    fields=[
        FieldSpec(name="userId", type=ref("User"), required=True, unique=True),
        FieldSpec(name="profilePicture", type=STR, default=""),
        FieldSpec(name="bio", type=STR, default=""),
        FieldSpec(name="isPublic", type=BOOL, default=True),
    ],
    relations=[
        _to_one("user", "User"),
        _through("languagesLearning", "Language", "MapLearnerLanguage", "learnerId", "languageId"),
    ],
)

COLLECTION = EntitySpec(
    name="Collection",
    fields=[
        FieldSpec(name="title", type=STR, required=True),
        FieldSpec(name="description", type=STR, default=""),
        FieldSpec(name="image", type=STR, default=""),
        FieldSpec(name="addedOn", type=DATETIME),
        FieldSpec(name="isPublic", type=BOOL, default=True),
        FieldSpec(name="languageId", type=ref("Language"), required=True),
        FieldSpec(name="addedById", type=ref("Profile"), required=True),
    ],
    relations=[
        _to_one("language", "Language"),
        _to_one("addedBy", "Profile"),
        _many("texts", "Text", "collectionId", order_by=["orderInCollection", "id"]),
        _through("bookmarkers", "Profile", "CollectionBookmark", "collectionId", "bookmarkerId"),
    ],
    formulas=[
        FormulaSpec(
            name="avgPastViewersCountPerText",
            sql=(
                '(SELECT CAST(COUNT(DISTINCT h."pastViewerId") AS REAL) / MAX(COUNT(DISTINCT t."id"), 1) '
                'FROM "Text" t LEFT JOIN "TextHistoryEntry" h ON h."textId" = t."id" '
                'WHERE t."collectionId" = {alias}."id")'
            ),
            type=DECIMAL,
        ),
    ],
)

TEXT_ENTITY = EntitySpec(
    name="Text",
    fields=[
        FieldSpec(name="title", type=STR, required=True),
        FieldSpec(name="content", type=TEXT, required=True),
        FieldSpec(name="parsedTitle", type=STR),
        FieldSpec(name="parsedContent", type=TEXT),
        FieldSpec(name="audio", type=STR, default=""),
        FieldSpec(name="image", type=STR, default=""),
        FieldSpec(name="orderInCollection", type=INT),
        FieldSpec(name="isProcessing", type=BOOL, default=False),
        FieldSpec(name="addedOn", type=DATETIME),
        FieldSpec(name="isPublic", type=BOOL, default=True),
        FieldSpec(name="level", type=STR),
        FieldSpec(name="languageId", type=ref("Language"), required=True),
        FieldSpec(name="addedById", type=ref("Profile"), required=True),
        FieldSpec(name="collectionId", type=ref("Collection")),
    ],
    relations=[
        _to_one("language", "Language"),
        _to_one("addedBy", "Profile"),
        _to_one("collection", "Collection"),
        _through("vocabs", "Vocab", "MapTextVocab", "textId", "vocabId"),
        _through("bookmarkers", "Profile", "TextBookmark", "textId", "bookmarkerId"),
        _many("historyEntries", "TextHistoryEntry", "textId", order_by=["-timeViewed"]),
    ],
    formulas=[
        FormulaSpec(
            name="pastViewersCount",
            sql='(SELECT COUNT(DISTINCT h."pastViewerId") FROM "TextHistoryEntry" h WHERE h."textId" = {alias}."id")',
        ),
        FormulaSpec(
            name="isLastInCollection",
            sql=(
                '({alias}."orderInCollection" = (SELECT MAX(o."orderInCollection") FROM "Text" o '
                'WHERE o."collectionId" = {alias}."collectionId"))'
            ),
            type=BOOL,
        ),
    ],
)

TEXT_HISTORY_ENTRY = EntitySpec(
    name="TextHistoryEntry",
    fields=[
        FieldSpec(name="textId", type=ref("Text"), required=True),
        FieldSpec(name="pastViewerId", type=ref("Profile")),
        FieldSpec(name="timeViewed", type=DATETIME),
    ],
    relations=[
        _to_one("text", "Text"),
        _to_one("pastViewer", "Profile"),
    ],
)

TEXT_BOOKMARK = EntitySpec(
    name="TextBookmark",
    fields=[
        FieldSpec(name="textId", type=ref("Text"), required=True),
        FieldSpec(name="bookmarkerId", type=ref("Profile"), required=True),
    ],
)

COLLECTION_BOOKMARK = EntitySpec(
    name="CollectionBookmark",
    fields=[
        FieldSpec(name="collectionId", type=ref("Collection"), required=True),
        FieldSpec(name="bookmarkerId", type=ref("Profile"), required=True),
    ],
)

VOCAB = EntitySpec(
    name="Vocab",
    fields=[
        FieldSpec(name="text", type=STR, required=True, indexed=True),
        FieldSpec(name="isPhrase", type=BOOL, default=False),
        FieldSpec(name="languageId", type=ref("Language"), required=True),
    ],
    relations=[
        _to_one("language", "Language"),
        _many("meanings", "Meaning", "vocabId"),
        # Same rows as meanings; narrowed to the learner's meanings by a context filter
        _many("learnerMeanings", "Meaning", "vocabId"),
        _through("textsAppearingIn", "Text", "MapTextVocab", "vocabId", "textId"),
    ],
    formulas=[
        FormulaSpec(
            name="learnersCount",
            sql=(
                '(SELECT COUNT(DISTINCT lv."learnerId") FROM "MapLearnerVocab" lv '
                f'WHERE lv."vocabId" = {{alias}}."id" AND lv."level" != {int(VocabLevel.IGNORED)})'
            ),
        ),
        FormulaSpec(
            name="textsCount",
            sql='(SELECT COUNT(DISTINCT tv."textId") FROM "MapTextVocab" tv WHERE tv."vocabId" = {alias}."id")',
        ),
    ],
)

MEANING = EntitySpec(
    name="Meaning",
    fields=[
        FieldSpec(name="text", type=STR, required=True),
        FieldSpec(name="vocabId", type=ref("Vocab"), required=True),
        FieldSpec(name="addedById", type=ref("Profile")),
        FieldSpec(name="languageId", type=ref("Language"), required=True),
        FieldSpec(name="addedOn", type=DATETIME),
        FieldSpec(name="attribution", type=JSON),
    ],
    relations=[
        _to_one("vocab", "Vocab"),
        _to_one("addedBy", "Profile"),
        _to_one("language", "Language"),
        _through("learners", "Profile", "MapLearnerMeaning", "meaningId", "learnerId"),
    ],
    formulas=[
        FormulaSpec(
            name="learnersCount",
            sql='(SELECT COUNT(lm."learnerId") FROM "MapLearnerMeaning" lm WHERE lm."meaningId" = {alias}."id")',
        ),
    ],
)

MAP_TEXT_VOCAB = EntitySpec(
    name="MapTextVocab",
    fields=[
        FieldSpec(name="textId", type=ref("Text"), required=True),
        FieldSpec(name="vocabId", type=ref("Vocab"), required=True),
    ],
)

MAP_LEARNER_VOCAB = EntitySpec(
    name="MapLearnerVocab",
    fields=[
        FieldSpec(name="vocabId", type=ref("Vocab"), required=True),
        FieldSpec(name="learnerId", type=ref("Profile"), required=True),
        FieldSpec(name="level", type=INT, default=int(VocabLevel.LEVEL_1)),
        FieldSpec(name="notes", type=STR, default=""),
        FieldSpec(name="savedOn", type=DATETIME),
    ],
    relations=[
        _to_one("vocab", "Vocab"),
        _to_one("learner", "Profile"),
    ],
)

MAP_LEARNER_LANGUAGE = EntitySpec(
    name="MapLearnerLanguage",
    fields=[
        FieldSpec(name="learnerId", type=ref("Profile"), required=True),
        FieldSpec(name="languageId", type=ref("Language"), required=True),
        FieldSpec(name="startedLearningOn", type=DATETIME),
        FieldSpec(name="lastOpened", type=DATETIME),
    ],
    relations=[
        _to_one("learner", "Profile"),
        _to_one("language", "Language"),
    ],
)

MAP_LEARNER_MEANING = EntitySpec(
    name="MapLearnerMeaning",
    fields=[
        FieldSpec(name="meaningId", type=ref("Meaning"), required=True),
        FieldSpec(name="learnerId", type=ref("Profile"), required=True),
    ],
)

DICTIONARY = EntitySpec(
    name="Dictionary",
    fields=[
        FieldSpec(name="languageId", type=ref("Language"), required=True),
        FieldSpec(name="name", type=STR, required=True),
        FieldSpec(name="lookupLink", type=STR, required=True),
        FieldSpec(name="dictionaryLink", type=STR, required=True),
        FieldSpec(name="isDefault", type=BOOL, default=False),
        FieldSpec(name="isPronunciation", type=BOOL, default=False),
    ],
    relations=[
        _to_one("language", "Language"),
    ],
)

ENTITIES: list[EntitySpec] = [
    LANGUAGE,
    USER,
    PROFILE,
    COLLECTION,
    TEXT_ENTITY,
    TEXT_HISTORY_ENTRY,
    TEXT_BOOKMARK,
    COLLECTION_BOOKMARK,
    VOCAB,
    MEANING,
    MAP_TEXT_VOCAB,
    MAP_LEARNER_VOCAB,
    MAP_LEARNER_LANGUAGE,
    MAP_LEARNER_MEANING,
    DICTIONARY,
]

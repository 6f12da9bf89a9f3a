"""
Named views used by the response layer.
"""

from __future__ import annotations

from lexis_back.specs.context import FetchContext
from lexis_back.specs.view import ViewDescription

ADDED_BY_VIEW = ViewDescription(fields=[], relations={"user": ["username"]})

LANGUAGE_VIEW = ViewDescription(
    fields=[
        "id",
        "code",
        "name",
        "greeting",
        "secondSpeakersCount",
        "flag",
        "flagCircular",
        "flagEmoji",
        "color",
        "isRtl",
        "isAbjad",
        "levelThresholds",
        "learnersCount",
    ]
)

PROFILE_VIEW = ViewDescription(
    fields=["id", "profilePicture", "bio", "isPublic"],
    relations={"languagesLearning": LANGUAGE_VIEW},
)

USER_PUBLIC_VIEW = ViewDescription(
    fields=["username", "isBanned"],
    relations={"profile": PROFILE_VIEW},
)

COLLECTION_SUMMARY_VIEW = ViewDescription(
    fields=["id", "title", "description", "image", "addedOn", "isPublic"],
    relations={"language": ["code"], "addedBy": ADDED_BY_VIEW},
)

TEXT_SUMMARY_VIEW = ViewDescription(
    fields=[
        "id",
        "title",
        "audio",
        "image",
        "orderInCollection",
        "isLastInCollection",
        "isProcessing",
        "addedOn",
        "isPublic",
        "level",
        "pastViewersCount",
    ],
    relations={"language": ["code"], "addedBy": ADDED_BY_VIEW},
)

TEXT_VIEW = ViewDescription(
    fields=[
        "id",
        "title",
        "content",
        "parsedTitle",
        "parsedContent",
        "audio",
        "image",
        "orderInCollection",
        "isLastInCollection",
        "isProcessing",
        "addedOn",
        "isPublic",
        "level",
        "pastViewersCount",
    ],
    relations={
        "language": ["code"],
        "addedBy": ADDED_BY_VIEW,
        "collection": COLLECTION_SUMMARY_VIEW,
    },
)

TEXT_LOGGED_IN_VIEW = TEXT_VIEW.merge(["vocabsByLevel", "isBookmarked"])

COLLECTION_VIEW = ViewDescription(
    fields=[*COLLECTION_SUMMARY_VIEW.fields, "avgPastViewersCountPerText"],
    relations={
        "language": ["code"],
        "addedBy": ADDED_BY_VIEW,
        "texts": TEXT_SUMMARY_VIEW,
    },
)

COLLECTION_LOGGED_IN_VIEW = COLLECTION_VIEW.merge(
    {"fields": ["vocabsByLevel", "isBookmarked"], "relations": {"texts": ["vocabsByLevel", "isBookmarked"]}}
)

MEANING_SUMMARY_VIEW = ViewDescription(
    fields=["id", "text", "learnersCount", "addedOn", "attribution"],
    relations={"language": ["code"], "addedBy": ADDED_BY_VIEW},
)

VOCAB_VIEW = ViewDescription(
    fields=["id", "text", "isPhrase", "learnersCount", "textsCount"],
    relations={"language": ["code"], "meanings": MEANING_SUMMARY_VIEW},
)

VOCAB_FOR_TEXT_VIEW = ViewDescription(
    fields=["id", "text", "isPhrase", "learnersCount"],
    relations={"language": ["code"]},
)

LEARNER_VOCAB_VIEW = ViewDescription(
    fields=["level", "notes"],
    relations={
        "vocab": {
            "fields": ["id", "text", "isPhrase", "learnersCount"],
            "relations": {
                "language": ["code"],
                "learnerMeanings": MEANING_SUMMARY_VIEW,
                "meanings": MEANING_SUMMARY_VIEW,
            },
        }
    },
)

LEARNER_LANGUAGE_VIEW = ViewDescription(
    fields=["startedLearningOn", "lastOpened"],
    relations={"language": LANGUAGE_VIEW},
)

DICTIONARY_VIEW = ViewDescription(
    fields=["id", "name", "lookupLink", "dictionaryLink", "isPronunciation"],
    relations={"language": ["code"]},
)


def text_view_for(context: FetchContext) -> ViewDescription:
    """Text view with learner fields only for logged in viewers."""
    return TEXT_LOGGED_IN_VIEW if context.is_authenticated else TEXT_VIEW


def collection_view_for(context: FetchContext) -> ViewDescription:
    """Collection view with learner fields only for logged in viewers."""
    return COLLECTION_LOGGED_IN_VIEW if context.is_authenticated else COLLECTION_VIEW


NAMED_VIEWS: dict[str, tuple[str, ViewDescription]] = {
    "language": ("Language", LANGUAGE_VIEW),
    "profile": ("Profile", PROFILE_VIEW),
    "user-public": ("User", USER_PUBLIC_VIEW),
    "text-summary": ("Text", TEXT_SUMMARY_VIEW),
    "text": ("Text", TEXT_VIEW),
    "text-logged-in": ("Text", TEXT_LOGGED_IN_VIEW),
    "collection-summary": ("Collection", COLLECTION_SUMMARY_VIEW),
    "collection": ("Collection", COLLECTION_VIEW),
    "collection-logged-in": ("Collection", COLLECTION_LOGGED_IN_VIEW),
    "meaning-summary": ("Meaning", MEANING_SUMMARY_VIEW),
    "vocab": ("Vocab", VOCAB_VIEW),
    "vocab-for-text": ("Vocab", VOCAB_FOR_TEXT_VIEW),
    "learner-vocab": ("MapLearnerVocab", LEARNER_VOCAB_VIEW),
    "learner-language": ("MapLearnerLanguage", LEARNER_LANGUAGE_VIEW),
    "dictionary": ("Dictionary", DICTIONARY_VIEW),
}

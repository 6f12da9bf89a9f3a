"""
Context-derived filters used by relation fetch specs.
"""

from __future__ import annotations

from lexis_back.runtime.query_builder import FilterQuery
from lexis_back.specs.context import AnonymousUser, CurrentUser, FetchContext


def text_visibility_filter(user: CurrentUser | AnonymousUser | None) -> FilterQuery:
    """
    Texts a viewer may see.

    Public standalone texts and texts in public collections are visible to
    everyone; a logged in viewer also sees their own texts.
    """
    visible: list[FilterQuery] = [
        {"$and": [{"collection": {"$eq": None}}, {"isPublic": True}]},
        {"collection": {"isPublic": True}},
    ]
    if isinstance(user, CurrentUser):
        visible.append({"addedBy": user.profile_id})
    return {"$or": visible}


def texts_visible_in_context(context: FetchContext) -> FilterQuery:
    return text_visibility_filter(context.user)


def learner_meanings_filter(context: FetchContext) -> FilterQuery:
    """Meanings saved by the current learner."""
    user = context.require_user("learnerMeanings")
    return {"learners": user.profile_id}

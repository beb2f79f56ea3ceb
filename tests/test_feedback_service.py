import asyncio

from sqlalchemy import Delete, Insert, Select
from sqlalchemy.dialects import postgresql

from malrec.db.schemas import FeedbackKind, ItemType
from malrec.services.feedback_service import FeedbackService


class Result:
    def __init__(self, value):
        self.value = value

    def scalar_one_or_none(self):
        return self.value


class FeedbackSession:
    """Holds the feedback_type of a single (user, item type, item) row."""

    def __init__(self):
        self.stored = None
        self.commits = 0

    async def execute(self, stmt):
        if isinstance(stmt, Select):
            return Result(self.stored)
        if isinstance(stmt, Delete):
            self.stored = None
        elif isinstance(stmt, Insert):
            self.stored = stmt.compile(dialect=postgresql.dialect()).params["feedback_type"]
        return Result(None)

    async def commit(self):
        self.commits += 1


def test_toggle_same_kind_removes_and_other_kind_replaces():
    session = FeedbackSession()
    service = FeedbackService(session)

    def click(kind):
        return asyncio.run(service.toggle_feedback(1, 99, ItemType.ANIME, kind))

    assert click(FeedbackKind.LIKE) == FeedbackKind.LIKE
    assert session.stored == "like"

    assert click(FeedbackKind.LIKE) is None
    assert session.stored is None

    assert click(FeedbackKind.DISLIKE) == FeedbackKind.DISLIKE
    assert session.stored == "dislike"

    assert click(FeedbackKind.LIKE) == FeedbackKind.LIKE
    assert session.stored == "like"
    assert session.commits == 4

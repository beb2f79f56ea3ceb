import asyncio
from datetime import timedelta

import pytest

from malrec.core.errors import ShareLinkNotFoundError
from malrec.db.schemas import ItemType, RecommendationItem, RecommendationMode
from malrec.services.share_service import (
    SHARE_CODE_ALPHABET, SHARE_CODE_LENGTH, ShareService, generate_share_code,
)


def test_share_codes_use_unambiguous_alphabet():
    for ch in "0O1Il":
        assert ch not in SHARE_CODE_ALPHABET

    codes = {generate_share_code() for _ in range(200)}
    assert all(len(code) == SHARE_CODE_LENGTH for code in codes)
    assert all(set(code) <= set(SHARE_CODE_ALPHABET) for code in codes)
    assert len(codes) > 190


class Result:
    def __init__(self, value):
        self.value = value

    def scalar_one_or_none(self):
        return self.value


class ShareSession:
    def __init__(self):
        self.rows = []

    def add(self, row):
        self.rows.append(row)

    async def commit(self):
        pass

    async def execute(self, stmt):
        return Result(self.rows[0] if self.rows else None)


def make_link(session):
    items = [RecommendationItem(id=5, title="Item 5", item_type=ItemType.ANIME)]
    return asyncio.run(ShareService(session).create(1, ItemType.ANIME, RecommendationMode.NEW, items))


def test_share_link_readable_until_expiry():
    session = ShareSession()
    created = make_link(session)
    assert created.expires_at - created.created_at == timedelta(days=7)

    fetched = asyncio.run(ShareService(session).get(created.share_code, now=created.expires_at - timedelta(seconds=1)))
    assert [item.id for item in fetched.items] == [5]
    assert fetched.created_by == 1


def test_expired_share_link_is_not_found():
    session = ShareSession()
    created = make_link(session)

    with pytest.raises(ShareLinkNotFoundError):
        asyncio.run(ShareService(session).get(created.share_code, now=created.expires_at + timedelta(minutes=1)))


def test_missing_share_link_is_not_found():
    with pytest.raises(ShareLinkNotFoundError):
        asyncio.run(ShareService(ShareSession()).get("AbCd2345"))

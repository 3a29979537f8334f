"""
Article repository tests
========================

Covers validation, the slug/category/tag indexes and paginated listing.
Run with: pytest tests/test_articles.py -v
"""

import pytest

import articles
from articles import (
    ArticleNotFound,
    BY_CATEGORY,
    BY_SLUG,
    BY_TAG,
    SlugConflict,
    ValidationError,
)


def index_snapshot(store):
    """All secondary index keys currently in the store."""
    keys = []
    for index in (BY_SLUG, BY_CATEGORY, BY_TAG):
        keys.extend(key for key, _ in store.list((index,)))
    return sorted(keys)


# ---------------------------------------------------------------------------
# Creating articles
# ---------------------------------------------------------------------------

def test_create_assigns_id_timestamps_and_indexes(store, article_data):
    article = articles.create_article(article_data())

    assert article["id"]
    assert article["created_at"] == article["updated_at"]
    assert articles.get_article(article["id"]) == article
    assert articles.get_article_by_slug("growing-magnolias") == article
    assert index_snapshot(store) == sorted(
        [
            (BY_SLUG, "growing-magnolias"),
            (BY_CATEGORY, "Garden", article["id"]),
            (BY_TAG, "trees", article["id"]),
            (BY_TAG, "spring", article["id"]),
        ]
    )


def test_create_fills_defaults(store, article_data):
    article = articles.create_article(
        article_data(slug="", category="  ", tags=" a, ,b, a ", pub_date=None)
    )
    assert article["slug"] == "growing-magnolias"
    assert article["category"] == articles.DEFAULT_CATEGORY
    assert article["tags"] == ["a", "b"]
    assert articles.parse_date(article["pub_date"]) is not None


def test_slug_is_normalised(store, article_data):
    article = articles.create_article(article_data(slug="Hello World!"))
    assert article["slug"] == "hello-world"


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": ""},
        {"body": "   "},
        {"pub_date": "not a date"},
        {"slug": "!!!", "title": "???"},
        {"tags": 5},
        {"tags": {"a": 1}},
    ],
)
def test_create_rejects_invalid_input(store, article_data, overrides):
    with pytest.raises(ValidationError):
        articles.create_article(article_data(**overrides))
    assert store.list(("articles",)) == []


def test_duplicate_slug_is_rejected(store, article_data):
    articles.create_article(article_data())
    with pytest.raises(SlugConflict):
        articles.create_article(article_data(title="Another"))
    assert len(store.list(("articles",))) == 1


def test_naive_pub_date_is_taken_as_utc(store, article_data):
    article = articles.create_article(article_data(pub_date="2024-05-01"))
    assert article["pub_date"] == "2024-05-01T00:00:00+00:00"


# ---------------------------------------------------------------------------
# Updating and deleting keep the indexes in step
# ---------------------------------------------------------------------------

def test_update_moves_every_index_entry(store, article_data):
    article = articles.create_article(article_data())

    updated = articles.update_article(
        article["id"], {"slug": "magnolia-care", "category": "Trees", "tags": ["care"]}
    )

    assert updated["title"] == "Growing magnolias"
    assert updated["created_at"] == article["created_at"]
    assert index_snapshot(store) == sorted(
        [
            (BY_SLUG, "magnolia-care"),
            (BY_CATEGORY, "Trees", article["id"]),
            (BY_TAG, "care", article["id"]),
        ]
    )
    assert articles.get_article_by_slug("growing-magnolias") is None
    # category index holds the current version, not the stale one
    assert store.get((BY_CATEGORY, "Trees", article["id"]))["slug"] == "magnolia-care"


def test_update_to_taken_slug_changes_nothing(store, article_data):
    first = articles.create_article(article_data())
    second = articles.create_article(article_data(title="Second", slug="second"))
    before = index_snapshot(store)

    with pytest.raises(SlugConflict):
        articles.update_article(second["id"], {"slug": first["slug"], "category": "X"})

    assert index_snapshot(store) == before
    assert articles.get_article(second["id"])["category"] == "Garden"


def test_update_missing_article(store):
    with pytest.raises(ArticleNotFound):
        articles.update_article("nope", {"title": "x"})


def test_delete_removes_record_and_indexes(store, article_data):
    article = articles.create_article(article_data())
    articles.delete_article(article["id"])

    assert articles.get_article(article["id"]) is None
    assert index_snapshot(store) == []
    with pytest.raises(ArticleNotFound):
        articles.delete_article(article["id"])


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@pytest.fixture
def catalogue(store, article_data):
    created = []
    for day in range(1, 8):
        created.append(
            articles.create_article(
                article_data(
                    title=f"Post {day}",
                    slug=f"post-{day}",
                    category="Odd" if day % 2 else "Even",
                    tags=["all"] + (["three"] if day % 3 == 0 else []),
                    pub_date=f"2024-01-0{day}T12:00:00Z",
                )
            )
        )
    return created


def test_list_is_newest_first_and_paginated(catalogue):
    page, total = articles.get_articles(page=1, limit=3)
    assert total == 7
    assert [a["slug"] for a in page] == ["post-7", "post-6", "post-5"]

    last_page, _ = articles.get_articles(page=3, limit=3)
    assert [a["slug"] for a in last_page] == ["post-1"]

    beyond, total = articles.get_articles(page=9, limit=3)
    assert beyond == [] and total == 7


def test_list_by_category_and_tag(catalogue):
    odd, total = articles.get_articles(category="Odd")
    assert total == 4
    assert [a["slug"] for a in odd] == ["post-7", "post-5", "post-3", "post-1"]

    three, total = articles.get_articles(tag="three")
    assert total == 2
    assert [a["slug"] for a in three] == ["post-6", "post-3"]

    assert articles.get_articles(tag="missing") == ([], 0)


@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (-1, 5)])
def test_list_rejects_bad_paging(store, page, limit):
    with pytest.raises(ValidationError):
        articles.get_articles(page=page, limit=limit)


def test_category_and_tag_summaries(catalogue):
    assert articles.list_categories() == [("Odd", 4), ("Even", 3)]
    assert articles.list_tags() == [("all", 7), ("three", 2)]


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------

def test_reindex_rebuilds_lost_and_stale_entries(store, catalogue):
    expected = index_snapshot(store)
    store.delete((BY_SLUG, "post-1"))
    store.set((BY_TAG, "ghost", "missing-id"), {"id": "missing-id"})

    assert articles.reindex() == 7
    assert index_snapshot(store) == expected

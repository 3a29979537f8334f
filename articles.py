"""
Article repository.

Articles live under ("articles", id). Three secondary indexes are kept in
step with every write:

    ("articles_by_slug", slug)               -> id
    ("articles_by_category", category, id)   -> article
    ("articles_by_tag", tag, id)             -> article

Every write goes through one atomic batch, and the index entries of the
previous version of an article are dropped before the new ones are written,
so a renamed slug, category or tag never leaves a stale entry behind.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from slugify import slugify

from kv import Key, KvStore, get_kv

logger = logging.getLogger(__name__)

ARTICLES = "articles"
BY_SLUG = "articles_by_slug"
BY_CATEGORY = "articles_by_category"
BY_TAG = "articles_by_tag"

DEFAULT_CATEGORY = "Uncategorized"
EDITABLE_FIELDS = ("slug", "title", "pub_date", "category", "tags", "body")
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ArticleError(Exception):
    status_code = 400


class ValidationError(ArticleError):
    pass


class SlugConflict(ArticleError):
    status_code = 409


class ArticleNotFound(ArticleError):
    status_code = 404


def generate_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def parse_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 date or datetime; naive values are taken as UTC."""
    if not date_str:
        return None
    value = str(date_str).strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_tags(raw) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    elif not isinstance(raw, (list, tuple)):
        raise ValidationError("Tags must be a list or a comma separated string")
    tags: List[str] = []
    for tag in raw:
        tag = str(tag).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def build_article(data: Dict, existing: Optional[Dict] = None) -> Dict:
    """Validate form or JSON input and merge it over ``existing``."""
    merged = dict(existing or {})
    for field in EDITABLE_FIELDS:
        if data.get(field) is not None:
            merged[field] = data[field]

    title = str(merged.get("title", "")).strip()
    body = str(merged.get("body", ""))
    if not title or not body.strip():
        raise ValidationError("Title and body are required")

    slug_value = slugify(str(merged.get("slug", "")).strip() or title)
    if not slug_value:
        raise ValidationError("Slug could not be generated")

    pub_date_raw = merged.get("pub_date")
    if pub_date_raw:
        pub_date = parse_date(pub_date_raw)
        if pub_date is None:
            raise ValidationError(f"Invalid publication date: {pub_date_raw}")
        pub_date_str = pub_date.isoformat()
    else:
        pub_date_str = now_iso()

    now = now_iso()
    return {
        "id": existing.get("id") if existing else generate_id(),
        "slug": slug_value,
        "title": title,
        "pub_date": pub_date_str,
        "category": str(merged.get("category") or "").strip() or DEFAULT_CATEGORY,
        "tags": parse_tags(merged.get("tags")),
        "body": body,
        "created_at": existing.get("created_at", now) if existing else now,
        "updated_at": now,
    }


def index_keys(article: Dict) -> List[Key]:
    keys: List[Key] = [
        (BY_SLUG, article["slug"]),
        (BY_CATEGORY, article["category"], article["id"]),
    ]
    keys.extend((BY_TAG, tag, article["id"]) for tag in article.get("tags", []))
    return keys


def _write_indexes(kv: KvStore, article: Dict) -> None:
    kv.set((BY_SLUG, article["slug"]), article["id"])
    kv.set((BY_CATEGORY, article["category"], article["id"]), article)
    for tag in article.get("tags", []):
        kv.set((BY_TAG, tag, article["id"]), article)


def _drop_indexes(kv: KvStore, article: Dict) -> None:
    for key in index_keys(article):
        if key[0] == BY_SLUG and kv.get(key) != article["id"]:
            continue
        kv.delete(key)


def save_article(article: Dict, kv: Optional[KvStore] = None) -> Dict:
    kv = kv or get_kv()
    with kv.atomic():
        owner = kv.get((BY_SLUG, article["slug"]))
        if owner and owner != article["id"]:
            raise SlugConflict(f'Slug "{article["slug"]}" is already in use')
        previous = kv.get((ARTICLES, article["id"]))
        if previous:
            _drop_indexes(kv, previous)
        kv.set((ARTICLES, article["id"]), article)
        _write_indexes(kv, article)
    return article


def create_article(data: Dict, kv: Optional[KvStore] = None) -> Dict:
    article = save_article(build_article(data), kv)
    logger.info("Created article %s (%s)", article["id"], article["slug"])
    return article


def update_article(article_id: str, updates: Dict, kv: Optional[KvStore] = None) -> Dict:
    kv = kv or get_kv()
    with kv.atomic():
        existing = get_article(article_id, kv)
        if not existing:
            raise ArticleNotFound("Article not found")
        article = save_article(build_article(updates, existing), kv)
    logger.info("Updated article %s (%s)", article_id, article["slug"])
    return article


def delete_article(article_id: str, kv: Optional[KvStore] = None) -> Dict:
    kv = kv or get_kv()
    with kv.atomic():
        article = get_article(article_id, kv)
        if not article:
            raise ArticleNotFound("Article not found")
        kv.delete((ARTICLES, article_id))
        _drop_indexes(kv, article)
    logger.info("Deleted article %s (%s)", article_id, article["slug"])
    return article


def get_article(article_id: str, kv: Optional[KvStore] = None) -> Optional[Dict]:
    kv = kv or get_kv()
    return kv.get((ARTICLES, article_id))


def get_article_by_slug(slug: str, kv: Optional[KvStore] = None) -> Optional[Dict]:
    kv = kv or get_kv()
    article_id = kv.get((BY_SLUG, slug))
    if not article_id:
        return None
    return get_article(article_id, kv)


def sort_key(article: Dict) -> datetime:
    return parse_date(article.get("pub_date")) or EPOCH


def sort_articles(articles: Iterable[Dict]) -> List[Dict]:
    return sorted(articles, key=sort_key, reverse=True)


def all_articles(kv: Optional[KvStore] = None) -> List[Dict]:
    kv = kv or get_kv()
    return sort_articles(value for _, value in kv.list((ARTICLES,)))


def get_articles(
    page: int = 1,
    limit: int = 10,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    kv: Optional[KvStore] = None,
) -> Tuple[List[Dict], int]:
    """Return one page of articles, newest first, and the total match count."""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    kv = kv or get_kv()
    if category:
        prefix: Key = (BY_CATEGORY, category)
    elif tag:
        prefix = (BY_TAG, tag)
    else:
        prefix = (ARTICLES,)

    matched = sort_articles(value for _, value in kv.list(prefix))
    offset = (page - 1) * limit
    return matched[offset : offset + limit], len(matched)


def _count_names(kv: KvStore, index: str) -> List[Tuple[str, int]]:
    counts = Counter(key[1] for key, _ in kv.list((index,)))
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def list_categories(kv: Optional[KvStore] = None) -> List[Tuple[str, int]]:
    return _count_names(kv or get_kv(), BY_CATEGORY)


def list_tags(kv: Optional[KvStore] = None) -> List[Tuple[str, int]]:
    return _count_names(kv or get_kv(), BY_TAG)


def reindex(kv: Optional[KvStore] = None) -> int:
    """Rebuild every secondary index from the primary records."""
    kv = kv or get_kv()
    with kv.atomic():
        for index in (BY_SLUG, BY_CATEGORY, BY_TAG):
            for key, _ in kv.list((index,)):
                kv.delete(key)
        articles = [value for _, value in kv.list((ARTICLES,))]
        for article in sorted(articles, key=lambda a: a.get("created_at", "")):
            owner = kv.get((BY_SLUG, article["slug"]))
            if owner:
                logger.warning(
                    "Slug %s claimed by %s and %s; keeping the older article",
                    article["slug"],
                    owner,
                    article["id"],
                )
                kv.set((BY_CATEGORY, article["category"], article["id"]), article)
                for tag in article.get("tags", []):
                    kv.set((BY_TAG, tag, article["id"]), article)
                continue
            _write_indexes(kv, article)
    logger.info("Reindexed %d articles", len(articles))
    return len(articles)

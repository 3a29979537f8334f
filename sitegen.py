"""
Static site generator.

Renders every stored article into plain HTML under config.SITE_DIST_DIR:

    index.html
    articles/index.html, articles/page/<n>.html
    articles/<slug>.html
    category/index.html, category/<name>.html
    tags/index.html, tags/<name>.html

Each build removes HTML files in those directories that it did not write, so
pages of deleted or renamed articles do not linger in the output.
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markdown import markdown
from markupsafe import Markup

import config
from articles import all_articles, parse_date, sort_articles
from kv import KvStore, get_kv

logger = logging.getLogger(__name__)

GENERATED_DIRS = ("articles", "category", "tags")
PAGE_SIZE = 10
RECENT_COUNT = 5
POPULAR_TAG_COUNT = 10
RELATED_COUNT = 4
BUILD_KEY = ("build", "last")


def slug_to_filename(slug: str) -> str:
    name = re.sub(r"[^a-z0-9-]", "-", slug)
    # articles/index.html is the first page of the article list
    if name == "index":
        name += "-"
    return name + ".html"


def _term_slug(name: str, default: str) -> str:
    value = name.strip().replace("/", "-").replace("\\", "-")
    if not value.strip("."):
        return default
    if value == "index":
        return value + "-"
    return value


def category_to_filename(category: str) -> str:
    return _term_slug(category, "category") + ".html"


def tag_to_filename(tag: str) -> str:
    return _term_slug(tag, "tag") + ".html"


def site_url(path: str) -> str:
    return config.SITE_BASE_PATH + path


def article_url(article: Dict) -> str:
    return site_url("/articles/" + slug_to_filename(article["slug"]))


def category_url(category: str) -> str:
    return site_url("/category/" + quote(category_to_filename(category)))


def tag_url(tag: str) -> str:
    return site_url("/tags/" + quote(tag_to_filename(tag)))


def page_url(page: int) -> str:
    if page == 1:
        return site_url("/articles/")
    return site_url(f"/articles/page/{page}.html")


def render_markdown(md_text: str) -> Markup:
    return Markup(
        markdown(
            md_text or "",
            extensions=["fenced_code", "codehilite", "tables", "sane_lists"],
            output_format="html5",
        )
    )


def build_excerpt(text: str, length: int = 160) -> str:
    plain = re.sub(r"<[^>]+>", "", str(render_markdown(text))).strip()
    plain = re.sub(r"\s+", " ", plain)
    if len(plain) <= length:
        return plain
    return f"{plain[:length].rstrip()}..."


def format_date(date_str: Optional[str]) -> str:
    dt = parse_date(date_str)
    if dt is None:
        return ""
    return dt.strftime("%b %d, %Y")


def related_articles(article: Dict, articles: Iterable[Dict]) -> List[Dict]:
    """Articles sharing the category or at least one tag, newest first."""
    tags = set(article.get("tags", []))
    related = [
        other
        for other in articles
        if other["id"] != article["id"]
        and (other["category"] == article["category"] or tags & set(other.get("tags", [])))
    ]
    return related[:RELATED_COUNT]


def group_by(articles: Iterable[Dict], field: str) -> Dict[str, List[Dict]]:
    groups: Dict[str, List[Dict]] = defaultdict(list)
    for article in articles:
        values = article.get(field, [])
        if isinstance(values, str):
            values = [values]
        for value in values:
            groups[value].append(article)
    return groups


def term_summary(groups: Dict[str, List[Dict]]) -> List[Dict]:
    summary = [
        {"name": name, "count": len(items), "latest": items[0]}
        for name, items in groups.items()
    ]
    summary.sort(key=lambda item: (-item["count"], item["name"]))
    return summary


def make_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(config.SITE_TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.globals.update(
        site_title=config.SITE_TITLE,
        site_description=config.SITE_DESCRIPTION,
        site_lang=config.SITE_LANG,
        site_url=site_url,
        article_url=article_url,
        category_url=category_url,
        tag_url=tag_url,
        page_url=page_url,
        format_date=format_date,
        build_excerpt=build_excerpt,
        render_markdown=render_markdown,
    )
    return env


class SiteWriter:
    """Writes rendered pages and remembers which files it produced."""

    def __init__(self, dist_dir: Path, env: Environment):
        self.dist_dir = dist_dir
        self.env = env
        self.written: Set[Path] = set()

    def write(self, rel_path: str, template: str, **context) -> Path:
        path = self.dist_dir / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        html = self.env.get_template(template).render(**context)
        path.write_text(html, encoding="utf-8")
        self.written.add(path.resolve())
        return path


def _write_index(writer: SiteWriter, articles: List[Dict], categories, tags) -> None:
    writer.write(
        "index.html",
        "index.html",
        title=config.SITE_TITLE,
        recent_articles=articles[:RECENT_COUNT],
        has_more=len(articles) > RECENT_COUNT,
        categories=categories,
        popular_tags=tags[:POPULAR_TAG_COUNT],
    )


def _write_article_list(writer: SiteWriter, articles: List[Dict], categories, tags) -> None:
    total_pages = max(1, math.ceil(len(articles) / PAGE_SIZE))
    for page in range(1, total_pages + 1):
        chunk = articles[(page - 1) * PAGE_SIZE : page * PAGE_SIZE]
        rel_path = "articles/index.html" if page == 1 else f"articles/page/{page}.html"
        writer.write(
            rel_path,
            "article_list.html",
            title=f"Articles | {config.SITE_TITLE}",
            articles=chunk,
            total=len(articles),
            current_page=page,
            total_pages=total_pages,
            has_prev_page=page > 1,
            has_next_page=page < total_pages,
            categories=categories,
            popular_tags=tags[:POPULAR_TAG_COUNT],
        )


def _write_articles(writer: SiteWriter, articles: List[Dict]) -> None:
    for article in articles:
        writer.write(
            "articles/" + slug_to_filename(article["slug"]),
            "article.html",
            title=article["title"],
            description=build_excerpt(article["body"]),
            keywords=", ".join(article.get("tags", [])),
            article=article,
            related=related_articles(article, articles),
        )


def _write_terms(
    writer: SiteWriter,
    directory: str,
    kind: str,
    heading: str,
    groups: Dict[str, List[Dict]],
    summary: List[Dict],
    to_filename,
) -> None:
    writer.write(
        f"{directory}/index.html",
        "term_index.html",
        title=f"{heading} | {config.SITE_TITLE}",
        kind=kind,
        heading=heading,
        terms=summary,
    )
    owners: Dict[str, str] = {}
    for name, items in groups.items():
        filename = to_filename(name)
        if filename in owners:
            logger.warning(
                "%s %r and %r share %s/%s; the page shows %r",
                kind,
                owners[filename],
                name,
                directory,
                filename,
                name,
            )
        owners[filename] = name
        writer.write(
            f"{directory}/{filename}",
            "term.html",
            title=f"{kind}: {name} | {config.SITE_TITLE}",
            kind=kind,
            name=name,
            articles=items,
        )


def clean_stale(written: Set[Path], dist_dir: Optional[Path] = None) -> List[Path]:
    """Delete generated HTML files that the last build did not produce."""
    dist_dir = Path(dist_dir or config.SITE_DIST_DIR)
    removed: List[Path] = []
    for directory in GENERATED_DIRS:
        root = dist_dir / directory
        if not root.is_dir():
            continue
        for path in sorted(root.rglob("*.html")):
            if path.resolve() not in written:
                path.unlink()
                removed.append(path)
                logger.debug("Removed stale page %s", path)
    return removed


def remove_article_page(slug: str, dist_dir: Optional[Path] = None) -> bool:
    path = Path(dist_dir or config.SITE_DIST_DIR) / "articles" / slug_to_filename(slug)
    if not path.exists():
        return False
    path.unlink()
    logger.info("Removed page %s", path)
    return True


def count_generated_pages(dist_dir: Optional[Path] = None) -> int:
    dist_dir = Path(dist_dir or config.SITE_DIST_DIR)
    if not dist_dir.is_dir():
        return 0
    count = 1 if (dist_dir / "index.html").exists() else 0
    for directory in GENERATED_DIRS:
        root = dist_dir / directory
        if root.is_dir():
            count += sum(1 for _ in root.rglob("*.html"))
    return count


def build_site(
    articles: Optional[List[Dict]] = None,
    dist_dir: Optional[Path] = None,
    kv: Optional[KvStore] = None,
) -> Dict:
    started = time.monotonic()
    kv = kv or get_kv()
    dist_dir = Path(dist_dir or config.SITE_DIST_DIR)
    articles = all_articles(kv) if articles is None else sort_articles(articles)
    logger.info("Building static site for %d articles into %s", len(articles), dist_dir)

    by_category = group_by(articles, "category")
    by_tag = group_by(articles, "tags")
    categories = term_summary(by_category)
    tags = term_summary(by_tag)

    writer = SiteWriter(dist_dir, make_environment())
    _write_index(writer, articles, categories, tags)
    _write_article_list(writer, articles, categories, tags)
    _write_articles(writer, articles)
    _write_terms(
        writer, "category", "Category", "Categories", by_category, categories,
        category_to_filename,
    )
    _write_terms(writer, "tags", "Tag", "Tags", by_tag, tags, tag_to_filename)
    removed = clean_stale(writer.written, dist_dir)

    result = {
        "success": True,
        "generated_pages": len(writer.written),
        "removed_pages": len(removed),
        "article_count": len(articles),
        "build_time_ms": int((time.monotonic() - started) * 1000),
        "built_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
    }
    kv.set(BUILD_KEY, result)
    logger.info(
        "Build finished: %d pages written, %d removed in %dms",
        result["generated_pages"],
        result["removed_pages"],
        result["build_time_ms"],
    )
    return result


def last_build(kv: Optional[KvStore] = None) -> Optional[Dict]:
    return (kv or get_kv()).get(BUILD_KEY)

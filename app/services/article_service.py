"""
Article service: business rules for the Article collection.

Design notes
------------
- The service depends only on the ``ArticleRepository`` contract and a
  logger, both injected through the constructor; the router builds one
  per request around the request's session.
- Derived fields are computed here, never trusted from clients:
  ``slug`` (from the title when absent), ``reading_time`` (from the word
  count of the content), ``views`` and ``is_edited``.
- Authors are redacted to ``{id, username, email}`` before any record
  leaves the service.
- Ownership is not checked here; ``ArticlePolicy`` runs upstream of
  ``update_article`` / ``delete_article`` in the request adapter.
"""
import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from text_unidecode import unidecode

from app.auth import Principal
from app.errors import BadRequestError, NotFoundError, UnauthorizedError
from app.repositories.article_repository import ArticleRepository, Record
from app.schemas import ArticleCreate, ArticleListQuery, ArticleUpdate

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

WORDS_PER_MINUTE = 200

AUTHOR_FIELDS = ("id", "username", "email")

LIST_POPULATE = {"author": True, "category": True, "cover_image": True}
DETAIL_POPULATE = {"author": AUTHOR_FIELDS, "category": True, "cover_image": True}

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s]")
_SLUG_SPACE_RE = re.compile(r"\s+")


def slugify(text: str) -> str:
    """
    Return a strict, lowercase slug derived from *text*.

    Non-ASCII text is transliterated first (``"Новости"`` becomes
    ``"novosti"``). Every character outside ``[a-z0-9]`` and whitespace is
    then dropped, hyphens and underscores included, and runs of whitespace
    become a single ``-``.
    """
    text = unidecode(text)
    text = _SLUG_STRIP_RE.sub("", text.lower())
    return _SLUG_SPACE_RE.sub("-", text.strip())


def count_words(text: str) -> int:
    return len(text.split())


def reading_time(content: str, words_per_minute: int = WORDS_PER_MINUTE) -> int:
    """Minutes needed to read *content*, rounded up, never less than 1."""
    return max(1, math.ceil(count_words(content) / words_per_minute))


def redact_author(author: Mapping[str, Any] | None) -> dict | None:
    if not author:
        return None
    return {field: author.get(field) for field in AUTHOR_FIELDS}


def parse_sort(sort: list[str]) -> list[tuple[str, str]]:
    """Turn ``["title:desc", "views"]`` into ``[("title", "desc"), ("views", "asc")]``."""
    order = []
    for item in sort:
        field, _, direction = str(item).partition(":")
        if field:
            order.append((field, "desc" if direction == "desc" else "asc"))
    return order


def _redacted(record: Record | None) -> Record | None:
    if record is not None and "author" in record:
        record["author"] = redact_author(record["author"])
    return record


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ArticleService:
    def __init__(
        self,
        repository: ArticleRepository,
        logger: logging.Logger | None = None,
        words_per_minute: int = WORDS_PER_MINUTE,
    ) -> None:
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)
        self.words_per_minute = words_per_minute

    def _derive_slug(self, title: str) -> str:
        slug = slugify(title)
        if not slug:
            raise BadRequestError(f"Cannot derive a slug from title {title!r}")
        return slug

    async def list_articles(self, query: ArticleListQuery) -> dict:
        """
        Return one page of articles with pagination metadata.

        The page and the total come from two separate queries and may
        reflect different snapshots under concurrent writes.
        """
        page = max(1, query.page)
        page_size = max(1, query.page_size)
        offset = (page - 1) * page_size

        articles = await self.repository.find_many(
            filters=query.filters,
            sort=parse_sort(query.sort),
            limit=page_size,
            offset=offset,
            populate=LIST_POPULATE,
        )
        total = await self.repository.count(query.filters)

        return {
            "data": [_redacted(a) for a in articles],
            "meta": {
                "pagination": {
                    "page": page,
                    "page_size": page_size,
                    "total": total,
                    "page_count": math.ceil(total / page_size),
                },
            },
        }

    async def get_article(self, article_id: int) -> Record:
        """
        Return a single article and count the view.

        The increment is a read-then-write, not an atomic update:
        concurrent reads of the same article can lose increments.  The
        returned record carries the view count from before this read.
        """
        article = await self.repository.find_one(article_id, populate=DETAIL_POPULATE)
        if article is None:
            raise NotFoundError("Article not found")

        await self.repository.update(article_id, {"views": int(article["views"] or 0) + 1})
        return _redacted(article)

    async def create_article(self, principal: Principal | None, data: ArticleCreate) -> Record:
        if principal is None:
            raise UnauthorizedError("You must be authenticated")

        values = data.model_dump()
        values["author"] = principal.id
        if values.get("content"):
            values["reading_time"] = reading_time(values["content"], self.words_per_minute)
        values["views"] = 0
        values["is_edited"] = False
        if not values.get("slug"):
            values["slug"] = self._derive_slug(values["title"])

        article = await self.repository.create(values, populate=DETAIL_POPULATE)
        self.logger.info(
            "Article %s - %s created by %s", article["id"], article["title"], principal.id
        )
        return _redacted(article)

    async def update_article(
        self, principal: Principal | None, article_id: int, data: ArticleUpdate
    ) -> Record:
        if principal is None:
            raise UnauthorizedError("You must be authenticated to update an article")

        existing = await self.repository.find_one(article_id)
        if existing is None:
            raise NotFoundError("Article not found")

        changes = data.model_dump(exclude_unset=True)

        title = changes.get("title")
        if isinstance(title, str) and title != existing["title"] and not changes.get("slug"):
            changes["slug"] = self._derive_slug(title)
        elif "slug" in changes and not changes["slug"]:
            # An empty slug means "keep the current one".
            del changes["slug"]

        if "content" in changes:
            content = changes["content"]
            if content is None:
                changes["reading_time"] = None
            elif content != existing["content"]:
                changes["reading_time"] = reading_time(content, self.words_per_minute)

        changes["is_edited"] = True

        updated = await self.repository.update(article_id, changes, populate=DETAIL_POPULATE)
        if updated is None:
            # Deleted between the existence check and the write.
            raise NotFoundError("Article not found")
        self.logger.info("Article %s edited by %s", article_id, principal.id)
        return _redacted(updated)

    async def delete_article(self, article_id: int) -> Record | None:
        """
        Delete an article.

        Returns None (rather than raising) when there was nothing to
        delete; the request adapter turns that into a 404.
        """
        deleted = await self.repository.delete(article_id)
        if deleted is None:
            self.logger.info("can not delete article %s. Article not found", article_id)
            return None
        self.logger.info("Article %s deleted", article_id)
        return deleted

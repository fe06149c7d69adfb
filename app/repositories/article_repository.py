"""
Article repository: data access for the Article collection.

Design notes
------------
- ``ArticleRepository`` is the contract the service layer depends on.
  Records cross the boundary as plain dicts keyed by attribute name, so
  callers never touch ORM instances or the session.
- Relations (``author``, ``category``, ``cover_image``) are only present
  in a record when requested through *populate*.  A populate value of
  ``True`` returns every stored field of the relation; a sequence of
  names returns just those fields.
- Filters follow the Strapi query grammar (``{"title": {"$contains": "x"}}``,
  ``$and`` / ``$or`` / ``$not``, nested relation filters).  They are
  translated into SQLAlchemy expressions against a whitelist of columns.
- Every write re-selects the row with ``populate_existing`` so that
  server-generated columns (``created_at``, ``updated_at``) are loaded
  before serialisation.
- Driver failures are re-raised as ``StoreError`` (``ConflictError`` for
  unique violations) with the original exception chained.
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import and_, asc, desc, func, not_, or_, select, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.errors import BadRequestError, ConflictError, StoreError
from app.models import Article, Category, Media, User

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Populate = Mapping[str, "bool | Sequence[str]"]
SortSpec = Sequence[tuple[str, str]]

# Largest LIMIT / OFFSET the backends accept (signed 64-bit)
MAX_ROWS = 2**63 - 1


class ArticleRepository(ABC):
    """Data-access contract for the Article collection."""

    @abstractmethod
    async def find_many(
        self,
        filters: Mapping[str, Any] | None = None,
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
        populate: Populate | None = None,
    ) -> list[Record]:
        """Return the records matching *filters*, ordered and sliced."""

    @abstractmethod
    async def count(self, filters: Mapping[str, Any] | None = None) -> int:
        """Return the number of records matching *filters*."""

    @abstractmethod
    async def find_one(self, article_id: int, populate: Populate | None = None) -> Record | None:
        """Return the record for *article_id*, or None when it does not exist."""

    @abstractmethod
    async def create(self, data: Mapping[str, Any], populate: Populate | None = None) -> Record:
        """Insert a record and return it (with an assigned ``id``)."""

    @abstractmethod
    async def update(
        self, article_id: int, data: Mapping[str, Any], populate: Populate | None = None
    ) -> Record | None:
        """Apply *data* to an existing record; None when it does not exist."""

    @abstractmethod
    async def delete(self, article_id: int) -> Record | None:
        """Delete a record and return it; None when nothing was deleted."""


# ---------------------------------------------------------------------------
# Field whitelists (API names in camelCase and snake_case)
# ---------------------------------------------------------------------------

_ARTICLE_FIELDS = {
    "id": Article.id,
    "title": Article.title,
    "slug": Article.slug,
    "content": Article.content,
    "readingTime": Article.reading_time,
    "reading_time": Article.reading_time,
    "views": Article.views,
    "isEdited": Article.is_edited,
    "is_edited": Article.is_edited,
    "createdAt": Article.created_at,
    "created_at": Article.created_at,
    "updatedAt": Article.updated_at,
    "updated_at": Article.updated_at,
}

# password_hash is deliberately absent: it must not be probeable via filters.
_AUTHOR_FIELDS = {
    "id": User.id,
    "username": User.username,
    "email": User.email,
}

_CATEGORY_FIELDS = {
    "id": Category.id,
    "name": Category.name,
    "slug": Category.slug,
}

_FILTER_RELATIONS = {
    "author": (Article.author, _AUTHOR_FIELDS),
    "category": (Article.category, _CATEGORY_FIELDS),
}

_POPULATE_RELATIONS = {
    "author": Article.author,
    "category": Article.category,
    "cover_image": Article.cover_image,
    "coverImage": Article.cover_image,
}

_WRITABLE_COLUMNS = frozenset(
    {"title", "slug", "content", "reading_time", "views", "is_edited"}
)

# Relation keys in write payloads carry ids.
_RELATION_COLUMNS = {
    "author": "author_id",
    "category": "category_id",
    "cover_image": "cover_image_id",
}


# ---------------------------------------------------------------------------
# Filter translation
# ---------------------------------------------------------------------------

def _as_list(value: Any) -> list:
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _python_type(attr) -> type:
    try:
        return attr.property.columns[0].type.python_type
    except NotImplementedError:
        return str


def _coerce(attr, value: Any) -> Any:
    """Convert a query-string operand to the Python type of *attr*."""
    if not isinstance(value, str):
        return value
    target = _python_type(attr)
    try:
        if target is bool:
            return _is_truthy(value)
        if target is int:
            return int(value)
        if target is float:
            return float(value)
        if target is datetime:
            return datetime.fromisoformat(value)
    except ValueError as exc:
        raise BadRequestError(f"Invalid value {value!r} for {attr.key}") from exc
    return value


def _text(attr):
    if _python_type(attr) is not str:
        raise BadRequestError(f"Text operators are not supported on {attr.key}")
    return attr


def _eq(attr, value):
    return attr.is_(None) if value is None else attr == _coerce(attr, value)


def _ne(attr, value):
    return attr.is_not(None) if value is None else attr != _coerce(attr, value)


_OPERATORS = {
    "$eq": _eq,
    "$ne": _ne,
    "$lt": lambda attr, v: attr < _coerce(attr, v),
    "$lte": lambda attr, v: attr <= _coerce(attr, v),
    "$gt": lambda attr, v: attr > _coerce(attr, v),
    "$gte": lambda attr, v: attr >= _coerce(attr, v),
    "$in": lambda attr, v: attr.in_([_coerce(attr, item) for item in _as_list(v)]),
    "$notIn": lambda attr, v: attr.not_in([_coerce(attr, item) for item in _as_list(v)]),
    "$contains": lambda attr, v: _text(attr).contains(str(v), autoescape=True),
    "$notContains": lambda attr, v: not_(_text(attr).contains(str(v), autoescape=True)),
    "$containsi": lambda attr, v: func.lower(_text(attr)).contains(str(v).lower(), autoescape=True),
    "$startsWith": lambda attr, v: _text(attr).startswith(str(v), autoescape=True),
    "$endsWith": lambda attr, v: _text(attr).endswith(str(v), autoescape=True),
    "$null": lambda attr, v: attr.is_(None) if _is_truthy(v) else attr.is_not(None),
    "$notNull": lambda attr, v: attr.is_not(None) if _is_truthy(v) else attr.is_(None),
}


def _all_of(conditions: list):
    return and_(*conditions) if conditions else true()


def _column_condition(attr, value: Any):
    if not isinstance(value, Mapping):
        if isinstance(value, (list, tuple)):
            return _OPERATORS["$in"](attr, value)
        return _eq(attr, value)

    conditions = []
    for operator, operand in value.items():
        build = _OPERATORS.get(operator)
        if build is None:
            raise BadRequestError(f"Invalid filter operator: {operator}")
        conditions.append(build(attr, operand))
    return _all_of(conditions)


def build_conditions(
    filters: Mapping[str, Any],
    fields: Mapping[str, Any] = _ARTICLE_FIELDS,
    relations: Mapping[str, tuple] | None = None,
) -> list:
    """
    Translate a Strapi-style filter mapping into a list of SQLAlchemy
    boolean expressions (implicitly AND-ed by the caller).

    Raises ``BadRequestError`` for unknown keys or operators.
    """
    if relations is None and fields is _ARTICLE_FIELDS:
        relations = _FILTER_RELATIONS
    if not isinstance(filters, Mapping):
        raise BadRequestError("Filters must be an object")

    conditions = []
    for key, value in filters.items():
        if key in ("$and", "$or"):
            groups = [
                _all_of(build_conditions(item, fields, relations))
                for item in _as_list(value)
            ]
            if groups:
                conditions.append(and_(*groups) if key == "$and" else or_(*groups))
        elif key == "$not":
            conditions.append(not_(_all_of(build_conditions(value, fields, relations))))
        elif relations and key in relations:
            relationship_attr, related_fields = relations[key]
            if not isinstance(value, Mapping):
                value = {"id": value}
            nested = build_conditions(value, related_fields, {})
            conditions.append(relationship_attr.has(_all_of(nested)))
        elif key in fields:
            conditions.append(_column_condition(fields[key], value))
        else:
            raise BadRequestError(f"Invalid key {key}")
    return conditions


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _select_fields(data: Record, fields: "bool | Sequence[str]") -> Record:
    if fields is True:
        return data
    return {name: data[name] for name in fields if name in data}


def _user_to_dict(user: User) -> Record:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "password_hash": user.password_hash,
        "blocked": user.blocked,
        "created_at": user.created_at,
        "role": {"id": user.role.id, "name": user.role.name} if user.role else None,
    }


def _category_to_dict(category: Category) -> Record:
    return {"id": category.id, "name": category.name, "slug": category.slug}


def _media_to_dict(media: Media) -> Record:
    return {
        "id": media.id,
        "name": media.name,
        "url": media.url,
        "alternative_text": media.alternative_text,
        "width": media.width,
        "height": media.height,
        "mime": media.mime,
    }


_RELATION_SERIALIZERS = {
    "author": ("author", _user_to_dict),
    "category": ("category", _category_to_dict),
    "cover_image": ("cover_image", _media_to_dict),
    "coverImage": ("cover_image", _media_to_dict),
}


def _article_to_dict(article: Article, populate: Populate | None = None) -> Record:
    """Serialise an Article ORM instance, including requested relations."""
    data: Record = {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "content": article.content,
        "reading_time": article.reading_time,
        "views": article.views,
        "is_edited": article.is_edited,
        "author_id": article.author_id,
        "category_id": article.category_id,
        "cover_image_id": article.cover_image_id,
        "created_at": article.created_at,
        "updated_at": article.updated_at,
    }
    for name, fields in (populate or {}).items():
        if not fields:
            continue
        key, serialize = _RELATION_SERIALIZERS[name]
        related = getattr(article, key)
        data[key] = _select_fields(serialize(related), fields) if related is not None else None
    return data


def _load_options(populate: Populate | None) -> list:
    options = []
    for name, fields in (populate or {}).items():
        relationship_attr = _POPULATE_RELATIONS.get(name)
        if relationship_attr is None:
            raise BadRequestError(f"Invalid populate key: {name}")
        if not fields:
            continue
        loader = selectinload(relationship_attr)
        if name == "author" and (fields is True or "role" in fields):
            loader = loader.selectinload(User.role)
        options.append(loader)
    return options


def _order_by(sort: SortSpec | None) -> list:
    clauses = []
    for field, direction in sort or ():
        attr = _ARTICLE_FIELDS.get(field)
        if attr is None:
            logger.debug("Ignoring unknown sort field %r", field)
            continue
        clauses.append(desc(attr) if direction == "desc" else asc(attr))
    # Stable ordering for offset pagination.
    clauses.append(asc(Article.id))
    return clauses


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

class SQLAlchemyArticleRepository(ArticleRepository):
    """Implements ``ArticleRepository`` on an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _execute(self, statement):
        try:
            return await self._session.execute(statement)
        except (SQLAlchemyError, OverflowError) as exc:
            raise StoreError(str(exc)) from exc

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise ConflictError() from exc
        except (SQLAlchemyError, OverflowError) as exc:
            raise StoreError(str(exc)) from exc

    async def _load(self, article_id: int, populate: Populate | None = None) -> Article | None:
        q = (
            select(Article)
            .where(Article.id == article_id)
            .options(*_load_options(populate))
            .execution_options(populate_existing=True)
        )
        result = await self._execute(q)
        return result.unique().scalar_one_or_none()

    def _assign(self, article: Article, data: Mapping[str, Any]) -> None:
        for key, value in data.items():
            if key in _RELATION_COLUMNS:
                setattr(article, _RELATION_COLUMNS[key], value)
            elif key in _WRITABLE_COLUMNS:
                setattr(article, key, value)
            else:
                raise StoreError(f"Unknown Article attribute: {key}")

    async def find_many(
        self,
        filters: Mapping[str, Any] | None = None,
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
        populate: Populate | None = None,
    ) -> list[Record]:
        q = (
            select(Article)
            .where(_all_of(build_conditions(filters or {})))
            .options(*_load_options(populate))
            .order_by(*_order_by(sort))
        )
        if offset > MAX_ROWS:
            return []
        q = q.offset(offset)
        if limit is not None:
            q = q.limit(min(limit, MAX_ROWS))
        result = await self._execute(q)
        return [_article_to_dict(a, populate) for a in result.unique().scalars().all()]

    async def count(self, filters: Mapping[str, Any] | None = None) -> int:
        q = (
            select(func.count())
            .select_from(Article)
            .where(_all_of(build_conditions(filters or {})))
        )
        return (await self._execute(q)).scalar_one()

    async def find_one(self, article_id: int, populate: Populate | None = None) -> Record | None:
        article = await self._load(article_id, populate)
        if article is None:
            return None
        return _article_to_dict(article, populate)

    async def create(self, data: Mapping[str, Any], populate: Populate | None = None) -> Record:
        article = Article()
        self._assign(article, data)
        self._session.add(article)
        await self._flush()
        return await self.find_one(article.id, populate)

    async def update(
        self, article_id: int, data: Mapping[str, Any], populate: Populate | None = None
    ) -> Record | None:
        article = await self._load(article_id)
        if article is None:
            return None
        self._assign(article, data)
        await self._flush()
        return await self.find_one(article_id, populate)

    async def delete(self, article_id: int) -> Record | None:
        article = await self._load(article_id)
        if article is None:
            return None
        record = _article_to_dict(article)
        await self._session.delete(article)
        await self._flush()
        return record

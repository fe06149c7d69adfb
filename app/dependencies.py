"""
Request-adapter dependencies: query-string parsing, principal resolution,
and per-request construction of the repository, service and policy.
"""
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import Principal, decode_access_token, load_principal
from app.config import settings
from app.database import get_db
from app.errors import BadRequestError, UnauthorizedError
from app.policies import ArticlePolicy
from app.repositories.article_repository import ArticleRepository, SQLAlchemyArticleRepository
from app.schemas import ArticleListQuery
from app.services.article_service import ArticleService

_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT_RE = re.compile(r"\[([^\[\]]*)\]")


# ---------------------------------------------------------------------------
# Query-string parsing
# ---------------------------------------------------------------------------

def _listify(value: Any) -> Any:
    """Turn maps keyed "0", "1", ... into lists, recursively."""
    if isinstance(value, dict):
        converted = {key: _listify(item) for key, item in value.items()}
        if converted and all(key.isdigit() for key in converted):
            return [converted[key] for key in sorted(converted, key=int)]
        return converted
    if isinstance(value, list):
        return [_listify(item) for item in value]
    return value


def _insert(target: dict, path: list[str], value: str) -> None:
    head, rest = path[0], path[1:]
    if not rest:
        if head == "":
            raise BadRequestError("Empty brackets are only allowed at the end of a key")
        existing = target.get(head)
        if existing is None:
            target[head] = value
        elif isinstance(existing, list):
            existing.append(value)
        elif isinstance(existing, dict):
            raise BadRequestError(f"Conflicting values for query parameter {head!r}")
        else:
            target[head] = [existing, value]
        return

    if rest == [""]:
        # key[]=value appends
        existing = target.setdefault(head, [])
        if not isinstance(existing, list):
            existing = target[head] = [existing]
        existing.append(value)
        return

    child = target.setdefault(head, {})
    if not isinstance(child, dict):
        raise BadRequestError(f"Conflicting values for query parameter {head!r}")
    _insert(child, rest, value)


def parse_nested_query(items: Iterable[tuple[str, str]]) -> dict:
    """
    Parse qs-style bracket keys into nested structures::

        filters[title][$eq]=Hi&sort[0]=views:desc&pagination[page]=2

    becomes ``{"filters": {"title": {"$eq": "Hi"}}, "sort": ["views:desc"],
    "pagination": {"page": "2"}}``.
    """
    params: dict = {}
    for key, value in items:
        match = _KEY_RE.match(key)
        if match is None:
            raise BadRequestError(f"Malformed query parameter {key!r}")
        path = [match.group(1)] + _SEGMENT_RE.findall(match.group(2))
        _insert(params, path, value)
    return _listify(params)


def _to_int(value: Any, default: int, name: str) -> int:
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"{name} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise BadRequestError(f"{name} must be a number")
    return int(number)


def _sort_list(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    order: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise BadRequestError("sort must be a list of 'field:direction' strings")
        order.extend(part.strip() for part in item.split(",") if part.strip())
    return order


def build_list_query(params: Mapping[str, Any]) -> ArticleListQuery:
    """
    Map parsed query parameters onto ``ArticleListQuery``.

    ``pagination[page]`` / ``pagination[pageSize]`` take precedence over
    the flat ``page`` / ``pageSize`` / ``page_size`` forms.  Values are
    only coerced to integers here; clamping to >= 1 is a service rule.
    """
    pagination = params.get("pagination") or {}
    if not isinstance(pagination, Mapping):
        raise BadRequestError("pagination must be an object")

    page = pagination.get("page", params.get("page"))
    page_size = pagination.get(
        "pageSize", params.get("pageSize", params.get("page_size"))
    )

    filters = params.get("filters") or {}
    if not isinstance(filters, Mapping):
        raise BadRequestError("filters must be an object")

    return ArticleListQuery(
        page=_to_int(page, 1, "page"),
        page_size=_to_int(page_size, settings.DEFAULT_PAGE_SIZE, "pageSize"),
        filters=dict(filters),
        sort=_sort_list(params.get("sort")),
    )


async def get_list_query(request: Request) -> ArticleListQuery:
    return build_list_query(parse_nested_query(request.query_params.multi_items()))


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def get_current_principal(
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Principal | None:
    """
    Resolve the optional ``Authorization: Bearer <token>`` header.

    Anonymous requests yield None; a header that is present but invalid
    is rejected with 401.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Invalid authorization header")

    principal = await load_principal(db, decode_access_token(token.strip()))
    if principal is None:
        raise UnauthorizedError("Invalid credentials")
    return principal


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

def get_article_repository(db: AsyncSession = Depends(get_db)) -> ArticleRepository:
    return SQLAlchemyArticleRepository(db)


def get_article_service(
    repository: ArticleRepository = Depends(get_article_repository),
) -> ArticleService:
    return ArticleService(repository, words_per_minute=settings.WORDS_PER_MINUTE)


def get_article_policy(
    repository: ArticleRepository = Depends(get_article_repository),
) -> ArticlePolicy:
    return ArticlePolicy(repository, editor_role=settings.EDITOR_ROLE_NAME)


async def require_owner_or_editor(
    article_id: int,
    principal: Principal | None = Depends(get_current_principal),
    policy: ArticlePolicy = Depends(get_article_policy),
) -> Principal:
    await policy.can_modify(principal, article_id)
    return principal


async def guard_article_delete(
    article_id: int,
    principal: Principal | None = Depends(get_current_principal),
    policy: ArticlePolicy = Depends(get_article_policy),
) -> None:
    if settings.DELETE_REQUIRES_POLICY:
        await policy.can_modify(principal, article_id)

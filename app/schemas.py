from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Characters allowed in a client-supplied slug (URL "unreserved" set).
SLUG_PATTERN = r"^[A-Za-z0-9\-_.~]*$"


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire; both accepted as input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Related entities ---

class AuthorSummary(CamelModel):
    id: int
    username: str
    email: str


class CategoryResponse(CamelModel):
    id: int
    name: str
    slug: str | None = None


class MediaResponse(CamelModel):
    id: int
    name: str
    url: str
    alternative_text: str | None = None
    width: int | None = None
    height: int | None = None
    mime: str | None = None


# --- Article input ---

class ArticleCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255, pattern=SLUG_PATTERN)
    content: str | None = None
    category: int | None = None
    cover_image: int | None = None


class ArticleUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255, pattern=SLUG_PATTERN)
    content: str | None = None
    category: int | None = None
    cover_image: int | None = None

    @field_validator("title")
    @classmethod
    def title_not_null(cls, value: str | None) -> str:
        # Only runs for explicitly supplied values; omitted titles stay unset.
        if value is None:
            raise ValueError("title may not be null")
        return value


class ArticleCreateRequest(BaseModel):
    data: ArticleCreate


class ArticleUpdateRequest(BaseModel):
    data: ArticleUpdate


# --- Article output ---

class ArticleResponse(CamelModel):
    id: int
    title: str
    slug: str
    content: str | None = None
    reading_time: int | None = None
    views: int = 0
    is_edited: bool = False
    author: AuthorSummary | None = None
    category: CategoryResponse | None = None
    cover_image: MediaResponse | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ArticleEnvelope(BaseModel):
    data: ArticleResponse


# --- Listing ---

class ArticleListQuery(BaseModel):
    """Validated listing input handed from the request adapter to the service."""

    page: int = 1
    page_size: int = 10
    filters: dict = {}
    sort: list[str] = []


class PaginationMeta(CamelModel):
    page: int
    page_size: int
    total: int
    page_count: int


class ListMeta(BaseModel):
    pagination: PaginationMeta


class ArticleListResponse(BaseModel):
    data: list[ArticleResponse]
    meta: ListMeta

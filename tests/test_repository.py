"""
SQLAlchemyArticleRepository tests: filter translation, populate, sorting
and store-error mapping against the in-memory database.
"""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import BadRequestError, ConflictError, StoreError
from app.repositories.article_repository import SQLAlchemyArticleRepository


async def _seed(db: AsyncSession, users, category=None) -> SQLAlchemyArticleRepository:
    repository = SQLAlchemyArticleRepository(db)
    rows = [
        ("Python tips", "python-tips", 10, users["alice"].id, category),
        ("FastAPI deep dive", "fastapi-deep-dive", 250, users["alice"].id, None),
        ("Rust for Pythonistas", "rust-for-pythonistas", 40, users["bob"].id, category),
    ]
    for title, slug, views, author_id, category_id in rows:
        await repository.create({
            "title": title,
            "slug": slug,
            "content": "body",
            "views": views,
            "is_edited": False,
            "author": author_id,
            "category": category_id,
        })
    return repository


@pytest.mark.asyncio
async def test_create_assigns_id_and_defaults(db_session: AsyncSession, users):
    repository = SQLAlchemyArticleRepository(db_session)
    record = await repository.create({"title": "Fresh", "slug": "fresh", "author": users["bob"].id})
    assert record["id"] is not None
    assert record["views"] == 0
    assert record["is_edited"] is False
    assert record["author_id"] == users["bob"].id
    assert "author" not in record


@pytest.mark.asyncio
async def test_equality_and_operator_filters(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    assert await repository.count({"slug": "python-tips"}) == 1
    assert await repository.count({"views": {"$gt": "20"}}) == 2
    assert await repository.count({"views": {"$gte": 10, "$lt": 250}}) == 2
    assert await repository.count({"title": {"$containsi": "PYTHON"}}) == 2
    assert await repository.count({"title": {"$startsWith": "Rust"}}) == 1
    assert await repository.count({"id": {"$in": ["1", "3"]}}) == 2
    assert await repository.count({"title": {"$notContains": "Python"}}) == 1


@pytest.mark.asyncio
async def test_logical_filters(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    either = {"$or": [{"slug": "python-tips"}, {"views": {"$gt": 100}}]}
    assert await repository.count(either) == 2
    assert await repository.count({"$not": {"views": {"$lt": 50}}}) == 1
    both = {"$and": [{"views": {"$gt": 5}}, {"title": {"$contains": "Rust"}}]}
    assert await repository.count(both) == 1


@pytest.mark.asyncio
async def test_relation_filters(db_session: AsyncSession, users, category):
    repository = await _seed(db_session, users, category.id)

    assert await repository.count({"author": {"username": "alice"}}) == 2
    assert await repository.count({"author": users["bob"].id}) == 1
    assert await repository.count({"category": {"slug": {"$eq": "engineering"}}}) == 2
    assert await repository.count({"category": {"id": {"$null": "true"}}}) == 0


@pytest.mark.asyncio
async def test_null_filter_on_column(db_session: AsyncSession):
    repository = SQLAlchemyArticleRepository(db_session)
    await repository.create({"title": "No body", "slug": "no-body"})
    await repository.create({"title": "Body", "slug": "body", "content": "text"})

    assert await repository.count({"content": {"$null": True}}) == 1
    assert await repository.count({"content": {"$notNull": "true"}}) == 1


@pytest.mark.asyncio
async def test_invalid_filter_key_is_rejected(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    with pytest.raises(BadRequestError):
        await repository.count({"nonexistent": "x"})
    with pytest.raises(BadRequestError):
        await repository.count({"title": {"$regex": ".*"}})
    with pytest.raises(BadRequestError):
        await repository.count({"author": {"password_hash": "x"}})
    with pytest.raises(BadRequestError):
        await repository.count({"views": {"$gt": "many"}})


@pytest.mark.asyncio
async def test_find_many_sort_limit_offset(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    page = await repository.find_many(sort=[("views", "desc")], limit=2, offset=1)
    assert [a["slug"] for a in page] == ["rust-for-pythonistas", "python-tips"]


@pytest.mark.asyncio
async def test_find_many_beyond_64_bit_range(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    assert await repository.find_many(limit=10, offset=10**20) == []
    assert len(await repository.find_many(limit=10**20, offset=0)) == 3


@pytest.mark.asyncio
async def test_text_operators_require_string_columns(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    with pytest.raises(BadRequestError):
        await repository.count({"views": {"$contains": "1"}})
    with pytest.raises(BadRequestError):
        await repository.count({"is_edited": {"$startsWith": "t"}})
    with pytest.raises(BadRequestError):
        await repository.count({"author": {"id": {"$endsWith": "1"}}})
    assert await repository.count({"author": {"username": {"$startsWith": "ali"}}}) == 2


@pytest.mark.asyncio
async def test_out_of_range_operand_is_store_error(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)
    with pytest.raises(StoreError):
        await repository.count({"views": {"$eq": str(10**20)}})


@pytest.mark.asyncio
async def test_find_many_ignores_unknown_sort_field(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    rows = await repository.find_many(sort=[("nonexistent", "desc")])
    assert [a["id"] for a in rows] == sorted(a["id"] for a in rows)


@pytest.mark.asyncio
async def test_populate_full_author_includes_private_fields(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    rows = await repository.find_many(filters={"slug": "python-tips"}, populate={"author": True})
    author = rows[0]["author"]
    assert author["password_hash"] == "pbkdf2$alice"
    assert author["role"]["name"] == "Authenticated"


@pytest.mark.asyncio
async def test_populate_selected_author_fields(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)

    record = await repository.find_one(1, populate={"author": ("id", "username")})
    assert record["author"] == {"id": users["alice"].id, "username": "alice"}


@pytest.mark.asyncio
async def test_populate_unknown_relation_is_rejected(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)
    with pytest.raises(BadRequestError):
        await repository.find_one(1, populate={"comments": True})


@pytest.mark.asyncio
async def test_update_and_delete_missing_record(db_session: AsyncSession):
    repository = SQLAlchemyArticleRepository(db_session)
    assert await repository.update(99999, {"views": 1}) is None
    assert await repository.delete(99999) is None


@pytest.mark.asyncio
async def test_update_sets_updated_at(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)
    updated = await repository.update(1, {"title": "Renamed"})
    assert updated["title"] == "Renamed"
    assert updated["updated_at"] is not None


@pytest.mark.asyncio
async def test_unknown_write_attribute_is_store_error(db_session: AsyncSession):
    repository = SQLAlchemyArticleRepository(db_session)
    with pytest.raises(StoreError):
        await repository.create({"title": "Bad", "slug": "bad", "summary": "nope"})


@pytest.mark.asyncio
async def test_duplicate_slug_raises_conflict(db_session: AsyncSession, users):
    repository = await _seed(db_session, users)
    with pytest.raises(ConflictError):
        await repository.create({"title": "Dup", "slug": "python-tips"})

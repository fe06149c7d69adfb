"""
Request-adapter tests: query-string parsing and bearer-token handling.
"""
import jwt
import pytest

from app.auth import decode_access_token
from app.config import settings
from app.dependencies import build_list_query, parse_nested_query
from app.errors import BadRequestError, UnauthorizedError


# ---------------------------------------------------------------------------
# parse_nested_query
# ---------------------------------------------------------------------------

def test_parse_bracket_keys():
    params = parse_nested_query([
        ("filters[title][$contains]", "python"),
        ("filters[author][username]", "alice"),
        ("pagination[page]", "2"),
        ("pagination[pageSize]", "5"),
    ])
    assert params == {
        "filters": {
            "title": {"$contains": "python"},
            "author": {"username": "alice"},
        },
        "pagination": {"page": "2", "pageSize": "5"},
    }


def test_parse_indexed_and_repeated_keys_become_lists():
    params = parse_nested_query([
        ("sort[0]", "views:desc"),
        ("sort[1]", "title"),
        ("filters[id][$in][0]", "1"),
        ("filters[id][$in][1]", "3"),
        ("tag", "a"),
        ("tag", "b"),
        ("ids[]", "7"),
        ("ids[]", "8"),
    ])
    assert params["sort"] == ["views:desc", "title"]
    assert params["filters"] == {"id": {"$in": ["1", "3"]}}
    assert params["tag"] == ["a", "b"]
    assert params["ids"] == ["7", "8"]


def test_parse_logical_groups():
    params = parse_nested_query([
        ("filters[$or][0][slug]", "a"),
        ("filters[$or][1][views][$gt]", "10"),
    ])
    assert params["filters"] == {"$or": [{"slug": "a"}, {"views": {"$gt": "10"}}]}


def test_parse_conflicting_keys_is_rejected():
    with pytest.raises(BadRequestError):
        parse_nested_query([("filters[title]", "x"), ("filters[title][$eq]", "y")])


def test_parse_malformed_key_is_rejected():
    with pytest.raises(BadRequestError):
        parse_nested_query([("filters[title", "x")])


# ---------------------------------------------------------------------------
# build_list_query
# ---------------------------------------------------------------------------

def test_build_list_query_defaults():
    query = build_list_query({})
    assert query.page == 1
    assert query.page_size == settings.DEFAULT_PAGE_SIZE
    assert query.filters == {}
    assert query.sort == []


def test_build_list_query_prefers_pagination_object():
    query = build_list_query({
        "pagination": {"page": "3", "pageSize": "25"},
        "page": "9",
        "pageSize": "99",
    })
    assert query.page == 3
    assert query.page_size == 25


def test_build_list_query_flat_forms_and_numeric_coercion():
    assert build_list_query({"page": "2.7", "page_size": "4"}).page == 2
    assert build_list_query({"page": "2", "page_size": "4"}).page_size == 4
    assert build_list_query({"pageSize": 6}).page_size == 6


def test_build_list_query_keeps_non_positive_values_for_the_service():
    query = build_list_query({"page": "-3", "pageSize": "0"})
    assert query.page == -3
    assert query.page_size == 0


@pytest.mark.parametrize("value", ["abc", "nan", "inf"])
def test_build_list_query_rejects_non_numeric(value):
    with pytest.raises(BadRequestError):
        build_list_query({"page": value})


def test_build_list_query_sort_forms():
    assert build_list_query({"sort": "title:desc,views"}).sort == ["title:desc", "views"]
    assert build_list_query({"sort": ["title:desc", "views:asc"]}).sort == [
        "title:desc",
        "views:asc",
    ]


def test_build_list_query_rejects_scalar_filters():
    with pytest.raises(BadRequestError):
        build_list_query({"filters": "title=x"})


# ---------------------------------------------------------------------------
# decode_access_token
# ---------------------------------------------------------------------------

def test_decode_access_token_returns_user_id():
    token = jwt.encode({"id": 42}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    assert decode_access_token(token) == 42


def test_decode_access_token_rejects_bad_signature():
    token = jwt.encode(
        {"id": 42}, "another-secret-0123456789abcdef0123", algorithm=settings.JWT_ALGORITHM
    )
    with pytest.raises(UnauthorizedError):
        decode_access_token(token)


def test_decode_access_token_rejects_missing_id_claim():
    token = jwt.encode({"sub": "42"}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(UnauthorizedError):
        decode_access_token(token)


def test_decode_access_token_rejects_expired_token():
    token = jwt.encode(
        {"id": 42, "exp": 1}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )
    with pytest.raises(UnauthorizedError):
        decode_access_token(token)

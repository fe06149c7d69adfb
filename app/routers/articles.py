from fastapi import APIRouter, Depends

from app.auth import Principal
from app.dependencies import (
    get_article_service,
    get_current_principal,
    get_list_query,
    guard_article_delete,
    require_owner_or_editor,
)
from app.errors import NotFoundError
from app.schemas import (
    ArticleCreateRequest,
    ArticleEnvelope,
    ArticleListQuery,
    ArticleListResponse,
    ArticleUpdateRequest,
)
from app.services.article_service import ArticleService

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])

@router.get("", response_model=ArticleListResponse)
async def list_articles(
    query: ArticleListQuery = Depends(get_list_query),
    service: ArticleService = Depends(get_article_service),
):
    return await service.list_articles(query)

@router.get("/{article_id}", response_model=ArticleEnvelope)
async def get_article(article_id: int, service: ArticleService = Depends(get_article_service)):
    return {"data": await service.get_article(article_id)}

@router.post("", status_code=201, response_model=ArticleEnvelope)
async def create_article(
    payload: ArticleCreateRequest,
    principal: Principal | None = Depends(get_current_principal),
    service: ArticleService = Depends(get_article_service),
):
    return {"data": await service.create_article(principal, payload.data)}

@router.put("/{article_id}", response_model=ArticleEnvelope)
async def update_article(
    article_id: int,
    payload: ArticleUpdateRequest,
    principal: Principal = Depends(require_owner_or_editor),
    service: ArticleService = Depends(get_article_service),
):
    return {"data": await service.update_article(principal, article_id, payload.data)}

@router.delete(
    "/{article_id}",
    response_model=ArticleEnvelope,
    dependencies=[Depends(guard_article_delete)],
)
async def delete_article(article_id: int, service: ArticleService = Depends(get_article_service)):
    deleted = await service.delete_article(article_id)
    if deleted is None:
        raise NotFoundError(f"Article {article_id} not found")
    return {"data": deleted}

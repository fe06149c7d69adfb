"""
Authorization policies for article mutations.
"""
import logging

from app.auth import Principal
from app.errors import ForbiddenError, NotFoundError, UnauthorizedError
from app.repositories.article_repository import ArticleRepository


class ArticlePolicy:
    """
    Decides whether a principal may modify an article.

    Editors may modify any article; everyone else only the articles they
    authored.
    """

    def __init__(
        self,
        repository: ArticleRepository,
        logger: logging.Logger | None = None,
        editor_role: str = "Editor",
    ) -> None:
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)
        self.editor_role = editor_role

    async def can_modify(self, principal: Principal | None, article_id: int) -> bool:
        """
        Return True when *principal* may modify *article_id*.

        Raises ``UnauthorizedError`` without a principal, ``NotFoundError``
        for a missing article and ``ForbiddenError`` otherwise.
        """
        if principal is None:
            raise UnauthorizedError("You must be authenticated")

        article = await self.repository.find_one(article_id, populate={"author": ("id",)})
        if article is None:
            raise NotFoundError("Article not found")

        if principal.role_name == self.editor_role:
            return True

        author = article.get("author")
        if author is not None and author.get("id") == principal.id:
            return True

        self.logger.info(
            "User %s denied modification of article %s", principal.id, article_id
        )
        raise ForbiddenError("You cannot modify this article")

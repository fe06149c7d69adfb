# Repositories package.
#
#   article_repository: ``ArticleRepository`` contract and its async
#                         SQLAlchemy implementation.

# Services package.
#
#   article_service: listing, retrieval, creation, update and deletion
#                      rules for Article, plus the slug / reading-time /
#                      redaction helpers they rely on.
#
# Services never touch the database session directly: they receive an
# ``ArticleRepository`` (see app/repositories) so that the router layer
# controls the transaction boundary via the ``get_db`` dependency.

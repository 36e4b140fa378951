# Services package.
#
# Each module exposes async functions holding the business rules and
# database access for one aggregate:
#
#   user_service      registration, login, token refresh, account admin
#   article_service   CRUD, publishing workflow, listing, related, stats
#   category_service  category tree CRUD
#   tag_service       tag CRUD, popularity, get-or-create by name
#   comment_service   threaded comments and moderation
#   media_service     uploads to object storage and their records
#
# All service functions accept an AsyncSession as their first argument and
# only flush; the router layer owns the transaction through ``get_db``.
# They return plain camelCase dicts ready for the response envelope.

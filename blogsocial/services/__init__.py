# Services package.
#
# Each module exposes a focused set of async functions for one concern:
#
#   follow_service      - toggle follow, follower/following counts and lists
#   interaction_service - toggle like / bookmark, per-article counts
#   profile_service     - profile counters recomputed from the join tables
#   relation_store      - toggle/count helpers shared by the two above
#   article_service     - article CRUD, search, cached list pages
#   comment_service     - threaded comments
#   tag_service         - tag vocabulary, popular tags, per-article tags
#   report_service      - article reports and the moderation queue
#   user_service        - registration and profile edits
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Mutations are wrapped in ``guards.hard_fail``,
# display-only reads in ``guards.soft_fail``.

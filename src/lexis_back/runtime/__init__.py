"""
Runtime for view resolution.

- ``fetch_plan``: compile a view against fetch specs into a fetch plan
- ``path_resolver``: walk populated relations of fetched records
- ``view_executor``: run a plan against a repository and annotators
- ``repository`` / ``relation_loader`` / ``query_builder``: SQLite persistence
"""

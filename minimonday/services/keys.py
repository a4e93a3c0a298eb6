"""
Cache key builders.

Keys are colon-separated: resource first, then scope and filters, with
"all" standing in for any filter the query does not set. Every distinct
query shape maps to a distinct key, and all keys of one resource scope
share a prefix that LRUCache.invalidate can target after a write.
"""

ALL = "all"


def build_key(resource: str, *parts: str | None) -> str:
    """Join resource and parts with ':', replacing empty parts by 'all'."""
    return ":".join([resource, *(part or ALL for part in parts)])


def tasks_key(
    scope: str | None = None,
    assignee_id: str | None = None,
    status: str | None = None,
) -> str:
    """Key for a task listing; scope is a project id or workspace id."""
    return build_key("tasks", scope, assignee_id, status)


def tasks_prefix(scope: str) -> str:
    """Prefix covering every task listing of one project or workspace."""
    return f"tasks:{scope}:"


def projects_key(workspace_id: str | None = None) -> str:
    return build_key("projects", workspace_id)


def users_key() -> str:
    return build_key("users")


def finance_key(kind: str, workspace_id: str, month: str | None = None) -> str:
    """Key for finance data, e.g. finance:salaries:<ws>:all or finance:metrics:<ws>:2025-01."""
    return build_key("finance", kind, workspace_id, month)


def daily_logs_key(workspace_id: str, user_id: str | None = None) -> str:
    return build_key("dailylog", workspace_id, user_id)

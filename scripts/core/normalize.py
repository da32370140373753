"""Map raw REST / GraphQL issue payloads onto one :class:`Issue` shape."""

from core.models import Author, Issue, Label

BODY_PREVIEW_LEN = 300

_REPOS_API_PREFIX = "https://api.github.com/repos/"


def _preview(text) -> str:
    return (text or "")[:BODY_PREVIEW_LEN]


def _repo_from_api_url(url: str) -> str:
    """``https://api.github.com/repos/o/r`` -> ``o/r``."""
    if not url:
        return ""
    if url.startswith(_REPOS_API_PREFIX):
        return url[len(_REPOS_API_PREFIX):]
    # GitHub Enterprise: .../api/v3/repos/o/r
    marker = "/repos/"
    idx = url.rfind(marker)
    return url[idx + len(marker):] if idx >= 0 else url


def normalize_rest_issue(item: dict) -> Issue:
    """Normalize one item of ``GET /search/issues``."""
    user = item.get("user") or {}
    assignees = item.get("assignees") or []
    first_assignee = assignees[0] if assignees else item.get("assignee")
    reactions = item.get("reactions") or {}

    return Issue(
        id=item.get("id"),
        number=item.get("number"),
        title=item.get("title", ""),
        url=item.get("html_url", ""),
        repo_full_name=_repo_from_api_url(item.get("repository_url", "")),
        labels=tuple(
            Label(name=l.get("name", ""), color=l.get("color", "") or "")
            for l in item.get("labels") or [] if l
        ),
        user=Author(
            login=user.get("login") or "ghost",
            avatar=user.get("avatar_url") or "",
            url=user.get("html_url") or "",
        ),
        comments=item.get("comments") or 0,
        reactions=reactions.get("total_count") or 0,
        created_at=item.get("created_at", ""),
        updated_at=item.get("updated_at", ""),
        body=_preview(item.get("body")),
        state=(item.get("state") or "open").lower(),
        assignee=(first_assignee or {}).get("login"),
    )


def normalize_graphql_issue(node: dict) -> Issue:
    """Normalize one ``... on Issue`` node of a GraphQL ``search``."""
    author = node.get("author") or {}
    repository = node.get("repository") or {}
    label_nodes = (node.get("labels") or {}).get("nodes") or []
    assignee_nodes = (node.get("assignees") or {}).get("nodes") or []
    first_assignee = assignee_nodes[0] if assignee_nodes else None

    return Issue(
        id=node.get("databaseId"),
        number=node.get("number"),
        title=node.get("title", ""),
        url=node.get("url", ""),
        repo_full_name=repository.get("nameWithOwner", ""),
        labels=tuple(
            Label(name=l.get("name", ""), color=l.get("color", "") or "")
            for l in label_nodes if l
        ),
        user=Author(
            login=author.get("login") or "ghost",
            avatar=author.get("avatarUrl") or "",
            url=author.get("url") or "",
        ),
        comments=(node.get("comments") or {}).get("totalCount") or 0,
        reactions=(node.get("reactions") or {}).get("totalCount") or 0,
        created_at=node.get("createdAt", ""),
        updated_at=node.get("updatedAt", ""),
        body=_preview(node.get("bodyText")),
        state=(node.get("state") or "open").lower(),
        assignee=(first_assignee or {}).get("login"),
    )

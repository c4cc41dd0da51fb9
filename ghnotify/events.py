"""Canonical GitHub events and the normalizer that builds them.

A delivery is identified by its ``X-GitHub-Event`` header and a JSON body.
``normalize`` turns the pair into an immutable ``Event`` carrying only the
fields routing and formatting need. Event types we have no template for are
still accepted as ``EventKind.OTHER``.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ghnotify.errors import ParseError

BRANCH_REF_PREFIX = "refs/heads/"


class EventKind(str, Enum):
    """GitHub webhook event types with a dedicated template."""

    PING = "ping"
    PUSH = "push"
    RELEASE = "release"
    ISSUES = "issues"
    ISSUE_COMMENT = "issue_comment"
    PULL_REQUEST = "pull_request"
    CREATE = "create"
    DELETE = "delete"
    FORK = "fork"
    WATCH = "watch"
    OTHER = "other"

    @classmethod
    def from_header(cls, header: str) -> "EventKind":
        try:
            kind = cls(header)
        except ValueError:
            return cls.OTHER
        return kind


@dataclass(frozen=True)
class Commit:
    """A single commit listed in a push event."""

    sha: str
    message: str
    author: Optional[str] = None
    url: Optional[str] = None

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def title(self) -> str:
        """First line of the commit message."""
        return self.message.splitlines()[0] if self.message else ""


@dataclass(frozen=True)
class Event:
    """Normalized webhook delivery."""

    kind: EventKind
    """Event type, ``OTHER`` when no dedicated template exists."""

    name: str
    """Raw ``X-GitHub-Event`` header value."""

    repository: str
    """Repository full name, ``owner/repo``."""

    actor: Optional[str] = None
    action: Optional[str] = None

    branch: Optional[str] = None
    """Branch the event is scoped to; only set for ref-carrying events."""

    ref: Optional[str] = None
    ref_type: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None
    number: Optional[int] = None

    # push
    commits: Tuple[Commit, ...] = ()
    commit_count: int = 0
    forced: bool = False
    created: bool = False
    deleted: bool = False

    # ping
    zen: Optional[str] = None

    @property
    def is_branch_lifecycle(self) -> bool:
        """True for pushes that only create or delete a ref."""
        return self.kind is EventKind.PUSH and (self.created or self.deleted)


# -----------------------------------
# Payload helpers
# -----------------------------------


def _obj(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, str):
        return value
    return None


def _int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _is_zero_sha(sha: Optional[str]) -> bool:
    return bool(sha) and not sha.strip("0")


def branch_from_ref(ref: Optional[str]) -> Optional[str]:
    """Strip ``refs/heads/`` from a ref, returning None for non-branch refs.

    Examples:
        >>> branch_from_ref("refs/heads/main")
        'main'
        >>> branch_from_ref("refs/tags/v1.0") is None
        True
    """
    if ref and ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):] or None
    return None


def _decode(raw_body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Body is not valid JSON: {e}") from e
    except RecursionError as e:
        raise ParseError("Body is nested too deeply") from e
    if not isinstance(payload, dict):
        raise ParseError("Body must be a JSON object")
    return payload


def _repository_name(payload: Dict[str, Any], required: bool = True) -> str:
    full_name = _str(_obj(payload, "repository"), "full_name")
    if not full_name:
        if required:
            raise ParseError("Missing repository.full_name")
        return ""
    return full_name


# -----------------------------------
# Per-kind field extraction
# -----------------------------------


def _push_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    ref = _str(payload, "ref")
    if not ref:
        raise ParseError("Push event is missing ref")

    raw_commits = payload.get("commits")
    if raw_commits is None:
        raw_commits = []
    if not isinstance(raw_commits, list):
        raise ParseError("Push event commits must be a list")

    commits = []
    for item in raw_commits:
        if not isinstance(item, dict):
            raise ParseError("Push event commit must be an object")
        commits.append(
            Commit(
                sha=_str(item, "id") or "",
                message=_str(item, "message") or "",
                author=_str(_obj(item, "author"), "name"),
                url=_str(item, "url"),
            )
        )

    pusher = _str(_obj(payload, "pusher"), "name")
    return {
        "ref": ref,
        "branch": branch_from_ref(ref),
        "actor": _str(_obj(payload, "sender"), "login") or pusher,
        "url": _str(payload, "compare"),
        "commits": tuple(commits),
        "commit_count": len(commits),
        "forced": payload.get("forced") is True,
        "created": payload.get("created") is True or _is_zero_sha(_str(payload, "before")),
        "deleted": payload.get("deleted") is True or _is_zero_sha(_str(payload, "after")),
    }


def _release_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    release = _obj(payload, "release")
    tag = _str(release, "tag_name")
    return {
        "ref": tag,
        "title": _str(release, "name") or tag,
        "url": _str(release, "html_url"),
    }


def _issue_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    issue = _obj(payload, "issue")
    return {
        "number": _int(issue, "number"),
        "title": _str(issue, "title"),
        "url": _str(issue, "html_url"),
    }


def _issue_comment_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = _issue_fields(payload)
    comment_url = _str(_obj(payload, "comment"), "html_url")
    if comment_url:
        fields["url"] = comment_url
    return fields


def _pull_request_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    pr = _obj(payload, "pull_request")
    base_ref = _str(_obj(pr, "base"), "ref")
    fields: Dict[str, Any] = {
        "number": _int(pr, "number") or _int(payload, "number"),
        "title": _str(pr, "title"),
        "url": _str(pr, "html_url"),
        "ref": base_ref,
        "branch": base_ref,
    }
    if payload.get("action") == "closed" and pr.get("merged") is True:
        fields["action"] = "merged"
    return fields


def _ref_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    ref = _str(payload, "ref")
    ref_type = _str(payload, "ref_type")
    return {
        "ref": ref,
        "ref_type": ref_type,
        "branch": ref if ref_type == "branch" else None,
    }


def _fork_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    forkee = _obj(payload, "forkee")
    return {
        "title": _str(forkee, "full_name"),
        "url": _str(forkee, "html_url"),
    }


def _ping_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"zen": _str(payload, "zen")}


_EXTRACTORS = {
    EventKind.PUSH: _push_fields,
    EventKind.RELEASE: _release_fields,
    EventKind.ISSUES: _issue_fields,
    EventKind.ISSUE_COMMENT: _issue_comment_fields,
    EventKind.PULL_REQUEST: _pull_request_fields,
    EventKind.CREATE: _ref_fields,
    EventKind.DELETE: _ref_fields,
    EventKind.FORK: _fork_fields,
    EventKind.PING: _ping_fields,
}


def normalize(event_type: str, raw_body: bytes) -> Event:
    """Build a canonical ``Event`` from a webhook delivery.

    Args:
        event_type: Value of the ``X-GitHub-Event`` header.
        raw_body: The request body.

    Returns:
        The normalized event. Unknown event types yield ``EventKind.OTHER``.

    Raises:
        ParseError: If the body is not a JSON object, lacks
            ``repository.full_name``, or has the wrong shape for its kind.
    """
    payload = _decode(raw_body)
    kind = EventKind.from_header(event_type)

    # Organisation-level hooks send a ping without a repository.
    repository = _repository_name(payload, required=kind is not EventKind.PING)

    fields: Dict[str, Any] = {
        "actor": _str(_obj(payload, "sender"), "login"),
        "action": _str(payload, "action"),
    }
    extractor = _EXTRACTORS.get(kind)
    if extractor is not None:
        fields.update({k: v for k, v in extractor(payload).items() if v is not None})

    return Event(kind=kind, name=event_type, repository=repository, **fields)

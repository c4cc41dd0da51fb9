"""Render canonical events as Telegram HTML messages.

Telegram rejects a message whose markup is broken, so length limits are
applied to each escaped value before it is wrapped in tags, and a push that
is still too long loses whole commit lines. The rendered HTML itself is
never cut.
"""

from html import escape
from typing import Any, Callable, Dict, List, Optional

from ghnotify.events import Event, EventKind

MAX_COMMITS = 5
MAX_MESSAGE_LENGTH = 4096
UNKNOWN_ACTOR = "someone"

# Limits on escaped values
MAX_NAME_LENGTH = 100
MAX_TITLE_LENGTH = 256
MAX_COMMIT_TITLE_LENGTH = 120
MAX_URL_LENGTH = 512
ELLIPSIS = "…"


def _esc(value: Any, limit: Optional[int] = None) -> str:
    """Escape ``value`` and clip the result to ``limit`` characters.

    Clipping never splits an entity such as ``&amp;``.
    """
    text = escape(str(value if value is not None else ""), quote=True)
    if limit is None or len(text) <= limit:
        return text
    cut = text[: limit - len(ELLIPSIS)]
    amp = cut.rfind("&")
    if amp != -1 and ";" not in cut[amp:]:
        cut = cut[:amp]
    return cut + ELLIPSIS


def _link(url: Optional[str], text: str, limit: int = MAX_TITLE_LENGTH) -> str:
    """Return an anchor, or just the escaped text when there is no usable URL."""
    href = _esc(url)
    if not href or len(href) > MAX_URL_LENGTH:
        return _esc(text, limit)
    return f'<a href="{href}">{_esc(text, limit)}</a>'


def _name(value: Any) -> str:
    return _esc(value, MAX_NAME_LENGTH)


def _actor(event: Event) -> str:
    return _name(event.actor or UNKNOWN_ACTOR)


def _repo(event: Event) -> str:
    return f"<b>{_name(event.repository)}</b>"


def _numbered(event: Event) -> str:
    label = event.title or ""
    if event.number is not None:
        label = f"#{event.number} {label}".strip()
    return _link(event.url, label)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _render_push(event: Event, shown: int) -> str:
    target = event.branch or event.ref or ""
    header = (
        f"🔨 {_actor(event)} pushed {_plural(event.commit_count, 'commit')} "
        f"to {_repo(event)}:<code>{_name(target)}</code>"
    )
    if event.forced:
        header += " (forced)"

    lines: List[str] = [header]
    for commit in event.commits[:shown]:
        line = (
            f"{_link(commit.url, commit.short_sha, MAX_NAME_LENGTH)}: "
            f"{_esc(commit.title, MAX_COMMIT_TITLE_LENGTH)}"
        )
        if commit.author:
            line += f" ({_name(commit.author)})"
        lines.append(line)
    hidden = event.commit_count - shown
    if hidden > 0:
        lines.append(f"... and {_plural(hidden, 'more commit')}")
    if event.url:
        lines.append(_link(event.url, "Compare changes"))
    return "\n".join(lines)


def _format_push(event: Event) -> str:
    if event.created or event.deleted:
        verb = "deleted" if event.deleted else "created"
        target = event.branch or event.ref or ""
        return f"🌿 {_actor(event)} {verb} <code>{_name(target)}</code> in {_repo(event)}"

    shown = min(len(event.commits), MAX_COMMITS)
    text = _render_push(event, shown)
    while len(text) > MAX_MESSAGE_LENGTH and shown > 0:
        shown -= 1
        text = _render_push(event, shown)
    return text


def _format_release(event: Event) -> str:
    title = event.title or event.ref or ""
    return (
        f"🚀 {_actor(event)} {_name(event.action or 'published')} release "
        f"{_link(event.url, title)} in {_repo(event)}"
    )


def _format_issue(event: Event) -> str:
    return (
        f"📌 {_actor(event)} {_name(event.action or 'updated')} issue "
        f"{_numbered(event)} in {_repo(event)}"
    )


def _format_issue_comment(event: Event) -> str:
    return (
        f"💬 {_actor(event)} {_name(event.action or 'created')} a comment on "
        f"{_numbered(event)} in {_repo(event)}"
    )


def _format_pull_request(event: Event) -> str:
    text = (
        f"🔀 {_actor(event)} {_name(event.action or 'updated')} pull request "
        f"{_numbered(event)} in {_repo(event)}"
    )
    if event.branch:
        text += f" (base <code>{_name(event.branch)}</code>)"
    return text


def _format_ref(event: Event) -> str:
    verb = "created" if event.kind is EventKind.CREATE else "deleted"
    ref_type = event.ref_type or "ref"
    return (
        f"🌿 {_actor(event)} {verb} {_name(ref_type)} "
        f"<code>{_name(event.ref or '')}</code> in {_repo(event)}"
    )


def _format_fork(event: Event) -> str:
    return f"🍴 {_actor(event)} forked {_repo(event)} to {_link(event.url, event.title or '')}"


def _format_watch(event: Event) -> str:
    return f"⭐ {_actor(event)} starred {_repo(event)}"


def _format_ping(event: Event) -> str:
    text = f"🏓 Webhook ping from {_repo(event)}"
    if event.zen:
        text += f"\n<i>{_esc(event.zen, MAX_TITLE_LENGTH)}</i>"
    return text


def _format_other(event: Event) -> str:
    text = f"📣 {_actor(event)} triggered <code>{_name(event.name)}</code>"
    if event.action:
        text += f" ({_name(event.action)})"
    return f"{text} on {_repo(event)}"


_TEMPLATES: Dict[EventKind, Callable[[Event], str]] = {
    EventKind.PUSH: _format_push,
    EventKind.RELEASE: _format_release,
    EventKind.ISSUES: _format_issue,
    EventKind.ISSUE_COMMENT: _format_issue_comment,
    EventKind.PULL_REQUEST: _format_pull_request,
    EventKind.CREATE: _format_ref,
    EventKind.DELETE: _format_ref,
    EventKind.FORK: _format_fork,
    EventKind.WATCH: _format_watch,
    EventKind.PING: _format_ping,
}


def format_event(event: Event) -> str:
    """Render an event as Telegram HTML.

    Every payload value is HTML-escaped, and the result never exceeds
    Telegram's message length limit.

    Args:
        event: The normalized event.

    Returns:
        The message text.
    """
    template = _TEMPLATES.get(event.kind, _format_other)
    return template(event)

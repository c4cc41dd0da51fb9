"""Builders and fakes shared by the relay tests."""

import json
from typing import Any, Dict, FrozenSet, Iterable, Optional

from ghnotify.config import Config, RepositoryRoute, ServerAuth, TelegramTarget


def make_config(
    default_chats: Iterable[int] = (100,),
    routes: Iterable[RepositoryRoute] = (),
    secret: Optional[bytes] = None,
    token: Optional[str] = None,
    bot_token: str = "123456:TEST",
) -> Config:
    """Build a Config without going through the TOML loader."""
    return Config(
        bind="127.0.0.1",
        port=11451,
        auth=ServerAuth(signing_secret=secret, url_token=token),
        telegram=TelegramTarget(bot_token=bot_token, default_chats=frozenset(default_chats)),
        repositories={r.full_name: r for r in routes},
    )


def make_route(
    full_name: str,
    chats: Optional[Iterable[int]] = None,
    branch_ignore: Iterable[str] = (),
) -> RepositoryRoute:
    return RepositoryRoute(
        full_name=full_name,
        chats=None if chats is None else frozenset(chats),
        branch_ignore=frozenset(branch_ignore),
    )


def push_payload(
    repo: str = "acme/app",
    ref: str = "refs/heads/main",
    commits: int = 1,
    **overrides: Any,
) -> Dict[str, Any]:
    """A trimmed-down push payload as GitHub sends it."""
    payload: Dict[str, Any] = {
        "ref": ref,
        "before": "a" * 40,
        "after": "b" * 40,
        "created": False,
        "deleted": False,
        "forced": False,
        "compare": f"https://github.com/{repo}/compare/aaaaaaa...bbbbbbb",
        "repository": {"full_name": repo, "html_url": f"https://github.com/{repo}"},
        "pusher": {"name": "octocat", "email": "octocat@example.com"},
        "sender": {"login": "octocat"},
        "commits": [
            {
                "id": f"{i:07d}" + "c" * 33,
                "message": f"Commit number {i}\n\nLonger description",
                "url": f"https://github.com/{repo}/commit/{i}",
                "author": {"name": "Octo Cat"},
            }
            for i in range(commits)
        ],
    }
    payload.update(overrides)
    return payload


def as_body(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")


class FakeClient:
    """Provider client that replays scripted results per chat.

    Each chat maps to a list of results consumed in order; an exception
    instance is raised, anything else is returned.
    """

    def __init__(self, script: Optional[Dict[int, list]] = None):
        self.script = script or {}
        self.calls: list = []

    async def send_message(self, chat_id: int, text: str):
        self.calls.append((chat_id, text))
        results = self.script.get(chat_id)
        if not results:
            return {"message_id": len(self.calls)}
        result = results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    def chats_called(self) -> FrozenSet[int]:
        return frozenset(chat for chat, _ in self.calls)

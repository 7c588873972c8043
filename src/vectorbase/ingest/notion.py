"""Notion content fetcher — page/database block trees rendered to Markdown.

Block traversal is depth-first in document order: a block with children is
emitted, then its children, then its next sibling. Recursion is capped at
``MAX_BLOCK_DEPTH`` since the tree shape comes from an external service.

Also hosts the OAuth helpers (authorize URL, code exchange) and workspace
discovery (search) used to attach pages to a Notion source.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from notion_client import Client
from notion_client.helpers import iterate_paginated_api

logger = logging.getLogger(__name__)

NOTION_VERSION = "2022-06-28"
MAX_BLOCK_DEPTH = 12
_PAGE_SIZE = 100
_AUTHORIZE_URL = "https://api.notion.com/v1/oauth/authorize"
_TOKEN_URL = "https://api.notion.com/v1/oauth/token"
_OAUTH_TIMEOUT = 30  # seconds

CLIENT_ID_ENV = "NOTION_CLIENT_ID"
CLIENT_SECRET_ENV = "NOTION_CLIENT_SECRET"

ClientFactory = Callable[[str], Any]


def create_client(access_token: str) -> Client:
    return Client(auth=access_token, notion_version=NOTION_VERSION)


class NotionOAuthError(RuntimeError):
    """Raised when the OAuth code exchange fails."""


@dataclass
class NotionContent:
    title: str
    content: str
    last_edited_time: str | None = None


@dataclass
class NotionPageInfo:
    id: str
    title: str
    type: str  # page | database
    last_edited_time: str | None = None
    url: str | None = None
    icon: str | None = None


@dataclass
class NotionToken:
    access_token: str
    workspace_id: str | None
    workspace_name: str
    bot_id: str | None = None


# ------------------------------------------------------------------
# Markdown rendering
# ------------------------------------------------------------------


def rich_text_to_markdown(rich_text: list[dict]) -> str:
    """Render Notion rich-text spans with inline Markdown markup."""
    parts: list[str] = []
    for span in rich_text or []:
        content = span.get("plain_text", "")
        annotations = span.get("annotations") or {}
        if annotations.get("bold"):
            content = f"**{content}**"
        if annotations.get("italic"):
            content = f"*{content}*"
        if annotations.get("strikethrough"):
            content = f"~~{content}~~"
        if annotations.get("code"):
            content = f"`{content}`"
        link = (span.get("text") or {}).get("link") if span.get("type") == "text" else None
        if link and link.get("url"):
            content = f"[{content}]({link['url']})"
        parts.append(content)
    return "".join(parts)


def block_to_markdown(block: dict) -> str:
    """Render one block; unsupported types render as an empty string."""
    btype = block.get("type")
    data = block.get(btype) or {}

    def text() -> str:
        return rich_text_to_markdown(data.get("rich_text", []))

    if btype == "paragraph":
        return text() + "\n"
    if btype == "heading_1":
        return f"# {text()}\n"
    if btype == "heading_2":
        return f"## {text()}\n"
    if btype == "heading_3":
        return f"### {text()}\n"
    if btype == "bulleted_list_item":
        return f"- {text()}"
    if btype == "numbered_list_item":
        return f"1. {text()}"
    if btype == "to_do":
        checked = "[x]" if data.get("checked") else "[ ]"
        return f"- {checked} {text()}"
    if btype == "toggle":
        return f"> {text()}"
    if btype == "quote":
        return f"> {text()}\n"
    if btype == "callout":
        icon = data.get("icon") or {}
        prefix = f"{icon['emoji']} " if icon.get("type") == "emoji" and icon.get("emoji") else ""
        return f"> {prefix}{text()}\n"
    if btype == "code":
        return f"```{data.get('language') or ''}\n{text()}\n```\n"
    if btype == "divider":
        return "---\n"
    if btype == "bookmark":
        return f"[Bookmark]({data['url']})\n" if data.get("url") else ""
    if btype == "link_preview":
        return f"[Link]({data['url']})\n" if data.get("url") else ""
    if btype == "image":
        source = data.get(data.get("type") or "") or {}
        return f"![Image]({source['url']})\n" if source.get("url") else ""
    return ""


def blocks_to_markdown(blocks: list[dict]) -> str:
    return "\n".join(md for md in (block_to_markdown(b) for b in blocks) if md)


def page_title(page: dict) -> str:
    for prop in (page.get("properties") or {}).values():
        if prop.get("type") == "title" and prop.get("title"):
            return "".join(t.get("plain_text", "") for t in prop["title"])
    return "Untitled"


def database_title(database: dict) -> str:
    title = database.get("title") or []
    if title:
        return "".join(t.get("plain_text", "") for t in title)
    return "Untitled Database"


def _emoji_icon(obj: dict) -> str | None:
    icon = obj.get("icon") or {}
    return icon.get("emoji") if icon.get("type") == "emoji" else None


# ------------------------------------------------------------------
# Fetcher
# ------------------------------------------------------------------


class NotionFetcher:
    """Fetch Notion pages and databases as Markdown-ish text.

    Args:
        client_factory: Builds an API client from an access token; defaults
            to ``notion_client.Client`` pinned to NOTION_VERSION.
        max_depth: Maximum block nesting depth that is traversed.
    """

    def __init__(
        self, client_factory: ClientFactory = create_client, max_depth: int = MAX_BLOCK_DEPTH
    ) -> None:
        self._client_factory = client_factory
        self.max_depth = max_depth

    def fetch(self, access_token: str, page_id: str, page_type: str = "page") -> NotionContent:
        if page_type == "database":
            return self.fetch_database(access_token, page_id)
        return self.fetch_page(access_token, page_id)

    def fetch_page(self, access_token: str, page_id: str) -> NotionContent:
        client = self._client_factory(access_token)
        page = client.pages.retrieve(page_id=page_id)
        blocks = self._all_blocks(client, page_id)
        return NotionContent(
            title=page_title(page),
            content=blocks_to_markdown(blocks),
            last_edited_time=page.get("last_edited_time"),
        )

    def fetch_database(self, access_token: str, database_id: str) -> NotionContent:
        """Render a database as ``# title`` plus one ``## page`` section per row page."""
        client = self._client_factory(access_token)
        database = client.databases.retrieve(database_id=database_id)
        title = database_title(database)

        parts = [f"# {title}\n\n"]
        for row in iterate_paginated_api(
            client.databases.query, database_id=database_id, page_size=_PAGE_SIZE
        ):
            if row.get("object") != "page":
                continue
            parts.append(f"## {page_title(row)}\n\n")
            parts.append(blocks_to_markdown(self._all_blocks(client, row["id"])))
            parts.append("\n\n---\n\n")

        return NotionContent(
            title=title,
            content="".join(parts),
            last_edited_time=database.get("last_edited_time"),
        )

    def _all_blocks(self, client: Any, block_id: str, depth: int = 0) -> list[dict]:
        blocks: list[dict] = []
        for block in iterate_paginated_api(
            client.blocks.children.list, block_id=block_id, page_size=_PAGE_SIZE
        ):
            if "type" not in block:
                continue
            blocks.append(block)
            if block.get("has_children"):
                if depth + 1 >= self.max_depth:
                    logger.debug(
                        "Block %s exceeds max depth %d; children skipped",
                        block["id"],
                        self.max_depth,
                    )
                    continue
                blocks.extend(self._all_blocks(client, block["id"], depth + 1))
        return blocks

    def list_accessible_pages(self, access_token: str) -> list[NotionPageInfo]:
        """Return the pages and databases the integration can see (first 100 results)."""
        client = self._client_factory(access_token)
        response = client.search(page_size=_PAGE_SIZE)
        pages: list[NotionPageInfo] = []
        for result in response.get("results", []):
            kind = result.get("object")
            if kind == "page":
                title = page_title(result)
            elif kind == "database":
                title = database_title(result)
            else:
                continue
            pages.append(
                NotionPageInfo(
                    id=result["id"],
                    title=title,
                    type=kind,
                    last_edited_time=result.get("last_edited_time"),
                    url=result.get("url"),
                    icon=_emoji_icon(result),
                )
            )
        return pages


# ------------------------------------------------------------------
# OAuth
# ------------------------------------------------------------------


def notion_auth_url(state: str, redirect_uri: str, client_id: str | None = None) -> str:
    """Build the Notion OAuth authorize URL for *state*."""
    params = {
        "client_id": client_id or os.environ.get(CLIENT_ID_ENV, ""),
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "owner": "user",
        "state": state,
    }
    return f"{_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"


def exchange_code(
    code: str,
    redirect_uri: str,
    client_id: str | None = None,
    client_secret: str | None = None,
) -> NotionToken:
    """Exchange an OAuth authorization *code* for a workspace access token.

    Raises:
        NotionOAuthError: if credentials are missing or Notion rejects the code.
    """
    client_id = client_id or os.environ.get(CLIENT_ID_ENV)
    client_secret = client_secret or os.environ.get(CLIENT_SECRET_ENV)
    if not client_id or not client_secret:
        raise NotionOAuthError(
            f"Notion OAuth credentials missing. Set {CLIENT_ID_ENV} and {CLIENT_SECRET_ENV}."
        )

    credentials = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    body = json.dumps(
        {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
    ).encode()
    request = urllib.request.Request(
        _TOKEN_URL,
        data=body,
        method="POST",
        headers={
            "Authorization": f"Basic {credentials}",
            "Content-Type": "application/json",
            "Notion-Version": NOTION_VERSION,
        },
    )
    try:
        with urllib.request.urlopen(request, timeout=_OAUTH_TIMEOUT) as response:
            data = json.loads(response.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise NotionOAuthError(f"Notion OAuth error: {detail}") from exc
    except urllib.error.URLError as exc:
        raise NotionOAuthError(f"Notion OAuth request failed: {exc}") from exc

    return NotionToken(
        access_token=data["access_token"],
        workspace_id=data.get("workspace_id"),
        workspace_name=data.get("workspace_name") or "Notion Workspace",
        bot_id=data.get("bot_id"),
    )

"""Linked-PR comment block embedded in every PR body of a cross-repo change.

The block is an HTML comment so it stays invisible in rendered markdown:

    <!-- gitgrip-linked-prs
    backend:42
    frontend:17
    -->
"""

from __future__ import annotations

from collections.abc import Sequence

from gitgrip.hosting.types import LinkedPRRef

__all__ = [
    "END_MARKER",
    "START_MARKER",
    "generate_linked_pr_comment",
    "parse_linked_pr_comment",
    "strip_linked_pr_comment",
    "upsert_linked_pr_comment",
]

START_MARKER = "<!-- gitgrip-linked-prs"
END_MARKER = "-->"


def generate_linked_pr_comment(links: Sequence[LinkedPRRef]) -> str:
    if not links:
        return ""
    lines = [START_MARKER]
    lines.extend(f"{link.repo_name}:{link.number}" for link in links)
    lines.append(END_MARKER)
    return "\n".join(lines)


def _block_span(body: str) -> tuple[int, int] | None:
    start = body.find(START_MARKER)
    if start < 0:
        return None
    end = body.find(END_MARKER, start + len(START_MARKER))
    if end < 0:
        return None
    return start, end + len(END_MARKER)


def parse_linked_pr_comment(body: str) -> list[LinkedPRRef]:
    """Extract the link list; missing markers give ``[]``, bad lines are skipped."""
    span = _block_span(body)
    if span is None:
        return []
    inner = body[span[0] + len(START_MARKER) : span[1] - len(END_MARKER)]

    links: list[LinkedPRRef] = []
    for raw in inner.splitlines():
        line = raw.strip()
        if ":" not in line:
            continue
        repo_name, _, number = line.partition(":")
        repo_name = repo_name.strip()
        try:
            parsed = int(number.strip())
        except ValueError:
            continue
        if repo_name:
            links.append(LinkedPRRef(repo_name=repo_name, number=parsed))
    return links


def strip_linked_pr_comment(body: str) -> str:
    span = _block_span(body)
    if span is None:
        return body
    return (body[: span[0]] + body[span[1] :]).rstrip()


def upsert_linked_pr_comment(body: str, links: Sequence[LinkedPRRef]) -> str:
    """Replace the block in place, or append it after a blank line."""
    block = generate_linked_pr_comment(links)
    span = _block_span(body)
    if span is not None:
        return body[: span[0]] + block + body[span[1] :]
    if not block:
        return body
    if not body.strip():
        return block
    return f"{body.rstrip()}\n\n{block}"

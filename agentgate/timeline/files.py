"""Workspace file tracking from assistant tool uses."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

FILE_TOOLS = frozenset({"Write", "Edit"})


def extract_file_paths(message: dict[str, Any]) -> list[str]:
    """Paths targeted by ``Write`` / ``Edit`` tool uses in an assistant message."""
    if message.get("type") != "assistant":
        return []
    content = (message.get("message") or {}).get("content")
    if not isinstance(content, list):
        return []

    paths: list[str] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        if block.get("type") != "tool_use" or block.get("name") not in FILE_TOOLS:
            continue
        file_path = (block.get("input") or {}).get("file_path")
        if isinstance(file_path, str) and file_path:
            paths.append(file_path)
    return paths


def merge_paths(existing: list[str], new: Iterable[str]) -> list[str]:
    """Union preserving first-seen order."""
    merged = list(existing)
    for path in new:
        if path not in merged:
            merged.append(path)
    return merged


def collect_file_paths(messages: Iterable[dict[str, Any]]) -> list[str]:
    paths: list[str] = []
    for message in messages:
        paths = merge_paths(paths, extract_file_paths(message))
    return paths

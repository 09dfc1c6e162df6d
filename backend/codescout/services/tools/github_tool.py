from __future__ import annotations

"""backend/codescout/services/tools/github_tool.py

Adapter for the git-hosting CLI (``gh``).

Operations:
- search_code            -> ``gh search code``
- search_repositories    -> ``gh search repos``
- search_commits         -> ``gh search commits``
- search_issues          -> ``gh api search/issues?q=... type:issue``
- search_pull_requests   -> ``gh api search/issues?q=... type:pr``
- fetch_content          -> ``gh api repos/{owner}/{repo}/contents/{path}``
- view_repo_structure    -> same endpoint on a directory, optionally walked
                            a few levels down

Content and structure lookups go through BranchResolver when the caller
names a branch, so a wrong guess such as ``master`` on a ``main``-only
repository still succeeds with a fallback notice. Every operation is
memoized through the injected CacheStore; only successful Results are
stored.
"""

import asyncio
import base64
import binascii
import json
import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Sequence
from urllib.parse import quote

from codescout import schemas
from codescout.services.branches.resolver import (
    BranchResolution,
    BranchResolver,
    build_candidates,
)
from codescout.services.cache.store import CacheStore, generate_cache_key
from codescout.services.diagnostics.error_classifier import (
    DEFAULT_STRATEGY,
    ClassificationStrategy,
    ErrorClassification,
    describe,
    is_retryable,
)
from codescout.services.tools.base import (
    FAILURE_MALFORMED_OUTPUT,
    CommandGateway,
    CommandSpec,
    Executable,
    Result,
    create_result,
)

logger = logging.getLogger(__name__)

CODE_SEARCH_FIELDS = "repository,path,textMatches,url"
REPO_SEARCH_FIELDS = (
    "fullName,description,stargazersCount,forksCount,language,updatedAt,url"
)
COMMIT_SEARCH_FIELDS = "author,commit,committer,id,parents,repository,sha,url"

# Structure listing: items kept per requested level, and how many
# subdirectory listings run at once while walking deeper levels.
STRUCTURE_ITEMS_PER_LEVEL = 50
SUBTREE_CONCURRENCY = 3

TOP_AUTHORS = 5

IGNORED_DIRECTORIES = frozenset(
    {"node_modules", "dist", "build", ".git", ".vscode", ".idea", "__pycache__"}
)
MEDIA_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".mp4", ".mov", ".avi",
)


def hints_for(classification: ErrorClassification) -> List[str]:
    hints = [describe(classification)]
    if is_retryable(classification):
        hints.append("This failure is transient; retrying later may succeed.")
    return hints


def error_payload(
    result: Result,
    strategy: ClassificationStrategy,
    *,
    context: str,
    extra_hints: Iterable[str] = (),
    meta: Dict[str, Any] | None = None,
) -> Result:
    """Re-wrap a failed gateway Result into the tool payload shape."""
    classification = strategy.classify_result(result)
    body_meta: Dict[str, Any] = {
        "classification": classification.value,
        "retryable": is_retryable(classification),
    }
    body_meta.update(meta or {})
    return create_result(
        error=f"{context}: {result.text.strip()}",
        hints=[*extra_hints, *hints_for(classification)],
        meta=body_meta,
        is_error=True,
        failure_reason=result.failure_reason,
    )


def load_json(result: Result) -> Any:
    """Decode a successful Result's text; raises ValueError if it is not JSON."""
    text = result.text.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Unexpected non-JSON payload: {exc}") from exc


def malformed(context: str, exc: Exception) -> Result:
    return create_result(
        error=f"{context}: {exc}",
        hints=[describe(ErrorClassification.MALFORMED_OUTPUT)],
        meta={"classification": ErrorClassification.MALFORMED_OUTPUT.value},
        is_error=True,
        failure_reason=FAILURE_MALFORMED_OUTPUT,
    )


def require_objects(items: Sequence[Any], what: str) -> None:
    """Raise ValueError unless every entry of a CLI listing is a JSON object."""
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"Unexpected {what} entry: {item!r}")


def _obj(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


# ---- Argument builders ----


def build_code_search_args(query: schemas.CodeSearchQuery) -> List[str]:
    args: List[str] = []
    if query.owner:
        args += ["--owner", query.owner]
    if query.repo:
        repo = query.repo if "/" in query.repo else f"{query.owner}/{query.repo}"
        args += ["--repo", repo]
    if query.language:
        args += ["--language", query.language]
    if query.extension:
        args += ["--extension", query.extension.lstrip(".")]
    if query.filename:
        args += ["--filename", query.filename]
    if query.match:
        args += ["--match", query.match]
    args += ["--limit", str(query.limit), "--json", CODE_SEARCH_FIELDS]
    # Terms go after "--" so a leading "-qualifier" is never read as a flag.
    return ["code", *args, "--", *query.query_terms]


def build_repo_search_args(query: schemas.RepoSearchQuery) -> List[str]:
    args: List[str] = []
    if query.owner:
        args += ["--owner", query.owner]
    if query.language:
        args += ["--language", query.language]
    for topic in query.topic or []:
        args += ["--topic", topic]
    if query.stars:
        args += ["--stars", query.stars]
    if query.sort:
        args += ["--sort", query.sort]
    args += ["--limit", str(query.limit), "--json", REPO_SEARCH_FIELDS]
    if query.query_terms:
        args += ["--", *query.query_terms]
    return ["repos", *args]


def build_commit_search_args(query: schemas.CommitSearchQuery) -> List[str]:
    args: List[str] = []
    if query.owner:
        args += ["--owner", query.owner]
    if query.repo:
        repo = query.repo if "/" in query.repo else f"{query.owner}/{query.repo}"
        args += ["--repo", repo]
    for flag, value in (
        ("--author", query.author),
        ("--committer", query.committer),
        ("--author-date", query.author_date),
        ("--committer-date", query.committer_date),
        ("--hash", query.hash),
        ("--sort", query.sort),
        ("--order", query.order),
    ):
        if value:
            args += [flag, value]
    if query.merge is not None:
        args.append(f"--merge={str(query.merge).lower()}")
    args += ["--limit", str(query.limit), "--json", COMMIT_SEARCH_FIELDS]
    if query.query_terms:
        args += ["--", *query.query_terms]
    return ["commits", *args]


def _qualifier(key: str, value: str) -> str:
    if " " in value:
        value = f'"{value}"'
    return f"{key}:{value}"


def build_issue_search_endpoint(query: schemas.IssueSearchQuery, kind: str) -> str:
    """``search/issues`` endpoint for ``kind`` "issue" or "pr"."""
    if kind not in ("issue", "pr"):
        raise ValueError(f"Unknown issue search kind: {kind!r}")

    parts = [query.query]
    if query.repo:
        repo = query.repo if "/" in query.repo else f"{query.owner}/{query.repo}"
        parts.append(f"repo:{repo}")
    elif query.owner:
        parts.append(f"org:{query.owner}")
    for key in ("author", "assignee", "mentions", "state", "created", "updated", "language"):
        value = getattr(query, key)
        if value:
            parts.append(_qualifier(key, value))
    parts += [_qualifier("label", label) for label in query.labels]

    if isinstance(query, schemas.PullRequestSearchQuery):
        if query.head:
            parts.append(f"head:{query.head}")
        if query.base:
            parts.append(f"base:{query.base}")
        if query.draft is not None:
            parts.append(f"draft:{str(query.draft).lower()}")
        if query.merged is not None:
            parts.append("is:merged" if query.merged else "is:unmerged")
    parts.append(f"type:{kind}")

    endpoint = f"search/issues?q={quote(' '.join(parts), safe='')}&per_page={query.limit}"
    if query.sort:
        endpoint += f"&sort={query.sort}"
    if query.order:
        endpoint += f"&order={query.order}"
    return endpoint


def contents_endpoint(owner: str, repo: str, path: str, ref: str | None) -> str:
    endpoint = f"repos/{quote(owner)}/{quote(repo)}/contents"
    if path:
        endpoint += f"/{quote(path)}"
    if ref:
        endpoint += f"?ref={quote(ref, safe='')}"
    return endpoint


# ---- Payload shaping ----


def shape_code_matches(items: Any) -> Any:
    if not isinstance(items, list):
        return items
    require_objects(items, "code match")
    shaped = []
    for item in items:
        repository = _obj(item.get("repository"))
        shaped.append(
            {
                "repository": repository.get("nameWithOwner") or repository.get("fullName"),
                "path": item.get("path"),
                "url": item.get("url"),
                "matches": [
                    m["fragment"]
                    for m in item.get("textMatches") or []
                    if isinstance(m, dict) and m.get("fragment")
                ],
            }
        )
    return shaped


def _person(git_identity: Any, account: Any) -> Dict[str, Any]:
    identity = _obj(git_identity)
    return {
        "name": identity.get("name"),
        "email": identity.get("email"),
        "date": identity.get("date"),
        "login": _obj(account).get("login"),
    }


def shape_commits(items: Sequence[Any]) -> List[Dict[str, Any]]:
    require_objects(items, "commit")
    shaped = []
    for item in items:
        commit = _obj(item.get("commit"))
        shaped.append(
            {
                "sha": item.get("sha"),
                "message": commit.get("message") or "",
                "author": _person(commit.get("author"), item.get("author")),
                "committer": _person(commit.get("committer"), item.get("committer")),
                "repository": _obj(item.get("repository")).get("fullName"),
                "url": item.get("url"),
                "parents": [
                    p.get("sha") for p in item.get("parents") or [] if isinstance(p, dict)
                ],
            }
        )
    return shaped


def summarize_commits(commits: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    authors = Counter(
        c["author"]["name"] or c["author"]["login"] or "Unknown" for c in commits
    )
    return {
        "top_authors": [
            {"name": name, "commits": count} for name, count in authors.most_common(TOP_AUTHORS)
        ],
        "repositories": sorted({c["repository"] for c in commits if c["repository"]}),
    }


def shape_issue_items(document: Any, kind: str) -> List[Dict[str, Any]]:
    """Trim a ``search/issues`` response to what an agent reads."""
    if not isinstance(document, dict) or not isinstance(document.get("items", []), list):
        raise ValueError(f"Unexpected search response: {str(document)[:200]}")
    items = document.get("items") or []
    require_objects(items, kind)

    shaped = []
    for item in items:
        repository_url = item.get("repository_url") or ""
        entry: Dict[str, Any] = {
            "number": item.get("number"),
            "title": item.get("title"),
            "state": item.get("state"),
            "author": _obj(item.get("user")).get("login"),
            "repository": "/".join(repository_url.split("/")[-2:]) or None,
            "labels": [
                label.get("name") for label in item.get("labels") or [] if isinstance(label, dict)
            ],
            "created_at": item.get("created_at"),
            "updated_at": item.get("updated_at"),
            "url": item.get("html_url"),
            "comments": item.get("comments"),
            "reactions": _obj(item.get("reactions")).get("total_count", 0),
        }
        if item.get("closed_at"):
            entry["closed_at"] = item["closed_at"]
        if kind == "pr":
            entry["draft"] = bool(item.get("draft"))
            merged_at = _obj(item.get("pull_request")).get("merged_at")
            if merged_at:
                entry["merged_at"] = merged_at
        shaped.append(entry)
    return shaped


def decode_file_content(document: Any) -> str:
    if not isinstance(document, dict):
        raise ValueError(f"Expected a file object, got {type(document).__name__}")
    raw = document.get("content") or ""
    if document.get("encoding") != "base64":
        return raw
    try:
        return base64.b64decode(raw).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 file content: {exc}") from exc


def slice_lines(text: str, start_line: int | None, end_line: int | None) -> str:
    if start_line is None and end_line is None:
        return text
    lines = text.splitlines()
    start = (start_line or 1) - 1
    end = end_line or len(lines)
    return "\n".join(lines[start:end])


def filter_structure_items(
    items: Sequence[Dict[str, Any]],
    *,
    include_ignored: bool,
    show_media: bool,
) -> List[Dict[str, Any]]:
    if include_ignored:
        return list(items)

    kept = []
    for item in items:
        name = str(item.get("name", "")).lower()
        path = str(item.get("path", "")).lower()
        if name.startswith(".") and not show_media:
            continue
        if name in IGNORED_DIRECTORIES:
            continue
        if name.endswith((".lock", "-lock.json", "-lock.yaml")):
            continue
        if not show_media and path.endswith(MEDIA_EXTENSIONS):
            continue
        kept.append(item)
    return kept


def sort_structure_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Directories first, then shallower paths, then alphabetical."""
    return sorted(
        items,
        key=lambda i: (
            0 if i.get("type") == "dir" else 1,
            str(i.get("path", "")).count("/"),
            str(i.get("path", "")),
        ),
    )


class GitHubToolRunner:
    """Discovery operations backed by the git-hosting CLI."""

    name = "github"

    def __init__(
        self,
        gateway: CommandGateway,
        cache: CacheStore,
        *,
        resolver: BranchResolver | None = None,
        strategy: ClassificationStrategy | None = None,
        timeout_ms: int = 30000,
        branch_conventions: Sequence[str] = ("main", "master", "develop", "trunk"),
        structure_item_limit: int = 200,
        use_cache: bool = True,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.strategy = strategy or DEFAULT_STRATEGY
        self.resolver = resolver or BranchResolver(self.strategy)
        self.timeout_ms = timeout_ms
        self.branch_conventions = tuple(branch_conventions)
        self.structure_item_limit = structure_item_limit
        self.use_cache = use_cache

    def _spec(self, subcommand: str, args: Sequence[str]) -> CommandSpec:
        return CommandSpec(
            executable=Executable.HOSTING_CLI,
            subcommand=subcommand,
            args=tuple(args),
            timeout_ms=self.timeout_ms,
        )

    async def _cached(self, category: str, params: Dict[str, Any], producer) -> Result:
        key = generate_cache_key(category, params)
        return await self.cache.wrap(key, producer, skip_cache=not self.use_cache)

    # ---- Search ----

    async def search_code(self, query: schemas.CodeSearchQuery) -> Result:
        async def produce() -> Result:
            result = await self.gateway.run(self._spec("search", build_code_search_args(query)))
            if result.is_error:
                return error_payload(result, self.strategy, context="Code search failed")
            try:
                items = shape_code_matches(load_json(result) or [])
            except ValueError as exc:
                return malformed("Code search failed", exc)
            hints = [] if items else ["No matches; try broader terms or fewer filters."]
            return create_result(
                data=items,
                hints=hints,
                meta={"total": len(items) if isinstance(items, list) else None},
            )

        return await self._cached("gh-code", query.model_dump(), produce)

    async def search_repositories(self, query: schemas.RepoSearchQuery) -> Result:
        async def produce() -> Result:
            result = await self.gateway.run(self._spec("search", build_repo_search_args(query)))
            if result.is_error:
                return error_payload(result, self.strategy, context="Repository search failed")
            try:
                repos = load_json(result) or []
            except ValueError as exc:
                return malformed("Repository search failed", exc)
            hints = [] if repos else ["No repositories matched; relax the filters."]
            return create_result(
                data=repos,
                hints=hints,
                meta={"total": len(repos) if isinstance(repos, list) else None},
            )

        return await self._cached("gh-repos", query.model_dump(), produce)

    async def search_commits(self, query: schemas.CommitSearchQuery) -> Result:
        async def produce() -> Result:
            context = "Commit search failed"
            result = await self.gateway.run(self._spec("search", build_commit_search_args(query)))
            if result.is_error:
                return error_payload(result, self.strategy, context=context)
            try:
                document = load_json(result) or []
                if not isinstance(document, list):
                    raise ValueError(f"Expected a list of commits, got {type(document).__name__}")
                commits = shape_commits(document)
            except ValueError as exc:
                return malformed(context, exc)
            hints = [] if commits else [
                "No commits matched; widen the date range or drop author filters."
            ]
            return create_result(
                data=commits,
                hints=hints,
                meta={"total": len(commits), **summarize_commits(commits)},
            )

        return await self._cached("gh-commits", query.model_dump(), produce)

    async def _search_issue_like(
        self, query: schemas.IssueSearchQuery, kind: str, category: str
    ) -> Result:
        label = "Pull request" if kind == "pr" else "Issue"

        async def produce() -> Result:
            context = f"{label} search failed"
            endpoint = build_issue_search_endpoint(query, kind)
            result = await self.gateway.run(self._spec("api", [endpoint]))
            if result.is_error:
                return error_payload(result, self.strategy, context=context)
            try:
                document = load_json(result)
                items = shape_issue_items(document, kind)
            except ValueError as exc:
                return malformed(context, exc)
            hints = [] if items else [f"No {label.lower()}s matched; relax state or date filters."]
            return create_result(
                data=items,
                hints=hints,
                meta={
                    "total_count": document.get("total_count", len(items)),
                    "incomplete_results": bool(document.get("incomplete_results")),
                },
            )

        return await self._cached(category, query.model_dump(), produce)

    async def search_issues(self, query: schemas.IssueSearchQuery) -> Result:
        return await self._search_issue_like(query, "issue", "gh-issues")

    async def search_pull_requests(self, query: schemas.PullRequestSearchQuery) -> Result:
        return await self._search_issue_like(query, "pr", "gh-prs")

    # ---- Content / structure ----

    async def _lookup(
        self, owner: str, repo: str, path: str, branch: str | None
    ) -> tuple[Result, BranchResolution | None]:
        """Fetch a contents endpoint, probing branches when one was named."""
        if not branch:
            spec = self._spec("api", [contents_endpoint(owner, repo, path, None)])
            return await self.gateway.run(spec), None

        async def attempt(candidate: str) -> Result:
            spec = self._spec("api", [contents_endpoint(owner, repo, path, candidate)])
            return await self.gateway.run(spec)

        candidates = build_candidates(branch, self.branch_conventions)
        resolution = await self.resolver.resolve(candidates, attempt)
        return resolution.result or Result.error("No branch candidates tried"), resolution

    def _lookup_failure(
        self,
        result: Result,
        resolution: BranchResolution | None,
        *,
        context: str,
    ) -> Result:
        hints: List[str] = []
        meta: Dict[str, Any] = {}
        if resolution is not None:
            meta["tried_branches"] = resolution.tried_branches
            if resolution.notice:
                hints.append(resolution.notice)
        return error_payload(result, self.strategy, context=context, extra_hints=hints, meta=meta)

    @staticmethod
    def _branch_meta(resolution: BranchResolution | None) -> tuple[Dict[str, Any], List[str]]:
        if resolution is None:
            return {}, []
        meta = {
            "branch": resolution.used_branch,
            "requested_branch": resolution.requested_branch,
        }
        hints = [resolution.notice] if resolution.notice else []
        return meta, hints

    async def fetch_content(self, query: schemas.FileContentQuery) -> Result:
        async def produce() -> Result:
            context = f"Failed to fetch {query.owner}/{query.repo}/{query.file_path}"
            result, resolution = await self._lookup(
                query.owner, query.repo, query.file_path, query.branch
            )
            if result.is_error:
                return self._lookup_failure(result, resolution, context=context)

            try:
                document = load_json(result)
                if isinstance(document, list):
                    return create_result(
                        error=f"{context}: path is a directory",
                        hints=["Use the structure view to list directory contents."],
                        is_error=True,
                    )
                text = decode_file_content({} if document is None else document)
            except ValueError as exc:
                return malformed(context, exc)

            meta, hints = self._branch_meta(resolution)
            meta.update(
                {
                    "repository": f"{query.owner}/{query.repo}",
                    "path": query.file_path,
                    "size": (document or {}).get("size"),
                }
            )
            if query.start_line or query.end_line:
                meta["start_line"] = query.start_line or 1
                meta["end_line"] = query.end_line
            return create_result(
                data=slice_lines(text, query.start_line, query.end_line),
                hints=hints,
                meta=meta,
            )

        return await self._cached("gh-file-content", query.model_dump(), produce)

    async def _list_directory(
        self, owner: str, repo: str, path: str, ref: str | None
    ) -> List[Dict[str, Any]]:
        """One subdirectory listing; failures only shrink the walk."""
        result = await self.gateway.run(
            self._spec("api", [contents_endpoint(owner, repo, path, ref)])
        )
        if result.is_error:
            logger.debug("Skipping %s/%s/%s: %s", owner, repo, path, result.text[:200])
            return []
        try:
            document = load_json(result)
        except ValueError:
            logger.debug("Skipping %s/%s/%s: non-JSON listing", owner, repo, path)
            return []
        if not isinstance(document, list):
            return []
        return [item for item in document if isinstance(item, dict)]

    async def _walk_subdirectories(
        self,
        query: schemas.RepoStructureQuery,
        ref: str | None,
        items: List[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """Add the contents of subdirectories down to ``query.depth`` levels."""

        def descendable(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            dirs = [e for e in entries if e.get("type") == "dir" and e.get("path")]
            return filter_structure_items(
                dirs, include_ignored=query.include_ignored, show_media=query.show_media
            )

        collected = list(items)
        seen = {str(item.get("path")) for item in items}
        level = descendable(items)
        for _ in range(query.depth - 1):
            next_level: List[Dict[str, Any]] = []
            for start in range(0, len(level), SUBTREE_CONCURRENCY):
                batch = level[start:start + SUBTREE_CONCURRENCY]
                listings = await asyncio.gather(
                    *(
                        self._list_directory(query.owner, query.repo, d["path"], ref)
                        for d in batch
                    )
                )
                for listing in listings:
                    fresh = [e for e in listing if str(e.get("path")) not in seen]
                    seen.update(str(e.get("path")) for e in fresh)
                    collected.extend(fresh)
                    next_level.extend(descendable(fresh))
            if not next_level:
                break
            level = next_level
        return collected

    async def view_repo_structure(self, query: schemas.RepoStructureQuery) -> Result:
        async def produce() -> Result:
            context = f"Failed to list {query.owner}/{query.repo}/{query.path}"
            result, resolution = await self._lookup(
                query.owner, query.repo, query.path, query.branch
            )
            if result.is_error:
                return self._lookup_failure(result, resolution, context=context)

            try:
                document = load_json(result)
                items = document if isinstance(document, list) else [document or {}]
                require_objects(items, "structure")
            except ValueError as exc:
                return malformed(context, exc)

            if query.depth > 1:
                ref = resolution.used_branch if resolution is not None else None
                items = await self._walk_subdirectories(query, ref, items)

            filtered = filter_structure_items(
                items,
                include_ignored=query.include_ignored,
                show_media=query.show_media,
            )
            item_limit = min(self.structure_item_limit, STRUCTURE_ITEMS_PER_LEVEL * query.depth)
            limited = sort_structure_items(filtered[:item_limit])
            files = [
                {"path": i.get("path"), "size": i.get("size")}
                for i in limited
                if i.get("type") == "file"
            ]
            folders = [{"path": i.get("path")} for i in limited if i.get("type") == "dir"]

            meta, hints = self._branch_meta(resolution)
            meta.update(
                {
                    "repository": f"{query.owner}/{query.repo}",
                    "path": query.path or "/",
                    "total_files": len(files),
                    "total_folders": len(folders),
                    "truncated": len(filtered) > len(limited),
                    "filtered": not query.include_ignored,
                    "original_count": len(items),
                }
            )
            return create_result(
                data={"files": files, "folders": folders},
                hints=hints,
                meta=meta,
            )

        return await self._cached("gh-repo-structure", query.model_dump(), produce)

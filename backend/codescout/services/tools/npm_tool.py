from __future__ import annotations

"""backend/codescout/services/tools/npm_tool.py

Adapter for the package-registry CLI (``npm``).

- search_packages -> ``npm search <query> --searchlimit N --json``
- view_package    -> ``npm view <name> [fields...] --json``

Results are trimmed to the fields an agent needs to pick a package and
jump to its source repository.
"""

import logging
from typing import Any, Dict, List, Sequence

from codescout import schemas
from codescout.services.cache.store import CacheStore, generate_cache_key
from codescout.services.diagnostics.error_classifier import (
    DEFAULT_STRATEGY,
    ClassificationStrategy,
)
from codescout.services.tools.base import (
    CommandGateway,
    CommandSpec,
    Executable,
    Result,
    create_result,
)
from codescout.services.tools.github_tool import (
    error_payload,
    load_json,
    malformed,
    require_objects,
)

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 100
MAX_KEYWORDS = 10


def build_search_args(query: schemas.PackageSearchQuery) -> List[str]:
    return [query.query, "--searchlimit", str(query.search_limit), "--json"]


def build_view_args(query: schemas.PackageViewQuery) -> List[str]:
    return [query.package_name, *query.fields, "--json"]


def _truncate(text: str | None) -> str | None:
    if text and len(text) > MAX_DESCRIPTION_LENGTH:
        return text[:MAX_DESCRIPTION_LENGTH] + "..."
    return text


def _repository_url(repository: Any) -> str | None:
    if isinstance(repository, dict):
        repository = repository.get("url")
    if not isinstance(repository, str) or not repository:
        return None
    url = repository.removeprefix("git+").removesuffix(".git")
    if url.startswith("git://"):
        url = "https://" + url[len("git://"):]
    return url


def shape_search_results(packages: Any) -> Any:
    if not isinstance(packages, list):
        return packages
    require_objects(packages, "package")
    shaped = []
    seen: set[str] = set()
    for pkg in packages:
        name = pkg.get("name")
        if not name or name in seen:
            continue
        seen.add(name)
        links = pkg.get("links") if isinstance(pkg.get("links"), dict) else {}
        shaped.append(
            {
                "name": name,
                "version": pkg.get("version"),
                "description": _truncate(pkg.get("description")),
                "keywords": (pkg.get("keywords") or [])[:MAX_KEYWORDS],
                "repository": _repository_url(links.get("repository")),
                "date": pkg.get("date"),
            }
        )
    return shaped


def shape_view_result(document: Any) -> Any:
    """Keep the registry view compact when the full document was requested."""
    if not isinstance(document, dict):
        return document
    versions = document.get("versions")
    shaped = dict(document)
    if isinstance(versions, list):
        shaped["versions"] = versions[-10:]
        shaped["version_count"] = len(versions)
    if "repository" in document:
        shaped["repository"] = _repository_url(document["repository"])
    shaped.pop("readme", None)
    return shaped


class NpmToolRunner:
    """Package discovery backed by the registry CLI."""

    name = "npm"

    def __init__(
        self,
        gateway: CommandGateway,
        cache: CacheStore,
        *,
        strategy: ClassificationStrategy | None = None,
        timeout_ms: int = 30000,
        use_cache: bool = True,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.strategy = strategy or DEFAULT_STRATEGY
        self.timeout_ms = timeout_ms
        self.use_cache = use_cache

    def _spec(self, subcommand: str, args: Sequence[str]) -> CommandSpec:
        return CommandSpec(
            executable=Executable.REGISTRY_CLI,
            subcommand=subcommand,
            args=tuple(args),
            timeout_ms=self.timeout_ms,
        )

    async def _cached(self, category: str, params: Dict[str, Any], producer) -> Result:
        key = generate_cache_key(category, params)
        return await self.cache.wrap(key, producer, skip_cache=not self.use_cache)

    async def search_packages(self, query: schemas.PackageSearchQuery) -> Result:
        async def produce() -> Result:
            context = f"Package search for '{query.query}' failed"
            result = await self.gateway.run(self._spec("search", build_search_args(query)))
            if result.is_error:
                return error_payload(result, self.strategy, context=context)
            try:
                packages = shape_search_results(load_json(result) or [])
            except ValueError as exc:
                return malformed(context, exc)
            hints = [] if packages else [
                f"No packages found for '{query.query}'; try a shorter or broader name."
            ]
            return create_result(
                data=packages,
                hints=hints,
                meta={"total": len(packages) if isinstance(packages, list) else None},
            )

        return await self._cached("npm-search", query.model_dump(), produce)

    async def view_package(self, query: schemas.PackageViewQuery) -> Result:
        async def produce() -> Result:
            context = f"Package view for '{query.package_name}' failed"
            result = await self.gateway.run(self._spec("view", build_view_args(query)))
            if result.is_error:
                return error_payload(result, self.strategy, context=context)
            try:
                document = load_json(result)
            except ValueError as exc:
                return malformed(context, exc)
            if document is None:
                return create_result(
                    error=f"{context}: empty registry response",
                    hints=["Check the package name spelling."],
                    is_error=True,
                )
            data = document if query.fields else shape_view_result(document)
            return create_result(data=data, meta={"package": query.package_name})

        return await self._cached("npm-view", query.model_dump(), produce)

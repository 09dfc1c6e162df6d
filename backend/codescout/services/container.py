from __future__ import annotations

"""backend/codescout/services/container.py

Explicit wiring of the shared service objects.

One ServiceContainer is built per application instance (see
codescout.main). It owns the CacheStore lifecycle: ``start()`` launches
the expiry sweeper, ``shutdown()`` stops it and flushes the cache.
"""

from dataclasses import dataclass
import logging

from codescout.config import Settings
from codescout.services.cache.store import CacheStore
from codescout.services.tools import get_default_tool_runners
from codescout.services.tools.base import CommandGateway
from codescout.services.tools.github_tool import GitHubToolRunner
from codescout.services.tools.npm_tool import NpmToolRunner

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    cache: CacheStore
    gateway: CommandGateway
    github: GitHubToolRunner
    npm: NpmToolRunner

    def start(self) -> None:
        self.cache.start_sweeper()

    async def shutdown(self) -> None:
        await self.cache.stop_sweeper()
        self.cache.clear_all()


def build_services(settings: Settings) -> ServiceContainer:
    cache = CacheStore.from_settings(settings)
    gateway = CommandGateway.from_settings(settings)
    runners = get_default_tool_runners(gateway, cache, settings)
    logger.debug("Built services with runners: %s", sorted(runners))
    return ServiceContainer(
        cache=cache,
        gateway=gateway,
        github=runners["github"],
        npm=runners["npm"],
    )

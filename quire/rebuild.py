"""Incremental rebuilds for the development server.

File-system watchers publish FileEvents into one EventChannel. The
RebuildOrchestrator consumes the channel one event at a time, invalidates the
cache entries the changed file produced, recompiles the pages that consumed
it and notifies the live reload sink.

Key classes:
- FileEvent: A file that was added, changed or removed.
- EventChannel: Ordered async stream merging several watchers.
- RebuildOrchestrator: Turns events into invalidations and recompilations.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

import yaml

from .build import copy_static_file, remove_static_file
from .cache import CacheStore, link_file, matches_tail
from .compiler import PageCompiler, output_chain
from .config import CONFIG_FILENAME, SiteConfig, load_config
from .content import ALL_PAGES_CHAIN, Page, PageDiscovery, is_static_file
from .protocols import NotificationSink, OutputWriter
from .utils import (
    display_path,
    echo_error,
    echo_info,
    echo_warning,
    is_ignored,
    is_layout,
    is_markdown,
    is_template,
    is_within,
)


class EventKind(str, Enum):
    ADD = "add"
    CHANGE = "change"
    REMOVE = "remove"


class FileCategory(str, Enum):
    CONTENT = "content"
    SECTION = "section"
    LAYOUT = "layout"
    INCLUDE = "include"
    STATIC = "static"
    CONFIG = "config"
    OTHER = "other"


# Categories whose add or remove changes the page list.
STRUCTURAL_CATEGORIES = frozenset({FileCategory.CONTENT, FileCategory.SECTION, FileCategory.LAYOUT})

_VERBS = {EventKind.ADD: "added", EventKind.CHANGE: "changed", EventKind.REMOVE: "removed"}


@dataclass(frozen=True)
class FileEvent:
    """A change reported by a file-system watcher.

    Attributes:
        kind: What happened to the file.
        path: Absolute path of the file.
    """

    kind: EventKind
    path: Path


_CLOSED = object()


class EventChannel:
    """Merges events from several watchers into one ordered async stream.

    Watchers running in their own threads publish with ``publish_threadsafe``;
    the consumer iterates with ``async for``. ``close`` ends the iteration once
    the events queued before it are drained.

    Attributes:
        loop: Event loop the consumer runs on. Taken from the running loop on
            first use when not given.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self.loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()

    def publish(self, event: FileEvent) -> None:
        self._queue.put_nowait(event)

    def publish_threadsafe(self, event: FileEvent) -> None:
        """Publish from a thread other than the consumer's."""
        if self.loop is None:
            raise RuntimeError("EventChannel is not bound to an event loop")
        self.loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> EventChannel:
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        return self

    async def __anext__(self) -> FileEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class RebuildOrchestrator:
    """Decides what to invalidate and recompile for each file event.

    - Adding or removing a page, a section or a layout changes the page list:
      the page list and the renders that read it are dropped, and every page
      is recompiled on top of the remaining cache.
    - Static files are copied to the output tree; a change to
      ``app_settings`` in ``quire.yaml`` rebuilds everything.
    - Otherwise, the entries that are directly the changed file are removed
      together with their ancestor chains, and only the pages whose chains
      show they consumed the file are recompiled.

    Attributes:
        store: Cache store of the session.
        discovery: Page discovery of the session.
        compiler: Page compiler of the session.
        writer: Persists recompiled pages.
        sink: Receives reload notifications.
        config: Site configuration.
    """

    def __init__(
        self,
        store: CacheStore,
        discovery: PageDiscovery,
        compiler: PageCompiler,
        writer: OutputWriter,
        sink: NotificationSink,
        config: SiteConfig,
    ):
        self.store = store
        self.discovery = discovery
        self.compiler = compiler
        self.writer = writer
        self.sink = sink
        self.config = config

    def classify(self, path: Path) -> FileCategory:
        """Classify a file by the role it plays in the site.

        Args:
            path: Absolute path of the file.

        Returns:
            The category; OTHER for files that never affect the output.
        """
        loader = self.discovery.loader
        if path == self.config.project_root / CONFIG_FILENAME:
            return FileCategory.CONFIG
        if is_ignored(path):
            return FileCategory.OTHER
        if loader.is_content_file(path):
            return FileCategory.CONTENT
        if loader.is_section_file(path):
            return FileCategory.SECTION
        if is_layout(path) and is_within(path, self.config.layouts_dir):
            return FileCategory.LAYOUT
        if is_static_file(path, self.config):
            return FileCategory.STATIC
        if is_within(path, self.config.includes_dir) or is_template(path) or is_markdown(path):
            return FileCategory.INCLUDE
        return FileCategory.OTHER

    async def run(self, channel: EventChannel) -> None:
        """Process events until the channel is closed, strictly one at a time."""
        async for event in channel:
            await self.handle(event)

    async def handle(self, event: FileEvent) -> list[Page]:
        """Process one file event.

        Args:
            event: The event to process.

        Returns:
            Pages that were recompiled.
        """
        path = Path(event.path)
        kind = EventKind(event.kind)
        category = self.classify(path)
        if category is FileCategory.OTHER:
            return []
        if category is FileCategory.CONFIG:
            return await self.reload_config()
        verb = _VERBS[kind]
        if category is FileCategory.STATIC:
            self._publish_static(path, kind)
            echo_info(f"{display_path(path)} was {verb}.")
            self.sink.notify(None)
            return []
        if category in STRUCTURAL_CATEGORIES and kind is not EventKind.CHANGE:
            return await self._rebuild_page_list(path, kind, verb)

        pages = self.discovery.discover(self.store)
        affected = self._affected_pages(path, pages)
        if kind is not EventKind.ADD:
            self._invalidate(path)
        if not affected:
            return []
        echo_info(
            f"{display_path(path)} was {verb}. Rebuilding {len(affected)} page(s)..."
        )
        await self._recompile(affected, pages)
        return affected

    async def reload_config(self) -> list[Page]:
        """Apply a changed ``quire.yaml``.

        New ``app_settings`` are picked up by recompiling every page. The
        other keys shape the session itself, so changing them needs a restart.

        Returns:
            Pages that were recompiled.
        """
        try:
            config = load_config(self.config.project_root)
        except yaml.YAMLError as exc:
            echo_error(f"Cannot read {CONFIG_FILENAME}: {exc}", self.config.project_root / CONFIG_FILENAME)
            return []
        if config == self.config:
            return []
        if replace(config, app_settings=self.config.app_settings) != self.config:
            echo_warning(
                f"{CONFIG_FILENAME} changed more than app_settings; restart the server to apply it."
            )
            return []
        self.config = config
        self.compiler.builder.config = config
        echo_info(f"{CONFIG_FILENAME} was changed. Rebuilding every page...")
        return await self.refresh_external_data()

    async def refresh_external_data(self) -> list[Page]:
        """Rebuild everything after a change to data the cache cannot track.

        Called when ``app_settings`` change; embedders call it when data their
        templates load through ``require`` changes.

        Returns:
            Pages that were recompiled.
        """
        self.store.clear()
        self.compiler.builder.page_list_readers.clear()
        pages = self.discovery.discover(self.store)
        await self._recompile(pages, pages, notify=False)
        self.sink.notify(None)
        return list(pages)

    async def _rebuild_page_list(self, path: Path, kind: EventKind, verb: str) -> list[Page]:
        """Handle a page, section or layout that appeared or disappeared.

        Only the page list and the renders that read it are dropped; content,
        sections and includes of unchanged pages stay cached. Every page is
        recompiled, which re-renders the layouts.
        """
        previous = self.discovery.discover(self.store)
        self.store.remove(ALL_PAGES_CHAIN)
        self.compiler.builder.forget_page_list_readers()
        if kind is EventKind.REMOVE:
            self._invalidate(path)
        pages = self.discovery.discover(self.store)
        echo_info(
            f"{display_path(path)} was {verb}. Rebuilding {len(pages)} page(s)..."
        )
        remaining = {page.output_file for page in pages}
        for page in previous:
            if page.output_file not in remaining:
                self._forget_page(page)
                self.writer.write(page, None)
        await self._recompile(pages, pages, notify=False)
        self.sink.notify(None)
        return list(pages)

    def _publish_static(self, path: Path, kind: EventKind) -> None:
        if kind is EventKind.REMOVE:
            remove_static_file(self.config, path)
        else:
            copy_static_file(self.config, path)

    def _affected_pages(self, path: Path, pages: Iterable[Page]) -> list[Page]:
        """Pages built from ``path``, directly or as a nested include.

        Must run before the entries of ``path`` are invalidated.
        """
        consumers = {link_file(chain[0]) for chain in self.store.find_by_parts(str(path))}
        return [
            page
            for page in pages
            if page.layout_file == path
            or page.content_file == path
            or str(page.output_file) in consumers
        ]

    def _invalidate(self, path: Path) -> None:
        is_entry_of_path = matches_tail(str(path))
        for chain in self.store.find_by_parts(str(path)):
            if is_entry_of_path(chain):
                self.store.remove(chain)

    def _forget_page(self, page: Page) -> None:
        """Remove every entry compiled for a page that no longer exists."""
        output = str(page.output_file)
        for chain in self.store.find_by_parts(output):
            if link_file(chain[0]) == output:
                self.store.remove(chain)

    async def _recompile(
        self, targets: Iterable[Page], pages: tuple[Page, ...], notify: bool = True
    ) -> None:
        targets = list(targets)
        for page in targets:
            self.store.remove(output_chain(page))
        results = await asyncio.gather(
            *(self.compiler.compile(page, pages) for page in targets)
        )
        for page, html in zip(targets, results):
            self.writer.write(page, html)
            if notify:
                self.sink.notify(page.url)

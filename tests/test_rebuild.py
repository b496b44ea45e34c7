import asyncio
import threading
from pathlib import Path

from quire.build import FileOutputWriter, build_session, create_session
from quire.rebuild import (
    EventChannel,
    EventKind,
    FileCategory,
    FileEvent,
    RebuildOrchestrator,
)
from quire.renderers import JinjaTemplateRenderer
from quire.utils import is_layout


class RecordingWriter:
    def __init__(self):
        self.writes: dict[str, str | None] = {}

    def write(self, page, html):
        self.writes[page.url] = html


class RecordingSink:
    def __init__(self):
        self.urls: list[str | None] = []

    def notify(self, url):
        self.urls.append(url)


class SpyRenderer(JinjaTemplateRenderer):
    def __init__(self):
        super().__init__()
        self.rendered: list[Path] = []

    async def render(self, source, context, path):
        self.rendered.append(path)
        return await super().render(source, context, path)


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def create_site(tmp_path: Path) -> None:
    pages = tmp_path / "pages"
    write(pages / "index.layout.jinja", "L[{{ page.content }}]")
    write(pages / "docs" / "index.layout.jinja", "D[{{ include('nav') }}{{ page.content }}]")
    write(tmp_path / "includes" / "nav.jinja", "nav")
    write(tmp_path / "includes" / "note.jinja", "note")
    write(pages / "index.md", "home")
    write(pages / "about.md", "about {{ include('note') }}")
    write(pages / "docs" / "guide.md", "guide")


def setup(tmp_path, writer=None, development=True, renderer=None, files=None):
    create_site(tmp_path)
    for rel_path, text in (files or {}).items():
        write(tmp_path / rel_path, text)
    session = create_session(tmp_path, development=development, renderer=renderer)
    asyncio.run(build_session(session))
    writer = writer or RecordingWriter()
    sink = RecordingSink()
    orchestrator = RebuildOrchestrator(
        session.store,
        session.discovery,
        session.compiler,
        writer,
        sink,
        session.config,
    )
    return orchestrator, writer, sink


def handle(orchestrator, kind, path):
    return asyncio.run(orchestrator.handle(FileEvent(kind, path)))


def test_changed_include_rebuilds_only_its_consumers(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    nav = write(tmp_path / "includes" / "nav.jinja", "NAV")

    rebuilt = handle(orchestrator, EventKind.CHANGE, nav)
    assert [page.url for page in rebuilt] == ["/docs/guide.html"]
    assert writer.writes == {"/docs/guide.html": "D[NAV<p>guide</p>\n]"}
    assert sink.urls == ["/docs/guide.html"]


def test_include_consumed_by_content_is_found(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    note = write(tmp_path / "includes" / "note.jinja", "NOTE")

    handle(orchestrator, EventKind.CHANGE, note)
    assert list(writer.writes) == ["/about.html"]
    assert writer.writes["/about.html"] == "L[<p>about NOTE</p>\n]"


def test_changed_content_rebuilds_its_page(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    about = write(tmp_path / "pages" / "about.md", "# About")

    handle(orchestrator, EventKind.CHANGE, about)
    assert writer.writes == {"/about.html": 'L[<h1 id="about">About</h1>\n]'}
    assert sink.urls == ["/about.html"]


def test_changed_layout_rebuilds_every_page_using_it(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    layout = write(tmp_path / "pages" / "index.layout.jinja", "<{{ page.content }}>")

    handle(orchestrator, EventKind.CHANGE, layout)
    assert sorted(writer.writes) == ["/about.html", "/index.html"]
    assert writer.writes["/index.html"] == "<<p>home</p>\n>"
    assert sorted(sink.urls) == ["/about.html", "/index.html"]


def test_invalidation_drops_the_stale_entries(tmp_path):
    orchestrator, _, _ = setup(tmp_path)
    store = orchestrator.store
    about = tmp_path / "pages" / "about.md"
    content_chain = [
        str(tmp_path / "output" / "about.html"),
        str(tmp_path / "pages" / "index.layout.jinja"),
        str(about),
    ]
    assert store.has(content_chain)

    orchestrator._invalidate(about)
    assert not store.has(content_chain)
    assert not store.has(content_chain[:1])
    assert store.has([str(tmp_path / "output" / "index.html")])


def test_added_page_rewrites_every_page_without_rerendering_content(tmp_path):
    spy = SpyRenderer()
    orchestrator, writer, sink = setup(tmp_path, renderer=spy)
    spy.rendered.clear()
    new = write(tmp_path / "pages" / "new.md", "new")

    rebuilt = handle(orchestrator, EventKind.ADD, new)
    assert len(rebuilt) == 4
    assert sorted(writer.writes) == ["/about.html", "/docs/guide.html", "/index.html", "/new.html"]
    assert writer.writes["/new.html"] == "L[<p>new</p>\n]"
    assert writer.writes["/about.html"] == "L[<p>about note</p>\n]"
    assert writer.writes["/docs/guide.html"] == "D[nav<p>guide</p>\n]"
    # Only the layouts and the new content run through the renderer.
    assert [path for path in spy.rendered if not is_layout(path)] == [new]
    assert sink.urls == [None]


def test_page_listings_follow_added_and_removed_pages(tmp_path):
    orchestrator, writer, sink = setup(
        tmp_path,
        files={
            "includes/menu.jinja": "{% for p in pages %}{{ p.url }};{% endfor %}",
            "pages/index.layout.jinja": "{{ include('menu') }}|{{ page.content }}",
        },
    )
    new = write(tmp_path / "pages" / "new.md", "new")
    handle(orchestrator, EventKind.ADD, new)
    assert "/new.html;" in writer.writes["/index.html"]
    assert "/new.html;" in writer.writes["/about.html"]

    about = tmp_path / "pages" / "about.md"
    about.unlink()
    handle(orchestrator, EventKind.REMOVE, about)
    assert writer.writes["/about.html"] is None
    assert "/about.html;" not in writer.writes["/index.html"]
    assert "/new.html;" in writer.writes["/index.html"]
    assert sink.urls == [None, None]


def test_added_section_changes_the_page_list(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    section = write(tmp_path / "pages" / "_intro.md", "intro")

    handle(orchestrator, EventKind.ADD, section)
    pages = orchestrator.discovery.discover(orchestrator.store)
    index = next(page for page in pages if page.url == "/index.html")
    assert [s.name for s in index.sections] == ["intro"]
    assert sink.urls == [None]


def test_removed_page_loses_its_output(tmp_path):
    orchestrator, _, sink = setup(tmp_path, writer=FileOutputWriter())
    output = tmp_path / "output" / "about.html"
    assert output.exists()

    about = tmp_path / "pages" / "about.md"
    about.unlink()
    handle(orchestrator, EventKind.REMOVE, about)
    assert not output.exists()
    assert (tmp_path / "output" / "index.html").exists()
    assert sink.urls == [None]


def test_page_turned_draft_is_removed(tmp_path):
    orchestrator, writer, _ = setup(tmp_path, development=False)
    about = write(tmp_path / "pages" / "about.md", "---\ndraft: true\n---\nsecret")

    handle(orchestrator, EventKind.CHANGE, about)
    assert writer.writes == {"/about.html": None}


def test_irrelevant_files_are_ignored(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    notes = write(tmp_path / "notes.txt", "x")
    swap = write(tmp_path / "pages" / ".about.md.swp", "x")

    assert handle(orchestrator, EventKind.CHANGE, notes) == []
    assert handle(orchestrator, EventKind.ADD, swap) == []
    assert writer.writes == {}
    assert sink.urls == []


def test_added_include_invalidates_nothing(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    entries = len(orchestrator.store)
    extra = write(tmp_path / "includes" / "extra.jinja", "extra")

    assert handle(orchestrator, EventKind.ADD, extra) == []
    assert len(orchestrator.store) == entries
    assert sink.urls == []


def test_classify(tmp_path):
    orchestrator, _, _ = setup(tmp_path)
    pages = tmp_path / "pages"
    assert orchestrator.classify(pages / "about.md") is FileCategory.CONTENT
    assert orchestrator.classify(pages / "_intro.md") is FileCategory.SECTION
    assert orchestrator.classify(pages / "index.layout.jinja") is FileCategory.LAYOUT
    assert orchestrator.classify(tmp_path / "includes" / "nav.jinja") is FileCategory.INCLUDE
    assert orchestrator.classify(pages / "_parts" / "table.md") is FileCategory.INCLUDE
    assert orchestrator.classify(pages / "README.md") is FileCategory.OTHER
    assert orchestrator.classify(pages / "img" / "logo.png") is FileCategory.STATIC
    assert orchestrator.classify(pages / "helpers.py") is FileCategory.OTHER
    assert orchestrator.classify(tmp_path / "quire.yaml") is FileCategory.CONFIG
    assert orchestrator.classify(tmp_path / "output" / "index.html") is FileCategory.OTHER


def test_static_files_are_copied_and_removed(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    logo = write(tmp_path / "pages" / "img" / "logo.png", "png")
    copied = tmp_path / "output" / "pages" / "img" / "logo.png"

    assert handle(orchestrator, EventKind.ADD, logo) == []
    assert copied.read_text(encoding="utf-8") == "png"

    logo.unlink()
    assert handle(orchestrator, EventKind.REMOVE, logo) == []
    assert not copied.exists()
    assert writer.writes == {}
    assert sink.urls == [None, None]


def test_refresh_external_data_rebuilds_all_pages(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    rebuilt = asyncio.run(orchestrator.refresh_external_data())
    assert len(rebuilt) == 3
    assert len(writer.writes) == 3
    assert sink.urls == [None]


def test_changed_app_settings_rebuild_every_page(tmp_path):
    orchestrator, writer, sink = setup(
        tmp_path,
        files={
            "quire.yaml": "app_settings:\n  name: One\n",
            "pages/index.layout.jinja": "{{ app_settings.name }}[{{ page.content }}]",
        },
    )
    config_file = write(tmp_path / "quire.yaml", "app_settings:\n  name: Two\n")

    rebuilt = handle(orchestrator, EventKind.CHANGE, config_file)
    assert len(rebuilt) == 3
    assert writer.writes["/index.html"] == "Two[<p>home</p>\n]"
    assert orchestrator.config.app_settings == {"name": "Two"}
    assert sink.urls == [None]


def test_other_config_changes_ask_for_a_restart(tmp_path, capsys):
    orchestrator, writer, sink = setup(tmp_path)
    config_file = write(tmp_path / "quire.yaml", "port: 5000\n")

    assert handle(orchestrator, EventKind.CHANGE, config_file) == []
    assert "restart the server" in capsys.readouterr().err
    assert orchestrator.config.port == 4000
    assert writer.writes == {}
    assert sink.urls == []


def test_unreadable_config_is_reported(tmp_path, capsys):
    orchestrator, writer, _ = setup(tmp_path)
    config_file = write(tmp_path / "quire.yaml", "app_settings: [\n")

    assert handle(orchestrator, EventKind.CHANGE, config_file) == []
    assert "Cannot read quire.yaml" in capsys.readouterr().err
    assert writer.writes == {}


def test_run_processes_events_in_order(tmp_path):
    orchestrator, writer, sink = setup(tmp_path)
    about = write(tmp_path / "pages" / "about.md", "one")
    guide = write(tmp_path / "pages" / "docs" / "guide.md", "two")

    async def scenario():
        channel = EventChannel()
        channel.publish(FileEvent(EventKind.CHANGE, about))
        channel.publish(FileEvent(EventKind.CHANGE, guide))
        channel.close()
        await orchestrator.run(channel)

    asyncio.run(scenario())
    assert sink.urls == ["/about.html", "/docs/guide.html"]


def test_channel_accepts_events_from_other_threads(tmp_path):
    event = FileEvent(EventKind.CHANGE, tmp_path / "x.md")

    async def scenario():
        channel = EventChannel(asyncio.get_running_loop())

        def watcher():
            channel.publish_threadsafe(event)
            channel.loop.call_soon_threadsafe(channel.close)

        thread = threading.Thread(target=watcher)
        thread.start()
        received = [item async for item in channel]
        thread.join()
        return received

    assert asyncio.run(scenario()) == [event]

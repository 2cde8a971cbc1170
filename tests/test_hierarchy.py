"""Tests for container page resolution (sync.hierarchy)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from docmirror.converters.models import plain_text
from docmirror.errors import ConfigurationInvalid, RemoteError
from docmirror.sync.corpus import Descriptor, DescriptorLoader
from docmirror.sync.hierarchy import (
    HierarchyResolver,
    container_body,
    format_segment_title,
)
from docmirror.sync.state import AUTO_ROOT_PAGE_ID, AUTO_ROOT_TITLE, SyncState


@pytest.fixture
def state(tmp_path: Path) -> SyncState:
    return SyncState(tmp_path / ".docmirror" / "state.json")


@pytest.fixture
def resolver(fake_client, state, project) -> HierarchyResolver:
    return HierarchyResolver(fake_client, state, DescriptorLoader(project))


@pytest.fixture
def root_id(fake_client) -> str:
    return fake_client.add_page("Root", kind="container")


class TestHelpers:
    def test_format_segment_title(self):
        assert format_segment_title("getting-started") == "Getting Started"
        assert format_segment_title("api_reference") == "Api Reference"

    def test_container_body_default(self):
        blocks = container_body("Guide", "guide", Descriptor())
        assert plain_text(blocks[0].text) == "This page contains documentation for Guide."
        assert plain_text(blocks[1].text) == "Category path: guide"
        assert len(blocks) == 2

    def test_container_body_with_descriptor(self):
        blocks = container_body("Guide", "guide", Descriptor(description="All about it", position=2))
        assert plain_text(blocks[0].text) == "All about it"
        assert plain_text(blocks[2].text) == "Sidebar position: 2"


class TestPathSegments:
    def test_docs_prefix_skipped(self, resolver):
        assert resolver.path_segments("docs/guide/advanced/tips.md") == (
            ["guide", "advanced"],
            "docs",
        )

    def test_other_prefix_kept(self, resolver):
        assert resolver.path_segments("manual/intro.md") == (["manual"], "")

    def test_top_level_file(self, resolver):
        assert resolver.path_segments("docs/index.md") == ([], "docs")


class TestResolve:
    """Creating, caching and reusing container pages."""

    async def test_top_level_file_goes_under_root(self, resolver, root_id):
        assert await resolver.resolve("docs/index.md", root_id) == root_id

    async def test_creates_nested_containers(self, resolver, fake_client, root_id, state):
        parent = await resolver.resolve("docs/guide/advanced/tips.md", root_id)

        guide = state.hierarchy_page_id("guide")
        advanced = state.hierarchy_page_id("guide/advanced")
        assert parent == advanced
        assert fake_client.pages[guide]["parent_id"] == root_id
        assert fake_client.pages[guide]["title"] == "Guide"
        assert fake_client.pages[advanced]["parent_id"] == guide
        assert resolver.created == 2

    async def test_second_resolve_uses_cache(self, resolver, fake_client, root_id):
        first = await resolver.resolve("docs/guide/a.md", root_id)
        creates = len(fake_client.calls_to("create_container_page"))
        second = await resolver.resolve("docs/guide/b.md", root_id)
        assert first == second
        assert len(fake_client.calls_to("create_container_page")) == creates

    async def test_flat_mode_returns_root(self, resolver, fake_client, root_id):
        assert await resolver.resolve("docs/guide/a.md", root_id, flat_mode=True) == root_id
        assert fake_client.calls_to("create_container_page") == []

    async def test_existing_page_found_by_title(self, resolver, fake_client, root_id):
        existing = fake_client.add_page("Guide", parent_id=root_id, kind="container")
        assert await resolver.resolve("docs/guide/a.md", root_id) == existing
        assert resolver.created == 0

    async def test_descriptor_label_used(self, resolver, fake_client, root_id, project):
        (project / "docs" / "guide").mkdir(parents=True)
        (project / "docs" / "guide" / "_category_.json").write_text(
            json.dumps({"label": "User Guide", "link": {"description": "Start here"}}),
            encoding="utf-8",
        )
        page_id = await resolver.resolve("docs/guide/a.md", root_id)
        page = fake_client.pages[page_id]
        assert page["title"] == "User Guide"
        assert plain_text(page["blocks"][0].text) == "Start here"

    async def test_persisted_mapping_reused_across_runs(self, fake_client, state, project, root_id):
        first = HierarchyResolver(fake_client, state, DescriptorLoader(project))
        page_id = await first.resolve("docs/guide/a.md", root_id)

        second = HierarchyResolver(fake_client, state, DescriptorLoader(project))
        assert await second.resolve("docs/guide/b.md", root_id) == page_id
        assert second.created == 0
        assert ("retrieve_page", page_id) in fake_client.calls


class TestSelfHealing:
    """Dead cached containers are replaced."""

    async def test_archived_container_recreated(self, resolver, fake_client, state, root_id):
        old = await resolver.resolve("docs/guide/a.md", root_id)
        fake_client.archive(old)

        fresh_resolver = HierarchyResolver(fake_client, state, DescriptorLoader(resolver.descriptors.project_root))
        new = await fresh_resolver.resolve("docs/guide/a.md", root_id)

        assert new != old
        assert state.hierarchy_page_id("guide") == new
        assert fresh_resolver.healed == 1
        assert fresh_resolver.created == 1

    async def test_deleted_container_recreated(self, resolver, fake_client, state, root_id):
        state.set_hierarchy_page_id("guide", "page-does-not-exist")
        new = await resolver.resolve("docs/guide/a.md", root_id)
        assert new != "page-does-not-exist"
        assert resolver.healed == 1

    async def test_descendants_evicted_with_dead_ancestor(self, resolver, fake_client, state, root_id):
        await resolver.resolve("docs/guide/advanced/a.md", root_id)
        fake_client.archive(state.hierarchy_page_id("guide"))

        fresh = HierarchyResolver(fake_client, state, DescriptorLoader(resolver.descriptors.project_root))
        leaf = await fresh.resolve("docs/guide/advanced/a.md", root_id)

        guide = state.hierarchy_page_id("guide")
        assert fake_client.pages[leaf]["parent_id"] == guide
        assert not fake_client.pages[guide]["archived"]

    async def test_container_confirmed_live_then_archived(self, resolver, fake_client, state, root_id):
        old = await resolver.resolve("docs/guide/advanced/a.md", root_id)
        guide = state.hierarchy_page_id("guide")
        fake_client.archive(guide)

        # Still memoised as live for this run.
        assert await resolver.resolve("docs/guide/advanced/b.md", root_id) == old

        assert resolver.invalidate_page(guide) == ["guide"]
        assert state.hierarchy_map() == {}
        assert resolver.healed == 1

        new = await resolver.resolve("docs/guide/advanced/b.md", root_id)
        assert new != old
        assert fake_client.pages[state.hierarchy_page_id("guide")]["archived"] is False

    async def test_invalidate_unknown_page(self, resolver, root_id, state):
        await resolver.resolve("docs/guide/a.md", root_id)
        assert resolver.invalidate_page("not-a-container") == []
        assert resolver.healed == 0
        assert "guide" in state.hierarchy_map()

    async def test_other_remote_errors_propagate(self, resolver, fake_client, state, root_id):
        state.set_hierarchy_page_id("guide", "c1")

        async def broken(page_id):
            raise RemoteError("boom", status=500)

        fake_client.retrieve_page = broken
        with pytest.raises(RemoteError):
            await resolver.resolve("docs/guide/a.md", root_id)
        assert state.hierarchy_page_id("guide") == "c1"


class TestRoot:
    async def test_configured_live_root(self, resolver, root_id):
        assert await resolver.resolve_root(root_id) == root_id

    async def test_configured_archived_root_rejected(self, resolver, fake_client, root_id):
        fake_client.archive(root_id)
        with pytest.raises(ConfigurationInvalid):
            await resolver.resolve_root(root_id)

    async def test_configured_missing_root_rejected(self, resolver):
        with pytest.raises(ConfigurationInvalid):
            await resolver.resolve_root("missing-page")

    async def test_auto_root_created_once(self, resolver, fake_client, state):
        first = await resolver.resolve_root(None)
        assert fake_client.pages[first]["parent_id"] is None
        assert fake_client.pages[first]["title"] == "Documentation"
        assert state.get_metadata(AUTO_ROOT_PAGE_ID) == first
        assert state.get_metadata(AUTO_ROOT_TITLE) == "Documentation"

        assert await resolver.resolve_root(None) == first
        assert len(fake_client.calls_to("create_container_page")) == 1

    async def test_dead_auto_root_replaced_and_hierarchy_cleared(self, resolver, fake_client, state):
        first = await resolver.resolve_root(None)
        await resolver.resolve("docs/guide/a.md", first)
        fake_client.archive(first)

        fresh = HierarchyResolver(fake_client, state, DescriptorLoader(resolver.descriptors.project_root))
        second = await fresh.resolve_root(None)
        assert second != first
        assert state.hierarchy_map() == {}


class TestWholeMap:
    async def test_validate_hierarchy(self, resolver, fake_client, state, root_id):
        await resolver.resolve("docs/guide/advanced/a.md", root_id)
        await resolver.resolve("docs/api/b.md", root_id)
        fake_client.archive(state.hierarchy_page_id("guide"))

        fresh = HierarchyResolver(fake_client, state, DescriptorLoader(resolver.descriptors.project_root))
        evicted = await fresh.validate_hierarchy()
        assert evicted == ["guide"]
        assert set(state.hierarchy_map()) == {"api"}

    async def test_hierarchy_tree(self, resolver, state, root_id):
        await resolver.resolve("docs/guide/advanced/a.md", root_id)
        await resolver.resolve("docs/api/b.md", root_id)

        tree = resolver.hierarchy_tree()
        assert [node.path_key for node in tree] == ["api", "guide"]
        guide = tree[1]
        assert [child.path_key for child in guide.children] == ["guide/advanced"]
        assert guide.children[0].parent_path_key == "guide"
        assert guide.children[0].title == "advanced"

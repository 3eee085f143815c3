"""
Tests for tree lookups, log search and issue listing
"""
from datetime import datetime

import pytest
from sqlalchemy import delete, func, select

from rain.core.exceptions import BadRequestError, NotFoundError
from rain.models import Bundle, FileNode, LogSegment
from rain.services.ingest import BundleContext, ensure_issue, ingest_file
from rain.services.query import (
    RootRef,
    StoredRef,
    build_snippet,
    get_issue_bundles,
    get_node,
    parse_node_ref,
    search_logs,
)
from rain.services.tree_builder import create_file_node


async def ingest(db, bundle, data_root, name, data, content_type=None):
    context = BundleContext(bundle_id=bundle.id, bundle_hash=bundle.hash, data_root=data_root)
    result = await ingest_file(db, context, name, name, content_type, data)
    await db.commit()
    return result


class TestParseNodeRef:

    @pytest.mark.parametrize("raw", ["root", "ROOT", " Root "])
    def test_root(self, raw):
        assert parse_node_ref(raw) == RootRef()

    def test_stored(self):
        assert parse_node_ref("42") == StoredRef(42)

    @pytest.mark.parametrize("raw", ["abc", "", "1.5"])
    def test_invalid(self, raw):
        with pytest.raises(BadRequestError):
            parse_node_ref(raw)


class TestBuildSnippet:

    def test_short_content_is_returned_whole(self):
        assert build_snippet("ERROR boom", "boom") == "ERROR boom"

    def test_window_with_ellipses(self):
        content = "x" * 100 + "boom" + "y" * 100
        assert build_snippet(content, "boom") == "..." + "x" * 40 + "boom" + "y" * 40 + "..."

    def test_ellipsis_only_where_cut(self):
        content = "boom" + "y" * 100
        assert build_snippet(content, "boom") == "boom" + "y" * 40 + "..."

    def test_case_insensitive_match(self):
        content = "a" * 50 + "BooM" + "b" * 5
        assert build_snippet(content, "boom") == "..." + "a" * 40 + "BooM" + "b" * 5

    def test_fallback_without_match(self):
        content = "z" * 200
        assert build_snippet(content, "boom") == "z" * 120


class TestGetNode:

    @pytest.mark.asyncio
    async def test_root_lists_top_level_dirs_first(self, db, bundle):
        for name, is_dir in [("b.log", False), ("zeta", True), ("a.txt", False), ("alpha", True)]:
            await create_file_node(
                db,
                bundle_id=bundle.id,
                parent=None,
                name=name,
                path=f"/{bundle.hash}/{name}",
                is_dir=is_dir,
                size_bytes=None if is_dir else 1,
            )
        await db.commit()

        response = await get_node(db, bundle.hash, RootRef())

        assert response.node.id == "root"
        assert response.node.name == "abc123_root"
        assert response.node.path == "/abc123"
        assert response.node.is_dir is True
        assert response.node.size_bytes is None
        assert response.node.meta == {"bundle_hash": "abc123", "bundle_name": "test bundle"}
        assert [c.name for c in response.children] == ["alpha", "zeta", "a.txt", "b.log"]

    @pytest.mark.asyncio
    async def test_stored_node_with_children(self, db, bundle, data_root, make_zip):
        result = await ingest(db, bundle, data_root, "logs.zip", make_zip([("sub/deep.log", "x\n")]))

        zip_response = await get_node(db, bundle.hash, StoredRef(result.file_id))
        assert zip_response.node.name == "logs.zip"
        assert zip_response.node.meta["kind"] == "uploaded_file"
        assert [c.name for c in zip_response.children] == ["logs.zip_extracted"]

        extracted_id = int(zip_response.children[0].id)
        extracted = await get_node(db, bundle.hash, StoredRef(extracted_id))
        assert [c.name for c in extracted.children] == ["sub"]

    @pytest.mark.asyncio
    async def test_unknown_bundle(self, db):
        with pytest.raises(NotFoundError):
            await get_node(db, "nope", RootRef())

    @pytest.mark.asyncio
    async def test_node_from_another_bundle(self, db, bundle, data_root):
        result = await ingest(db, bundle, data_root, "app.log", b"x")

        await ensure_issue(db, "ISSUE-9")
        db.add(Bundle(id="other-bundle", hash="def456", name="other", issue_code="ISSUE-9"))
        await db.commit()

        with pytest.raises(NotFoundError):
            await get_node(db, "def456", StoredRef(result.file_id))

    @pytest.mark.asyncio
    async def test_missing_node(self, db, bundle):
        with pytest.raises(NotFoundError):
            await get_node(db, bundle.hash, StoredRef(999))


class TestSearchLogs:

    @pytest.mark.asyncio
    async def test_matches_case_insensitively(self, db, bundle, data_root):
        await ingest(db, bundle, data_root, "app.log", b"line one\n\nERROR Boom\nall quiet\nboom again\n")

        response = await search_logs(db, bundle.hash, "boom")

        assert response.total == 2
        assert [(h.offset, h.snippet) for h in response.hits] == [(2, "ERROR Boom"), (4, "boom again")]
        assert response.hits[0].path == f"/{bundle.hash}/app.log"
        assert response.hits[0].timeline == "all"

    @pytest.mark.asyncio
    async def test_snippet_context(self, db, bundle, data_root):
        line = "a" * 60 + " boom " + "b" * 60
        await ingest(db, bundle, data_root, "app.log", line.encode())

        hit = (await search_logs(db, bundle.hash, "boom")).hits[0]

        assert hit.snippet == "..." + "a" * 39 + " boom " + "b" * 39 + "..."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", None])
    async def test_empty_query_is_bad_request(self, db, bundle, query):
        with pytest.raises(BadRequestError):
            await search_logs(db, bundle.hash, query)

    @pytest.mark.asyncio
    async def test_empty_query_checked_before_bundle(self, db):
        with pytest.raises(BadRequestError):
            await search_logs(db, "does-not-exist", " ")

    @pytest.mark.asyncio
    async def test_unknown_bundle(self, db):
        with pytest.raises(NotFoundError):
            await search_logs(db, "does-not-exist", "boom")

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, db, bundle, data_root):
        await ingest(db, bundle, data_root, "app.log", b"100% done\nabc\nunder_score\nunderXscore\n")

        assert (await search_logs(db, bundle.hash, "%")).total == 1
        assert (await search_logs(db, bundle.hash, "under_")).total == 1

    @pytest.mark.asyncio
    async def test_timeline_filter(self, db, bundle, data_root):
        await ingest(db, bundle, data_root, "app.log", b"boom\n")

        assert (await search_logs(db, bundle.hash, "boom", timeline="all")).total == 1
        assert (await search_logs(db, bundle.hash, "boom", timeline="nightly")).total == 0

    @pytest.mark.asyncio
    async def test_limit_keeps_total(self, db, bundle, data_root):
        await ingest(db, bundle, data_root, "app.log", b"\n".join(b"boom %d" % i for i in range(5)))

        response = await search_logs(db, bundle.hash, "boom", limit=2)

        assert response.total == 5
        assert [h.offset for h in response.hits] == [0, 1]

    @pytest.mark.asyncio
    async def test_search_is_scoped_to_bundle(self, db, bundle, data_root):
        await ingest(db, bundle, data_root, "app.log", b"boom\n")
        db.add(Bundle(id="other-bundle", hash="def456", name="other", issue_code="ISSUE-1"))
        await db.commit()

        assert (await search_logs(db, "def456", "boom")).total == 0

    @pytest.mark.asyncio
    async def test_hit_order(self, db, bundle):
        """Segments without an offset come first, equal offsets keep insertion order"""
        files = {}
        for name in ("a.log", "b.log"):
            files[name] = await create_file_node(
                db,
                bundle_id=bundle.id,
                parent=None,
                name=name,
                path=f"/{bundle.hash}/{name}",
                is_dir=False,
                size_bytes=1,
            )

        rows = [
            ("b.log", 3, "boom late"),
            ("a.log", 1, "boom a1"),
            ("b.log", None, "boom unplaced"),
            ("b.log", 1, "boom b1"),
            ("a.log", 1, "boom a1 again"),
        ]
        for name, offset, content in rows:
            db.add(LogSegment(bundle_id=bundle.id, file_id=files[name].id, offset=offset, content=content))
            await db.flush()
        await db.commit()

        response = await search_logs(db, bundle.hash, "boom")

        assert [(h.offset, h.snippet) for h in response.hits] == [
            (None, "boom unplaced"),
            (1, "boom a1"),
            (1, "boom b1"),
            (1, "boom a1 again"),
            (3, "boom late"),
        ]
        assert response.hits[2].path == f"/{bundle.hash}/b.log"

    @pytest.mark.asyncio
    async def test_default_hit_cap(self, db, bundle, data_root):
        await ingest(db, bundle, data_root, "app.log", b"\n".join(b"boom %d" % i for i in range(60)))

        response = await search_logs(db, bundle.hash, "boom")

        assert response.total == 60
        assert len(response.hits) == 50
        assert [h.offset for h in response.hits] == list(range(50))


class TestIssueBundles:

    @pytest.mark.asyncio
    async def test_newest_first(self, db):
        await ensure_issue(db, "ISSUE-3", "Crash on start")
        db.add_all([
            Bundle(hash="old", name="old run", issue_code="ISSUE-3", status="READY",
                   created_at=datetime(2024, 1, 1)),
            Bundle(hash="new", name="new run", issue_code="ISSUE-3", status="PROCESSING",
                   created_at=datetime(2024, 6, 1)),
        ])
        await db.commit()

        response = await get_issue_bundles(db, "ISSUE-3")

        assert response.name == "Crash on start"
        assert [b.hash for b in response.log_bundles] == ["new", "old"]
        assert response.log_bundles[0].status.upload_status == "PROCESSING"

    @pytest.mark.asyncio
    async def test_unknown_issue(self, db):
        with pytest.raises(NotFoundError):
            await get_issue_bundles(db, "missing")


class TestBundleDeletion:

    @pytest.mark.asyncio
    async def test_delete_cascades_to_nodes_and_segments(self, db, bundle, data_root, make_zip):
        await ingest(db, bundle, data_root, "app.log", b"a\nb\n")
        await ingest(db, bundle, data_root, "logs.zip", make_zip([("sub/deep.log", "c\n")]))

        await db.execute(delete(Bundle).where(Bundle.id == bundle.id))
        await db.commit()

        assert await db.scalar(select(func.count(FileNode.id))) == 0
        assert await db.scalar(select(func.count(LogSegment.id))) == 0

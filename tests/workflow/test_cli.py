"""Tests for the workflow CLI."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from src.workflow.main import build_parser, main
from src.workflow.models import ContentIndexEntry
from src.workflow.orchestrator import PublishingOrchestrator
from src.workflow.status import PlatformStatus


@pytest.fixture
def db_path(tmp_path) -> str:
    # same file the shared ``store`` fixture opens
    return str(tmp_path / "test_content_ops.db")


@pytest.fixture
def fake_orchestrator(enhancer, adapter):
    """Patch the CLI so it builds orchestrators around the fake adapter."""

    def build(store):
        return PublishingOrchestrator(store, enhancer=enhancer, adapter_factory=lambda platform, config: adapter)

    with patch("src.workflow.main.PublishingOrchestrator", side_effect=build):
        yield


class TestParser:
    def test_publish_flags(self):
        args = build_parser().parse_args(["publish", "--org", "o", "--publishing-id", "p", "--draft"])
        assert args.draft is True
        assert args.strict is None
        assert args.role == "admin"

    def test_enqueue_rejects_unknown_operation(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["enqueue", "--org", "o", "--publishing-id", "p", "--operation", "explode"])


class TestInitDb:
    def test_init_db(self, tmp_path, capsys):
        path = tmp_path / "cli" / "init.db"
        assert main(["--db", str(path), "init-db"]) == 0
        assert path.exists()
        assert "Database initialized" in capsys.readouterr().out


class TestRecordCommands:
    def test_publish(self, db_path, store, record, fake_orchestrator, capsys):
        code = main(["--db", db_path, "publish", "--org", record.org_id, "--publishing-id", record.publishing_id])
        out = capsys.readouterr().out
        assert code == 0
        assert "Publish - OK" in out
        assert "item-1" in out
        assert store.get_publishing(record.org_id, record.publishing_id).status == PlatformStatus.PUBLISHED

    def test_missing_record(self, db_path, store, record, fake_orchestrator, capsys):
        code = main(["--db", db_path, "publish", "--org", record.org_id, "--publishing-id", "nope"])
        out = capsys.readouterr().out
        assert code == 1
        assert "FAILED (404)" in out
        assert "NOT_FOUND" in out

    def test_role_is_enforced(self, db_path, store, record, fake_orchestrator, capsys):
        code = main([
            "--db", db_path, "delete",
            "--org", record.org_id, "--publishing-id", record.publishing_id, "--role", "writer",
        ])
        assert code == 1
        assert "FORBIDDEN" in capsys.readouterr().out

    def test_cancel(self, db_path, store, record, fake_orchestrator, capsys):
        code = main(["--db", db_path, "cancel", "--org", record.org_id, "--publishing-id", record.publishing_id])
        assert code == 0
        assert "cancelled" in capsys.readouterr().out

    def test_recover_lists_nothing(self, db_path, store, record, fake_orchestrator, capsys):
        code = main(["--db", db_path, "recover", "--org", record.org_id])
        assert code == 0
        assert "Records:  0" in capsys.readouterr().out


class TestTaskCommands:
    def test_enqueue_then_worker(self, db_path, store, record, fake_orchestrator, capsys):
        code = main(["--db", db_path, "enqueue", "--org", record.org_id, "--publishing-id", record.publishing_id])
        task = json.loads(capsys.readouterr().out)
        assert code == 0
        assert task["status"] == "queued"
        assert task["operation"] == "publish"

        assert main(["--db", db_path, "worker", "--max-tasks", "1"]) == 0
        assert "processed 1 task(s)" in capsys.readouterr().out
        assert store.get_task(task["task_id"]).status.value == "succeeded"


class TestValidateLinks:
    @pytest.fixture
    def indexed(self, store, record):
        store.save_content_index([
            ContentIndexEntry(
                org_id=record.org_id, site_id="site-a", url="https://blog.example.com/guides/grinders", slug="grinders"
            ),
            ContentIndexEntry(
                org_id=record.org_id, site_id="site-b", url="https://other-brand.com/guides/grinders", slug="grinders"
            ),
        ])
        return record

    def _run(self, db_path, indexed, html_file, *extra):
        return main([
            "--db", db_path, "validate-links",
            "--org", indexed.org_id,
            "--site-id", "site-a",
            "--site-url", "https://blog.example.com",
            "--file", str(html_file),
            *extra,
        ])

    def test_broken_link_blocks(self, db_path, indexed, tmp_path, capsys):
        html = tmp_path / "post.html"
        html.write_text('<p><a href="http://bad host/">x</a></p>', encoding="utf-8")
        assert self._run(db_path, indexed, html) == 1
        assert "**Status:** Blocked" in capsys.readouterr().out

    def test_wrong_site_fixed(self, db_path, indexed, tmp_path, capsys):
        html = tmp_path / "post.html"
        fixed = tmp_path / "fixed.html"
        html.write_text('<p><a href="https://other-brand.com/guides/grinders">grinders</a></p>', encoding="utf-8")

        assert self._run(db_path, indexed, html, "--fix-output", str(fixed)) == 0
        assert "Wrong site: 1" in capsys.readouterr().out
        assert 'href="https://blog.example.com/guides/grinders"' in fixed.read_text(encoding="utf-8")

    def test_wrong_site_strict_blocks(self, db_path, indexed, tmp_path):
        html = tmp_path / "post.html"
        html.write_text('<a href="https://other-brand.com/guides/grinders">grinders</a>', encoding="utf-8")
        assert self._run(db_path, indexed, html, "--strict") == 1

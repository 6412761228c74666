"""Tests for the polling template watcher."""

import logging
import time

from thingsystem.services.template_watcher import TemplateWatcher, file_signature
from thingsystem.services.templates import TemplateSources
from tests.conftest import append_to_template


class TestFileSignature:

    def test_missing_file_has_no_signature(self, tmp_path):
        assert file_signature(tmp_path / "nope.txt") is None

    def test_signature_changes_with_size(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("a", encoding="utf-8")
        before = file_signature(path)
        path.write_text("abc", encoding="utf-8")

        assert file_signature(path) != before


class TestPoll:

    def _watcher(self, templates_dir, calls):
        return TemplateWatcher(TemplateSources(templates_dir).paths().values(), calls.append, interval=0.05)

    def test_no_change_does_not_notify(self, templates_dir):
        calls = []
        watcher = self._watcher(templates_dir, calls)

        assert watcher.poll() is False
        assert calls == []

    def test_edit_notifies_once(self, templates_dir):
        calls = []
        watcher = self._watcher(templates_dir, calls)

        append_to_template(templates_dir, "style.css", "\n/* more */\n")

        assert watcher.poll() is True
        assert watcher.poll() is False
        assert len(calls) == 1
        assert "style.css" in calls[0]

    def test_deletion_notifies(self, templates_dir):
        calls = []
        watcher = self._watcher(templates_dir, calls)

        (templates_dir / "client.js").unlink()

        assert watcher.poll() is True
        assert "client.js" in calls[0]


class TestThread:

    def test_background_thread_reports_changes_to_loader_queue(self, loader, templates_dir, restarts):
        loader.boot()
        watcher = TemplateWatcher(
            loader.sources.paths().values(), loader.notify_template_change, interval=0.02,
        )
        watcher.start()
        try:
            append_to_template(templates_dir, "index.html", "\n<!-- more -->\n")
            handled = False
            deadline = time.monotonic() + 5
            while not handled and time.monotonic() < deadline:
                handled = loader.process_next_signal(timeout=0.1)
        finally:
            watcher.stop()

        assert handled is True
        assert len(restarts) == 1

    def test_stop_ends_thread(self, templates_dir):
        watcher = TemplateWatcher(TemplateSources(templates_dir).paths().values(), lambda reason: None, interval=0.01)
        watcher.start()
        watcher.stop()

        assert watcher._thread is None

    def test_failing_notify_is_logged_and_polling_continues(self, templates_dir, caplog):
        calls = []

        def notify(reason):
            calls.append(reason)
            if len(calls) == 1:
                raise RuntimeError("queue closed")

        def wait_for(count):
            deadline = time.monotonic() + 5
            while len(calls) < count and time.monotonic() < deadline:
                time.sleep(0.01)

        watcher = TemplateWatcher(TemplateSources(templates_dir).paths().values(), notify, interval=0.02)
        with caplog.at_level(logging.ERROR, logger="thingsystem.services.template_watcher"):
            watcher.start()
            try:
                append_to_template(templates_dir, "style.css", "\n/* one */\n")
                wait_for(1)
                append_to_template(templates_dir, "style.css", "\n/* two */\n")
                wait_for(2)
            finally:
                watcher.stop()

        assert len(calls) == 2
        failures = [r for r in caplog.records if r.msg == "Template poll failed: %s"]
        assert len(failures) == 1
        assert failures[0].getMessage() == "Template poll failed: queue closed"

"""Tests for controller wiring and lifecycle."""

from __future__ import annotations

import copy
import threading
from unittest.mock import MagicMock

import pytest

from kube_janitor.config import DEFAULTS
from kube_janitor.controller import Controller
from kube_janitor.errors import CacheSyncError
from kube_janitor.notifier import LogBackend


@pytest.fixture
def cfg():
    return copy.deepcopy(DEFAULTS)


@pytest.fixture
def parts():
    watcher, dispatcher, scheduler = MagicMock(), MagicMock(), MagicMock()
    scheduler.grace_period = 20.0
    scheduler.in_flight.return_value = 0
    scheduler.drain.return_value = True
    watcher.__len__.return_value = 3
    return watcher, dispatcher, scheduler


class TestFromConfig:
    def test_policy_applied(self, cfg):
        cfg["policy"].update(
            grace_period_seconds=45,
            crashloop_restart_threshold=8,
            reclassify_on_update=True,
            dry_run=True,
        )
        cfg["kubernetes"].update(namespaces=["shop"], exclude_namespaces=["kube-system"])

        controller = Controller.from_config(cfg, core_api=MagicMock(), notifier=MagicMock())

        assert controller.scheduler.grace_period == 45.0
        assert controller.scheduler.deleter.dry_run is True
        assert controller.dispatcher.restart_threshold == 8
        assert controller.dispatcher.reclassify_on_update is True
        assert controller.watcher._scopes == ["shop"]

    def test_log_notifier_without_slack(self, cfg):
        controller = Controller.from_config(cfg, core_api=MagicMock())
        assert isinstance(controller.scheduler.notifier.backend, LogBackend)


class TestLifecycle:
    def test_start_attaches_handlers_after_sync(self, parts):
        watcher, dispatcher, scheduler = parts
        watcher.wait_for_sync.return_value = True

        Controller(watcher, dispatcher, scheduler, sync_timeout=3).start()

        watcher.start.assert_called_once()
        watcher.wait_for_sync.assert_called_once_with(3)
        watcher.add_handler.assert_called_once_with(
            on_add=dispatcher.on_add,
            on_update=dispatcher.on_update,
            on_delete=dispatcher.on_delete,
            replay=True,
        )

    def test_start_fails_when_sync_times_out(self, parts):
        watcher, dispatcher, scheduler = parts
        watcher.wait_for_sync.return_value = False

        with pytest.raises(CacheSyncError):
            Controller(watcher, dispatcher, scheduler, sync_timeout=1).start()

        watcher.stop.assert_called_once()
        watcher.add_handler.assert_not_called()

    def test_stop_drains(self, parts):
        watcher, dispatcher, scheduler = parts
        Controller(watcher, dispatcher, scheduler, drain_timeout=12).stop()

        watcher.stop.assert_called_once()
        scheduler.drain.assert_called_once_with(12)

    def test_stop_without_drain(self, parts):
        watcher, dispatcher, scheduler = parts
        Controller(watcher, dispatcher, scheduler, drain=False).stop()
        scheduler.drain.assert_not_called()

    def test_run_until_stop_event(self, parts):
        watcher, dispatcher, scheduler = parts
        watcher.wait_for_sync.return_value = True
        stop_event = threading.Event()
        stop_event.set()

        Controller(watcher, dispatcher, scheduler).run(stop_event)

        watcher.start.assert_called_once()
        watcher.stop.assert_called_once()
        scheduler.drain.assert_called_once()

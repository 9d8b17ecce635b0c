"""Tests for reconciliation passes and the change watcher they drive."""

from __future__ import annotations

import logging

import pytest

from flowdir.core.directions import Direction, DirectionSetting, RegionKind, WatchCategory
from flowdir.engine.render_tree import MemoryRenderTree
from flowdir.engine.resolver import DirectionResolver
from flowdir.services.overrides import InMemoryMetadataStore
from flowdir.services.settings import DirectionSettings
from flowdir.utils.logging import PASS_LOGGER_NAME
from tests.helpers import ManualClock, make_engine

HEBREW = "שלום עולם"
ARABIC = "مرحبا بالعالم"


class TestFullPass:
    """Initial and repeated full passes."""

    def test_marks_every_region_kind(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        panel = tree.add_region(RegionKind.LEFT_PANEL, HEBREW)
        engine, _, _ = make_engine(tree)

        report = engine.start()

        assert report.applied == 2
        assert report.attached == 1
        assert editor.effective_direction == "rtl"
        assert editor.attributes["data-direction"] == "auto"
        assert editor.classes == {"rtl-mode", "auto-detect-direction"}
        assert panel.effective_direction == "ltr"
        assert panel.classes == {"ltr-mode"}
        assert tree.is_observed(editor)
        assert not tree.is_observed(panel)

    def test_concrete_settings_never_read_text(self, tree: MemoryRenderTree) -> None:
        settings = DirectionSettings(per_kind={kind: DirectionSetting.RTL for kind in RegionKind})
        for kind in RegionKind:
            tree.add_region(kind, "plain english text")
        engine, _, _ = make_engine(tree, settings=settings)

        engine.start()

        assert tree.text_reads == 0
        assert tree.observer_count(WatchCategory.CONTENT) == 0
        assert not engine.reconciler.watcher.is_active(WatchCategory.CONTENT)
        assert {node.effective_direction for node in tree.list_regions(RegionKind.TAG_BROWSER)} == {"rtl"}

    def test_repeated_passes_are_idempotent(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, ARABIC)
        tree.add_region(RegionKind.SEARCH_RESULTS, "results")
        engine, _, _ = make_engine(tree)
        engine.start()
        attributes = dict(editor.attributes)
        classes = set(editor.classes)

        engine.layout_changed()
        second = engine.layout_changed()

        assert editor.attributes == attributes
        assert editor.classes == classes
        assert tree.observer_count(WatchCategory.CONTENT) == 2
        assert len(engine.reconciler.registry) == 2
        assert second.attached == 0
        assert second.detached == 0

    def test_failure_of_one_region_does_not_stop_the_pass(self, tree: MemoryRenderTree) -> None:
        broken = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        healthy = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        tree.fail_on(broken)
        engine, _, _ = make_engine(tree)

        report = engine.start()

        assert report.failed == 1
        assert healthy.effective_direction == "rtl"
        assert broken.effective_direction is None

    def test_pass_summaries_go_to_the_pass_logger(
        self, tree: MemoryRenderTree, caplog: pytest.LogCaptureFixture
    ) -> None:
        broken = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        tree.add_region(RegionKind.LEFT_PANEL, "english")
        engine, _, _ = make_engine(tree)

        with caplog.at_level(logging.DEBUG, logger=PASS_LOGGER_NAME):
            engine.start()
            tree.fail_on(broken)
            engine.layout_changed()

        records = [record for record in caplog.records if record.name == PASS_LOGGER_NAME]
        assert [record.levelno for record in records] == [logging.DEBUG, logging.WARNING]
        assert records[0].getMessage().startswith("full: applied=2")
        assert "failed=0" not in records[1].getMessage()

    def test_detection_disabled_uses_global_default_and_detaches(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, "english")
        engine, _, _ = make_engine(tree)
        engine.start()
        assert tree.is_observed(editor)

        report = engine.update_settings(
            DirectionSettings(global_default=DirectionSetting.RTL, detection_enabled=False)
        )

        assert report.detached == 1
        assert editor.effective_direction == "rtl"
        assert not engine.reconciler.watcher.is_active(WatchCategory.CONTENT)

    def test_switching_kind_to_concrete_setting_detaches_watch(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        engine, _, _ = make_engine(tree)
        engine.start()

        engine.update_settings(engine.settings.with_kind(RegionKind.PRIMARY_EDITOR, DirectionSetting.LTR))

        assert editor.effective_direction == "ltr"
        assert editor.attributes["data-direction"] == "ltr"
        assert "auto-detect-direction" not in editor.classes
        assert tree.observer_count(WatchCategory.CONTENT) == 0

    def test_removed_regions_are_released(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        engine, _, _ = make_engine(tree)
        engine.start()

        tree.remove(editor)
        report = engine.layout_changed()

        assert report.removed == 1
        assert editor not in engine.reconciler.registry
        assert not engine.reconciler.watcher.is_active(WatchCategory.CONTENT)
        assert tree.observer_count(WatchCategory.CONTENT) == 0


class TestContentChanges:
    """Debounced reclassification of auto-detect regions."""

    def test_burst_of_edits_reclassifies_once(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        engine, _, clock = make_engine(tree)
        engine.start()
        applied_before = len(tree.applied_to(editor))

        for index in range(5):
            tree.set_text(editor, f"english draft {index}")
            clock.advance(100)

        assert editor.effective_direction == "rtl"
        clock.advance(400)

        assert editor.effective_direction == "ltr"
        assert len(tree.applied_to(editor)) == applied_before + 1
        assert engine.scheduler.drain_count(WatchCategory.CONTENT) == 1

    def test_edit_keeping_direction_does_not_rewrite_marking(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        engine, _, clock = make_engine(tree)
        engine.start()
        applied_before = len(tree.applied_to(editor))

        tree.set_text(editor, ARABIC)
        clock.advance(500)

        assert len(tree.applied_to(editor)) == applied_before
        assert engine.reconciler.history[-1].skipped == 1

    def test_engine_writes_do_not_trigger_reclassification(self) -> None:
        tree = MemoryRenderTree(echo_markings=True)
        tree.add_region(RegionKind.PRIMARY_EDITOR, HEBREW)
        engine, _, clock = make_engine(tree)
        engine.start()

        engine.layout_changed()

        assert engine.reconciler.watcher.suppressed_batches >= 1
        assert clock.pending == 0
        passes = len(engine.reconciler.history)
        clock.advance(1000)
        assert len(engine.reconciler.history) == passes

    def test_edits_in_background_documents_are_ignored(self, tree: MemoryRenderTree) -> None:
        active = tree.add_region(RegionKind.PRIMARY_EDITOR, "english", document_id="a.md")
        background = tree.add_region(RegionKind.PRIMARY_EDITOR, "english", document_id="b.md")
        engine, _, clock = make_engine(tree)
        engine.start()
        engine.activate_document("a.md")

        tree.set_text(background, HEBREW)
        clock.advance(500)
        assert background.effective_direction == "ltr"

        tree.set_text(active, HEBREW)
        clock.advance(500)
        assert active.effective_direction == "rtl"

    def test_edit_on_removed_region_is_dropped(self, tree: MemoryRenderTree) -> None:
        editor = tree.add_region(RegionKind.PRIMARY_EDITOR, "english")
        engine, _, clock = make_engine(tree)
        engine.start()
        passes = len(engine.reconciler.history)

        tree.set_text(editor, HEBREW)
        tree.remove(editor)
        clock.advance(500)

        assert len(engine.reconciler.history) == passes


class TestCards:
    """Canvas card insertion."""

    def test_inserted_card_is_marked_on_next_tick(self, tree: MemoryRenderTree, clock: ManualClock) -> None:
        host = tree.add_card_host()
        engine, _, _ = make_engine(tree, clock=clock)
        engine.start()
        assert tree.is_observed(host, WatchCategory.CARDS)

        card = tree.insert_card(host, ARABIC)
        assert card.effective_direction is None

        clock.advance(0)

        assert card.effective_direction == "rtl"
        assert tree.is_observed(card)
        assert engine.reconciler.history[-1].label == "cards"

    def test_removed_host_is_released(self, tree: MemoryRenderTree) -> None:
        host = tree.add_card_host()
        engine, _, _ = make_engine(tree)
        engine.start()

        tree.remove(host)
        engine.layout_changed()

        assert not engine.reconciler.watcher.is_active(WatchCategory.CARDS)
        assert tree.observer_count(WatchCategory.CARDS) == 0


class TestPassOrdering:
    """Passes requested while another pass runs."""

    def test_nested_requests_are_deferred_and_deduplicated(self, tree: MemoryRenderTree) -> None:
        tree.add_region(RegionKind.PRIMARY_EDITOR, "english")
        nested = []

        def classifier(text, config=None):
            if not nested:
                nested.append(engine.reconciler.full_pass())
                nested.append(engine.reconciler.full_pass())
            return Direction.RTL

        engine, _, _ = make_engine(tree, resolver=DirectionResolver(classifier=classifier))
        engine.start()

        assert [report.deferred for report in nested] == [True, True]
        assert [report.label for report in engine.reconciler.history] == ["full", "full"]
        assert not engine.reconciler.running

    def test_reclassify_ignores_unknown_handles(self, tree: MemoryRenderTree) -> None:
        engine, _, _ = make_engine(tree)
        engine.start()
        stray = MemoryRenderTree().add_region(RegionKind.PRIMARY_EDITOR, HEBREW)

        report = engine.reconciler.reclassify([stray])

        assert report.touched == 0
        assert stray not in engine.reconciler.registry


def test_override_applies_only_to_editors_of_the_active_document(tree: MemoryRenderTree) -> None:
    owner = tree.add_region(RegionKind.PRIMARY_EDITOR, "english", document_id="a.md")
    other = tree.add_region(RegionKind.PRIMARY_EDITOR, "english", document_id="b.md")
    engine, _, _ = make_engine(tree, metadata=InMemoryMetadataStore({"a.md": "rtl"}))
    engine.start()

    engine.activate_document("a.md")

    assert owner.effective_direction == "rtl"
    assert owner.attributes["data-direction"] == "rtl"
    assert not tree.is_observed(owner)
    assert other.effective_direction == "ltr"
    assert tree.is_observed(other)

"""Integration tests for the TUI app using Textual Pilot."""

from datetime import date

import pytest

from wbs_gantt.app import WBSApp
from wbs_gantt.gantt import DragMode
from wbs_gantt.screens.confirm_screen import ConfirmScreen
from wbs_gantt.screens.edit_screen import EditScreen
from wbs_gantt.screens.help_screen import HelpScreen
from wbs_gantt.session import WBSSession
from wbs_gantt.widgets.gantt_chart import GanttChart, GanttView
from wbs_gantt.widgets.wbs_tree import WBSTreeView

from conftest import PEOPLE, TODAY, RejectingRepository, build_items

PAUSE = 0.1


@pytest.fixture
def make_app(tmp_path, repository):
    def _make(repo=None):
        session = WBSSession(repo or repository, "demo", today=lambda: TODAY)
        return WBSApp(project_dir=tmp_path, session=session, today=lambda: TODAY)

    return _make


def _tree_view(app) -> WBSTreeView:
    return app.query_one(WBSTreeView)


@pytest.mark.asyncio
async def test_app_starts(make_app, tmp_path):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        assert len(app.session.tree) == 8
        assert tmp_path.name in app.title
        assert (tmp_path / ".wbs-gantt" / ".lock").exists()
        # expand_level defaults to 2
        assert [r.item.id for r in _tree_view(app).rows] == ["design", "req", "review", "build", "proto"]


@pytest.mark.asyncio
async def test_app_starts_from_json_store(tmp_path, tree):
    from wbs_gantt.repository import JsonFileRepository

    JsonFileRepository(tmp_path).save_all(tree.roots, PEOPLE)
    app = WBSApp(project_dir=tmp_path, today=lambda: TODAY)
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        assert app.session.tree.get("notes").code == "1.1.1.2"
        assert app.session.project_progress() == pytest.approx(55.0)


@pytest.mark.asyncio
async def test_expand_and_collapse(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        await pilot.press("E")
        await pilot.pause(delay=PAUSE)
        assert len(_tree_view(app).rows) == 8
        await pilot.press("C")
        await pilot.pause(delay=PAUSE)
        assert [r.item.id for r in _tree_view(app).rows] == ["design", "build"]
        await pilot.press("3")
        await pilot.pause(delay=PAUSE)
        assert "interviews" in [r.item.id for r in _tree_view(app).rows]
        assert "stake" not in [r.item.id for r in _tree_view(app).rows]


@pytest.mark.asyncio
async def test_toggle_expand_highlighted(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        assert _tree_view(app).highlighted_item_id == "design"
        await pilot.press("space")
        await pilot.pause(delay=PAUSE)
        assert [r.item.id for r in _tree_view(app).rows] == ["design", "build", "proto"]


@pytest.mark.asyncio
async def test_add_child(make_app, repository):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        await pilot.press("a")
        await pilot.pause(delay=PAUSE)
        assert isinstance(app.screen, EditScreen)
        await pilot.press("S", "p", "e", "c", "enter")
        await pilot.pause(delay=PAUSE)
        await app.session.flush()
        children = app.session.tree.children_of("design")
        assert [c.name for c in children] == ["Requirements", "Review", "Spec"]
        new_id = app.session.resolve(children[-1].id)
        assert repository.records[new_id]["level"] == "LEVEL2"
        assert _tree_view(app).highlighted_item_id == new_id


@pytest.mark.asyncio
async def test_add_child_cancel(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        await pilot.press("a")
        await pilot.pause(delay=PAUSE)
        await pilot.press("escape")
        await pilot.pause(delay=PAUSE)
        assert not isinstance(app.screen, EditScreen)
        assert len(app.session.tree) == 8


@pytest.mark.asyncio
async def test_delete_with_confirm(make_app, repository):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        _tree_view(app).move_cursor_to("review")
        await pilot.pause(delay=PAUSE)
        await pilot.press("d")
        await pilot.pause(delay=PAUSE)
        assert isinstance(app.screen, ConfirmScreen)
        await pilot.press("y")
        await pilot.pause(delay=PAUSE)
        await app.session.flush()
        assert "review" not in app.session.tree
        assert "review" not in repository.records


@pytest.mark.asyncio
async def test_progress_refused_on_parent(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        await pilot.press("p")
        await pilot.pause(delay=PAUSE)
        assert not isinstance(app.screen, EditScreen)


@pytest.mark.asyncio
async def test_progress_edit_rolls_up(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        _tree_view(app).move_cursor_to("proto")
        await pilot.pause(delay=PAUSE)
        await pilot.press("p")
        await pilot.pause(delay=PAUSE)
        assert isinstance(app.screen, EditScreen)
        await pilot.press("backspace", "backspace", "backspace", "5", "0", "enter")
        await pilot.pause(delay=PAUSE)
        await app.session.flush()
        assert app.session.tree.get("build").progress == 50
        assert app.session.project_progress() == pytest.approx(35.0)


@pytest.mark.asyncio
async def test_check_items(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        await pilot.press("x")
        await pilot.pause(delay=PAUSE)
        assert _tree_view(app).checked == {"design"}
        await pilot.press("x")
        await pilot.pause(delay=PAUSE)
        assert _tree_view(app).checked == set()


@pytest.mark.asyncio
async def test_promote_keeps_selection(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        await pilot.press("E")
        await pilot.pause(delay=PAUSE)
        _tree_view(app).move_cursor_to("interviews")
        await pilot.pause(delay=PAUSE)
        await pilot.press("H")
        await pilot.pause(delay=PAUSE)
        await app.session.flush()
        assert app.session.tree.get("interviews").level == 2
        assert _tree_view(app).highlighted_item_id == "interviews"


@pytest.mark.asyncio
async def test_drag_commits(make_app, repository):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        width = app.session.drag.cell_width
        app.on_gantt_view_bar_pressed(GanttView.BarPressed("stake", DragMode.MOVE, 10))
        assert app.session.drag.dragging
        app.on_gantt_view_bar_dragged(GanttView.BarDragged(10 + 3 * width))
        assert app.session.tree.get("stake").planned_start == date(2026, 1, 5)
        app.on_gantt_view_bar_released(GanttView.BarReleased(True))
        await app.session.flush()
        assert not app.session.drag.dragging
        assert app.session.tree.get("stake").planned_start == date(2026, 1, 8)
        assert repository.records["stake"]["plannedEnd"] == "2026-01-13"


@pytest.mark.asyncio
async def test_drag_released_outside(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        app.on_gantt_view_bar_pressed(GanttView.BarPressed("stake", DragMode.RESIZE_END, 0))
        app.on_gantt_view_bar_dragged(GanttView.BarDragged(30))
        app.on_gantt_view_bar_released(GanttView.BarReleased(False))
        assert not app.session.drag.dragging
        assert app.session.tree.get("stake").planned_end == date(2026, 1, 10)


@pytest.mark.asyncio
async def test_drag_cancelled_with_escape(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        app.on_gantt_view_bar_pressed(GanttView.BarPressed("stake", DragMode.MOVE, 0))
        await pilot.press("escape")
        await pilot.pause(delay=PAUSE)
        assert not app.session.drag.dragging


@pytest.mark.asyncio
async def test_drag_on_parent_refused(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        app.on_gantt_view_bar_pressed(GanttView.BarPressed("design", DragMode.MOVE, 0))
        assert not app.session.drag.dragging


@pytest.mark.asyncio
async def test_rejected_commit_rolls_back(make_app):
    app = make_app(RejectingRepository(build_items(), PEOPLE))
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        before = app.session.tree.snapshot()
        app.session.set_progress("proto", 10)
        await app.session.flush()
        await pilot.pause(delay=PAUSE)
        assert app.session.tree.roots == before
        proto_row = next(r for r in _tree_view(app).rows if r.item.id == "proto")
        assert proto_row.item.progress == 100


@pytest.mark.asyncio
async def test_zoom_saves_config(make_app, tmp_path):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        before = app.session.drag.cell_width
        app.action_zoom_in()
        await pilot.pause(delay=PAUSE)
        assert app.session.drag.cell_width > before
        assert app.query_one(GanttChart).view is not None
        assert "zoom_index = 3" in (tmp_path / ".wbs-gantt" / "config.toml").read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_help_modal(make_app):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        app.action_help()
        await pilot.pause(delay=PAUSE)
        assert any(isinstance(s, HelpScreen) for s in app.screen_stack)


@pytest.mark.asyncio
async def test_quit_releases_lock(make_app, tmp_path):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        await app.action_quit_app()
    assert not (tmp_path / ".wbs-gantt" / ".lock").exists()


@pytest.mark.asyncio
async def test_bulk_assign_checked(make_app, repository):
    app = make_app()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause(delay=PAUSE)
        tree_view = _tree_view(app)
        tree_view.toggle_check("review")
        tree_view.toggle_check("proto")
        assert app._selection() == ["review", "proto"]
        await app._bulk_assign(app._selection(), ["lee"])
        await pilot.pause(delay=PAUSE)
        assert repository.records["proto"]["assigneeIds"] == ["lee"]
        assert tree_view.checked == set()

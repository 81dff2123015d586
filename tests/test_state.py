import pytest
import pytest_asyncio

from tmx.models import FocusPanel
from tmx.state import ERROR_TTL, FullView, SearchView, TagView
from tmx.tmux import TmuxError, TmuxTimeoutError


@pytest_asyncio.fixture
async def loaded(state, fake_tmux):
    for name in ("work", "personal", "dev"):
        fake_tmux.add(name, windows=2)
    await state.refresh_sessions()
    return state


def visible_names(state) -> list[str]:
    return [session.name for session, _ in state.visible_sessions()]


@pytest.mark.asyncio
async def test_refresh_replaces_session_list(state, fake_tmux):
    fake_tmux.add("alpha")
    assert await state.refresh_sessions()
    assert [s.name for s in state.sessions] == ["alpha"]
    assert isinstance(state.view, FullView)


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_list(loaded, fake_tmux, clock):
    fake_tmux.failures["list_sessions"] = TmuxTimeoutError("tmux list-sessions", 5)
    assert not await loaded.refresh_sessions()
    assert visible_names(loaded) == ["work", "personal", "dev"]
    assert "timed out" in loaded.error.message
    assert loaded.error.raised_at == clock.now


def test_error_expires_after_ttl(state, clock):
    state.set_error("boom")
    clock.advance(ERROR_TTL - 0.1)
    state.clear_expired_error()
    assert state.error is not None
    clock.advance(0.2)
    state.clear_expired_error()
    assert state.error is None


@pytest.mark.asyncio
async def test_navigation_clamps_to_visible_count(loaded):
    for _ in range(10):
        loaded.select_next()
    assert loaded.selected == 2
    for _ in range(10):
        loaded.select_previous()
    assert loaded.selected == 0
    loaded.select_last()
    assert loaded.selected == 2
    loaded.select_first()
    assert loaded.selected == 0


def test_navigation_on_empty_list(state):
    state.select_next()
    state.select_last()
    state.select_previous()
    assert state.selected == 0
    assert state.selected_session() is None
    assert state.selected_target() is None


@pytest.mark.asyncio
async def test_shrinking_refresh_reclamps_cursor(loaded, fake_tmux):
    loaded.select_last()
    fake_tmux.sessions = fake_tmux.sessions[:1]
    await loaded.refresh_sessions()
    assert loaded.selected == 0
    assert loaded.selected_session().name == "work"


@pytest.mark.asyncio
async def test_tag_filter_projects_tagged_sessions(loaded):
    loaded.settings.add_tag("work", "a")
    loaded.settings.add_tag("personal", "b")

    loaded.set_tag_filter("a")

    assert isinstance(loaded.view, TagView)
    assert visible_names(loaded) == ["work"]
    assert loaded.selected_session().name == "work"
    loaded.select_next()
    assert loaded.selected == 0


@pytest.mark.asyncio
async def test_clearing_tag_filter_restores_full_list(loaded):
    loaded.settings.add_tag("work", "a")
    loaded.settings.add_tag("dev", "a")
    loaded.set_tag_filter("a")
    loaded.select_next()
    assert loaded.selected_session().name == "dev"

    loaded.clear_tag_filter()

    assert visible_names(loaded) == ["work", "personal", "dev"]
    assert loaded.selected == 0


@pytest.mark.asyncio
async def test_setting_the_active_tag_again_clears_it(loaded):
    loaded.settings.add_tag("work", "a")
    loaded.set_tag_filter("a")
    loaded.set_tag_filter("a")
    assert loaded.tag_filter is None
    assert isinstance(loaded.view, FullView)


@pytest.mark.asyncio
async def test_tag_with_no_sessions_gives_empty_view(loaded):
    loaded.set_tag_filter("nothing")
    assert loaded.visible_count == 0
    assert loaded.selected_session() is None
    assert "No sessions" in loaded.status


@pytest.mark.asyncio
async def test_search_suppresses_tag_filter_until_it_ends(loaded):
    loaded.settings.add_tag("work", "a")
    loaded.set_tag_filter("a")

    loaded.start_search()
    assert isinstance(loaded.view, SearchView)
    assert loaded.visible_count == 3

    loaded.update_search("dev")
    assert visible_names(loaded) == ["dev"]

    loaded.end_search()
    assert isinstance(loaded.view, TagView)
    assert visible_names(loaded) == ["work"]


@pytest.mark.asyncio
async def test_search_selection_maps_back_to_source(loaded):
    loaded.start_search()
    loaded.update_search("dev")
    assert loaded.selected_session().name == "dev"
    match = loaded.view.match_at(0)
    assert loaded.sessions[match.source_index].name == "dev"


@pytest.mark.asyncio
async def test_refresh_recomputes_search_matches(loaded, fake_tmux):
    loaded.start_search()
    loaded.update_search("dev")
    fake_tmux.sessions = [s for s in fake_tmux.sessions if s.name != "work"]
    await loaded.refresh_sessions()
    assert loaded.selected_session().name == "dev"


@pytest.mark.asyncio
async def test_windows_load_lazily_and_are_cached(loaded, fake_tmux):
    await loaded.focus_windows()
    await loaded.focus_windows()
    assert fake_tmux.count("list_windows") == 1
    assert loaded.focus is FocusPanel.WINDOWS
    assert [w.name for w in loaded.selected_windows()] == ["win0", "win1"]


@pytest.mark.asyncio
async def test_window_cursor_is_clamped(loaded):
    await loaded.focus_windows()
    for _ in range(5):
        loaded.select_next()
    assert loaded.window_selected == 1
    assert loaded.selected_target() == "work:1"
    loaded.focus_sessions()
    assert loaded.selected_target() == "work"


@pytest.mark.asyncio
async def test_moving_session_cursor_resets_window_cursor(loaded):
    await loaded.focus_windows()
    loaded.select_last()
    loaded.focus_sessions()
    loaded.select_next()
    assert loaded.window_selected == 0


@pytest.mark.asyncio
async def test_refresh_preview_captures_selected_target(loaded, fake_tmux):
    await loaded.refresh_preview()
    assert loaded.preview == "$ preview of work"
    assert fake_tmux.count("list_windows") == 1

    await loaded.refresh_preview(reload_windows=True)
    assert fake_tmux.count("list_windows") == 2


@pytest.mark.asyncio
async def test_refresh_preview_failure_clears_preview(loaded, fake_tmux):
    await loaded.refresh_preview()
    fake_tmux.failures["capture_pane"] = TmuxError(1, "can't find pane", "tmux capture-pane")
    await loaded.refresh_preview()
    assert loaded.preview == ""
    assert loaded.error is None


@pytest.mark.asyncio
async def test_window_cache_keeps_entries_for_removed_sessions(loaded, fake_tmux):
    await loaded.load_windows("dev")
    fake_tmux.sessions = [s for s in fake_tmux.sessions if s.name != "dev"]
    await loaded.refresh_sessions()
    assert "dev" in loaded.windows


@pytest.mark.asyncio
async def test_open_inside_tmux_switches_and_quits(loaded, fake_tmux):
    fake_tmux.inside = True
    await loaded.open_selected()
    assert ("switch_active_client", ("work",)) in fake_tmux.calls
    assert loaded.should_quit


@pytest.mark.asyncio
async def test_open_outside_tmux_releases_terminal_around_exec(loaded, fake_tmux):
    released = []

    class Release:
        def __enter__(self):
            released.append("enter")

        def __exit__(self, *exc):
            released.append("exit")
            return False

    loaded.release_terminal = Release
    await loaded.open_selected()
    assert ("attach_exec", ("work",)) in fake_tmux.calls
    assert released == ["enter", "exit"]
    assert not loaded.should_quit
    assert "failed to exec" in loaded.error.message


@pytest.mark.asyncio
async def test_open_vanished_session_refreshes(loaded, fake_tmux):
    fake_tmux.sessions = [s for s in fake_tmux.sessions if s.name != "work"]
    await loaded.open_selected()
    assert "no longer exists" in loaded.error.message
    assert visible_names(loaded) == ["personal", "dev"]
    assert fake_tmux.count("attach_exec") == 0


@pytest.mark.asyncio
async def test_add_tag_persists(loaded, settings):
    loaded.add_tag("work", "urgent")
    assert settings.get_tags("work") == ["urgent"]
    assert settings.path.exists()
    assert "urgent" in settings.path.read_text()


@pytest.mark.asyncio
async def test_add_tag_save_failure_is_transient_error(loaded, settings, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    settings.path = blocker / "config.json"
    loaded.add_tag("work", "urgent")
    assert loaded.error is not None
    assert "Could not save tags" in loaded.error.message
    assert settings.get_tags("work") == []


@pytest.mark.asyncio
async def test_add_tag_save_failure_keeps_existing_tag(loaded, settings, tmp_path):
    settings.add_tag("work", "urgent")
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    settings.path = blocker / "config.json"
    loaded.add_tag("work", "urgent")
    assert settings.get_tags("work") == ["urgent"]


@pytest.mark.asyncio
async def test_add_tag_updates_active_filter(loaded):
    loaded.settings.add_tag("work", "a")
    loaded.set_tag_filter("a")
    loaded.add_tag("dev", "a")
    assert visible_names(loaded) == ["work", "dev"]


@pytest.mark.asyncio
async def test_failed_mutation_is_transient_error(loaded, fake_tmux):
    await loaded.create_session("work")
    assert "duplicate session" in loaded.error.message
    assert fake_tmux.count("list_sessions") == 1


@pytest.mark.asyncio
async def test_rename_to_same_name_is_noop(loaded, fake_tmux):
    await loaded.rename_session("work", "work")
    assert fake_tmux.count("rename_session") == 0
    assert loaded.status == "Name unchanged"

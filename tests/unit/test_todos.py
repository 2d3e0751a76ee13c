from datetime import datetime, timedelta, timezone

import pytest

from todo_api.errors import NotFoundError, messages
from todo_api.models import Todo
from todo_api.schemas import TodoCreate, TodoQuery, TodoUpdate
from todo_api.todos import TodoService

OWNER = "user-1"
OTHER = "user-2"
DUE = datetime(2030, 1, 1, 12, 0)


@pytest.fixture
def todos(session):
    return TodoService(session)


def add(session, title, created_at, user_id=OWNER, **fields):
    """Insert a row with a fixed creation time so orderings are deterministic."""
    t = Todo(user_id=user_id, title=title, due_date=DUE, created_at=created_at, updated_at=created_at, **fields)
    session.add(t)
    session.commit()
    return t


def titles(result):
    return [t.title for t in result.todos]


class TestCreateAndGet:
    def test_defaults(self, todos):
        out = todos.create(OWNER, TodoCreate(title="Buy milk", dueDate=DUE))
        assert out.priority == "MEDIUM"
        assert out.status == "TODO"
        assert out.completed is False
        assert out.pinned is False
        assert out.description == ""
        assert out.user_id == OWNER
        assert todos.get(OWNER, out.id) == out

    def test_due_date_is_stored_as_utc(self, todos):
        local = datetime(2030, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        out = todos.create(OWNER, TodoCreate(title="Call", dueDate=local))
        assert out.due_date == datetime(2030, 1, 1, 12, 0)

    def test_foreign_and_missing_ids_look_the_same(self, todos):
        mine = todos.create(OWNER, TodoCreate(title="Secret", dueDate=DUE))

        with pytest.raises(NotFoundError) as foreign:
            todos.get(OTHER, mine.id)
        with pytest.raises(NotFoundError) as missing:
            todos.get(OTHER, "does-not-exist")
        assert foreign.value.message == missing.value.message == messages.TODO_NOT_FOUND

    @pytest.mark.parametrize(
        "op",
        [
            lambda svc, tid: svc.update(OTHER, tid, TodoUpdate(title="stolen")),
            lambda svc, tid: svc.delete(OTHER, tid),
            lambda svc, tid: svc.toggle_complete(OTHER, tid),
            lambda svc, tid: svc.toggle_pin(OTHER, tid),
            lambda svc, tid: svc.update_status(OTHER, tid, "DONE"),
        ],
    )
    def test_foreign_writes_are_not_found_and_change_nothing(self, todos, op):
        mine = todos.create(OWNER, TodoCreate(title="Secret", dueDate=DUE))
        with pytest.raises(NotFoundError):
            op(todos, mine.id)
        assert todos.get(OWNER, mine.id) == mine


class TestUpdate:
    def test_only_sent_fields_change(self, todos):
        t = todos.create(OWNER, TodoCreate(title="Write report", description="draft", priority="HIGH", dueDate=DUE))
        out = todos.update(OWNER, t.id, TodoUpdate(title="Write final report"))
        assert out.title == "Write final report"
        assert out.description == "draft"
        assert out.priority == "HIGH"

    def test_falsy_values_are_written(self, todos):
        t = todos.create(OWNER, TodoCreate(title="Write report", description="draft", dueDate=DUE))
        todos.toggle_complete(OWNER, t.id)
        out = todos.update(OWNER, t.id, TodoUpdate(description="", completed=False))
        assert out.description == ""
        assert out.completed is False

    def test_explicit_null_is_rejected(self):
        with pytest.raises(ValueError):
            TodoUpdate(title=None)

    def test_empty_update_is_a_noop(self, todos):
        t = todos.create(OWNER, TodoCreate(title="Same", dueDate=DUE))
        assert todos.update(OWNER, t.id, TodoUpdate()) == t

    def test_status_does_not_touch_completed(self, todos):
        t = todos.create(OWNER, TodoCreate(title="Ship", dueDate=DUE))
        out = todos.update_status(OWNER, t.id, "DONE")
        assert out.status == "DONE"
        assert out.completed is False

        todos.toggle_complete(OWNER, t.id)
        out = todos.update_status(OWNER, t.id, "IN_PROGRESS")
        assert out.completed is True

    def test_delete(self, todos):
        t = todos.create(OWNER, TodoCreate(title="Gone", dueDate=DUE))
        result = todos.delete(OWNER, t.id)
        assert result.success is True
        assert result.message == "Todo deleted successfully"
        with pytest.raises(NotFoundError):
            todos.get(OWNER, t.id)


class TestToggles:
    def test_toggle_complete_and_pin(self, todos):
        t = todos.create(OWNER, TodoCreate(title="Flip", dueDate=DUE))
        assert todos.toggle_complete(OWNER, t.id).completed is True
        assert todos.toggle_complete(OWNER, t.id).completed is False
        assert todos.toggle_pin(OWNER, t.id).pinned is True

    def test_toggles_from_stale_sessions_do_not_lose_updates(self, session_factory):
        with session_factory() as s:
            t = TodoService(s).create(OWNER, TodoCreate(title="Race", dueDate=DUE))

        with session_factory() as a, session_factory() as b:
            svc_a, svc_b = TodoService(a), TodoService(b)
            # both sessions observed completed=False before either toggled
            assert svc_a.get(OWNER, t.id).completed is False
            assert svc_b.get(OWNER, t.id).completed is False
            svc_a.toggle_complete(OWNER, t.id)
            final = svc_b.toggle_complete(OWNER, t.id)

        assert final.completed is False


class TestList:
    @pytest.fixture
    def seeded(self, session):
        add(session, "alpha report", 1000, priority="LOW")
        add(session, "Bravo call", 2000, priority="HIGH", completed=True)
        add(session, "charlie report", 3000, priority="MEDIUM", pinned=True)
        add(session, "delta", 4000, priority="HIGH", description="quarterly REPORT", status="DONE")
        add(session, "echo", 5000, priority="LOW", completed=True, status="DONE")
        add(session, "someone else's report", 6000, user_id=OTHER)

    def test_default_order_is_pinned_then_newest(self, todos, seeded):
        out = todos.list(OWNER, TodoQuery())
        assert titles(out) == ["charlie report", "echo", "delta", "Bravo call", "alpha report"]

    def test_date_ascending_keeps_pinned_first(self, todos, seeded):
        out = todos.list(OWNER, TodoQuery(sort_order="asc"))
        assert titles(out) == ["charlie report", "alpha report", "Bravo call", "delta", "echo"]

    def test_priority_order_uses_rank_then_newest(self, todos, seeded):
        out = todos.list(OWNER, TodoQuery(sort_by="priority", sort_order="desc"))
        assert titles(out) == ["charlie report", "delta", "Bravo call", "echo", "alpha report"]

        out = todos.list(OWNER, TodoQuery(sort_by="priority", sort_order="asc"))
        assert titles(out) == ["charlie report", "echo", "alpha report", "delta", "Bravo call"]

    def test_search_matches_title_or_description_case_insensitively(self, todos, seeded):
        out = todos.list(OWNER, TodoQuery(search="RePoRt"))
        assert sorted(titles(out)) == ["alpha report", "charlie report", "delta"]

    def test_search_treats_wildcards_literally(self, todos, session):
        add(session, "100% done", 1000)
        add(session, "1000 lines", 2000)
        assert titles(todos.list(OWNER, TodoQuery(search="100%"))) == ["100% done"]

    def test_all_sentinel_is_the_same_as_no_filter(self, todos, seeded):
        unfiltered = todos.list(OWNER, TodoQuery())
        for field in ("priority", "completed", "status"):
            assert todos.list(OWNER, TodoQuery(**{field: "ALL"})) == unfiltered

    def test_three_tier_counts(self, todos, seeded):
        out = todos.list(OWNER, TodoQuery(priority="HIGH", completed=True))
        assert titles(out) == ["Bravo call"]
        assert out.filtered == 1
        # total and counts ignore the completion/status predicates
        assert out.total == 2
        assert out.counts.model_dump() == {"all": 2, "active": 1, "completed": 1}

    def test_status_filter_is_independent_of_completed(self, todos, seeded):
        out = todos.list(OWNER, TodoQuery(status="DONE"))
        assert sorted(titles(out)) == ["delta", "echo"]
        out = todos.list(OWNER, TodoQuery(status="DONE", completed=False))
        assert titles(out) == ["delta"]

    def test_pagination(self, todos, seeded):
        page1 = todos.list(OWNER, TodoQuery(limit=2, page=1))
        page3 = todos.list(OWNER, TodoQuery(limit=2, page=3))
        assert titles(page1) == ["charlie report", "echo"]
        assert titles(page3) == ["alpha report"]
        assert page1.total_pages == page3.total_pages == 3
        assert page3.page == 3 and page3.limit == 2

    def test_page_past_the_end_is_empty(self, todos, seeded):
        out = todos.list(OWNER, TodoQuery(limit=10, page=5))
        assert out.todos == []
        assert out.filtered == 5

    def test_empty_list(self, todos):
        out = todos.list(OWNER, TodoQuery())
        assert out.todos == []
        assert out.total == out.filtered == out.total_pages == 0

    def test_counts(self, todos, seeded):
        assert todos.counts(OWNER).model_dump() == {"all": 5, "active": 3, "completed": 2}
        assert todos.counts(OTHER).model_dump() == {"all": 1, "active": 1, "completed": 0}

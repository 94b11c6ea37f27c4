from datagrid_engine.selection import ExpansionTracker, SelectionTracker


def test_change_callback_fires_only_on_real_changes():
    events = []
    selection = SelectionTracker(on_change=events.append)

    assert selection.select(1)
    assert not selection.select(1)
    assert selection.deselect(1)
    assert not selection.deselect(1)

    assert events == [frozenset({1}), frozenset()]


def test_toggle_returns_new_state():
    selection = SelectionTracker()

    assert selection.toggle("a") is True
    assert selection.is_selected("a")
    assert selection.toggle("a") is False
    assert not selection.is_selected("a")


def test_select_all_adds_exactly_the_given_ids():
    selection = SelectionTracker()
    selection.select(9)

    selection.select_all([1, 2, 3])
    selection.deselect_all([2, 3])

    assert selection.selected() == {1, 9}


def test_select_all_state():
    selection = SelectionTracker()

    assert selection.select_all_state([1, 2]) is False
    selection.select(1)
    assert selection.select_all_state([1, 2]) == "indeterminate"
    selection.select(2)
    assert selection.select_all_state([1, 2]) is True
    assert selection.select_all_state([]) is False


def test_ids_missing_from_the_dataset_are_ignored_on_read():
    selection = SelectionTracker()
    selection.select_all([1, 2])

    assert selection.selected({2, 3}) == {2}
    assert not selection.is_selected(1, {2, 3})
    assert selection.selected() == {1, 2}


def test_expansion_is_independent_of_selection():
    events = []
    selection = SelectionTracker()
    expansion = ExpansionTracker(on_change=events.append)

    selection.select(1)
    assert expansion.toggle(1) is True
    expansion.expand_all([2, 3])
    expansion.collapse(2)

    assert expansion.expanded() == {1, 3}
    assert selection.selected() == {1}
    assert expansion.clear()
    assert not expansion.clear()
    assert events[-1] == frozenset()

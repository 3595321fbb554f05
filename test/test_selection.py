from extraction.selection import (
    build_event_from_selection,
    build_task_from_selection,
    default_block_title,
    normalize_tags_and_links,
)


def test_normalize_tags_and_links():
    n = normalize_tags_and_links("Read #paper about [[Graph Nets]] #paper #ml")
    assert n.text == "Read about"
    assert n.tags == ["paper", "ml"]
    assert n.links == ["Graph Nets"]


def test_hash_inside_link_is_not_a_tag():
    n = normalize_tags_and_links("See [[Issue #42]] #bug")
    assert n.links == ["Issue #42"]
    assert n.tags == ["bug"]
    assert n.text == "See"


def test_task_from_selection(tasks):
    data = build_task_from_selection(
        "Follow up with lab #admin [[Protocol]]",
        source_file_id="note-7",
        source_file_title="Lab notes",
        default_priority="high",
    )
    assert data.title == "Follow up with lab"
    assert data.description == "Created from [[Lab notes]]"
    assert data.tags == ["admin"]
    assert data.links == ["Protocol", "note-7"]
    assert data.priority == "high"

    t = tasks.create(data)
    assert tasks.backlinks("note-7")[0].id == t.id


def test_task_from_empty_selection():
    data = build_task_from_selection("   ", source_file_id="note-1")
    assert data.title == "New Task"
    assert data.description == "Created from [[note-1]]"
    assert data.links == ["note-1"]


def test_event_from_selection(events, at):
    data = build_event_from_selection("Sprint review #team", at(14), at(15), "note-3", "Retro")
    e = events.create(data)
    assert e.source == "from_selection"
    assert e.title == "Sprint review"
    assert e.tags == ["team"]
    assert e.meta == {"source_file_id": "note-3"}
    assert e.description == "From [[Retro]]"


def test_default_block_title():
    assert default_block_title("x" * 300) == "x" * 140
    assert default_block_title("", "Lab notes") == "Lab notes"
    assert default_block_title(None) == "Scheduled block"

"""Tests for TreeService: create, rename, move, reorder, pin, delete, search."""

import pytest

from nook.core.service import TreeService
from nook.core.store.memory import MemoryNodeStore
from nook.models.node import Node, NodeKind
from nook.result import Err, ErrorKind, Ok, Result
from tests.unit.fakes import (
    OWNER,
    PROJECT,
    FailingStore,
    FakeClock,
    RecordingStore,
    make_node,
    sequential_ids,
)


def _ok(result: Result) -> Node:
    assert isinstance(result, Ok), result
    return result.value


def _names(tree: TreeService, parent_id: str | None = None) -> list[str]:
    return [n.name for n in _ok(tree.list_children(parent_id))]


def _kind(result: Result) -> ErrorKind:
    assert isinstance(result, Err), result
    return result.kind


# --- Properties ---


def test_rename_to_current_name_is_noop(tree: TreeService, recording: RecordingStore) -> None:
    doc = _ok(tree.create(NodeKind.FILE, "Doc"))
    recording.reset()

    renamed = _ok(tree.rename(doc.id, "  Doc "))

    assert renamed == doc
    assert recording.mutations() == []


def test_create_suffixes_conflicting_names(tree: TreeService) -> None:
    names = [_ok(tree.create(NodeKind.FILE, "Report.txt")).name for _ in range(3)]
    assert names == ["Report.txt", "Report (1).txt", "Report (2).txt"]


def test_move_into_descendant_is_rejected(tree: TreeService) -> None:
    a = _ok(tree.create(NodeKind.FOLDER, "A"))
    b = _ok(tree.create(NodeKind.FOLDER, "B", parent_id=a.id))

    assert _kind(tree.move(a.id, b.id)) is ErrorKind.DESCENDANT_MOVE
    assert _ok(tree.get(a.id)).parent_id is None

    moved = _ok(tree.move(b.id, None))
    assert moved.parent_id is None


def test_pinned_sibling_listed_first(tree: TreeService) -> None:
    for name in ("one", "two", "three"):
        tree.create(NodeKind.FILE, name)
    third = _ok(tree.list_children())[2]

    pinned = _ok(tree.toggle_pin(third.id))

    assert pinned.is_pinned
    assert pinned.order == 2
    assert _names(tree) == ["three", "one", "two"]


def test_delete_cascades_to_whole_subtree(tree: TreeService, recording: RecordingStore) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    f1 = _ok(tree.create(NodeKind.FILE, "a.txt", parent_id=folder.id))
    f2 = _ok(tree.create(NodeKind.FILE, "b.txt", parent_id=folder.id))
    nested = _ok(tree.create(NodeKind.FOLDER, "Nested", parent_id=folder.id))
    g1 = _ok(tree.create(NodeKind.FILE, "c.txt", parent_id=nested.id))
    recording.reset()

    assert tree.delete(folder.id) == Ok(None)

    assert recording.mutations() == ["remove_many"]
    removed_ids = recording.calls[-1][1][0]
    assert removed_ids[-1] == folder.id
    assert removed_ids.index(g1.id) < removed_ids.index(nested.id)
    for node in (folder, f1, f2, nested, g1):
        assert _kind(tree.get(node.id)) is ErrorKind.NOT_FOUND


def test_blank_name_touches_no_store(tree: TreeService, recording: RecordingStore) -> None:
    result = tree.create(NodeKind.FILE, "   ")
    assert _kind(result) is ErrorKind.INVALID_NAME
    assert recording.calls == []


def test_create_then_get_round_trip(tree: TreeService, clock: FakeClock) -> None:
    created = _ok(tree.create(NodeKind.FILE, "notes.md", content="hello"))
    fetched = _ok(tree.get(created.id))
    assert fetched == created
    assert (fetched.owner_id, fetched.project_id, fetched.parent_id) == (OWNER, PROJECT, None)
    assert fetched.kind is NodeKind.FILE
    assert fetched.content == "hello"
    assert fetched.created_at == clock.now

    updated = _ok(tree.update_content(created.id, "hello world"))
    refetched = _ok(tree.get(created.id))
    assert refetched == updated
    assert refetched.content == "hello world"
    assert refetched.updated_at > created.updated_at
    assert refetched.created_at == created.created_at


def test_list_children_is_scoped_to_owner_and_project(
    tree: TreeService, memory_store: MemoryNodeStore
) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Shared"))
    tree.create(NodeKind.FILE, "mine.txt", parent_id=folder.id)
    memory_store.insert(
        make_node("x1", parent_id=folder.id, kind=NodeKind.FILE, project_id="proj_other")
    )
    memory_store.insert(
        make_node("x2", parent_id=folder.id, kind=NodeKind.FILE, owner_id="mallory")
    )
    memory_store.insert(make_node("x3", project_id="proj_other"))

    assert _names(tree, folder.id) == ["mine.txt"]
    assert _names(tree) == ["Shared"]


# --- Create ---


def test_create_appends_after_siblings(tree: TreeService) -> None:
    orders = [_ok(tree.create(NodeKind.FILE, name)).order for name in ("a", "b", "c")]
    assert orders == [0, 1, 2]


def test_create_at_index_splices(tree: TreeService) -> None:
    for name in ("a", "b", "c"):
        tree.create(NodeKind.FILE, name)
    inserted = _ok(tree.create(NodeKind.FILE, "new", index=1))

    assert inserted.order == 1
    assert _names(tree) == ["a", "new", "b", "c"]
    assert [n.order for n in _ok(tree.list_children())] == [0, 1, 2, 3]


def test_create_rolls_back_when_reindex_fails(
    tree: TreeService, memory_store: MemoryNodeStore, clock: FakeClock
) -> None:
    tree.create(NodeKind.FILE, "a")
    tree.create(NodeKind.FILE, "b")
    failing = FailingStore(memory_store, fail_on={"replace_many"})
    broken = TreeService(failing, owner_id=OWNER, project_id=PROJECT, clock=clock)

    result = broken.create(NodeKind.FILE, "new", index=0)

    assert _kind(result) is ErrorKind.STORAGE_ERROR
    assert "disk full" in result.message
    assert len(memory_store) == 2
    assert _names(tree) == ["a", "b"]


def test_create_insert_failure_is_returned(
    memory_store: MemoryNodeStore, clock: FakeClock
) -> None:
    failing = FailingStore(memory_store, fail_on={"insert"})
    broken = TreeService(failing, owner_id=OWNER, project_id=PROJECT, clock=clock)
    assert _kind(broken.create(NodeKind.FILE, "a")) is ErrorKind.STORAGE_ERROR
    assert len(memory_store) == 0


def test_create_under_missing_or_leaf_parent(tree: TreeService) -> None:
    leaf = _ok(tree.create(NodeKind.FILE, "leaf.txt"))
    assert _kind(tree.create(NodeKind.FILE, "x", parent_id="ghost")) is ErrorKind.PARENT_NOT_FOUND
    assert _kind(tree.create(NodeKind.FILE, "x", parent_id=leaf.id)) is ErrorKind.PARENT_NOT_FOUND


@pytest.mark.parametrize(
    "kwargs",
    [
        {"kind": "chapterz", "name": "x"},
        {"kind": NodeKind.FOLDER, "name": "x", "content": "text"},
        {"kind": NodeKind.FILE, "name": "x", "index": -1},
        {"kind": NodeKind.FILE, "name": "x", "parent_id": "   "},
        {"kind": NodeKind.CHAPTER, "name": "x"},
    ],
)
def test_create_rejects_invalid_input(tree: TreeService, kwargs: dict) -> None:
    params = dict(kwargs)
    kind = params.pop("kind")
    name = params.pop("name")
    assert _kind(tree.create(kind, name, **params)) is ErrorKind.INVALID_INPUT


def test_create_manuscript_hierarchy(tree: TreeService) -> None:
    book = _ok(tree.create("manuscript", "Book"))
    chapter = _ok(tree.create(NodeKind.CHAPTER, "Chapter 1", parent_id=book.id))
    scene = _ok(tree.create(NodeKind.SCENE, "Opening", parent_id=chapter.id, content="Rain."))
    image = _ok(
        tree.create(NodeKind.IMAGE, "Map", parent_id=chapter.id, content="https://x/map.png")
    )

    assert book.content is None
    assert scene.size == 5
    assert image.content == "https://x/map.png"
    assert _kind(tree.create(NodeKind.SCENE, "Stray", parent_id=book.id)) is ErrorKind.INVALID_INPUT


def test_create_respects_max_name_length(memory_store: MemoryNodeStore) -> None:
    short = TreeService(memory_store, owner_id=OWNER, project_id=PROJECT, max_name_length=5)
    assert _kind(short.create(NodeKind.FILE, "toolong")) is ErrorKind.INVALID_NAME
    assert isinstance(short.create(NodeKind.FILE, "short"), Ok)


def test_suffixed_name_stays_within_max_length(memory_store: MemoryNodeStore) -> None:
    short = TreeService(memory_store, owner_id=OWNER, project_id=PROJECT, max_name_length=10)
    _ok(short.create(NodeKind.FILE, "abcdef.txt"))

    second = _ok(short.create(NodeKind.FILE, "abcdef.txt"))

    assert second.name == "ab (1).txt"
    assert len(second.name) <= 10


def test_rename_and_move_suffixes_stay_within_max_length(memory_store: MemoryNodeStore) -> None:
    short = TreeService(memory_store, owner_id=OWNER, project_id=PROJECT, max_name_length=10)
    folder = _ok(short.create(NodeKind.FOLDER, "Folder"))
    _ok(short.create(NodeKind.FILE, "abcdef.txt", parent_id=folder.id))
    loose = _ok(short.create(NodeKind.FILE, "abcdef.txt"))
    other = _ok(short.create(NodeKind.FILE, "other"))

    assert _ok(short.rename(other.id, "abcdef.txt")).name == "ab (1).txt"
    assert _ok(short.move(loose.id, folder.id)).name == "ab (1).txt"


def test_suffix_that_cannot_fit_is_invalid_name(memory_store: MemoryNodeStore) -> None:
    short = TreeService(memory_store, owner_id=OWNER, project_id=PROJECT, max_name_length=8)
    _ok(short.create(NodeKind.FILE, "ab.jpeg"))

    assert _kind(short.create(NodeKind.FILE, "ab.jpeg")) is ErrorKind.INVALID_NAME
    assert _names(short) == ["ab.jpeg"]


def test_service_requires_owner_and_project(memory_store: MemoryNodeStore) -> None:
    with pytest.raises(ValueError):
        TreeService(memory_store, owner_id="", project_id=PROJECT)
    with pytest.raises(ValueError):
        TreeService(memory_store, owner_id=OWNER, project_id="")


# --- Rename ---


def test_rename_resolves_conflicts_excluding_self(tree: TreeService, clock: FakeClock) -> None:
    tree.create(NodeKind.FILE, "Doc")
    draft = _ok(tree.create(NodeKind.FILE, "Draft"))

    renamed = _ok(tree.rename(draft.id, "Doc"))

    assert renamed.name == "Doc (1)"
    assert renamed.updated_at > draft.updated_at
    assert renamed.order == draft.order


def test_rename_errors(tree: TreeService, memory_store: MemoryNodeStore) -> None:
    memory_store.insert(make_node("theirs", owner_id="mallory"))
    doc = _ok(tree.create(NodeKind.FILE, "Doc"))

    assert _kind(tree.rename("missing", "x")) is ErrorKind.NOT_FOUND
    assert _kind(tree.rename("theirs", "x")) is ErrorKind.NOT_FOUND
    assert _kind(tree.rename(doc.id, "  ")) is ErrorKind.INVALID_NAME
    assert _kind(tree.rename("  ", "x")) is ErrorKind.INVALID_INPUT


# --- Move / reorder ---


def test_move_resolves_name_in_new_folder(tree: TreeService) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    tree.create(NodeKind.FILE, "notes.txt", parent_id=folder.id)
    loose = _ok(tree.create(NodeKind.FILE, "notes.txt"))

    moved = _ok(tree.move(loose.id, folder.id))

    assert moved.parent_id == folder.id
    assert moved.name == "notes (1).txt"
    assert moved.order == 1
    assert _names(tree) == ["Folder"]


def test_move_at_index_is_one_atomic_batch(
    tree: TreeService, recording: RecordingStore
) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    for name in ("a", "b"):
        tree.create(NodeKind.FILE, name, parent_id=folder.id)
    loose = _ok(tree.create(NodeKind.FILE, "x"))
    recording.reset()

    moved = _ok(tree.move(loose.id, folder.id, index=0))

    assert moved.order == 0
    assert _names(tree, folder.id) == ["x", "a", "b"]
    assert recording.mutations() == ["replace_many"]


def test_move_updates_timestamp(tree: TreeService) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    doc = _ok(tree.create(NodeKind.FILE, "doc"))
    moved = _ok(tree.move(doc.id, folder.id))
    assert moved.updated_at > doc.updated_at
    assert moved.version == doc.version + 1


def test_move_errors(tree: TreeService) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    leaf = _ok(tree.create(NodeKind.FILE, "leaf"))

    assert _kind(tree.move(folder.id, folder.id)) is ErrorKind.SELF_MOVE
    assert _kind(tree.move(folder.id, leaf.id)) is ErrorKind.PARENT_NOT_FOUND
    assert _kind(tree.move(folder.id, "ghost")) is ErrorKind.PARENT_NOT_FOUND
    assert _kind(tree.move(folder.id, " ")) is ErrorKind.INVALID_INPUT
    assert _kind(tree.move("ghost", None)) is ErrorKind.NOT_FOUND
    assert _kind(tree.move(leaf.id, folder.id, index=-2)) is ErrorKind.INVALID_INPUT


def test_move_to_same_parent_without_index_is_noop(
    tree: TreeService, recording: RecordingStore
) -> None:
    doc = _ok(tree.create(NodeKind.FILE, "doc"))
    recording.reset()
    assert tree.move(doc.id, None) == Ok(doc)
    assert recording.mutations() == []


def test_move_failure_leaves_tree_unchanged(
    tree: TreeService, memory_store: MemoryNodeStore, clock: FakeClock
) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    doc = _ok(tree.create(NodeKind.FILE, "doc"))
    failing = FailingStore(memory_store, fail_on={"replace_many"})
    broken = TreeService(failing, owner_id=OWNER, project_id=PROJECT, clock=clock)

    assert _kind(broken.move(doc.id, folder.id)) is ErrorKind.STORAGE_ERROR
    assert _ok(tree.get(doc.id)) == doc


def test_reorder_within_parent(tree: TreeService) -> None:
    ids = [_ok(tree.create(NodeKind.FILE, name)).id for name in ("a", "b", "c")]

    moved = _ok(tree.reorder(ids[2], 0))

    assert moved.order == 0
    assert _names(tree) == ["c", "a", "b"]
    assert [n.order for n in _ok(tree.list_children())] == [0, 1, 2]

    _ok(tree.reorder(ids[2], 10))
    assert _names(tree) == ["a", "b", "c"]


def test_reorder_rejects_negative_index(tree: TreeService) -> None:
    doc = _ok(tree.create(NodeKind.FILE, "doc"))
    assert _kind(tree.reorder(doc.id, -1)) is ErrorKind.INVALID_INPUT


def test_reorder_chapters_in_manuscript(tree: TreeService) -> None:
    book = _ok(tree.create(NodeKind.MANUSCRIPT, "Book"))
    chapters = [
        _ok(tree.create(NodeKind.CHAPTER, f"Chapter {i}", parent_id=book.id)) for i in (1, 2, 3)
    ]
    _ok(tree.reorder(chapters[0].id, 2))
    assert _names(tree, book.id) == ["Chapter 2", "Chapter 3", "Chapter 1"]


# --- Pin / content ---


def test_toggle_pin_flips_back(tree: TreeService) -> None:
    doc = _ok(tree.create(NodeKind.FILE, "doc"))
    assert _ok(tree.toggle_pin(doc.id)).is_pinned
    assert not _ok(tree.toggle_pin(doc.id)).is_pinned


def test_update_content_rejects_containers(tree: TreeService) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    assert _kind(tree.update_content(folder.id, "text")) is ErrorKind.INVALID_INPUT


# --- Delete ---


def test_delete_leaf(tree: TreeService) -> None:
    doc = _ok(tree.create(NodeKind.FILE, "doc"))
    assert tree.delete(doc.id) == Ok(None)
    assert _ok(tree.list_children()) == []


def test_delete_failure_removes_nothing(
    tree: TreeService, memory_store: MemoryNodeStore, clock: FakeClock
) -> None:
    folder = _ok(tree.create(NodeKind.FOLDER, "Folder"))
    tree.create(NodeKind.FILE, "doc", parent_id=folder.id)
    failing = FailingStore(memory_store, fail_on={"remove_many"})
    broken = TreeService(failing, owner_id=OWNER, project_id=PROJECT, clock=clock)

    assert _kind(broken.delete(folder.id)) is ErrorKind.STORAGE_ERROR
    assert len(memory_store) == 2


def test_delete_missing_is_not_found(tree: TreeService) -> None:
    assert _kind(tree.delete("ghost")) is ErrorKind.NOT_FOUND


# --- Reads ---


def test_search_trims_and_rejects_blank(tree: TreeService, recording: RecordingStore) -> None:
    tree.create(NodeKind.FILE, "Fox tales", content="quick brown")
    recording.reset()

    assert _kind(tree.search("   ")) is ErrorKind.INVALID_QUERY
    assert recording.calls == []

    hits = _ok(tree.search("  fox "))
    assert [n.name for n in hits] == ["Fox tales"]
    assert recording.calls[-1][1][0] == "fox"


def test_get_rejects_blank_and_foreign_project(
    tree: TreeService, memory_store: MemoryNodeStore
) -> None:
    memory_store.insert(make_node("elsewhere", project_id="proj_other"))
    assert _kind(tree.get("")) is ErrorKind.INVALID_INPUT
    assert _kind(tree.get("elsewhere")) is ErrorKind.NOT_FOUND


def test_build_tree_and_breadcrumbs(tree: TreeService) -> None:
    a = _ok(tree.create(NodeKind.FOLDER, "A"))
    b = _ok(tree.create(NodeKind.FOLDER, "B", parent_id=a.id))
    c = _ok(tree.create(NodeKind.FILE, "c.txt", parent_id=b.id))
    tree.create(NodeKind.FILE, "top.txt")

    roots = _ok(tree.build_tree())
    assert [e.node.name for e in roots] == ["A", "top.txt"]
    assert roots[0].children[0].children[0].node.id == c.id

    crumbs = _ok(tree.breadcrumbs(c.id))
    assert [n.name for n in crumbs] == ["A", "B"]


def test_list_all_returns_every_node(tree: TreeService) -> None:
    a = _ok(tree.create(NodeKind.FOLDER, "A"))
    tree.create(NodeKind.FILE, "x", parent_id=a.id)
    assert len(_ok(tree.list_all())) == 2


def test_service_works_over_sqlite(sqlite_tree: TreeService) -> None:
    book = _ok(sqlite_tree.create(NodeKind.MANUSCRIPT, "Book"))
    ch1 = _ok(sqlite_tree.create(NodeKind.CHAPTER, "One", parent_id=book.id))
    _ok(sqlite_tree.create(NodeKind.CHAPTER, "One", parent_id=book.id))
    _ok(sqlite_tree.create(NodeKind.SCENE, "s", parent_id=ch1.id, content="text"))

    assert _names(sqlite_tree, book.id) == ["One", "One (1)"]
    _ok(sqlite_tree.reorder(ch1.id, 1))
    assert _names(sqlite_tree, book.id) == ["One (1)", "One"]

    assert sqlite_tree.delete(book.id) == Ok(None)
    assert _ok(sqlite_tree.list_all()) == []


def test_other_services_ids_do_not_collide(memory_store: MemoryNodeStore) -> None:
    one = TreeService(
        memory_store, owner_id=OWNER, project_id=PROJECT, id_factory=sequential_ids("a")
    )
    two = TreeService(
        memory_store, owner_id=OWNER, project_id="proj_two", id_factory=sequential_ids("b")
    )
    one.create(NodeKind.FILE, "same")
    two.create(NodeKind.FILE, "same")
    assert _names(one) == ["same"]
    assert _names(two) == ["same"]

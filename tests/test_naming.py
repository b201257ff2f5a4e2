from types import SimpleNamespace

from services.naming import NameAllocator, archive_base_name


def test_repeated_candidates_get_numbered_suffixes():
    allocator = NameAllocator()
    names = [allocator.allocate(name) for name in ["a.txt", "a.txt", "a.txt"]]
    assert names == ["a.txt", "a_2.txt", "a_3.txt"]


def test_names_without_extension():
    allocator = NameAllocator()
    assert [allocator.allocate("notes") for _ in range(3)] == ["notes", "notes_2", "notes_3"]


def test_suffix_skips_names_already_taken():
    allocator = NameAllocator()
    assert allocator.allocate("a_2.txt") == "a_2.txt"
    assert allocator.allocate("a.txt") == "a.txt"
    assert allocator.allocate("a.txt") == "a_3.txt"
    assert allocator.allocate("a.txt") == "a_4.txt"


def test_allocation_is_deterministic():
    candidates = ["x.pdf", "y.pdf", "x.pdf", "x_2.pdf", "y.pdf"]
    first = NameAllocator()
    second = NameAllocator()
    assert [first.allocate(c) for c in candidates] == [second.allocate(c) for c in candidates]


def test_preloaded_state_is_respected():
    allocator = NameAllocator({"a.txt": 2, "a_2.txt": 1})
    assert allocator.allocate("a.txt") == "a_3.txt"
    assert "a_3.txt" in allocator


def test_archive_base_name_uses_student_id_and_name():
    student = SimpleNamespace(id=7, student_id="s001", name="Li")
    assert archive_base_name(student, ".pdf") == "s001Li.pdf"


def test_archive_base_name_falls_back_to_user_id():
    student = SimpleNamespace(id=7, student_id=None, name="Li Na")
    assert archive_base_name(student, ".txt") == "7Li_Na.txt"


def test_archive_base_name_without_extension():
    student = SimpleNamespace(id=3, student_id="s/../x", name="")
    assert archive_base_name(student) == "x"

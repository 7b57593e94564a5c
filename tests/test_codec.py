"""
Tests for the markdown task codec.
"""
from mdkanban.codec import parse_task, serialize_task, extract_id, inject_id
from mdkanban.schema import Task, TaskStatus, AcceptanceCriterion


def _full_task(**overrides) -> Task:
    fields = dict(
        id="1718000000000",
        status=TaskStatus.UAT,
        filename="fix-login-bug.md",
        title="Fix login bug",
        description="Users are logged out.\n\nSteps:\n  1. open app\n  2. wait",
        tags=["bug", "refactor"],
        acceptance_criteria=[
            AcceptanceCriterion("Repro written", True),
            AcceptanceCriterion("Fix shipped", False),
        ],
        notes="First line\nSecond line",
        epic="Auth",
        completed="2024-06-10T09:00:00.000Z",
    )
    fields.update(overrides)
    return Task(**fields)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Round trip
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_round_trip_full_task():
    """Every field survives serialize -> parse"""
    task = _full_task()
    parsed = parse_task(serialize_task(task), task.filename, task.status.value)
    assert parsed == task


def test_round_trip_empty_collections():
    task = _full_task(tags=[], acceptance_criteria=[], description="", notes="",
                      epic=None, completed=None)
    parsed = parse_task(serialize_task(task), task.filename, "uat")
    assert parsed == task


def test_round_trip_legacy_task_gets_composite_id():
    task = _full_task(id="", legacy=True)
    content = serialize_task(task)
    assert "## Id" not in content

    parsed = parse_task(content, "fix-login-bug.md", "uat")
    assert parsed.id == "uat/fix-login-bug.md"
    assert parsed.legacy
    assert parsed.title == task.title
    assert parsed.tags == task.tags


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Serialize
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_serialize_always_writes_mandatory_sections():
    task = Task(id="1", status=TaskStatus.BACKLOG, filename="x.md", title="X")
    content = serialize_task(task)
    for header in ("# X", "## Id", "## Status", "## Tags", "## Description",
                   "## Acceptance Criteria", "## Notes"):
        assert header in content
    assert "## Epic" not in content
    assert "## Completed" not in content


def test_serialize_canonical_order():
    content = serialize_task(_full_task())
    headers = [line for line in content.split("\n") if line.startswith("#")]
    assert headers == [
        "# Fix login bug", "## Id", "## Status", "## Epic", "## Tags",
        "## Description", "## Acceptance Criteria", "## Notes", "## Completed",
    ]


def test_serialize_checkboxes():
    content = serialize_task(_full_task())
    assert "- [x] Repro written\n" in content
    assert "- [ ] Fix shipped\n" in content


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Parse
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_parse_is_case_insensitive_and_skips_unknown_sections():
    content = (
        "# Title\n\n## ID\nabc\n\n## TAGS\n- bug\n\n## Random Stuff\n- ignored\n\n"
        "## acceptance criteria\n- [X] Upper\n- [x] lower\n- [ ] open\n"
    )
    task = parse_task(content, "t.md", "backlog")
    assert task.id == "abc"
    assert task.tags == ["bug"]
    assert [(c.text, c.checked) for c in task.acceptance_criteria] == [
        ("Upper", True), ("lower", True), ("open", False),
    ]


def test_parse_drops_malformed_criteria():
    content = (
        "# T\n\n## Acceptance Criteria\n"
        "- [y] not a checkbox\n- plain bullet\n* [x] star bullet\n-[x] no space\n- [x] real\n"
    )
    task = parse_task(content, "t.md", "backlog")
    assert [c.text for c in task.acceptance_criteria] == ["real"]


def test_parse_missing_sections_default():
    task = parse_task("", "empty.md", "ideation")
    assert task.title == ""
    assert task.description == ""
    assert task.tags == []
    assert task.acceptance_criteria == []
    assert task.epic is None
    assert task.completed is None
    assert task.id == "ideation/empty.md"


def test_parse_directory_status_wins():
    content = "# T\n\n## Id\n1\n\n## Status\nbacklog\n"
    task = parse_task(content, "t.md", "done")
    assert task.status == TaskStatus.DONE


def test_parse_heading_inside_description_is_text():
    content = "# Real title\n\n## Description\n# not a title\nbody\n\n## Notes\n"
    task = parse_task(content, "t.md", "backlog")
    assert task.title == "Real title"
    assert task.description == "# not a title\nbody"


def test_parse_handles_crlf():
    content = "# T\r\n\r\n## Id\r\n42\r\n\r\n## Tags\r\n- bug\r\n"
    task = parse_task(content, "t.md", "backlog")
    assert task.id == "42"
    assert task.tags == ["bug"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Id helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_extract_id():
    assert extract_id("# T\n\n## Id\n  777  \n\n## Status\nuat\n") == "777"
    assert extract_id("# T\n\n## Status\nuat\n") is None
    assert extract_id("# T\n\n## Id\n\n## Status\nuat\n") is None


def test_inject_id_after_title():
    content = "# T\n\n## Status\nbacklog\n"
    injected = inject_id(content, "99")
    assert injected == "# T\n\n## Id\n99\n\n## Status\nbacklog\n"
    assert extract_id(injected) == "99"


def test_inject_id_without_title_prepends():
    injected = inject_id("## Notes\nhello\n", "5")
    assert injected.startswith("## Id\n5\n\n## Notes")
    assert parse_task(injected, "t.md", "backlog").notes == "hello"

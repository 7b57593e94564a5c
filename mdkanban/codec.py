"""
Markdown codec for task files.

A task file is a title line followed by level-2 sections:

    # Fix login bug

    ## Id
    1718000000000

    ## Status
    backlog

    ## Tags
    - bug

    ## Description
    Free text, kept as written.

    ## Acceptance Criteria
    - [ ] Repro steps written
    - [x] Root cause found

    ## Notes

Parsing never raises: missing sections fall back to defaults and unknown
sections are skipped. Serializing always writes the mandatory sections and
writes Id / Epic / Completed only when they have a value.
"""
import re
from typing import List, Optional

from .schema import Task, TaskStatus, AcceptanceCriterion

# "- [ ] text", "- [x] text", "- [X] text"
CRITERION_RE = re.compile(r"^- \[([ xX])\](.*)$")

SINGLE_VALUE_SECTIONS = ("id", "status", "epic", "completed")
TEXT_SECTIONS = ("description", "notes")


def legacy_id(status: str, filename: str) -> str:
    """Fallback identity for a file that has no Id section."""
    return f"{status}/{filename}"


def _split_lines(content: str) -> List[str]:
    return [line.rstrip("\r") for line in content.split("\n")]


def parse_task(content: str, filename: str, status) -> Task:
    """Parse a task file. `status` is the containing directory and wins
    over whatever the file's own Status section says."""
    status = TaskStatus.parse(status)

    title: Optional[str] = None
    section = ""
    values = {}
    text = {name: [] for name in TEXT_SECTIONS}
    tags: List[str] = []
    criteria: List[AcceptanceCriterion] = []

    for line in _split_lines(content):
        if line.startswith("## "):
            section = line[3:].strip().lower()
            continue
        if title is None and line.startswith("# "):
            title = line[2:].strip()
            continue

        if section in TEXT_SECTIONS:
            text[section].append(line)
        elif section in SINGLE_VALUE_SECTIONS:
            if line.strip() and section not in values:
                values[section] = line.strip()
        elif section == "tags":
            if line.startswith("- ") and line[2:].strip():
                tags.append(line[2:].strip())
        elif section == "acceptance criteria":
            match = CRITERION_RE.match(line)
            if match:
                criteria.append(AcceptanceCriterion(
                    text=match.group(2).strip(),
                    checked=match.group(1) in "xX",
                ))

    task_id = values.get("id")
    return Task(
        id=task_id or legacy_id(status.value, filename),
        status=status,
        filename=filename,
        title=title or "",
        description="\n".join(text["description"]).strip(),
        tags=tags,
        acceptance_criteria=criteria,
        notes="\n".join(text["notes"]).strip(),
        epic=values.get("epic"),
        completed=values.get("completed"),
        legacy=task_id is None,
    )


def serialize_task(task: Task) -> str:
    """Render a task in canonical section order."""
    content = f"# {task.title}\n\n"
    if task.id and not task.legacy:
        content += f"## Id\n{task.id}\n\n"
    content += f"## Status\n{task.status.value}\n\n"
    if task.epic:
        content += f"## Epic\n{task.epic}\n\n"
    content += "## Tags\n"
    for tag in task.tags:
        content += f"- {tag}\n"
    content += f"\n## Description\n{task.description or ''}\n\n"
    content += "## Acceptance Criteria\n"
    for criterion in task.acceptance_criteria:
        checkbox = "[x]" if criterion.checked else "[ ]"
        content += f"- {checkbox} {criterion.text}\n"
    content += f"\n## Notes\n{task.notes or ''}\n"
    if task.completed:
        content += f"\n## Completed\n{task.completed}\n"
    return content


def extract_id(content: str) -> Optional[str]:
    """Return the value of the Id section, or None for a legacy file."""
    in_id = False
    for line in _split_lines(content):
        if line.startswith("## "):
            in_id = line[3:].strip().lower() == "id"
            continue
        if in_id and line.strip():
            return line.strip()
    return None


def inject_id(content: str, task_id: str) -> str:
    """Insert an Id section right after the title line (or at the top)."""
    lines = content.split("\n")
    for i, line in enumerate(lines):
        if line.startswith("# "):
            return "\n".join(lines[:i + 1] + ["", "## Id", task_id] + lines[i + 1:])
    return "\n".join(["## Id", task_id, ""] + lines)

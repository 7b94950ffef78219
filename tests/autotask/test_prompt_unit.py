"""Unit tests for analysis prompt construction."""

from src.autotask.analysis import ExistingTaskSummary, SYSTEM_PROMPT, build_analysis_prompt
from src.autotask.webhook.models import (
    Commit,
    EventKind,
    NormalizedEvent,
    PullRequest,
    Repository,
)


def _make_push_event(files_added=None, files_modified=None, description="Widget factory"):
    return NormalizedEvent(
        kind=EventKind.PUSH,
        repository=Repository(full_name="acme/widgets", name="widgets", description=description),
        commits=[
            Commit(
                id="abc",
                message="Fix login redirect",
                author_name="Jane",
                files_added=files_added or [],
                files_removed=["old.py"],
                files_modified=files_modified or [],
            ),
            Commit(id="def", message="Add docs", author_name="Sam"),
        ],
    )


def _make_pr_event(body="Adds the gadget module"):
    return NormalizedEvent(
        kind=EventKind.PULL_REQUEST,
        repository=Repository(full_name="acme/widgets", name="widgets"),
        pull_request=PullRequest(
            number=7,
            title="Add gadgets",
            body=body,
            author_login="octocat",
            head_ref="feature/gadgets",
            base_ref="main",
            state="open",
        ),
        action="opened",
    )


class TestPushPrompt:
    def test_header_and_repository(self):
        prompt = build_analysis_prompt(_make_push_event())

        assert prompt.startswith("Analyze the following GitHub push event:")
        assert "Repository: acme/widgets" in prompt
        assert "Description: Widget factory" in prompt

    def test_missing_description(self):
        prompt = build_analysis_prompt(_make_push_event(description=None))

        assert "Description: No description" in prompt

    def test_commits_numbered_with_counts(self):
        prompt = build_analysis_prompt(
            _make_push_event(files_added=["a.py"], files_modified=["b.py", "c.py"])
        )

        assert "Commits (2):" in prompt
        assert "1. Fix login redirect" in prompt
        assert "   Author: Jane" in prompt
        assert "   Files: +1 -1 ~2" in prompt
        assert "   Added: a.py" in prompt
        assert "   Modified: b.py, c.py" in prompt
        assert "2. Add docs" in prompt

    def test_file_lists_truncated_after_five(self):
        added = [f"file{i}.py" for i in range(7)]

        prompt = build_analysis_prompt(_make_push_event(files_added=added))

        assert "   Added: file0.py, file1.py, file2.py, file3.py, file4.py..." in prompt
        assert "file5.py" not in prompt

    def test_exactly_five_files_not_truncated(self):
        added = [f"file{i}.py" for i in range(5)]

        prompt = build_analysis_prompt(_make_push_event(files_added=added))

        assert "file4.py\n" in prompt
        assert "file4.py..." not in prompt

    def test_ends_with_instruction(self):
        prompt = build_analysis_prompt(_make_push_event())

        assert prompt.endswith(
            "Please analyze these changes and provide task suggestions in JSON format."
        )

    def test_deterministic(self):
        event = _make_push_event(files_added=["a.py"])

        assert build_analysis_prompt(event) == build_analysis_prompt(event)


class TestPullRequestPrompt:
    def test_pull_request_section(self):
        prompt = build_analysis_prompt(_make_pr_event())

        assert prompt.startswith("Analyze the following GitHub pull_request event:")
        assert "Pull Request: #7 - Add gadgets" in prompt
        assert "Author: octocat" in prompt
        assert "Branch: feature/gadgets -> main" in prompt
        assert "State: open" in prompt
        assert "Description:\nAdds the gadget module" in prompt
        assert "Commits (" not in prompt

    def test_empty_body_omitted(self):
        prompt = build_analysis_prompt(_make_pr_event(body=None))

        assert "Description:\n" not in prompt


class TestContextSections:
    def test_existing_tasks_listed_with_truncated_description(self):
        tasks = [
            ExistingTaskSummary(
                id="uuid-1",
                identifier="ENG-1",
                title="Login broken",
                description="x" * 150,
                state="In Progress",
            ),
            ExistingTaskSummary(id="uuid-2", identifier="ENG-2", title="Docs"),
        ]

        prompt = build_analysis_prompt(_make_push_event(), tasks)

        assert "Existing Linear Tasks (consider for updates):" in prompt
        assert "- ENG-1: Login broken (In Progress) [id: uuid-1]" in prompt
        assert "  " + "x" * 100 + "..." in prompt
        assert "x" * 101 not in prompt
        assert "- ENG-2: Docs (Unknown) [id: uuid-2]" in prompt

    def test_no_existing_tasks_section_when_empty(self):
        prompt = build_analysis_prompt(_make_push_event(), [])

        assert "Existing Linear Tasks" not in prompt

    def test_project_context(self):
        prompt = build_analysis_prompt(_make_push_event(), [], "A payments platform")

        assert "Project Context:\nA payments platform" in prompt


def test_system_prompt_describes_contract():
    assert "shouldCreateTasks" in SYSTEM_PROMPT
    assert "existingTaskId" in SYSTEM_PROMPT
    assert "1 = Urgent" in SYSTEM_PROMPT
    assert "4 = Low" in SYSTEM_PROMPT

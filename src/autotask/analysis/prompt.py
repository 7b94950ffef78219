"""Analysis prompt construction.

Builds the system instruction and the per-event user prompt sent to the
LLM. Prompt building is a pure function of its inputs: the same event and
context always produce the same text.

Source:
- src/autotask/webhook/models.py (NormalizedEvent)
- src/autotask/analysis/models.py (ExistingTaskSummary)
"""

from typing import List, Optional, Sequence

from src.autotask.analysis.models import ExistingTaskSummary
from src.autotask.webhook.models import Commit, NormalizedEvent, PullRequest


MAX_LISTED_FILES = 5
MAX_TASK_DESCRIPTION_CHARS = 100
TRUNCATION_MARKER = "..."


SYSTEM_PROMPT = """You are an AI assistant that analyzes GitHub repository changes (commits, pull requests) and suggests Linear tasks.

Your job is to:
1. Analyze the code changes, commit messages, and PR descriptions
2. Determine if any tasks should be created or updated in Linear
3. Suggest appropriate task titles, descriptions, priorities, and labels
4. Provide reasoning for your suggestions

Guidelines:
- Focus on actionable items like bug fixes, feature requests, documentation updates, refactoring needs
- Consider the scope and impact of changes when setting priority
- Use clear, concise task titles that describe the work needed
- Include relevant technical details in task descriptions
- Suggest appropriate labels based on the type of work (bug, feature, docs, etc.)
- Only suggest task creation/updates when there's genuine value
- For updates, match against existing task summaries when provided and use their id as existingTaskId

Priority levels:
1 = Urgent (critical bugs, security issues)
2 = High (important features, significant bugs)
3 = Medium (standard features, minor improvements)
4 = Low (nice-to-have, documentation, cleanup)

You MUST respond with a single valid JSON object using this exact structure:
{
  "summary": "short summary of the changes",
  "shouldCreateTasks": true,
  "suggestions": [
    {
      "action": "create|update",
      "task": {
        "title": "task title",
        "description": "task description",
        "priority": 1-4,
        "labels": ["label"],
        "assignee": "optional display name",
        "estimateHours": 2
      },
      "existingTaskId": "required for update, omit for create",
      "reasoning": "why this task is needed",
      "confidence": 0.0-1.0
    }
  ]
}"""


def build_analysis_prompt(
    event: NormalizedEvent,
    existing_tasks: Sequence[ExistingTaskSummary] = (),
    project_info: Optional[str] = None,
) -> str:
    """Build the user prompt describing one event.

    Args:
        event: The normalized event to analyze.
        existing_tasks: Tracker tasks related to the repository, in the
            order they should be listed. May be empty.
        project_info: Optional free-text project context.

    Returns:
        The prompt string.
    """
    repository = event.repository
    sections: List[str] = [
        f"Analyze the following GitHub {event.kind.value} event:\n",
        f"Repository: {repository.full_name}\n"
        f"Description: {repository.description or 'No description'}\n",
    ]

    if event.commits:
        sections.append(_format_commits(event.commits))

    if event.pull_request is not None:
        sections.append(_format_pull_request(event.pull_request))

    if existing_tasks:
        sections.append(_format_existing_tasks(existing_tasks))

    if project_info:
        sections.append(f"Project Context:\n{project_info}\n")

    sections.append(
        "Please analyze these changes and provide task suggestions in JSON format."
    )
    return "\n".join(sections)


def _format_commits(commits: Sequence[Commit]) -> str:
    lines = [f"Commits ({len(commits)}):"]
    for index, commit in enumerate(commits, start=1):
        lines.append(f"{index}. {commit.message}")
        lines.append(f"   Author: {commit.author_name}")
        lines.append(
            f"   Files: +{len(commit.files_added)} "
            f"-{len(commit.files_removed)} ~{len(commit.files_modified)}"
        )
        if commit.files_added:
            lines.append(f"   Added: {_format_paths(commit.files_added)}")
        if commit.files_modified:
            lines.append(f"   Modified: {_format_paths(commit.files_modified)}")
        lines.append("")
    return "\n".join(lines)


def _format_paths(paths: Sequence[str]) -> str:
    listed = ", ".join(paths[:MAX_LISTED_FILES])
    if len(paths) > MAX_LISTED_FILES:
        listed += TRUNCATION_MARKER
    return listed


def _format_pull_request(pr: PullRequest) -> str:
    lines = [
        f"Pull Request: #{pr.number} - {pr.title}",
        f"Author: {pr.author_login}",
        f"Branch: {pr.head_ref} -> {pr.base_ref}",
        f"State: {pr.state}",
    ]
    if pr.body:
        lines.append(f"Description:\n{pr.body}")
    lines.append("")
    return "\n".join(lines)


def _format_existing_tasks(tasks: Sequence[ExistingTaskSummary]) -> str:
    lines = ["Existing Linear Tasks (consider for updates):"]
    for task in tasks:
        lines.append(f"- {task.identifier}: {task.title} ({task.state}) [id: {task.id}]")
        if task.description:
            excerpt = task.description[:MAX_TASK_DESCRIPTION_CHARS]
            if len(task.description) > MAX_TASK_DESCRIPTION_CHARS:
                excerpt += TRUNCATION_MARKER
            lines.append(f"  {excerpt}")
    lines.append("")
    return "\n".join(lines)

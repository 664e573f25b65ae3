"""Default prompt builders for the two task kinds.

The wording is deliberately short; callers with their own prompt style pass
a custom PromptBuilder to BatchSubmitter.
"""

from __future__ import annotations

from typing import Callable, Dict

PromptBuilder = Callable[[str, str, bool], str]

_RESPONSE_RULES = """Response format:
- Return ONLY the resulting code
- Do not wrap the code in markdown code blocks
- Do not add any explanatory text"""


def build_docs_prompt(code: str, file_path: str, is_entry_point: bool) -> str:
    """Ask for documentation comments without changing the code."""
    entry_note = (
        "This file IS a package entry point: add a module/package level description at the top."
        if is_entry_point
        else "This file is NOT a package entry point: do not add a package level description."
    )
    return f"""Add documentation comments to every export in {file_path}.
Document parameters, return values and side effects. Do not change any code, only add or modify comments.
{entry_note}

{_RESPONSE_RULES}

Code to document:
{code}"""


def build_tests_prompt(code: str, file_path: str, is_entry_point: bool) -> str:
    """Ask for a unit test file covering the given source."""
    return f"""Write a complete unit test file for {file_path}.
Use the test framework already used by the project. Cover every exported function and class, including error paths.
Import the code under test; do not copy it into the test file.

{_RESPONSE_RULES}

Code under test:
{code}"""


PROMPT_BUILDERS: Dict[str, PromptBuilder] = {
    "docs": build_docs_prompt,
    "tests": build_tests_prompt,
}


def get_prompt_builder(task: str) -> PromptBuilder:
    try:
        return PROMPT_BUILDERS[task]
    except KeyError:
        raise ValueError(f"Unknown task: {task}. Supported tasks: {sorted(PROMPT_BUILDERS)}")

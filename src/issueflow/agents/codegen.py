"""Code generation for issues.

Three modes, picked at construction:
- task request: write a request file for a human/agent and return placeholders
- API: ask the Messages API and parse files out of the response
- mock: no API key, return a deterministic scaffold
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from issueflow.core.types import CodeGenerationRequest, CodeGenerationResult, GeneratedFile

if TYPE_CHECKING:
    from issueflow.agents.llm_client import LLMClient

logger = logging.getLogger(__name__)

FILE_BLOCK_PATTERN = re.compile(
    r"\[FILE:\s*(.+?)\]\s*\[DESCRIPTION:\s*(.+?)\]\s*\[CONTENT\]\s*```[\w-]*\n([\s\S]+?)```"
)
CODE_BLOCK_PATTERN = re.compile(r"```([\w-]+)?\n([\s\S]+?)```")

LANGUAGE_EXTENSIONS = {
    "python": "py",
    "py": "py",
    "typescript": "ts",
    "javascript": "js",
    "markdown": "md",
    "bash": "sh",
    "shell": "sh",
    "yaml": "yml",
}


def feature_package(issue_number: int) -> str:
    return f"features/issue_{issue_number}"


def build_prompt(request: CodeGenerationRequest) -> str:
    return f"""You are an expert software engineer working on the repository: {request.repository}

Issue #{request.issue_number}: {request.issue_title}

{request.issue_body}

Based on this GitHub issue, generate the necessary code files to implement the requested feature.

For each file, use the following format:
[FILE: path/to/file.py]
[DESCRIPTION: Brief description of what this file does]
[CONTENT]
```python
# Your code here
```

Requirements:
1. Follow the conventions of idiomatic Python 3
2. Include proper error handling
3. Add comments for complex logic
4. Add pytest tests for the new behavior
5. Follow the existing project structure shown in the issue

Generate complete, production-ready code."""


def extract_files(response: str) -> list[GeneratedFile]:
    """Parse generated files out of a model response.

    Tagged blocks are preferred. Without any, every fenced code block
    becomes ``generated/file-<i>.<ext>``.
    """
    tagged = FILE_BLOCK_PATTERN.findall(response)
    if tagged:
        return [
            GeneratedFile(path=path.strip(), content=content.strip(), description=desc.strip())
            for path, desc, content in tagged
        ]

    files = []
    for index, (language, content) in enumerate(CODE_BLOCK_PATTERN.findall(response), start=1):
        language = (language or "python").lower()
        ext = LANGUAGE_EXTENSIONS.get(language, language)
        files.append(
            GeneratedFile(
                path=f"generated/file-{index}.{ext}",
                content=content.strip(),
                description=f"Generated code block {index}",
            )
        )
    return files


def mock_files(request: CodeGenerationRequest) -> list[GeneratedFile]:
    """Scaffold produced when no generation backend is configured."""
    n = request.issue_number
    package = feature_package(n)
    return [
        GeneratedFile(
            path=f"{package}/__init__.py",
            content=f'''"""Implementation for issue #{n}: {request.issue_title}."""

import logging

logger = logging.getLogger(__name__)


class Feature{n}:
    """Entry point for issue #{n}."""

    def __init__(self) -> None:
        logger.debug("Feature {n} initialized")

    async def execute(self) -> None:
        logger.info("Executing feature {n}")
''',
            description=f"Main implementation for issue #{n}",
        ),
        GeneratedFile(
            path=f"{package}/test_feature.py",
            content=f'''"""Tests for issue #{n}."""

import pytest

from features.issue_{n} import Feature{n}


def test_initializes():
    assert Feature{n}() is not None


@pytest.mark.asyncio
async def test_execute_returns_none():
    assert await Feature{n}().execute() is None
''',
            description=f"Unit tests for issue #{n}",
        ),
        GeneratedFile(
            path=f"{package}/README.md",
            content=f"""# Issue #{n}: {request.issue_title}

## Overview

Implementation of issue #{n}.

## Files

- `__init__.py`: Main implementation
- `test_feature.py`: Unit tests

## Testing

```bash
pytest {package}
```
""",
            description=f"Documentation for issue #{n}",
        ),
    ]


class CodeGenerator:
    """Generates artifacts for an issue.

    Args:
        llm: Client for API mode. Without one, mock mode is used.
        use_task_tool: Write task request files instead of generating code.
        task_request_directory: Where task request files go.
    """

    def __init__(
        self,
        llm: LLMClient | None = None,
        use_task_tool: bool = False,
        task_request_directory: str | Path = ".ai/task-requests",
    ) -> None:
        self._llm = llm
        self._use_task_tool = use_task_tool
        self._task_request_directory = Path(task_request_directory)

    @property
    def mode(self) -> str:
        if self._use_task_tool:
            return "task"
        return "api" if self._llm is not None else "mock"

    async def generate(self, request: CodeGenerationRequest) -> CodeGenerationResult:
        if self._use_task_tool:
            return await self._generate_task_request(request)

        if self._llm is None:
            logger.warning("No generation API key configured - using mock implementation")
            files = mock_files(request)
            return CodeGenerationResult(
                success=True,
                files=files,
                summary=f"Generated {len(files)} file(s) (mock implementation)",
            )

        try:
            response = await self._llm.complete(build_prompt(request))
        except Exception as e:
            logger.error("Code generation for issue #%d failed: %s", request.issue_number, e)
            return CodeGenerationResult(
                success=False,
                summary="Code generation failed",
                error=str(e),
            )

        files = extract_files(response)
        return CodeGenerationResult(
            success=True,
            files=files,
            summary=f"Generated {len(files)} file(s) using {self._llm.config.model}",
        )

    async def _generate_task_request(self, request: CodeGenerationRequest) -> CodeGenerationResult:
        n = request.issue_number
        package = feature_package(n)
        task_file = self._task_request_directory / f"issue-{n}.md"
        content = f"""# Code Generation Task Request

**Repository**: {request.repository}
**Issue**: #{n}
**Title**: {request.issue_title}
**Mode**: Task request

---

## Issue Content

{request.issue_body}

---

## Task

Generate the code files needed to implement the issue above:

1. Implementation module
2. pytest test module
3. README

## Location

`{package}/`
"""
        await asyncio.to_thread(_write_text, task_file, content)
        logger.info("Task request written: %s", task_file)

        files = [
            GeneratedFile(
                path=f"{package}/__init__.py",
                content=f'"""Awaiting implementation, see {task_file}."""\n',
                description="Main implementation (awaiting generation)",
            ),
            GeneratedFile(
                path=f"{package}/test_feature.py",
                content='"""Awaiting generated tests."""\n',
                description="Unit tests (awaiting generation)",
            ),
            GeneratedFile(
                path=f"{package}/README.md",
                content=(
                    f"# Issue #{n}: {request.issue_title}\n\n"
                    f"**Status**: Awaiting implementation\n\n"
                    f"Task request file: `{task_file}`\n"
                ),
                description="Documentation (awaiting generation)",
            ),
        ]
        return CodeGenerationResult(
            success=True,
            files=files,
            summary=f"Task request created: {task_file}",
        )

    async def write_files(self, files: list[GeneratedFile], base_path: str | Path = ".") -> list[Path]:
        """Write artifacts under base_path, creating directories as needed."""
        written = []
        for file in files:
            full_path = Path(base_path) / file.path
            await asyncio.to_thread(_write_text, full_path, file.content)
            logger.debug("Created: %s", full_path)
            written.append(full_path)
        return written


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")

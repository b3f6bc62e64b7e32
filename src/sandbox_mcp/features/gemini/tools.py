"""sandbox_mcp.features.gemini.tools

Registre d'outils MCP (statique, ordonné) et handlers Gemini.

Outils:
- `gemini_quick_query`: modèle flash, Q&A rapide
- `gemini_analyze_code`: modèle pro, revue de code
- `gemini_codebase_analysis`: modèle pro, lecture de fichiers via FileAccessGuard

Les schémas sont annoncés tels quels via `tools/list`; la validation côté
serveur se limite aux arguments requis (pas de validation JSON-Schema stricte).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from sandbox_mcp.config.settings import GeminiServerConfig
from sandbox_mcp.core.exceptions import ToolArgumentError

from .client import GeminiClient
from .files import FileAccessGuard, format_file_blocks
from .retry import RetryPolicy, SleepFn, call_with_retry


logger = logging.getLogger(__name__)

JsonDict = dict[str, object]

ANALYSIS_FOCUSES = ["security", "performance", "architecture", "refactoring", "bugs", "general"]


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: JsonDict

    def to_dict(self) -> JsonDict:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


ToolHandler = Callable[[JsonDict], Awaitable[str]]


@dataclass(frozen=True)
class RegisteredTool:
    descriptor: ToolDescriptor
    handler: ToolHandler
    requires_api_key: bool = True


class ToolRegistry:
    """Liste ordonnée et immuable d'outils; `name` est la clé de dispatch."""

    def __init__(self, tools: Iterable[RegisteredTool]) -> None:
        ordered = list(tools)
        by_name: dict[str, RegisteredTool] = {}
        for tool in ordered:
            name = tool.descriptor.name
            if name in by_name:
                raise ValueError(f"Outil dupliqué dans le registre: {name}")
            by_name[name] = tool
        self._tools = tuple(ordered)
        self._by_name = by_name

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return [t.descriptor.name for t in self._tools]

    def get(self, name: object) -> RegisteredTool | None:
        if not isinstance(name, str):
            return None
        return self._by_name.get(name)

    def descriptors(self) -> list[JsonDict]:
        return [t.descriptor.to_dict() for t in self._tools]


QUICK_QUERY = ToolDescriptor(
    name="gemini_quick_query",
    description=(
        "Ask Google Gemini a quick question. Uses Gemini 2.5 Flash for fast responses. "
        "Good for explanations, brainstorming, quick code snippets, and general Q&A."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "The question or prompt to send to Gemini"},
        },
        "required": ["query"],
    },
)

ANALYZE_CODE = ToolDescriptor(
    name="gemini_analyze_code",
    description=(
        "Send code to Google Gemini for deep analysis. Uses Gemini 2.5 Pro for thorough review. "
        "Good for security audits, performance review, architecture analysis, and refactoring suggestions."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "code": {"type": "string", "description": "The code to analyze"},
            "language": {"type": "string", "description": "Programming language (e.g. typescript, python)"},
            "focus": {
                "type": "string",
                "description": "Analysis focus: security, performance, architecture, refactoring, bugs, or general",
                "enum": ANALYSIS_FOCUSES,
            },
        },
        "required": ["code"],
    },
)


def _codebase_descriptor(roots_text: str) -> ToolDescriptor:
    return ToolDescriptor(
        name="gemini_codebase_analysis",
        description=(
            "Analyze multiple files from the workspace using Google Gemini. Reads files from disk and sends "
            "them to Gemini 2.5 Pro for cross-file analysis. Good for architecture review, dependency analysis, "
            "and finding patterns across files."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "file_paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": f"Array of absolute file paths to read and analyze (must be under {roots_text})",
                },
                "question": {"type": "string", "description": "What to analyze about these files"},
            },
            "required": ["file_paths", "question"],
        },
    )


def _require_str(args: JsonDict, key: str, *, tool: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolArgumentError(f"Missing required argument: {key}", tool=tool, argument=key)
    return value


def _optional_str(args: JsonDict, key: str, default: str) -> str:
    value = args.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def build_analyze_prompt(*, code: str, language: str, focus: str) -> str:
    return "\n".join(
        [
            f"Analyze the following {language} code. Focus: {focus}.",
            "Provide specific, actionable feedback.",
            "",
            f"```{language}",
            code,
            "```",
        ]
    )


def build_codebase_prompt(*, question: str, file_blocks: str) -> str:
    return f"{question}\n\nFiles:\n\n{file_blocks}"


class GeminiToolbox:
    """Handlers des outils Gemini.

    Dépendances injectées (client, garde fichiers, politique de retry, sleep)
    pour pouvoir tout substituer dans les tests.
    """

    def __init__(
        self,
        config: GeminiServerConfig,
        client: GeminiClient,
        *,
        guard: FileAccessGuard | None = None,
        policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config
        self.client = client
        self.guard = guard or FileAccessGuard(config.allowed_roots, max_file_bytes=config.max_file_bytes)
        self.policy = policy or RetryPolicy.from_config(config)
        self._sleep = sleep

    async def ask(self, model: str, prompt: str) -> str:
        """Appel Gemini avec retry; relance la dernière erreur si échec."""
        result = await call_with_retry(
            lambda: self.client.generate(model=model, prompt=prompt),
            policy=self.policy,
            sleep=self._sleep,
        )
        logger.info(f"Gemini {result.model}: {len(result.text)} caractères en {result.elapsed_ms}ms")
        return result.text

    async def quick_query(self, args: JsonDict) -> str:
        query = _require_str(args, "query", tool=QUICK_QUERY.name)
        return await self.ask(self.config.flash_model, query)

    async def analyze_code(self, args: JsonDict) -> str:
        code = _require_str(args, "code", tool=ANALYZE_CODE.name)
        prompt = build_analyze_prompt(
            code=code,
            language=_optional_str(args, "language", "unknown"),
            focus=_optional_str(args, "focus", "general"),
        )
        return await self.ask(self.config.pro_model, prompt)

    async def codebase_analysis(self, args: JsonDict) -> str:
        tool = "gemini_codebase_analysis"
        question = _require_str(args, "question", tool=tool)
        file_paths = args.get("file_paths", [])
        if not isinstance(file_paths, list):
            raise ToolArgumentError("file_paths must be an array of strings", tool=tool, argument="file_paths")

        results = self.guard.read_files(file_paths)
        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.info(f"{tool}: {failed}/{len(results)} fichier(s) en erreur")

        prompt = build_codebase_prompt(question=question, file_blocks=format_file_blocks(results))
        return await self.ask(self.config.pro_model, prompt)

    def registry(self) -> ToolRegistry:
        return ToolRegistry(
            [
                RegisteredTool(QUICK_QUERY, self.quick_query),
                RegisteredTool(ANALYZE_CODE, self.analyze_code),
                RegisteredTool(_codebase_descriptor(self.guard.describe_roots()), self.codebase_analysis),
            ]
        )

"""sandbox_mcp.features.gemini.files

Garde d'accès fichiers pour `gemini_codebase_analysis`.

Sécurité:
- Chaque chemin est résolu (`Path.resolve`, liens symboliques suivis) puis
  comparé composant par composant aux racines autorisées:
  `/workspace-evil` n'est PAS sous `/workspace`.
- Un chemin refusé ou illisible n'interrompt jamais le lot: chaque entrée
  produit soit un contenu, soit une erreur.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from sandbox_mcp.core import constants


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileReadResult:
    path: str
    content: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_prompt_block(self) -> str:
        if self.error is not None:
            return f"--- {self.path} ---\n[Error: {self.error}]"
        return f"--- {self.path} ---\n{self.content}"


class FileAccessGuard:
    """Lecture de fichiers bornée à un ensemble fixe de racines."""

    def __init__(
        self,
        allowed_roots: Iterable[str] = constants.DEFAULT_ALLOWED_ROOTS,
        *,
        max_file_bytes: int = constants.DEFAULT_MAX_FILE_BYTES,
    ) -> None:
        self._roots_display = tuple(str(r) for r in allowed_roots)
        self._roots: tuple[Path, ...] = tuple(Path(r).expanduser().resolve(strict=False) for r in self._roots_display)
        self._max_file_bytes = max(1, int(max_file_bytes))

    @property
    def allowed_roots(self) -> tuple[str, ...]:
        return self._roots_display

    def describe_roots(self) -> str:
        return " or ".join(self._roots_display)

    def resolve(self, file_path: str) -> Path:
        return Path(file_path).expanduser().resolve(strict=False)

    def _contains(self, resolved: Path) -> bool:
        return any(resolved == root or root in resolved.parents for root in self._roots)

    def is_allowed(self, file_path: str) -> bool:
        if "\x00" in file_path:
            return False
        try:
            resolved = self.resolve(file_path)
        except (ValueError, OSError, RuntimeError):
            return False
        return self._contains(resolved)

    def read_file(self, file_path: object) -> FileReadResult:
        if not isinstance(file_path, str) or not file_path.strip():
            return FileReadResult(path=str(file_path), error="Invalid path (expected a non-empty string)")
        if "\x00" in file_path:
            return FileReadResult(path=file_path, error="Invalid path")

        try:
            # Boucle de liens: RuntimeError avant 3.13, OSError ensuite
            resolved = self.resolve(file_path)
        except (ValueError, OSError, RuntimeError):
            logger.warning(f"Chemin invalide: {file_path!r}")
            return FileReadResult(path=file_path, error="Invalid path")

        if not self._contains(resolved):
            logger.warning(f"Accès refusé hors racines autorisées: {file_path}")
            return FileReadResult(path=file_path, error=f"Path not allowed (must be under {self.describe_roots()})")

        try:
            if not resolved.is_file():
                if not resolved.exists():
                    return FileReadResult(path=file_path, error="No such file")
                return FileReadResult(path=file_path, error="Not a file")

            size = resolved.stat().st_size
            if size > self._max_file_bytes:
                return FileReadResult(
                    path=file_path,
                    error=f"File too large ({size} bytes, max {self._max_file_bytes})",
                )

            with open(resolved, "r", encoding="utf-8", errors="replace") as f:
                return FileReadResult(path=file_path, content=f.read())
        except OSError as e:
            return FileReadResult(path=file_path, error=e.strerror or str(e))

    def read_files(self, file_paths: Iterable[object]) -> list[FileReadResult]:
        """Lit chaque chemin indépendamment (ordre conservé)."""
        return [self.read_file(fp) for fp in file_paths]


def format_file_blocks(results: Iterable[FileReadResult]) -> str:
    """Concatène succès et erreurs, un bloc délimité par fichier."""
    return "\n\n".join(r.to_prompt_block() for r in results)

# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Term source and keyword configuration.

Two files:
- ``search-terms.json``: JSON array of strings, the term list a check reads.
- ``keywords-config.json``: the dashboard's keyword list with selection and
  favorite flags.  Every save rewrites ``search-terms.json`` with the
  selected terms in order, so the checker never reads the config directly.
"""

from __future__ import annotations

import json
import logging
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .config import DEFAULT_KEYWORDS_FILE, DEFAULT_TERMS_FILE
from .errors import KeywordError, TermSourceError

logger = logging.getLogger(__name__)


def load_terms(path: str | Path) -> tuple[str, ...]:
    """Read the ordered term list for one run.

    Whitespace-only entries are dropped; surrounding whitespace is stripped.

    Raises:
        TermSourceError: If the file is missing, not valid JSON, not a list,
            or contains a non-string entry.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise TermSourceError(f"Term file not found: {path}", path=str(path)) from exc
    except OSError as exc:
        raise TermSourceError(f"Cannot read term file {path}: {exc}", path=str(path)) from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TermSourceError(f"Term file {path} is not valid JSON: {exc}", path=str(path)) from exc

    if not isinstance(data, list):
        raise TermSourceError(f"Term file {path} must contain a JSON array of strings", path=str(path))
    for i, item in enumerate(data):
        if not isinstance(item, str):
            raise TermSourceError(f"Term #{i} in {path} is not a string: {item!r}", path=str(path))

    return tuple(t.strip() for t in data if t.strip())


class Keyword(BaseModel):
    """One tracked keyword as shown in the dashboard."""

    term: str
    selected: bool = True
    favorite: bool = False


class KeywordsFile(BaseModel):
    """On-disk shape of ``keywords-config.json``."""

    keywords: list[Keyword] = Field(default_factory=list)


class KeywordUpdate(BaseModel):
    """Partial update for one keyword. Unset fields are left unchanged."""

    selected: bool | None = None
    favorite: bool | None = None
    term: str | None = None


class BulkAction(StrEnum):
    SELECT_ALL = "select-all"
    SELECT_NONE = "select-none"
    SELECT_FAVORITES = "select-favorites"
    TOGGLE_FAVORITES = "toggle-favorites"


class KeywordStore:
    """File-backed keyword list. Every mutation is written through immediately."""

    def __init__(
        self,
        path: str | Path = DEFAULT_KEYWORDS_FILE,
        terms_path: str | Path = DEFAULT_TERMS_FILE,
    ) -> None:
        self.path = Path(path)
        self.terms_path = Path(terms_path)

    def load(self) -> KeywordsFile:
        """Read the config, initialising it from the term file on first use."""
        if self.path.exists():
            try:
                return KeywordsFile.model_validate_json(self.path.read_text(encoding="utf-8"))
            except ValidationError as exc:
                raise TermSourceError(f"Keyword config {self.path} is malformed: {exc}", path=str(self.path)) from exc

        terms: tuple[str, ...] = ()
        if self.terms_path.exists():
            terms = load_terms(self.terms_path)
        config = KeywordsFile(keywords=[Keyword(term=t) for t in terms])
        logger.info("Initialised %s from %s (%d terms)", self.path, self.terms_path, len(terms))
        self.save(config)
        return config

    def save(self, config: KeywordsFile) -> None:
        self.path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
        selected = [k.term for k in config.keywords if k.selected]
        self.terms_path.write_text(json.dumps(selected, indent=2), encoding="utf-8")

    def keywords(self) -> list[Keyword]:
        return self.load().keywords

    def selected_terms(self) -> list[str]:
        return [k.term for k in self.load().keywords if k.selected]

    @staticmethod
    def _check_unique(config: KeywordsFile, term: str, *, skip: int | None = None) -> None:
        folded = term.lower()
        for i, k in enumerate(config.keywords):
            if i != skip and k.term.lower() == folded:
                raise KeywordError("Keyword already exists")

    @staticmethod
    def _check_index(config: KeywordsFile, index: int) -> None:
        if index < 0 or index >= len(config.keywords):
            raise KeywordError("Keyword not found", not_found=True)

    def add(self, term: str) -> list[Keyword]:
        """Append *term* (trimmed, selected, not favorite)."""
        term = (term or "").strip()
        if not term:
            raise KeywordError("Term is required")
        config = self.load()
        self._check_unique(config, term)
        config.keywords.append(Keyword(term=term))
        self.save(config)
        return config.keywords

    def update(self, index: int, update: KeywordUpdate) -> Keyword:
        config = self.load()
        self._check_index(config, index)
        keyword = config.keywords[index]
        if update.selected is not None:
            keyword.selected = update.selected
        if update.favorite is not None:
            keyword.favorite = update.favorite
        if update.term is not None:
            term = update.term.strip()
            if not term:
                raise KeywordError("Term is required")
            self._check_unique(config, term, skip=index)
            keyword.term = term
        self.save(config)
        return keyword

    def delete(self, index: int) -> list[Keyword]:
        config = self.load()
        self._check_index(config, index)
        del config.keywords[index]
        self.save(config)
        return config.keywords

    def bulk(self, action: str) -> list[Keyword]:
        """Apply a selection action to all keywords.

        ``toggle-favorites`` selects exactly the favorites, and does nothing
        when there are none.
        """
        try:
            action = BulkAction(action)
        except ValueError as exc:
            raise KeywordError("Unknown action") from exc

        config = self.load()
        if action is BulkAction.SELECT_ALL:
            for k in config.keywords:
                k.selected = True
        elif action is BulkAction.SELECT_NONE:
            for k in config.keywords:
                k.selected = False
        elif action is BulkAction.SELECT_FAVORITES or any(k.favorite for k in config.keywords):
            for k in config.keywords:
                k.selected = k.favorite
        self.save(config)
        return config.keywords

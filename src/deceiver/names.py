# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Generate deceptive, engineering-flavoured identifiers."""

import logging
import random
from collections.abc import Callable, Sequence
from pathlib import Path

from deceiver.dictionary import Dictionary, DictionaryFormatError, load_dictionary
from deceiver.workspace import SymbolKind

logger = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS: int = 100


class GenerationSession:
    """Per-run generation state.

    Holds the names issued so far and the random source. One session is
    created for each obfuscation run and passed to the generator explicitly.
    """

    def __init__(self, seed: int | None = None) -> None:
        """Initialize session state.

        Args:
            seed: Optional seed for reproducible output.
        """
        self.seed = seed
        self.rng = random.Random(seed)
        self.used_names: set[str] = set()
        self.duplicates_accepted: int = 0


class NameGenerator:
    """Build plausible identifiers from the active dictionary."""

    def __init__(
        self,
        dictionary: Dictionary | None = None,
        session: GenerationSession | None = None,
    ) -> None:
        """Initialize generator.

        Args:
            dictionary: Word pools; built-in defaults when omitted.
            session: Generation session; a fresh unseeded one when omitted.
        """
        self.dictionary = dictionary or Dictionary()
        self.session = session or GenerationSession()

    def generate_name(self, kind: SymbolKind) -> str:
        """Generate a name suited to a symbol kind.

        Args:
            kind: Kind of the symbol being renamed.

        Returns:
            Generated identifier, registered as used in the session.
        """
        if kind is SymbolKind.TYPE:
            return self.generate_class_name()
        if kind is SymbolKind.METHOD:
            return self.generate_method_name()
        if kind is SymbolKind.PROPERTY:
            return self.generate_property_name()
        return self.generate_variable_name()

    def generate_class_name(self) -> str:
        """Generate a type name such as ``ServiceListenerEngine``."""
        words = self.dictionary
        return self._generate(
            [
                lambda: f"{self._pick(words.prefixes)}{self._pick(words.nouns)}",
                lambda: f"{self._pick(words.nouns)}{self._pick(words.suffixes)}",
                lambda: (
                    f"{self._pick(words.prefixes)}{self._pick(words.nouns)}"
                    f"{self._pick(words.suffixes)}"
                ),
                lambda: f"{self._pick(words.nouns)}{self._pick(words.nouns)}",
            ]
        )

    def generate_method_name(self) -> str:
        """Generate a method name such as ``fetch_buffer`` or ``syncCachedIndex``."""
        words = self.dictionary
        return self._generate(
            [
                lambda: f"{self._pick(words.verbs)}_{self._pick(words.technical_nouns)}",
                lambda: f"{self._pick(words.verbs)}{_capitalize(self._pick(words.nouns))}",
                lambda: (
                    f"{self._pick(words.verbs)}"
                    f"{_capitalize(self._pick(words.adjectives))}"
                    f"{_capitalize(self._pick(words.technical_nouns))}"
                ),
            ]
        )

    def generate_property_name(self) -> str:
        """Generate a property name such as ``SharedOffset``."""
        words = self.dictionary
        return self._generate(
            [
                lambda: (
                    f"{_capitalize(self._pick(words.adjectives))}"
                    f"{_capitalize(self._pick(words.technical_nouns))}"
                ),
                lambda: (
                    f"{_capitalize(self._pick(words.nouns))}"
                    f"{_capitalize(self._pick(words.technical_nouns))}"
                ),
            ]
        )

    def generate_variable_name(self) -> str:
        """Generate a field or parameter name such as ``cached_index``."""
        words = self.dictionary
        return self._generate(
            [
                lambda: f"{self._pick(words.adjectives)}_{self._pick(words.technical_nouns)}",
                lambda: f"{self._pick(words.technical_nouns)}_{self._pick(words.adjectives)}",
                lambda: f"temp_{self._pick(words.technical_nouns)}",
            ]
        )

    def reset(self) -> None:
        """Forget names issued so far; call once at the start of a run."""
        self.session.used_names.clear()
        self.session.duplicates_accepted = 0

    def set_seed(self, seed: int) -> None:
        """Reseed the random source.

        Args:
            seed: Seed value; identical seeds and call sequences give identical
                names.
        """
        self.session.seed = seed
        self.session.rng = random.Random(seed)

    def load_custom_dictionary(self, path: Path) -> bool:
        """Replace word pools from a dictionary file.

        Args:
            path: Structured JSON document or flat word list.

        Returns:
            True when the dictionary was loaded; False when the file could not
            be read or parsed, in which case the current pools are kept.
        """
        try:
            dictionary = load_dictionary(path=path, base=self.dictionary)
        except (OSError, UnicodeDecodeError, DictionaryFormatError) as exc:
            logger.warning(f"Failed to load dictionary (path={path} error={exc})")
            return False
        empty_pools = dictionary.empty_pools()
        if empty_pools:
            logger.warning(
                f"Dictionary leaves pools empty (path={path} pools={empty_pools})"
            )
            return False
        self.dictionary = dictionary
        logger.info(
            "Loaded custom dictionary",
            extra={
                "path": str(path),
                "nouns": len(dictionary.nouns),
                "technical_nouns": len(dictionary.technical_nouns),
            },
        )
        return True

    def _generate(self, patterns: Sequence[Callable[[], str]]) -> str:
        """Draw names from random patterns until an unused one appears.

        Args:
            patterns: Name builders; one is chosen uniformly per attempt.

        Returns:
            Generated name. After ``MAX_GENERATION_ATTEMPTS`` draws the last
            draw is returned even if it was issued before.
        """
        used_names = self.session.used_names
        name = ""
        for _ in range(MAX_GENERATION_ATTEMPTS):
            name = patterns[self.session.rng.randrange(len(patterns))]()
            if name not in used_names:
                break
        else:
            self.session.duplicates_accepted += 1
            logger.debug(f"Accepting duplicate generated name (name={name})")
        used_names.add(name)
        return name

    def _pick(self, words: Sequence[str]) -> str:
        return words[self.session.rng.randrange(len(words))]


def _capitalize(word: str) -> str:
    """Upper-case the first character only.

    Args:
        word: Input word.

    Returns:
        Word with its first character upper-cased.
    """
    if not word:
        return word
    return word[0].upper() + word[1:]

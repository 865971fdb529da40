"""Wildcard expansion for prompts.

The processor rewrites a prompt by resolving choice points, each replaced
by one randomly (or sequentially) selected option. Three syntaxes are
supported and resolved in a fixed order, each stage working on the output
of the previous one:

1. **References** ``<...>`` (async, consults the fragment store)

   - ``<hair>`` / ``<folder/hair>``: random line from a fragment file
   - ``<*hair>``: next line of the file's sequential cursor (batch runs)
   - ``<red|blue|green>``: inline options, no file needed

   Lines taken from fragment files may contain further references and are
   expanded the same way, up to ``max_depth`` levels.

2. **Groups** ``(white hair, blue eyes/red hair, purple eyes)``: options
   separated by ``/``, each option may contain commas.

3. **Bare options** ``tag1, red/blue/green, tag2``: a single comma-separated
   tag without spaces. URLs are left alone. Options containing spaces need
   the group syntax.

Malformed or unresolvable choice points are never an error: they stay in
the prompt as literal text. Unknown fragment paths are logged as warnings.

Usage Example
-------------
    >>> processor = FragmentProcessor(store)
    >>> await processor.expand("1girl, <hair>, (smile/frown), red/blue eyes")
    '1girl, long hair, smile, red eyes'
"""

from __future__ import annotations

import asyncio
import logging
import random
import re

from promptwild.core.fragment_store import FragmentStore, normalize_fragment_path

logger = logging.getLogger(__name__)

# <...> with no nested angle brackets
REFERENCE_PATTERN = re.compile(r"<([^<>]+)>")

# (a/b) with no nested parentheses and at least one slash
GROUP_PATTERN = re.compile(r"\(([^()]+/[^()]+)\)")

DEFAULT_MAX_DEPTH = 32


def _split_options(text: str, separator: str) -> list[str]:
    options = (option.strip() for option in text.split(separator))
    return [option for option in options if option]


def _pick(options: list[str], rng: random.Random) -> str:
    return options[int(rng.random() * len(options))]


def _is_bare_option_tag(tag: str) -> bool:
    """Check whether a trimmed comma segment uses the bare ``a/b`` syntax."""
    return (
        "/" in tag
        and not tag.startswith("http")
        and "://" not in tag
        and " " not in tag
    )


def expand_groups(prompt: str, rng: random.Random) -> str:
    """Resolve ``(a/b/c)`` groups.

    A group with fewer than two non-empty options loses its parentheses but
    keeps its text.
    """

    def replace(match: re.Match) -> str:
        content = match.group(1)
        options = _split_options(content, "/")
        if len(options) <= 1:
            return content
        return _pick(options, rng)

    return GROUP_PATTERN.sub(replace, prompt)


def expand_bare_options(prompt: str, rng: random.Random) -> str:
    """Resolve bare ``a/b/c`` tags inside a comma-separated prompt.

    Every tag is trimmed and the prompt is rejoined with ``", "``, whether
    or not a tag qualifies.
    """
    tags = [tag.strip() for tag in prompt.split(",")]
    processed = []
    for tag in tags:
        if _is_bare_option_tag(tag):
            options = _split_options(tag, "/")
            if len(options) > 1:
                processed.append(_pick(options, rng))
                continue
        processed.append(tag)

    return ", ".join(processed)


def has_choice_points(prompt: str) -> bool:
    """Check whether *prompt* contains anything :meth:`FragmentProcessor.expand` resolves.

    No options are drawn and the fragment store is not consulted.
    """
    if not prompt:
        return False

    if REFERENCE_PATTERN.search(prompt):
        return True

    if GROUP_PATTERN.search(prompt):
        return True

    return any(_is_bare_option_tag(tag.strip()) for tag in prompt.split(","))


class FragmentProcessor:
    """Expand wildcard choice points in prompts.

    Args:
        store: Fragment store used for ``<name>`` and ``<*name>`` lookups
        max_depth: Maximum nesting level of references inside fragment lines.
            References found deeper than this stay literal.
        rng: Random source for inline options, groups and bare options

    Notes
    -----
    - All ``<...>`` references of one text are resolved concurrently, so two
      references to the same fragment draw independently.
    - Replacements are spliced at the positions the references were found
      at, so a replacement that happens to repeat another reference's text
      cannot be mistaken for it.
    - Store failures are not caught; ``expand`` raises and nothing is
      partially applied.
    """

    def __init__(
        self,
        store: FragmentStore,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        rng: random.Random | None = None,
    ):
        if max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {max_depth}")
        self.store = store
        self.max_depth = max_depth
        self._rng = rng or random.Random()

    async def expand(self, prompt: str) -> str:
        """Resolve every choice point in *prompt*.

        Args:
            prompt: Raw prompt text

        Returns:
            The expanded prompt; prompts without choice points are returned
            unchanged
        """
        if not prompt or not has_choice_points(prompt):
            return prompt

        result = await self._expand_references(prompt, depth=0)
        result = expand_groups(result, self._rng)
        result = expand_bare_options(result, self._rng)
        return result

    async def expand_batch(self, prompt: str, count: int) -> list[str]:
        """Expand *prompt* *count* times, one after another.

        Expansions run in order, so ``<*name>`` references advance one line
        per result.
        """
        results = []
        for _ in range(count):
            results.append(await self.expand(prompt))
        return results

    def has_choice_points(self, prompt: str) -> bool:
        return has_choice_points(prompt)

    async def reset_sequential_counters(self, path: str | None = None) -> None:
        """Reset the sequential cursor of *path*, or all cursors."""
        await self.store.reset_sequential_counter(path)

    async def _expand_references(self, text: str, depth: int) -> str:
        matches = list(REFERENCE_PATTERN.finditer(text))
        if not matches:
            return text

        replacements = await asyncio.gather(
            *(self._resolve_reference(match, depth) for match in matches)
        )

        parts: list[str] = []
        position = 0
        for match, replacement in zip(matches, replacements):
            parts.append(text[position : match.start()])
            parts.append(replacement)
            position = match.end()
        parts.append(text[position:])
        return "".join(parts)

    async def _resolve_reference(self, match: re.Match, depth: int) -> str:
        literal = match.group(0)
        content = match.group(1).strip()

        if "|" in content:
            options = _split_options(content, "|")
            return _pick(options, self._rng) if options else literal

        sequential = content.startswith("*")
        path = normalize_fragment_path(content[1:] if sequential else content)
        if not path:
            return literal

        if depth >= self.max_depth:
            logger.warning(f"Fragment nesting deeper than {self.max_depth}, leaving {literal} as-is")
            return literal

        if sequential:
            line = await self.store.get_sequential_line(path)
        else:
            line = await self.store.get_random_line(path)

        if line is None:
            logger.warning(f"Fragment not found: {path}")
            return literal

        return await self._expand_references(line, depth + 1)

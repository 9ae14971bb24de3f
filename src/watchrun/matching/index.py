"""Changed-path to trigger-name resolution."""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence

from watchrun.config.schema import FileTriggerConfig
from watchrun.logging import get_logger
from watchrun.matching.resolver import (
    containing_dir,
    normalize_path,
    reduce_paths,
    resolve_patterns,
    unique,
)

log = get_logger("index")


class TriggerIndex:
    """Maps changed paths to the triggers of the rules that watch them.

    Each rule's watch set is re-resolved from the filesystem on every
    lookup, so files created after startup are matched without a restart.

    Example:
        index = TriggerIndex("/project", config.file_triggers)
        index.triggers_for_changed_paths(["/project/src/main.go"])
        # -> ["vet", "test", "run"]
    """

    def __init__(self, root: str, rules: Sequence[FileTriggerConfig]) -> None:
        """Initialize the index.

        Args:
            root: Directory relative patterns are resolved against.
            rules: File trigger rules in declaration (precedence) order.
        """
        self._root = normalize_path(os.path.abspath(root))
        self._rules = list(rules)

    @property
    def root(self) -> str:
        return self._root

    @property
    def rules(self) -> list[FileTriggerConfig]:
        return list(self._rules)

    def rule_paths(self, rule: FileTriggerConfig) -> list[str]:
        """Resolved, unreduced watch set of one rule.

        Rules without triggers watch nothing.
        """
        if not rule.triggers:
            return []
        return resolve_patterns(self._root, rule.include, rule.exclude)

    def watched_paths(self) -> list[str]:
        """The reduced watch set across every rule, sorted."""
        matched: list[str] = []
        for rule in self._rules:
            matched.extend(self.rule_paths(rule))
        return reduce_paths(unique(matched))

    def matching_triggers(self, path: str) -> list[FileTriggerConfig]:
        """Rules, in declaration order, whose watch set covers path.

        A rule covers a path when its watch set contains the path itself or
        the path's containing directory.

        Raises:
            ValueError: If path is not absolute.
        """
        return self._match(path, [set(self.rule_paths(r)) for r in self._rules])

    def _match(self, path: str, rule_sets: list[set[str]]) -> list[FileTriggerConfig]:
        if not os.path.isabs(path):
            raise ValueError(f"path must be absolute: {path}")

        path = normalize_path(path)
        directory = containing_dir(path)
        return [
            rule
            for rule, watched in zip(self._rules, rule_sets)
            if path in watched or directory in watched
        ]

    def triggers_for_changed_paths(self, paths: Iterable[str]) -> list[str]:
        """Ordered, de-duplicated trigger names for a batch of changed paths.

        Trigger lists of matching rules are concatenated per path in rule
        order, then de-duplicated keeping each name's first position. A
        trigger named by several rules therefore runs once, where it first
        appears. Relative paths are logged and skipped.
        """
        rule_sets = [set(self.rule_paths(r)) for r in self._rules]

        names: list[str] = []
        for path in paths:
            try:
                matching = self._match(path, rule_sets)
            except ValueError as e:
                log.warning("%s", e)
                continue

            for rule in matching:
                names.extend(rule.triggers)

        return unique(names)

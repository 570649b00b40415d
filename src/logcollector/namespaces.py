"""Namespace classification by configured regular expressions."""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Mapping

from logcollector.config import CollectionConfig

NAMESPACE_ACTIVE = "Active"


class NamespaceClass(str, Enum):
    """Logical namespace groups that collection is scoped to."""

    TEST = "test"
    SYSTEM = "system"


class NamespaceClassifier:
    """Decides which namespace classes a namespace belongs to."""

    def __init__(self, patterns: Mapping[NamespaceClass, str | re.Pattern[str]]) -> None:
        self._patterns: dict[NamespaceClass, re.Pattern[str]] = {
            cls: re.compile(p) if isinstance(p, str) else p for cls, p in patterns.items()
        }

    @classmethod
    def from_settings(cls, settings: CollectionConfig) -> NamespaceClassifier:
        """Classifier for the configured test and system namespace patterns."""
        return cls(
            {
                NamespaceClass.TEST: settings.allowed_namespaces,
                NamespaceClass.SYSTEM: settings.system_namespaces,
            }
        )

    def matches(self, namespace: str, ns_class: NamespaceClass) -> bool:
        """True when the class pattern occurs anywhere in the name; unconfigured classes match nothing."""
        pattern = self._patterns.get(ns_class)
        if pattern is None:
            return False
        return pattern.search(namespace) is not None

    def matches_any(self, namespace: str) -> bool:
        """True when the namespace belongs to any configured class."""
        return any(p.search(namespace) is not None for p in self._patterns.values())

    def select(self, namespaces: Iterable[str], ns_class: NamespaceClass) -> list[str]:
        """Return the namespaces of the given class, in input order."""
        return [ns for ns in namespaces if self.matches(ns, ns_class)]


def active_namespace_names(namespace_list) -> list[str]:
    """Names of Active namespaces from a V1NamespaceList."""
    names = []
    for ns in namespace_list.items or []:
        phase = getattr(ns.status, "phase", None) if ns.status else None
        if phase == NAMESPACE_ACTIVE:
            names.append(ns.metadata.name)
    return names

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Probe template registry."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ..errors import ConfigurationError
from ..http.models import Header, RequestParams
from .rules import status_divergence
from .techniques import default_templates
from .types import ProbeTemplate


def _baseline(params: RequestParams) -> RequestParams:
    return params.with_headers(Header(b"accept", b"*/*"))


BASELINE = ProbeTemplate(
    name="baseline",
    description="minimal conformant GET on the target path",
    signature="control for every other template",
    build=_baseline,
    rule=status_divergence,
)


class ProbeRegistry:
    """Ordered, name-unique collection of probe templates."""

    def __init__(self, templates: Iterable[ProbeTemplate] = ()):
        self._templates: dict[str, ProbeTemplate] = {}
        for template in templates:
            self.register(template)

    def register(self, template: ProbeTemplate, *, replace: bool = False) -> ProbeTemplate:
        if template.name in self._templates and not replace:
            raise ValueError(f"probe template {template.name!r} is already registered")
        self._templates[template.name] = template
        return template

    def get(self, name: str) -> ProbeTemplate:
        return self._templates[name]

    def names(self) -> list[str]:
        return list(self._templates)

    def select(self, names: Iterable[str]) -> ProbeRegistry:
        """Registry restricted to `names`, in registry order."""
        wanted = set(names)
        unknown = wanted - set(self._templates)
        if unknown:
            raise ConfigurationError(f"unknown technique(s): {', '.join(sorted(unknown))}")
        return ProbeRegistry(template for template in self if template.name in wanted)

    def __iter__(self) -> Iterator[ProbeTemplate]:
        return iter(list(self._templates.values()))

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, name: object) -> bool:
        return name in self._templates


DEFAULT_REGISTRY = ProbeRegistry(default_templates())

__all__ = ["BASELINE", "DEFAULT_REGISTRY", "ProbeRegistry"]

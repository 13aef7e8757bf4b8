"""Routes that send matching fluentd records to a per-config label."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field


@dataclass
class RouteMatch:
    """One match statement of a route."""

    labels: dict[str, str] = field(default_factory=dict)
    namespaces: list[str] = field(default_factory=list)
    hosts: list[str] = field(default_factory=list)
    container_names: list[str] = field(default_factory=list)
    negate: bool | None = None


@dataclass
class Route:
    """A route from matching records to a label and tag."""

    id: str = ""
    label: str | None = None
    tag: str | None = None
    route_matches: list[RouteMatch] = field(default_factory=list)

    def calculate_route_label(self, namespace: str, name: str) -> str:
        """Derive the label and tag from the config identity and its matches.

        The namespaces of every match are sorted in place.
        """
        digest = hashlib.md5()
        digest.update(namespace.encode("utf-8"))
        digest.update(name.encode("utf-8"))
        for match in self.route_matches:
            if match is None:
                continue
            if match.namespaces:
                match.namespaces.sort()
                for ns in match.namespaces:
                    digest.update(ns.encode("utf-8"))
            for key in sorted(match.labels or {}):
                digest.update(key.encode("utf-8"))
                digest.update(match.labels[key].encode("utf-8"))

        route_label = "@" + digest.hexdigest()
        self.label = route_label
        self.tag = route_label
        return route_label


def new_route(
    route_id: str, namespace: str, name: str, matches: list[RouteMatch] | None
) -> Route:
    """Create a route with its label and tag already computed."""
    route = Route(id=route_id, route_matches=list(matches or []))
    route.calculate_route_label(namespace, name)
    return route
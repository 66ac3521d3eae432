"""Matchers decide which browsed locations a policy applies to."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlsplit

from bouncer.errors import InvariantError, UnknownTypeError, check


class FrameContext(str, Enum):
    ROOT = "ROOT"
    EMBED = "EMBED"


class PageOwner(str, Enum):
    SELF = "SELF"
    WEB = "WEB"


@dataclass(frozen=True)
class BrowseLocation:
    url: str
    context: FrameContext = FrameContext.ROOT
    owner: PageOwner = PageOwner.WEB

    @property
    def hostname(self) -> str:
        return (urlsplit(self.url).hostname or "").lower()

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def query(self) -> list[tuple[str, str]]:
        return parse_qsl(urlsplit(self.url).query, keep_blank_values=True)


class Matcher(Protocol):
    def matches(self, location: BrowseLocation) -> bool: ...

    def to_dict(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class DomainMatcher:
    """Matches a registered domain and a selection of its subdomains.

    ``subdomains`` holds exactly one of ``include`` or ``exclude``; the bare
    domain always matches.
    """

    domain: str
    subdomains: dict[str, tuple[str, ...]] = field(default_factory=lambda: {"exclude": ()})

    def __post_init__(self) -> None:
        object.__setattr__(self, "domain", self.domain.lower().strip("."))
        check(bool(self.domain), "domain cannot be empty")
        keys = set(self.subdomains)
        check(keys in ({"include"}, {"exclude"}), f"subdomains must be one of include/exclude (was {sorted(keys)})")
        normalized = {key: tuple(values) for key, values in self.subdomains.items()}
        object.__setattr__(self, "subdomains", normalized)

    def __hash__(self) -> int:
        return hash((self.domain, tuple(sorted(self.subdomains.items()))))

    def matches(self, location: BrowseLocation) -> bool:
        expected = self.domain.split(".")
        actual = location.hostname.split(".")
        if len(actual) < len(expected) or actual[-len(expected):] != expected:
            return False
        remainder = actual[: len(actual) - len(expected)]
        if not remainder:
            return True
        subdomain = ".".join(remainder)
        if "include" in self.subdomains:
            return subdomain in self.subdomains["include"]
        return subdomain not in self.subdomains["exclude"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "Domain",
            "data": {
                "domain": self.domain,
                "subdomains": {key: list(values) for key, values in self.subdomains.items()},
            },
        }


@dataclass(frozen=True)
class ExactHostnameMatcher:
    hostname: str

    def matches(self, location: BrowseLocation) -> bool:
        return location.hostname == self.hostname.lower()

    def to_dict(self) -> dict[str, Any]:
        return {"type": "ExactHostname", "data": {"hostname": self.hostname}}


@dataclass(frozen=True)
class PathPrefixMatcher:
    path_prefix: str
    match_subpaths: bool = True

    def __post_init__(self) -> None:
        check(self.path_prefix.startswith("/"), "path_prefix must start with slash")
        check(not self.path_prefix.endswith("/"), "path_prefix cannot end with slash")

    def matches(self, location: BrowseLocation) -> bool:
        path = location.path
        if path == self.path_prefix:
            return True
        with_slash = f"{self.path_prefix}/"
        if self.match_subpaths:
            return path.startswith(with_slash)
        return path == with_slash

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "PathPrefix",
            "data": {"path_prefix": self.path_prefix, "match_subpaths": self.match_subpaths},
        }


@dataclass(frozen=True)
class QueryParamsMatcher:
    """Matches when any query parameter takes one of the listed values."""

    params: dict[str, tuple[str, ...]]

    def __post_init__(self) -> None:
        normalized = {key: tuple(values) for key, values in self.params.items()}
        object.__setattr__(self, "params", normalized)

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.params.items())))

    def matches(self, location: BrowseLocation) -> bool:
        return any(value in self.params.get(key, ()) for key, value in location.query)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "QueryParams",
            "data": {"params": {key: list(values) for key, values in self.params.items()}},
        }


@dataclass(frozen=True)
class FrameContextMatcher:
    context: FrameContext

    def matches(self, location: BrowseLocation) -> bool:
        return location.context is self.context

    def to_dict(self) -> dict[str, Any]:
        return {"type": "FrameContext", "data": {"context": self.context.value}}


@dataclass(frozen=True)
class PageOwnerMatcher:
    owner: PageOwner

    def matches(self, location: BrowseLocation) -> bool:
        return location.owner is self.owner

    def to_dict(self) -> dict[str, Any]:
        return {"type": "PageOwner", "data": {"owner": self.owner.value}}


@dataclass(frozen=True)
class AndMatcher:
    matchers: tuple[Matcher, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "matchers", tuple(self.matchers))

    def matches(self, location: BrowseLocation) -> bool:
        return all(m.matches(location) for m in self.matchers)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "And", "data": [m.to_dict() for m in self.matchers]}


@dataclass(frozen=True)
class OrMatcher:
    matchers: tuple[Matcher, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "matchers", tuple(self.matchers))

    def matches(self, location: BrowseLocation) -> bool:
        return any(m.matches(location) for m in self.matchers)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "Or", "data": [m.to_dict() for m in self.matchers]}


@dataclass(frozen=True)
class NotMatcher:
    matcher: Matcher

    def matches(self, location: BrowseLocation) -> bool:
        return not self.matcher.matches(location)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "Not", "data": self.matcher.to_dict()}


def _parse_enum(enum_type: type[FrameContext] | type[PageOwner], value: Any) -> Any:
    try:
        return enum_type(value)
    except ValueError as exc:
        raise InvariantError(f"invalid {enum_type.__name__} {value!r}") from exc


def matcher_from_dict(obj: dict[str, Any]) -> Matcher:
    tag = obj.get("type")
    data = obj.get("data")
    try:
        if tag == "Domain":
            return DomainMatcher(data["domain"], data.get("subdomains") or {"exclude": []})
        if tag == "ExactHostname":
            return ExactHostnameMatcher(data["hostname"])
        if tag == "PathPrefix":
            return PathPrefixMatcher(data["path_prefix"], bool(data.get("match_subpaths", True)))
        if tag == "QueryParams":
            return QueryParamsMatcher(data["params"])
        if tag == "FrameContext":
            return FrameContextMatcher(_parse_enum(FrameContext, data["context"]))
        if tag == "PageOwner":
            return PageOwnerMatcher(_parse_enum(PageOwner, data["owner"]))
        if tag == "And":
            return AndMatcher(tuple(matcher_from_dict(m) for m in data))
        if tag == "Or":
            return OrMatcher(tuple(matcher_from_dict(m) for m in data))
        if tag == "Not":
            return NotMatcher(matcher_from_dict(data))
    except (KeyError, TypeError, AttributeError) as exc:
        raise InvariantError(f"invalid {tag} matcher data: {data!r}") from exc
    raise UnknownTypeError("matcher", tag)

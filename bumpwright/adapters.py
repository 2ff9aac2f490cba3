"""File format adapters: find and replace version strings inside files.

Each supported format has one adapter class. An adapter is bound to a file
path and, for dependency-style references, to the name of the dependency it
updates. ``locate`` returns every span of the content that holds the
version; ``patch`` splices the new version into exactly those spans, so
every other byte of the file is kept as is.

Format selection is a closed mapping from ``Format`` to adapter class;
there is no plugin registry.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar

from packaging.requirements import InvalidRequirement
from pydantic import BaseModel

from . import jsonspans, xmlspans
from .deps import (
    dep_canonical_name,
    excluding_bound,
    range_version_span,
    requirement_version_span,
    same_name,
)
from .errors import (
    AmbiguousMatch,
    ConfigError,
    DependencyNotFound,
    ParseError,
    PatternNotFound,
    RangeExcludesVersion,
    UnknownFormat,
)
from .models import Format, VersionedFileRef
from .toml import Key, iter_dependency_strings, parse_toml, string_span
from .versions import Dialect

logger = logging.getLogger(__name__)


class VersionSpan(BaseModel):
    """Offsets ``[start, end)`` of a version string within file content.

    Attributes:
        start: Offset of the first character of the version.
        end: Offset just past the last character.
        value: The text currently at that location.
        location: Human readable position, e.g. ``[package].version``.
        requirement: Offsets of the whole dependency requirement around
            the version, for versions inside a range.
    """

    start: int
    end: int
    value: str
    location: str
    requirement: tuple[int, int] | None = None


def _span(
    content: str, start: int, end: int, location: str, requirement: tuple[int, int] | None = None
) -> VersionSpan:
    return VersionSpan(
        start=start, end=end, value=content[start:end], location=location, requirement=requirement
    )


def splice(content: str, spans: Sequence[VersionSpan], version: str) -> str:
    """Replace every span with ``version``, leaving everything else alone."""
    for span in sorted(spans, key=lambda s: s.start, reverse=True):
        content = content[: span.start] + version + content[span.end :]
    return content


class Adapter:
    """Base class of all format adapters.

    Subclasses implement ``_own_spans`` and, if the format can reference
    other packages, ``_dependency_spans``.
    """

    format: ClassVar[Format]
    dialect: ClassVar[Dialect] = Dialect.SEMVER
    supports_dependencies: ClassVar[bool] = False
    is_lock: ClassVar[bool] = False

    def __init__(self, path: str, dependency: str | None = None) -> None:
        if dependency is not None and not self.supports_dependencies:
            raise ConfigError(f"{path}: {self.format.value} files can't reference dependencies")
        self.path = path
        self.dependency = dependency

    @property
    def carries_own_version(self) -> bool:
        """True if the located spans are the package's own version."""
        return self.dependency is None

    def locate(self, content: str) -> list[VersionSpan]:
        if self.dependency is not None:
            spans = self._dependency_spans(content, self.dependency)
        else:
            spans = self._own_spans(content)
        logger.debug(f"{self.path}: found {', '.join(s.location for s in spans)}")
        return spans

    def patch(self, content: str, version: str) -> str:
        """Write ``version`` into every located span.

        Raises:
            RangeExcludesVersion: If a dependency range would no longer
                allow ``version`` once its lower bound is rewritten.
        """
        spans = self.locate(content)
        for span in spans:
            if span.requirement is None:
                continue
            start, end = span.requirement
            requirement = content[start : span.start] + version + content[span.end : end]
            bound = excluding_bound(requirement, version)
            if bound is not None:
                raise RangeExcludesVersion(self.dependency or "", self.path, requirement, bound)
        return splice(content, spans, version)

    def package_name(self, content: str) -> str | None:
        """The package name the file declares, if the format has one."""
        return None

    def _own_spans(self, content: str) -> list[VersionSpan]:
        raise NotImplementedError

    def _dependency_spans(self, content: str, name: str) -> list[VersionSpan]:
        raise NotImplementedError

    def _single(self, spans: list[VersionSpan]) -> list[VersionSpan]:
        if not spans:
            raise ParseError("no version found", self.path)
        if len(spans) > 1:
            raise AmbiguousMatch(self.path, [s.location for s in spans])
        return spans

    def _range_span(self, content: str, start: int, end: int, location: str) -> VersionSpan:
        found = range_version_span(content[start:end])
        if found is None:
            raise DependencyNotFound(self.dependency or "", self.path, f"{location} has no version")
        return _span(content, start + found[0], start + found[1], location, (start, end))


class _TomlAdapter(Adapter):
    def _toml_span(self, content: str, keys: Sequence[Key]) -> VersionSpan:
        start, end = string_span(content, keys, self.path)
        location = "[" + ".".join(str(k) for k in keys[:-1]) + f"].{keys[-1]}"
        return _span(content, start, end, location)

    def _toml_range_span(self, content: str, keys: Sequence[Key]) -> VersionSpan:
        span = self._toml_span(content, keys)
        return self._range_span(content, span.start, span.end, span.location)


class CargoAdapter(_TomlAdapter):
    format = Format.CARGO
    supports_dependencies = True

    _DEPENDENCY_TABLES = ("dependencies", "dev-dependencies", "build-dependencies")

    def _own_spans(self, content: str) -> list[VersionSpan]:
        doc = parse_toml(content, self.path)
        for keys in (("package", "version"), ("workspace", "package", "version")):
            table = doc
            for key in keys[:-1]:
                table = table.get(key, {})
            if keys[-1] not in table:
                continue
            if not isinstance(table[keys[-1]], str):
                raise ParseError(
                    f"[{'.'.join(keys[:-1])}].version is inherited, "
                    "configure the workspace Cargo.toml instead",
                    self.path,
                )
            return [self._toml_span(content, keys)]
        raise ParseError("no [package].version found", self.path)

    def package_name(self, content: str) -> str | None:
        return parse_toml(content, self.path).get("package", {}).get("name")

    def _dependency_tables(self, doc: Mapping[str, Any]) -> list[tuple[str, ...]]:
        tables = [(name,) for name in self._DEPENDENCY_TABLES]
        tables.append(("workspace", "dependencies"))
        for target in doc.get("target", {}):
            tables.extend(("target", target, name) for name in self._DEPENDENCY_TABLES)
        return tables

    def _dependency_spans(self, content: str, name: str) -> list[VersionSpan]:
        doc = parse_toml(content, self.path)
        spans: list[VersionSpan] = []
        for keys in self._dependency_tables(doc):
            table = doc
            for key in keys:
                table = table.get(key, {})
            for dep_key, entry in table.items():
                renamed = entry.get("package") if isinstance(entry, dict) else None
                if not same_name(renamed or dep_key, name):
                    continue
                if isinstance(entry, str):
                    spans.append(self._toml_range_span(content, (*keys, dep_key)))
                elif isinstance(entry, dict) and "version" in entry:
                    spans.append(self._toml_range_span(content, (*keys, dep_key, "version")))
                else:
                    raise DependencyNotFound(name, self.path, f"[{'.'.join(keys)}] entry has no version")
        if not spans:
            raise DependencyNotFound(name, self.path)
        return spans


class CargoLockAdapter(_TomlAdapter):
    """Cargo.lock: the ``[[package]]`` entry of the named crate."""

    format = Format.CARGO_LOCK
    supports_dependencies = True
    is_lock = True

    def _own_spans(self, content: str) -> list[VersionSpan]:
        raise ConfigError(f"{self.path}: lock files need the name of the package to update")

    def _dependency_spans(self, content: str, name: str) -> list[VersionSpan]:
        doc = parse_toml(content, self.path)
        spans = [
            self._toml_span(content, ("package", i, "version"))
            for i, entry in enumerate(doc.get("package", []))
            if same_name(entry.get("name", ""), name) and "version" in entry
        ]
        if not spans:
            raise DependencyNotFound(name, self.path)
        if len(spans) > 1:
            raise AmbiguousMatch(self.path, [s.location for s in spans])
        return spans


class PyprojectAdapter(_TomlAdapter):
    """pyproject.toml, for both PEP 621 and Poetry metadata."""

    format = Format.PYPROJECT
    dialect = Dialect.PEP440
    supports_dependencies = True

    _POETRY_TABLES = ("dependencies", "dev-dependencies")

    def _own_spans(self, content: str) -> list[VersionSpan]:
        doc = parse_toml(content, self.path)
        project = doc.get("project", {})
        spans = []
        if "version" in project:
            spans.append(self._toml_span(content, ("project", "version")))
        elif "version" in project.get("dynamic", []):
            raise ParseError("[project].version is dynamic and can't be updated", self.path)
        if "version" in doc.get("tool", {}).get("poetry", {}):
            spans.append(self._toml_span(content, ("tool", "poetry", "version")))
        if not spans:
            raise ParseError("no [project].version or [tool.poetry].version found", self.path)
        if len({s.value for s in spans}) > 1:
            raise AmbiguousMatch(self.path, [f"{s.location} = {s.value}" for s in spans])
        return spans

    def package_name(self, content: str) -> str | None:
        doc = parse_toml(content, self.path)
        return doc.get("project", {}).get("name") or doc.get("tool", {}).get("poetry", {}).get("name")

    def _dependency_spans(self, content: str, name: str) -> list[VersionSpan]:
        doc = parse_toml(content, self.path)
        spans: list[VersionSpan] = []
        for keys, dep_str in iter_dependency_strings(doc):
            try:
                if not same_name(dep_canonical_name(dep_str), name):
                    continue
            except InvalidRequirement as e:
                raise ParseError(f"invalid requirement {dep_str!r}: {e}", self.path) from None
            found = requirement_version_span(dep_str)
            location = f"{'.'.join(str(k) for k in keys)} {dep_str!r}"
            if found is None:
                raise DependencyNotFound(name, self.path, f"{location} has no version specifier")
            start, end = string_span(content, keys, self.path)
            spans.append(_span(content, start + found[0], start + found[1], location, (start, end)))

        poetry = doc.get("tool", {}).get("poetry", {})
        tables = [(table,) for table in self._POETRY_TABLES if table in poetry]
        tables.extend(("group", group, "dependencies") for group in poetry.get("group", {}))
        for keys in tables:
            table = poetry
            for key in keys:
                table = table.get(key, {})
            for dep_key, entry in table.items():
                if not same_name(dep_key, name):
                    continue
                full = ("tool", "poetry", *keys, dep_key)
                if isinstance(entry, str):
                    spans.append(self._toml_range_span(content, full))
                elif isinstance(entry, dict) and "version" in entry:
                    spans.append(self._toml_range_span(content, (*full, "version")))
                else:
                    raise DependencyNotFound(name, self.path, f"{'.'.join(full)} has no version")
        if not spans:
            raise DependencyNotFound(name, self.path)
        return spans


class GleamAdapter(_TomlAdapter):
    format = Format.GLEAM

    def _own_spans(self, content: str) -> list[VersionSpan]:
        if "version" not in parse_toml(content, self.path):
            raise ParseError("no top-level version found", self.path)
        return [self._toml_span(content, ("version",))]

    def package_name(self, content: str) -> str | None:
        return parse_toml(content, self.path).get("name")


class _JsonAdapter(Adapter):
    def _own_spans(self, content: str) -> list[VersionSpan]:
        jsonspans.load_json(content, self.path)
        spans = [
            _span(content, *jsonspans.string_span(content, member, self.path), '"version"')
            for member in jsonspans.find_members(content, "version")
        ]
        return self._single(spans)

    def package_name(self, content: str) -> str | None:
        data = jsonspans.load_json(content, self.path)
        name = data.get("name") if isinstance(data, dict) else None
        return name if isinstance(name, str) else None


class PackageJsonAdapter(_JsonAdapter):
    format = Format.PACKAGE_JSON
    supports_dependencies = True

    _DEPENDENCY_TABLES = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")

    def _dependency_spans(self, content: str, name: str) -> list[VersionSpan]:
        jsonspans.load_json(content, self.path)
        spans: list[VersionSpan] = []
        for table in jsonspans.object_members(content):
            if table.key not in self._DEPENDENCY_TABLES or content[table.start] != "{":
                continue
            for member in jsonspans.find_members(content, name, table.start):
                start, end = jsonspans.string_span(content, member, self.path)
                spans.append(self._range_span(content, start, end, f"{table.key}.{name}"))
        if not spans:
            raise DependencyNotFound(name, self.path)
        return spans


class DenoJsonAdapter(_JsonAdapter):
    format = Format.DENO_JSON


class TauriConfAdapter(_JsonAdapter):
    format = Format.TAURI_CONF

    def package_name(self, content: str) -> str | None:
        return None


class PubspecAdapter(Adapter):
    format = Format.PUBSPEC

    _VERSION = re.compile(r"^version:[ \t]*([\"']?)(?P<version>[^\s\"'#]+)\1[ \t]*(?:#.*)?$", re.MULTILINE)
    _NAME = re.compile(r"^name:[ \t]*([\"']?)(?P<name>[^\s\"'#]+)\1", re.MULTILINE)

    def _own_spans(self, content: str) -> list[VersionSpan]:
        spans = []
        for m in self._VERSION.finditer(content):
            line = content.count("\n", 0, m.start()) + 1
            spans.append(_span(content, *m.span("version"), f"line {line}"))
        return self._single(spans)

    def package_name(self, content: str) -> str | None:
        match = self._NAME.search(content)
        return match["name"] if match else None


class MavenPomAdapter(Adapter):
    format = Format.MAVEN_POM
    supports_dependencies = True

    def _element_span(self, content: str, element: xmlspans.Element) -> VersionSpan:
        location = "<" + "/".join(element.path) + ">"
        return _span(content, *xmlspans.text_span(content, element, self.path), location)

    def _own_spans(self, content: str) -> list[VersionSpan]:
        elements = xmlspans.scan_elements(content, self.path)
        found = [e for e in elements if e.path == ("project", "version")]
        if not found:
            raise ParseError("no <version> in <project>", self.path)
        return self._single([self._element_span(content, e) for e in found])

    def package_name(self, content: str) -> str | None:
        elements = xmlspans.scan_elements(content, self.path)
        for element in elements:
            if element.path == ("project", "artifactId"):
                return content[slice(*xmlspans.text_span(content, element, self.path))]
        return None

    def _dependency_spans(self, content: str, name: str) -> list[VersionSpan]:
        elements = xmlspans.scan_elements(content, self.path)
        spans: list[VersionSpan] = []
        for dependency in elements:
            if dependency.path[-1] != "dependency":
                continue
            fields = {e.path[-1]: e for e in xmlspans.children(elements, dependency)}
            artifact = fields.get("artifactId")
            if artifact is None:
                continue
            if content[slice(*xmlspans.text_span(content, artifact, self.path))] != name:
                continue
            if "version" not in fields:
                raise DependencyNotFound(name, self.path, "<dependency> has no <version>")
            span = self._element_span(content, fields["version"])
            if span.value.startswith("${"):
                raise DependencyNotFound(name, self.path, f"<version> is the property {span.value}")
            spans.append(span)
        if not spans:
            raise DependencyNotFound(name, self.path)
        return spans


def compile_pattern(pattern: str, path: str | None = None) -> re.Pattern[str]:
    """Compile a user pattern, accepting ``(?<version>...)`` as a named group.

    Raises:
        ParseError: If the regex is invalid or has no ``version`` group.
    """
    try:
        compiled = re.compile(pattern.replace("(?<version>", "(?P<version>"), re.MULTILINE)
    except re.error as e:
        raise ParseError(f"invalid pattern {pattern!r}: {e}", path) from None
    if "version" not in compiled.groupindex:
        raise ParseError(f"pattern {pattern!r} has no named group 'version'", path)
    return compiled


class TextAdapter(Adapter):
    """Any file, located by one or more configured regex patterns.

    Every match of every pattern is a span; all of them are patched at once.
    """

    format = Format.TEXT

    def __init__(self, path: str, patterns: Sequence[str]) -> None:
        super().__init__(path)
        if not patterns:
            raise ConfigError(f"{path}: text files need at least one pattern")
        self.patterns = [(p, compile_pattern(p, path)) for p in patterns]

    def _own_spans(self, content: str) -> list[VersionSpan]:
        spans: dict[tuple[int, int], VersionSpan] = {}
        for raw, pattern in self.patterns:
            matches = list(pattern.finditer(content))
            if not matches:
                raise PatternNotFound(raw, self.path)
            for m in matches:
                spans.setdefault(m.span("version"), _span(content, *m.span("version"), f"pattern {raw!r}"))
        ordered = sorted(spans.values(), key=lambda s: s.start)
        for left, right in zip(ordered, ordered[1:]):
            if right.start < left.end:
                raise AmbiguousMatch(self.path, [left.location, right.location])
        return ordered


_ADAPTERS: dict[Format, type[Adapter]] = {
    Format.CARGO: CargoAdapter,
    Format.CARGO_LOCK: CargoLockAdapter,
    Format.PYPROJECT: PyprojectAdapter,
    Format.GLEAM: GleamAdapter,
    Format.PACKAGE_JSON: PackageJsonAdapter,
    Format.DENO_JSON: DenoJsonAdapter,
    Format.TAURI_CONF: TauriConfAdapter,
    Format.PUBSPEC: PubspecAdapter,
    Format.MAVEN_POM: MavenPomAdapter,
    Format.TEXT: TextAdapter,
}

_FILE_NAMES = {
    "Cargo.toml": Format.CARGO,
    "Cargo.lock": Format.CARGO_LOCK,
    "pyproject.toml": Format.PYPROJECT,
    "gleam.toml": Format.GLEAM,
    "package.json": Format.PACKAGE_JSON,
    "deno.json": Format.DENO_JSON,
    "tauri.conf.json": Format.TAURI_CONF,
    "pubspec.yaml": Format.PUBSPEC,
    "pom.xml": Format.MAVEN_POM,
}


def detect_format(ref: VersionedFileRef) -> Format:
    """Resolve a reference's format: explicit tag, then file name, then patterns.

    Raises:
        ConfigError: If patterns are combined with a non-text format.
        UnknownFormat: If nothing identifies the format.
    """
    if ref.patterns is not None and ref.format not in (None, Format.TEXT):
        raise ConfigError(f"{ref.path}: patterns can only be used with the text format")
    if ref.format is not None:
        return ref.format
    if ref.patterns is not None:
        return Format.TEXT
    if ref.file_name in _FILE_NAMES:
        return _FILE_NAMES[ref.file_name]
    raise UnknownFormat(ref.path)


def is_lock_format(fmt: Format) -> bool:
    """Whether files of this format only record versions of named packages."""
    return _ADAPTERS[fmt].is_lock


def adapter_for(ref: VersionedFileRef, dependency: str | None = None) -> Adapter:
    """Build the adapter for a reference.

    Args:
        ref: The configured file reference.
        dependency: Dependency name to use when ``ref`` doesn't set one.
    """
    fmt = detect_format(ref)
    if fmt is Format.TEXT:
        if ref.dependency is not None:
            raise ConfigError(f"{ref.path}: text files can't reference dependencies")
        return TextAdapter(ref.path, ref.patterns or ())
    return _ADAPTERS[fmt](ref.path, ref.dependency or dependency)

"""
Cargo version requirements.

Parses the requirement strings accepted in ``Cargo.toml`` (``"1"``,
``"^0.3.2"``, ``"~1.4"``, ``">=1.2, <1.5"``, ``"1.*"``, ``"*"``) and matches
them against :class:`semver.Version` objects using Cargo's rules, including
its pre-release handling: a pre-release version only satisfies a
requirement that names a pre-release of the same ``major.minor.patch``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

import semver

EXACT = '='
GREATER = '>'
GREATER_EQ = '>='
LESS = '<'
LESS_EQ = '<='
TILDE = '~'
CARET = '^'
WILDCARD = '*'

_COMPARATOR_RE = re.compile(
    r"""
    ^(?P<op>>=|<=|=|>|<|~|\^)?
    \s*
    (?P<major>[0-9]+|[*xX])
    (?:\.(?P<minor>[0-9]+|[*xX])
       (?:\.(?P<patch>[0-9]+|[*xX])
          (?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
          (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
       )?
    )?$
    """,
    re.VERBOSE,
)


class InvalidVersionReq(ValueError):
    """Raised when a requirement string is not valid Cargo syntax."""


def _compare_pre(a: str, b: str) -> int:
    """Order two pre-release tags; the empty tag sorts after any other."""
    return semver.Version(0, 0, 0, a or None).compare(
        semver.Version(0, 0, 0, b or None)
    )


def _number(text: str, requirement: str) -> int:
    if len(text) > 1 and text.startswith('0'):
        raise InvalidVersionReq(f'leading zero in `{requirement}`')
    return int(text)


@dataclass(frozen=True)
class Comparator:
    op: str
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: str = ''

    @classmethod
    def parse(cls, text: str) -> Comparator:
        m = _COMPARATOR_RE.match(text)
        if m is None:
            raise InvalidVersionReq(f'invalid comparator `{text}`')
        op = m.group('op')
        parts = [m.group('major'), m.group('minor'), m.group('patch')]

        numbers: list[int | None] = []
        wildcard = False
        for part in parts:
            if part is None or part in ('*', 'x', 'X'):
                wildcard = wildcard or part is not None
                numbers.append(None)
            elif numbers and numbers[-1] is None:
                # "1.*.3": nothing may follow a wildcard
                raise InvalidVersionReq(f'unexpected number after wildcard in `{text}`')
            else:
                numbers.append(_number(part, text))

        major, minor, patch = numbers
        if wildcard:
            if op not in (None, EXACT):
                raise InvalidVersionReq(f'wildcard cannot follow `{op}` in `{text}`')
            if major is None:
                raise InvalidVersionReq(f'unexpected wildcard in `{text}`')
            op = WILDCARD
        elif op is None:
            op = CARET

        return cls(op=op, major=major, minor=minor, patch=patch, pre=m.group('pre') or '')

    def matches(self, version: semver.Version) -> bool:
        if self.op in (EXACT, WILDCARD):
            return self._matches_exact(version)
        if self.op == GREATER:
            return self._matches_greater(version)
        if self.op == GREATER_EQ:
            return self._matches_exact(version) or self._matches_greater(version)
        if self.op == LESS:
            return self._matches_less(version)
        if self.op == LESS_EQ:
            return self._matches_exact(version) or self._matches_less(version)
        if self.op == TILDE:
            return self._matches_tilde(version)
        return self._matches_caret(version)

    def pre_is_compatible(self, version: semver.Version) -> bool:
        return (
            bool(self.pre)
            and self.major == version.major
            and self.minor == version.minor
            and self.patch == version.patch
        )

    def _matches_exact(self, v: semver.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is None:
            return True
        if v.minor != self.minor:
            return False
        if self.patch is None:
            return True
        if v.patch != self.patch:
            return False
        return (v.prerelease or '') == self.pre

    def _matches_greater(self, v: semver.Version) -> bool:
        if v.major != self.major:
            return v.major > self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor > self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch > self.patch
        return _compare_pre(v.prerelease or '', self.pre) > 0

    def _matches_less(self, v: semver.Version) -> bool:
        if v.major != self.major:
            return v.major < self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor < self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch < self.patch
        return _compare_pre(v.prerelease or '', self.pre) < 0

    def _matches_tilde(self, v: semver.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return v.patch > self.patch
        return _compare_pre(v.prerelease or '', self.pre) >= 0

    def _matches_caret(self, v: semver.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            if self.major > 0:
                return v.minor >= self.minor
            return v.minor == self.minor

        if self.major > 0:
            if v.minor != self.minor:
                return v.minor > self.minor
            if v.patch != self.patch:
                return v.patch > self.patch
        elif self.minor > 0:
            if v.minor != self.minor:
                return False
            if v.patch != self.patch:
                return v.patch > self.patch
        elif v.minor != self.minor or v.patch != self.patch:
            return False
        return _compare_pre(v.prerelease or '', self.pre) >= 0

    def __str__(self) -> str:
        text = str(self.major)
        for part in (self.minor, self.patch):
            if part is None:
                if self.op == WILDCARD:
                    text += '.*'
                break
            text += f'.{part}'
        if self.pre:
            text += f'-{self.pre}'
        if self.op == WILDCARD:
            return text
        return f'{self.op}{text}'


@dataclass(frozen=True)
class VersionReq:
    """A comma separated list of comparators; an empty list means ``*``."""

    comparators: tuple[Comparator, ...] = ()

    @classmethod
    def parse(cls, text: str) -> VersionReq:
        stripped = text.strip()
        if not stripped:
            raise InvalidVersionReq('empty version requirement')
        if stripped in ('*', 'x', 'X'):
            return cls()
        comparators = []
        for part in stripped.split(','):
            part = part.strip()
            if not part:
                raise InvalidVersionReq(f'empty comparator in `{text}`')
            comparators.append(Comparator.parse(part))
        return cls(tuple(comparators))

    def matches(self, version: semver.Version) -> bool:
        if not all(c.matches(version) for c in self.comparators):
            return False
        if not version.prerelease:
            return True
        return any(c.pre_is_compatible(version) for c in self.comparators)

    def names(self, version: semver.Version) -> bool:
        """True if the requirement is written as exactly *version*.

        Missing components count as zero, so ``"1"`` names ``1.0.0`` and
        ``"~0.3"`` names ``0.3.0``.  Requirements with several comparators
        never name a single version.
        """
        if len(self.comparators) != 1:
            return False
        c = self.comparators[0]
        return (
            c.major == version.major
            and (c.minor or 0) == version.minor
            and (c.patch or 0) == version.patch
            and c.pre == (version.prerelease or '')
        )

    def __str__(self) -> str:
        if not self.comparators:
            return '*'
        return ', '.join(str(c) for c in self.comparators)


def parse_version_req(text: str) -> VersionReq | None:
    """Parse *text*, returning ``None`` instead of raising on bad input."""
    try:
        return VersionReq.parse(text)
    except InvalidVersionReq:
        return None

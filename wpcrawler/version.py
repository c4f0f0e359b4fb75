"""
Syntactic validation of version labels scraped from wordpress.org.

The grammar follows Composer's version parser so that everything stored here
is accepted by Composer later on. Normalization is only a validity check,
callers keep the raw label.
"""

import re

DEV_TRUNK = 'dev-trunk'

MODIFIER = r'[._-]?(?:(stable|beta|b|RC|alpha|a|patch|pl|p)((?:[.-]?\d+(?:[.-]\d+)*)?))?([.-]?dev)?'
CLASSICAL_VERSION = re.compile(r'^v?(\d{1,5})(\.\d+)?(\.\d+)?(\.\d+)?' + MODIFIER + r'$', re.IGNORECASE)
DATE_VERSION = re.compile(r'^v?(\d{4}(?:[.:-]?\d{2}){1,6}(?:[.:-]?\d{1,3})?)' + MODIFIER + r'$', re.IGNORECASE)
NUMERIC_BRANCH = re.compile(r'^v?(\d+)(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?$')

STABILITY_FLAG = re.compile(r'^([^,\s]+) *@(stable|RC|beta|alpha|dev)$', re.IGNORECASE)
ALIAS = re.compile(r'^([^,\s]+) +as +([^,\s]+)$')
BUILD_METADATA = re.compile(r'^([^,\s+]+)\+[^\s]+$')
DEFAULT_BRANCH = re.compile(r'^(?:dev-)?(?:master|trunk|default)$', re.IGNORECASE)
DEV_SUFFIX = re.compile(r'^(.*?)[.-]?dev$', re.IGNORECASE)
DEVELOPMENT_LABEL = re.compile(r'development', re.IGNORECASE)

STABILITY_ALIASES = {
    'a': 'alpha',
    'b': 'beta',
    'p': 'patch',
    'pl': 'patch',
    'rc': 'RC',
}


class InvalidVersion(ValueError):
    """Raised when a label does not parse as a version."""

    def __init__(self, raw: str, reason: str = None):
        self.raw = raw
        message = f"Invalid version string: {raw!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


def _expand_stability(stability: str) -> str:
    stability = stability.lower()
    return STABILITY_ALIASES.get(stability, stability)


def _normalize_branch(name: str) -> str:
    name = name.strip()
    if name in ('master', 'trunk', 'default'):
        return f"dev-{name}"

    match = NUMERIC_BRANCH.match(name)
    if match:
        parts = []
        for i in range(1, 5):
            part = match.group(i)
            if part:
                parts.append(part.lstrip('.').replace('*', 'x').replace('X', 'x').replace('x', '9999999'))
            else:
                parts.append('x')
        return '.'.join(parts).replace('x', '9999999') + '-dev'

    return f"dev-{name}"


def normalize_version(raw: str) -> str:
    """
    Normalize a version label the way Composer does.

    Args:
        raw: Version label as published, e.g. "1.2", "2.0-beta1", "dev-foo"

    Returns:
        str: Normalized version, e.g. "1.2.0.0", "2.0.0.0-beta1", "dev-foo"

    Raises:
        InvalidVersion: if the label does not match the grammar
    """
    if not isinstance(raw, str):
        raise InvalidVersion(repr(raw), "not a string")

    version = raw.strip()
    if not version:
        raise InvalidVersion(raw, "empty")

    match = STABILITY_FLAG.match(version)
    if match:
        version = match.group(1)

    match = ALIAS.match(version)
    if match:
        version = match.group(1)

    if DEFAULT_BRANCH.match(version):
        return 'dev-' + version.lower().replace('dev-', '', 1)

    if version.lower().startswith('dev-'):
        return 'dev-' + version[4:]

    match = BUILD_METADATA.match(version)
    if match:
        version = match.group(1)

    match = CLASSICAL_VERSION.match(version)
    if match:
        normalized = match.group(1)
        normalized += ''.join(match.group(i) or '.0' for i in range(2, 5))
        index = 5
    else:
        match = DATE_VERSION.match(version)
        if match:
            normalized = re.sub(r'\D', '.', match.group(1))
            index = 2

    if match:
        stability = match.group(index)
        if stability:
            if stability.lower() == 'stable':
                return normalized
            number = match.group(index + 1) or ''
            normalized += '-' + _expand_stability(stability) + number.lstrip('.-')
        if match.group(index + 2):
            normalized += '-dev'
        return normalized

    match = DEV_SUFFIX.match(version)
    if match:
        branch = _normalize_branch(match.group(1))
        # a "-dev" suffix is only a version for numeric branches
        if not branch.startswith('dev-'):
            return branch

    raise InvalidVersion(raw)


def validate_version(raw: str) -> str:
    """Return ``raw`` unchanged if it is a valid version, raise InvalidVersion otherwise."""
    normalize_version(raw)
    return raw


def is_valid_version(raw: str) -> bool:
    try:
        validate_version(raw)
    except InvalidVersion:
        return False
    return True


def is_development_label(label: str) -> bool:
    """Download links labelled "Development Version" point at trunk."""
    return bool(label) and DEVELOPMENT_LABEL.search(label) is not None

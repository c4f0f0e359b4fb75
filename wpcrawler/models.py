"""
Packages tracked by the registry: wordpress.org plugins and themes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional


class PackageType(str, Enum):
    PLUGIN = 'plugin'
    THEME = 'theme'


HOMEPAGE_URLS = {
    PackageType.PLUGIN: 'https://wordpress.org/plugins/{name}/',
    PackageType.THEME: 'https://wordpress.org/themes/{name}/',
}


@dataclass
class Package:
    """A plugin or theme, identified by (type, name)."""

    type: PackageType
    name: str
    last_fetched: Optional[datetime] = None
    last_committed: Optional[datetime] = None
    is_active: bool = True
    versions: Dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> tuple:
        return (self.type.value, self.name)

    @property
    def is_plugin(self) -> bool:
        return self.type is PackageType.PLUGIN

    @property
    def homepage_url(self) -> str:
        return HOMEPAGE_URLS[self.type].format(name=self.name)

    @property
    def developers_url(self) -> str:
        """The page listing every released version with its SVN link."""
        return self.homepage_url + 'developers/'

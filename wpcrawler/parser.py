"""
Extract the version => tag map from the developers tab of wordpress.org.

Each release is listed as a download link followed by its SVN link:

    <li><a itemprop="downloadUrl" href="https://downloads.wordpress.org/plugin/PLUGIN.zip">Development Version</a>
        (<a href="https://plugins.svn.wordpress.org/PLUGIN/trunk">svn</a>)</li>
    <li><a itemprop="downloadUrl" href="https://downloads.wordpress.org/plugin/PLUGIN.VERSION.zip">VERSION</a>
        (<a href="https://plugins.svn.wordpress.org/PLUGIN/tags/VERSION">svn</a>)</li>

wordpress.org emits invalid markup, so the document is parsed in recover mode
and anything that cannot be understood is skipped.
"""

import re
from typing import Dict, Optional, Union

import structlog
from lxml import etree, html

from .version import DEV_TRUNK, InvalidVersion, is_development_label, validate_version

logger = structlog.get_logger(__name__)

INFO_REGION_ID = 'plugin-info'
SVN_LINKS_XPATH = f'//div[@id="{INFO_REGION_ID}"]//a[contains(., "svn")]'
DOWNLOAD_LINK_XPATH = '../a[contains(@href, ".zip")]'

TRUNK = 'trunk'
TRUNK_HREF = re.compile(r'/trunk$')
TAG_HREF = re.compile(r'/((?:tags/)?([^/]+))$')

# trimmed from both ends of a download label, e.g. "(1.2.3)"
LABEL_STRIP_CHARS = ' \t\r\n()'


def _load_document(content: Union[bytes, str]) -> Optional[etree._Element]:
    if not content:
        return None
    if isinstance(content, str):
        content = content.encode('utf-8')

    parser = html.HTMLParser(recover=True)
    try:
        return etree.fromstring(content, parser)
    except (etree.LxmlError, ValueError) as e:
        logger.debug("html_parse_failed", error=str(e))
        return None


def tag_from_href(href: str) -> Optional[str]:
    """
    Map an SVN URL to the tag it points at.

    Returns "trunk" for .../trunk, "tags/X" for .../tags/X, the last path
    segment for any other URL and None when there is no segment at all.
    """
    if href.endswith('/'):
        href = href[:-1]

    if TRUNK_HREF.search(href):
        return TRUNK

    match = TAG_HREF.search(href)
    if match:
        return match.group(1)
    return None


def version_from_label(label: str) -> str:
    """
    Turn a download link label into a version key.

    Raises:
        InvalidVersion: if the label is neither a development marker nor a version
    """
    label = label.strip(LABEL_STRIP_CHARS)
    if is_development_label(label):
        return DEV_TRUNK
    return validate_version(label)


def parse_versions(content: Union[bytes, str], is_plugin: bool) -> Dict[str, str]:
    """
    Parse the developers page of a package.

    Args:
        content: Raw HTML as returned by wordpress.org
        is_plugin: Plugins always expose trunk, so dev-trunk is added when missing

    Returns:
        dict: version => tag, possibly empty
    """
    versions = {}
    document = _load_document(content)

    nodes = document.xpath(SVN_LINKS_XPATH) if document is not None else []
    for node in nodes:
        tag = tag_from_href(node.get('href') or '')
        if tag is None:
            logger.debug("svn_link_skipped", href=node.get('href'))
            continue

        downloads = node.xpath(DOWNLOAD_LINK_XPATH)
        if not downloads:
            logger.debug("download_link_missing", tag=tag)
            continue

        try:
            version = version_from_label(downloads[0].text_content())
        except InvalidVersion as e:
            logger.debug("version_skipped", tag=tag, error=str(e))
            continue

        versions[version] = tag

        # Version points directly to trunk
        if tag == TRUNK:
            versions[DEV_TRUNK] = TRUNK

    if DEV_TRUNK not in versions and is_plugin:
        versions[DEV_TRUNK] = TRUNK

    return versions

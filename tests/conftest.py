import httpx
import pytest

from wpcrawler.fetcher import HTTPFetcher


def developers_page(*items, region_id='plugin-info'):
    """Render a developers tab listing the given (label, zip_href, svn_href) releases."""
    rows = []
    for label, zip_href, svn_href in items:
        row = '<li>'
        if zip_href is not None:
            row += f'<a itemprop="downloadUrl" href="{zip_href}" rel="nofollow">{label}</a> '
        row += f'(<a href="{svn_href}" rel="nofollow">svn</a>)</li>'
        rows.append(row)
    return (
        '<!DOCTYPE html><html><head><title>Developers</title></head><body>'
        f'<div id="{region_id}"><h2>Browse the code</h2><ul>{"".join(rows)}</ul></div>'
        '</body></html>'
    ).encode('utf-8')


@pytest.fixture
def make_fetcher():
    """HTTPFetcher factory backed by an httpx.MockTransport handler."""
    def factory(handler, **kwargs):
        return HTTPFetcher(transport=httpx.MockTransport(handler), **kwargs)

    return factory

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tests.conftest import developers_page
from wpcrawler.fetcher import FetchResult
from wpcrawler.models import Package, PackageType
from wpcrawler.reconcile import (
    Activate,
    Deactivate,
    HttpError,
    Parsed,
    TransportError,
    apply_decision,
    decide,
    outcome_from_result,
)

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)
URL = 'https://wordpress.org/plugins/akismet/developers/'


@pytest.fixture
def plugin():
    return Package(PackageType.PLUGIN, 'akismet', versions={'0.9': 'tags/0.9'})


@pytest.fixture
def theme():
    return Package(PackageType.THEME, 'twentyten')


def test_transport_error_outcome(plugin):
    result = FetchResult(URL, 0, error='Connection error: refused')

    assert outcome_from_result(result, plugin) == TransportError('Connection error: refused')


def test_http_error_outcome(plugin):
    assert outcome_from_result(FetchResult(URL, 404), plugin) == HttpError(404)
    assert outcome_from_result(FetchResult(URL, 204), plugin) == HttpError(204)


def test_parsed_outcome(theme):
    body = developers_page(('1.0', 'https://downloads.wordpress.org/theme/twentyten.1.0.zip',
                            'https://themes.svn.wordpress.org/twentyten/1.0'))

    assert outcome_from_result(FetchResult(URL, 200, content=body), theme) == Parsed({'1.0': '1.0'})


def test_parsed_outcome_injects_trunk_for_plugins(plugin):
    outcome = outcome_from_result(FetchResult(URL, 200, content=b'<html></html>'), plugin)

    assert outcome == Parsed({'dev-trunk': 'trunk'})


@pytest.mark.parametrize('outcome', [
    TransportError('timeout'),
    HttpError(404),
    HttpError(500),
    Parsed({}),
])
def test_unusable_outcomes_deactivate(outcome):
    assert isinstance(decide(outcome), Deactivate)


def test_non_empty_map_activates_with_exactly_that_map():
    versions = {'1.0': 'tags/1.0', 'dev-trunk': 'trunk'}

    assert decide(Parsed(versions)) == Activate(versions)


def test_unknown_outcome_is_rejected():
    with pytest.raises(TypeError):
        decide(object())


def test_apply_activate(plugin):
    repository = MagicMock()

    apply_decision(Activate({'1.0': 'trunk'}), plugin, repository, NOW)

    repository.activate.assert_called_once_with(plugin, {'1.0': 'trunk'}, NOW)
    repository.deactivate.assert_not_called()


def test_apply_deactivate(plugin):
    repository = MagicMock()

    apply_decision(Deactivate('http status 404'), plugin, repository, NOW)

    repository.deactivate.assert_called_once_with(plugin, NOW)
    repository.activate.assert_not_called()


def test_repository_errors_propagate(plugin):
    repository = MagicMock()
    repository.deactivate.side_effect = RuntimeError('write failed')

    with pytest.raises(RuntimeError):
        apply_decision(Deactivate(), plugin, repository, NOW)

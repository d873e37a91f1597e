"""
Tests for the GA4 Data API report client.
"""
import os
import unittest
from unittest.mock import patch, MagicMock
from datetime import date

import pytest
from google.analytics.data_v1beta.types import Filter

from ga_reporting.ga4_client import (
    GA4ReportClient,
    build_order_bys,
    init_ga4_client,
    parse_filters,
    split_identifiers,
)

MatchType = Filter.StringFilter.MatchType


def _row(dimensions, metrics):
    row = MagicMock()
    row.dimension_values = [MagicMock(value=v) for v in dimensions]
    row.metric_values = [MagicMock(value=v) for v in metrics]
    return row


def _response(rows):
    response = MagicMock()
    response.rows = rows
    response.row_count = len(rows)
    return response


@pytest.mark.parametrize("value, expected", [
    ('sessions', ['sessions']),
    ('date, pageTitle', ['date', 'pageTitle']),
    (['sessions', 'totalUsers'], ['sessions', 'totalUsers']),
    ('', []),
    (None, []),
])
def test_split_identifiers(value, expected):
    assert split_identifiers(value) == expected


@pytest.mark.parametrize("term, match_type, negated", [
    ('sessionMedium==organic', MatchType.EXACT, False),
    ('sessionMedium!=organic', MatchType.EXACT, True),
    ('pagePath=@/menu', MatchType.CONTAINS, False),
    ('pagePath!@/admin', MatchType.CONTAINS, True),
    ('pageTitle=~^Home', MatchType.PARTIAL_REGEXP, False),
    ('pageTitle!~test$', MatchType.PARTIAL_REGEXP, True),
])
def test_parse_single_filter_term(term, match_type, negated):
    expression = parse_filters(term)
    if negated:
        expression = expression.not_expression
    assert expression.filter.string_filter.match_type == match_type


def test_parse_filters_or_group():
    expression = parse_filters('sessionMedium==cpc,sessionMedium==organic')
    terms = expression.or_group.expressions
    assert [t.filter.string_filter.value for t in terms] == ['cpc', 'organic']
    assert terms[0].filter.field_name == 'sessionMedium'


def test_parse_filters_and_of_or_groups():
    expression = parse_filters('country==KZ,country==UZ;deviceCategory==mobile')
    groups = expression.and_group.expressions
    assert len(groups) == 2
    assert len(groups[0].or_group.expressions) == 2
    assert groups[1].filter.field_name == 'deviceCategory'


def test_parse_filters_escaped_separator():
    expression = parse_filters(r'pageTitle==Menu\, drinks')
    assert expression.filter.string_filter.value == 'Menu, drinks'


def test_parse_filters_escaped_backslash_before_separator():
    expression = parse_filters(r'pageTitle==a\\,pageTitle==b')
    terms = expression.or_group.expressions
    assert [t.filter.string_filter.value for t in terms] == ['a\\', 'b']


def test_parse_filters_keeps_regex_escapes():
    expression = parse_filters(r'pagePath=~^/item/\d+$')
    assert expression.filter.string_filter.value == r'^/item/\d+$'


def test_parse_filters_rejects_garbage():
    with pytest.raises(ValueError):
        parse_filters('sessionMedium')


def test_build_order_bys():
    order_bys = build_order_bys('-sessions,country', ['sessions'])
    assert order_bys[0].metric.metric_name == 'sessions'
    assert order_bys[0].desc is True
    assert order_bys[1].dimension.dimension_name == 'country'
    assert order_bys[1].desc is False


class TestInitGA4Client(unittest.TestCase):
    """Test client construction from credentials"""

    def test_missing_credentials(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(EnvironmentError):
                init_ga4_client()

    @patch('ga_reporting.ga4_client.BetaAnalyticsDataClient')
    @patch('ga_reporting.ga4_client.service_account')
    @patch('ga_reporting.ga4_client.os.path.isfile', return_value=True)
    def test_init_from_environment(self, mock_isfile, mock_service_account, mock_client_cls):
        with patch.dict(os.environ, {'GA4_CREDENTIALS_JSON': '/fake/path/key.json'}):
            client = init_ga4_client()

        mock_service_account.Credentials.from_service_account_file.assert_called_once_with('/fake/path/key.json')
        mock_client_cls.assert_called_once_with(
            credentials=mock_service_account.Credentials.from_service_account_file.return_value
        )
        self.assertIs(client, mock_client_cls.return_value)


class TestGA4ReportClient(unittest.TestCase):
    """Test request building and response flattening"""

    def setUp(self):
        self.data_client = MagicMock()
        self.client = GA4ReportClient(data_client=self.data_client)

    def test_perform_query(self):
        """Rows are flattened dimensions first, then metrics"""
        self.data_client.run_report.return_value = _response([
            _row(['20250701', 'Home'], ['12', '34']),
        ])

        result = self.client.perform_query(
            '123456', date(2025, 7, 1), date(2025, 7, 31), 'totalUsers,screenPageViews',
            {'dimensions': 'date,pageTitle', 'sort': '-screenPageViews', 'max-results': 5},
        )

        self.assertEqual(result, {'rows': [['20250701', 'Home', '12', '34']], 'row_count': 1})
        request = self.data_client.run_report.call_args.kwargs['request']
        self.assertEqual(request.property, 'properties/123456')
        self.assertEqual(request.date_ranges[0].start_date, '2025-07-01')
        self.assertEqual(request.date_ranges[0].end_date, '2025-07-31')
        self.assertEqual([d.name for d in request.dimensions], ['date', 'pageTitle'])
        self.assertEqual([m.name for m in request.metrics], ['totalUsers', 'screenPageViews'])
        self.assertEqual(request.limit, 5)
        self.assertTrue(request.order_bys[0].desc)
        self.assertEqual(request.order_bys[0].metric.metric_name, 'screenPageViews')

    def test_relative_dates_pass_through(self):
        request = self.client.build_report_request('1', '7daysAgo', 'today', 'sessions')
        self.assertEqual(request.date_ranges[0].start_date, '7daysAgo')
        self.assertEqual(request.date_ranges[0].end_date, 'today')

    def test_limit_below_one_is_rejected(self):
        for limit in (0, -5):
            with self.assertRaises(ValueError):
                self.client.build_report_request(
                    '1', date(2025, 7, 1), date(2025, 7, 2), 'sessions', {'max-results': limit}
                )

    def test_no_limit_when_max_results_absent(self):
        request = self.client.build_report_request('1', date(2025, 7, 1), date(2025, 7, 2), 'sessions')
        self.assertEqual(request.limit, 0)

    def test_filters_become_dimension_filter(self):
        request = self.client.build_report_request(
            '1', date(2025, 7, 1), date(2025, 7, 2), 'sessions', {'filters': 'country==KZ'}
        )
        self.assertEqual(request.dimension_filter.filter.field_name, 'country')

    def test_empty_report(self):
        self.data_client.run_report.return_value = _response([])
        result = self.client.perform_query('1', date(2025, 7, 1), date(2025, 7, 2), 'sessions')
        self.assertEqual(result['rows'], [])

    def test_perform_query_realtime(self):
        self.data_client.run_realtime_report.return_value = _response([_row(['KZ'], ['3'])])

        result = self.client.perform_query_realtime('123456', 'activeUsers', {'dimensions': 'country'})

        self.assertEqual(result['rows'], [['KZ', '3']])
        request = self.data_client.run_realtime_report.call_args.kwargs['request']
        self.assertEqual(request.property, 'properties/123456')
        self.assertEqual([d.name for d in request.dimensions], ['country'])

    def test_errors_propagate(self):
        self.data_client.run_report.side_effect = RuntimeError('quota exceeded')
        with self.assertRaises(RuntimeError):
            self.client.perform_query('1', date(2025, 7, 1), date(2025, 7, 2), 'sessions')

    def test_get_analytics_service(self):
        self.assertIs(self.client.get_analytics_service(), self.data_client)


if __name__ == '__main__':
    unittest.main()

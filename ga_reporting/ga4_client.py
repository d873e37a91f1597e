"""
Google Analytics 4 (GA4) Data API client initialization using service account,
and the report client the Analytics facade talks to.
"""
import os
import re
import logging
from datetime import date
from typing import Dict, List, Any, Optional

from google.analytics.data import BetaAnalyticsDataClient
from google.oauth2 import service_account
from google.analytics.data_v1beta.types import (
    DateRange,
    Dimension,
    Filter,
    FilterExpression,
    FilterExpressionList,
    Metric,
    OrderBy,
    RunRealtimeReportRequest,
    RunReportRequest,
)

logger = logging.getLogger(__name__)

_FILTER_TERM = re.compile(r'^(?P<field>[^=!]+?)(?P<op>==|!=|=@|!@|=~|!~)(?P<value>.*)$', re.DOTALL)

# \, \; and \\ inside filter values
_ESCAPED = re.compile(r'\\([\\,;])')

_MATCH_TYPES = {
    '==': (Filter.StringFilter.MatchType.EXACT, False),
    '!=': (Filter.StringFilter.MatchType.EXACT, True),
    '=@': (Filter.StringFilter.MatchType.CONTAINS, False),
    '!@': (Filter.StringFilter.MatchType.CONTAINS, True),
    '=~': (Filter.StringFilter.MatchType.PARTIAL_REGEXP, False),
    '!~': (Filter.StringFilter.MatchType.PARTIAL_REGEXP, True),
}


def init_ga4_client(credentials_path: Optional[str] = None) -> BetaAnalyticsDataClient:
    """
    Initialize GA4 Data API client using service account credentials.
    Expects GA4_CREDENTIALS_JSON in environment pointing to JSON key file
    unless credentials_path is given.
    """
    creds_path = credentials_path or os.getenv('GA4_CREDENTIALS_JSON')
    if not creds_path or not os.path.isfile(creds_path):
        raise EnvironmentError('GA4_CREDENTIALS_JSON not set or file does not exist')
    credentials = service_account.Credentials.from_service_account_file(creds_path)
    client = BetaAnalyticsDataClient(credentials=credentials)
    logger.info('GA4 Data API client initialized')
    return client


def split_identifiers(value) -> List[str]:
    """'a, b,c' -> ['a', 'b', 'c']; lists are passed through."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    return [v.strip() for v in value if v and v.strip()]


def _split_unescaped(expression: str, separator: str) -> List[str]:
    """
    Split on separator, skipping any character that follows a backslash.
    Escapes are left in place for the next pass.
    """
    parts = []
    current = []
    escaped = False
    for char in expression:
        if escaped:
            current.append(char)
            escaped = False
        elif char == '\\':
            current.append(char)
            escaped = True
        elif char == separator:
            parts.append(''.join(current))
            current = []
        else:
            current.append(char)
    parts.append(''.join(current))
    return parts


def _filter_term(term: str) -> FilterExpression:
    match = _FILTER_TERM.match(term.strip())
    if not match:
        raise ValueError(f'Invalid filter term: {term!r}')
    match_type, negate = _MATCH_TYPES[match.group('op')]
    value = _ESCAPED.sub(r'\1', match.group('value'))
    expression = FilterExpression(
        filter=Filter(
            field_name=match.group('field').strip(),
            string_filter=Filter.StringFilter(value=value, match_type=match_type),
        )
    )
    if negate:
        return FilterExpression(not_expression=expression)
    return expression


def parse_filters(expression: str) -> FilterExpression:
    """
    Convert a dimension filter string into a GA4 FilterExpression.

    Syntax: `field==value` terms, `,` joins terms with OR and `;` joins the OR
    groups with AND (OR binds tighter). Operators: == != =@ !@ =~ !~.
    A literal `,`, `;` or `\\` inside a value is written as `\\,`, `\\;` or `\\\\`.
    """
    and_parts = []
    for or_group in _split_unescaped(expression, ';'):
        terms = [_filter_term(t) for t in _split_unescaped(or_group, ',')]
        if len(terms) == 1:
            and_parts.append(terms[0])
        else:
            and_parts.append(FilterExpression(or_group=FilterExpressionList(expressions=terms)))
    if len(and_parts) == 1:
        return and_parts[0]
    return FilterExpression(and_group=FilterExpressionList(expressions=and_parts))


def build_order_bys(sort, metrics: List[str]) -> List[OrderBy]:
    """
    '-sessions,country' -> sessions descending, then country ascending.
    Keys naming a requested metric order by that metric, others by dimension.
    """
    order_bys = []
    for key in split_identifiers(sort):
        desc = key.startswith('-')
        name = key.lstrip('-')
        if name in metrics:
            order_bys.append(OrderBy(metric=OrderBy.MetricOrderBy(metric_name=name), desc=desc))
        else:
            order_bys.append(OrderBy(dimension=OrderBy.DimensionOrderBy(dimension_name=name), desc=desc))
    return order_bys


def _format_date(value) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return value


def _apply_params(request, metrics: List[str], params: Dict[str, Any]):
    if params.get('filters'):
        request.dimension_filter = parse_filters(params['filters'])
    if params.get('sort'):
        request.order_bys = build_order_bys(params['sort'], metrics)
    if params.get('max-results') is not None:
        limit = int(params['max-results'])
        if limit < 1:
            raise ValueError(f'max-results must be at least 1, got {limit}')
        request.limit = limit
    return request


def response_rows(response) -> List[List[str]]:
    # Dimension values first, then metric values, in request order
    results = []
    for row in response.rows:
        results.append([val.value for val in row.dimension_values] + [val.value for val in row.metric_values])
    return results


class GA4ReportClient:
    """
    Report client backed by the GA4 Data API.

    Accepts the query parameters the Analytics facade produces (`dimensions`,
    `sort`, `filters`, `max-results`) and returns `{'rows': [...]}` with each
    row flattened to strings.
    """

    def __init__(self, data_client: Optional[BetaAnalyticsDataClient] = None, credentials_path: Optional[str] = None):
        self.data_client = data_client or init_ga4_client(credentials_path)

    def build_report_request(self, property_id: str, start_date, end_date, metrics, params: Dict = None) -> RunReportRequest:
        params = params or {}
        metric_names = split_identifiers(metrics)
        request = RunReportRequest(
            property=f'properties/{property_id}',
            date_ranges=[DateRange(start_date=_format_date(start_date), end_date=_format_date(end_date))],
            dimensions=[Dimension(name=d) for d in split_identifiers(params.get('dimensions'))],
            metrics=[Metric(name=m) for m in metric_names],
        )
        return _apply_params(request, metric_names, params)

    def build_realtime_request(self, property_id: str, metrics, params: Dict = None) -> RunRealtimeReportRequest:
        params = params or {}
        metric_names = split_identifiers(metrics)
        request = RunRealtimeReportRequest(
            property=f'properties/{property_id}',
            dimensions=[Dimension(name=d) for d in split_identifiers(params.get('dimensions'))],
            metrics=[Metric(name=m) for m in metric_names],
        )
        return _apply_params(request, metric_names, params)

    def perform_query(self, property_id: str, start_date, end_date, metrics, params: Dict = None) -> Dict[str, Any]:
        """
        Run a RunReport request for the date range.

        Args:
            property_id: GA4 property id (without the 'properties/' prefix)
            start_date, end_date: dates, or GA4 relative dates such as '7daysAgo'
            metrics: comma-separated metric names
            params: optional dimensions / sort / filters / max-results

        Returns:
            {'rows': [...], 'row_count': int}
        """
        request = self.build_report_request(property_id, start_date, end_date, metrics, params)
        logger.debug(f'Running GA4 report: {request}')
        response = self.data_client.run_report(request=request)
        rows = response_rows(response)
        logger.info(f'GA4 report for property {property_id} returned {len(rows)} rows')
        return {'rows': rows, 'row_count': response.row_count}

    def perform_query_realtime(self, property_id: str, metrics, params: Dict = None) -> Dict[str, Any]:
        """
        Run a RunRealtimeReport request. Same parameters and result as perform_query
        without the date range.
        """
        request = self.build_realtime_request(property_id, metrics, params)
        logger.debug(f'Running GA4 realtime report: {request}')
        response = self.data_client.run_realtime_report(request=request)
        rows = response_rows(response)
        logger.info(f'GA4 realtime report for property {property_id} returned {len(rows)} rows')
        return {'rows': rows, 'row_count': response.row_count}

    def get_analytics_service(self) -> BetaAnalyticsDataClient:
        return self.data_client


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    client = init_ga4_client()
    print('GA4 client initialized:', client)

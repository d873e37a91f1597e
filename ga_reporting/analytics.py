"""
Analytics facade: named GA4 reports as lists of flat records.
"""
import os
import logging
from typing import Dict, List, Any, Optional

from .ga4_client import GA4ReportClient, split_identifiers
from .period import Period
from .transformer import Column, RowDecoder, summarize_top_n, to_date, to_int

logger = logging.getLogger(__name__)

SEARCH_ENGINE_MEDIUMS = ['cpa', 'cpc', 'cpm', 'cpp', 'cpv', 'organic', 'ppc']

VISITORS_AND_PAGE_VIEWS = RowDecoder(('date', to_date), ('pageTitle', str), ('visitors', to_int), ('pageViews', to_int))
TOTAL_VISITORS_AND_PAGE_VIEWS = RowDecoder(('date', to_date), ('visitors', to_int), ('pageViews', to_int))
MOST_VISITED_PAGES = RowDecoder(('url', str), ('pageTitle', str), ('pageViews', to_int))
TOP_REFERRERS = RowDecoder(('url', str), ('pageViews', to_int))
TOP_OPERATING_SYSTEMS = RowDecoder(('operatingSystem', str), ('sessions', to_int))
# sessionSource, sessionMedium, sessions, ...: medium is not part of the record
TOP_TRAFFIC_SOURCES = RowDecoder(Column('source', str, 0), Column('sessions', to_int, 2))
TOP_SEARCH_ENGINES = RowDecoder(('url', str), ('sessions', to_int))
TOP_KEYWORDS = RowDecoder(('keyword', str), ('sessions', to_int))


class Analytics:
    """
    Runs GA4 reports through an injected report client.

    The client must provide perform_query(view_id, start_date, end_date, metrics, params)
    and perform_query_realtime(view_id, metrics, params), both returning
    {'rows': [...]} or None. Client errors are not caught here.
    """

    def __init__(self, client, view_id: str):
        self.client = client
        self.view_id = view_id

    def set_view_id(self, view_id: str) -> 'Analytics':
        self.view_id = view_id
        return self

    # Generic queries

    def fetch_series(
        self,
        period: Period,
        metrics,
        dimensions=None,
        extra_params: Optional[Dict[str, Any]] = None,
        decoder: Optional[RowDecoder] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run one report and decode every row.

        Args:
            period: date range
            metrics: metric names, comma-separated string or list
            dimensions: dimension names, comma-separated string or list
            extra_params: sort / filters / max-results
            decoder: row decoder; derived from dimensions and metrics when omitted

        Returns:
            List of records, empty when the report has no rows
        """
        params = dict(extra_params or {})
        dimension_names = split_identifiers(dimensions or params.get('dimensions'))
        metric_names = split_identifiers(metrics)
        if dimension_names:
            params['dimensions'] = ','.join(dimension_names)
        if decoder is None:
            decoder = RowDecoder.for_query(dimension_names, metric_names)

        response = self.perform_query(period, ','.join(metric_names), params)
        return decoder.decode_rows(_rows(response))

    def fetch_top_n(
        self,
        period: Period,
        metric: str,
        dimension: str,
        sort_key: Optional[str] = None,
        max_results: int = 10,
        label_key: Optional[str] = None,
        count_key: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Ranked (label, count) records for one dimension, with the tail beyond
        max_results summed into an "Others" entry.
        """
        label_key = label_key or dimension
        count_key = count_key or metric
        sort_key = sort_key or metric
        # GA4 orders only by requested metrics; a separate sort metric lands in column 2, undecoded
        metrics = metric if sort_key == metric else f'{metric},{sort_key}'
        records = self.fetch_series(
            period,
            metrics,
            dimension,
            {'sort': f'-{sort_key}'},
            RowDecoder((label_key, str), (count_key, to_int)),
        )
        return summarize_top_n(records, max_results, label_key, count_key)

    def fetch_realtime(self, metric: str, dimension: Optional[str] = None):
        """
        Realtime report for one metric.

        Without a dimension the first cell is returned as an int (0 when there
        are no rows). With a dimension the rows are returned exactly as the
        client produced them, without decoding or summarizing.
        """
        params = {'dimensions': dimension} if dimension else {}
        rows = _rows(self.perform_query_realtime(metric, params))
        if dimension:
            return rows
        if not rows:
            return 0
        return RowDecoder(('value', to_int)).decode(rows[0])['value']

    # Historical reports

    def fetch_visitors_and_page_views(self, period: Period) -> List[Dict[str, Any]]:
        return self.fetch_series(
            period, 'totalUsers,screenPageViews', 'date,pageTitle', decoder=VISITORS_AND_PAGE_VIEWS
        )

    def fetch_total_visitors_and_page_views(self, period: Period) -> List[Dict[str, Any]]:
        return self.fetch_series(
            period, 'totalUsers,screenPageViews', 'date', decoder=TOTAL_VISITORS_AND_PAGE_VIEWS
        )

    def fetch_most_visited_pages(self, period: Period, max_results: int = 20) -> List[Dict[str, Any]]:
        return self.fetch_series(
            period,
            'screenPageViews',
            'pagePath,pageTitle',
            {'sort': '-screenPageViews', 'max-results': max_results},
            MOST_VISITED_PAGES,
        )

    def fetch_top_referrers(self, period: Period, max_results: int = 20) -> List[Dict[str, Any]]:
        return self.fetch_series(
            period,
            'screenPageViews',
            'pageReferrer',
            {'sort': '-screenPageViews', 'max-results': max_results},
            TOP_REFERRERS,
        )

    def fetch_top_browsers(self, period: Period, max_results: int = 10) -> List[Dict[str, Any]]:
        return self.fetch_top_n(period, 'sessions', 'browser', max_results=max_results)

    def fetch_top_operating_systems(self, period: Period) -> List[Dict[str, Any]]:
        return self.fetch_series(
            period, 'sessions', 'operatingSystem', {'sort': '-sessions'}, TOP_OPERATING_SYSTEMS
        )

    def fetch_top_countries(self, period: Period, max_results: int = 10) -> List[Dict[str, Any]]:
        return self.fetch_top_n(period, 'sessions', 'country', max_results=max_results)

    def fetch_top_cities(self, period: Period, max_results: int = 10) -> List[Dict[str, Any]]:
        return self.fetch_top_n(period, 'sessions', 'city', max_results=max_results)

    def fetch_top_languages(self, period: Period, max_results: int = 10) -> List[Dict[str, Any]]:
        return self.fetch_top_n(period, 'sessions', 'language', max_results=max_results)

    def fetch_top_traffic_sources(self, period: Period) -> List[Dict[str, Any]]:
        return self.fetch_series(
            period,
            'sessions,screenPageViews,userEngagementDuration',
            'sessionSource,sessionMedium',
            {'sort': '-sessions'},
            TOP_TRAFFIC_SOURCES,
        )

    def fetch_top_search_engines(self, period: Period) -> List[Dict[str, Any]]:
        filters = ','.join(f'sessionMedium=={medium}' for medium in SEARCH_ENGINE_MEDIUMS)
        return self.fetch_series(
            period,
            'sessions,screenPageViews,userEngagementDuration',
            'sessionSource',
            {'filters': filters, 'sort': '-sessions'},
            TOP_SEARCH_ENGINES,
        )

    def fetch_top_keywords(self, period: Period) -> List[Dict[str, Any]]:
        return self.fetch_series(
            period, 'sessions', 'sessionManualTerm', {'sort': '-sessions'}, TOP_KEYWORDS
        )

    # Realtime reports

    def fetch_number_active_users(self) -> int:
        return self.fetch_realtime('activeUsers')

    def fetch_countries_active_users(self) -> List[List[str]]:
        return self.fetch_realtime('activeUsers', 'country')

    def fetch_cities_active_users(self) -> List[List[str]]:
        return self.fetch_realtime('activeUsers', 'city')

    def fetch_device_category_active_users(self) -> List[List[str]]:
        return self.fetch_realtime('activeUsers', 'deviceCategory')

    def fetch_platform_active_users(self) -> List[List[str]]:
        return self.fetch_realtime('activeUsers', 'platform')

    # Client passthrough

    def perform_query(self, period: Period, metrics: str, params: Optional[Dict[str, Any]] = None):
        """
        Call the query method on the client for this view and period.
        """
        params = params or {}
        logger.info(
            f"Querying view {self.view_id} for {metrics} "
            f"({period.start_date.isoformat()} - {period.end_date.isoformat()}), params {params}"
        )
        return self.client.perform_query(self.view_id, period.start_date, period.end_date, metrics, params)

    def perform_query_realtime(self, metrics: str, params: Optional[Dict[str, Any]] = None):
        """
        Call the realtime query method on the client for this view.
        """
        params = params or {}
        logger.info(f"Realtime query on view {self.view_id} for {metrics}, params {params}")
        return self.client.perform_query_realtime(self.view_id, metrics, params)

    def get_analytics_service(self):
        """
        The underlying GA4 Data API client, for calls the facade does not cover.
        """
        return self.client.get_analytics_service()


def _rows(response) -> List[List[str]]:
    if not response:
        return []
    return response.get('rows') or []


def init_analytics(property_id: Optional[str] = None, credentials_path: Optional[str] = None) -> Analytics:
    """
    Build an Analytics facade over a GA4ReportClient.
    Falls back to GA4_PROPERTY_ID and GA4_CREDENTIALS_JSON from the environment.
    """
    property_id = property_id or os.getenv('GA4_PROPERTY_ID')
    if not property_id:
        raise EnvironmentError('GA4_PROPERTY_ID not set')
    return Analytics(GA4ReportClient(credentials_path=credentials_path), property_id)

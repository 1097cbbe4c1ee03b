"""Tests for gemcrawl.utils.monitoring."""

from __future__ import annotations

from unittest.mock import patch

from gemcrawl.utils.monitoring import CrawlerMonitor, MetricsCollector


class TestMetricsCollector:
    def test_counter_history(self):
        metrics = MetricsCollector()
        metrics.increment_counter('errors_total', {'error_type': 'timeout'})
        metrics.increment_counter('errors_total', {'error_type': 'timeout'})

        metric = metrics.get_metric('errors_total')
        assert metric.current_value == 2
        assert len(metric.points) == 2
        assert metrics.prometheus_registry.get_sample_value(
            'gemcrawl_errors_total', {'error_type': 'timeout'}
        ) == 2

    def test_history_bounded(self):
        metrics = MetricsCollector()
        for i in range(MetricsCollector.MAX_POINTS + 10):
            metrics.set_gauge('queue_size', i)
        assert len(metrics.get_metric('queue_size').points) == MetricsCollector.MAX_POINTS
        assert metrics.prometheus_registry.get_sample_value('gemcrawl_queue_size') == i

    def test_unregistered_metric_kept_in_memory(self):
        metrics = MetricsCollector()
        metrics.set_gauge('custom', 3)
        assert metrics.get_current_values() == {'custom': 3}

    def test_server_not_started_when_disabled(self):
        with patch('gemcrawl.utils.monitoring.start_http_server') as start:
            MetricsCollector(enable_prometheus=False).start_prometheus_server()
        start.assert_not_called()

    def test_server_started_when_enabled(self):
        with patch('gemcrawl.utils.monitoring.start_http_server') as start:
            metrics = MetricsCollector(enable_prometheus=True, prometheus_port=9123)
            metrics.start_prometheus_server()
        start.assert_called_once_with(9123, registry=metrics.prometheus_registry)


class TestCrawlerMonitor:
    def test_summary(self):
        monitor = CrawlerMonitor()
        monitor.record_fetch('success', 0.25)
        monitor.record_discovery()
        monitor.update_frontier(queued=3, entries=7)

        summary = monitor.get_summary()
        assert summary['metrics']['fetches_total'] == 1
        assert summary['metrics']['entries'] == 7
        assert summary['rates']['fetches_per_second'] >= 0

import threading
import unittest

from docqa_bot.metrics import MetricsCollector


class TestMetricsCollector(unittest.TestCase):
    def test_empty_summary(self):
        summary = MetricsCollector().get_summary()
        self.assertEqual(summary["answers"]["total"], 0)
        self.assertEqual(summary["latency"], {"avg_ms": 0.0, "min_ms": 0.0, "max_ms": 0.0})
        self.assertEqual(summary["errors"]["rate_percent"], 0.0)
        self.assertGreater(summary["memory"]["rss_mb"], 0)

    def test_latency_and_error_rate(self):
        metrics = MetricsCollector()
        metrics.record_answer(100.0, success=True)
        metrics.record_answer(300.0, success=True)
        metrics.record_answer(200.0, success=False)
        metrics.record_answer(400.0, success=True)

        summary = metrics.get_summary()
        self.assertEqual(summary["answers"]["total"], 4)
        self.assertEqual(summary["latency"]["avg_ms"], 250.0)
        self.assertEqual(summary["latency"]["min_ms"], 100.0)
        self.assertEqual(summary["latency"]["max_ms"], 400.0)
        self.assertEqual(summary["errors"]["count"], 1)
        self.assertEqual(summary["errors"]["rate_percent"], 25.0)

    def test_concurrent_recording_is_not_lost(self):
        metrics = MetricsCollector()

        def _record():
            for _ in range(500):
                metrics.record_answer(1.0, success=True)

        threads = [threading.Thread(target=_record) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        self.assertEqual(metrics.get_summary()["answers"]["total"], 2000)


if __name__ == "__main__":
    unittest.main()

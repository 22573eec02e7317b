import asyncio

from novelgrab.polling import poll_until, wait_stable


def make_probe(values):
    seq = list(values)

    async def probe():
        if len(seq) > 1:
            return seq.pop(0)
        return seq[0]

    return probe


class TestPollUntil:
    def test_returns_as_soon_as_true(self):
        res = asyncio.run(poll_until(make_probe([False, False, True]), 0.001, 1.0))
        assert res.ok
        assert res.attempts == 3

    def test_times_out_with_last_value(self):
        res = asyncio.run(poll_until(make_probe([0]), 0.001, 0.02))
        assert not res.ok
        assert res.value == 0
        assert res.attempts >= 1

    def test_probe_errors_count_as_failed_samples(self):
        calls = []

        async def probe():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("detached")
            return "ready"

        res = asyncio.run(poll_until(probe, 0.001, 1.0))
        assert res.ok and res.value == "ready"

    def test_custom_predicate(self):
        res = asyncio.run(poll_until(make_probe([1, 5, 12]), 0.001, 1.0, predicate=lambda v: v > 10))
        assert res.ok and res.value == 12


class TestWaitStable:
    def test_needs_consecutive_agreeing_samples(self):
        boxes = [(0, 0, 10, 10), (0, 5, 10, 20), (0, 5, 10, 40), (0, 5, 10, 40), (0, 5.4, 10, 40)]
        res = asyncio.run(wait_stable(make_probe(boxes), 0.001, 1.0, samples=3, tolerance=1.0))
        assert res.ok
        assert res.value == (0, 5.4, 10, 40)
        assert res.attempts == 5

    def test_timeout_keeps_last_sample(self):
        counter = iter(range(1000))

        async def probe():
            return (0, next(counter) * 10, 5, 5)

        res = asyncio.run(wait_stable(probe, 0.001, 0.02, samples=3))
        assert not res.ok
        assert res.value is not None

    def test_none_samples_reset_streak(self):
        res = asyncio.run(wait_stable(make_probe([(1, 1), None, (1, 1), (1, 1)]), 0.001, 1.0, samples=2))
        assert res.ok
        assert res.attempts == 4

    def test_never_any_sample(self):
        res = asyncio.run(wait_stable(make_probe([None]), 0.001, 0.01))
        assert not res.ok and res.value is None

"""
Tests for daily order numbering.
"""

import threading
from datetime import date

from fulfillment_core.intake.sequence import OrderNumberSequence


class FakeRepo:
    def __init__(self, counts=None, maxima=None):
        self.counts = counts or {}
        self.maxima = maxima or {}

    def count_orders_for_day(self, day):
        return self.counts.get(day, 0)

    def max_sequence_for_day(self, day):
        return self.maxima.get(day, 0)


class Clock:
    def __init__(self, day):
        self.day = day

    def __call__(self):
        return self.day


class TestOrderNumberSequence:
    def test_first_number_of_the_day(self):
        seq = OrderNumberSequence(today=Clock(date(2024, 12, 16)))
        assert seq.next_number(FakeRepo()) == "ORD_20241216_001"

    def test_increments_by_one(self):
        seq = OrderNumberSequence(today=Clock(date(2024, 12, 16)))
        repo = FakeRepo()
        numbers = [seq.next_number(repo) for _ in range(3)]
        assert numbers == ["ORD_20241216_001", "ORD_20241216_002", "ORD_20241216_003"]

    def test_seeds_from_stored_count_after_restart(self):
        day = date(2024, 12, 16)
        seq = OrderNumberSequence(today=Clock(day))
        assert seq.next_number(FakeRepo(counts={day: 41})) == "ORD_20241216_042"

    def test_restarts_at_one_on_a_new_utc_day(self):
        clock = Clock(date(2024, 12, 16))
        seq = OrderNumberSequence(today=clock)
        repo = FakeRepo()
        seq.next_number(repo)
        seq.next_number(repo)

        clock.day = date(2024, 12, 17)
        assert seq.next_number(repo) == "ORD_20241217_001"

    def test_grows_past_three_digits(self):
        day = date(2024, 12, 16)
        seq = OrderNumberSequence(today=Clock(day))
        assert seq.next_number(FakeRepo(counts={day: 999})) == "ORD_20241216_1000"

    def test_resync_jumps_past_highest_stored_number(self):
        day = date(2024, 12, 16)
        seq = OrderNumberSequence(today=Clock(day))
        repo = FakeRepo(counts={day: 2}, maxima={day: 7})
        assert seq.next_number(repo) == "ORD_20241216_003"

        seq.resync(repo)
        assert seq.next_number(repo) == "ORD_20241216_008"

    def test_unique_under_concurrency(self):
        seq = OrderNumberSequence(today=Clock(date(2024, 12, 16)))
        repo = FakeRepo()
        numbers = []
        lock = threading.Lock()

        def take():
            for _ in range(50):
                number = seq.next_number(repo)
                with lock:
                    numbers.append(number)

        threads = [threading.Thread(target=take) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(numbers) == 400
        assert len(set(numbers)) == 400

    def test_release_gives_back_the_last_number(self):
        seq = OrderNumberSequence(today=Clock(date(2024, 12, 16)))
        repo = FakeRepo()
        number = seq.next_number(repo)

        assert seq.release(number)
        assert seq.next_number(repo) == number

    def test_release_ignores_a_number_no_longer_last(self):
        seq = OrderNumberSequence(today=Clock(date(2024, 12, 16)))
        repo = FakeRepo()
        first = seq.next_number(repo)
        seq.next_number(repo)

        assert not seq.release(first)
        assert seq.next_number(repo) == "ORD_20241216_003"

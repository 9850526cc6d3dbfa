"""
Concurrency tests for numbering and the duplicate guard.

Numbering, the duplicate lookup and the insert run inside one atomic()
block of the family store.  These tests race many threads through
DocumentService and check that:

- No two documents of a family ever share a number
- Exactly one of several identical creations wins
- Regular and refund partitions never interfere
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

from billing_kernel.exceptions import DuplicateDocumentError


def _bill(estate_id: int) -> dict:
    return {
        "owner_id": 7,
        "estate_id": estate_id,
        "issue_date": "2025-07-10",
        "tax_base": "100",
    }


class TestConcurrentCreation:
    """Multiple threads with barriers to force simultaneous execution."""

    def test_20_threads_distinct_subjects_get_distinct_numbers(self, bills):
        num_threads = 20
        barrier = Barrier(num_threads, timeout=30)

        def create(estate_id: int):
            barrier.wait()
            return bills.documents.create(_bill(estate_id))

        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            futures = [executor.submit(create, i) for i in range(num_threads)]
            # future.result() re-raises if a thread hit an unexpected exception
            results = [f.result() for f in futures]

        numbers = sorted(doc.document_number for doc in results)
        assert numbers == [f"FACT-{n:04d}" for n in range(1, num_threads + 1)]
        assert len(bills.store.all()) == num_threads

    def test_10_threads_same_subject_exactly_one_wins(self, bills):
        num_threads = 10
        barrier = Barrier(num_threads, timeout=30)

        def create(_: int):
            barrier.wait()
            try:
                return bills.documents.create(_bill(3))
            except DuplicateDocumentError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            results = list(executor.map(create, range(num_threads)))

        created = [r for r in results if not isinstance(r, DuplicateDocumentError)]
        rejected = [r for r in results if isinstance(r, DuplicateDocumentError)]

        assert len(created) == 1
        assert len(rejected) == num_threads - 1
        assert {r.existing_id for r in rejected} == {created[0].id}
        assert created[0].document_number == "FACT-0001"

    def test_refunds_and_creations_interleave(self, bills):
        originals = [bills.documents.create(_bill(i)) for i in range(10)]
        barrier = Barrier(20, timeout=30)

        def refund(document_id: str):
            barrier.wait()
            return bills.documents.create_refund(document_id)

        def create(estate_id: int):
            barrier.wait()
            return bills.documents.create(_bill(estate_id))

        with ThreadPoolExecutor(max_workers=20) as executor:
            refund_futures = [executor.submit(refund, d.id) for d in originals]
            create_futures = [executor.submit(create, 100 + i) for i in range(10)]
            refunds = [f.result() for f in refund_futures]
            created = [f.result() for f in create_futures]

        assert sorted(r.document_number for r in refunds) == [
            f"ABONO-{n:04d}" for n in range(1, 11)
        ]
        assert sorted(d.document_number for d in created) == [
            f"FACT-{n:04d}" for n in range(11, 21)
        ]

"""
Concurrent ingestion: parallel uploads must receive disjoint contiguous id blocks
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from sqlalchemy import select

from gaenstore.models import EXPOSED_ID_SEQUENCE, IdSequence
from conftest import key_payload, make_key, utc

NOW = utc(2020, 7, 2, 10)


class TestConcurrentIngestion:

    def test_parallel_batches_get_disjoint_contiguous_blocks(self, service, stored, session_factory):
        batch_sizes = [1, 2, 3, 4, 5, 6, 7, 8, 3, 5]
        batches = []
        n = 0
        for size in batch_sizes:
            batches.append([make_key(n + i + 1) for i in range(size)])
            n += size

        def upload(index: int) -> None:
            country = "CH" if index % 2 else "DE"
            service.ingest(batches[index], {country}, NOW + timedelta(minutes=index))

        with ThreadPoolExecutor(max_workers=len(batches)) as pool:
            list(pool.map(upload, range(len(batches))))

        ids = {row.key_data: row.id for row in stored.keys()}
        assert len(ids) == sum(batch_sizes)

        ranges = []
        for batch in batches:
            batch_ids = sorted(ids[key.key_data] for key in batch)
            assert batch_ids == list(range(batch_ids[0], batch_ids[0] + len(batch)))
            ranges.append(set(batch_ids))

        union = set().union(*ranges)
        assert len(union) == sum(batch_sizes)
        assert union == set(range(1, sum(batch_sizes) + 1))

        with session_factory() as session:
            next_id = session.execute(
                select(IdSequence.next_id).where(IdSequence.name == EXPOSED_ID_SEQUENCE)
            ).scalar_one()
        assert next_id == sum(batch_sizes) + 1

    def test_parallel_reuploads_of_same_key_store_one_row(self, service, stored):
        def upload(country: str) -> None:
            service.ingest([make_key(1)], {country}, NOW)

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(upload, ["CH", "DE", "FR", "IT"]))

        assert stored.key_count() == 1
        assert stored.grants() == {(key_payload(1), c) for c in ("CH", "DE", "FR", "IT")}

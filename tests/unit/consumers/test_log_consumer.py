import pytest

from records_client.encoder import encode_rows
from records_client.models import Batch
from records_receiver.consumers import LogConsumer
from records_receiver.coordinator import RecordConsumer


@pytest.mark.asyncio
async def test_log_consumer_logs_every_record(log_messages):
    consumer = LogConsumer(level="DEBUG")
    batch = Batch(
        query_id="Q1",
        records=encode_rows("Q1", ["dept_no"], [("d001",), ("d002",)]),
    )

    await consumer.consume(batch)

    assert consumer.records_logged == 2
    assert 'Q1_record1 {"dept_no": "d001"}' in log_messages
    assert 'Q1_record2 {"dept_no": "d002"}' in log_messages


def test_log_consumer_satisfies_protocol():
    assert isinstance(LogConsumer(), RecordConsumer)

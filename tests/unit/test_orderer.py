"""Unit tests for NetworkOrderer."""

import numpy as np
import pytest

from ncsnet.messages import makeMsg
from ncsnet.network import NetworkOrderer

Ts = 0.01


def sample(seq):
    return makeMsg((seq - 1) * Ts, [float(seq)], seq, 1)


@pytest.fixture
def orderer(kernel):
    node = NetworkOrderer(1, 9, 3, Ts).attach(kernel)
    node.init()
    return node


class TestNetworkOrderer:
    """Tests for NetworkOrderer."""

    def test_transaction_key(self, orderer):
        assert orderer.transactionKey(sample(1)) == 0
        assert orderer.transactionKey(sample(8)) == 7
        # Jitter of the sampling time does not change the key
        assert orderer.transactionKey(makeMsg(0.0301, [0.0], 4, 1)) == 3

    def test_reorders(self, kernel, sink, orderer, deliver):
        for i, seq in enumerate([3, 1, 2, 5, 4]):
            deliver(orderer, 0.05 + 0.001 * i, sample(seq))
        kernel.run(1.0)
        assert sink.receivedSeqs == [1, 2, 3, 4, 5]
        np.testing.assert_array_equal(sink.payloadHistory.data[:, 0],
                                      [1, 2, 3, 4, 5])
        assert orderer.awaitSeqNr == 5
        assert orderer.msgBuffer.elementCount == 0

    def test_release_times(self, kernel, sink, orderer, deliver):
        deliver(orderer, 0.050, sample(3))
        deliver(orderer, 0.051, sample(1))
        deliver(orderer, 0.052, sample(2))
        kernel.run(1.0)
        np.testing.assert_allclose(sink.receiveTimeHistory.data[:, 0],
                                   [0.051, 0.052, 0.052])
        np.testing.assert_allclose(orderer.sentMsgTimeHistory.data[:, 0],
                                   [0.051, 0.052, 0.052])

    def test_gap_holds_back(self, kernel, sink, orderer, deliver):
        for i, seq in enumerate([1, 3, 4]):
            deliver(orderer, 0.05 + 0.001 * i, sample(seq))
        kernel.run(1.0)
        assert sink.receivedSeqs == [1]
        assert orderer.msgBuffer.elementCount == 2

    def test_stale_discarded(self, kernel, sink, orderer, deliver):
        deliver(orderer, 0.01, sample(1))
        deliver(orderer, 0.02, sample(2))
        deliver(orderer, 0.03, sample(1))
        kernel.run(1.0)
        assert sink.receivedSeqs == [1, 2]
        assert orderer.nDiscarded == 1

    def test_duplicate_in_buffer(self, kernel, sink, orderer, deliver):
        deliver(orderer, 0.01, sample(2))
        deliver(orderer, 0.02, sample(2))
        deliver(orderer, 0.03, sample(1))
        kernel.run(1.0)
        assert sink.receivedSeqs == [1, 2]
        assert orderer.nDiscarded == 1
        assert orderer.msgBuffer.elementCount == 0

    def test_stamps_own_id(self, orderer):
        orderer.enqueueMsg(sample(1))
        assert orderer.msgBuffer.getTop().message.originNodeId == 3

    def test_send_top_returns_count(self, kernel, orderer):
        orderer.nextNode = [0]
        orderer.enqueueMsg(sample(2))
        assert orderer.sendTopMsg() == 0
        orderer.enqueueMsg(sample(1))
        assert orderer.sendTopMsg() == 2

    def test_init_resets(self, kernel, orderer, deliver):
        orderer.nextNode = [0]
        deliver(orderer, 0.01, sample(1))
        kernel.run(1.0)
        assert orderer.awaitSeqNr == 1
        orderer.init()
        assert orderer.awaitSeqNr == 0
        assert len(orderer.sentMsgDataHistory) == 0

    def test_random_arrival_orders(self, kernel, sink, orderer, deliver, rng):
        seqs = rng.permutation(np.arange(1, 21))
        for i, seq in enumerate(seqs):
            deliver(orderer, 0.2 + 0.001 * i, sample(int(seq)))
        kernel.run(1.0)
        assert sink.receivedSeqs == list(range(1, 21))

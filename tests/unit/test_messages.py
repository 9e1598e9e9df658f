"""Unit tests for NetworkMsg, BufferElement and MsgBuffer."""

import numpy as np
import pytest

from ncsnet.errors import EmptyBufferError, InvalidTypeError
from ncsnet.messages import (BufferElement, MsgBuffer, NetworkMsg, decodeMsg,
                             encodeMsg, makeMsg)


class TestNetworkMsg:
    """Tests for NetworkMsg."""

    def test_creation(self):
        msg = NetworkMsg(0.02, 0.025, [1.0, 2.0], 3, 1)
        assert msg.samplingTimestamp == 0.02
        assert msg.lastTransmitTimestamps == (0.025, 0.025)
        assert msg.lastTransmitTimestamp == 0.025
        assert msg.sequenceNumber == 3
        assert msg.originNodeId == 1
        np.testing.assert_array_equal(msg.payload, [1.0, 2.0])

    def test_make_msg_defaults_transmit_to_sampling_time(self):
        msg = makeMsg(0.01, 4.0, 2, 5)
        assert msg.lastTransmitTimestamps == (0.01, 0.01)
        assert msg.payload.shape == (1,)

    def test_payload_is_read_only(self):
        msg = makeMsg(0.0, [1.0, 2.0], 1, 1)
        with pytest.raises(ValueError):
            msg.payload[0] = 5.0

    def test_source_array_not_shared(self):
        data = np.array([1.0, 2.0])
        msg = makeMsg(0.0, data, 1, 1)
        data[0] = 9.0
        assert msg.payload[0] == 1.0

    def test_copy_leaves_original_unchanged(self):
        msg = makeMsg(0.0, [1.0], 1, 1)
        other = msg.copy(originNodeId=7, payload=[2.0])
        assert msg.originNodeId == 1
        assert msg.payload[0] == 1.0
        assert other.originNodeId == 7
        assert other.payload[0] == 2.0

    def test_with_transmit_time_shifts_ring(self):
        msg = makeMsg(0.0, [1.0], 1, 1)
        msg = msg.withTransmitTime(0.003).withTransmitTime(0.007)
        assert msg.lastTransmitTimestamps == (0.003, 0.007)

    def test_is_lost(self):
        assert not makeMsg(0.0, [1.0, 2.0], 1, 1).isLost
        assert makeMsg(0.0, [1.0, np.nan], 1, 1).isLost

    def test_equality_with_nan_payload(self):
        a = makeMsg(0.0, [np.nan], 1, 1)
        b = makeMsg(0.0, [np.nan], 1, 1)
        assert a == b
        assert a != a.copy(sequenceNumber=2)

    def test_invalid_timestamps(self):
        with pytest.raises(InvalidTypeError):
            NetworkMsg(0.0, (0.0, 0.1, 0.2), [1.0], 1, 1)

    def test_size_bits(self):
        msg = makeMsg(0.0, [1.0, 2.0], 1, 1)
        assert msg.sizeBits == 8 * (36 + 8 * 2)

    def test_binary_layout(self):
        msg = makeMsg(0.125, [1.5, -2.0, np.nan], 42, 3,
                      lastTransmitTimestamp=0.25)
        data = encodeMsg(msg)
        assert data[:4] == b'NCSM'
        assert len(data) == 36 + 8 * 3
        assert decodeMsg(data) == msg


class TestBufferElement:
    """Tests for BufferElement."""

    def test_creation(self):
        msg = makeMsg(0.0, [1.0], 1, 1)
        element = BufferElement(0.5, msg)
        assert element.transmitTime == 0.5
        assert element.message is msg

    def test_rejects_non_message(self):
        with pytest.raises(InvalidTypeError):
            BufferElement(0.5, [1.0, 2.0])


class TestMsgBuffer:
    """Tests for MsgBuffer."""

    @staticmethod
    def _element(t, seq):
        return BufferElement(t, makeMsg(0.0, [float(seq)], seq, 1))

    def test_push_and_pop(self):
        buf = MsgBuffer()
        buf.pushBack(self._element(2.0, 2))
        buf.pushTop(self._element(1.0, 1))
        assert buf.elementCount == 2
        assert buf.getTop().message.sequenceNumber == 1
        assert buf.popTop().message.sequenceNumber == 1
        assert buf.popTop().message.sequenceNumber == 2
        assert buf.elementCount == 0

    def test_get_top_empty_raises(self):
        with pytest.raises(EmptyBufferError):
            MsgBuffer().getTop()

    def test_empty_buffer_error_is_index_error(self):
        with pytest.raises(IndexError):
            MsgBuffer().getTop()

    def test_pop_top_empty_returns_none(self):
        assert MsgBuffer().popTop() is None

    def test_rejects_non_element(self):
        buf = MsgBuffer()
        with pytest.raises(InvalidTypeError):
            buf.pushBack(makeMsg(0.0, [1.0], 1, 1))

    def test_sort_is_stable(self):
        buf = MsgBuffer()
        for t, seq in [(3.0, 1), (1.0, 2), (3.0, 3), (1.0, 4), (2.0, 5)]:
            buf.pushBack(self._element(t, seq))
        buf.sortBuffer()
        seqs = [e.message.sequenceNumber for e in buf]
        assert seqs == [2, 4, 5, 1, 3]

        buf.sortBuffer()
        assert [e.message.sequenceNumber for e in buf] == seqs
        np.testing.assert_array_equal(buf.transmitTimes(),
                                      [1.0, 1.0, 2.0, 3.0, 3.0])

    def test_find_and_remove(self):
        buf = MsgBuffer()
        for seq in (4, 2, 7):
            buf.pushBack(self._element(seq, seq))
        index = buf.findKey(2)
        assert index == 1
        assert buf.removeAt(index).message.sequenceNumber == 2
        assert buf.findKey(2) is None
        assert len(buf) == 2

    def test_clear(self):
        buf = MsgBuffer()
        buf.pushBack(self._element(1.0, 1))
        buf.clear()
        assert buf.elementCount == 0

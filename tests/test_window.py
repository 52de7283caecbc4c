import pytest

from ktpsock.buffer import MessageBuffer
from ktpsock.window import MAX_SEQ_NUM, WINDOW_SIZE, ReceiveWindow, SendWindow


def _buf(*messages, capacity=10):
    buf = MessageBuffer(capacity)
    for message in messages:
        buf.enqueue(message)
    return buf


def test_send_window_defaults():
    sw = SendWindow()
    assert sw.next_seq_num == 1
    assert sw.window_size == WINDOW_SIZE
    assert sw.available_rwnd == WINDOW_SIZE
    assert all(sw.acked)


def test_new_transmissions_assigns_sequence_numbers_once():
    sw = SendWindow()
    buf = _buf(b"a", b"b", b"c")
    sent = sw.new_transmissions(buf, 100.0)
    assert [h.seq_num for h, _ in sent] == [1, 2, 3]
    assert [m for _, m in sent] == [b"a", b"b", b"c"]
    assert all(not h.is_ack for h, _ in sent)
    assert sw.new_transmissions(buf, 101.0) == []
    assert len(buf) == 3


def test_in_order_ack_advances_window():
    sw = SendWindow()
    buf = _buf(b"a", b"b", b"c")
    sw.new_transmissions(buf, 0.0)
    assert sw.handle_ack(1, 4, buf) is True
    assert sw.next_seq_num == 2
    assert list(buf) == [b"b", b"c"]
    assert sw.available_rwnd == 4
    assert sw.window_size == min(len(buf), 4)
    assert sw.acked[1] is True


def test_cumulative_ack_releases_everything_up_to_it():
    sw = SendWindow()
    buf = _buf(b"a", b"b", b"c")
    sw.new_transmissions(buf, 0.0)
    assert sw.handle_ack(3, WINDOW_SIZE, buf) is True
    assert sw.next_seq_num == 4
    assert buf.is_empty()
    assert sw.window_size == 0
    assert all(sw.acked)


def test_stale_ack_is_ignored():
    sw = SendWindow()
    buf = _buf(b"a", b"b", b"c")
    sw.new_transmissions(buf, 0.0)
    sw.handle_ack(1, WINDOW_SIZE, buf)
    assert sw.handle_ack(1, WINDOW_SIZE, buf) is False
    assert sw.next_seq_num == 2
    assert list(buf) == [b"b", b"c"]


@pytest.mark.parametrize("ack", [0, MAX_SEQ_NUM + 1])
def test_ack_outside_sequence_space_is_ignored(ack):
    sw = SendWindow()
    buf = _buf(b"a")
    sw.new_transmissions(buf, 0.0)
    assert sw.handle_ack(ack, WINDOW_SIZE, buf) is False
    assert len(buf) == 1


def test_sequence_numbers_wrap_around():
    sw = SendWindow()
    sw.next_seq_num = MAX_SEQ_NUM
    buf = _buf(b"x", b"y")
    sent = sw.new_transmissions(buf, 0.0)
    assert [h.seq_num for h, _ in sent] == [MAX_SEQ_NUM, 1]
    assert sw.handle_ack(1, WINDOW_SIZE, buf) is True
    assert sw.next_seq_num == 2
    assert buf.is_empty()


def test_retransmission_only_after_timeout():
    sw = SendWindow()
    buf = _buf(b"a", b"b", b"c")
    sw.new_transmissions(buf, 100.0)
    assert sw.due_retransmissions(102.0, buf, 5) == []
    due = sw.due_retransmissions(106.0, buf, 5)
    assert [h.seq_num for h, _, _ in due] == [1, 2, 3]
    assert [m for _, m, _ in due] == [b"a", b"b", b"c"]
    assert all(elapsed == pytest.approx(6.0) for _, _, elapsed in due)


def test_acked_packets_are_not_retransmitted():
    sw = SendWindow()
    buf = _buf(b"a", b"b")
    sw.new_transmissions(buf, 0.0)
    sw.handle_ack(1, WINDOW_SIZE, buf)
    due = sw.due_retransmissions(50.0, buf, 5)
    assert [(h.seq_num, m) for h, m, _ in due] == [(2, b"b")]


def test_reset_restores_initial_state():
    sw = SendWindow()
    buf = _buf(b"a")
    sw.new_transmissions(buf, 3.0)
    sw.next_seq_num = 7
    sw.reset()
    assert sw == SendWindow()


def test_describe_lists_state_and_buffer():
    text = SendWindow().describe(MessageBuffer())
    assert text.startswith("----- Sender Window State -----\n")
    assert "Next Sequence Number: 1\n" in text
    assert "Empty buffer\n" in text
    assert text.endswith("--------------------------------\n")


def test_in_order_data_is_delivered():
    rw = ReceiveWindow()
    recv = MessageBuffer()
    assert rw.accept(1, b"hello", recv) == WINDOW_SIZE
    assert list(recv) == [b"hello"]
    assert rw.next_expected_seq == 2
    assert rw.last_ack_sent == 1


def test_out_of_order_data_is_stashed_then_drained():
    rw = ReceiveWindow()
    recv = MessageBuffer()
    assert rw.accept(2, b"second", recv) == WINDOW_SIZE - 1
    assert recv.is_empty()
    assert rw.accept(1, b"first", recv) == WINDOW_SIZE
    assert list(recv) == [b"first", b"second"]
    assert rw.next_expected_seq == 3
    assert rw.last_ack_sent == 2


def test_duplicate_out_of_order_packet_stashed_once():
    rw = ReceiveWindow()
    recv = MessageBuffer()
    rw.accept(3, b"c", recv)
    assert rw.accept(3, b"c", recv) == WINDOW_SIZE - 1


def test_packet_outside_window_is_ignored():
    rw = ReceiveWindow()
    recv = MessageBuffer()
    assert rw.accept(50, b"far", recv) == WINDOW_SIZE
    assert recv.is_empty()
    assert rw.next_expected_seq == 1


def test_receive_wraps_to_one():
    rw = ReceiveWindow()
    rw.next_expected_seq = MAX_SEQ_NUM
    recv = MessageBuffer()
    rw.accept(MAX_SEQ_NUM, b"last", recv)
    assert rw.next_expected_seq == 1
    assert rw.last_ack_sent == MAX_SEQ_NUM


def test_early_packet_past_wrap_is_stashed():
    rw = ReceiveWindow()
    rw.next_expected_seq = MAX_SEQ_NUM - 1
    recv = MessageBuffer()
    assert rw.accept(1, b"early", recv) == WINDOW_SIZE - 1
    assert rw.received[1] is True
    assert rw.stash[1] == b"early"


def test_full_receive_buffer_holds_window():
    rw = ReceiveWindow()
    recv = _buf(b"old", capacity=1)
    assert rw.accept(1, b"new", recv) == WINDOW_SIZE
    assert rw.next_expected_seq == 1
    assert list(recv) == [b"old"]


def test_receive_reset():
    rw = ReceiveWindow()
    rw.accept(2, b"x", MessageBuffer())
    rw.reset()
    assert rw == ReceiveWindow()
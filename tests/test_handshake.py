"""Tests for the parameters handshake state machine."""

from firmware_verifier.protocol.handshake import (
    MAGIC_TOKEN,
    REQUEST_ATTEMPTS,
    HandshakeState,
    HandshakeStatus,
    ParamsHandshake,
    frame_payload,
)

REPLY = b'{"name":"stock","major_version":1,"minor_version":0,"mods":[]}'


class TestFramePayload:

    def test_cuts_noise_and_terminator(self):
        """Bytes before the first brace and after CRLF are dropped."""
        assert frame_payload('\x00boot{"a":1}\r\ntrailing') == '{"a":1}'

    def test_without_brace_is_unchanged(self):
        """Text without an opening brace is returned as is."""
        assert frame_payload("garbage\r\n") == "garbage\r\n"

    def test_without_terminator_keeps_tail(self):
        """An unterminated reply keeps everything from the brace on."""
        assert frame_payload('xx{"a":') == '{"a":'


class TestHandshake:

    def test_success_with_boot_noise(self, make_transport, clock):
        """Boot noise ahead of the JSON reply is discarded."""
        transport = make_transport([b"\xfe\x00boot ", REPLY + b"\r\n"])
        handshake = ParamsHandshake(transport, clock=clock)
        outcome = handshake.run()

        assert outcome.status == HandshakeStatus.SUCCESS
        assert outcome.payload == REPLY.decode()
        assert transport.writes == [MAGIC_TOKEN]
        assert transport.closed
        assert handshake.state == HandshakeState.TERMINATED

    def test_reset_sequence_before_request(self, make_transport, clock):
        """Boards that reset on open get two DTR/RTS pulses first."""
        transport = make_transport([REPLY + b"\r\n"])
        ParamsHandshake(transport, reset_on_open=True, clock=clock).run()

        assert transport.lines == [(False, False), (True, True)] * 2
        assert clock.sleeps[:4] == [0.25, 0.25, 1.0, 0.25]

    def test_no_reset_without_flag(self, make_transport, clock):
        """Control lines are left alone by default."""
        transport = make_transport([REPLY + b"\r\n"])
        ParamsHandshake(transport, clock=clock).run()
        assert transport.lines == []

    def test_polling_stops_once_bytes_arrive(self, make_transport, clock):
        """The request is re-sent only until the controller answers."""
        transport = make_transport([REPLY + b"\r\n"], answer_after=2)
        outcome = ParamsHandshake(transport, clock=clock).run()

        assert outcome.status == HandshakeStatus.SUCCESS
        assert transport.writes == [MAGIC_TOKEN, MAGIC_TOKEN]

    def test_silent_controller_times_out(self, make_transport, clock):
        """A controller that never answers uses up every request attempt."""
        transport = make_transport([])
        outcome = ParamsHandshake(transport, clock=clock).run()

        assert outcome.status == HandshakeStatus.TIMEOUT
        assert outcome.payload == ""
        assert len(transport.writes) == REQUEST_ATTEMPTS
        assert transport.closed

    def test_partial_reply_is_still_returned(self, make_transport, clock):
        """An unterminated reply is handed back on timeout."""
        transport = make_transport([b'{"name":"stock"'])
        outcome = ParamsHandshake(transport, clock=clock).run()

        assert outcome.status == HandshakeStatus.TIMEOUT
        assert outcome.payload == '{"name":"stock"'

    def test_terminator_at_start_does_not_end_receive(self, make_transport, clock):
        """A bare CRLF does not count as a complete reply."""
        transport = make_transport([b"\r\n"])
        outcome = ParamsHandshake(transport, clock=clock).run()
        assert outcome.status == HandshakeStatus.TIMEOUT

    def test_open_failure_is_channel_error(self, make_transport, clock):
        """A port that will not open ends the run without writes."""
        transport = make_transport([REPLY + b"\r\n"], fail_on="open")
        handshake = ParamsHandshake(transport, clock=clock)
        outcome = handshake.run()

        assert outcome.status == HandshakeStatus.CHANNEL_ERROR
        assert not outcome.channel_ok
        assert "busy" in outcome.error
        assert transport.writes == []
        assert transport.closed
        assert handshake.state == HandshakeState.TERMINATED

    def test_write_failure_is_channel_error(self, make_transport, clock):
        """A failed request write still closes the port."""
        transport = make_transport([REPLY + b"\r\n"], fail_on="write")
        outcome = ParamsHandshake(transport, clock=clock).run()
        assert outcome.status == HandshakeStatus.CHANNEL_ERROR
        assert transport.closed

    def test_close_failure_does_not_change_outcome(self, make_transport, clock):
        """A close error after a good reply keeps the success."""
        transport = make_transport([REPLY + b"\r\n"], fail_close=True)
        outcome = ParamsHandshake(transport, clock=clock).run()
        assert outcome.status == HandshakeStatus.SUCCESS
        assert outcome.payload == REPLY.decode()

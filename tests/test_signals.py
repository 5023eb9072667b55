"""Tests for interrupt handling."""

import signal

import pytest

from dither_some.utils.signals import CancelToken, interrupt_guard


class TestCancelToken:
    def test_starts_clear(self):
        assert CancelToken().cancelled is False

    def test_cancel_keeps_first_signal(self):
        token = CancelToken()
        token.cancel(signal.SIGTERM)
        token.cancel(signal.SIGINT)
        assert token.cancelled
        assert token.signum == signal.SIGTERM


class TestInterruptGuard:
    @pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
    def test_signal_sets_flag(self, signum):
        token = CancelToken()
        with interrupt_guard(token):
            signal.raise_signal(signum)
        assert token.cancelled
        assert token.signum == signum

    def test_restores_handlers(self):
        before = {s: signal.getsignal(s) for s in (signal.SIGINT, signal.SIGTERM)}
        with interrupt_guard(CancelToken()):
            assert signal.getsignal(signal.SIGINT) is not before[signal.SIGINT]
        after = {s: signal.getsignal(s) for s in (signal.SIGINT, signal.SIGTERM)}
        assert after == before

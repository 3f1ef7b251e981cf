import threading
import unittest
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, is_, none

from arios.conduit.socket_conduit_test import debug_timeout
from arios.support.async_loop import AsyncLoop


class AsyncLoopTest(unittest.TestCase):

    @timeout_decorator.timeout(debug_timeout(5))
    def test_runs_function_until_stopped(self):
        called = threading.Event()
        fn = Mock(side_effect=lambda *args: called.set())
        sut = AsyncLoop(fn, (1, 2), name='test')
        sut.start()
        called.wait()
        sut.stop()
        fn.assert_called_with(1, 2)
        assert_that(sut.running(), is_(False))
        assert_that(sut.background_thread, is_(none()))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_exceptions_passed_to_handler(self):
        handled = threading.Event()
        error = ValueError("fail")
        sut = AsyncLoop(Mock(side_effect=error))
        sut.exception_handler = Mock(side_effect=lambda e: handled.set())
        sut.start()
        handled.wait()
        sut.stop()
        sut.exception_handler.assert_any_call(error)

    @timeout_decorator.timeout(debug_timeout(5))
    def test_start_twice_starts_one_thread(self):
        release = threading.Event()
        fn = Mock(side_effect=lambda: release.wait())
        sut = AsyncLoop(fn)
        sut.start()
        thread = sut.background_thread
        sut.start()
        assert_that(sut.background_thread, is_(thread))
        sut.stop_event.set()
        release.set()
        sut.stop()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_stop_from_background_thread_does_not_join(self):
        stopped = threading.Event()
        sut = AsyncLoop()

        def stop_self():
            sut.stop()
            stopped.set()
        sut.fn = stop_self
        sut.start()
        stopped.wait()
        assert_that(sut.running(), is_(False))

    def test_startup_and_shutdown_templates(self):
        sut = AsyncLoop()
        sut.startup = Mock()
        sut.shutdown = Mock()
        sut.stop_event.set()
        sut._run()
        sut.startup.assert_called_once_with()
        sut.shutdown.assert_called_once_with()

# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

from unittest import mock

from eventlet import greenlet
from requests import exceptions

from octavia_ingress import exceptions as k_exc
from octavia_ingress.tests import base as test_base
from octavia_ingress.tests import fake
from octavia_ingress.tests.unit import ingress_fixtures as k_fix
from octavia_ingress import watcher


class TestWatcher(test_base.TestCase):
    def setUp(self):
        super(TestWatcher, self).setUp()
        mock_client = self.useFixture(k_fix.MockK8sClient())
        self.client = mock_client.client

    @mock.patch.object(watcher.Watcher, '_start_watch')
    def test_add(self, m_start_watch):
        paths = ['/test%s' % i for i in range(3)]
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler)

        for path in paths:
            watcher_obj.add(path)

        self.assertEqual(set(paths), watcher_obj._resources)
        m_start_watch.assert_not_called()

    @mock.patch.object(watcher.Watcher, '_start_watch')
    def test_add_running(self, m_start_watch):
        paths = ['/test%s' % i for i in range(3)]
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler)
        watcher_obj._running = True

        for path in paths:
            watcher_obj.add(path)

        self.assertEqual(set(paths), watcher_obj._resources)
        m_start_watch.assert_has_calls([mock.call(path) for path in paths],
                                       any_order=True)

    @mock.patch.object(watcher.Watcher, '_stop_watch')
    def test_remove_watching(self, m_stop_watch):
        path = '/test'
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler)
        watcher_obj._resources.add(path)
        m_watching = watcher_obj._watching = mock.MagicMock()
        m_watching.__contains__.return_value = True

        watcher_obj.remove(path)

        self.assertEqual(set(), watcher_obj._resources)
        m_stop_watch.assert_called_once_with(path)

    @mock.patch.object(watcher.Watcher, '_start_watch')
    def test_start(self, m_start_watch):
        paths = ['/test%s' % i for i in range(3)]
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler)
        watcher_obj._resources.update(paths)

        watcher_obj.start()

        self.assertTrue(watcher_obj.is_running())
        m_start_watch.assert_has_calls([mock.call(path) for path in paths],
                                       any_order=True)

    @mock.patch.object(watcher.Watcher, '_stop_watch')
    def test_stop_watching(self, m_stop_watch):
        paths = ['/test%s' % i for i in range(3)]
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler)
        watcher_obj._resources.update(paths)
        m_watching = watcher_obj._watching = mock.MagicMock()
        m_watching.__iter__.return_value = paths

        watcher_obj.stop()

        self.assertFalse(watcher_obj.is_running())
        m_stop_watch.assert_has_calls([mock.call(path) for path in paths],
                                      any_order=True)

    def test_start_watch_threaded(self):
        self.cfg.config(watch_reconcile_period=120, group='kubernetes')
        path = '/test'
        m_tg = mock.Mock()
        m_tg.add_thread.return_value = mock.sentinel.watch_thread
        m_tg.add_timer_args.return_value = mock.sentinel.timer
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler, m_tg)

        watcher_obj._start_watch(path)

        m_tg.add_thread.assert_called_once_with(watcher_obj._watch, path)
        m_tg.add_timer_args.assert_called_once_with(
            120, watcher_obj._reconcile, args=(path,), initial_delay=120,
            stop_on_exception=False)
        self.assertEqual(mock.sentinel.watch_thread,
                         watcher_obj._watching.get(path))
        self.assertEqual(mock.sentinel.timer, watcher_obj._timers.get(path))

    def test_start_watch_threaded_no_reconcile(self):
        self.cfg.config(watch_reconcile_period=0, group='kubernetes')
        m_tg = mock.Mock()
        watcher_obj = watcher.Watcher(mock.Mock(), m_tg)

        watcher_obj._start_watch('/test')

        m_tg.add_timer_args.assert_not_called()

    def test_stop_watch_threaded(self):
        path = '/test'
        m_tg = mock.Mock()
        m_th = mock.Mock()
        m_tt = mock.Mock()
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler, m_tg)
        watcher_obj._watching[path] = m_th
        watcher_obj._timers[path] = m_tt

        watcher_obj._stop_watch(path)

        m_tt.stop.assert_called()
        m_th.stop.assert_called()
        self.assertEqual({}, watcher_obj._timers)

    def test_reconcile(self):
        ingresses = [fake.get_ingress('shop', 'web'),
                     fake.get_ingress('shop', 'api')]
        self.client.get.return_value = {'items': ingresses}
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler)

        watcher_obj._reconcile('/test')

        m_handler.assert_has_calls([
            mock.call({'type': 'MODIFIED', 'object': ingress})
            for ingress in ingresses])

    def test_reconcile_error(self):
        self.client.get.side_effect = k_exc.K8sClientException()
        m_handler = mock.Mock()
        watcher_obj = watcher.Watcher(m_handler)

        watcher_obj._reconcile('/test')

        m_handler.assert_not_called()

    def _test_watch_mock_events(self, events):
        def client_watch(client_path):
            for e in events:
                yield e
        self.client.watch.side_effect = client_watch

    @staticmethod
    def _test_watch_create_watcher(path, handler, timeout=0):
        watcher_obj = watcher.Watcher(handler, timeout=timeout)
        watcher_obj._running = True
        watcher_obj._resources.add(path)
        watcher_obj._watching[path] = None
        return watcher_obj

    def test_watch_stopped(self):
        path = '/test'
        events = [{'e': i} for i in range(3)]

        def handler(event):
            if event == events[-1]:
                watcher_obj._running = False

        m_handler = mock.Mock()
        m_handler.side_effect = handler
        watcher_obj = self._test_watch_create_watcher(path, m_handler)
        self._test_watch_mock_events(events)

        watcher_obj._watch(path)

        m_handler.assert_has_calls([mock.call(e) for e in events])
        self.assertNotIn(path, watcher_obj._watching)

    def test_watch_removed(self):
        path = '/test'
        events = [{'e': i} for i in range(3)]

        def handler(event):
            watcher_obj._resources.remove(path)

        m_handler = mock.Mock()
        m_handler.side_effect = handler
        watcher_obj = self._test_watch_create_watcher(path, m_handler)
        self._test_watch_mock_events(events)

        watcher_obj._watch(path)

        m_handler.assert_called_once_with(events[0])
        self.assertNotIn(path, watcher_obj._watching)

    def test_watch_interrupted(self):
        path = '/test'
        events = [{'e': i} for i in range(3)]

        m_handler = mock.Mock()
        m_handler.side_effect = greenlet.GreenletExit()
        watcher_obj = self._test_watch_create_watcher(path, m_handler)
        self._test_watch_mock_events(events)

        self.assertRaises(greenlet.GreenletExit, watcher_obj._watch, path)

        m_handler.assert_called_once_with(events[0])
        self.assertNotIn(path, watcher_obj._watching)

    @mock.patch('octavia_ingress.utils.exponential_sleep', return_value=0)
    def test_watch_deadline_exceeded(self, m_sleep):
        path = '/test'
        self.client.watch.side_effect = exceptions.ChunkedEncodingError(
            "Connection Broken")
        watcher_obj = self._test_watch_create_watcher(path, mock.Mock())

        watcher_obj._watch(path)

        self.client.watch.assert_called_once_with(path)
        self.assertNotIn(path, watcher_obj._watching)

    @mock.patch('octavia_ingress.utils.exponential_sleep', return_value=1)
    def test_watch_retry(self, m_sleep):
        path = '/test'
        events = [{'e': i} for i in range(3)]
        side_effects = [exceptions.ChunkedEncodingError("Connection Broken")]
        side_effects.extend(None for _ in events[:-1])

        def handler(event):
            effect = side_effects.pop(0) if side_effects else None
            if isinstance(effect, Exception):
                raise effect
            if event == events[-1]:
                watcher_obj._running = False

        m_handler = mock.Mock()
        m_handler.side_effect = handler
        watcher_obj = self._test_watch_create_watcher(path, m_handler, 10)
        self._test_watch_mock_events(events)

        watcher_obj._watch(path)

        self.assertEqual(2, self.client.watch.call_count)
        m_handler.assert_has_calls([mock.call(e) for e in events])

    def test_watch_restart(self):
        tg = mock.Mock()
        w = watcher.Watcher(lambda e: None, tg)
        w.add('/test')
        w.start()
        tg.add_thread.assert_called_once_with(mock.ANY, '/test')
        w.stop()
        tg.add_thread = mock.Mock()  # Reset mock.
        w.start()
        tg.add_thread.assert_called_once_with(mock.ANY, '/test')

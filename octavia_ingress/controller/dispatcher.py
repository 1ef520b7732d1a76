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

import collections
import threading

from oslo_config import cfg
from oslo_log import log as logging

from octavia_ingress import constants
from octavia_ingress.controller import kube
from octavia_ingress.controller import queue as work_queue
from octavia_ingress import exceptions as k_exc
from octavia_ingress.objects import route as route_obj
from octavia_ingress import utils

CONF = cfg.CONF
LOG = logging.getLogger(__name__)

Event = collections.namedtuple('Event', ['type', 'ingress'])

_VERBS = {
    constants.EVENT_CREATE: ('create', 'Created'),
    constants.EVENT_UPDATE: ('update', 'Updated'),
    constants.EVENT_DELETE: ('delete', 'Deleted'),
}


class Dispatcher(object):
    """Feeds the queued Ingress events to the reconciler one at a time.

    The queue holds Ingress keys only, the latest event of every key is
    kept aside. A burst of events for the same Ingress results in a single
    pass over its latest state. Failed passes are retried with a growing
    delay until `max_retries` is reached, except for the errors that can't
    be fixed by retrying.
    """

    def __init__(self, reconciler, queue=None, max_retries=None):
        self._reconciler = reconciler
        self._queue = queue or work_queue.RateLimitingQueue()
        if max_retries is None:
            max_retries = CONF.ingress.max_retries
        self._max_retries = max_retries
        self._events = {}
        self._lock = threading.Lock()

    def enqueue(self, event_type, ingress):
        key = utils.get_res_unique_name(ingress)
        with self._lock:
            self._events[key] = Event(event_type, ingress)
        self._queue.add(key)

    def run(self):
        LOG.info("Ingress event dispatcher started")
        while True:
            try:
                if not self.process_next_item():
                    break
            except Exception:
                # The only worker must outlive any failure of a single item.
                LOG.exception("Unexpected error processing Ingress event")
        LOG.info("Ingress event dispatcher stopped")

    def shut_down(self):
        self._queue.shut_down()

    def process_next_item(self):
        """Processes a single queued item.

        :returns: False once the queue is shut down, True otherwise
        """
        key, shutdown = self._queue.get()
        if shutdown:
            return False
        if key is None:
            return True
        try:
            self._process(key)
        finally:
            self._queue.done(key)
        return True

    def _drop(self, key, event):
        with self._lock:
            # A newer event may have arrived in the meantime.
            if self._events.get(key) is event:
                del self._events[key]

    def _process(self, key):
        with self._lock:
            event = self._events.get(key)
        if event is None:
            self._queue.forget(key)
            return

        try:
            self._handle(key, event)
        except k_exc.PERMANENT_ERRORS as ex:
            LOG.error("Failed to %s Ingress %s, not retrying: %s",
                      _VERBS[event.type][0], key, k_exc.format_msg(ex))
            self._record_failure(key, event, ex)
            self._queue.forget(key)
            self._drop(key, event)
        except Exception as ex:
            self._record_failure(key, event, ex)
            if self._queue.num_requeues(key) < self._max_retries:
                LOG.warning("Failed to %s Ingress %s, retrying: %s",
                            _VERBS[event.type][0], key, k_exc.format_msg(ex))
                self._queue.add_rate_limited(key)
            else:
                LOG.exception("Failed to %s Ingress %s %d times, giving up",
                              _VERBS[event.type][0], key,
                              self._max_retries + 1)
                self._queue.forget(key)
                self._drop(key, event)
        else:
            self._queue.forget(key)
            self._drop(key, event)

    def _record_failure(self, key, event, ex):
        kube.record_event(
            event.ingress, 'Failed',
            'Failed to %s openstack resources for ingress %s: %s' % (
                _VERBS[event.type][0], key, ex),
            constants.K8S_EVENT_TYPE_WARNING)

    def _handle(self, key, event):
        cluster_name = CONF.ingress.cluster_name
        verb, reason = _VERBS[event.type]
        LOG.info("Starting to %s Ingress %s", verb, key)

        if event.type == constants.EVENT_DELETE:
            route = route_obj.RouteSpec.from_ingress(
                event.ingress, cluster_name, strict=False)
            self._reconciler.delete_route(route)
            message = 'Ingress %s' % key
        else:
            route = route_obj.RouteSpec.from_ingress(event.ingress,
                                                     cluster_name)
            address = self._reconciler.ensure_route(route)
            message = 'Ingress %s' % key
            if address:
                message = ('Successfully associated IP address %s to '
                           'ingress %s' % (address, key))

        kube.record_event(event.ingress, reason, message)
        LOG.info("Finished to %s Ingress %s", verb, key)

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

import threading

from oslo_log import log as logging

from octavia_ingress import constants
from octavia_ingress.controller import kube
from octavia_ingress.handlers import k8s_base
from octavia_ingress import utils

LOG = logging.getLogger(__name__)

_LAST_APPLIED_ANNOTATION = 'kubectl.kubernetes.io/last-applied-configuration'


def _get_annotations(ingress):
    annotations = dict(ingress['metadata'].get('annotations') or {})
    annotations.pop(_LAST_APPLIED_ANNOTATION, None)
    return annotations


def has_changed(old, new):
    """Tells whether the Ingress changed in a way that needs a new pass."""
    return (old.get('spec') != new.get('spec') or
            _get_annotations(old) != _get_annotations(new))


class IngressHandler(k8s_base.ResourceEventHandler):
    """Turns Ingress notifications into work items.

    Only the Ingresses of this controller's class are handled. An Ingress
    that stops being ours is handled as deleted and one that becomes ours
    as created. The last seen version of every Ingress is kept to filter
    out notifications which don't change anything, like status updates or
    periodic resyncs.
    """

    OBJECT_KIND = constants.K8S_OBJ_INGRESS
    OBJECT_WATCH_PATH = constants.K8S_API_INGRESSES

    def __init__(self, enqueue):
        super(IngressHandler, self).__init__()
        self._enqueue = enqueue
        self._known = {}
        self._lock = threading.Lock()

    def _remember(self, ingress):
        key = utils.get_res_unique_name(ingress)
        with self._lock:
            old = self._known.get(key)
            self._known[key] = ingress
        return old

    def _forget(self, ingress):
        with self._lock:
            self._known.pop(utils.get_res_unique_name(ingress), None)

    def _submit(self, event_type, reason, ingress):
        key = utils.get_res_unique_name(ingress)
        LOG.debug("Queueing %s of Ingress %s", event_type, key)
        self._enqueue(event_type, ingress)
        kube.record_event(ingress, reason, 'Ingress %s' % key)

    def on_added(self, ingress, *args, **kwargs):
        old = self._remember(ingress)
        if old is not None:
            # Watch got restarted, so it's the same as an update.
            self._on_changed(old, ingress)
        elif utils.is_ingress_valid(ingress):
            self._submit(constants.EVENT_CREATE, 'Creating', ingress)

    def on_modified(self, ingress, *args, **kwargs):
        old = self._remember(ingress)
        if old is None:
            if utils.is_ingress_valid(ingress):
                self._submit(constants.EVENT_CREATE, 'Creating', ingress)
            return
        self._on_changed(old, ingress)

    def _on_changed(self, old, new):
        if (old['metadata'].get('resourceVersion') ==
                new['metadata'].get('resourceVersion')):
            return
        old_valid = utils.is_ingress_valid(old)
        new_valid = utils.is_ingress_valid(new)
        if not old_valid and new_valid:
            self._submit(constants.EVENT_CREATE, 'Creating', new)
        elif old_valid and not new_valid:
            self._submit(constants.EVENT_DELETE, 'Deleting', new)
        elif new_valid and has_changed(old, new):
            self._submit(constants.EVENT_UPDATE, 'Updating', new)

    def on_deleted(self, ingress, *args, **kwargs):
        self._forget(ingress)
        if utils.is_ingress_valid(ingress):
            self._submit(constants.EVENT_DELETE, 'Deleting', ingress)

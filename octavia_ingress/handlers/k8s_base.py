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

from octavia_ingress.handlers import base


def object_info(event):
    try:
        resource = event['object']
        try:
            return "%(kind)s %(namespace)s/%(name)s" % dict(
                resource['metadata'], kind=resource['kind'])
        except KeyError:
            return "%(kind)s: %(name)s" % dict(resource['metadata'],
                                                kind=resource.get('kind'))
    except KeyError:
        return None


class ResourceEventHandler(base.EventHandler):
    """Base class for K8s event handlers.

    Implementing classes should override both `OBJECT_KIND` and
    'OBJECT_WATCH_PATH' attributes.
    The `OBJECT_KIND` should be set to a valid Kubernetes object type
    name (e.g. 'Ingress').

    The `OBJECT_WATCH_PATH` should point to object's watched path,
    (e.g. '/apis/networking.k8s.io/v1/ingresses').

    Implementing classes are expected to override any or all of the
    `on_added`, `on_modified`, `on_deleted` methods that would be called
    depending on the type of the event (with K8s object as a single
    argument).
    """

    OBJECT_KIND = None
    OBJECT_WATCH_PATH = None

    def get_watch_path(self):
        return self.OBJECT_WATCH_PATH

    def __call__(self, event, *args, **kwargs):
        event_type = event.get('type')
        obj = event.get('object')
        if not obj or obj.get('kind') not in (None, self.OBJECT_KIND):
            # E.g. ERROR events carry a Status object.
            return
        if 'MODIFIED' == event_type:
            self.on_modified(obj, *args, **kwargs)
        elif 'ADDED' == event_type:
            self.on_added(obj, *args, **kwargs)
        elif 'DELETED' == event_type:
            self.on_deleted(obj, *args, **kwargs)

    def on_added(self, obj, *args, **kwargs):
        pass

    def on_modified(self, obj, *args, **kwargs):
        pass

    def on_deleted(self, obj, *args, **kwargs):
        pass

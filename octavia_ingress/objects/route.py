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

from oslo_log import log as logging
from oslo_utils import strutils
from oslo_versionedobjects import base as obj_base
from oslo_versionedobjects import fields as obj_fields

from octavia_ingress import constants
from octavia_ingress import exceptions as k_exc
from octavia_ingress.objects import base as k_obj

LOG = logging.getLogger(__name__)

_LISTENER_TIMEOUT_ANNOTATIONS = {
    'timeout_client_data': constants.K8S_ANNOTATION_TIMEOUT_CLIENT_DATA,
    'timeout_member_connect': constants.K8S_ANNOTATION_TIMEOUT_MEMBER_CONNECT,
    'timeout_member_data': constants.K8S_ANNOTATION_TIMEOUT_MEMBER_DATA,
    'timeout_tcp_inspect': constants.K8S_ANNOTATION_TIMEOUT_TCP_INSPECT,
}


@obj_base.VersionedObjectRegistry.register
class RouteBackend(k_obj.OctaviaIngressObjectBase):
    VERSION = '1.0'

    fields = {
        'service': obj_fields.StringField(),
        'port_name': obj_fields.StringField(nullable=True, default=None),
        'port_number': obj_fields.IntegerField(nullable=True, default=None),
    }

    @property
    def port(self):
        if self.port_name:
            return self.port_name
        return str(self.port_number)

    @classmethod
    def from_ingress_backend(cls, backend):
        service = (backend or {}).get('service')
        if not service or not service.get('name'):
            raise k_exc.InvalidRouteSpec(
                'Only service backends are supported, got %s' % backend)
        port = service.get('port') or {}
        if not port.get('name') and not port.get('number'):
            raise k_exc.InvalidRouteSpec(
                'Backend service %s does not specify a port' %
                service['name'])
        return cls(service=service['name'], port_name=port.get('name'),
                   port_number=port.get('number'))


@obj_base.VersionedObjectRegistry.register
class RouteRule(k_obj.OctaviaIngressObjectBase):
    VERSION = '1.0'

    fields = {
        'host': obj_fields.StringField(nullable=True, default=None),
        'path': obj_fields.StringField(default=''),
        'backend': obj_fields.ObjectField(RouteBackend.__name__),
    }


@obj_base.VersionedObjectRegistry.register
class RouteTLS(k_obj.OctaviaIngressObjectBase):
    VERSION = '1.0'

    fields = {
        'hosts': obj_fields.ListOfStringsField(default=[]),
        'secret_name': obj_fields.StringField(),
    }


@obj_base.VersionedObjectRegistry.register
class RouteSpec(k_obj.OctaviaIngressObjectBase):
    """Routing intent of a single Ingress.

    Built from the Ingress object with `from_ingress`, the host/path pairs
    of all the HTTP rules are flattened into the ordered `rules` list.
    """
    VERSION = '1.0'

    fields = {
        'namespace': obj_fields.StringField(),
        'name': obj_fields.StringField(),
        'uid': obj_fields.StringField(nullable=True, default=None),
        'cluster_name': obj_fields.StringField(),
        'resource_version': obj_fields.StringField(nullable=True,
                                                   default=None),
        'annotations': obj_fields.DictOfStringsField(default={}),
        'rules': obj_fields.ListOfObjectsField(RouteRule.__name__,
                                               default=[]),
        'default_backend': obj_fields.ObjectField(RouteBackend.__name__,
                                                  nullable=True,
                                                  default=None),
        'tls': obj_fields.ListOfObjectsField(RouteTLS.__name__, default=[]),
    }

    @classmethod
    def from_ingress(cls, ingress, cluster_name, strict=True):
        """Builds the route from an Ingress object.

        With strict=False the entries that can't be realized are skipped
        instead of failing, which is what tearing an Ingress down needs.
        """
        metadata = ingress.get('metadata', {})
        if not metadata.get('name') or not metadata.get('namespace'):
            raise k_exc.InvalidRouteSpec(
                'Ingress without name or namespace: %s' % metadata)
        spec = ingress.get('spec') or {}
        key = '%s/%s' % (metadata['namespace'], metadata['name'])

        def _backend(backend):
            try:
                return RouteBackend.from_ingress_backend(backend)
            except k_exc.InvalidRouteSpec as ex:
                if strict:
                    raise
                LOG.debug('Skipping backend of Ingress %s: %s', key, ex)
                return None

        rules = []
        for rule in spec.get('rules') or []:
            http = rule.get('http')
            if not http:
                continue
            for path in http.get('paths') or []:
                backend = _backend(path.get('backend'))
                if backend is None:
                    continue
                rules.append(RouteRule(host=rule.get('host') or None,
                                       path=path.get('path') or '',
                                       backend=backend))

        default_backend = None
        if spec.get('defaultBackend'):
            default_backend = _backend(spec['defaultBackend'])

        tls = []
        for entry in spec.get('tls') or []:
            if not entry.get('secretName'):
                if not strict:
                    continue
                raise k_exc.InvalidRouteSpec(
                    'TLS entry of Ingress %s does not reference a secret' %
                    key)
            tls.append(RouteTLS(hosts=entry.get('hosts') or [],
                                secret_name=entry['secretName']))

        return cls(namespace=metadata['namespace'],
                   name=metadata['name'],
                   uid=metadata.get('uid'),
                   cluster_name=cluster_name,
                   resource_version=metadata.get('resourceVersion'),
                   annotations=metadata.get('annotations') or {},
                   rules=rules,
                   default_backend=default_backend,
                   tls=tls)

    @property
    def key(self):
        return '%s/%s' % (self.namespace, self.name)

    def _get_bool_annotation(self, key, default):
        value = self.annotations.get(key)
        if value is None:
            return default
        try:
            return strutils.bool_from_string(value, strict=True)
        except ValueError:
            raise k_exc.InvalidRouteSpec(
                'Unknown value %r of annotation %s' % (value, key))

    def is_internal(self):
        return self._get_bool_annotation(constants.K8S_ANNOTATION_INTERNAL,
                                         True)

    def keep_floating_ip(self):
        return self._get_bool_annotation(
            constants.K8S_ANNOTATION_KEEP_FLOATING_IP, False)

    def floating_ip(self):
        return self.annotations.get(constants.K8S_ANNOTATION_FLOATING_IP)

    def source_ranges(self):
        value = self.annotations.get(constants.K8S_ANNOTATION_SOURCE_RANGES,
                                     constants.LISTENER_DEFAULT_CIDR)
        return [cidr.strip() for cidr in value.split(',') if cidr.strip()]

    def listener_timeouts(self):
        timeouts = {}
        for attr, key in _LISTENER_TIMEOUT_ANNOTATIONS.items():
            value = self.annotations.get(key)
            if value is None:
                continue
            try:
                timeouts[attr] = int(value)
            except ValueError:
                LOG.debug('Invalid integer found on annotation %s = %s of '
                          'Ingress %s, ignoring.', key, value, self.key)
        return timeouts
